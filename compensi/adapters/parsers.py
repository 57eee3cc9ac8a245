"""
Utilità di parsing per importi in euro.

I fogli costi e i valori inseriti da terminale arrivano in formati
diversi ("€ 1.234,56", "12,50", "10.5", "15 €"). Questo modulo ne estrae
in modo robusto il valore numerico.
"""

from __future__ import annotations

import re
from typing import Any, Optional

_AMOUNT_RE = re.compile(r"[-+]?\d[\d.,]*")


def parse_importo(txt: Any) -> Optional[float]:
    """Interpreta una stringa (o un numero) come importo.

    Regole per i separatori:
        - se compaiono sia '.' che ',', l'ultimo dei due è il separatore
          decimale e l'altro separa le migliaia;
        - con la sola ',' questa è il separatore decimale;
        - con il solo '.' ripetuto (es. "1.234.567") sono migliaia,
          altrimenti è il separatore decimale.

    Esempi:
        "€ 1.234,56"  → 1234.56
        "12,50"       → 12.5
        "1,234.56"    → 1234.56
        "15 €"        → 15.0
        "abc"         → None

    Returns:
        Il valore come float, oppure None se non è possibile determinarlo.
    """
    if txt is None:
        return None
    if isinstance(txt, bool):
        return None
    if isinstance(txt, (int, float)):
        return None if txt != txt else float(txt)  # NaN
    s = str(txt).strip()
    if not s:
        return None
    m = _AMOUNT_RE.search(s.replace(" ", ""))
    if not m:
        return None
    num = m.group(0).rstrip(".,")
    if "." in num and "," in num:
        if num.rfind(",") > num.rfind("."):
            num = num.replace(".", "").replace(",", ".")
        else:
            num = num.replace(",", "")
    elif "," in num:
        num = num.replace(".", "").replace(",", ".")
    elif num.count(".") > 1:
        num = num.replace(".", "")
    try:
        return float(num)
    except ValueError:
        return None
