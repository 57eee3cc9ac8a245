"""
Lettura e scrittura della configurazione di un medico su file JSON.

Il file contiene la terna {baseRule, exceptions, productCosts} (più id e
nome del medico). Le chiavi legacy del vecchio archivio (regolaBase,
eccezioni, costiProdotti, ...) sono accettate in lettura; la scrittura
usa sempre le chiavi camelCase.
"""

from __future__ import annotations

import json
from pathlib import Path
from typing import Union

from compensi.domain.errors import ConfigurationError
from compensi.domain.models import DoctorConfiguration
from compensi.infra.logger import log_file_operation


def load_configurazione(path: Union[str, Path]) -> DoctorConfiguration:
    """Carica e normalizza la configurazione di un medico."""
    p = Path(path)
    try:
        with open(p, "r", encoding="utf-8") as f:
            data = json.load(f)
    except FileNotFoundError:
        raise ConfigurationError(f"{p}: configuration file not found")
    except json.JSONDecodeError as e:
        raise ConfigurationError(f"{p}: invalid JSON ({e})")
    cfg = DoctorConfiguration.from_dict(data)
    log_file_operation(
        "load", str(p), rows_processed=len(cfg.exceptions) + len(cfg.product_costs)
    )
    return cfg


def save_configurazione(path: Union[str, Path], cfg: DoctorConfiguration) -> None:
    """Salva la configurazione; il file viene sostituito solo a scrittura completata."""
    p = Path(path)
    p.parent.mkdir(parents=True, exist_ok=True)
    tmp = p.with_suffix(p.suffix + ".tmp")
    with open(tmp, "w", encoding="utf-8") as f:
        json.dump(cfg.to_dict(), f, ensure_ascii=False, indent=2)
    tmp.replace(p)
    log_file_operation(
        "save", str(p), rows_processed=len(cfg.exceptions) + len(cfg.product_costs)
    )
