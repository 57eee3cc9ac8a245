# compensi/adapters/sheet_loader.py
"""
Loader per fogli costi prodotto e catalogo prodotti (XLSX o CSV).

Queste funzioni:
- leggono fogli XLSX/CSV usando pandas;
- normalizzano le intestazioni (accenti, varianti, sinonimi);
- restituiscono strutture semplici pronte per il repository dei costi.

Osservazioni:
- Gli importi vengono interpretati con `parse_importo` (virgola o punto).
- Le righe senza nome prodotto vengono scartate qui; la classificazione
  (modifica / nuovo / non valido) spetta a `ProductCostRepository.prepare_import`.
"""

from __future__ import annotations

import re
from pathlib import Path
from typing import Any, Dict, List, Optional

import pandas as pd

from compensi.adapters.parsers import parse_importo
from compensi.domain.errors import ConfigurationError
from compensi.infra.logger import log_file_operation


# ---------------------------
# utilità di normalizzazione
# ---------------------------

def _slug(s: Any) -> str:
    """Normalizza le intestazioni: minuscole, senza accenti, senza caratteri non alfanumerici."""
    if s is None:
        return ""
    s = str(s).strip().lower()
    accenti = dict(zip("áàâãäéèêëíìîïóòôõöúùûüç", "aaaaaeeeeiiiiooooouuuuc"))
    s = "".join(accenti.get(ch, ch) for ch in s)
    s = re.sub(r"[^a-z0-9]+", " ", s)
    s = re.sub(r"\s+", " ", s).strip()
    return s


def _safe_get(row, key):
    """Legge un valore dalla riga pandas trattando NA come None."""
    val = row.get(key)
    if val is None or pd.isna(val):
        return None
    return val


def _normalize_columns(df: pd.DataFrame) -> pd.DataFrame:
    """Rinomina le colonne in base a sinonimi/varianti."""
    aliases = {
        "nome": "name",
        "name": "name",
        "prodotto": "name",
        "product": "name",
        "nome prodotto": "name",
        "descrizione": "name",

        "costo": "cost",
        "cost": "cost",
        "prezzo": "cost",
        "price": "cost",
        "costo unitario": "cost",
        "prezzo unitario": "cost",

        "unita": "unit",
        "unit": "unit",
        "unita misura": "unit",
        "unita di misura": "unit",
        "um": "unit",
    }
    new_cols = {}
    for col in df.columns:
        key = _slug(col)
        new_cols[col] = aliases.get(key, key)  # senza alias resta lo slug
    return df.rename(columns=new_cols)


def _read_sheet(path: str) -> pd.DataFrame:
    if not Path(path).exists():
        raise ConfigurationError(f"{path}: file not found")
    suffix = Path(path).suffix.lower()
    if suffix in (".csv", ".txt"):
        # separatore rilevato automaticamente (';' nei CSV esportati in locale italiano)
        df = pd.read_csv(path, sep=None, engine="python", dtype=str)
    elif suffix in (".xlsx", ".xlsm", ".xls"):
        df = pd.read_excel(path, dtype=object)
    else:
        raise ConfigurationError(f"Unsupported sheet format: {path}")
    return _normalize_columns(df)


# ---------------------------
# loader pubblici
# ---------------------------

def load_costi(path: str) -> List[Dict[str, Any]]:
    """Legge un foglio costi e restituisce righe `{name, cost}`.

    Colonne richieste (dopo la normalizzazione): `name` e `cost`.
    I costi non interpretabili diventano 0 (come una cella vuota).
    """
    df = _read_sheet(path)
    missing = [c for c in ("name", "cost") if c not in df.columns]
    if missing:
        raise ConfigurationError(f"{path}: missing columns {missing}")

    rows: List[Dict[str, Any]] = []
    for _, r in df.iterrows():
        name = _safe_get(r, "name")
        name = str(name).strip() if name is not None else None
        if not name:
            continue
        cost: Optional[float] = parse_importo(_safe_get(r, "cost"))
        rows.append({"name": name, "cost": cost if cost is not None else 0.0})

    log_file_operation("import", path, rows_processed=len(rows), kind="costi")
    return rows


def load_catalogo(path: str) -> Dict[str, str]:
    """Legge il catalogo prodotti di riferimento: `{nome: unità di misura}`."""
    df = _read_sheet(path)
    if "name" not in df.columns:
        raise ConfigurationError(f"{path}: missing column 'name'")

    catalog: Dict[str, str] = {}
    for _, r in df.iterrows():
        name = _safe_get(r, "name")
        name = str(name).strip() if name is not None else None
        if not name:
            continue
        unit = _safe_get(r, "unit") if "unit" in df.columns else None
        catalog[name] = str(unit).strip() if unit is not None else ""

    log_file_operation("import", path, rows_processed=len(catalog), kind="catalogo")
    return catalog
