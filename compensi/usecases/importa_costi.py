# compensi/usecases/importa_costi.py
"""
UC: Importare un foglio costi prodotto (anteprima e conferma).

Flusso:
1) Legge il foglio costi (XLSX/CSV) e, se indicato, il catalogo prodotti.
2) Classifica le righe: modifiche, nuovi prodotti, prodotti non validi.
3) Solo con conferma applica modifiche e nuovi prodotti e salva.

Nota: i prodotti non validi non vengono mai applicati; vanno risolti a mano
(es. mappandoli su un nome del catalogo) e reimportati.
"""
from __future__ import annotations

import os
from typing import Any, Dict, Optional

from compensi.adapters.sheet_loader import load_catalogo, load_costi
from compensi.config import CATALOG_PATH, CONFIG_PATH
from compensi.infra.logger import log_system_event, log_transaction, print_system
from compensi.infra.repositories import ProductCostRepository
from compensi.infra.storage import load_configurazione, save_configurazione


def run_import_costi(
    sheet_path: str,
    catalog_path: Optional[str] = None,
    confirm: bool = False,
    config_path: str = CONFIG_PATH,
) -> Dict[str, Any]:
    """Prepara (ed eventualmente conferma) l'import di un foglio costi.

    Returns:
        {"risultato": ImportResult, "applicato": bool, "costi": List[ProductCost]}
    """
    data = {"file": sheet_path, "catalog": catalog_path, "confirm": confirm}
    log_system_event("import_costi_start", data)
    try:
        rows = load_costi(sheet_path)
        if catalog_path is None and os.path.exists(CATALOG_PATH):
            catalog_path = CATALOG_PATH
        catalog = load_catalogo(catalog_path) if catalog_path else {}
        cfg = load_configurazione(config_path)

        repo = ProductCostRepository(cfg.product_costs, catalog=catalog)
        result = repo.prepare_import(rows)

        applied = False
        if confirm and (result.modifications or result.new_products):
            repo.confirm_import(result)
            cfg.product_costs = repo.export()
            save_configurazione(config_path, cfg)
            applied = True
        if result.invalid:
            print_system(f"Prodotti non riconosciuti: {', '.join(result.invalid)}")

        summary = {
            "modifiche": len(result.modifications),
            "nuovi": len(result.new_products),
            "non_validi": len(result.invalid),
            "applicato": applied,
        }
        log_transaction("import_costi", {"file": sheet_path, "rows_count": len(rows)}, result=summary)
        return {"risultato": result, "applicato": applied, "costi": repo.export()}
    except Exception as e:
        log_transaction("import_costi", {"file": sheet_path}, error=str(e))
        log_system_event("import_costi_error", {"file_path": sheet_path, "error": str(e)}, level="error")
        raise


def run_prepara_import_costi(
    sheet_path: str,
    catalog_path: Optional[str] = None,
    config_path: str = CONFIG_PATH,
) -> Dict[str, Any]:
    """Solo anteprima: la configurazione non viene modificata."""
    return run_import_costi(sheet_path, catalog_path, confirm=False, config_path=config_path)


def run_conferma_import_costi(
    sheet_path: str,
    catalog_path: Optional[str] = None,
    config_path: str = CONFIG_PATH,
) -> Dict[str, Any]:
    return run_import_costi(sheet_path, catalog_path, confirm=True, config_path=config_path)
