# compensi/usecases/gestisci_eccezioni.py
"""
UC: Gestire le eccezioni di un medico (aggiunta, modifica, rimozione, merge da file).

Ogni operazione:
1) carica la configurazione e costruisce un `ExceptionRepository` nuovo;
2) applica la modifica (gli errori duri lasciano il file invariato);
3) salva la configurazione aggiornata;
4) restituisce anche le segnalazioni di coerenza, da mostrare all'operatore.
"""
from __future__ import annotations

import json
from typing import Any, Dict, List, Mapping, Optional

from compensi.config import CONFIG_PATH, DEFAULTS
from compensi.domain.errors import ConfigurationError
from compensi.domain.models import DoctorConfiguration, exception_from_dict
from compensi.domain.validator import RuleValidator
from compensi.infra.logger import log_file_operation, log_system_event, log_transaction
from compensi.infra.repositories import ExceptionRepository
from compensi.infra.storage import load_configurazione, save_configurazione


def _commit(cfg: DoctorConfiguration, repo: ExceptionRepository, config_path: str) -> List:
    cfg.exceptions = repo.export()
    save_configurazione(config_path, cfg)
    return RuleValidator().validate_coherence(cfg.base_rule, cfg.exceptions, cfg.product_costs)


def run_aggiungi_eccezione(
    treatment: str,
    rule: Mapping[str, Any],
    product: Optional[str] = None,
    config_path: str = CONFIG_PATH,
) -> Dict[str, Any]:
    """Aggiunge un'eccezione (trattamento, prodotto opzionale) con la regola indicata."""
    data = {"treatment": treatment, "product": product, "rule": dict(rule)}
    try:
        cfg = load_configurazione(config_path)
        repo = ExceptionRepository(cfg.exceptions)
        exc = repo.add(data)
        warnings = _commit(cfg, repo, config_path)
        log_transaction("aggiungi_eccezione", data, result=exc.id)
        return {"eccezione": exc, "warnings": warnings}
    except Exception as e:
        log_transaction("aggiungi_eccezione", data, error=str(e))
        raise


def run_modifica_eccezione(
    id: int,
    patch: Mapping[str, Any],
    config_path: str = CONFIG_PATH,
) -> Dict[str, Any]:
    """Modifica un'eccezione esistente; `patch` può contenere treatment, product, rule (parziale)."""
    data = {"id": id, "patch": dict(patch)}
    try:
        cfg = load_configurazione(config_path)
        repo = ExceptionRepository(cfg.exceptions)
        exc = repo.update(id, patch)
        warnings = _commit(cfg, repo, config_path)
        log_transaction("modifica_eccezione", data, result=exc.id)
        return {"eccezione": exc, "warnings": warnings}
    except Exception as e:
        log_transaction("modifica_eccezione", data, error=str(e))
        raise


def run_rimuovi_eccezione(id: int, config_path: str = CONFIG_PATH) -> Dict[str, Any]:
    data = {"id": id}
    try:
        cfg = load_configurazione(config_path)
        repo = ExceptionRepository(cfg.exceptions)
        repo.remove(id)
        warnings = _commit(cfg, repo, config_path)
        log_transaction("rimuovi_eccezione", data, result="success")
        return {"rimossa": id, "warnings": warnings}
    except Exception as e:
        log_transaction("rimuovi_eccezione", data, error=str(e))
        raise


def _load_exceptions_file(path: str) -> List:
    """Accetta sia un elenco di eccezioni sia una configurazione completa di medico."""
    try:
        with open(path, "r", encoding="utf-8") as f:
            payload = json.load(f)
    except FileNotFoundError:
        raise ConfigurationError(f"{path}: file not found")
    except json.JSONDecodeError as e:
        raise ConfigurationError(f"{path}: invalid JSON ({e})")
    if isinstance(payload, list):
        items = [exception_from_dict(e) for e in payload]
    elif isinstance(payload, dict):
        raw = payload.get("exceptions", payload.get("eccezioni"))
        if raw is None:
            raise ConfigurationError(f"{path}: no exceptions found")
        items = [exception_from_dict(e) for e in raw]
    else:
        raise ConfigurationError(f"{path}: unexpected content")
    log_file_operation("import", path, rows_processed=len(items), kind="eccezioni")
    return items


def run_merge_eccezioni(
    source_path: str,
    strategy: str = DEFAULTS.default_merge_strategy,
    config_path: str = CONFIG_PATH,
) -> Dict[str, Any]:
    """Unisce alle eccezioni del medico quelle lette da un file JSON esterno."""
    data = {"source": source_path, "strategy": strategy}
    log_system_event("merge_eccezioni_start", data)
    try:
        incoming = _load_exceptions_file(source_path)
        cfg = load_configurazione(config_path)
        repo = ExceptionRepository(cfg.exceptions)
        counts = repo.merge(incoming, strategy=strategy)
        warnings = _commit(cfg, repo, config_path)
        log_transaction("merge_eccezioni", data, result=counts)
        return {"conteggio": counts, "warnings": warnings}
    except Exception as e:
        log_transaction("merge_eccezioni", data, error=str(e))
        log_system_event("merge_eccezioni_error", {"error": str(e)}, level="error")
        raise
