# compensi/usecases/valida_configurazione.py
"""
Caso d'uso: validare la configurazione compensi di un medico.

Flusso:
1) Carica la configurazione.
2) Verifica la validità della regola base (unico controllo bloccante).
3) Esegue la validazione di coerenza (eccezioni, conflitti, costi prodotto).
4) Aggiunge suggerimenti di semplificazione e le incoerenze sui prezzi.

Osservazioni:
- Nulla viene modificato: il risultato è solo informativo per l'editor.
- `bloccante` è True se la regola base non è valida o se ci sono
  segnalazioni di gravità 'error'.
"""

from __future__ import annotations

from typing import Any, Dict

from compensi.config import CONFIG_PATH
from compensi.domain.models import SEVERITY_ERROR, SEVERITY_INFO, SEVERITY_WARNING
from compensi.domain.validator import RuleValidator
from compensi.infra.logger import log_system_event, log_transaction
from compensi.infra.repositories import ProductCostRepository
from compensi.infra.storage import load_configurazione


def run_validazione(config_path: str = CONFIG_PATH) -> Dict[str, Any]:
    log_system_event("validazione_start", {"config_path": config_path})
    try:
        cfg = load_configurazione(config_path)
        validator = RuleValidator()

        base_valida = validator.is_valid(cfg.base_rule)
        warnings = validator.validate_coherence(cfg.base_rule, cfg.exceptions, cfg.product_costs)
        suggerimenti = validator.suggest_optimizations(cfg.base_rule, cfg.exceptions)
        coerenza_prezzi = ProductCostRepository(cfg.product_costs).price_coherence_warnings()

        conteggio = {
            SEVERITY_ERROR: sum(1 for w in warnings if w.severity == SEVERITY_ERROR),
            SEVERITY_WARNING: sum(1 for w in warnings if w.severity == SEVERITY_WARNING),
            SEVERITY_INFO: sum(1 for w in warnings if w.severity == SEVERITY_INFO),
        }
        out = {
            "medico": cfg.doctor_name or cfg.doctor_id,
            "regola_base_valida": base_valida,
            "warnings": warnings,
            "suggerimenti": suggerimenti,
            "coerenza_prezzi": coerenza_prezzi,
            "conteggio": conteggio,
            "bloccante": (not base_valida) or conteggio[SEVERITY_ERROR] > 0,
        }
        log_transaction("validazione", {"config_path": config_path}, result=conteggio)
        return out
    except Exception as e:
        log_transaction("validazione", {"config_path": config_path}, error=str(e))
        log_system_event("validazione_error", {"error": str(e)}, level="error")
        raise
