# compensi/usecases/calcola_compenso.py
"""
UC: Calcolare il compenso di un medico per una riga di fattura (singola e what-if).

Flusso:
1) Carica la configurazione del medico (regola base, eccezioni, costi prodotto).
2) Costruisce il `CalculationInput` e delega al `CompensationCalculator`.
3) Registra la transazione nel log.
"""
from __future__ import annotations

from typing import Iterable, List, Optional

from compensi.config import CONFIG_PATH
from compensi.domain.calculator import CompensationCalculator, ScenarioResult
from compensi.domain.models import CalculationInput, CalculationResult, PercentageRule
from compensi.infra.logger import log_system_event, log_transaction
from compensi.infra.storage import load_configurazione


def _build_input(
    config_path: str,
    treatment: str,
    invoice_amount: float,
    product: Optional[str],
    quantity: Optional[float],
    vat_included: bool,
) -> CalculationInput:
    cfg = load_configurazione(config_path)
    return CalculationInput(
        invoice_amount=invoice_amount,
        vat_included=vat_included,
        treatment=treatment,
        product=product or None,
        quantity=quantity,
        base_rule=cfg.base_rule,
        exceptions=cfg.exceptions,
        product_costs=cfg.product_costs,
    )


def run_calcolo(
    treatment: str,
    invoice_amount: float,
    product: Optional[str] = None,
    quantity: Optional[float] = None,
    vat_included: bool = True,
    config_path: str = CONFIG_PATH,
) -> CalculationResult:
    """Calcola il compenso per una riga di fattura con la configurazione salvata."""
    data = {"treatment": treatment, "product": product, "invoice_amount": invoice_amount}
    log_system_event("calcolo_start", {"config_path": config_path, **data})
    try:
        calc_input = _build_input(config_path, treatment, invoice_amount, product, quantity, vat_included)
        result = CompensationCalculator().calculate(calc_input)
        log_transaction("calcolo", data, result=round(result.net_compensation, 2))
        return result
    except Exception as e:
        log_transaction("calcolo", data, error=str(e))
        log_system_event("calcolo_error", {"error": str(e)}, level="error")
        raise


def run_scenari(
    treatment: str,
    invoice_amount: float,
    percentuali: Iterable[float],
    product: Optional[str] = None,
    quantity: Optional[float] = None,
    vat_included: bool = True,
    config_path: str = CONFIG_PATH,
) -> List[ScenarioResult]:
    """Simula la regola base come percentuale, una volta per ciascun valore.

    Base di calcolo e detrazione costi restano quelle della regola base
    configurata. Se per il trattamento vale un'eccezione, il risultato non
    cambia: la simulazione riguarda solo la regola base.
    """
    data = {"treatment": treatment, "product": product, "invoice_amount": invoice_amount}
    try:
        calc_input = _build_input(config_path, treatment, invoice_amount, product, quantity, vat_included)
        current = calc_input.base_rule
        rules = [
            PercentageRule(value=float(p), base=current.base, deduct_product_cost=current.deduct_product_cost)
            for p in percentuali
        ]
        results = CompensationCalculator().analyze_scenarios(calc_input, {"base_rule": rules})
        log_transaction("scenari", data, result=len(results))
        return results
    except Exception as e:
        log_transaction("scenari", data, error=str(e))
        raise
