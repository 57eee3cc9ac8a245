"""
Compensation calculator.

Given one treated invoice line and the doctor's rule set, the calculator:

1. splits the invoice amount into gross and net (fixed 22% VAT);
2. resolves the applicable rule (product exception, then treatment
   exception, then base rule);
3. applies the rule's formula to the net or gross amount;
4. deducts the configured product cost when the rule asks for it;
5. returns every intermediate value so callers never recompute a step.

The final net compensation is never clamped: a negative value means the
clinic's margin on that line is negative and must be visible.
"""

from __future__ import annotations

from dataclasses import dataclass, fields, replace
from typing import Any, Iterable, List, Mapping, Optional, Sequence, Tuple, Union

from compensi.config import DEFAULTS
from compensi.domain.errors import InvalidRuleError
from compensi.domain.formulas import (
    describe_fixed,
    describe_percentage,
    describe_tiered,
    fixed_compensation,
    percentage_compensation,
    product_cost_deduction,
    split_vat,
    tiered_compensation,
)
from compensi.domain.models import (
    CalculationInput,
    CalculationResult,
    FixedRule,
    PercentageRule,
    ProductCost,
    Rule,
    TieredRule,
    normalize_str,
    rule_to_dict,
)
from compensi.domain.policies import resolve_rule
from compensi.domain.validator import RuleValidator
from compensi.infra.logger import log_calcolo


@dataclass(frozen=True)
class ScenarioResult:
    """One what-if variation: the overridden field, its value and the outcome."""
    field: str
    value: Any
    result: CalculationResult


def apply_rule(rule: Rule, amount: float) -> Tuple[float, str]:
    """Return ``(base_compensation, formula_description)`` for a valid rule."""
    if isinstance(rule, PercentageRule):
        return percentage_compensation(amount, rule.value), describe_percentage(amount, rule.value)
    if isinstance(rule, TieredRule):
        return (
            tiered_compensation(amount, rule.threshold_x, rule.threshold_y),
            describe_tiered(amount, rule.threshold_x, rule.threshold_y),
        )
    if isinstance(rule, FixedRule):
        return (
            fixed_compensation(amount, rule.threshold_x, rule.threshold_y),
            describe_fixed(amount, rule.threshold_x, rule.threshold_y),
        )
    raise InvalidRuleError(f"Unsupported rule type: {type(rule).__name__}", rule)


class CompensationCalculator:

    def __init__(self, validator: Optional[RuleValidator] = None):
        self.validator = validator or RuleValidator()

    def calculate(self, data: CalculationInput) -> CalculationResult:
        gross, net = split_vat(data.invoice_amount, data.vat_included)
        product = normalize_str(data.product)

        rule, source, source_description = resolve_rule(
            data.base_rule, data.exceptions, data.treatment, product
        )
        if not self.validator.is_valid(rule):
            raise InvalidRuleError(
                f"{source_description} is not a valid rule: {rule_to_dict(rule)}", rule
            )

        amount = net if rule.base == "net" else gross
        base_compensation, formula = apply_rule(rule, amount)

        quantity = data.quantity if data.quantity is not None else DEFAULTS.default_quantity
        deducted, cost_details = self._deduction(rule, product, quantity, data.product_costs)

        net_compensation = base_compensation - deducted

        explanation = f"{source_description}: {formula} = €{base_compensation:.2f}"
        if cost_details:
            explanation += f"; minus product cost {cost_details} = €{net_compensation:.2f}"

        log_calcolo(
            data.treatment,
            product,
            source,
            net_compensation,
            invoice_amount=data.invoice_amount,
            vat_included=data.vat_included,
            deducted_cost=deducted,
        )

        return CalculationResult(
            gross_amount=gross,
            net_amount=net,
            base_compensation=base_compensation,
            deducted_cost=deducted,
            net_compensation=net_compensation,
            rule_source=source,
            rule_source_description=source_description,
            formula_description=formula,
            explanation=explanation,
            applied_rule=rule,
            cost_details=cost_details,
        )

    @staticmethod
    def _deduction(
        rule: Rule,
        product: Optional[str],
        quantity: float,
        product_costs: Iterable[ProductCost],
    ) -> Tuple[float, Optional[str]]:
        if not rule.deduct_product_cost or not product:
            return 0.0, None
        pc = next((p for p in product_costs if p.name == product), None)
        if pc is None or pc.exclude_from_deduction:
            return 0.0, None
        unit = f" {pc.unit}" if pc.unit else ""
        return product_cost_deduction(pc.cost, quantity), f"€{pc.cost:.2f} × {quantity:g}{unit}"

    # ------------------------------------------------------------------
    # Batch and what-if
    # ------------------------------------------------------------------

    def calculate_batch(self, inputs: Iterable[CalculationInput]) -> List[CalculationResult]:
        return [self.calculate(i) for i in inputs]

    def analyze_scenarios(
        self,
        base: CalculationInput,
        variations: Union[Mapping[str, Sequence[Any]], Iterable[Tuple[str, Sequence[Any]]]],
    ) -> List[ScenarioResult]:
        """Recompute ``base`` once per (field, value) override.

        ``variations`` maps a ``CalculationInput`` field name to the values
        to try, e.g. ``{"base_rule": [PercentageRule(40), PercentageRule(60)]}``.
        Every other field keeps the value it has in ``base``.
        """
        allowed = {f.name for f in fields(CalculationInput)}
        items = variations.items() if isinstance(variations, Mapping) else variations
        out: List[ScenarioResult] = []
        for field_name, values in items:
            if field_name not in allowed:
                raise ValueError(f"Unknown calculation field: {field_name}")
            for value in values:
                scenario = replace(base, **{field_name: value})
                out.append(ScenarioResult(field=field_name, value=value, result=self.calculate(scenario)))
        return out
