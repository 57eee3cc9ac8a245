"""
Rule validation.

Two independent kinds of checks live here:

- ``is_valid`` decides whether a single rule has a well-defined formula.
  It is the only check that blocks saving a rule and the calculator refuses
  to compute with a rule that fails it.
- ``validate_coherence`` inspects a doctor's whole configuration (base
  rule, exceptions, product costs) and returns advisory
  :class:`ValidationWarning` records. It never raises.
"""

from __future__ import annotations

from collections import OrderedDict
from typing import Dict, Iterable, List, Optional, Sequence

from compensi.domain.models import (
    SEVERITY_ERROR,
    SEVERITY_INFO,
    SEVERITY_WARNING,
    WARNING_CONFLICT,
    WARNING_IDENTICAL,
    WARNING_MISSING_PRODUCT_COST,
    WARNING_MORE_GENEROUS,
    WARNING_UNUSED_COST,
    WARNING_ZERO_COST,
    FixedRule,
    PercentageRule,
    ProductCost,
    Rule,
    RULE_BASES,
    TieredRule,
    TreatmentException,
    ValidationWarning,
)


class RuleValidator:
    """Stateless checks over rules and rule sets."""

    # ------------------------------------------------------------------
    # Single rule
    # ------------------------------------------------------------------

    def is_valid(self, rule: Rule) -> bool:
        """Return True when ``rule`` satisfies the bounds of its kind.

        - percentage: ``0 <= value <= 100``
        - tiered: ``threshold_x >= 0``, ``threshold_y > 0`` (x is an amount, y a
          percentage: the two are not compared)
        - fixed: ``threshold_x >= 0``; ``threshold_y`` absent or ``>= 0``
          (zero means "no percentage floor")
        """
        if getattr(rule, "base", None) not in RULE_BASES:
            return False
        if isinstance(rule, PercentageRule):
            return rule.value is not None and 0 <= rule.value <= 100
        if isinstance(rule, TieredRule):
            return (
                rule.threshold_x is not None
                and rule.threshold_x >= 0
                and rule.threshold_y is not None
                and rule.threshold_y > 0
            )
        if isinstance(rule, FixedRule):
            if rule.threshold_x is None or not rule.threshold_x >= 0:
                return False
            return rule.threshold_y is None or rule.threshold_y >= 0
        return False

    def rules_identical(self, a: Rule, b: Rule) -> bool:
        """Same kind, base, deduction flag and kind-specific values."""
        # dataclass equality compares the class first, then every field
        return a == b

    # ------------------------------------------------------------------
    # Whole configuration
    # ------------------------------------------------------------------

    def validate_coherence(
        self,
        base_rule: Rule,
        exceptions: Sequence[TreatmentException],
        product_costs: Sequence[ProductCost],
    ) -> List[ValidationWarning]:
        warnings: List[ValidationWarning] = []
        warnings.extend(self._check_exceptions(base_rule, exceptions))
        warnings.extend(self._check_exception_conflicts(exceptions))
        warnings.extend(self._check_product_costs(base_rule, exceptions, product_costs))
        return warnings

    def _check_exceptions(
        self, base_rule: Rule, exceptions: Iterable[TreatmentException]
    ) -> List[ValidationWarning]:
        warnings: List[ValidationWarning] = []
        for exc in exceptions:
            if self.rules_identical(exc.rule, base_rule):
                warnings.append(ValidationWarning(
                    kind=WARNING_IDENTICAL,
                    message=f'The exception for "{exc.label}" is identical to the base rule',
                    severity=SEVERITY_WARNING,
                    related_exception=exc,
                ))

            if isinstance(exc.rule, PercentageRule) and isinstance(base_rule, PercentageRule):
                exc_value = exc.rule.value or 0
                base_value = base_rule.value or 0
                if exc_value > base_value:
                    warnings.append(ValidationWarning(
                        kind=WARNING_MORE_GENEROUS,
                        message=(
                            f'The exception for "{exc.label}" pays a higher percentage than '
                            f'the base rule ({exc_value:g}% vs {base_value:g}%)'
                        ),
                        severity=SEVERITY_INFO,
                        related_exception=exc,
                    ))

            if not self.is_valid(exc.rule):
                warnings.append(ValidationWarning(
                    kind=WARNING_CONFLICT,
                    message=f'The exception for "{exc.label}" has invalid values',
                    severity=SEVERITY_ERROR,
                    related_exception=exc,
                ))
        return warnings

    def _check_exception_conflicts(self, exceptions: Iterable[TreatmentException]) -> List[ValidationWarning]:
        warnings: List[ValidationWarning] = []
        by_treatment: Dict[str, List[TreatmentException]] = OrderedDict()
        for exc in exceptions:
            by_treatment.setdefault(exc.treatment, []).append(exc)

        for treatment, group in by_treatment.items():
            generic = [e for e in group if not e.product]
            if len(generic) > 1:
                warnings.append(ValidationWarning(
                    kind=WARNING_CONFLICT,
                    message=f'There are {len(generic)} generic exceptions for treatment "{treatment}"',
                    severity=SEVERITY_ERROR,
                    details={"treatment": treatment, "exceptions": [e.id for e in generic]},
                ))

            per_product: Dict[str, List[TreatmentException]] = OrderedDict()
            for e in group:
                if e.product:
                    per_product.setdefault(e.product, []).append(e)
            for product, dupes in per_product.items():
                if len(dupes) > 1:
                    warnings.append(ValidationWarning(
                        kind=WARNING_CONFLICT,
                        message=f'There are {len(dupes)} exceptions for "{treatment} + {product}"',
                        severity=SEVERITY_ERROR,
                        details={"treatment": treatment, "product": product, "count": len(dupes)},
                    ))
        return warnings

    def _check_product_costs(
        self,
        base_rule: Rule,
        exceptions: Iterable[TreatmentException],
        product_costs: Sequence[ProductCost],
    ) -> List[ValidationWarning]:
        warnings: List[ValidationWarning] = []

        # prodotti referenziati da eccezioni che detraggono il costo (ordine di comparsa)
        referenced: Dict[str, None] = OrderedDict()
        for exc in exceptions:
            if exc.product and exc.rule.deduct_product_cost:
                referenced[exc.product] = None

        costs_by_name = {pc.name: pc for pc in product_costs}
        for name in referenced:
            pc = costs_by_name.get(name)
            if pc is None:
                warnings.append(ValidationWarning(
                    kind=WARNING_MISSING_PRODUCT_COST,
                    message=(
                        f'Product "{name}" is referenced by an exception that deducts '
                        f'product cost but has no configured cost'
                    ),
                    severity=SEVERITY_ERROR,
                    details={"product": name},
                ))
            elif pc.cost == 0 and not pc.exclude_from_deduction:
                warnings.append(ValidationWarning(
                    kind=WARNING_ZERO_COST,
                    message=f'Product "{name}" costs €0 but deduction is active',
                    severity=SEVERITY_WARNING,
                    details={"product": name},
                ))

        if base_rule.deduct_product_cost:
            for pc in product_costs:
                if pc.cost > 0 and pc.name not in referenced:
                    warnings.append(ValidationWarning(
                        kind=WARNING_UNUSED_COST,
                        message=(
                            f'Product "{pc.name}" has a configured cost (€{pc.cost:g}) '
                            f'but is not used by any specific exception'
                        ),
                        severity=SEVERITY_INFO,
                        details={"product": pc.name, "cost": pc.cost},
                    ))
        return warnings

    # ------------------------------------------------------------------
    # Suggestions and sanitizing helpers for the editor
    # ------------------------------------------------------------------

    def find_similar_exceptions(self, exceptions: Sequence[TreatmentException]) -> List[List[TreatmentException]]:
        """Group exceptions sharing an identical rule (groups of two or more)."""
        groups: List[List[TreatmentException]] = []
        seen: set = set()
        for i, first in enumerate(exceptions):
            if i in seen:
                continue
            group = [first]
            seen.add(i)
            for j in range(i + 1, len(exceptions)):
                if j not in seen and self.rules_identical(first.rule, exceptions[j].rule):
                    group.append(exceptions[j])
                    seen.add(j)
            if len(group) > 1:
                groups.append(group)
        return groups

    def suggest_optimizations(self, base_rule: Rule, exceptions: Sequence[TreatmentException]) -> List[str]:
        suggestions: List[str] = []
        similar = self.find_similar_exceptions(exceptions)
        if similar:
            joined = "; ".join(", ".join(e.label for e in group) for group in similar)
            suggestions.append(f"Consider grouping exceptions with identical rules: {joined}")
        if isinstance(base_rule, FixedRule) and base_rule.threshold_y:
            suggestions.append(
                "The base rule is a flat amount with a percentage floor; "
                "consider whether a simpler rule would be enough."
            )
        return suggestions

    @staticmethod
    def clamp_value(value: Optional[float], minimum: float, maximum: float) -> float:
        if value is None:
            return minimum
        return min(maximum, max(minimum, value))

    def sanitize_percentage(self, value: Optional[float]) -> float:
        if value is None:
            return 0.0
        return self.clamp_value(value, 0.0, 100.0)

    @staticmethod
    def sanitize_positive(value: Optional[float], minimum: float = 0.0) -> float:
        if value is None:
            return minimum
        return max(minimum, value)
