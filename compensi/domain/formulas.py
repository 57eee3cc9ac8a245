"""
Compensation formulas.

These functions implement the arithmetic behind each rule kind. Given
the amount the rule applies to (net or gross of VAT) and the rule's
parameters they return the compensation owed to the doctor. The
`describe_*` companions render the human-readable formula shown next
to each result.

All functions are pure: they depend solely on their inputs and do
not modify any external state. This makes them safe to unit test
individually. Parameter validity is checked upstream by the validator;
here the parameters are assumed to be present.
"""

from typing import Tuple, Union

from compensi.config import DEFAULTS

Number = Union[int, float]


def split_vat(invoice_amount: Number, vat_included: bool) -> Tuple[float, float]:
    """Return ``(gross, net)`` for an invoice amount.

    The VAT rate is fixed (22%): when the amount includes VAT the net
    amount is ``amount / 1.22``, otherwise gross and net coincide.
    """
    gross = float(invoice_amount)
    net = gross / DEFAULTS.vat_divisor if vat_included else gross
    return gross, net


def percentage_compensation(amount: Number, value: Number) -> float:
    """Compensation = ``value``% of ``amount``."""
    return float(amount) * float(value) / 100.0


def tiered_compensation(amount: Number, threshold_x: Number, threshold_y: Number) -> float:
    """Two-bracket ("scaglioni") compensation.

    The whole amount passes through up to ``threshold_x``; beyond it only
    ``threshold_y``% of the excess is due:

        amount <= x  ->  amount
        amount >  x  ->  x + (amount - x) * y / 100

    Both branches meet at ``amount == x``.
    """
    amount = float(amount)
    x = float(threshold_x)
    if amount <= x:
        return amount
    return x + (amount - x) * float(threshold_y) / 100.0


def fixed_compensation(amount: Number, threshold_x: Number, threshold_y: Union[Number, None] = None) -> float:
    """Flat compensation, optionally floored against a percentage.

    With a positive ``threshold_y`` the result is the greater of the flat
    amount ``threshold_x`` and ``threshold_y``% of ``amount``; otherwise
    it is ``threshold_x`` whatever the amount.
    """
    x = float(threshold_x)
    if threshold_y is not None and float(threshold_y) > 0:
        return max(x, percentage_compensation(amount, threshold_y))
    return x


def _num(v: Number) -> str:
    # 50.0 -> "50", 12.5 -> "12.5"
    return f"{float(v):g}"


def describe_percentage(amount: Number, value: Number) -> str:
    return f"{_num(value)}% of €{float(amount):.2f}"


def describe_tiered(amount: Number, threshold_x: Number, threshold_y: Number) -> str:
    if float(amount) <= float(threshold_x):
        return f"100% up to €{_num(threshold_x)}"
    return f"100% up to €{_num(threshold_x)}, then {_num(threshold_y)}% on the excess"


def describe_fixed(amount: Number, threshold_x: Number, threshold_y: Union[Number, None] = None) -> str:
    if threshold_y is not None and float(threshold_y) > 0:
        pct = percentage_compensation(amount, threshold_y)
        return f"greater of €{_num(threshold_x)} and {_num(threshold_y)}% (€{pct:.2f})"
    return f"flat €{_num(threshold_x)}"


def product_cost_deduction(unit_cost: Number, quantity: Number) -> float:
    """Cost deducted for ``quantity`` units of a product."""
    return float(unit_cost) * float(quantity)
