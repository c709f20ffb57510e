# Overview: Pure challan totals calculation; decimal arithmetic with half-up rounding.

from __future__ import annotations

from dataclasses import dataclass, asdict
from decimal import Decimal, ROUND_HALF_UP, InvalidOperation

"""
Totals rules (authoritative)

- items_subtotal = sum(rate * qty), assembly_total = sum(assembly_charge * qty),
  each rounded to 2 decimals after summation
- pre_discount_subtotal = items + assembly + packaging_charges_overall
- discount_pct clamped to [0, 100]; discount_amount = pre_discount * pct / 100
- taxable_subtotal = pre_discount - discount
- GST at 5% unless tax_type == NON_GST
- grand_total = taxable + GST rounded to the nearest rupee (half-up);
  round_off = grand_total - total_before_round (signed)

Decimal, never float: a float sum of 0.1 + 0.2 drifts, a Decimal one does not.
"""

CENT = Decimal("0.01")
ONE = Decimal("1")
HUNDRED = Decimal("100")
GST_RATE = Decimal("0.05")


def to_decimal(value, field: str = "value") -> Decimal:
    """Coerce int/float/str/Decimal/None to Decimal (None and "" mean 0)."""
    if value is None or value == "":
        return Decimal(0)
    if isinstance(value, Decimal):
        return value
    if isinstance(value, bool):
        raise ValueError(f"{field} must be a number")
    try:
        # str() first so 0.1 becomes Decimal("0.1"), not its binary expansion
        result = Decimal(str(value)) if isinstance(value, float) else Decimal(value)
    except (InvalidOperation, TypeError, ValueError):
        raise ValueError(f"{field} must be a number")
    if not result.is_finite():
        raise ValueError(f"{field} must be a finite number")
    return result


def round2(value: Decimal) -> Decimal:
    return value.quantize(CENT, rounding=ROUND_HALF_UP)


def to_paise(value: Decimal) -> int:
    return int((round2(value) * 100).to_integral_value(rounding=ROUND_HALF_UP))


@dataclass(frozen=True)
class Totals:
    items_subtotal: Decimal
    assembly_total: Decimal
    packaging_charges: Decimal
    pre_discount_subtotal: Decimal
    discount_pct: Decimal
    discount_amount: Decimal
    taxable_subtotal: Decimal
    gst_rate: Decimal  # percent: 0 or 5
    gst_amount: Decimal
    total_before_round: Decimal
    round_off: Decimal
    grand_total: Decimal
    tax_type: str

    def to_dict(self) -> dict:
        data = asdict(self)
        return {k: (str(v) if isinstance(v, Decimal) else v) for k, v in data.items()}

    def to_paise(self) -> dict:
        """Column values for Challan (money in paise, percentages in basis points)."""
        return {
            "items_subtotal_paise": to_paise(self.items_subtotal),
            "assembly_total_paise": to_paise(self.assembly_total),
            "packaging_charges_paise": to_paise(self.packaging_charges),
            "pre_discount_subtotal_paise": to_paise(self.pre_discount_subtotal),
            "discount_bps": to_paise(self.discount_pct),
            "discount_amount_paise": to_paise(self.discount_amount),
            "taxable_subtotal_paise": to_paise(self.taxable_subtotal),
            "gst_rate_bps": to_paise(self.gst_rate),
            "gst_amount_paise": to_paise(self.gst_amount),
            "total_before_round_paise": to_paise(self.total_before_round),
            "round_off_paise": to_paise(self.round_off),
            "grand_total_paise": to_paise(self.grand_total),
        }


def _field(item, *names):
    for name in names:
        if isinstance(item, dict):
            if name in item:
                return item[name]
        elif hasattr(item, name):
            return getattr(item, name)
    return None


def compute_totals(
    items,
    *,
    packaging_charges_overall=0,
    discount_pct=0,
    tax_type: str = "GST",
) -> Totals:
    """
    Turn priced line items plus global charges into a rounded taxable total.

    items: iterable of dicts/objects with rate, assembly_charge (or
    assemblyCharge) and quantity. Missing values count as 0.
    """
    items_subtotal = Decimal(0)
    assembly_total = Decimal(0)

    for item in items or []:
        rate = to_decimal(_field(item, "rate"), "rate")
        assembly = to_decimal(_field(item, "assembly_charge", "assemblyCharge"), "assembly_charge")
        qty = to_decimal(_field(item, "quantity"), "quantity")
        items_subtotal += rate * qty
        assembly_total += assembly * qty

    items_subtotal = round2(items_subtotal)
    assembly_total = round2(assembly_total)
    packaging = round2(to_decimal(packaging_charges_overall, "packaging_charges_overall"))

    pre_discount = round2(items_subtotal + assembly_total + packaging)

    pct = min(max(to_decimal(discount_pct, "discount_pct"), Decimal(0)), HUNDRED)
    discount_amount = round2(pre_discount * pct / HUNDRED)

    taxable = round2(pre_discount - discount_amount)

    gst_rate = Decimal(0) if tax_type == "NON_GST" else GST_RATE
    gst_amount = round2(taxable * gst_rate)

    total_before_round = round2(taxable + gst_amount)
    grand_total = total_before_round.quantize(ONE, rounding=ROUND_HALF_UP)
    round_off = round2(grand_total - total_before_round)

    return Totals(
        items_subtotal=items_subtotal,
        assembly_total=assembly_total,
        packaging_charges=packaging,
        pre_discount_subtotal=pre_discount,
        discount_pct=pct,
        discount_amount=discount_amount,
        taxable_subtotal=taxable,
        gst_rate=gst_rate * HUNDRED,
        gst_amount=gst_amount,
        total_before_round=total_before_round,
        round_off=round_off,
        grand_total=grand_total,
        tax_type=tax_type,
    )
