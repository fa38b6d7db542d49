"""
Pricing engine.

Calcul pur (aucune I/O) des totaux d'une vente à partir des lignes et de
la configuration remise / taxe.

Règle métier :
    subtotal       = SUM(unit_price * quantity)
    item_discount  = SUM(line_total * pct / 100)
    order_discount = subtotal * value / 100 (percentage) | value (fixed),
                     borné à [0, subtotal]
    tax            = base_taxable * tax_rate / 100
    grand_total    = max(0, subtotal - item_discount - order_discount) + tax

Toute l'arithmétique se fait en centimes entiers ; chaque pourcentage est
arrondi au centime (half-up) au moment où il est calculé. La conversion en
Decimal à 2 décimales n'a lieu qu'aux frontières (persistance, affichage).
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal
from typing import Sequence

from pharmapos.app.db.models.core_types import DiscountType, TaxBasis
from pharmapos.services.errors import ValidationError
from pharmapos.services.money import D, clamp_percent, from_cents, percent_of, to_cents


@dataclass(frozen=True)
class PriceLine:
    unit_price: Decimal
    quantity: int
    discount_percentage: Decimal = Decimal("0")
    taxable: bool = True


@dataclass(frozen=True)
class OrderDiscount:
    type: DiscountType = DiscountType.fixed
    value: Decimal = Decimal("0")


@dataclass(frozen=True)
class LineBreakdown:
    line_total_cents: int
    discount_cents: int
    discount_percentage: Decimal
    taxable: bool

    @property
    def total_price(self) -> Decimal:
        return from_cents(self.line_total_cents)

    @property
    def discount_amount(self) -> Decimal:
        return from_cents(self.discount_cents)


@dataclass(frozen=True)
class PricingResult:
    lines: tuple[LineBreakdown, ...]
    subtotal_cents: int
    item_discount_cents: int
    order_discount_cents: int
    taxable_cents: int
    tax_cents: int
    tax_rate: Decimal
    tax_basis: TaxBasis

    @property
    def discount_cents(self) -> int:
        return self.item_discount_cents + self.order_discount_cents

    @property
    def grand_total_cents(self) -> int:
        return max(0, self.subtotal_cents - self.discount_cents) + self.tax_cents

    # --- frontières (Decimal 2 décimales) ---
    @property
    def subtotal(self) -> Decimal:
        return from_cents(self.subtotal_cents)

    @property
    def discount_amount(self) -> Decimal:
        return from_cents(self.discount_cents)

    @property
    def tax_amount(self) -> Decimal:
        return from_cents(self.tax_cents)

    @property
    def grand_total(self) -> Decimal:
        return from_cents(self.grand_total_cents)


def _order_discount_cents(subtotal_cents: int, discount: OrderDiscount) -> int:
    if discount.type == DiscountType.percentage:
        amount = percent_of(subtotal_cents, clamp_percent(discount.value))
    else:
        amount = to_cents(discount.value)
    return min(max(amount, 0), subtotal_cents)


def price_sale(
    lines: Sequence[PriceLine],
    *,
    discount: OrderDiscount | None = None,
    tax_rate=0,
    tax_basis: TaxBasis = TaxBasis.pre_discount,
) -> PricingResult:
    discount = discount or OrderDiscount()
    rate = clamp_percent(tax_rate)

    breakdown: list[LineBreakdown] = []
    for index, line in enumerate(lines):
        if int(line.quantity) <= 0:
            raise ValidationError("Quantity must be at least 1", field=f"items.{index}.quantity")
        unit_cents = to_cents(line.unit_price)
        if unit_cents < 0:
            raise ValidationError("Unit price cannot be negative", field=f"items.{index}.unit_price")

        pct = clamp_percent(line.discount_percentage)
        line_total = unit_cents * int(line.quantity)
        breakdown.append(
            LineBreakdown(
                line_total_cents=line_total,
                discount_cents=percent_of(line_total, pct),
                discount_percentage=pct,
                taxable=bool(line.taxable),
            )
        )

    subtotal = sum(b.line_total_cents for b in breakdown)
    item_discount = sum(b.discount_cents for b in breakdown)
    order_discount = _order_discount_cents(subtotal, discount)

    taxable_subtotal = sum(b.line_total_cents for b in breakdown if b.taxable)
    if tax_basis == TaxBasis.post_discount:
        taxable_item_discount = sum(b.discount_cents for b in breakdown if b.taxable)
        # part de la remise globale au prorata du taxable
        share = percent_of(order_discount, D(taxable_subtotal) * 100 / subtotal) if subtotal else 0
        taxable = max(0, taxable_subtotal - taxable_item_discount - share)
    else:
        taxable = taxable_subtotal

    return PricingResult(
        lines=tuple(breakdown),
        subtotal_cents=subtotal,
        item_discount_cents=item_discount,
        order_discount_cents=order_discount,
        taxable_cents=taxable,
        tax_cents=percent_of(taxable, rate),
        tax_rate=rate,
        tax_basis=TaxBasis(tax_basis),
    )
