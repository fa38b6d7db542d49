from decimal import Decimal

import pytest

from pharmapos.app.db.models.core_types import DiscountType, TaxBasis
from pharmapos.services.errors import ValidationError
from pharmapos.services.pricing import OrderDiscount, PriceLine, price_sale


def test_reference_example_grand_total_180():
    """
    unit_price=100, qty=2 (200), remise ligne 10% (20), remise globale 5% (10),
    taxe 5% du sous-total (10) -> total_discount=30, grand_total=180
    """
    result = price_sale(
        [PriceLine(unit_price=Decimal("100"), quantity=2, discount_percentage=Decimal("10"))],
        discount=OrderDiscount(type=DiscountType.percentage, value=Decimal("5")),
        tax_rate=Decimal("5"),
    )

    assert result.subtotal == Decimal("200.00")
    assert result.discount_amount == Decimal("30.00")
    assert result.tax_amount == Decimal("10.00")
    assert result.grand_total == Decimal("180.00")


def test_line_totals_sum_to_subtotal():
    lines = [
        PriceLine(unit_price=Decimal("2.50"), quantity=3),
        PriceLine(unit_price=Decimal("8.90"), quantity=1, discount_percentage=Decimal("15")),
        PriceLine(unit_price=Decimal("0.10"), quantity=7),
    ]
    result = price_sale(lines, tax_rate=Decimal("7.5"))

    assert sum(line.line_total_cents for line in result.lines) == result.subtotal_cents
    assert sum((line.total_price for line in result.lines), Decimal("0")) == result.subtotal


def test_fixed_point_avoids_float_drift():
    # 0.10 * 3 = 0.30 exactement (en float : 0.30000000000000004)
    result = price_sale([PriceLine(unit_price=Decimal("0.10"), quantity=3)])
    assert result.subtotal_cents == 30
    assert result.grand_total == Decimal("0.30")


def test_percentages_round_half_up_to_the_cent():
    # 3.35 * 10% = 0.335 -> 0.34
    result = price_sale(
        [PriceLine(unit_price=Decimal("3.35"), quantity=1, discount_percentage=Decimal("10"))]
    )
    assert result.item_discount_cents == 34


def test_fixed_discount_clamped_to_subtotal_and_total_never_negative():
    result = price_sale(
        [PriceLine(unit_price=Decimal("10"), quantity=1)],
        discount=OrderDiscount(type=DiscountType.fixed, value=Decimal("50")),
        tax_rate=Decimal("10"),
    )

    assert result.order_discount_cents == 1000
    # taxe calculée sur le sous-total avant remise
    assert result.grand_total == Decimal("1.00")


def test_stacked_discounts_floor_at_zero():
    result = price_sale(
        [PriceLine(unit_price=Decimal("10"), quantity=2, discount_percentage=Decimal("100"))],
        discount=OrderDiscount(type=DiscountType.percentage, value=Decimal("50")),
    )

    assert result.discount_cents > result.subtotal_cents
    assert result.grand_total_cents == 0


@pytest.mark.parametrize(
    "pct, expected_discount_cents",
    [
        (Decimal("-5"), 0),
        (Decimal("150"), 1000),
    ],
)
def test_item_discount_percentage_is_clamped(pct, expected_discount_cents):
    result = price_sale([PriceLine(unit_price=Decimal("10"), quantity=1, discount_percentage=pct)])
    assert result.item_discount_cents == expected_discount_cents


def test_order_percentage_and_tax_rate_are_clamped():
    result = price_sale(
        [PriceLine(unit_price=Decimal("10"), quantity=1)],
        discount=OrderDiscount(type=DiscountType.percentage, value=Decimal("250")),
        tax_rate=Decimal("-3"),
    )
    assert result.order_discount_cents == 1000
    assert result.tax_cents == 0


@pytest.mark.parametrize("qty", [0, -1])
def test_non_positive_quantity_rejected(qty):
    with pytest.raises(ValidationError) as exc:
        price_sale([PriceLine(unit_price=Decimal("10"), quantity=qty)])
    assert exc.value.field == "items.0.quantity"


def test_post_discount_tax_basis():
    result = price_sale(
        [PriceLine(unit_price=Decimal("100"), quantity=2, discount_percentage=Decimal("10"))],
        discount=OrderDiscount(type=DiscountType.percentage, value=Decimal("5")),
        tax_rate=Decimal("5"),
        tax_basis=TaxBasis.post_discount,
    )

    # base taxable = 200 - 30 = 170 -> taxe 8.50
    assert result.tax_amount == Decimal("8.50")
    assert result.grand_total == Decimal("178.50")


def test_tax_exempt_lines_do_not_carry_tax():
    result = price_sale(
        [
            PriceLine(unit_price=Decimal("100"), quantity=1),
            PriceLine(unit_price=Decimal("50"), quantity=1, taxable=False),
        ],
        tax_rate=Decimal("10"),
    )

    assert result.subtotal == Decimal("150.00")
    assert result.taxable_cents == 10000
    assert result.tax_amount == Decimal("10.00")
    assert result.grand_total == Decimal("160.00")


def test_empty_cart_prices_to_zero():
    result = price_sale([], discount=OrderDiscount(type=DiscountType.fixed, value=Decimal("5")))
    assert result.subtotal_cents == 0
    assert result.grand_total_cents == 0
