import re
import sqlite3
from decimal import Decimal

import pytest
from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError

from pharmapos.app.db.models.core_types import (
    DiscountType,
    PaymentMethod,
    SaleStatus,
    TaxBasis,
    TimelineAction,
)
from pharmapos.app.db.models.models_v1 import Sale, SaleItem, StockMovement
from pharmapos.app.schemas.sale import DiscountIn, SaleCreate, SaleItemCreate
from pharmapos.services.errors import (
    DataIntegrityError,
    InsufficientStockError,
    SaleNotFoundError,
    ValidationError,
)
from pharmapos.services.sales import (
    create_sale,
    get_sale,
    get_sale_by_number,
    list_sales,
    recompute_totals,
    totals_match,
)


def _count(db, model) -> int:
    return db.execute(select(func.count()).select_from(model)).scalar_one()


def _payload(*items, **kwargs) -> SaleCreate:
    kwargs.setdefault("payment_method", PaymentMethod.cash)
    return SaleCreate(items=list(items), **kwargs)


def test_create_sale_prices_persists_and_decrements(db_session, make_medicine, stock_of):
    med = make_medicine("Amoxicillin 250mg", unit_price="100.00", stock=10)

    sale = create_sale(
        db_session,
        _payload(
            SaleItemCreate(medicine_id=med.id, quantity=2, discount_percentage=Decimal("10")),
            discount=DiscountIn(type=DiscountType.percentage, value=Decimal("5")),
            tax_rate=Decimal("5"),
            patient_id=42,
            notes="Counter sale",
        ),
        actor="cashier-1",
    )

    assert sale.status == SaleStatus.completed
    assert sale.subtotal == Decimal("200.00")
    assert sale.discount_amount == Decimal("30.00")
    assert sale.tax_amount == Decimal("10.00")
    assert sale.grand_total == Decimal("180.00")
    assert sale.patient_id == 42
    assert sale.created_by == "cashier-1"

    [item] = sale.items
    assert item.quantity == 2
    assert item.unit_price == Decimal("100.00")
    assert item.total_price == Decimal("200.00")
    assert item.discount_amount == Decimal("20.00")

    assert stock_of(med.id) == 8
    [mv] = db_session.execute(select(StockMovement)).scalars().all()
    assert mv.sale_id == sale.id
    assert mv.reason == f"Sale: {sale.sale_id}"

    assert [e.action for e in sale.timeline] == [TimelineAction.created, TimelineAction.completed]


def test_sale_numbers_are_formatted_and_increasing(db_session, make_medicine):
    med = make_medicine(stock=10)

    first = create_sale(db_session, _payload(SaleItemCreate(medicine_id=med.id, quantity=1)), actor="t")
    second = create_sale(db_session, _payload(SaleItemCreate(medicine_id=med.id, quantity=1)), actor="t")

    assert re.fullmatch(r"INV-\d{8}-\d{4}", first.sale_id)
    assert first.sale_id.rsplit("-", 1)[0] == second.sale_id.rsplit("-", 1)[0]
    assert int(second.sale_id[-4:]) == int(first.sale_id[-4:]) + 1


def test_insufficient_stock_rolls_back_everything(db_session, make_medicine, stock_of):
    """
    GIVEN
    - Cetirizine en stock (10), Insulin quasi épuisée (1)
    - un panier 3 x Cetirizine + 2 x Insulin

    THEN
    - InsufficientStockError sur Insulin (ligne 1)
    - aucun stock décrémenté, aucune vente, aucune ligne, aucun mouvement
    """
    plenty = make_medicine("Cetirizine", stock=10)
    scarce = make_medicine("Insulin", stock=1)

    with pytest.raises(InsufficientStockError) as exc:
        create_sale(
            db_session,
            _payload(
                SaleItemCreate(medicine_id=plenty.id, quantity=3),
                SaleItemCreate(medicine_id=scarce.id, quantity=2),
            ),
            actor="t",
        )

    assert exc.value.medicine_id == scarce.id
    assert exc.value.available == 1
    assert exc.value.field == "items.1.quantity"

    assert stock_of(plenty.id) == 10
    assert stock_of(scarce.id) == 1
    assert _count(db_session, Sale) == 0
    assert _count(db_session, SaleItem) == 0
    assert _count(db_session, StockMovement) == 0


def test_persistence_failure_after_stock_commit_rolls_back(db_session, make_medicine, stock_of, monkeypatch):
    """
    GIVEN
    - un stock de 5, une vente de 2 unités
    - une erreur SQL à l'allocation du numéro, APRÈS le décrément de stock

    THEN
    - DataIntegrityError typée (cause : IntegrityError)
    - stock toujours à 5, aucune vente, aucune ligne, aucun mouvement
    """
    med = make_medicine(stock=5)

    def broken_numbering(db, **kwargs):
        raise IntegrityError(
            "INSERT INTO sale_number_series", {}, sqlite3.IntegrityError("UNIQUE constraint failed")
        )

    monkeypatch.setattr("pharmapos.services.sales.next_sale_number", broken_numbering)

    with pytest.raises(DataIntegrityError) as exc:
        create_sale(db_session, _payload(SaleItemCreate(medicine_id=med.id, quantity=2)), actor="t")

    assert isinstance(exc.value.__cause__, IntegrityError)
    assert stock_of(med.id) == 5
    assert _count(db_session, Sale) == 0
    assert _count(db_session, SaleItem) == 0
    assert _count(db_session, StockMovement) == 0


def test_empty_cart_is_rejected_before_any_write(db_session):
    with pytest.raises(ValidationError) as exc:
        create_sale(db_session, _payload(), actor="t")

    assert exc.value.field == "items"
    assert _count(db_session, Sale) == 0


def test_zero_quantity_is_rejected(db_session, make_medicine, stock_of):
    med = make_medicine(stock=5)
    item = SaleItemCreate.model_construct(medicine_id=med.id, quantity=0, discount_percentage=Decimal("0"))

    with pytest.raises(ValidationError) as exc:
        create_sale(db_session, _payload(item), actor="t")

    assert exc.value.field == "items.0.quantity"
    assert stock_of(med.id) == 5


def test_unknown_or_inactive_medicine_is_rejected(db_session, make_medicine):
    retired = make_medicine("Retired", stock=5, active=False)

    with pytest.raises(ValidationError) as exc:
        create_sale(db_session, _payload(SaleItemCreate(medicine_id=98765, quantity=1)), actor="t")
    assert exc.value.field == "items.0.medicine_id"

    with pytest.raises(ValidationError):
        create_sale(db_session, _payload(SaleItemCreate(medicine_id=retired.id, quantity=1)), actor="t")

    assert _count(db_session, Sale) == 0


def test_reloaded_sale_recomputes_identical_totals(db_session, session_factory, make_medicine):
    a = make_medicine("Vitamin C", unit_price="3.35", stock=50)
    b = make_medicine("Saline", unit_price="7.99", stock=50, tax_exempt=True)

    created = create_sale(
        db_session,
        _payload(
            SaleItemCreate(medicine_id=a.id, quantity=7, discount_percentage=Decimal("12.5")),
            SaleItemCreate(medicine_id=b.id, quantity=3),
            discount=DiscountIn(type=DiscountType.fixed, value=Decimal("1.07")),
            tax_rate=Decimal("8.25"),
            tax_basis=TaxBasis.post_discount,
        ),
        actor="t",
    )

    other = session_factory()
    try:
        reloaded = get_sale(other, created.id)
        assert totals_match(reloaded)
        assert recompute_totals(reloaded).grand_total == reloaded.grand_total
        assert reloaded.grand_total == created.grand_total
    finally:
        other.close()


def test_sale_keeps_price_snapshot(db_session, make_medicine):
    med = make_medicine(unit_price="10.00", stock=5)
    sale = create_sale(db_session, _payload(SaleItemCreate(medicine_id=med.id, quantity=1)), actor="t")

    med.unit_price = Decimal("99.00")
    db_session.commit()

    reloaded = get_sale(db_session, sale.id)
    assert reloaded.items[0].unit_price == Decimal("10.00")
    assert reloaded.grand_total == Decimal("10.00")
    assert totals_match(reloaded)


def test_lookup_and_listing(db_session, make_medicine):
    med = make_medicine(stock=10)
    cash = create_sale(db_session, _payload(SaleItemCreate(medicine_id=med.id, quantity=1)), actor="t")
    card = create_sale(
        db_session,
        _payload(SaleItemCreate(medicine_id=med.id, quantity=1), payment_method=PaymentMethod.card, patient_id=7),
        actor="t",
    )

    assert get_sale_by_number(db_session, cash.sale_id).id == cash.id
    assert [s.id for s in list_sales(db_session)] == [card.id, cash.id]
    assert [s.id for s in list_sales(db_session, payment_method=PaymentMethod.card)] == [card.id]
    assert [s.id for s in list_sales(db_session, patient_id=7)] == [card.id]

    with pytest.raises(SaleNotFoundError):
        get_sale(db_session, 12345)
    with pytest.raises(SaleNotFoundError):
        get_sale_by_number(db_session, "INV-19990101-0001")
