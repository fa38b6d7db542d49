"""
Sale transaction.

Orchestre une vente en UNE unit of work :
    validation -> pricing -> commit stock -> numéro -> Sale + SaleItems
    -> timeline "created" / "completed"

Tout échec (validation, stock insuffisant, erreur SQL) rollback tout :
aucune vente, aucune ligne, aucun mouvement de stock ne survit.
"""

from __future__ import annotations

import logging
from datetime import datetime

from sqlalchemy import select
from sqlalchemy.orm import Session, selectinload

from pharmapos.app.core.config import settings
from pharmapos.app.db.models.models_v1 import Medicine, Sale, SaleItem, utcnow
from pharmapos.app.db.models.core_types import (
    PaymentMethod,
    SaleStatus,
    TaxBasis,
    TimelineAction,
)
from pharmapos.app.schemas.sale import SaleCreate
from pharmapos.services.errors import SaleNotFoundError, ValidationError
from pharmapos.services.inventory import StockRequest, commit_stock
from pharmapos.services.money import clamp_percent, money2, to_cents
from pharmapos.services.numbering import next_sale_number
from pharmapos.services.pricing import OrderDiscount, PriceLine, PricingResult, price_sale
from pharmapos.services.timeline import record_event
from pharmapos.services.transactions import run_in_transaction

logger = logging.getLogger(__name__)


def _validate_request(payload: SaleCreate) -> None:
    """Rejet avant toute transaction."""
    if not payload.items:
        raise ValidationError("At least one item is required for the sale.", field="items")

    try:
        PaymentMethod(payload.payment_method)
    except ValueError:
        raise ValidationError("Invalid payment method selected.", field="payment_method") from None

    for index, item in enumerate(payload.items):
        if int(item.quantity) <= 0:
            raise ValidationError("Quantity must be at least 1.", field=f"items.{index}.quantity")


def _load_medicines(db: Session, payload: SaleCreate) -> dict[int, Medicine]:
    ids = {int(item.medicine_id) for item in payload.items}
    rows = (
        db.execute(
            select(Medicine)
            .where(Medicine.id.in_(ids))
            .execution_options(populate_existing=True)
        )
        .scalars()
        .all()
    )
    medicines = {int(m.id): m for m in rows}

    for index, item in enumerate(payload.items):
        med = medicines.get(int(item.medicine_id))
        if med is None:
            raise ValidationError(
                f"Invalid medicine_id {item.medicine_id}",
                field=f"items.{index}.medicine_id",
            )
        if not med.active:
            raise ValidationError(
                f"Medicine {med.name} is not available for sale",
                field=f"items.{index}.medicine_id",
            )
    return medicines


def _price(payload: SaleCreate, medicines: dict[int, Medicine]) -> PricingResult:
    # entrées arrondies à 2 décimales : ce qui est persisté est ce qui est calculé
    lines = [
        PriceLine(
            unit_price=money2(medicines[int(item.medicine_id)].unit_price),
            quantity=int(item.quantity),
            discount_percentage=money2(clamp_percent(item.discount_percentage)),
            taxable=not medicines[int(item.medicine_id)].tax_exempt,
        )
        for item in payload.items
    ]
    tax_rate = payload.tax_rate if payload.tax_rate is not None else settings.DEFAULT_TAX_RATE
    return price_sale(
        lines,
        discount=OrderDiscount(type=payload.discount.type, value=money2(payload.discount.value)),
        tax_rate=money2(clamp_percent(tax_rate)),
        tax_basis=payload.tax_basis or settings.TAX_BASIS,
    )


def create_sale(db: Session, payload: SaleCreate, *, actor: str) -> Sale:
    _validate_request(payload)

    def work() -> int:
        medicines = _load_medicines(db, payload)
        pricing = _price(payload, medicines)

        movements = commit_stock(
            db,
            [StockRequest(int(i.medicine_id), int(i.quantity)) for i in payload.items],
            actor=actor,
        )

        sale = Sale(
            sale_id=next_sale_number(db, doc_date=utcnow().date()),
            patient_id=payload.patient_id,
            payment_method=PaymentMethod(payload.payment_method),
            status=SaleStatus.pending,
            subtotal=pricing.subtotal,
            discount_amount=pricing.discount_amount,
            tax_amount=pricing.tax_amount,
            grand_total=pricing.grand_total,
            discount_type=payload.discount.type,
            discount_value=money2(payload.discount.value),
            tax_rate=money2(pricing.tax_rate),
            tax_basis=pricing.tax_basis,
            notes=payload.notes,
            created_by=actor,
        )
        db.add(sale)
        db.flush()  # sale.id

        for item, line in zip(payload.items, pricing.lines):
            med = medicines[int(item.medicine_id)]
            db.add(
                SaleItem(
                    sale_id=sale.id,
                    medicine_id=med.id,
                    quantity=int(item.quantity),
                    unit_price=money2(med.unit_price),
                    cost_price=money2(med.cost_price),
                    discount_percentage=money2(line.discount_percentage),
                    taxable=line.taxable,
                    discount_amount=line.discount_amount,
                    total_price=line.total_price,
                )
            )

        for mv in movements:
            mv.sale_id = sale.id
            mv.reason = f"Sale: {sale.sale_id}"

        record_event(db, sale, TimelineAction.created, actor=actor)
        sale.status = SaleStatus.completed
        record_event(db, sale, TimelineAction.completed, actor=actor)
        db.flush()
        return int(sale.id)

    sale_pk = run_in_transaction(db, work, operation="create_sale")
    sale = get_sale(db, sale_pk)
    logger.info(
        "Sale %s created: %s items, grand_total=%s, payment=%s, by=%s",
        sale.sale_id,
        len(sale.items),
        sale.grand_total,
        sale.payment_method.value,
        actor,
    )
    return sale


def recompute_totals(sale: Sale) -> PricingResult:
    """Recalcule les totaux à partir des snapshots persistés (aucune relecture du catalogue)."""
    return price_sale(
        [
            PriceLine(
                unit_price=item.unit_price,
                quantity=item.quantity,
                discount_percentage=item.discount_percentage,
                taxable=item.taxable,
            )
            for item in sale.items
        ],
        discount=OrderDiscount(type=sale.discount_type, value=sale.discount_value),
        tax_rate=sale.tax_rate,
        tax_basis=TaxBasis(sale.tax_basis),
    )


# ---------- LECTURE ----------
def _sale_query():
    return select(Sale).options(selectinload(Sale.items), selectinload(Sale.timeline))


def get_sale(db: Session, sale_id: int) -> Sale:
    sale = (
        db.execute(_sale_query().where(Sale.id == sale_id).execution_options(populate_existing=True))
        .scalars()
        .first()
    )
    if not sale:
        raise SaleNotFoundError(sale_id)
    return sale


def get_sale_by_number(db: Session, sale_number: str) -> Sale:
    sale = (
        db.execute(_sale_query().where(Sale.sale_id == sale_number).execution_options(populate_existing=True))
        .scalars()
        .first()
    )
    if not sale:
        raise SaleNotFoundError(sale_number)
    return sale


def list_sales(
    db: Session,
    *,
    status: SaleStatus | None = None,
    payment_method: PaymentMethod | None = None,
    patient_id: int | None = None,
    date_from: datetime | None = None,
    date_to: datetime | None = None,
    limit: int = 50,
    offset: int = 0,
) -> list[Sale]:
    stmt = select(Sale).order_by(Sale.id.desc())

    if status is not None:
        stmt = stmt.where(Sale.status == status)
    if payment_method is not None:
        stmt = stmt.where(Sale.payment_method == payment_method)
    if patient_id is not None:
        stmt = stmt.where(Sale.patient_id == patient_id)
    if date_from is not None:
        stmt = stmt.where(Sale.created_at >= date_from)
    if date_to is not None:
        stmt = stmt.where(Sale.created_at < date_to)

    return list(db.execute(stmt.limit(limit).offset(offset)).scalars().all())


def totals_match(sale: Sale) -> bool:
    """Vrai si les montants persistés sont ceux que redonne le moteur de prix."""
    result = recompute_totals(sale)
    return (
        to_cents(sale.subtotal) == result.subtotal_cents
        and to_cents(sale.discount_amount) == result.discount_cents
        and to_cents(sale.tax_amount) == result.tax_cents
        and to_cents(sale.grand_total) == result.grand_total_cents
    )
