"""
Void workflow.

Transition compensatoire pending|completed -> cancelled (void) ou
-> refunded (refund), dans UNE transaction locale :
    verrou vente -> update de statut gardé -> restore stock -> timeline

Tout échec laisse la vente dans son état précédent. Rejouer un void sur une
vente déjà annulée échoue toujours (InvalidTransitionError), sans effet.
"""

from __future__ import annotations

import logging

from sqlalchemy import select, update
from sqlalchemy.orm import Session

from pharmapos.app.db.models.models_v1 import Sale, SaleItem, utcnow
from pharmapos.app.db.models.core_types import (
    ALLOWED_TRANSITIONS,
    MovementType,
    SaleStatus,
    TimelineAction,
    VOIDABLE_STATUSES,
)
from pharmapos.services.errors import InvalidTransitionError, SaleNotFoundError, ValidationError
from pharmapos.services.inventory import StockRequest, restore_stock
from pharmapos.services.sales import get_sale
from pharmapos.services.timeline import record_event
from pharmapos.services.transactions import run_in_transaction

logger = logging.getLogger(__name__)

sales_table = Sale.__table__

_COMPENSATIONS = {
    SaleStatus.cancelled: (TimelineAction.voided, MovementType.sale_void, "Sale voided"),
    SaleStatus.refunded: (TimelineAction.refunded, MovementType.sale_refund, "Sale refunded"),
}


def _lock_sale(db: Session, sale_id: int) -> Sale:
    sale = (
        db.execute(
            select(Sale)
            .where(Sale.id == sale_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        )
        .scalars()
        .first()
    )
    if not sale:
        raise SaleNotFoundError(sale_id)
    return sale


def _transition(
    db: Session,
    sale_id: int,
    target: SaleStatus,
    *,
    reason: str,
    actor: str,
) -> Sale:
    if not reason or not reason.strip():
        raise ValidationError("A reason is required to void a sale.", field="reason")
    reason = reason.strip()
    action, movement_type, label = _COMPENSATIONS[target]

    def work() -> None:
        sale = _lock_sale(db, sale_id)
        current = SaleStatus(sale.status)
        if current not in VOIDABLE_STATUSES or target not in ALLOWED_TRANSITIONS[current]:
            raise InvalidTransitionError(sale_id=sale_id, current=current.value, target=target.value)

        # Update gardé : deux annulations concurrentes ne peuvent pas réussir toutes les deux
        changed = db.execute(
            update(sales_table)
            .where(sales_table.c.id == sale_id)
            .where(sales_table.c.status.in_(list(VOIDABLE_STATUSES)))
            .values(
                status=target,
                void_reason=reason,
                voided_by=actor,
                voided_at=utcnow(),
                version=sales_table.c.version + 1,
            )
        ).rowcount
        if changed != 1:
            fresh = db.execute(select(Sale.status).where(Sale.id == sale_id)).scalar_one()
            raise InvalidTransitionError(sale_id=sale_id, current=SaleStatus(fresh).value, target=target.value)

        items = db.execute(select(SaleItem).where(SaleItem.sale_id == sale_id)).scalars().all()
        restore_stock(
            db,
            [StockRequest(int(i.medicine_id), int(i.quantity)) for i in items],
            actor=actor,
            sale_id=sale_id,
            reason=f"{label}: {sale.sale_id}",
            movement_type=movement_type,
        )

        record_event(db, sale, action, actor=actor, reason=reason)

    run_in_transaction(db, work, operation=f"{action.value}_sale")
    sale = get_sale(db, sale_id)
    logger.info("Sale %s %s by %s (reason=%s)", sale.sale_id, target.value, actor, reason)
    return sale


def void_sale(db: Session, sale_id: int, *, reason: str, actor: str) -> Sale:
    return _transition(db, sale_id, SaleStatus.cancelled, reason=reason, actor=actor)


def refund_sale(db: Session, sale_id: int, *, reason: str, actor: str) -> Sale:
    return _transition(db, sale_id, SaleStatus.refunded, reason=reason, actor=actor)
