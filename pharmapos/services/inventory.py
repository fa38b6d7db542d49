"""
Inventory ledger.

Seul point d'écriture de `Medicine.stock_quantity`. Aucune fonction ici ne
commit : elles s'exécutent dans la transaction de l'appelant
(services.transactions.run_in_transaction), ce qui rend une vente ou une
annulation tout-ou-rien.

Propriétés :
- verrouillage SQL (FOR UPDATE) dans l'ordre croissant des ids (pas de deadlock)
- décrément gardé : UPDATE ... WHERE stock_quantity >= :qty
- CHECK stock_quantity >= 0 en dernier filet
- une ligne StockMovement par mutation (stock avant / après)
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Iterable

from sqlalchemy import select, update
from sqlalchemy.orm import Session

from pharmapos.app.db.models.models_v1 import Medicine, StockMovement
from pharmapos.app.db.models.core_types import MovementDirection, MovementType
from pharmapos.services.errors import (
    IdempotencyConflictError,
    InsufficientStockError,
    MedicineMissingError,
    MedicineNotFoundError,
    ValidationError,
)

logger = logging.getLogger(__name__)

medicines_table = Medicine.__table__


@dataclass(frozen=True)
class StockRequest:
    medicine_id: int
    quantity: int


def _aggregate(items: Iterable[StockRequest]) -> dict[int, tuple[int, int]]:
    """
    medicine_id -> (quantité totale, index de la première ligne).
    L'ordre d'insertion suit l'ordre de la demande.
    """
    wanted: dict[int, tuple[int, int]] = {}
    for index, item in enumerate(items):
        qty = int(item.quantity)
        if qty <= 0:
            raise ValidationError("Quantity must be at least 1", field=f"items.{index}.quantity")
        mid = int(item.medicine_id)
        total, first = wanted.get(mid, (0, index))
        wanted[mid] = (total + qty, first)
    return wanted


def _lock_medicines(db: Session, medicine_ids: Iterable[int]) -> dict[int, Medicine]:
    rows = (
        db.execute(
            select(Medicine)
            .where(Medicine.id.in_(sorted(set(medicine_ids))))
            .order_by(Medicine.id.asc())
            .with_for_update()
            .execution_options(populate_existing=True)
        )
        .scalars()
        .all()
    )
    return {int(m.id): m for m in rows}


def _current_stock(db: Session, medicine_id: int) -> int | None:
    return db.execute(
        select(Medicine.stock_quantity).where(Medicine.id == medicine_id)
    ).scalar_one_or_none()


def _decrement(db: Session, medicine_id: int, quantity: int) -> int | None:
    return db.execute(
        update(medicines_table)
        .where(medicines_table.c.id == medicine_id)
        .where(medicines_table.c.stock_quantity >= quantity)
        .values(
            stock_quantity=medicines_table.c.stock_quantity - quantity,
            version=medicines_table.c.version + 1,
        )
        .returning(medicines_table.c.stock_quantity)
    ).scalar_one_or_none()


def _increment(db: Session, medicine_id: int, quantity: int) -> int | None:
    return db.execute(
        update(medicines_table)
        .where(medicines_table.c.id == medicine_id)
        .values(
            stock_quantity=medicines_table.c.stock_quantity + quantity,
            version=medicines_table.c.version + 1,
        )
        .returning(medicines_table.c.stock_quantity)
    ).scalar_one_or_none()


def _movement(
    *,
    medicine_id: int,
    movement_type: MovementType,
    direction: MovementDirection,
    quantity: int,
    previous_stock: int,
    new_stock: int,
    actor: str,
    sale_id: int | None = None,
    reason: str | None = None,
    idempotency_key: str | None = None,
) -> StockMovement:
    return StockMovement(
        medicine_id=medicine_id,
        movement_type=movement_type,
        direction=direction,
        quantity=quantity,
        previous_stock=previous_stock,
        new_stock=new_stock,
        sale_id=sale_id,
        reason=reason,
        actor=actor,
        idempotency_key=idempotency_key,
    )


def _find_movement(db: Session, idempotency_key: str) -> StockMovement | None:
    return db.execute(
        select(StockMovement).where(StockMovement.idempotency_key == idempotency_key)
    ).scalar_one_or_none()


# ---------- VENTE ----------
def commit_stock(
    db: Session,
    items: Iterable[StockRequest],
    *,
    actor: str,
    sale_id: int | None = None,
    reason: str | None = None,
) -> list[StockMovement]:
    """
    Décrémente le stock de chaque ligne, tout ou rien.

    Si une seule ligne est insuffisante, rien n'est décrémenté et
    InsufficientStockError nomme le premier médicament en défaut (ordre de
    la demande) avec la quantité disponible.
    """
    wanted = _aggregate(items)
    if not wanted:
        return []

    medicines = _lock_medicines(db, wanted)

    # ---------- VÉRIFICATION (aucune écriture) ----------
    for mid, (qty, index) in wanted.items():
        med = medicines.get(mid)
        if med is None:
            raise MedicineNotFoundError(mid)
        if med.stock_quantity < qty:
            logger.warning(
                "Insufficient stock medicine_id=%s requested=%s available=%s",
                mid,
                qty,
                med.stock_quantity,
            )
            raise InsufficientStockError(
                medicine_id=mid,
                medicine_name=med.name,
                requested=qty,
                available=int(med.stock_quantity),
                index=index,
            )

    # ---------- DÉCRÉMENT GARDÉ ----------
    movements: list[StockMovement] = []
    for mid in sorted(wanted):
        qty, index = wanted[mid]
        new_stock = _decrement(db, mid, qty)
        if new_stock is None:
            # un autre writer a consommé le stock entre la lecture et l'update
            available = _current_stock(db, mid) or 0
            logger.warning(
                "Stock race lost medicine_id=%s requested=%s available=%s",
                mid,
                qty,
                available,
            )
            raise InsufficientStockError(
                medicine_id=mid,
                medicine_name=medicines[mid].name,
                requested=qty,
                available=int(available),
                index=index,
            )

        mv = _movement(
            medicine_id=mid,
            movement_type=MovementType.sale,
            direction=MovementDirection.outbound,
            quantity=qty,
            previous_stock=int(new_stock) + qty,
            new_stock=int(new_stock),
            actor=actor,
            sale_id=sale_id,
            reason=reason,
        )
        db.add(mv)
        movements.append(mv)

    db.flush()
    for med in medicines.values():
        db.expire(med)
    return movements


def restore_stock(
    db: Session,
    items: Iterable[StockRequest],
    *,
    actor: str,
    sale_id: int | None = None,
    reason: str | None = None,
    movement_type: MovementType = MovementType.sale_void,
) -> list[StockMovement]:
    """
    Réincrémente le stock (annulation / remboursement).

    Un médicament disparu est une corruption de données : loggé en ERROR
    et remonté en MedicineMissingError, jamais ignoré.
    """
    wanted = _aggregate(items)
    movements: list[StockMovement] = []

    for mid in sorted(wanted):
        qty, _ = wanted[mid]
        new_stock = _increment(db, mid, qty)
        if new_stock is None:
            logger.error(
                "Stock restore failed: medicine_id=%s missing (sale_id=%s, qty=%s)",
                mid,
                sale_id,
                qty,
            )
            raise MedicineMissingError(mid, sale_id=sale_id)

        mv = _movement(
            medicine_id=mid,
            movement_type=movement_type,
            direction=MovementDirection.inbound,
            quantity=qty,
            previous_stock=int(new_stock) - qty,
            new_stock=int(new_stock),
            actor=actor,
            sale_id=sale_id,
            reason=reason,
        )
        db.add(mv)
        movements.append(mv)

    db.flush()
    for mid in wanted:
        med = db.get(Medicine, mid)
        if med is not None:
            db.expire(med)
    return movements


# ---------- RÉCEPTION / AJUSTEMENT ----------
def receive_stock(
    db: Session,
    medicine_id: int,
    quantity: int,
    *,
    actor: str,
    reason: str | None = None,
    idempotency_key: str | None = None,
) -> StockMovement:
    """Entrée de stock (réception fournisseur, stock d'ouverture)."""
    if idempotency_key:
        existing = _find_movement(db, idempotency_key)
        if existing:
            if (
                existing.movement_type != MovementType.receipt
                or int(existing.medicine_id) != int(medicine_id)
                or int(existing.quantity) != int(quantity)
            ):
                raise IdempotencyConflictError(idempotency_key)
            return existing

    if int(quantity) <= 0:
        raise ValidationError("Quantity must be at least 1", field="quantity")

    new_stock = _increment(db, medicine_id, int(quantity))
    if new_stock is None:
        raise MedicineNotFoundError(medicine_id)

    mv = _movement(
        medicine_id=medicine_id,
        movement_type=MovementType.receipt,
        direction=MovementDirection.inbound,
        quantity=int(quantity),
        previous_stock=int(new_stock) - int(quantity),
        new_stock=int(new_stock),
        actor=actor,
        reason=reason,
        idempotency_key=idempotency_key,
    )
    db.add(mv)
    db.flush()

    med = db.get(Medicine, medicine_id)
    if med is not None:
        db.expire(med)
    return mv


def adjust_stock(
    db: Session,
    medicine_id: int,
    new_quantity: int,
    *,
    actor: str,
    reason: str,
    idempotency_key: str | None = None,
) -> StockMovement | None:
    """
    Correction d'inventaire vers une valeur absolue.
    Retourne None si le stock est déjà à la valeur demandée.
    """
    if idempotency_key:
        existing = _find_movement(db, idempotency_key)
        if existing:
            if (
                existing.movement_type != MovementType.adjustment
                or int(existing.medicine_id) != int(medicine_id)
                or int(existing.new_stock) != int(new_quantity)
            ):
                raise IdempotencyConflictError(idempotency_key)
            return existing

    if int(new_quantity) < 0:
        raise ValidationError("Stock quantity cannot be negative", field="new_quantity")
    if not reason or not reason.strip():
        raise ValidationError("A reason is required for stock adjustments", field="reason")

    med = _lock_medicines(db, [medicine_id]).get(int(medicine_id))
    if med is None:
        raise MedicineNotFoundError(medicine_id)

    previous = int(med.stock_quantity)
    target = int(new_quantity)
    if previous == target:
        return None

    db.execute(
        update(medicines_table)
        .where(medicines_table.c.id == medicine_id)
        .values(stock_quantity=target, version=medicines_table.c.version + 1)
    )

    mv = _movement(
        medicine_id=int(medicine_id),
        movement_type=MovementType.adjustment,
        direction=MovementDirection.inbound if target > previous else MovementDirection.outbound,
        quantity=abs(target - previous),
        previous_stock=previous,
        new_stock=target,
        actor=actor,
        reason=reason.strip(),
        idempotency_key=idempotency_key,
    )
    db.add(mv)
    db.flush()
    db.expire(med)

    logger.warning(
        "Stock adjusted medicine_id=%s from %s to %s (reason=%s)",
        medicine_id,
        previous,
        target,
        reason,
    )
    return mv


# ---------- LECTURE ----------
def get_stock_level(db: Session, medicine_id: int) -> int:
    stock = _current_stock(db, medicine_id)
    if stock is None:
        raise MedicineNotFoundError(medicine_id)
    return int(stock)


def stock_history(db: Session, medicine_id: int, *, limit: int = 50) -> list[StockMovement]:
    return list(
        db.execute(
            select(StockMovement)
            .where(StockMovement.medicine_id == medicine_id)
            .order_by(StockMovement.created_at.desc(), StockMovement.id.desc())
            .limit(limit)
        )
        .scalars()
        .all()
    )


def low_stock_medicines(db: Session) -> list[Medicine]:
    return list(
        db.execute(
            select(Medicine)
            .where(Medicine.active.is_(True))
            .where(Medicine.stock_quantity <= Medicine.reorder_level)
            .order_by(Medicine.stock_quantity.asc(), Medicine.name.asc())
        )
        .scalars()
        .all()
    )
