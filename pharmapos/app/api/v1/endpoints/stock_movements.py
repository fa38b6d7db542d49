from __future__ import annotations

from fastapi import APIRouter, Depends, Header, HTTPException, Query
from sqlalchemy.orm import Session

from pharmapos.app.api.deps import get_actor, get_db
from pharmapos.app.db.models.models_v1 import StockMovement
from pharmapos.app.schemas.stock_movement import StockAdjust, StockMovementRead, StockReceive
from pharmapos.services.inventory import adjust_stock, get_stock_level, receive_stock, stock_history
from pharmapos.services.transactions import run_in_transaction

router = APIRouter(prefix="/stock-movements")


# ---------- Helpers ----------
def _require_idempotency_key(idempotency_key: str | None) -> str:
    if not idempotency_key or not idempotency_key.strip():
        raise HTTPException(status_code=400, detail="Missing Idempotency-Key header")
    return idempotency_key.strip()


# ---------- Endpoints ----------
@router.get("", response_model=list[StockMovementRead])
def list_movements(
    medicine_id: int,
    limit: int = Query(default=50, ge=1, le=500),
    db: Session = Depends(get_db),
):
    get_stock_level(db, medicine_id)  # 404 si inconnu
    return stock_history(db, medicine_id, limit=limit)


@router.post("/receive", response_model=StockMovementRead)
def receive(
    payload: StockReceive,
    db: Session = Depends(get_db),
    actor: str = Depends(get_actor),
    idempotency_key: str | None = Header(default=None, alias="Idempotency-Key"),
):
    idem = _require_idempotency_key(idempotency_key)

    def work():
        mv = receive_stock(
            db,
            payload.medicine_id,
            payload.quantity,
            actor=actor,
            reason=payload.reason,
            idempotency_key=idem,
        )
        return int(mv.id)

    movement_id = run_in_transaction(db, work, operation="receive_stock")
    return db.get(StockMovement, movement_id)


@router.post("/adjust", response_model=StockMovementRead | None)
def adjust(
    payload: StockAdjust,
    db: Session = Depends(get_db),
    actor: str = Depends(get_actor),
    idempotency_key: str | None = Header(default=None, alias="Idempotency-Key"),
):
    idem = _require_idempotency_key(idempotency_key)

    def work():
        mv = adjust_stock(
            db,
            payload.medicine_id,
            payload.new_quantity,
            actor=actor,
            reason=payload.reason,
            idempotency_key=idem,
        )
        return int(mv.id) if mv else None

    movement_id = run_in_transaction(db, work, operation="adjust_stock")
    if movement_id is None:
        return None
    return db.get(StockMovement, movement_id)
