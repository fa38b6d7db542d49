from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy import select
from sqlalchemy.orm import Session

from pharmapos.app.api.deps import get_actor, get_db
from pharmapos.app.db.models.models_v1 import Medicine
from pharmapos.app.schemas.medicine import MedicineCreate, MedicineRead
from pharmapos.services.errors import MedicineNotFoundError
from pharmapos.services.inventory import low_stock_medicines, receive_stock
from pharmapos.services.transactions import run_in_transaction

router = APIRouter(prefix="/medicines")


@router.get("", response_model=list[MedicineRead])
def list_medicines(active: bool | None = None, db: Session = Depends(get_db)):
    stmt = select(Medicine).order_by(Medicine.sku)
    if active is not None:
        stmt = stmt.where(Medicine.active.is_(active))
    return db.execute(stmt).scalars().all()


@router.get("/low-stock", response_model=list[MedicineRead])
def list_low_stock(db: Session = Depends(get_db)):
    return low_stock_medicines(db)


@router.get("/{medicine_id}", response_model=MedicineRead)
def get_medicine(medicine_id: int, db: Session = Depends(get_db)):
    med = db.get(Medicine, medicine_id)
    if not med:
        raise MedicineNotFoundError(medicine_id)
    return med


@router.post("", response_model=MedicineRead, status_code=201)
def create_medicine(
    payload: MedicineCreate,
    db: Session = Depends(get_db),
    actor: str = Depends(get_actor),
):
    exists = db.execute(select(Medicine).where(Medicine.sku == payload.sku)).scalar_one_or_none()
    if exists:
        raise HTTPException(status_code=409, detail="SKU already exists")

    def work() -> int:
        med = Medicine(
            **payload.model_dump(exclude={"opening_stock"}),
            stock_quantity=0,
        )
        db.add(med)
        db.flush()  # med.id

        # le stock d'ouverture passe par le ledger (mouvement RECEIPT)
        if payload.opening_stock > 0:
            receive_stock(
                db,
                med.id,
                payload.opening_stock,
                actor=actor,
                reason="Opening stock",
            )
        return int(med.id)

    medicine_id = run_in_transaction(db, work, operation="create_medicine")
    return db.get(Medicine, medicine_id)
