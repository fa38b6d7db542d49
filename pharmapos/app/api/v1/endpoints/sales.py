from __future__ import annotations

from datetime import datetime

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from pharmapos.app.api.deps import get_actor, get_db
from pharmapos.app.db.models.core_types import PaymentMethod, SaleStatus
from pharmapos.app.schemas.sale import (
    SaleCreate,
    SaleRead,
    SaleSummary,
    SaleVoid,
    TimelineEntryRead,
)
from pharmapos.services.sales import create_sale, get_sale, get_sale_by_number, list_sales
from pharmapos.services.timeline import list_timeline
from pharmapos.services.void import refund_sale, void_sale

router = APIRouter(prefix="/sales")


@router.get("", response_model=list[SaleSummary])
def list_sales_endpoint(
    status: SaleStatus | None = None,
    payment_method: PaymentMethod | None = None,
    patient_id: int | None = None,
    date_from: datetime | None = None,
    date_to: datetime | None = None,
    limit: int = Query(default=50, ge=1, le=500),
    offset: int = Query(default=0, ge=0),
    db: Session = Depends(get_db),
):
    return list_sales(
        db,
        status=status,
        payment_method=payment_method,
        patient_id=patient_id,
        date_from=date_from,
        date_to=date_to,
        limit=limit,
        offset=offset,
    )


@router.post("", response_model=SaleRead, status_code=201)
def create_sale_endpoint(
    payload: SaleCreate,
    db: Session = Depends(get_db),
    actor: str = Depends(get_actor),
):
    return create_sale(db, payload, actor=actor)


@router.get("/by-number/{sale_number}", response_model=SaleRead)
def get_sale_by_number_endpoint(sale_number: str, db: Session = Depends(get_db)):
    return get_sale_by_number(db, sale_number)


@router.get("/{sale_id}", response_model=SaleRead)
def get_sale_endpoint(sale_id: int, db: Session = Depends(get_db)):
    return get_sale(db, sale_id)


@router.get("/{sale_id}/timeline", response_model=list[TimelineEntryRead])
def get_sale_timeline(sale_id: int, db: Session = Depends(get_db)):
    get_sale(db, sale_id)  # 404 si inconnue
    return list_timeline(db, sale_id)


@router.post("/{sale_id}/void", response_model=SaleRead)
def void_sale_endpoint(
    sale_id: int,
    payload: SaleVoid,
    db: Session = Depends(get_db),
    actor: str = Depends(get_actor),
):
    return void_sale(db, sale_id, reason=payload.reason, actor=actor)


@router.post("/{sale_id}/refund", response_model=SaleRead)
def refund_sale_endpoint(
    sale_id: int,
    payload: SaleVoid,
    db: Session = Depends(get_db),
    actor: str = Depends(get_actor),
):
    return refund_sale(db, sale_id, reason=payload.reason, actor=actor)
