from datetime import datetime
from decimal import Decimal

from pydantic import BaseModel, Field

from pharmapos.app.db.models.core_types import (
    DiscountType,
    PaymentMethod,
    SaleStatus,
    TaxBasis,
    TimelineAction,
)


# ---------- Entrée ----------
class DiscountIn(BaseModel):
    type: DiscountType = DiscountType.fixed
    value: Decimal = Field(default=Decimal("0"), ge=0)


class SaleItemCreate(BaseModel):
    medicine_id: int
    quantity: int = Field(gt=0)
    discount_percentage: Decimal = Decimal("0")  # borné à [0, 100] au calcul


class SaleCreate(BaseModel):
    patient_id: int | None = None
    payment_method: PaymentMethod
    discount: DiscountIn = Field(default_factory=DiscountIn)
    tax_rate: Decimal | None = None  # None -> settings.DEFAULT_TAX_RATE
    tax_basis: TaxBasis | None = None  # None -> settings.TAX_BASIS
    items: list[SaleItemCreate] = Field(default_factory=list)
    notes: str | None = Field(default=None, max_length=1000)


class SaleVoid(BaseModel):
    reason: str = Field(min_length=1, max_length=1000)


# ---------- Sortie ----------
class SaleItemRead(BaseModel):
    id: int
    medicine_id: int
    quantity: int
    unit_price: Decimal
    discount_percentage: Decimal
    discount_amount: Decimal
    total_price: Decimal
    taxable: bool

    class Config:
        from_attributes = True


class TimelineEntryRead(BaseModel):
    id: int
    action: TimelineAction
    reason: str | None
    actor: str
    created_at: datetime

    class Config:
        from_attributes = True


class SaleSummary(BaseModel):
    id: int
    sale_id: str
    patient_id: int | None
    payment_method: PaymentMethod
    status: SaleStatus
    subtotal: Decimal
    discount_amount: Decimal
    tax_amount: Decimal
    grand_total: Decimal
    created_by: str
    created_at: datetime

    class Config:
        from_attributes = True


class SaleRead(SaleSummary):
    discount_type: DiscountType
    discount_value: Decimal
    tax_rate: Decimal
    tax_basis: TaxBasis
    notes: str | None
    void_reason: str | None
    voided_by: str | None
    voided_at: datetime | None
    items: list[SaleItemRead]
    timeline: list[TimelineEntryRead]
