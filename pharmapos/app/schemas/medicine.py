from decimal import Decimal

from pydantic import BaseModel, Field


class MedicineCreate(BaseModel):
    sku: str = Field(min_length=1, max_length=64)
    name: str = Field(min_length=1, max_length=255)
    generic_name: str | None = Field(default=None, max_length=255)
    strength: str | None = Field(default=None, max_length=64)
    dosage_form: str | None = Field(default=None, max_length=64)
    barcode: str | None = Field(default=None, max_length=64)
    unit_price: Decimal = Field(ge=0)
    cost_price: Decimal = Field(default=Decimal("0"), ge=0)
    tax_exempt: bool = False
    reorder_level: int = Field(default=0, ge=0)
    opening_stock: int = Field(default=0, ge=0)
    active: bool = True


class MedicineRead(BaseModel):
    id: int
    sku: str
    name: str
    generic_name: str | None
    strength: str | None
    dosage_form: str | None
    barcode: str | None
    unit_price: Decimal
    tax_exempt: bool
    stock_quantity: int  # lecture seule, modifié uniquement par le ledger
    reorder_level: int
    active: bool

    class Config:
        from_attributes = True
