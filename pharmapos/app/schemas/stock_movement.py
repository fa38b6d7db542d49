from datetime import datetime

from pydantic import BaseModel, Field

from pharmapos.app.db.models.core_types import MovementDirection, MovementType


class StockReceive(BaseModel):
    medicine_id: int
    quantity: int = Field(gt=0)
    reason: str | None = Field(default=None, max_length=255)


class StockAdjust(BaseModel):
    medicine_id: int
    new_quantity: int = Field(ge=0)
    reason: str = Field(min_length=1, max_length=255)


class StockMovementRead(BaseModel):
    id: int
    medicine_id: int
    movement_type: MovementType
    direction: MovementDirection
    quantity: int
    previous_stock: int
    new_stock: int
    sale_id: int | None
    reason: str | None
    actor: str
    idempotency_key: str | None
    created_at: datetime

    class Config:
        from_attributes = True
