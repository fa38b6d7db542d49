from __future__ import annotations

from datetime import datetime, timezone
from decimal import Decimal

from sqlalchemy import (
    String,
    Integer,
    BigInteger,
    DateTime,
    Boolean,
    ForeignKey,
    Numeric,
    Text,
    Enum,
    UniqueConstraint,
    Index,
    CheckConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from pharmapos.app.db.base import Base
from pharmapos.app.db.models.core_types import (
    PaymentMethod,
    SaleStatus,
    TimelineAction,
    DiscountType,
    TaxBasis,
    MovementType,
    MovementDirection,
)

# SQLite ne gère l'autoincrement que sur INTEGER PRIMARY KEY
PK = BigInteger().with_variant(Integer, "sqlite")


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


# ---------- MASTER DATA ----------
class Medicine(Base):
    __tablename__ = "medicines"
    id: Mapped[int] = mapped_column(PK, primary_key=True)
    sku: Mapped[str] = mapped_column(String(64), unique=True, nullable=False)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    generic_name: Mapped[str | None] = mapped_column(String(255))
    strength: Mapped[str | None] = mapped_column(String(64))
    dosage_form: Mapped[str | None] = mapped_column(String(64))
    barcode: Mapped[str | None] = mapped_column(String(64), unique=True)

    unit_price: Mapped[Decimal] = mapped_column(Numeric(14, 2), nullable=False)
    cost_price: Mapped[Decimal] = mapped_column(Numeric(14, 2), default=Decimal("0"), nullable=False)
    tax_exempt: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)

    # Compteur de stock : modifié UNIQUEMENT par services.inventory
    stock_quantity: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    reorder_level: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    version: Mapped[int] = mapped_column(Integer, default=1, nullable=False)

    active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=utcnow,
        onupdate=utcnow,
        nullable=False,
    )

    __table_args__ = (
        CheckConstraint("stock_quantity >= 0", name="ck_medicine_stock_nonneg"),
        CheckConstraint("reorder_level >= 0", name="ck_medicine_reorder_nonneg"),
        CheckConstraint("unit_price >= 0", name="ck_medicine_unit_price_nonneg"),
        CheckConstraint("cost_price >= 0", name="ck_medicine_cost_price_nonneg"),
    )


# ---------- SALES ----------
class Sale(Base):
    __tablename__ = "sales"
    id: Mapped[int] = mapped_column(PK, primary_key=True)
    # Numéro lisible (INV-YYYYMMDD-NNNN)
    sale_id: Mapped[str] = mapped_column(String(64), unique=True, nullable=False)
    patient_id: Mapped[int | None] = mapped_column(BigInteger, index=True)

    payment_method: Mapped[PaymentMethod] = mapped_column(
        Enum(PaymentMethod, name="payment_method"),
        nullable=False,
    )
    status: Mapped[SaleStatus] = mapped_column(
        Enum(SaleStatus, name="sale_status"),
        default=SaleStatus.pending,
        nullable=False,
    )

    subtotal: Mapped[Decimal] = mapped_column(Numeric(14, 2), nullable=False)
    discount_amount: Mapped[Decimal] = mapped_column(Numeric(14, 2), default=Decimal("0"), nullable=False)
    tax_amount: Mapped[Decimal] = mapped_column(Numeric(14, 2), default=Decimal("0"), nullable=False)
    grand_total: Mapped[Decimal] = mapped_column(Numeric(14, 2), nullable=False)

    # Paramètres de calcul conservés : les totaux restent recalculables
    discount_type: Mapped[DiscountType] = mapped_column(
        Enum(DiscountType, name="discount_type"),
        default=DiscountType.fixed,
        nullable=False,
    )
    discount_value: Mapped[Decimal] = mapped_column(Numeric(14, 2), default=Decimal("0"), nullable=False)
    tax_rate: Mapped[Decimal] = mapped_column(Numeric(5, 2), default=Decimal("0"), nullable=False)
    tax_basis: Mapped[TaxBasis] = mapped_column(
        Enum(TaxBasis, name="tax_basis"),
        default=TaxBasis.pre_discount,
        nullable=False,
    )

    notes: Mapped[str | None] = mapped_column(Text)
    created_by: Mapped[str] = mapped_column(String(128), nullable=False)

    void_reason: Mapped[str | None] = mapped_column(Text)
    voided_by: Mapped[str | None] = mapped_column(String(128))
    voided_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))

    version: Mapped[int] = mapped_column(Integer, default=1, nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=utcnow,
        onupdate=utcnow,
        nullable=False,
    )

    items: Mapped[list["SaleItem"]] = relationship(
        back_populates="sale",
        cascade="all, delete-orphan",
        order_by="SaleItem.id",
    )
    timeline: Mapped[list["SaleTimelineEntry"]] = relationship(
        back_populates="sale",
        cascade="all, delete-orphan",
        order_by="SaleTimelineEntry.id",
    )

    __table_args__ = (
        CheckConstraint("subtotal >= 0", name="ck_sale_subtotal_nonneg"),
        CheckConstraint("discount_amount >= 0", name="ck_sale_discount_nonneg"),
        CheckConstraint("tax_amount >= 0", name="ck_sale_tax_nonneg"),
        CheckConstraint("grand_total >= 0", name="ck_sale_grand_total_nonneg"),
        Index("ix_sales_status_created", "status", "created_at"),
    )


class SaleItem(Base):
    __tablename__ = "sale_items"
    id: Mapped[int] = mapped_column(PK, primary_key=True)
    sale_id: Mapped[int] = mapped_column(
        ForeignKey("sales.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    medicine_id: Mapped[int] = mapped_column(
        ForeignKey("medicines.id", ondelete="RESTRICT"),
        nullable=False,
        index=True,
    )
    quantity: Mapped[int] = mapped_column(Integer, nullable=False)

    # Snapshots au moment de la vente
    unit_price: Mapped[Decimal] = mapped_column(Numeric(14, 2), nullable=False)
    cost_price: Mapped[Decimal] = mapped_column(Numeric(14, 2), default=Decimal("0"), nullable=False)
    discount_percentage: Mapped[Decimal] = mapped_column(Numeric(5, 2), default=Decimal("0"), nullable=False)
    taxable: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)

    discount_amount: Mapped[Decimal] = mapped_column(Numeric(14, 2), default=Decimal("0"), nullable=False)
    total_price: Mapped[Decimal] = mapped_column(Numeric(14, 2), nullable=False)  # unit_price * quantity

    sale: Mapped[Sale] = relationship(back_populates="items")
    medicine: Mapped[Medicine] = relationship()

    __table_args__ = (
        CheckConstraint("quantity > 0", name="ck_sale_item_qty_pos"),
        CheckConstraint("unit_price >= 0", name="ck_sale_item_unit_price_nonneg"),
        CheckConstraint(
            "discount_percentage >= 0 AND discount_percentage <= 100",
            name="ck_sale_item_discount_0_100",
        ),
    )


# ---------- AUDIT ----------
class SaleTimelineEntry(Base):
    __tablename__ = "sale_timeline"
    id: Mapped[int] = mapped_column(PK, primary_key=True)
    sale_id: Mapped[int] = mapped_column(
        ForeignKey("sales.id", ondelete="CASCADE"),
        nullable=False,
    )
    action: Mapped[TimelineAction] = mapped_column(Enum(TimelineAction, name="timeline_action"), nullable=False)
    reason: Mapped[str | None] = mapped_column(Text)
    actor: Mapped[str] = mapped_column(String(128), nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, nullable=False)

    sale: Mapped[Sale] = relationship(back_populates="timeline")

    __table_args__ = (Index("ix_sale_timeline_sale_time", "sale_id", "created_at"),)


# ---------- INVENTORY ----------
class StockMovement(Base):
    __tablename__ = "stock_movements"
    id: Mapped[int] = mapped_column(PK, primary_key=True)

    medicine_id: Mapped[int] = mapped_column(
        ForeignKey("medicines.id", ondelete="RESTRICT"),
        nullable=False,
        index=True,
    )
    movement_type: Mapped[MovementType] = mapped_column(Enum(MovementType, name="movement_type"), nullable=False)
    direction: Mapped[MovementDirection] = mapped_column(
        Enum(MovementDirection, name="movement_direction"),
        nullable=False,
    )
    quantity: Mapped[int] = mapped_column(Integer, nullable=False)
    previous_stock: Mapped[int] = mapped_column(Integer, nullable=False)
    new_stock: Mapped[int] = mapped_column(Integer, nullable=False)

    sale_id: Mapped[int | None] = mapped_column(ForeignKey("sales.id", ondelete="RESTRICT"), index=True)
    reason: Mapped[str | None] = mapped_column(String(255))
    actor: Mapped[str] = mapped_column(String(128), nullable=False)

    # Idempotence (réceptions / ajustements rejoués), nullable OK
    idempotency_key: Mapped[str | None] = mapped_column(String(64), unique=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, nullable=False)

    __table_args__ = (
        CheckConstraint("quantity > 0", name="ck_stock_movement_qty_pos"),
        CheckConstraint("new_stock >= 0", name="ck_stock_movement_new_stock_nonneg"),
        Index("ix_stock_movements_medicine_time", "medicine_id", "created_at"),
    )


class SaleNumberSeries(Base):
    __tablename__ = "sale_number_series"
    id: Mapped[int] = mapped_column(PK, primary_key=True)
    prefix: Mapped[str] = mapped_column(String(16), nullable=False)
    date_key: Mapped[int] = mapped_column(Integer, nullable=False)  # YYYYMMDD
    next_seq: Mapped[int] = mapped_column(Integer, default=1, nullable=False)

    __table_args__ = (UniqueConstraint("prefix", "date_key", name="uq_sale_number_series_prefix_date"),)
