import enum


class PaymentMethod(str, enum.Enum):
    cash = "cash"
    card = "card"
    insurance = "insurance"
    credit = "credit"


class SaleStatus(str, enum.Enum):
    pending = "pending"
    completed = "completed"
    cancelled = "cancelled"
    refunded = "refunded"


# Machine à états des ventes : aucun retour vers pending
ALLOWED_TRANSITIONS: dict[SaleStatus, frozenset[SaleStatus]] = {
    SaleStatus.pending: frozenset({SaleStatus.completed, SaleStatus.cancelled, SaleStatus.refunded}),
    SaleStatus.completed: frozenset({SaleStatus.cancelled, SaleStatus.refunded}),
    SaleStatus.cancelled: frozenset(),
    SaleStatus.refunded: frozenset(),
}

VOIDABLE_STATUSES = frozenset({SaleStatus.pending, SaleStatus.completed})


class TimelineAction(str, enum.Enum):
    created = "created"
    completed = "completed"
    voided = "voided"
    refunded = "refunded"


class DiscountType(str, enum.Enum):
    percentage = "percentage"
    fixed = "fixed"


class TaxBasis(str, enum.Enum):
    pre_discount = "pre_discount"
    post_discount = "post_discount"


class MovementType(str, enum.Enum):
    sale = "SALE"
    sale_void = "SALE_VOID"
    sale_refund = "SALE_REFUND"
    receipt = "RECEIPT"
    adjustment = "ADJUSTMENT"


class MovementDirection(str, enum.Enum):
    inbound = "IN"
    outbound = "OUT"
