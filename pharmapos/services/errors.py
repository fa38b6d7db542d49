"""
Taxonomie d'erreurs du noyau ventes / stock.

Chaque erreur est limitée à une requête : l'appelant a déjà rollback,
l'état persisté est inchangé. La couche HTTP les traduit dans
pharmapos.app.api.exception_handlers.
"""

from __future__ import annotations


class PosError(Exception):
    """Racine des erreurs métier."""

    code = "pos_error"

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message

    def to_dict(self) -> dict:
        return {"code": self.code, "msg": self.message}


class ValidationError(PosError):
    code = "validation_error"

    def __init__(self, message: str, *, field: str | None = None):
        super().__init__(message)
        self.field = field

    def to_dict(self) -> dict:
        return {**super().to_dict(), "field": self.field}


class InsufficientStockError(PosError):
    code = "insufficient_stock"

    def __init__(
        self,
        *,
        medicine_id: int,
        medicine_name: str | None,
        requested: int,
        available: int,
        index: int | None = None,
    ):
        label = medicine_name or f"medicine {medicine_id}"
        super().__init__(
            f"Insufficient stock for {label} (available={available}, requested={requested})"
        )
        self.medicine_id = medicine_id
        self.medicine_name = medicine_name
        self.requested = requested
        self.available = available
        self.field = f"items.{index}.quantity" if index is not None else "quantity"

    def to_dict(self) -> dict:
        return {
            **super().to_dict(),
            "field": self.field,
            "medicine_id": self.medicine_id,
            "requested": self.requested,
            "available": self.available,
        }


class InvalidTransitionError(PosError):
    code = "invalid_transition"

    def __init__(self, *, sale_id: int, current: str, target: str):
        super().__init__(f"Sale {sale_id} cannot go from {current} to {target}")
        self.sale_id = sale_id
        self.current = current
        self.target = target

    def to_dict(self) -> dict:
        return {**super().to_dict(), "current": self.current, "target": self.target}


class ConcurrencyConflictError(PosError):
    code = "concurrency_conflict"
    retryable = True

    def to_dict(self) -> dict:
        return {**super().to_dict(), "retryable": self.retryable}


class NotFoundError(PosError):
    code = "not_found"


class SaleNotFoundError(NotFoundError):
    def __init__(self, sale_ref: int | str):
        super().__init__(f"Sale {sale_ref} not found")
        self.sale_ref = sale_ref


class MedicineNotFoundError(NotFoundError):
    def __init__(self, medicine_id: int):
        super().__init__(f"Medicine {medicine_id} not found")
        self.medicine_id = medicine_id


class IdempotencyConflictError(PosError):
    code = "idempotency_conflict"

    def __init__(self, idempotency_key: str):
        super().__init__(f"Idempotency-Key {idempotency_key} was already used for a different request")
        self.idempotency_key = idempotency_key


class DataIntegrityError(PosError):
    code = "data_integrity"


class MedicineMissingError(DataIntegrityError):
    def __init__(self, medicine_id: int, *, sale_id: int | None = None):
        super().__init__(
            f"Medicine {medicine_id} referenced by sale {sale_id} no longer exists"
        )
        self.medicine_id = medicine_id
        self.sale_id = sale_id
