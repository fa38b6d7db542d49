"""
Unit of work transactionnelle.

Toute mutation (commit / restore de stock, transition de statut) passe par
`run_in_transaction` :
- une seule transaction DB, commit à la fin, rollback sur TOUTE erreur
- conflits de verrou / sérialisation / deadlock rejoués un nombre borné
  de fois (tenacity), puis remontés en ConcurrencyConflictError
"""

from __future__ import annotations

import logging
from typing import Callable, TypeVar

from sqlalchemy import text
from sqlalchemy.exc import DBAPIError, SQLAlchemyError
from sqlalchemy.orm import Session
from sqlalchemy.orm.exc import StaleDataError
from tenacity import (
    before_sleep_log,
    retry,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential_jitter,
)

from pharmapos.app.core.config import settings
from pharmapos.services.errors import ConcurrencyConflictError, DataIntegrityError

logger = logging.getLogger(__name__)

T = TypeVar("T")

# serialization_failure, deadlock_detected, lock_not_available
CONFLICT_SQLSTATES = {"40001", "40P01", "55P03"}
SQLITE_CONFLICT_MESSAGES = ("database is locked", "database table is locked")


def is_conflict(exc: BaseException) -> bool:
    if isinstance(exc, StaleDataError):
        return True
    if not isinstance(exc, DBAPIError):
        return False

    orig = exc.orig
    sqlstate = getattr(orig, "sqlstate", None) or getattr(orig, "pgcode", None)
    if sqlstate in CONFLICT_SQLSTATES:
        return True

    message = str(orig).lower()
    return any(m in message for m in SQLITE_CONFLICT_MESSAGES)


def apply_lock_timeout(db: Session) -> None:
    """Attente bornée sur les verrous de ligne (Postgres uniquement)."""
    if db.get_bind().dialect.name == "postgresql":
        db.execute(text(f"SET LOCAL lock_timeout = {int(settings.LOCK_TIMEOUT_MS)}"))


def run_in_transaction(
    db: Session,
    work: Callable[[], T],
    *,
    operation: str,
    max_attempts: int | None = None,
) -> T:
    """
    Exécute `work()` puis commit.

    `work` est rejoué depuis le début après un conflit : il doit relire
    tout ce dont il dépend (aucun état capturé d'une tentative précédente).
    """
    attempts = max_attempts or settings.TX_MAX_ATTEMPTS

    @retry(
        retry=retry_if_exception_type(ConcurrencyConflictError),
        stop=stop_after_attempt(attempts),
        wait=wait_exponential_jitter(
            initial=settings.TX_RETRY_INITIAL_DELAY,
            max=settings.TX_RETRY_MAX_DELAY,
            jitter=settings.TX_RETRY_INITIAL_DELAY,
        ),
        before_sleep=before_sleep_log(logger, logging.WARNING),
        reraise=True,
    )
    def _attempt() -> T:
        try:
            apply_lock_timeout(db)
            result = work()
            db.commit()
            return result
        except Exception as exc:
            db.rollback()
            if is_conflict(exc):
                raise ConcurrencyConflictError(
                    f"{operation}: concurrent update conflict, please retry"
                ) from exc
            if isinstance(exc, SQLAlchemyError):
                logger.error("%s failed on database error: %s", operation, exc)
                raise DataIntegrityError(f"{operation}: database error, nothing was saved") from exc
            raise

    return _attempt()
