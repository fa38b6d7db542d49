from __future__ import annotations

from datetime import date

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from pharmapos.app.core.config import settings
from pharmapos.app.db.models.models_v1 import SaleNumberSeries


def _date_key(d: date) -> int:
    return int(d.strftime("%Y%m%d"))


def _locked_series(db: Session, prefix: str, dk: int) -> SaleNumberSeries | None:
    return (
        db.execute(
            select(SaleNumberSeries)
            .where(SaleNumberSeries.prefix == prefix)
            .where(SaleNumberSeries.date_key == dk)
            .with_for_update()
        )
        .scalars()
        .first()
    )


def next_sale_number(
    db: Session,
    *,
    doc_date: date,
    prefix: str | None = None,
    pad: int | None = None,
) -> str:
    """
    Numéro de vente lisible, croissant : INV-20261019-0001, INV-20261019-0002...

    Série par (prefix, jour) verrouillée FOR UPDATE. Si deux caisses créent
    la série du jour en même temps, l'une prend l'IntegrityError dans un
    SAVEPOINT (la transaction de vente reste intacte) et relit la ligne.
    """
    prefix = prefix or settings.SALE_NUMBER_PREFIX
    pad = pad or settings.SALE_NUMBER_PADDING
    dk = _date_key(doc_date)

    row = _locked_series(db, prefix, dk)
    if not row:
        try:
            with db.begin_nested():
                row = SaleNumberSeries(prefix=prefix, date_key=dk, next_seq=1)
                db.add(row)
        except IntegrityError:
            row = _locked_series(db, prefix, dk)
            if not row:
                raise

    seq = int(row.next_seq or 1)
    row.next_seq = seq + 1
    db.flush()

    return f"{prefix}-{dk}-{seq:0{pad}d}"
