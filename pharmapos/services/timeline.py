"""
Audit timeline des ventes.

Journal append-only : une ligne par événement du cycle de vie, jamais
modifiée ni supprimée. Relu dans l'ordre chronologique (created_at, id).
"""

from __future__ import annotations

from sqlalchemy import select
from sqlalchemy.orm import Session

from pharmapos.app.db.models.models_v1 import Sale, SaleTimelineEntry
from pharmapos.app.db.models.core_types import TimelineAction


def record_event(
    db: Session,
    sale: Sale,
    action: TimelineAction,
    *,
    actor: str,
    reason: str | None = None,
) -> SaleTimelineEntry:
    entry = SaleTimelineEntry(
        sale_id=sale.id,
        action=TimelineAction(action),
        reason=reason,
        actor=actor,
    )
    db.add(entry)
    db.flush()
    return entry


def list_timeline(db: Session, sale_id: int) -> list[SaleTimelineEntry]:
    return list(
        db.execute(
            select(SaleTimelineEntry)
            .where(SaleTimelineEntry.sale_id == sale_id)
            .order_by(SaleTimelineEntry.created_at.asc(), SaleTimelineEntry.id.asc())
        )
        .scalars()
        .all()
    )
