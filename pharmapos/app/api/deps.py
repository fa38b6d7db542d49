from __future__ import annotations

from typing import Generator

from fastapi import Header

from pharmapos.app.db.session import SessionLocal


def get_db() -> Generator:
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def get_actor(x_actor: str | None = Header(default=None, alias="X-Actor")) -> str:
    # L'authentification est hors du noyau : l'appelant transmet l'opérateur
    if not x_actor or not x_actor.strip():
        return "system"
    return x_actor.strip()[:128]
