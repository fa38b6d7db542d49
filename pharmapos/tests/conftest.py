import os
from decimal import Decimal

import pytest
from sqlalchemy.orm import Session, sessionmaker

from pharmapos.app.db.base import Base
from pharmapos.app.db.models.models_v1 import Medicine
from pharmapos.app.db.session import build_engine


@pytest.fixture(scope="function")
def engine(tmp_path):
    """
    Base DB isolée par test.

    SQLite fichier par défaut (plusieurs connexions possibles pour les
    tests de concurrence), ou Postgres via TEST_DATABASE_URL.
    Schéma recréé à chaque test : les services commit pour de vrai.
    """
    url = os.getenv("TEST_DATABASE_URL") or f"sqlite:///{tmp_path / 'pharmapos_test.db'}"
    eng = build_engine(url)
    Base.metadata.drop_all(bind=eng)
    Base.metadata.create_all(bind=eng)
    try:
        yield eng
    finally:
        Base.metadata.drop_all(bind=eng)
        eng.dispose()


@pytest.fixture(scope="function")
def session_factory(engine):
    return sessionmaker(bind=engine, autoflush=False, autocommit=False)


@pytest.fixture(scope="function")
def db_session(session_factory) -> Session:
    session = session_factory()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def make_medicine(db_session):
    """Crée un médicament avec un stock initial (hors ledger, données de test)."""
    counter = {"n": 0}

    def _make(
        name: str = "Paracetamol 500mg",
        *,
        unit_price: str = "100.00",
        stock: int = 10,
        tax_exempt: bool = False,
        reorder_level: int = 0,
        active: bool = True,
    ) -> Medicine:
        counter["n"] += 1
        med = Medicine(
            sku=f"TEST-SKU-{counter['n']}",
            name=name,
            unit_price=Decimal(unit_price),
            cost_price=Decimal("1.00"),
            tax_exempt=tax_exempt,
            stock_quantity=stock,
            reorder_level=reorder_level,
            active=active,
        )
        db_session.add(med)
        db_session.commit()
        return med

    return _make


@pytest.fixture
def stock_of(db_session):
    """Stock relu en base (ignore l'identity map)."""

    def _stock(medicine_id: int) -> int:
        db_session.expire_all()
        return db_session.get(Medicine, medicine_id).stock_quantity

    return _stock


@pytest.fixture
def client(session_factory):
    from fastapi.testclient import TestClient

    from pharmapos.app.api.deps import get_db
    from pharmapos.app.main import create_app

    app = create_app()

    def _get_db():
        db = session_factory()
        try:
            yield db
        finally:
            db.close()

    app.dependency_overrides[get_db] = _get_db
    with TestClient(app) as c:
        yield c
