from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine
from sqlalchemy.orm import sessionmaker

from pharmapos.app.core.config import settings


def build_engine(url: str, *, echo: bool = False) -> Engine:
    """
    Engine configuré pour le verrouillage de stock.

    SQLite : busy timeout (attente bornée sur le verrou d'écriture) et
    clés étrangères activées. Postgres : pool_pre_ping, le lock_timeout est
    posé par transaction (voir services.transactions).
    """
    if url.startswith("sqlite"):
        engine = create_engine(
            url,
            echo=echo,
            connect_args={
                "timeout": settings.SQLITE_BUSY_TIMEOUT_S,
                "check_same_thread": False,
            },
        )

        @event.listens_for(engine, "connect")
        def _sqlite_pragmas(dbapi_connection, connection_record):
            cursor = dbapi_connection.cursor()
            cursor.execute("PRAGMA foreign_keys=ON")
            cursor.close()

        return engine

    return create_engine(url, echo=echo, pool_pre_ping=True)


engine = build_engine(settings.DATABASE_URL, echo=settings.SQL_ECHO)
SessionLocal = sessionmaker(bind=engine, autoflush=False, autocommit=False)
