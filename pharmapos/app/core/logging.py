import logging
import sys

from pharmapos.app.core.config import settings

LOG_FORMAT = "%(asctime)s %(levelname)s [%(name)s] %(message)s"


def configure_logging(level: str | None = None) -> None:
    """
    Installe un handler stdout unique sur le logger racine.
    Appelable plusieurs fois (reload uvicorn, tests) sans doubler les lignes.
    """
    root = logging.getLogger()
    root.setLevel((level or settings.LOG_LEVEL).upper())

    if any(getattr(h, "_pharmapos", False) for h in root.handlers):
        return

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(logging.Formatter(LOG_FORMAT))
    handler._pharmapos = True  # type: ignore[attr-defined]
    root.addHandler(handler)

    # SQLAlchemy est très bavard en DEBUG, on le pilote via SQL_ECHO
    logging.getLogger("sqlalchemy.engine").setLevel(logging.WARNING)
