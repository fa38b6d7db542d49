from fastapi import FastAPI

from pharmapos.app.api.exception_handlers import register_exception_handlers
from pharmapos.app.api.v1.router import router as v1_router
from pharmapos.app.core.config import settings
from pharmapos.app.core.logging import configure_logging


def create_app() -> FastAPI:
    configure_logging()
    app = FastAPI(title=settings.PROJECT_NAME, version="0.1.0")
    register_exception_handlers(app)
    app.include_router(v1_router, prefix=settings.API_V1_STR)
    return app


app = create_app()
