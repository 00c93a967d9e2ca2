from fastapi import FastAPI

from pharmacy.app.api.exception_handlers import register_exception_handlers
from pharmacy.app.api.v1.router import router as v1_router
from pharmacy.app.core.config import settings
from pharmacy.app.core.log_config import configure_logging


def create_app() -> FastAPI:
    configure_logging()
    app = FastAPI(title=settings.PROJECT_NAME, version=settings.VERSION)
    register_exception_handlers(app)
    app.include_router(v1_router, prefix=settings.API_V1_STR)
    return app


app = create_app()
