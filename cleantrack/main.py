import os

import structlog
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.staticfiles import StaticFiles
from prometheus_fastapi_instrumentator import Instrumentator
from slowapi import Limiter, _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded
from slowapi.middleware import SlowAPIMiddleware
from slowapi.util import get_remote_address
from sqlalchemy import inspect

from .config import settings
from .db import Base, engine
from .errors import register_exception_handlers
from .logging import RequestIdMiddleware, setup_logging
from .models import models  # noqa: F401  registers tables on Base.metadata
from .routes.clients import router as clients_router
from .routes.health import router as health_router
from .routes.jobs import router as jobs_router
from .routes.recurring import router as recurring_router
from .routes.reports import router as reports_router


logger = structlog.get_logger(__name__)


def create_app() -> FastAPI:
    setup_logging()
    app = FastAPI(title=settings.app_name)

    # Middlewares
    app.add_middleware(RequestIdMiddleware)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    limiter = Limiter(key_func=get_remote_address, default_limits=[settings.rate_limit])
    app.state.limiter = limiter
    app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)
    app.add_middleware(SlowAPIMiddleware)

    register_exception_handlers(app)

    # Routers
    app.include_router(health_router)
    app.include_router(clients_router)
    app.include_router(recurring_router)
    app.include_router(jobs_router)
    app.include_router(reports_router)

    # Stored photos and generated reports
    os.makedirs(settings.storage_dir, exist_ok=True)
    app.mount("/files", StaticFiles(directory=settings.storage_dir), name="files")

    # Metrics
    Instrumentator().instrument(app).expose(app)

    @app.on_event("startup")
    def _startup():
        if settings.database_url.startswith("sqlite:///./"):
            os.makedirs("var", exist_ok=True)
        if settings.auto_create_db:
            existing_tables = set(inspect(engine).get_table_names())
            missing = set(Base.metadata.tables.keys()) - existing_tables
            if missing:
                logger.info("creating_tables", tables=sorted(missing))
                Base.metadata.create_all(bind=engine)
        logger.info("startup_complete", environment=settings.environment)

    return app


app = create_app()
