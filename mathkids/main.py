import logging
import os
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.staticfiles import StaticFiles

from mathkids.api.auth import router as auth_router
from mathkids.api.health import router as health_router
from mathkids.config import Settings
from mathkids.config import settings as default_settings
from mathkids.errors import register_error_handlers
from mathkids.logging import configure_logging
from mathkids.services.container import AuthServices, build_services

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    owned = getattr(app.state, "services", None) is None
    if owned:
        app.state.services = build_services(app.state.settings)
    services: AuthServices = app.state.services
    services.startup()
    logger.info(
        "MathKids API started (environment=%s, database=%s)",
        services.settings.environment,
        "configured" if services.database.is_configured else "not configured",
    )
    try:
        yield
    finally:
        if owned:
            services.close()
            app.state.services = None


def create_app(
    settings: Settings | None = None, services: AuthServices | None = None
) -> FastAPI:
    settings = settings or (services.settings if services else default_settings)
    configure_logging(settings.log_level, settings.log_format)

    app = FastAPI(title="MathKids API", lifespan=lifespan)
    app.state.settings = settings
    app.state.services = services

    register_error_handlers(app)
    if settings.cors_origins:
        app.add_middleware(
            CORSMiddleware,
            allow_origins=settings.cors_origins,
            allow_credentials=True,
            allow_methods=["GET", "POST", "PUT", "DELETE", "OPTIONS"],
            allow_headers=["Content-Type", "Authorization"],
        )

    app.include_router(auth_router)
    app.include_router(health_router)

    if settings.static_dir and os.path.isdir(settings.static_dir):
        app.mount("/", StaticFiles(directory=settings.static_dir, html=True), name="static")
    return app


app = create_app()
