import logging
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.staticfiles import StaticFiles

from pontocarro.api import auth, health, images, users, vehicles
from pontocarro.core.config import Settings, get_settings
from pontocarro.core.database import Database
from pontocarro.core.errors import register_exception_handlers
from pontocarro.services.email import Mailer
from pontocarro.services.rate_limit import RateLimiter
from pontocarro.services.storage import ImageStorage, build_storage


logger = logging.getLogger(__name__)


def create_app(
    settings: Optional[Settings] = None,
    *,
    database: Optional[Database] = None,
    storage: Optional[ImageStorage] = None,
    mailer: Optional[Mailer] = None,
    rate_limiter: Optional[RateLimiter] = None,
) -> FastAPI:
    """
    Build the API. Clients that are not passed in are created on startup
    from the settings and released on shutdown.
    """
    settings = settings or get_settings()
    logging.basicConfig(level=settings.LOG_LEVEL.upper())

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        app.state.settings = settings
        app.state.database = database or Database.from_settings(settings)
        app.state.storage = storage or build_storage(settings)
        app.state.mailer = mailer or Mailer(settings)
        app.state.rate_limiter = rate_limiter or RateLimiter.from_settings(settings)

        app.state.database.run_simple_migrations()
        app.state.database.create_all()
        logger.info(
            "%s started (env=%s, storage=%s, mail=%s, rate limit=%s)",
            settings.APP_NAME,
            settings.APP_ENV,
            settings.IMAGE_STORAGE,
            app.state.mailer.transport_name,
            "redis" if app.state.rate_limiter.enabled else "off",
        )
        try:
            yield
        finally:
            app.state.rate_limiter.close()
            app.state.mailer.close()
            app.state.storage.close()
            app.state.database.dispose()
            logger.info("%s stopped", settings.APP_NAME)

    app = FastAPI(title=settings.APP_NAME, lifespan=lifespan)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    register_exception_handlers(app)

    app.include_router(auth.router)
    app.include_router(vehicles.router)
    app.include_router(images.router)
    app.include_router(users.router)
    app.include_router(health.router)

    if settings.IMAGE_STORAGE == "local":
        app.mount("/uploads", StaticFiles(directory=settings.MEDIA_ROOT, check_dir=False), name="uploads")

    return app


if __name__ == "__main__":
    import uvicorn

    uvicorn.run("pontocarro.main:create_app", factory=True, host="0.0.0.0", port=8000, reload=True)
