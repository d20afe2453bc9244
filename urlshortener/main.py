import logging
from contextlib import asynccontextmanager
from typing import Optional

import uvicorn
from fastapi import FastAPI, Depends, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, RedirectResponse

from .api.v1 import auth, links
from .config import Settings, get_settings
from .dependencies import get_shortener
from .errors import LinkExpired, NotFound, ShortenerError
from .logging_config import setup_logging
from .observability import PrometheusMiddleware, REDIRECT_TOTAL, metrics_endpoint
from .services import Services, build_services
from .services.shortener import ShortenerService

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    # Startup logic
    owned = app.state.services is None
    if owned:
        setup_logging(app.state.settings.LOG_LEVEL)
        app.state.services = build_services(app.state.settings)
        if not await app.state.services.cache.ping():
            logger.warning("Redis unreachable at startup, serving from the database only")
    yield
    # Shutdown logic
    if owned:
        await app.state.services.close()
        app.state.services = None


async def shortener_error_handler(request: Request, exc: ShortenerError):
    if exc.status_code >= 500:
        logger.error(f"{type(exc).__name__} on {request.method} {request.url.path}: {exc.detail}")
    return JSONResponse(status_code=exc.status_code, content={"detail": exc.detail})


def create_app(settings: Optional[Settings] = None, services: Optional[Services] = None) -> FastAPI:
    """Build the application.

    `services` is normally left out and built from `settings` in the lifespan;
    passing one in lets callers (tests) own the pooled clients themselves.
    """
    settings = settings or get_settings()

    app = FastAPI(
        title="URL Shortener",
        description="Short links backed by PostgreSQL with a Redis cache in front",
        version="1.0.0",
        lifespan=lifespan,
    )
    app.state.settings = settings
    app.state.services = services

    app.add_middleware(PrometheusMiddleware)
    if settings.ALLOWED_ORIGINS:
        app.add_middleware(
            CORSMiddleware,
            allow_origins=settings.ALLOWED_ORIGINS,
            allow_methods=["GET", "POST", "DELETE"],
            allow_headers=["Authorization", "Content-Type", "Idempotency-Key"],
            allow_credentials=True,
        )
    app.add_exception_handler(ShortenerError, shortener_error_handler)

    app.add_api_route("/metrics", metrics_endpoint, methods=["GET"], include_in_schema=False)
    app.include_router(links.router, prefix="/v1")
    app.include_router(auth.router, prefix="/v1")

    @app.get("/health")
    async def health():
        return {"status": "ok"}

    @app.get("/{code}")
    async def redirect_to_url(
        code: str,
        shortener: ShortenerService = Depends(get_shortener),
    ):
        try:
            target_url = await shortener.resolve(code)
        except NotFound:
            REDIRECT_TOTAL.labels(outcome="not_found").inc()
            raise
        except LinkExpired:
            REDIRECT_TOTAL.labels(outcome="expired").inc()
            raise
        REDIRECT_TOTAL.labels(outcome="redirect").inc()
        return RedirectResponse(url=target_url)

    return app


def run():
    settings = get_settings()
    setup_logging(settings.LOG_LEVEL)
    logger.info(f"Listening on {settings.SERVER_HOST}:{settings.SERVER_PORT}")
    uvicorn.run(
        create_app(settings),
        host=settings.SERVER_HOST,
        port=settings.SERVER_PORT,
        log_config=None,
    )


if __name__ == "__main__":
    run()
