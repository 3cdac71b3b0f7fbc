from __future__ import annotations

import asyncio
import contextlib
import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from slowapi.errors import RateLimitExceeded
from starlette.exceptions import HTTPException as StarletteHTTPException

from app.api.v1.router import api_v1_router
from app.core.config import Settings, get_settings
from app.core.errors import LocalRateLimitExceeded, UpstreamError, WeatherDashError
from app.core.http import create_http_client
from app.core.logging import configure_logging
from app.core.rate_limit import limiter
from app.db.session import create_engine, create_tables
from app.schemas.weather import ErrorDetail, ErrorResponse
from app.services.weather.cache import MemoryCacheStore, SqlCacheStore, WeatherCache
from app.services.weather.providers import build_provider
from app.services.weather.service import WeatherService


logger = logging.getLogger(__name__)


def _error(status_code: int, message: str) -> JSONResponse:
    body = ErrorResponse(error=ErrorDetail(message=message))
    return JSONResponse(status_code=status_code, content=body.model_dump())


async def _sweep_periodically(cache: WeatherCache, interval_seconds: int) -> None:
    while True:
        await asyncio.sleep(interval_seconds)
        await cache.sweep()


@asynccontextmanager
async def lifespan(app: FastAPI):
    settings: Settings = app.state.settings
    engine = app.state.db_engine
    if engine is not None:
        await create_tables(engine)

    sweeper = None
    if settings.cache_sweep_interval_seconds > 0:
        sweeper = asyncio.create_task(
            _sweep_periodically(app.state.weather_service.cache, settings.cache_sweep_interval_seconds)
        )

    logger.info(
        "Weather API started (provider=%s, cache=%s, ttl=%ss)",
        settings.weather_provider,
        settings.cache_backend,
        settings.cache_ttl_seconds,
    )
    try:
        yield
    finally:
        if sweeper is not None:
            sweeper.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await sweeper
        if app.state.http_client is not None:
            await app.state.http_client.aclose()
        if engine is not None:
            await engine.dispose()


def register_exception_handlers(app: FastAPI) -> None:
    @app.exception_handler(WeatherDashError)
    async def weatherdash_error_handler(request: Request, exc: WeatherDashError):
        if isinstance(exc, UpstreamError):
            logger.warning("Upstream failure on %s: %s", request.url.path, exc.message)
        elif isinstance(exc, LocalRateLimitExceeded):
            logger.warning("Local provider rate limit hit on %s", request.url.path)
        return _error(exc.status_code, exc.message)

    @app.exception_handler(RequestValidationError)
    async def request_validation_handler(request: Request, exc: RequestValidationError):
        errors = exc.errors()
        if not errors:
            return _error(400, "Invalid request")
        first = errors[0]
        field = ".".join(str(part) for part in first.get("loc", ()) if part not in ("query", "body"))
        message = first.get("msg", "Invalid request")
        return _error(400, f"{field}: {message}" if field else message)

    @app.exception_handler(StarletteHTTPException)
    async def http_exception_handler(request: Request, exc: StarletteHTTPException):
        if exc.status_code == 404:
            return _error(404, f"Route not found: {request.url.path}")
        return _error(exc.status_code, str(exc.detail))

    @app.exception_handler(RateLimitExceeded)
    async def route_rate_limit_handler(request: Request, exc: RateLimitExceeded):
        return _error(429, "Too many requests, please slow down.")

    @app.exception_handler(Exception)
    async def unhandled_exception_handler(request: Request, exc: Exception):
        logger.exception("Unhandled error on %s", request.url.path)
        settings: Settings = request.app.state.settings
        message = f"Internal Server Error ({type(exc).__name__})" if settings.debug else "Internal Server Error"
        return _error(500, message)


def create_app(
    settings: Settings | None = None,
    *,
    weather_service: WeatherService | None = None,
) -> FastAPI:
    settings = settings or get_settings()
    configure_logging(settings)

    client = None
    engine = None
    if weather_service is None:
        client = create_http_client(settings)
        # Missing API key for the active provider raises ConfigurationError here.
        provider = build_provider(settings, client)
        if settings.cache_backend == "database":
            engine = create_engine(settings)
            store = SqlCacheStore(engine)
        else:
            store = MemoryCacheStore(maxsize=settings.cache_max_entries)
        cache = WeatherCache(store, ttl_seconds=settings.cache_ttl_seconds)
        weather_service = WeatherService(provider, cache)

    app = FastAPI(
        title="weather dashboard api",
        version="0.1.0",
        lifespan=lifespan,
    )

    app.state.settings = settings
    app.state.http_client = client
    app.state.db_engine = engine
    app.state.weather_service = weather_service

    # Add rate limiter
    app.state.limiter = limiter
    register_exception_handlers(app)

    if settings.cors_origins:
        app.add_middleware(
            CORSMiddleware,
            allow_origins=settings.cors_origins,
            allow_credentials=True,
            allow_methods=["*"],
            allow_headers=["*"],
        )

    app.include_router(api_v1_router, prefix="/api/v1")
    return app


app = create_app()
