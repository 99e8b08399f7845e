"""FastAPI application entry point."""

import asyncio
import logging
from collections.abc import Awaitable, Callable
from contextlib import asynccontextmanager
from typing import AsyncIterator

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from sqlalchemy import text

from deploybox import __version__
from deploybox.adapters.engine import DockerEngineDriver
from deploybox.adapters.registry import SQLInstanceRegistry
from deploybox.app.api.v1 import instances_router
from deploybox.app.config import get_settings
from deploybox.app.logging import setup_logging
from deploybox.app.metrics import get_metrics_response
from deploybox.app.middleware import LoggingMiddleware
from deploybox.control import ExpirationReaper
from deploybox.core.errors import DeployBoxError, InternalError
from deploybox.core.logging_schema import LogEvent
from deploybox.infra import close_db, get_engine, get_session_factory, init_db
from deploybox.services import LifecycleManager, PortAllocator
from deploybox.services.recovery import startup_recovery

setup_logging()
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    await init_db()

    ports = PortAllocator()
    engine = DockerEngineDriver()
    registry = SQLInstanceRegistry(get_session_factory())
    lifecycle = LifecycleManager(ports, engine, registry)

    await startup_recovery(registry, ports)

    reaper = ExpirationReaper(lifecycle, registry)
    reaper.start()

    app.state.engine = engine
    app.state.lifecycle = lifecycle
    app.state.reaper = reaper

    logger.info("Starting application", extra={"event": LogEvent.APP_STARTED})

    yield

    logger.info("Shutting down application", extra={"event": LogEvent.APP_STOPPED})
    await reaper.stop()
    await close_db()


app = FastAPI(title="deploybox", version=__version__, lifespan=lifespan)
app.add_middleware(LoggingMiddleware)


@app.exception_handler(DeployBoxError)
async def deploybox_error_handler(request: Request, exc: DeployBoxError) -> JSONResponse:
    """Handle DeployBoxError exceptions."""
    return JSONResponse(
        status_code=exc.status_code,
        content=exc.to_response().model_dump(),
    )


@app.exception_handler(Exception)
async def unhandled_error_handler(request: Request, exc: Exception) -> JSONResponse:
    """Render unexpected exceptions with the standard error envelope."""
    logger.exception(
        "Unhandled error on %s %s",
        request.method,
        request.url.path,
        extra={"event": LogEvent.REQUEST_FAILED},
    )
    error = InternalError()
    return JSONResponse(status_code=error.status_code, content=error.to_response().model_dump())


app.include_router(instances_router, prefix="/api/v1")


async def _check_service(check_fn: Callable[[], Awaitable[None]]) -> str:
    """Check service health and return status string."""
    try:
        await check_fn()
        return "connected"
    except RuntimeError:
        return "not initialized"
    except Exception as e:
        return f"error: {e}"


async def _check_database() -> None:
    engine = get_engine()
    async with engine.begin() as conn:
        await conn.execute(text("SELECT 1"))


async def _check_docker() -> None:
    engine = getattr(app.state, "engine", None)
    if engine is None:
        raise RuntimeError("Engine not initialized")
    await engine.ping()


@app.get("/health")
async def health():
    results = await asyncio.gather(
        _check_service(_check_database),
        _check_service(_check_docker),
    )

    services = {
        "database": results[0],
        "docker": results[1],
    }

    is_degraded = any(s != "connected" for s in services.values())

    lifecycle = getattr(app.state, "lifecycle", None)
    return {
        "status": "degraded" if is_degraded else "ok",
        "version": __version__,
        "services": services,
        "ports_available": lifecycle.ports_available if lifecycle else None,
    }


@app.get("/metrics", include_in_schema=False)
async def metrics():
    """Prometheus metrics endpoint."""
    if not get_settings().metrics.enabled:
        return JSONResponse(status_code=404, content={"detail": "Not Found"})
    return get_metrics_response()
