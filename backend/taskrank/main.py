"""FastAPI application entrypoint and router wiring for the backend."""

from __future__ import annotations

from contextlib import asynccontextmanager
from typing import TYPE_CHECKING

from fastapi import APIRouter, FastAPI, Request, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from fastapi_pagination import add_pagination

from taskrank.api.tasks import router as tasks_router
from taskrank.core.config import settings
from taskrank.core.error_handling import install_error_handling
from taskrank.core.logging import configure_logging, get_logger
from taskrank.db.session import async_engine, async_session_maker, init_db, ping_database
from taskrank.schemas.health import HealthStatusResponse
from taskrank.services.tasks.service import build_task_service

if TYPE_CHECKING:
    from collections.abc import AsyncIterator

    from sqlalchemy.ext.asyncio import AsyncEngine, async_sessionmaker
    from sqlmodel.ext.asyncio.session import AsyncSession

configure_logging()
logger = get_logger(__name__)
OPENAPI_TAGS = [
    {
        "name": "health",
        "description": (
            "Service liveness/readiness probes used by infrastructure and runtime checks."
        ),
    },
    {
        "name": "tasks",
        "description": (
            "Owner-scoped task CRUD, filtered listing, and primary/secondary reordering."
        ),
    },
]


@asynccontextmanager
async def lifespan(fastapi_app: FastAPI) -> AsyncIterator[None]:
    """Initialize application resources before serving requests."""
    logger.info(
        "app.lifecycle.starting",
        extra={
            "environment": settings.environment,
            "db_auto_migrate": settings.db_auto_migrate,
        },
    )
    engine = fastapi_app.state.db_engine
    await init_db(None if engine is async_engine else engine)
    logger.info("app.lifecycle.started")
    try:
        yield
    finally:
        logger.info("app.lifecycle.stopped")


def _install_health_routes(fastapi_app: FastAPI) -> None:
    @fastapi_app.get(
        "/health",
        tags=["health"],
        response_model=HealthStatusResponse,
        summary="Health Check",
        description="Lightweight liveness probe endpoint.",
    )
    def health() -> HealthStatusResponse:
        """Lightweight liveness probe endpoint."""
        return HealthStatusResponse(ok=True)

    @fastapi_app.get(
        "/healthz",
        tags=["health"],
        response_model=HealthStatusResponse,
        summary="Health Alias Check",
        description="Alias liveness probe endpoint for platform compatibility.",
    )
    def healthz() -> HealthStatusResponse:
        """Alias liveness probe endpoint for platform compatibility."""
        return HealthStatusResponse(ok=True)

    @fastapi_app.get(
        "/readyz",
        tags=["health"],
        response_model=HealthStatusResponse,
        summary="Readiness Check",
        description="Readiness probe; fails while the database is unreachable.",
        responses={
            status.HTTP_503_SERVICE_UNAVAILABLE: {
                "description": "Database is unreachable.",
                "content": {"application/json": {"example": {"ok": False}}},
            },
        },
    )
    async def readyz(request: Request) -> HealthStatusResponse | JSONResponse:
        """Readiness probe endpoint for service orchestration checks."""
        if await ping_database(request.app.state.db_engine):
            return HealthStatusResponse(ok=True)
        return JSONResponse(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            content=HealthStatusResponse(ok=False).model_dump(),
        )


def create_app(
    *,
    engine: AsyncEngine | None = None,
    session_maker: async_sessionmaker[AsyncSession] | None = None,
) -> FastAPI:
    """Build the API application bound to a database engine and session factory."""
    fastapi_app = FastAPI(
        title="Taskrank API",
        version="0.1.0",
        lifespan=lifespan,
        openapi_tags=OPENAPI_TAGS,
    )
    fastapi_app.state.db_engine = engine or async_engine
    fastapi_app.state.task_service = build_task_service(
        session_maker or async_session_maker,
        settings=settings,
    )

    origins = [o.strip() for o in settings.cors_origins.split(",") if o.strip()]
    if origins:
        fastapi_app.add_middleware(
            CORSMiddleware,
            allow_origins=origins,
            allow_credentials=True,
            allow_methods=["*"],
            allow_headers=["*"],
            expose_headers=["X-Total-Count", "X-Limit", "X-Offset"],
        )
        logger.info("app.cors.enabled", extra={"origins_count": len(origins)})
    else:
        logger.info("app.cors.disabled")

    install_error_handling(fastapi_app)
    _install_health_routes(fastapi_app)

    api_v1 = APIRouter(prefix="/api/v1")
    api_v1.include_router(tasks_router)
    fastapi_app.include_router(api_v1)

    add_pagination(fastapi_app)
    logger.debug("app.routes.registered", extra={"count": len(fastapi_app.routes)})
    return fastapi_app


app = create_app()
