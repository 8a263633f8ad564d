import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import async_sessionmaker, create_async_engine

from apps.api.api.routes import claims, health, references
from apps.api.claims import (
    ClaimNumberSequence,
    ClaimRepository,
    ClaimService,
    ResolutionEngine,
    TimelineRecorder,
)
from apps.api.core.config import Settings, get_settings
from apps.api.core.logging import configure_logging, init_tracer, shutdown_tracer

logger = logging.getLogger(__name__)


def _to_asyncpg_dsn(dsn: str) -> str:
    """Ensure the SQLAlchemy DSN uses the asyncpg driver."""

    if dsn.startswith("postgresql+asyncpg://"):
        return dsn
    if dsn.startswith("postgresql://"):
        return "postgresql+asyncpg://" + dsn[len("postgresql://") :]
    return dsn


def build_claim_service(session_factory: async_sessionmaker, settings: Settings, *, engine=None) -> ClaimService:
    """Wire the claim service and its collaborators from settings."""

    repository = ClaimRepository(session_factory, engine=engine)
    return ClaimService(
        repository,
        timeline=TimelineRecorder(session_factory, replay_batch_size=settings.timeline_replay_batch_size),
        resolution=ResolutionEngine(base_currency=settings.base_currency),
        numbers=ClaimNumberSequence(session_factory, fallback_code=settings.claim_number_fallback_code),
    )


@asynccontextmanager
async def lifespan(app: FastAPI):  # pragma: no cover - executed by framework
    settings = get_settings()
    app_logger = configure_logging(settings)
    tracer_provider = init_tracer(settings)

    app.state.logger = app_logger
    app.state.tracer_provider = tracer_provider
    app.state.db_session_factory = None
    app.state.claim_service = None

    db_engine = create_async_engine(_to_asyncpg_dsn(settings.postgres_dsn), future=True)
    session_factory = async_sessionmaker(db_engine, expire_on_commit=False)
    service = build_claim_service(session_factory, settings, engine=db_engine)
    try:
        if settings.create_schema_on_startup:
            await service.ensure_schema()
    except (OSError, SQLAlchemyError):
        # Claim routes answer 503 while the store is unavailable.
        logger.exception("Claim store initialisation failed")
    else:
        app.state.db_session_factory = session_factory
        app.state.claim_service = service

    try:
        yield
    finally:
        await db_engine.dispose()
        shutdown_tracer(tracer_provider)


def create_app() -> FastAPI:
    settings = get_settings()
    app = FastAPI(title=settings.app_name, lifespan=lifespan)
    app.include_router(health.router)
    app.include_router(claims.router)
    app.include_router(references.suppliers_router)
    app.include_router(references.products_router)
    app.include_router(references.customers_router)
    return app


app = create_app()
