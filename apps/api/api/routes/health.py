import logging

from fastapi import APIRouter, Request
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError

router = APIRouter(prefix="/health", tags=["health"])

logger = logging.getLogger(__name__)


@router.get("", summary="Public health probe")
async def health() -> dict[str, str]:
    return {"status": "ok"}


@router.get("/db", summary="Database connectivity probe")
async def database_health(request: Request) -> dict[str, str]:
    session_factory = getattr(request.app.state, "db_session_factory", None)
    if session_factory is None:
        return {"status": "unavailable"}
    try:
        async with session_factory() as session:
            await session.execute(text("SELECT 1"))
    except SQLAlchemyError as exc:
        logger.warning("Database health check failed: %s", exc)
        return {"status": "error", "detail": str(exc)}
    return {"status": "ok"}
