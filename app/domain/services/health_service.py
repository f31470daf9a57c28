"""
Health checks

- liveness: the process is up (no dependency checks)
- readiness: the database answers a trivial query
"""
from typing import Any

from sqlalchemy import text

from app.core.logging import get_logger
from app.db.database import AsyncSessionLocal

logger = get_logger(__name__)

STATUS_HEALTHY = "healthy"
STATUS_DEGRADED = "degraded"

_CHECK_OK = "ok"

# Sanitized, no infrastructure details
_ERROR_DB = "error: db_unavailable"


async def _check_db() -> str:
    try:
        async with AsyncSessionLocal() as session:
            await session.execute(text("SELECT 1"))
        return _CHECK_OK
    except Exception as e:
        logger.warning("Database health check failed", extra_data={"error": str(e)})
        return _ERROR_DB


async def check_readiness() -> dict[str, Any]:
    db_status = await _check_db()
    overall = STATUS_HEALTHY if db_status == _CHECK_OK else STATUS_DEGRADED
    return {"status": overall, "db": db_status}
