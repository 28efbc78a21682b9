import logging
import time

from fastapi import APIRouter, Request
from fastapi.responses import JSONResponse
from sqlalchemy import text

from sample_library.schemas.health import HealthResponse
from sample_library.settings import settings

logger = logging.getLogger(__name__)

router = APIRouter(tags=["health"])


async def _check_database(request: Request) -> bool:
    try:
        async with request.app.state.engine.connect() as conn:
            await conn.execute(text("SELECT 1"))
    except Exception as exc:
        logger.warning("Database health check failed: %s", exc)
        return False
    return True


@router.get(
    "/health",
    response_model=HealthResponse,
    responses={503: {"model": HealthResponse, "description": "Database unreachable"}},
)
async def health_check(request: Request) -> HealthResponse | JSONResponse:
    started_at = getattr(request.app.state, "started_at", None)
    uptime = time.monotonic() - started_at if started_at is not None else 0.0

    database_ok = await _check_database(request)
    response = HealthResponse(
        status="ok" if database_ok else "degraded",
        version=settings.app_version,
        database="ok" if database_ok else "unreachable",
        uptime_seconds=round(uptime, 3),
    )
    if not database_ok:
        return JSONResponse(status_code=503, content=response.model_dump(by_alias=True))
    return response
