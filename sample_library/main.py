import logging
import shutil
import time
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncEngine

from sample_library.audio.fingerprint import ChromaprintEngine
from sample_library.audio.metadata import MutagenMetadataEngine
from sample_library.db.engine import build_engine, create_tables
from sample_library.db.session import build_session_factory
from sample_library.errors import ServiceError
from sample_library.routers import files, health, upload
from sample_library.settings import settings

logger = logging.getLogger(__name__)


async def _check_database(engine: AsyncEngine) -> None:
    """Verify the database is reachable."""
    async with engine.connect() as conn:
        await conn.execute(text("SELECT 1"))


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    # 0. Check fpcalc availability
    if not shutil.which(settings.fpcalc_bin):
        raise SystemExit(
            f"FATAL: {settings.fpcalc_bin} not found on PATH. "
            "Install Chromaprint via: brew install chromaprint (macOS) "
            "or apt install libchromaprint-tools (Ubuntu)."
        )
    logger.info("fpcalc found on PATH")

    # 1. Check the database
    engine = build_engine(settings)
    try:
        await _check_database(engine)
        logger.info("Database connection verified")
    except Exception as exc:
        logger.debug("Database connection error: %s", exc)
        await engine.dispose()
        raise SystemExit(
            "FATAL: Cannot reach the database. "
            "Check DATABASE_URL and ensure the server is running."
        ) from exc

    if settings.create_tables_on_startup:
        await create_tables(engine)
        logger.info("Database tables ensured")

    app.state.engine = engine
    app.state.session_factory = build_session_factory(engine)

    # 2. Audio engines
    app.state.fingerprint_engine = ChromaprintEngine(
        fpcalc_bin=settings.fpcalc_bin,
        length_seconds=settings.fpcalc_length_seconds,
        timeout=settings.fingerprint_timeout_seconds,
    )
    app.state.metadata_engine = MutagenMetadataEngine()
    app.state.started_at = time.monotonic()

    yield

    # Shutdown
    await engine.dispose()
    logger.info("Database pool closed")


def register_exception_handlers(application: FastAPI) -> None:
    @application.exception_handler(ServiceError)
    async def service_error_handler(request: Request, exc: ServiceError) -> JSONResponse:
        return JSONResponse(
            status_code=exc.status_code,
            content={
                "success": False,
                "error": {
                    "code": exc.code,
                    "message": exc.message,
                },
            },
        )

    @application.exception_handler(Exception)
    async def global_exception_handler(request: Request, exc: Exception) -> JSONResponse:
        logger.exception("Unhandled error on %s %s", request.method, request.url.path)
        return JSONResponse(
            status_code=500,
            content={
                "success": False,
                "error": {
                    "code": "INTERNAL_ERROR",
                    "message": "An unexpected error occurred.",
                },
            },
        )


def create_app() -> FastAPI:
    application = FastAPI(
        title=settings.app_name,
        version=settings.app_version,
        docs_url="/docs",
        openapi_url="/openapi.json",
        lifespan=lifespan,
    )

    application.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origin_list,
        allow_credentials=True,
        allow_methods=["GET", "POST"],
        allow_headers=["*"],
    )

    application.include_router(health.router, prefix="/api")
    application.include_router(upload.router, prefix="/api")
    application.include_router(files.router, prefix="/api")

    register_exception_handlers(application)

    return application


app = create_app()
