"""
Lead Intelligence Pipeline - FastAPI Application Entry Point.

Run with:
    uvicorn lead_intel.main:app --reload --port 8000
"""

import logging
import sys
from contextlib import asynccontextmanager
from typing import AsyncGenerator, List

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from lead_intel.core.config import Settings, get_settings
from lead_intel.core.diagnostics import init_error_tracking
from lead_intel.api.webhooks import router as webhook_router, pipeline_router, test_router

SERVICE_NAME = "Lead Intelligence Pipeline"
VERSION = "1.0.0"

NOISY_LOGGERS = ("httpx", "httpcore", "hpack", "postgrest")


def setup_logging() -> logging.Logger:
    """Send application logs to stdout once, at DEBUG or INFO."""
    level = logging.DEBUG if get_settings().DEBUG else logging.INFO

    root_logger = logging.getLogger()
    root_logger.setLevel(level)

    if not any(getattr(h, "_lead_intel", False) for h in root_logger.handlers):
        handler = logging.StreamHandler(sys.stdout)
        handler.setFormatter(logging.Formatter(
            "%(asctime)s - %(name)s - %(levelname)s - %(message)s",
            datefmt="%Y-%m-%d %H:%M:%S"
        ))
        handler._lead_intel = True
        root_logger.addHandler(handler)

    for name in NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)

    return logging.getLogger(__name__)


logger = setup_logging()


def missing_settings(settings: Settings) -> List[str]:
    """Names of settings the pipeline cannot run without."""
    required = {
        "SUPABASE_URL": settings.SUPABASE_URL,
        "SUPABASE_KEY": settings.SUPABASE_KEY,
        "OPENAI_API_KEY": settings.OPENAI_API_KEY,
        "OPENAI_INDIVIDUAL_PROMPT_ID": settings.OPENAI_INDIVIDUAL_PROMPT_ID,
        "OPENAI_COMPLETE_PROMPT_ID": settings.OPENAI_COMPLETE_PROMPT_ID,
    }
    return [name for name, value in required.items() if not value]


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator:
    settings = get_settings()
    logger.info(
        f"{SERVICE_NAME} {VERSION} starting "
        f"(table={settings.CALLS_TABLE}, history_limit={settings.HISTORY_LIMIT})"
    )

    for name in missing_settings(settings):
        logger.warning(f"{name} not configured!")

    init_error_tracking()

    yield

    logger.info(f"{SERVICE_NAME} shutting down...")


def create_app() -> FastAPI:
    """Create and configure the FastAPI application."""
    settings = get_settings()

    app = FastAPI(
        title=SERVICE_NAME,
        version=VERSION,
        lifespan=lifespan,
        docs_url="/docs" if settings.DEBUG else None,
        redoc_url=None,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_methods=["*"],
        allow_headers=["*"],
    )

    for router in (webhook_router, pipeline_router, test_router):
        app.include_router(router)

    return app


app = create_app()


@app.get("/", tags=["root"])
async def root():
    """Service info and the pipeline routes."""
    return {
        "service": SERVICE_NAME,
        "version": VERSION,
        "status": "running",
        "routes": sorted(
            f"{method} {route.path}"
            for route in app.routes
            if route.path.startswith(("/webhook", "/pipeline"))
            for method in getattr(route, "methods", ())
        ),
    }


@app.exception_handler(Exception)
async def global_exception_handler(request, exc):
    """Global exception handler for unhandled errors."""
    logger.error(f"Unhandled error: {exc}", exc_info=True)
    return JSONResponse(
        status_code=500,
        content={
            "error": "Internal server error",
            "message": str(exc) if get_settings().DEBUG else "An error occurred"
        }
    )


def run() -> None:
    """Console entry point: serve the app with uvicorn."""
    import uvicorn

    settings = get_settings()
    uvicorn.run(
        "lead_intel.main:app",
        host="0.0.0.0",
        port=8000,
        reload=settings.DEBUG,
        log_level="debug" if settings.DEBUG else "info"
    )


if __name__ == "__main__":
    run()
