"""
FastAPI application for the matching service.

Run with:
    job-matcher serve
or
    uvicorn --factory api.app:create_app
"""

from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from loguru import logger

from matcher.service import MatchService
from shared.ai import AIService
from shared.config import Settings, get_settings
from shared.database import Database
from shared.exceptions import MatchServiceError

from .routes import router


async def service_error_handler(request: Request, exc: MatchServiceError) -> JSONResponse:
    """Map service errors to their status code with an {"error": ...} body."""
    logger.warning(f"{request.method} {request.url.path} -> {exc.status_code}: {exc.message}")
    return JSONResponse(status_code=exc.status_code, content={"error": exc.message})


async def validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    logger.warning(f"Invalid request body for {request.url.path}: {exc.errors()}")
    return JSONResponse(status_code=400, content={"error": "Invalid request body"})


async def general_error_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.exception(f"Unexpected error in {request.url.path}: {exc}")
    return JSONResponse(
        status_code=500,
        content={"error": "Internal server error", "details": str(exc)},
    )


def create_app(
    settings: Optional[Settings] = None,
    db: Optional[Database] = None,
    ai_service: Optional[AIService] = None,
) -> FastAPI:
    """Build the app; collaborators can be injected for tests."""
    settings = settings or get_settings()
    db = db or Database(settings)
    ai_service = ai_service or AIService(settings)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        try:
            await db.connect()
            yield
        finally:
            try:
                await ai_service.close()
            finally:
                await db.disconnect()

    app = FastAPI(
        title="Job Matcher API",
        description="Resume-to-job matching and scoring",
        version="1.0.0",
        lifespan=lifespan,
    )
    app.state.settings = settings
    app.state.db = db
    app.state.match_service = MatchService(db, ai_service, settings)

    app.add_exception_handler(MatchServiceError, service_error_handler)
    app.add_exception_handler(RequestValidationError, validation_error_handler)
    app.add_exception_handler(Exception, general_error_handler)
    app.include_router(router)
    return app
