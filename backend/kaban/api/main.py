"""
Kaban - FastAPI Application
===========================

Application factory with routers, error mapping and lifespan.
"""

from contextlib import asynccontextmanager
from typing import AsyncGenerator, Optional

import structlog
from fastapi import FastAPI, Request, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy import text

from kaban.api import board, links, scoring, sync, tasks
from kaban.core.config import Settings, get_settings
from kaban.core.context import open_context
from kaban.core.database import Database
from kaban.core.errors import ExitCode, KabanError
from kaban.core.logging import configure_logging
from kaban.core.schemas import ErrorDetail, ErrorResponse, HealthResponse, load_board_config

logger = structlog.get_logger()

ERROR_STATUS: dict[ExitCode, int] = {
    ExitCode.NOT_FOUND: status.HTTP_404_NOT_FOUND,
    ExitCode.VALIDATION: status.HTTP_422_UNPROCESSABLE_ENTITY,
    ExitCode.CONFLICT: status.HTTP_409_CONFLICT,
    ExitCode.GENERAL_ERROR: status.HTTP_500_INTERNAL_SERVER_ERROR,
}


def error_response(code: ExitCode, message: str) -> JSONResponse:
    return JSONResponse(
        status_code=ERROR_STATUS.get(code, status.HTTP_500_INTERNAL_SERVER_ERROR),
        content=ErrorResponse(error=ErrorDetail(message=message, code=int(code))).model_dump(),
    )


# ==========================================================================
# Lifespan
# ==========================================================================

@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """
    Startup: configure logging, create tables, initialize the board from
    the board config if the store has none.

    Shutdown: close database connections.
    """
    settings: Settings = app.state.settings
    configure_logging(settings)
    logger.info("Starting Kaban", version=settings.APP_VERSION)

    if app.state.database is None:
        app.state.database = Database(settings.DATABASE_URL, echo=settings.DATABASE_ECHO)
    database: Database = app.state.database

    await database.create_all()
    async with open_context(database, settings) as context:
        await context.ensure_board(load_board_config(settings.BOARD_CONFIG_PATH))
    logger.info("Database initialized")

    yield

    logger.info("Shutting down Kaban")
    await database.dispose()
    logger.info("Database connections closed")


# ==========================================================================
# App Factory
# ==========================================================================

def create_app(
    settings: Optional[Settings] = None,
    database: Optional[Database] = None,
) -> FastAPI:
    """
    Create and configure the FastAPI application.

    A database may be passed in (tests do); otherwise it is opened from
    DATABASE_URL on startup.
    """
    settings = settings or get_settings()

    app = FastAPI(
        title=settings.APP_NAME,
        version=settings.APP_VERSION,
        description="Kanban board shared by humans and coding agents",
        docs_url="/docs" if settings.is_development else None,
        redoc_url="/redoc" if settings.is_development else None,
        openapi_url="/openapi.json" if settings.is_development else None,
        lifespan=lifespan,
    )
    app.state.settings = settings
    app.state.database = database

    # ==========================================================================
    # Middleware
    # ==========================================================================

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.CORS_ORIGINS,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # ==========================================================================
    # Exception Handlers
    # ==========================================================================

    @app.exception_handler(KabanError)
    async def kaban_exception_handler(request: Request, exc: KabanError) -> JSONResponse:
        logger.info(
            "Request rejected",
            code=exc.code.name,
            message=exc.message,
            path=request.url.path,
        )
        return error_response(exc.code, exc.message)

    @app.exception_handler(Exception)
    async def global_exception_handler(request: Request, exc: Exception) -> JSONResponse:
        """Handle uncaught exceptions."""
        logger.error(
            "Unhandled exception",
            exc_info=exc,
            path=request.url.path,
            method=request.method,
        )
        detail = str(exc) if settings.is_development else "An unexpected error occurred"
        return error_response(ExitCode.GENERAL_ERROR, detail)

    # ==========================================================================
    # Routers
    # ==========================================================================

    @app.get(
        "/health",
        response_model=HealthResponse,
        tags=["Health"],
        summary="Health check",
    )
    async def health_check(request: Request) -> HealthResponse:
        """Application and database status."""
        database_status = "connected"
        try:
            async with request.app.state.database.session() as session:
                await session.execute(text("SELECT 1"))
        except Exception as exc:
            logger.warning("Health check database failure", error=str(exc))
            database_status = "unavailable"

        return HealthResponse(
            status="healthy" if database_status == "connected" else "degraded",
            version=settings.APP_VERSION,
            environment=settings.ENVIRONMENT,
            database=database_status,
        )

    app.include_router(board.router, prefix=settings.API_V1_PREFIX)
    app.include_router(tasks.router, prefix=settings.API_V1_PREFIX)
    app.include_router(links.router, prefix=settings.API_V1_PREFIX)
    app.include_router(scoring.router, prefix=settings.API_V1_PREFIX)
    app.include_router(sync.router, prefix=settings.API_V1_PREFIX)

    @app.get("/", tags=["Root"])
    async def root() -> dict:
        """Root endpoint with API info."""
        return {
            "name": settings.APP_NAME,
            "version": settings.APP_VERSION,
            "docs": "/docs" if settings.is_development else "Disabled in production",
            "health": "/health",
            "api": settings.API_V1_PREFIX,
        }

    return app


# ==========================================================================
# Application Instance
# ==========================================================================

app = create_app()


# ==========================================================================
# Development Server
# ==========================================================================

if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "kaban.api.main:app",
        host="0.0.0.0",
        port=8000,
        reload=get_settings().is_development,
        log_level="info",
    )
