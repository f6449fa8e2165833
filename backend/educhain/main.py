"""EduChain Backend API - Main Application"""
import structlog
from contextlib import asynccontextmanager
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from educhain.config import get_settings
from educhain.api.v1.router import api_router
from educhain.models.database import init_db, close_db
from educhain.services.errors import SettlementError
from educhain.services.stellar_client import close_stellar_client
from educhain.services.reconciliation import (
    start_reconciliation_scheduler,
    stop_reconciliation_scheduler,
)

# Configure structured logging
structlog.configure(
    processors=[
        structlog.stdlib.filter_by_level,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        structlog.processors.UnicodeDecoder(),
        structlog.dev.ConsoleRenderer()
    ],
    wrapper_class=structlog.stdlib.BoundLogger,
    context_class=dict,
    logger_factory=structlog.stdlib.LoggerFactory(),
    cache_logger_on_first_use=True,
)

logger = structlog.get_logger()
settings = get_settings()


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan manager"""
    logger.info("Starting EduChain API", version=settings.app_version, network=settings.stellar_network)

    await init_db()
    logger.info("Database initialized")

    # Replays settlements confirmed on the ledger but never recorded off-chain
    if settings.reconciliation_interval > 0:
        await start_reconciliation_scheduler(interval_seconds=settings.reconciliation_interval)

    yield

    await stop_reconciliation_scheduler()
    await close_stellar_client()
    await close_db()
    logger.info("EduChain API shutdown complete")


async def settlement_error_handler(request: Request, exc: SettlementError) -> JSONResponse:
    """Render settlement errors as {"error", "code", "details"}"""
    log = logger.error if exc.status_code >= 500 else logger.warning
    log(
        "Request failed",
        path=request.url.path,
        code=exc.code,
        error=exc.detail,
    )
    return JSONResponse(
        status_code=exc.status_code,
        content={"error": exc.detail, "code": exc.code, "details": exc.extras},
    )


async def unhandled_error_handler(request: Request, exc: Exception) -> JSONResponse:
    """Anything that escaped the service layer still gets the error envelope"""
    logger.exception("Unhandled error", path=request.url.path, error=str(exc))
    return JSONResponse(
        status_code=500,
        content={
            "error": "Internal server error",
            "code": "internal_error",
            "details": {"type": type(exc).__name__},
        },
    )


def create_app() -> FastAPI:
    """Create FastAPI application"""
    app = FastAPI(
        title=settings.app_name,
        version=settings.app_version,
        description="API for EduChain E4C token issuance, custody and settlement on Stellar",
        lifespan=lifespan,
        docs_url="/docs",
        redoc_url="/redoc",
    )

    # CORS middleware
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.add_exception_handler(SettlementError, settlement_error_handler)
    app.add_exception_handler(Exception, unhandled_error_handler)

    app.include_router(api_router, prefix=settings.api_prefix)

    @app.get("/health")
    async def health_check():
        """Health check endpoint"""
        return {
            "status": "healthy",
            "version": settings.app_version,
            "network": settings.stellar_network,
            "asset": settings.asset_code,
        }

    return app


app = create_app()

if __name__ == "__main__":
    import uvicorn
    uvicorn.run(
        "educhain.main:app",
        host=settings.api_host,
        port=settings.api_port,
        reload=settings.debug,
    )
