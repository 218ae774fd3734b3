from contextlib import asynccontextmanager
from datetime import datetime, timezone
import logging

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from fastapi.middleware.cors import CORSMiddleware
from sqlalchemy import text

from reception.config import settings
from reception.api.v1.router import api_router
from reception.core.exceptions import (
    ReceptionError, PolicyViolation, WorkflowError, WorkflowNotFound,
    UnknownActor, PersistenceFailure
)
from reception.database import init_db, async_session_factory


logging.basicConfig(
    level=getattr(logging, settings.LOG_LEVEL.upper(), logging.INFO),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Application lifespan handler.

    Startup:
    - Create the reception tables if missing
    """
    logger.info(f"Starting {settings.APP_NAME} v{settings.APP_VERSION}")
    await init_db()

    yield

    logger.info("Shutting down...")


OPENAPI_TAGS = [
    {"name": "Reception", "description": "Two-phase delivery reception: technical check, then front-desk validation"},
    {"name": "Health", "description": "Service and database health"},
]

app = FastAPI(
    title=settings.APP_NAME,
    version=settings.APP_VERSION,
    description="Quality control and commercial validation of raw-material deliveries.",
    lifespan=lifespan,
    docs_url="/docs",
    redoc_url="/redoc",
    openapi_tags=OPENAPI_TAGS,
)

# Add CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Include API router
app.include_router(api_router)


# Domain error -> HTTP status
ERROR_STATUS = [
    (PolicyViolation, 403),
    (WorkflowNotFound, 404),
    (UnknownActor, 401),
    (PersistenceFailure, 503),
    (WorkflowError, 409),
]


@app.exception_handler(ReceptionError)
async def reception_exception_handler(request: Request, exc: ReceptionError):
    """Map workflow errors onto HTTP responses."""
    status_code = next(
        (code for exc_type, code in ERROR_STATUS if isinstance(exc, exc_type)), 400
    )
    if status_code >= 500:
        logger.error(f"{type(exc).__name__} on {request.method} {request.url.path}: {exc.message}")

    error_detail = {
        "error": exc.message,
        "type": type(exc).__name__,
        "order_id": exc.order_id,
        "path": str(request.url.path),
        "method": request.method,
    }
    return JSONResponse(status_code=status_code, content=error_detail)


# Health check endpoint
@app.get("/health", tags=["Health"])
async def health_check():
    """Health check endpoint with database validation."""
    health_status = {
        "status": "healthy",
        "app": settings.APP_NAME,
        "version": settings.APP_VERSION,
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "checks": {
            "database": "unknown"
        }
    }

    # Check database connectivity
    try:
        async with async_session_factory() as session:
            result = await session.execute(text("SELECT 1"))
            result.scalar()
            health_status["checks"]["database"] = "connected"
    except Exception as e:
        health_status["status"] = "unhealthy"
        health_status["checks"]["database"] = f"error: {str(e)}"

    # Return 503 if unhealthy
    if health_status["status"] == "unhealthy":
        return JSONResponse(status_code=503, content=health_status)

    return health_status


@app.get("/", tags=["Root"])
async def root():
    """Root endpoint."""
    return {
        "message": f"Welcome to {settings.APP_NAME}",
        "version": settings.APP_VERSION,
        "docs": "/docs",
        "redoc": "/redoc",
    }
