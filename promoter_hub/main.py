from contextlib import asynccontextmanager
from datetime import datetime, timezone
import logging

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from fastapi.middleware.cors import CORSMiddleware
from sqlalchemy import text

from promoter_hub.config import settings
from promoter_hub.api.v1.router import api_router
from promoter_hub.database import init_db, async_session_factory
from promoter_hub.services.exceptions import ReferralError


logging.basicConfig(
    level=settings.LOG_LEVEL,
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Application lifespan handler.

    Startup creates missing tables; schema changes go through alembic.
    """
    logger.info(f"Starting {settings.APP_NAME} v{settings.APP_VERSION}")
    await init_db()

    yield

    logger.info("Shutting down...")


OPENAPI_TAGS = [
    {"name": "Promoters", "description": "Promoter profile, invitations, commissions and analytics"},
    {"name": "Public Invitations", "description": "Invitation landing page, acceptance and decline"},
    {"name": "Admin Promoters", "description": "Application review, tier overrides and commission payouts"},
]

API_DESCRIPTION = """
## Promoter Referral & Commission Engine

Promoters recruit new store partners with time-boxed invitation codes and earn
commissions when an invitation converts into an active partner.

### Error Codes

| Code | Description |
|------|-------------|
| 400 | Bad Request - Email mismatch |
| 401 | Unauthorized - Invalid/expired token |
| 403 | Forbidden - Missing capability, quota exhausted or ineligible |
| 404 | Not Found - Resource doesn't exist |
| 409 | Conflict - Invalid state, duplicate target or already registered |
| 410 | Gone - Invitation expired |
| 422 | Unprocessable Entity - Validation failed |
| 503 | Service Unavailable - Transient conflict, retry |
"""

app = FastAPI(
    title=settings.APP_NAME,
    version=settings.APP_VERSION,
    description=API_DESCRIPTION,
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


@app.exception_handler(ReferralError)
async def referral_exception_handler(request: Request, exc: ReferralError):
    """Map domain errors to their HTTP status."""
    return JSONResponse(
        status_code=exc.status_code,
        content={
            "error": exc.message,
            "code": exc.code,
            "path": str(request.url.path),
        },
    )


@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception):
    logger.exception(f"Unhandled error on {request.method} {request.url.path}")
    content = {
        "error": "Internal server error",
        "code": "INTERNAL_ERROR",
        "path": str(request.url.path),
    }
    if settings.DEBUG:
        content["detail"] = f"{type(exc).__name__}: {exc}"
    return JSONResponse(status_code=500, content=content)


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

    try:
        async with async_session_factory() as session:
            result = await session.execute(text("SELECT 1"))
            result.scalar()
            health_status["checks"]["database"] = "connected"
    except Exception as e:
        health_status["status"] = "unhealthy"
        health_status["checks"]["database"] = f"error: {str(e)}"

    if health_status["status"] == "unhealthy":
        return JSONResponse(status_code=503, content=health_status)

    return health_status
