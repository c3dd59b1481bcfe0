from fastapi import Depends, FastAPI, HTTPException
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
import uvicorn
import logging
from contextlib import asynccontextmanager

from attendance_sync import __version__
from attendance_sync.core.circuit_breaker import CircuitBreaker
from attendance_sync.core.config import settings
from attendance_sync.core.database import close_db, init_db
from attendance_sync.api.dependencies import get_provider_breaker
from attendance_sync.api.v1 import sync
from attendance_sync.integrations.email import EmailService
from attendance_sync.integrations.provider import AttendanceProviderClient

logger = logging.getLogger(__name__)


def create_provider_breaker() -> CircuitBreaker:
    return CircuitBreaker(
        failure_threshold=settings.CIRCUIT_BREAKER_FAILURE_THRESHOLD,
        recovery_timeout=settings.CIRCUIT_BREAKER_RECOVERY_TIMEOUT,
        half_open_max_requests=settings.CIRCUIT_BREAKER_HALF_OPEN_MAX_REQUESTS,
        timeout=settings.CIRCUIT_BREAKER_TIMEOUT,
        name="attendance-provider",
    )


@asynccontextmanager
async def lifespan(app: FastAPI):
    # Initialize database
    await init_db()

    missing = settings.missing_required()
    if missing:
        logger.warning(f"Sync endpoint disabled until configured: {', '.join(missing)}")

    app.state.provider_breaker = create_provider_breaker()
    app.state.provider_client = AttendanceProviderClient()
    app.state.email_service = EmailService()
    await app.state.provider_client.start()

    yield

    await app.state.provider_client.close()
    await app.state.email_service.close()
    await close_db()


app = FastAPI(
    title="Attendance Sync API",
    description="Reconciles official attendance with user-tracked corrections and extra classes",
    version=__version__,
    lifespan=lifespan
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=[settings.APP_URL] if settings.APP_URL else [],
    allow_credentials=True,
    allow_methods=["GET"],
    allow_headers=["*"],
)

app.include_router(sync.router, prefix="/api/v1", tags=["sync"])


@app.get("/health")
async def health_check():
    return {"status": "healthy", "version": __version__}


@app.get("/health/provider")
async def provider_health(breaker: CircuitBreaker = Depends(get_provider_breaker)):
    """Attendance provider circuit breaker status."""
    breaker_status = breaker.get_status()
    return {
        "status": "healthy" if breaker_status["state"] == "closed" else "degraded",
        "circuit_breaker": breaker_status,
    }


@app.exception_handler(HTTPException)
async def http_exception_handler(request, exc):
    return JSONResponse(
        status_code=exc.status_code,
        content={"detail": exc.detail, "status_code": exc.status_code}
    )


@app.exception_handler(Exception)
async def general_exception_handler(request, exc):
    logger.exception(f"Unhandled error on {request.url.path}: {exc}")
    return JSONResponse(
        status_code=500,
        content={"detail": "Internal server error", "status_code": 500}
    )


if __name__ == "__main__":
    uvicorn.run(
        "main:app",
        host=settings.HOST,
        port=settings.PORT,
        reload=settings.DEBUG,
        log_level="info" if not settings.DEBUG else "debug"
    )
