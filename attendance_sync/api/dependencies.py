"""
FastAPI dependencies wiring the sync manager from application state.
"""

from fastapi import Request

from attendance_sync.core.circuit_breaker import CircuitBreaker
from attendance_sync.core.config import settings
from attendance_sync.core.database import AsyncSessionLocal
from attendance_sync.services.sync import AttendanceSyncManager, EffectsExecutor, SyncStore


def get_provider_breaker(request: Request) -> CircuitBreaker:
    return request.app.state.provider_breaker


def get_sync_manager(request: Request) -> AttendanceSyncManager:
    state = request.app.state
    store = SyncStore(AsyncSessionLocal)
    return AttendanceSyncManager(
        store=store,
        provider=state.provider_client,
        breaker=state.provider_breaker,
        effects=EffectsExecutor(store, state.email_service),
        batch_size=settings.SYNC_BATCH_SIZE,
        concurrency_limit=settings.SYNC_CONCURRENCY_LIMIT,
        chunk_delay=settings.SYNC_CHUNK_DELAY_SECONDS,
        dashboard_url=f"{settings.APP_URL.rstrip('/')}/dashboard",
    )
