"""
Sync Manager Service

Batch driver for attendance reconciliation:
- Selects users due for a sync (an explicit target or the oldest-synced batch)
- Processes them in small concurrent chunks with a pause between chunks
- Isolates failures per user so one bad account never aborts the batch
- Aggregates per-user counters and derives the batch outcome
"""

import asyncio
import logging
from dataclasses import dataclass, field
from typing import List, Optional, Sequence

from attendance_sync.core.circuit_breaker import CircuitBreaker, CircuitBreakerOpenError
from attendance_sync.core.security import decrypt_credential, redact
from attendance_sync.integrations.provider import AttendanceProviderClient
from attendance_sync.schemas.sync import BatchStatus
from .effects import EffectsExecutor
from .entities import SyncStats, SyncUser
from .official_map import build_official_map
from .reconciliation import classify
from .store import SyncStore

logger = logging.getLogger(__name__)


def derive_status(total_users: int, errors: int) -> BatchStatus:
    """Success when nothing failed, failure when every user failed, partial otherwise."""
    if errors <= 0:
        return BatchStatus.SUCCESS
    if errors >= total_users:
        return BatchStatus.FAILURE
    return BatchStatus.PARTIAL_FAILURE


@dataclass
class BatchResult:
    """Outcome of one sync batch."""
    stats: SyncStats = field(default_factory=SyncStats)
    total_users: int = 0
    status: BatchStatus = BatchStatus.SUCCESS

    @property
    def success(self) -> bool:
        return self.status == BatchStatus.SUCCESS


def chunked(users: Sequence[SyncUser], size: int) -> List[Sequence[SyncUser]]:
    return [users[i:i + size] for i in range(0, len(users), size)]


class AttendanceSyncManager:
    """Runs reconciliation for a batch of users against the official provider."""

    def __init__(
        self,
        store: SyncStore,
        provider: AttendanceProviderClient,
        breaker: CircuitBreaker,
        effects: EffectsExecutor,
        batch_size: int = 10,
        concurrency_limit: int = 2,
        chunk_delay: float = 1.0,
        dashboard_url: str = "",
    ):
        self.store = store
        self.provider = provider
        self.breaker = breaker
        self.effects = effects
        self.batch_size = batch_size
        self.concurrency_limit = max(1, concurrency_limit)
        self.chunk_delay = chunk_delay
        self.dashboard_url = dashboard_url

    async def select_users(
        self,
        target_username: Optional[str] = None,
        auth_id: Optional[str] = None,
    ) -> List[SyncUser]:
        return await self.store.select_users_for_sync(
            target_username=target_username,
            auth_id=auth_id,
            limit=self.batch_size,
        )

    async def run(self, target_username: Optional[str] = None, auth_id: Optional[str] = None) -> BatchResult:
        """Select users and sync them."""
        users = await self.select_users(target_username=target_username, auth_id=auth_id)
        return await self.run_batch(users)

    async def run_batch(self, users: Sequence[SyncUser]) -> BatchResult:
        """
        Sync users chunk by chunk.

        Each chunk of ``concurrency_limit`` users runs concurrently and finishes
        before the next one starts.

        Args:
            users: Users to sync

        Returns:
            BatchResult with summed counters and the derived status
        """
        result = BatchResult(total_users=len(users))
        chunks = chunked(list(users), self.concurrency_limit)

        for index, chunk in enumerate(chunks):
            outcomes = await asyncio.gather(
                *(self.sync_user(user) for user in chunk),
                return_exceptions=True,
            )
            for user, outcome in zip(chunk, outcomes):
                if isinstance(outcome, BaseException):
                    if not isinstance(outcome, Exception):
                        raise outcome
                    logger.error(f"Sync escaped for user {redact('username', user.username)}: {outcome}")
                    result.stats.errors += 1
                else:
                    result.stats.merge(outcome)

            if index < len(chunks) - 1 and self.chunk_delay > 0:
                await asyncio.sleep(self.chunk_delay)

        result.status = derive_status(result.total_users, result.stats.errors)
        logger.info(
            f"Sync batch finished: {result.status.value} "
            f"(users={result.total_users}, processed={result.stats.processed}, errors={result.stats.errors})"
        )
        return result

    async def sync_user(self, user: SyncUser) -> SyncStats:
        """
        Run the full pipeline for one user.

        Any exception is logged against the redacted username and reported as
        one error in the returned counters.
        """
        try:
            stats = await self._sync_user(user)
        except CircuitBreakerOpenError as e:
            logger.warning(f"Skipping user {redact('username', user.username)}: {e}")
            return SyncStats(errors=1)
        except Exception as e:
            logger.error(f"Sync failed for user {redact('username', user.username)}: {type(e).__name__}: {e}")
            return SyncStats(errors=1)

        stats.processed += 1
        return stats

    async def _sync_user(self, user: SyncUser) -> SyncStats:
        if not (user.provider_token and user.provider_iv and user.auth_id):
            raise ValueError("Missing credentials")

        token = decrypt_credential(user.provider_iv, user.provider_token)

        courses = await self.breaker.call(self.provider.fetch_courses, token)
        detail = await self.breaker.call(self.provider.fetch_attendance_detail, token)

        course_names = {str(course.id): course.name for course in courses}
        official_map = build_official_map(detail.studentAttendanceData, course_names=course_names)

        stats = SyncStats()
        entries = await self.store.get_tracked_entries(user.auth_id)
        if entries:
            plan = classify(
                entries,
                official_map,
                user=user,
                course_names=course_names,
                dashboard_url=self.dashboard_url,
            )
            stats.merge(await self.effects.apply(user, plan))

        await self.store.touch_last_synced(user.auth_id)
        return stats
