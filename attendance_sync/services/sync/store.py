"""
Record store boundary for the sync pipeline.

Each operation opens its own ``AsyncSession`` from the factory and commits
on its own, so concurrent user pipelines never share a session.
"""

import logging
from datetime import datetime, timezone
from typing import Iterable, List, Optional

from sqlalchemy import select, delete, update
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from attendance_sync.models.attendance import TrackedAttendance, TrackingKind
from attendance_sync.models.notifications import Notification
from attendance_sync.models.user import User
from .entities import NotificationPayload, SyncUser, TrackedEntry

logger = logging.getLogger(__name__)


class SyncStore:
    """Keyed select/insert/update/delete operations used by the sync manager."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        self.session_factory = session_factory

    async def select_users_for_sync(
        self,
        target_username: Optional[str] = None,
        auth_id: Optional[str] = None,
        limit: int = 10,
    ) -> List[SyncUser]:
        """
        Select users holding a provider credential.

        An explicit username or auth id selects that single user; otherwise the
        least recently synced users come first, never-synced users before all.
        """
        query = select(User).where(User.provider_token.is_not(None))
        if target_username:
            query = query.where(User.username == target_username)
        elif auth_id:
            query = query.where(User.auth_id == auth_id)
        else:
            query = query.order_by(User.last_synced_at.asc().nulls_first(), User.id).limit(limit)

        async with self.session_factory() as session:
            result = await session.execute(query)
            return [SyncUser.from_record(user) for user in result.scalars().all()]

    async def get_tracked_entries(self, auth_id: str) -> List[TrackedEntry]:
        query = (
            select(TrackedAttendance)
            .where(TrackedAttendance.auth_user_id == auth_id)
            .order_by(TrackedAttendance.id)
        )
        async with self.session_factory() as session:
            result = await session.execute(query)
            return [TrackedEntry.from_record(row) for row in result.scalars().all()]

    async def delete_tracked_entries(self, auth_id: str, ids: Iterable[int]) -> int:
        ids = list(ids)
        if not ids:
            return 0
        async with self.session_factory() as session:
            result = await session.execute(
                delete(TrackedAttendance)
                .where(TrackedAttendance.auth_user_id == auth_id)
                .where(TrackedAttendance.id.in_(ids))
            )
            await session.commit()
            return result.rowcount or 0

    async def mark_as_correction(self, auth_id: str, ids: Iterable[int]) -> int:
        ids = list(ids)
        if not ids:
            return 0
        async with self.session_factory() as session:
            result = await session.execute(
                update(TrackedAttendance)
                .where(TrackedAttendance.auth_user_id == auth_id)
                .where(TrackedAttendance.id.in_(ids))
                .values(status=TrackingKind.CORRECTION)
            )
            await session.commit()
            return result.rowcount or 0

    async def insert_notifications(self, notifications: Iterable[NotificationPayload]) -> int:
        rows = [
            Notification(
                auth_user_id=item.user_id,
                title=item.title,
                description=item.description,
                topic=item.topic,
            )
            for item in notifications
        ]
        if not rows:
            return 0
        async with self.session_factory() as session:
            session.add_all(rows)
            await session.commit()
        return len(rows)

    async def touch_last_synced(self, auth_id: str, when: Optional[datetime] = None) -> None:
        async with self.session_factory() as session:
            await session.execute(
                update(User)
                .where(User.auth_id == auth_id)
                .values(last_synced_at=when or datetime.now(timezone.utc))
            )
            await session.commit()
