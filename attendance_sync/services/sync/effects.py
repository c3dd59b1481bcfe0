"""
Effects executor.

Flushes a ``ReconciliationPlan`` to the record store and dispatches its
emails. Store failures propagate so the user's sync is counted as an error;
email failures are logged and dropped.
"""

import asyncio
import logging
from typing import List, Optional

from attendance_sync.core.security import redact
from attendance_sync.integrations.email import EmailService, EmailDeliveryResult
from .entities import EmailIntent, SyncStats, SyncUser
from .reconciliation import ReconciliationPlan
from .store import SyncStore

logger = logging.getLogger(__name__)


class EffectsExecutor:
    """Applies classification intents for one user."""

    def __init__(self, store: SyncStore, email_service: Optional[EmailService] = None):
        self.store = store
        self.email_service = email_service

    async def apply(self, user: SyncUser, plan: ReconciliationPlan) -> SyncStats:
        stats = SyncStats(conflicts=plan.conflicts)

        if plan.to_delete:
            await self.store.delete_tracked_entries(user.auth_id, plan.to_delete)
            stats.deletions += len(plan.to_delete)

        if plan.to_mark_correction:
            await self.store.mark_as_correction(user.auth_id, plan.to_mark_correction)
            stats.updates += len(plan.to_mark_correction)

        if plan.notifications:
            await self.store.insert_notifications(plan.notifications)

        if plan.emails:
            await self.dispatch_emails(user, plan.emails)

        return stats

    async def dispatch_emails(self, user: SyncUser, emails: List[EmailIntent]) -> List[EmailDeliveryResult]:
        if self.email_service is None:
            logger.debug(f"Email service not configured, skipping {len(emails)} emails")
            return []

        results = await asyncio.gather(
            *(
                self.email_service.send_email(
                    to_email=intent.to,
                    subject=intent.subject,
                    template_id=intent.template_id,
                    template_data=intent.context,
                )
                for intent in emails
            ),
            return_exceptions=True,
        )

        delivered = []
        for intent, result in zip(emails, results):
            if isinstance(result, BaseException):
                logger.error(
                    f"Email '{intent.template_id}' to user {redact('username', user.username)} raised: {result}"
                )
            elif not result.success:
                logger.warning(
                    f"Email '{intent.template_id}' to user {redact('username', user.username)} "
                    f"not delivered: {result.error_code} {result.error_message}"
                )
            else:
                delivered.append(result)
        return delivered
