"""Tests for the batch sync manager."""

import pytest
from unittest.mock import AsyncMock, Mock, patch

from attendance_sync.core.circuit_breaker import CircuitBreaker, CircuitState
from attendance_sync.core.security import CredentialDecryptionError
from attendance_sync.integrations.provider import AttendanceProviderClient, ProviderAPIError, ProviderClientError
from attendance_sync.models.attendance import TrackingKind
from attendance_sync.schemas.provider import AttendanceDetail, Course
from attendance_sync.schemas.sync import BatchStatus
from attendance_sync.services.sync.effects import EffectsExecutor
from attendance_sync.services.sync.entities import SyncStats, SyncUser
from attendance_sync.services.sync.sync_manager import AttendanceSyncManager, chunked, derive_status
from factories import ABSENT, PRESENT, make_entry, official_entry

DECRYPT = "attendance_sync.services.sync.sync_manager.decrypt_credential"


def make_user(n: int) -> SyncUser:
    return SyncUser(
        auth_id=f"auth-{n}",
        username=f"user{n}",
        email=f"user{n}@example.com",
        provider_token=f"tag:cipher-{n}",
        provider_iv=f"iv-{n}",
    )


@pytest.fixture
def attendance_detail():
    return AttendanceDetail.model_validate({
        "studentAttendanceData": {
            "2025-10-24": {
                "1": official_entry("101", PRESENT),
                "2": official_entry("101", ABSENT),
            },
        },
    })


@pytest.fixture
def mock_store():
    store = AsyncMock()
    store.get_tracked_entries.return_value = []
    store.delete_tracked_entries.return_value = 0
    store.mark_as_correction.return_value = 0
    store.insert_notifications.return_value = 0
    return store


@pytest.fixture
def mock_provider(attendance_detail):
    provider = Mock()
    provider.fetch_courses = AsyncMock(return_value=[Course(id=101, name="Data Structures")])
    provider.fetch_attendance_detail = AsyncMock(return_value=attendance_detail)
    return provider


@pytest.fixture
def breaker():
    return CircuitBreaker(failure_threshold=3, recovery_timeout=60.0, name="test-provider")


@pytest.fixture
def manager(mock_store, mock_provider, breaker):
    return AttendanceSyncManager(
        store=mock_store,
        provider=mock_provider,
        breaker=breaker,
        effects=EffectsExecutor(mock_store, email_service=None),
        batch_size=10,
        concurrency_limit=2,
        chunk_delay=0,
        dashboard_url="https://app.test/dashboard",
    )


class TestDeriveStatus:
    """Batch outcome from error counts."""

    @pytest.mark.parametrize("total,errors,expected", [
        (5, 0, BatchStatus.SUCCESS),
        (5, 2, BatchStatus.PARTIAL_FAILURE),
        (5, 5, BatchStatus.FAILURE),
        (1, 1, BatchStatus.FAILURE),
        (0, 0, BatchStatus.SUCCESS),
    ])
    def test_status(self, total, errors, expected):
        assert derive_status(total, errors) == expected

    def test_http_codes(self):
        assert BatchStatus.SUCCESS.http_status == 200
        assert BatchStatus.PARTIAL_FAILURE.http_status == 207
        assert BatchStatus.FAILURE.http_status == 500


def test_chunked():
    users = [make_user(n) for n in range(5)]

    chunks = chunked(users, 2)

    assert [len(chunk) for chunk in chunks] == [2, 2, 1]


class TestSyncUser:
    """Single-user pipeline."""

    @pytest.mark.asyncio
    async def test_full_pipeline(self, manager, mock_store, mock_provider):
        mock_store.get_tracked_entries.return_value = [
            make_entry(1, session="I", attendance=PRESENT, kind=TrackingKind.CORRECTION),
            make_entry(2, session="II", attendance=PRESENT),
            make_entry(3, session="III", attendance=PRESENT),
        ]
        user = make_user(1)

        with patch(DECRYPT, return_value="provider-token") as decrypt:
            stats = await manager.sync_user(user)

        decrypt.assert_called_once_with("iv-1", "tag:cipher-1")
        mock_provider.fetch_courses.assert_awaited_once_with("provider-token")
        mock_provider.fetch_attendance_detail.assert_awaited_once_with("provider-token")
        mock_store.get_tracked_entries.assert_awaited_once_with("auth-1")
        mock_store.delete_tracked_entries.assert_awaited_once_with("auth-1", [1])
        mock_store.mark_as_correction.assert_awaited_once_with("auth-1", [2])
        notifications = mock_store.insert_notifications.await_args.args[0]
        assert [n.title for n in notifications] == ["Attendance Conflict"]
        mock_store.touch_last_synced.assert_awaited_once_with("auth-1")
        assert stats == SyncStats(processed=1, deletions=1, conflicts=1, updates=1, errors=0)

    @pytest.mark.asyncio
    async def test_no_tracked_entries_still_touches_timestamp(self, manager, mock_store):
        with patch(DECRYPT, return_value="provider-token"):
            stats = await manager.sync_user(make_user(1))

        assert stats == SyncStats(processed=1)
        mock_store.delete_tracked_entries.assert_not_awaited()
        mock_store.touch_last_synced.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_decryption_failure_is_a_user_error(self, manager, mock_provider, mock_store):
        with patch(DECRYPT, side_effect=CredentialDecryptionError("Decryption failed")):
            stats = await manager.sync_user(make_user(1))

        assert stats == SyncStats(errors=1)
        mock_provider.fetch_courses.assert_not_awaited()
        mock_store.touch_last_synced.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_missing_credentials(self, manager, mock_provider):
        user = SyncUser(auth_id="auth-9", username="nobody", provider_token=None, provider_iv=None)

        stats = await manager.sync_user(user)

        assert stats.errors == 1
        mock_provider.fetch_courses.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_provider_failure_is_a_user_error(self, manager, mock_provider, mock_store, breaker):
        mock_provider.fetch_attendance_detail.side_effect = ProviderAPIError("HTTP 503", status=503)

        with patch(DECRYPT, return_value="provider-token"):
            stats = await manager.sync_user(make_user(1))

        assert stats == SyncStats(errors=1)
        assert breaker.failure_count == 1
        mock_store.get_tracked_entries.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_client_error_does_not_trip_breaker(self, manager, mock_provider, breaker):
        mock_provider.fetch_courses.side_effect = ProviderClientError("HTTP 401", status=401)

        with patch(DECRYPT, return_value="provider-token"):
            for n in range(5):
                stats = await manager.sync_user(make_user(n))
                assert stats.errors == 1

        assert breaker.state == CircuitState.CLOSED
        assert breaker.failure_count == 0

    @pytest.mark.asyncio
    async def test_open_circuit_skips_provider(self, manager, mock_provider, breaker):
        await breaker.force_open("test")

        with patch(DECRYPT, return_value="provider-token"):
            stats = await manager.sync_user(make_user(1))

        assert stats.errors == 1
        mock_provider.fetch_courses.assert_not_awaited()
        assert breaker.failure_count == 0

    @pytest.mark.asyncio
    async def test_bad_tracked_date_is_a_user_error(self, manager, mock_store):
        mock_store.get_tracked_entries.return_value = [make_entry(1, date="last tuesday")]

        with patch(DECRYPT, return_value="provider-token"):
            stats = await manager.sync_user(make_user(1))

        assert stats == SyncStats(errors=1)
        mock_store.delete_tracked_entries.assert_not_awaited()


class TestRunBatch:
    """Chunked batch processing."""

    @pytest.mark.asyncio
    async def test_partial_failure(self, manager, mock_store):
        users = [make_user(n) for n in range(5)]

        def decrypt(iv, token):
            if iv in ("iv-1", "iv-3"):
                raise CredentialDecryptionError("Decryption failed")
            return "provider-token"

        with patch(DECRYPT, side_effect=decrypt):
            result = await manager.run_batch(users)

        assert result.total_users == 5
        assert result.stats.errors == 2
        assert result.stats.processed == 3
        assert result.status == BatchStatus.PARTIAL_FAILURE
        assert result.success is False
        assert mock_store.touch_last_synced.await_count == 3

    @pytest.mark.asyncio
    async def test_all_succeed(self, manager):
        with patch(DECRYPT, return_value="provider-token"):
            result = await manager.run_batch([make_user(n) for n in range(4)])

        assert result.status == BatchStatus.SUCCESS
        assert result.stats.processed == 4
        assert result.success is True

    @pytest.mark.asyncio
    async def test_all_fail(self, manager):
        with patch(DECRYPT, side_effect=CredentialDecryptionError("bad key")):
            result = await manager.run_batch([make_user(n) for n in range(3)])

        assert result.status == BatchStatus.FAILURE
        assert result.stats.errors == 3

    @pytest.mark.asyncio
    async def test_users_with_empty_reports_succeed(self, manager, mock_store, breaker):
        # New-semester accounts: the provider answers with no attendance yet
        client = AttendanceProviderClient(base_url="https://provider.test/api")
        client._make_api_request = AsyncMock(return_value={"studentAttendanceData": {}})
        manager.provider.fetch_attendance_detail = client.fetch_attendance_detail
        mock_store.get_tracked_entries.return_value = [make_entry(1)]

        with patch(DECRYPT, return_value="provider-token"):
            result = await manager.run_batch([make_user(n) for n in range(4)])

        assert result.stats.errors == 0
        assert result.stats.processed == 4
        assert result.status == BatchStatus.SUCCESS
        assert breaker.failure_count == 0
        mock_store.delete_tracked_entries.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_escaped_exception_counts_as_error(self, manager):
        async def flaky(user):
            if user.auth_id == "auth-0":
                raise RuntimeError("boom")
            return SyncStats(processed=1, deletions=2)

        manager.sync_user = flaky
        result = await manager.run_batch([make_user(0), make_user(1), make_user(2)])

        assert result.stats.errors == 1
        assert result.stats.processed == 2
        assert result.stats.deletions == 4
        assert result.status == BatchStatus.PARTIAL_FAILURE

    @pytest.mark.asyncio
    async def test_delay_between_chunks_only(self, manager):
        manager.chunk_delay = 1.0

        with patch(DECRYPT, return_value="provider-token"), \
                patch("attendance_sync.services.sync.sync_manager.asyncio.sleep", new_callable=AsyncMock) as sleep:
            await manager.run_batch([make_user(n) for n in range(5)])

        assert sleep.await_count == 2
        sleep.assert_awaited_with(1.0)

    @pytest.mark.asyncio
    async def test_empty_batch(self, manager):
        result = await manager.run_batch([])

        assert result.status == BatchStatus.SUCCESS
        assert result.stats == SyncStats()


class TestSelectUsers:
    """User selection is delegated to the store."""

    @pytest.mark.asyncio
    async def test_oldest_batch(self, manager, mock_store):
        mock_store.select_users_for_sync.return_value = [make_user(1)]

        users = await manager.select_users()

        assert users == [make_user(1)]
        mock_store.select_users_for_sync.assert_awaited_once_with(target_username=None, auth_id=None, limit=10)

    @pytest.mark.asyncio
    async def test_run_selects_target(self, manager, mock_store):
        mock_store.select_users_for_sync.return_value = []

        result = await manager.run(target_username="alice")

        assert result.total_users == 0
        mock_store.select_users_for_sync.assert_awaited_once_with(target_username="alice", auth_id=None, limit=10)
