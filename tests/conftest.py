"""Shared fixtures for the sync engine tests."""

import pytest

from attendance_sync.services.sync.entities import SyncUser


@pytest.fixture
def sync_user():
    return SyncUser(
        auth_id="auth-1",
        username="alice",
        email="alice@example.com",
        provider_token="tag:cipher",
        provider_iv="00" * 16,
    )


@pytest.fixture
def user_without_email():
    return SyncUser(auth_id="auth-2", username="bob", email=None, provider_token="t", provider_iv="i")


@pytest.fixture
def course_names():
    return {"101": "Data Structures", "202": "Operating Systems"}
