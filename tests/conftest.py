"""Pytest configuration and fixtures."""

import os
import tempfile

# Keep logs and token databases out of the real home directory
os.environ.setdefault("GTASKS_SYNC_HOME", tempfile.mkdtemp(prefix="gtasks-sync-test-"))

import pytest

from domains.google_tasks.services.token_store import TokenStore
from domains.google_tasks.types import SyncSettings


class FakeTokens:
    """Access token provider that counts refreshes."""

    def __init__(self, access_token: str = "token-1"):
        self.access_token = access_token
        self.refresh_count = 0
        self.authenticated = True

    async def get_access_token(self) -> str:
        return self.access_token

    async def refresh_access_token(self) -> None:
        self.refresh_count += 1
        self.access_token = f"token-{self.refresh_count + 1}"

    async def ensure_valid(self) -> bool:
        return self.authenticated

    def is_authenticated(self) -> bool:
        return self.authenticated


class RecordingNotifier:
    """Collects notifications instead of sending them."""

    def __init__(self):
        self.messages = []

    def notify(self, message: str) -> None:
        self.messages.append(message)


@pytest.fixture
def settings():
    """Settings with a test client and an OS-assigned callback port."""
    return SyncSettings(client_id="test-client-id", oauth_port=0, auth_timeout=5.0)


@pytest.fixture
def token_store(tmp_path):
    """Fresh token store per test."""
    store = TokenStore(tmp_path / "tokens.db")
    yield store
    store.close()


@pytest.fixture
def fake_tokens():
    return FakeTokens()


@pytest.fixture
def notifier():
    return RecordingNotifier()


@pytest.fixture
def vault_dir(tmp_path):
    """Empty vault folder."""
    root = tmp_path / "vault"
    root.mkdir()
    return root
