"""Shared pytest fixtures."""
from __future__ import annotations

import uuid

import pytest

from pollsync.config import SyncConfig
from pollsync.persistence import MemorySnapshotStore
from pollsync.state import TableStore


@pytest.fixture
def store() -> TableStore:
    return TableStore()


@pytest.fixture
def memory_store() -> MemorySnapshotStore:
    return MemorySnapshotStore()


@pytest.fixture
def channel() -> str:
    """A channel name no other test shares."""
    return f"test-channel-{uuid.uuid4().hex}"


@pytest.fixture
def config(tmp_path, channel) -> SyncConfig:
    return SyncConfig(
        endpoints=["ws://primary/voting-app", "ws://secondary/voting-app"],
        connect_timeout=0.5,
        max_reconnect_attempts=5,
        reconnect_delay=0,
        allow_fallback=True,
        force_simulation=False,
        data_dir=str(tmp_path / "data"),
        channel=channel,
    )
