"""Entry points run in a separate interpreter by the cross-process tests."""
from __future__ import annotations

import asyncio
import time

from pollsync.client import SyncClient
from pollsync.config import SyncConfig


def follow_polls(config: dict, ready, results, timeout: float = 20.0) -> None:
    """Run a fallback client, report the poll questions it ends up seeing."""
    asyncio.run(_follow_polls(SyncConfig(**config), ready, results, timeout))


async def _follow_polls(config: SyncConfig, ready, results, timeout: float) -> None:
    async with SyncClient(config, participant_id="screen") as client:
        ready.set()
        deadline = time.monotonic() + timeout
        while not client.polls() and time.monotonic() < deadline:
            await asyncio.sleep(0.02)
        results.put([p.question for p in client.polls()])
