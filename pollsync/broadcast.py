# pub/sub between sibling client instances on one device (fallback mode only)
import asyncio
import contextlib
import json
import logging
import os
import uuid
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional, Union

from .models import Row, TableName

logger = logging.getLogger(__name__)

Handler = Callable[[TableName, List[Row]], None]

# tags the lines this process appends to a shared channel log
PROCESS_ORIGIN = f"{os.getpid()}-{uuid.uuid4().hex[:8]}"

# channel name -> joined members of this process, in join order
_members: Dict[str, List["LocalBroadcastChannel"]] = {}


class LocalBroadcastChannel:
    """
    Members joined to the same channel name receive each other's
    messages, never their own. Messages look like
    {"type": <table>, <table>: [rows as JSON]}.

    Members in this process are reached synchronously. With a `directory`
    every message is also appended to `<directory>/<name>.channel` as one
    JSON line, and start() follows that file for lines other processes
    append. Both paths are FIFO per sender.
    """

    def __init__(
        self,
        name: str = "voting_app_channel",
        directory: Union[str, Path, None] = None,
        poll_interval: float = 0.25,
        origin: str = PROCESS_ORIGIN,
    ):
        self.name = name
        self.origin = origin
        self.poll_interval = poll_interval
        self.path: Optional[Path] = Path(directory) / f"{name}.channel" if directory else None
        self._handler: Optional[Handler] = None
        self._watcher: Optional[asyncio.Task] = None
        self.closed = False
        # history written before joining is not replayed
        self._offset = self._log_size()
        _members.setdefault(name, []).append(self)

    def on_receive(self, handler: Handler) -> None:
        self._handler = handler

    def publish(self, table: TableName, rows: List[Row]) -> None:
        if self.closed:
            return
        message = {
            "type": table.value,
            table.value: [r.model_dump(mode="json") for r in rows],
        }
        for member in list(_members.get(self.name, [])):
            if member is not self and member.origin == self.origin:
                member._deliver(message)
        if self.path is not None:
            self._append({"origin": self.origin, "message": message})

    def _append(self, entry: Dict[str, Any]) -> None:
        data = (json.dumps(entry) + "\n").encode("utf-8")
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            fd = os.open(self.path, os.O_WRONLY | os.O_APPEND | os.O_CREAT, 0o644)
            try:
                # one write per line so concurrent appenders never interleave
                os.write(fd, data)
            finally:
                os.close(fd)
        except OSError as e:
            logger.error("publishing on %s failed: %s", self.name, e)

    def _log_size(self) -> int:
        if self.path is None:
            return 0
        try:
            return self.path.stat().st_size
        except OSError:
            return 0

    def start(self) -> None:
        """Follow the shared log from the running event loop."""
        if self.path is None or self.closed or self._watcher is not None:
            return
        self._watcher = asyncio.get_running_loop().create_task(self._watch())

    async def _watch(self) -> None:
        while not self.closed:
            await asyncio.sleep(self.poll_interval)
            self.poll()

    def poll(self) -> int:
        """Deliver lines other processes appended since the last poll."""
        if self.path is None or self.closed:
            return 0
        if self._log_size() < self._offset:
            logger.warning("channel log %s shrank, reading from the start", self.path)
            self._offset = 0
        try:
            with open(self.path, "rb") as f:
                f.seek(self._offset)
                chunk = f.read()
        except FileNotFoundError:
            return 0
        except OSError as e:
            logger.error("reading %s failed: %s", self.path, e)
            return 0

        # a trailing partial line is picked up on the next poll
        end = chunk.rfind(b"\n")
        if end < 0:
            return 0
        self._offset += end + 1

        delivered = 0
        for line in chunk[:end].splitlines():
            try:
                entry = json.loads(line)
            except ValueError:
                logger.warning("skipping malformed line on %s", self.name)
                continue
            if not isinstance(entry, dict) or entry.get("origin") == self.origin:
                continue
            message = entry.get("message")
            if isinstance(message, dict):
                self._deliver(message)
                delivered += 1
        return delivered

    def _deliver(self, message: Dict[str, Any]) -> None:
        if self._handler is None or not message.get("type"):
            return
        try:
            table = TableName(message["type"])
            rows = table.decode_rows(message.get(table.value) or [])
            self._handler(table, rows)
        except Exception:
            logger.exception("broadcast message on %s dropped", self.name)

    def close(self) -> None:
        if self.closed:
            return
        self.closed = True
        if self._watcher is not None:
            self._watcher.cancel()
        members = _members.get(self.name, [])
        if self in members:
            members.remove(self)
        if not members:
            _members.pop(self.name, None)

    async def wait_closed(self) -> None:
        watcher, self._watcher = self._watcher, None
        if watcher is not None:
            with contextlib.suppress(asyncio.CancelledError):
                await watcher


def member_count(name: str) -> int:
    return len(_members.get(name, []))
