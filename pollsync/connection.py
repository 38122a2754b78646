# transport lifecycle: endpoint discovery, reconnect, outbound queue
import asyncio
import contextlib
import json
import logging
from collections import deque
from enum import Enum
from typing import Any, Awaitable, Callable, Deque, Dict, List, Optional

from pydantic import ValidationError
from websockets.asyncio.client import connect as ws_connect

from .errors import (
    EndpointUnreachable,
    NoAuthorityReachable,
    ReconnectExhausted,
    SendFailure,
    UnknownTable,
)
from .models import Row, TableName, TableUpdate

logger = logging.getLogger(__name__)

# A transport only needs async send(str), recv() -> str and close().
Opener = Callable[[str], Awaitable[Any]]
TableUpdateHandler = Callable[[TableName, List[Row]], None]


class ConnectionStatus(str, Enum):
    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    CONNECTED = "connected"
    RECONNECTING = "reconnecting"
    EXHAUSTED = "exhausted"
    CLOSED = "closed"
    # no transport, the local simulation is the authority
    SIMULATED = "simulated"


async def open_websocket(url: str):
    # the manager bounds the attempt with its own timeout
    return await ws_connect(url, open_timeout=None)


class ConnectionManager:
    """
    Owns one duplex connection to the remote authority.

    connect() walks the candidate endpoints in order; after an unexpected
    close the same endpoint is retried up to max_reconnect_attempts times
    with a constant delay. Frames sent while disconnected are queued and
    replayed FIFO, before anything newer, once a connection is up again.
    """

    def __init__(
        self,
        endpoints: List[str],
        on_table_update: TableUpdateHandler,
        connect_timeout: float = 3.0,
        max_reconnect_attempts: int = 5,
        reconnect_delay: float = 1.0,
        opener: Optional[Opener] = None,
    ):
        self.endpoints = list(endpoints)
        self.connect_timeout = connect_timeout
        self.max_reconnect_attempts = max_reconnect_attempts
        self.reconnect_delay = reconnect_delay
        self._opener = opener or open_websocket
        self._on_table_update = on_table_update

        self.status = ConnectionStatus.DISCONNECTED
        self.endpoint: Optional[str] = None
        self.queue: Deque[str] = deque()
        self.reconnect_attempts = 0
        self.connect_attempts = 0

        self._transport: Optional[Any] = None
        self._reader: Optional[asyncio.Task] = None
        self._reconnect_task: Optional[asyncio.Task] = None
        self._flushing = False
        self._closing = False

    @property
    def connected(self) -> bool:
        return self.status == ConnectionStatus.CONNECTED and self._transport is not None

    @property
    def reconnect_task(self) -> Optional[asyncio.Task]:
        return self._reconnect_task

    async def connect(self, endpoint: Optional[str] = None) -> str:
        """
        Connect to `endpoint` only, or else to the first reachable candidate.
        Returns the endpoint in use.
        """
        if self.connected:
            return self.endpoint
        # a manual connect replaces any retry still pending
        retry, self._reconnect_task = self._reconnect_task, None
        await self._cancel(retry)
        self._closing = False
        self.reconnect_attempts = 0

        if endpoint:
            await self._open(endpoint)
            return endpoint

        for url in self.endpoints:
            try:
                await self._open(url)
                return url
            except EndpointUnreachable as e:
                logger.warning("%s", e)

        raise NoAuthorityReachable(self.endpoints)

    async def _open(self, url: str) -> None:
        if self._transport is not None:
            await self._release()
        logger.info("Connecting to %s...", url)
        self.status = ConnectionStatus.CONNECTING
        self.connect_attempts += 1
        try:
            transport = await asyncio.wait_for(self._opener(url), timeout=self.connect_timeout)
        except Exception as e:
            self.status = ConnectionStatus.DISCONNECTED
            raise EndpointUnreachable(url, e) from e

        self._transport = transport
        self.endpoint = url
        self.status = ConnectionStatus.CONNECTED
        self._reader = asyncio.create_task(self._read_loop(transport))
        logger.info("Connected to %s", url)
        await self._flush()

    async def _read_loop(self, transport: Any) -> None:
        try:
            while True:
                raw = await transport.recv()
                self._handle_frame(raw)
        except Exception as e:
            # ConnectionClosed or OSError from the transport
            logger.info("Disconnected from %s (%s)", self.endpoint, e)

        if transport is self._transport:
            self._on_closed()

    def _on_closed(self) -> None:
        self._transport = None
        self._reader = None
        if self._closing:
            self.status = ConnectionStatus.CLOSED
            return
        self.status = ConnectionStatus.RECONNECTING
        self._reconnect_task = asyncio.create_task(self._reconnect_loop(self.endpoint))

    async def _reconnect_loop(self, url: str) -> None:
        while self.reconnect_attempts < self.max_reconnect_attempts:
            self.reconnect_attempts += 1
            logger.info(
                "Reconnecting to %s (attempt %d/%d)...",
                url, self.reconnect_attempts, self.max_reconnect_attempts,
            )
            await asyncio.sleep(self.reconnect_delay)
            if self._closing:
                return
            try:
                await self._open(url)
            except EndpointUnreachable as e:
                logger.warning("%s", e)
                self.status = ConnectionStatus.RECONNECTING
                continue
            self.reconnect_attempts = 0
            return

        self.status = ConnectionStatus.EXHAUSTED
        logger.error("%s", ReconnectExhausted(url, self.max_reconnect_attempts))

    def _handle_frame(self, raw: Any) -> None:
        try:
            data = json.loads(raw)
        except (TypeError, ValueError) as e:
            logger.error("Error parsing message: %s", e)
            return
        if not isinstance(data, dict):
            logger.warning("Ignoring non-object frame: %r", data)
            return

        kind = data.get("type")
        if kind == "table_update":
            try:
                update = TableUpdate.model_validate(data)
                table = TableName.parse(update.table)
                rows = table.decode_rows(update.rows)
            except (ValidationError, UnknownTable) as e:
                logger.warning("Ignoring table update: %s", e)
                return
            logger.debug("Table update %s (%d rows)", table.value, len(rows))
            self._on_table_update(table, rows)
        elif kind == "reducer_result":
            logger.debug("Reducer result: %s", data)
        else:
            logger.debug("Ignoring message of type %r", kind)

    async def send(self, frame: Dict[str, Any]) -> bool:
        """
        Fire and forget: True if the frame was written straight away, False
        if it went through the queue. There is no acknowledgment.
        """
        message = json.dumps(frame)
        if not self.connected or self._flushing or self.queue:
            self.queue.append(message)
            if self.status in (ConnectionStatus.EXHAUSTED, ConnectionStatus.CLOSED):
                logger.warning(
                    "Queued %d frame(s) with no reconnect pending, call connect() to send them",
                    len(self.queue),
                )
            if self.connected:
                await self._flush()
            return False
        if not await self._write(message):
            self.queue.append(message)
            return False
        return True

    async def _write(self, message: str) -> bool:
        try:
            await self._transport.send(message)
        except Exception as e:
            logger.warning("%s", SendFailure(f"send to {self.endpoint} failed, requeued: {e}"))
            return False
        logger.debug("Sent %s", message)
        return True

    async def _flush(self) -> None:
        if self._flushing:
            return
        self._flushing = True
        try:
            while self.queue and self.connected:
                message = self.queue.popleft()
                if not await self._write(message):
                    self.queue.appendleft(message)
                    break
        finally:
            self._flushing = False

    async def _cancel(self, task: Optional[asyncio.Task]) -> None:
        if task is None or task.done() or task is asyncio.current_task():
            return
        task.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await task

    async def _release(self) -> None:
        reader, self._reader = self._reader, None
        transport, self._transport = self._transport, None
        await self._cancel(reader)
        if transport is not None:
            try:
                await transport.close()
            except Exception as e:
                logger.debug("Error closing transport: %s", e)

    async def close(self) -> None:
        self._closing = True
        await self._cancel(self._reconnect_task)
        await self._release()
        if self.queue:
            logger.warning("Discarding %d unsent frame(s) on close", len(self.queue))
            self.queue.clear()
        self.status = ConnectionStatus.CLOSED
