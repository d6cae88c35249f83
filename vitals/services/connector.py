"""
Streaming ingestion connector.

Maintains a connection to a line-oriented vital-sign stream, decodes each
message into a Reading and appends it to the record store. Connection loss is
never fatal: the connector keeps retrying after a fixed delay until it is
explicitly stopped.

State machine:

    DISCONNECTED -> CONNECTING -> CONNECTED -> RECONNECTING -> CONNECTING -> ...
    any state -> STOPPED (via stop())

Key patterns:
- Protocol-based transport injection (TCP in production, fakes in tests)
- A single receive task per connector; task cancellation is the shutdown signal
- Expected failures (bad messages, rejected readings) handled through Result
"""

import asyncio
from collections.abc import AsyncIterator, Callable
from dataclasses import dataclass
from enum import Enum
from typing import Protocol

import structlog
from pydantic import BaseModel, Field

from vitals.domain.errors import ConnectionTimeout, ConnectorStoppedError, MessageTooLongError
from vitals.domain.wire import parse_message
from vitals.services.record_store import RecordStore

logger = structlog.get_logger(__name__)

# Longest accepted message, in bytes, including the newline
DEFAULT_LINE_LIMIT = 2**16


class ConnectionState(str, Enum):
    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    CONNECTED = "connected"
    RECONNECTING = "reconnecting"
    STOPPED = "stopped"


class StreamConnection(Protocol):
    """An open stream delivering one message per line."""

    def lines(self) -> AsyncIterator[str]:
        """Yield decoded lines until the remote end closes the stream."""
        ...

    async def close(self) -> None: ...


class StreamTransport(Protocol):
    """
    Opens connections to a streaming source.

    Why Protocol over ABC: structural typing, easy fakes for the state machine tests.
    """

    endpoint: str

    async def connect(self) -> StreamConnection: ...


class TcpStreamConnection:
    """Newline-terminated ASCII messages over an asyncio stream pair."""

    def __init__(self, reader: asyncio.StreamReader, writer: asyncio.StreamWriter) -> None:
        self._reader = reader
        self._writer = writer

    async def lines(self) -> AsyncIterator[str]:
        while True:
            try:
                raw = await self._reader.readline()
            except ValueError as e:
                # readline() has already discarded part of the stream
                raise MessageTooLongError(str(e)) from e
            if not raw:
                return
            yield raw.decode("ascii", errors="replace")

    async def close(self) -> None:
        self._writer.close()
        try:
            await self._writer.wait_closed()
        except OSError as e:
            logger.debug("tcp_close_failed", error=str(e))


class TcpStreamTransport:
    """Plain TCP transport for the streaming source."""

    def __init__(self, host: str, port: int, line_limit: int = DEFAULT_LINE_LIMIT) -> None:
        self.host = host
        self.port = port
        self.line_limit = line_limit
        self.endpoint = f"tcp://{host}:{port}"

    async def connect(self) -> TcpStreamConnection:
        reader, writer = await asyncio.open_connection(
            self.host, self.port, limit=self.line_limit
        )
        return TcpStreamConnection(reader, writer)


class ConnectorConfig(BaseModel):
    """Connection timing with validated defaults."""

    connect_timeout_seconds: float = Field(
        default=10.0, gt=0.0, description="Time allowed to establish one connection."
    )
    reconnect_delay_seconds: float = Field(
        default=5.0, gt=0.0, description="Fixed delay before each reconnection attempt."
    )


@dataclass
class ConnectorStats:
    """Running counters, exposed for logging and metrics."""

    connection_attempts: int = 0
    reconnections: int = 0
    messages_received: int = 0
    readings_stored: int = 0
    messages_dropped: int = 0


StateListener = Callable[[ConnectionState, ConnectionState], None]


class StreamConnector:
    """
    Feeds the record store from a live stream and recovers from disconnection.

    Design principles:
    - Graceful degradation (malformed messages are dropped, never fatal)
    - Unbounded retry with a fixed delay; only stop() ends the loop
    - Observable (every transition and drop is logged and counted)
    """

    def __init__(
        self,
        transport: StreamTransport,
        store: RecordStore,
        config: ConnectorConfig | None = None,
    ) -> None:
        self.transport = transport
        self.store = store
        self.config = config or ConnectorConfig()
        self.stats = ConnectorStats()
        self.logger = logger.bind(component="stream_connector", endpoint=transport.endpoint)

        self._state = ConnectionState.DISCONNECTED
        self._history: list[ConnectionState] = [self._state]
        self._listeners: list[StateListener] = []
        self._task: asyncio.Task[None] | None = None
        self._stopped = asyncio.Event()

    @property
    def state(self) -> ConnectionState:
        return self._state

    @property
    def state_history(self) -> list[ConnectionState]:
        return list(self._history)

    def add_state_listener(self, listener: StateListener) -> None:
        """Register ``listener(old_state, new_state)``, called on every transition."""
        self._listeners.append(listener)

    async def start(self) -> None:
        """
        Begin connecting in a background task and return immediately.

        Raises:
            ConnectorStoppedError: if the connector has already been stopped.
        """
        if self._state is ConnectionState.STOPPED:
            raise ConnectorStoppedError("connector has been stopped and cannot be restarted")
        if self._task is not None:
            return

        self._transition(ConnectionState.CONNECTING)
        self._task = asyncio.create_task(self._run(), name=f"connector:{self.transport.endpoint}")
        self._task.add_done_callback(self._on_task_done)

    async def stop(self) -> None:
        """Close any connection, cancel any pending reconnection and move to STOPPED."""
        if self._state is ConnectionState.STOPPED:
            return

        task, self._task = self._task, None
        if task is not None and not task.done():
            task.cancel()
            await asyncio.gather(task, return_exceptions=True)

        self._transition(ConnectionState.STOPPED)
        self._stopped.set()
        self.logger.info("connector_stopped", **self._stats_fields())

    async def wait_closed(self) -> None:
        """Wait until stop() has completed."""
        await self._stopped.wait()

    async def _run(self) -> None:
        while True:
            self._transition(ConnectionState.CONNECTING)
            connection = await self._connect()

            if connection is not None:
                self._transition(ConnectionState.CONNECTED)
                try:
                    await self._receive(connection)
                    self.logger.warning("connection_closed_by_remote")
                except MessageTooLongError as e:
                    self._drop("<oversized message>", str(e))
                    self.logger.warning("connection_desynchronized", error=str(e))
                except OSError as e:
                    self.logger.warning("connection_lost", error=str(e))
                except Exception as e:
                    self.logger.exception(
                        "connection_failed_unexpectedly",
                        error=str(e),
                        error_type=type(e).__name__,
                    )
                finally:
                    await connection.close()

            self._transition(ConnectionState.RECONNECTING)
            self.stats.reconnections += 1
            self.logger.info(
                "reconnection_scheduled", delay_seconds=self.config.reconnect_delay_seconds
            )
            await asyncio.sleep(self.config.reconnect_delay_seconds)

    async def _connect(self) -> StreamConnection | None:
        self.stats.connection_attempts += 1
        try:
            return await asyncio.wait_for(
                self.transport.connect(), timeout=self.config.connect_timeout_seconds
            )
        except TimeoutError:
            error = ConnectionTimeout(
                f"no connection within {self.config.connect_timeout_seconds}s"
            )
            self.logger.warning("connection_timeout", error=str(error))
        except OSError as e:
            self.logger.warning("connection_failed", error=str(e))
        except Exception as e:
            self.logger.exception(
                "connection_failed_unexpectedly", error=str(e), error_type=type(e).__name__
            )
        return None

    async def _receive(self, connection: StreamConnection) -> None:
        async for line in connection.lines():
            self._handle_message(line)

    def _handle_message(self, line: str) -> None:
        if not line.strip():
            return
        self.stats.messages_received += 1

        parsed = parse_message(line)
        if parsed.is_err():
            self._drop(line, str(parsed.unwrap_err()))
            return

        stored = self.store.append(parsed.unwrap())
        if stored.is_err():
            self._drop(line, str(stored.unwrap_err()))
            return
        self.stats.readings_stored += 1

    def _drop(self, line: str, reason: str) -> None:
        self.stats.messages_dropped += 1
        self.logger.warning("message_dropped", message=line.rstrip("\r\n"), reason=reason)

    def _transition(self, new_state: ConnectionState) -> None:
        old_state = self._state
        if old_state is new_state:
            return
        self._state = new_state
        self._history.append(new_state)
        self.logger.info(
            "connection_state_changed", from_state=old_state.value, to_state=new_state.value
        )
        for listener in list(self._listeners):
            try:
                listener(old_state, new_state)
            except Exception as e:
                self.logger.exception("state_listener_failed", error=str(e))

    def _on_task_done(self, task: asyncio.Task[None]) -> None:
        if task.cancelled():
            return
        error = task.exception()
        if error is not None:
            self.logger.error(
                "connector_task_crashed", error=str(error), error_type=type(error).__name__
            )

    def _stats_fields(self) -> dict[str, int]:
        return {
            "connection_attempts": self.stats.connection_attempts,
            "reconnections": self.stats.reconnections,
            "messages_received": self.stats.messages_received,
            "readings_stored": self.stats.readings_stored,
            "messages_dropped": self.stats.messages_dropped,
        }
