"""
Output sinks for readings and alerts.

Every sink implements the same call, ``emit(patient_id, timestamp, label, data)``,
and is otherwise interchangeable. The pipeline knows nothing about how a sink
renders or transports what it receives.
"""

import asyncio
import threading
from pathlib import Path
from typing import NamedTuple

import structlog
from rich.console import Console

from vitals.domain.wire import format_message

logger = structlog.get_logger(__name__)


class Emission(NamedTuple):
    patient_id: int
    timestamp: int
    label: str
    data: str


class MemorySink:
    """Collects every call in order. Useful for tests and for the demo table."""

    def __init__(self) -> None:
        self.emissions: list[Emission] = []
        self._lock = threading.Lock()

    def emit(self, patient_id: int, timestamp: int, label: str, data: str) -> None:
        with self._lock:
            self.emissions.append(Emission(patient_id, timestamp, label, data))


class ConsoleSink:
    """Prints each call on the terminal; alerts are highlighted."""

    def __init__(self, console: Console | None = None) -> None:
        self.console = console or Console()

    def emit(self, patient_id: int, timestamp: int, label: str, data: str) -> None:
        self.console.print(
            f"Patient ID: {patient_id}, Timestamp: {timestamp}, Label: {label}, Data: {data}",
            style="bold red" if label == "Alert" else None,
            markup=False,
            highlight=False,
        )


class FileSink:
    """
    Appends canonical lines to one file per label under ``base_directory``.

    The files can be loaded back with ``FileImporter.import_directory``.
    """

    def __init__(self, base_directory: str | Path) -> None:
        self.base_directory = Path(base_directory)
        self.base_directory.mkdir(parents=True, exist_ok=True)
        self._lock = threading.Lock()

    def path_for(self, label: str) -> Path:
        return self.base_directory / f"{label}.txt"

    def emit(self, patient_id: int, timestamp: int, label: str, data: str) -> None:
        line = format_message(patient_id, timestamp, label, data)
        with self._lock, self.path_for(label).open("a", encoding="ascii", errors="replace") as f:
            f.write(line + "\n")


class TcpBroadcastSink:
    """
    TCP server broadcasting canonical lines to every connected client.

    Its output is the stream format the connector consumes, so it doubles as a
    streaming source. ``emit`` must be called from the event loop thread.
    """

    def __init__(self, host: str = "127.0.0.1", port: int = 0) -> None:
        self.host = host
        self.port = port
        self._server: asyncio.Server | None = None
        self._clients: set[asyncio.StreamWriter] = set()
        self.logger = logger.bind(component="tcp_broadcast_sink")

    @property
    def client_count(self) -> int:
        return len(self._clients)

    async def start(self) -> None:
        self._server = await asyncio.start_server(self._on_client, self.host, self.port)
        # Port 0 asks the OS for a free port
        self.port = self._server.sockets[0].getsockname()[1]
        self.logger.info("broadcast_server_started", host=self.host, port=self.port)

    def emit(self, patient_id: int, timestamp: int, label: str, data: str) -> None:
        payload = (format_message(patient_id, timestamp, label, data) + "\n").encode(
            "ascii", errors="replace"
        )
        for writer in list(self._clients):
            if writer.is_closing():
                self._clients.discard(writer)
                continue
            writer.write(payload)

    async def wait_for_clients(self, count: int = 1, timeout: float = 5.0) -> None:
        async def _poll() -> None:
            while self.client_count < count:
                await asyncio.sleep(0.01)

        await asyncio.wait_for(_poll(), timeout=timeout)

    async def disconnect_clients(self) -> None:
        """Close every client connection while keeping the server listening."""
        for writer in list(self._clients):
            writer.close()
        self._clients.clear()
        self.logger.info("broadcast_clients_disconnected")

    async def close(self) -> None:
        if self._server is None:
            return
        self._server.close()
        await self.disconnect_clients()
        await self._server.wait_closed()
        self._server = None
        self.logger.info("broadcast_server_closed")

    async def _on_client(self, reader: asyncio.StreamReader, writer: asyncio.StreamWriter) -> None:
        self._clients.add(writer)
        self.logger.info("broadcast_client_connected", peer=str(writer.get_extra_info("peername")))
        try:
            # Clients never send; block until they hang up
            await reader.read()
        except OSError as e:
            self.logger.debug("broadcast_client_error", error=str(e))
        finally:
            self._clients.discard(writer)
            writer.close()
