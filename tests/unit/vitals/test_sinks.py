"""Tests for the output sinks."""

import asyncio
import io
from pathlib import Path

from rich.console import Console

from vitals.adapters.sinks import ConsoleSink, Emission, FileSink, MemorySink, TcpBroadcastSink
from vitals.services.file_importer import FileImporter
from vitals.services.record_store import RecordStore


def test_memory_sink_records_calls_in_order() -> None:
    sink = MemorySink()

    sink.emit(1, 100, "HeartRate", "70.0")
    sink.emit(2, 200, "Alert", "Fever: Temperature 101.0 °F")

    assert sink.emissions == [
        Emission(1, 100, "HeartRate", "70.0"),
        Emission(2, 200, "Alert", "Fever: Temperature 101.0 °F"),
    ]


def test_console_sink_prints_one_line_per_call() -> None:
    buffer = io.StringIO()
    sink = ConsoleSink(Console(file=buffer, width=200, color_system=None))

    sink.emit(3, 1700000000000, "Alert", "Bradycardia: Heart rate [55.0] bpm")

    assert buffer.getvalue().strip() == (
        "Patient ID: 3, Timestamp: 1700000000000, Label: Alert, "
        "Data: Bradycardia: Heart rate [55.0] bpm"
    )


def test_file_sink_writes_one_file_per_label(tmp_path: Path) -> None:
    sink = FileSink(tmp_path / "out")

    sink.emit(1, 100, "HeartRate", "70.0")
    sink.emit(1, 200, "HeartRate", "72.0")
    sink.emit(2, 150, "Temperature", "98.6")

    assert sink.path_for("HeartRate").read_text(encoding="ascii").splitlines() == [
        "1,100,HeartRate,70.0",
        "1,200,HeartRate,72.0",
    ]
    assert sink.path_for("Temperature").exists()


def test_file_sink_output_can_be_imported_back(tmp_path: Path) -> None:
    sink = FileSink(tmp_path)
    sink.emit(4, 300, "SystolicBP", "145.0")
    sink.emit(4, 100, "SystolicBP", "120.0")
    store = RecordStore()

    summary = FileImporter(store).import_directory(tmp_path)

    assert summary.stored == 2
    assert [r.value for r in store.query(4)] == [120.0, 145.0]


async def test_tcp_broadcast_sink_reaches_every_client() -> None:
    sink = TcpBroadcastSink()
    await sink.start()
    clients = [await asyncio.open_connection("127.0.0.1", sink.port) for _ in range(2)]
    try:
        await sink.wait_for_clients(2)

        sink.emit(9, 900, "Alert", "No Data")

        for reader, _ in clients:
            line = await asyncio.wait_for(reader.readline(), timeout=2.0)
            assert line == b"9,900,Alert,No Data\n"
    finally:
        for _, writer in clients:
            writer.close()
        await sink.close()


async def test_tcp_broadcast_sink_forgets_departed_clients() -> None:
    sink = TcpBroadcastSink()
    await sink.start()
    try:
        _, writer = await asyncio.open_connection("127.0.0.1", sink.port)
        await sink.wait_for_clients(1)

        writer.close()
        await writer.wait_closed()

        async def _gone() -> None:
            while sink.client_count:
                await asyncio.sleep(0.01)

        await asyncio.wait_for(_gone(), timeout=2.0)
        sink.emit(1, 1, "HeartRate", "70.0")
    finally:
        await sink.close()
