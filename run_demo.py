"""
End-to-end demonstration of the monitoring pipeline.

This script exercises:
1. A local TCP broadcast server acting as the vital-sign stream
2. The connector ingesting it into the record store
3. A forced disconnection and the automatic reconnection
4. Malformed messages being dropped without closing the stream
5. Threshold evaluation and alert dispatch

Run with: uv run python run_demo.py
"""

import asyncio
import time

from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from vitals.adapters.sinks import ConsoleSink, MemorySink, TcpBroadcastSink
from vitals.config import AppConfig, EvaluationConfig, LoggingConfig, StreamConfig
from vitals.domain.models import AlertPriority, collapse_repeats, with_priority
from vitals.logging_config import configure_logging
from vitals.services.connector import ConnectionState
from vitals.services.monitoring_pipeline import MonitoringPipeline

console = Console()

SCENARIO = [
    # (patient, record type, value)
    (1, "HeartRate", 55.0),
    (1, "SystolicBP", 150.0),
    (1, "Temperature", 99.0),
    (2, "HeartRate", 72.0),
    (2, "BloodSaturation", 91.5),
    (2, "BloodSaturation", 92.0),
    (3, "Temperature", 101.2),
    (3, "HeartRate", 100.0),
]


async def wait_for_state(pipeline: MonitoringPipeline, state: ConnectionState) -> None:
    while pipeline.connector.state is not state:
        await asyncio.sleep(0.05)


async def main() -> None:
    source = TcpBroadcastSink(host="127.0.0.1", port=0)
    await source.start()

    config = AppConfig(
        stream=StreamConfig(host="127.0.0.1", port=source.port, reconnect_delay_seconds=1.0),
        evaluation=EvaluationConfig(evaluation_interval_seconds=1.0),
        logging=LoggingConfig(level="WARNING", format="console"),
    )
    configure_logging(config.logging)

    recorded = MemorySink()
    pipeline = MonitoringPipeline(config=config, sinks=[ConsoleSink(console), recorded])

    console.print(Panel(f"📡 Streaming from tcp://127.0.0.1:{source.port}", style="blue"))

    async with pipeline.running():
        await source.wait_for_clients(1)
        await wait_for_state(pipeline, ConnectionState.CONNECTED)

        now = int(time.time() * 1000)
        for offset, (patient_id, record_type, value) in enumerate(SCENARIO):
            source.emit(patient_id, now + offset, record_type, str(value))
        source.emit(1, now, "HeartRate", "notanumber")
        source.emit(0, 0, "abc", "xyz,extra")
        await asyncio.sleep(0.5)

        console.print(Panel("🔌 Forcing a disconnection", style="yellow"))
        await source.disconnect_clients()
        await wait_for_state(pipeline, ConnectionState.RECONNECTING)
        await wait_for_state(pipeline, ConnectionState.CONNECTED)
        await source.wait_for_clients(1)
        source.emit(4, now + 100, "SystolicBP", "85.0")
        await asyncio.sleep(0.5)

        console.print(Panel("🚨 Evaluating alerts", style="red"))
        alerts = pipeline.run_evaluation_cycle()

    await source.close()

    table = Table(title="Alerts")
    table.add_column("Patient", style="cyan")
    table.add_column("Category", style="magenta")
    table.add_column("Details", style="red")
    table.add_column("Timestamp", style="yellow")
    for alert in collapse_repeats(alerts):
        if alert.label == "Low Blood Oxygen":
            alert = with_priority(alert, AlertPriority.HIGH)
        table.add_row(
            str(alert.patient_id), alert.category.value, alert.details(), str(alert.timestamp)
        )
    console.print(table)

    stats = pipeline.connector.stats
    summary = Table(title="Connector")
    summary.add_column("Counter", style="cyan")
    summary.add_column("Value", style="green")
    summary.add_row("connection attempts", str(stats.connection_attempts))
    summary.add_row("reconnections", str(stats.reconnections))
    summary.add_row("messages received", str(stats.messages_received))
    summary.add_row("readings stored", str(stats.readings_stored))
    summary.add_row("messages dropped", str(stats.messages_dropped))
    summary.add_row("alerts emitted", str(len(recorded.emissions)))
    console.print(summary)

    history = " → ".join(state.value for state in pipeline.connector.state_history)
    console.print(f"State history: {history}", style="dim")


if __name__ == "__main__":
    asyncio.run(main())
