"""
Pipeline service wiring ingestion to alert evaluation.

    stream source -> StreamConnector -> RecordStore -> AlertEvaluator -> sinks

One RecordStore instance is created here (or passed in) and handed to both
the connector and the evaluator; they never talk to each other directly.
"""

import asyncio
import time
from collections.abc import AsyncIterator, Iterable
from contextlib import asynccontextmanager

import structlog

from vitals.config import AppConfig, get_config
from vitals.domain.models import Alert
from vitals.services.alert_evaluator import AlertEvaluator, Sink
from vitals.services.connector import (
    ConnectorConfig,
    StreamConnector,
    StreamTransport,
    TcpStreamTransport,
)
from vitals.services.record_store import RecordStore

logger = structlog.get_logger(__name__)


class MonitoringPipeline:
    """
    Orchestrates ingestion and periodic evaluation.

    Each cycle evaluates only the readings stored since the previous cycle,
    tracked by a per-patient arrival cursor, so every alert is dispatched once
    and late out-of-order readings are still checked.
    """

    def __init__(
        self,
        config: AppConfig | None = None,
        store: RecordStore | None = None,
        transport: StreamTransport | None = None,
        sinks: Iterable[Sink] = (),
    ) -> None:
        self.config = config or get_config()
        self.store = store if store is not None else RecordStore()
        self.transport = transport or TcpStreamTransport(
            self.config.stream.host, self.config.stream.port
        )
        connector_config = ConnectorConfig(
            connect_timeout_seconds=self.config.stream.connect_timeout_seconds,
            reconnect_delay_seconds=self.config.stream.reconnect_delay_seconds,
        )
        self.connector = StreamConnector(self.transport, self.store, connector_config)
        self.evaluator = AlertEvaluator(self.store, sinks=sinks)
        self.logger = logger.bind(component="monitoring_pipeline")

        self._cursors: dict[int, int] = {}
        self._alerts_dispatched = 0
        self._is_running = False

    @asynccontextmanager
    async def running(self) -> AsyncIterator["MonitoringPipeline"]:
        """Start the connector for the duration of the block and stop it afterwards."""
        await self.connector.start()
        self._is_running = True
        self.logger.info("pipeline_started", endpoint=self.transport.endpoint)
        try:
            yield self
        finally:
            self._is_running = False
            await self.connector.stop()
            self.logger.info("pipeline_stopped", alerts_dispatched=self._alerts_dispatched)

    def run_evaluation_cycle(self) -> list[Alert]:
        """Check the readings stored since the last cycle and dispatch their alerts."""
        cycle_start = time.perf_counter()
        new_alerts: list[Alert] = []
        new_readings = 0

        for patient_id in self.store.patient_ids():
            readings, self._cursors[patient_id] = self.store.readings_since(
                patient_id, self._cursors.get(patient_id, 0)
            )
            new_readings += len(readings)
            # sorted() is stable, so equal timestamps keep arrival order
            new_alerts.extend(
                self.evaluator.check_readings(sorted(readings, key=lambda r: r.timestamp))
            )

        self.evaluator.dispatch(new_alerts)
        self._alerts_dispatched += len(new_alerts)
        self.logger.info(
            "evaluation_cycle_completed",
            patients=len(self._cursors),
            new_readings=new_readings,
            new_alerts=len(new_alerts),
            duration_seconds=round(time.perf_counter() - cycle_start, 3),
        )
        return new_alerts

    async def run_continuously(self) -> AsyncIterator[list[Alert]]:
        """Yield each cycle's new alerts at the configured interval until stopped."""
        interval = self.config.evaluation.evaluation_interval_seconds
        while self._is_running:
            cycle_start = time.perf_counter()
            yield self.run_evaluation_cycle()

            elapsed = time.perf_counter() - cycle_start
            await asyncio.sleep(max(0.0, interval - elapsed))
