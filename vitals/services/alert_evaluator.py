"""
Threshold-based alert evaluation over stored readings.

Each rule family is a ThresholdRule with strict bounds: a value below ``low``
or above ``high`` violates the rule, a value exactly on a bound does not.
Rules are checked in the fixed order of THRESHOLD_RULES and readings in
timeline order, so unchanged data always yields the same alert sequence.
"""

import time
from collections.abc import Callable, Iterable
from dataclasses import dataclass
from typing import Protocol

import structlog

from vitals.domain.models import Alert, AlertCategory, Reading, RecordType
from vitals.services.record_store import RecordStore

logger = structlog.get_logger(__name__)

NO_DATA_CONDITION = "No Data"
ALERT_LABEL = "Alert"


@dataclass(frozen=True)
class ThresholdRule:
    """Low/high bounds for one record type."""

    record_type: RecordType
    category: AlertCategory
    description: str
    unit: str
    low: float | None = None
    low_label: str | None = None
    high: float | None = None
    high_label: str | None = None


THRESHOLD_RULES: tuple[ThresholdRule, ...] = (
    ThresholdRule(
        record_type=RecordType.HEART_RATE,
        category=AlertCategory.HEART_RATE,
        description="Heart rate",
        unit=" bpm",
        low=60.0,
        low_label="Bradycardia",
        high=100.0,
        high_label="Tachycardia",
    ),
    ThresholdRule(
        record_type=RecordType.SYSTOLIC_BP,
        category=AlertCategory.BLOOD_PRESSURE,
        description="Systolic BP",
        unit=" mmHg",
        low=90.0,
        low_label="Hypotension",
        high=140.0,
        high_label="Hypertension",
    ),
    ThresholdRule(
        record_type=RecordType.TEMPERATURE,
        category=AlertCategory.TEMPERATURE,
        description="Temperature",
        unit=" °F",
        low=95.0,
        low_label="Hypothermia",
        high=100.4,
        high_label="Fever",
    ),
    ThresholdRule(
        record_type=RecordType.BLOOD_SATURATION,
        category=AlertCategory.BLOOD_OXYGEN,
        description="Saturation",
        unit="%",
        low=95.0,
        low_label="Low Blood Oxygen",
    ),
)


class Sink(Protocol):
    """
    Consumer of readings and alerts (console, file, socket broadcast, ...).

    Used uniformly for raw readings and alerts; how a sink renders or
    transports the call is its own business.
    """

    def emit(self, patient_id: int, timestamp: int, label: str, data: str) -> None: ...


def check_reading(rule: ThresholdRule, reading: Reading) -> Alert | None:
    """Return the alert ``reading`` raises under ``rule``, if any."""
    if reading.record_type is not rule.record_type:
        return None

    if rule.low is not None and reading.value < rule.low:
        label = rule.low_label
    elif rule.high is not None and reading.value > rule.high:
        label = rule.high_label
    else:
        return None

    return Alert(
        patient_id=reading.patient_id,
        category=rule.category,
        label=label or rule.category.value,
        condition=f"{label}: {rule.description} {reading.value}{rule.unit}",
        timestamp=reading.timestamp,
        value=reading.value,
    )


def no_data_alert(patient_id: int, timestamp: int) -> Alert:
    return Alert(
        patient_id=patient_id,
        category=AlertCategory.NO_DATA,
        label=NO_DATA_CONDITION,
        condition=NO_DATA_CONDITION,
        timestamp=timestamp,
    )


def epoch_millis() -> int:
    return int(time.time() * 1000)


class AlertEvaluator:
    """
    Reads a patient's timeline and applies every threshold rule to it.

    The evaluator never writes to the store. ``evaluate`` is pure; the
    ``*_and_dispatch`` variants additionally hand each alert to the sinks.
    """

    def __init__(
        self,
        store: RecordStore,
        sinks: Iterable[Sink] = (),
        rules: tuple[ThresholdRule, ...] = THRESHOLD_RULES,
        clock: Callable[[], int] = epoch_millis,
    ) -> None:
        self.store = store
        self.sinks = list(sinks)
        self.rules = rules
        self.clock = clock
        self.logger = logger.bind(component="alert_evaluator")

    def evaluate(
        self, patient_id: int, start: int | None = None, end: int | None = None
    ) -> list[Alert]:
        """Alerts for one patient over ``[start, end]`` (the whole timeline by default)."""
        readings = self.store.query(patient_id, start, end)
        if not readings:
            return [no_data_alert(patient_id, self.clock())]

        alerts = self.check_readings(readings)

        self.logger.debug(
            "patient_evaluated",
            patient_id=patient_id,
            readings=len(readings),
            alerts=len(alerts),
        )
        return alerts

    def check_readings(self, readings: Iterable[Reading]) -> list[Alert]:
        """Apply every rule, in rule order, to ``readings`` in the order given."""
        batch = list(readings)
        alerts = []
        for rule in self.rules:
            for reading in batch:
                alert = check_reading(rule, reading)
                if alert is not None:
                    alerts.append(alert)
        return alerts

    def evaluate_all(self) -> dict[int, list[Alert]]:
        """Evaluate every patient known to the store, in ascending id order."""
        return {patient_id: self.evaluate(patient_id) for patient_id in self.store.patient_ids()}

    def evaluate_and_dispatch(
        self, patient_id: int, start: int | None = None, end: int | None = None
    ) -> list[Alert]:
        alerts = self.evaluate(patient_id, start, end)
        self.dispatch(alerts)
        return alerts

    def dispatch(self, alerts: Iterable[Alert]) -> None:
        """Emit each alert to every sink; a failing sink does not stop the others."""
        for alert in alerts:
            self.logger.info(
                "alert_triggered",
                patient_id=alert.patient_id,
                category=alert.category.value,
                condition=alert.condition,
                timestamp=alert.timestamp,
            )
            for sink in self.sinks:
                try:
                    sink.emit(alert.patient_id, alert.timestamp, ALERT_LABEL, alert.details())
                except Exception as e:
                    self.logger.error(
                        "alert_dispatch_failed",
                        error=str(e),
                        sink=type(sink).__name__,
                        patient_id=alert.patient_id,
                    )
