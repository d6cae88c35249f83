"""
Domain models for patient vital-sign monitoring.

These models represent the core clinical concepts and are framework-agnostic.
They use Pydantic for validation and are frozen: a stored Reading or an
emitted Alert is never modified, only copied.
"""

from collections.abc import Iterable
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field


class RecordType(str, Enum):
    """Vital-sign record types the pipeline understands."""

    HEART_RATE = "HeartRate"
    SYSTOLIC_BP = "SystolicBP"
    DIASTOLIC_BP = "DiastolicBP"
    TEMPERATURE = "Temperature"
    BLOOD_SATURATION = "BloodSaturation"
    ECG = "ECG"
    WHITE_BLOOD_CELLS = "WhiteBloodCells"

    @classmethod
    def parse(cls, label: str) -> "RecordType | None":
        """Map a wire label to a record type, or None when the label is unknown."""
        label = label.strip()
        try:
            return cls(label)
        except ValueError:
            return _LABEL_ALIASES.get(label)


# Labels emitted by the waveform simulators
_LABEL_ALIASES: dict[str, RecordType] = {
    "Saturation": RecordType.BLOOD_SATURATION,
    "SystolicPressure": RecordType.SYSTOLIC_BP,
    "DiastolicPressure": RecordType.DIASTOLIC_BP,
}


class Reading(BaseModel):
    """Single timestamped vital-sign measurement for one patient."""

    model_config = ConfigDict(frozen=True)

    patient_id: int
    record_type: RecordType
    value: float
    timestamp: int = Field(description="Epoch milliseconds")


class AlertCategory(str, Enum):
    """Rule family that produced an alert."""

    HEART_RATE = "heart_rate"
    BLOOD_PRESSURE = "blood_pressure"
    TEMPERATURE = "temperature"
    BLOOD_OXYGEN = "blood_oxygen"
    NO_DATA = "no_data"


class AlertPriority(str, Enum):
    """Alert priority levels."""

    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"


class Alert(BaseModel):
    """Notification that a reading, or the absence of readings, violated a rule."""

    model_config = ConfigDict(frozen=True)

    patient_id: int
    category: AlertCategory
    label: str = Field(description="Short rule name, e.g. 'Bradycardia'")
    condition: str = Field(description="Rule name with the measured value")
    timestamp: int = Field(description="Reading time, or evaluation time for 'No Data'")
    value: float | None = None

    # Annotations, never set by the evaluator itself
    priority: AlertPriority | None = None
    repeat_count: int = Field(default=1, ge=1)

    def details(self) -> str:
        """Condition text with any priority and repeat annotations appended."""
        parts = [self.condition]
        if self.priority is not None:
            parts.append(f"Priority: {self.priority.value.upper()}")
        if self.repeat_count > 1:
            parts.append(f"Repeated {self.repeat_count} times")
        return " | ".join(parts)


def with_priority(alert: Alert, priority: AlertPriority) -> Alert:
    """Return a copy of ``alert`` tagged with ``priority``."""
    return alert.model_copy(update={"priority": priority})


def collapse_repeats(alerts: Iterable[Alert]) -> list[Alert]:
    """
    Fold alerts that share a patient and label into one alert per group.

    The surviving alert is the most recent one of its group, carrying the
    group size as ``repeat_count``. Groups keep the order in which they first
    appeared.
    """
    groups: dict[tuple[int, str], list[Alert]] = {}
    for alert in alerts:
        groups.setdefault((alert.patient_id, alert.label), []).append(alert)

    collapsed = []
    for group in groups.values():
        latest = max(group, key=lambda a: a.timestamp)
        count = sum(a.repeat_count for a in group)
        collapsed.append(latest.model_copy(update={"repeat_count": count}))
    return collapsed
