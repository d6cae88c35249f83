"""
Concurrent in-memory repository of vital-sign readings.

Readings are grouped into per-patient timelines. Each timeline carries its own
lock, so writers for different patients never contend; a registry lock is held
only while a timeline is created on first use. Locks are never held across I/O
or awaits, which makes the store safe to share between the asyncio connector,
importer threads and the evaluator.
"""

import math
import threading
from bisect import bisect_left, bisect_right

import structlog

from vitals.domain.errors import InvalidReadingError
from vitals.domain.models import Reading, RecordType
from vitals.domain.result import Result

logger = structlog.get_logger(__name__)


class PatientTimeline:
    """Append-only, timestamp-ordered readings of a single patient."""

    def __init__(self, patient_id: int) -> None:
        self.patient_id = patient_id
        self._lock = threading.Lock()
        self._timestamps: list[int] = []
        self._readings: list[Reading] = []
        self._arrivals: list[Reading] = []

    def insert(self, reading: Reading) -> None:
        with self._lock:
            # bisect_right keeps arrival order among equal timestamps
            index = bisect_right(self._timestamps, reading.timestamp)
            self._timestamps.insert(index, reading.timestamp)
            self._readings.insert(index, reading)
            self._arrivals.append(reading)

    def snapshot(self, start: int | None = None, end: int | None = None) -> list[Reading]:
        with self._lock:
            lo = 0 if start is None else bisect_left(self._timestamps, start)
            hi = len(self._timestamps) if end is None else bisect_right(self._timestamps, end)
            return self._readings[lo:hi]

    def since(self, cursor: int) -> tuple[list[Reading], int]:
        with self._lock:
            return self._arrivals[cursor:], len(self._arrivals)

    def __len__(self) -> int:
        with self._lock:
            return len(self._readings)


class RecordStore:
    """
    Shared store fed by the connector and the file importer, read by the evaluator.

    Construct one instance per process and pass it to every component that
    needs it; tests build their own isolated instances.
    """

    def __init__(self) -> None:
        self._registry_lock = threading.Lock()
        self._timelines: dict[int, PatientTimeline] = {}
        self.logger = logger.bind(component="record_store")

    def append(self, reading: Reading) -> Result[Reading, InvalidReadingError]:
        """
        Validate and store a reading.

        Returns:
            Result.ok(reading) once the reading is visible to queries, or
            Result.err(InvalidReadingError) when it was rejected.
        """
        if reading.patient_id <= 0:
            return self._reject(reading, "patient id must be positive")
        if not math.isfinite(reading.value):
            return self._reject(reading, "value must be finite")

        self._timeline(reading.patient_id).insert(reading)
        return Result.ok(reading)

    def add(
        self, patient_id: int, value: float, record_type: RecordType, timestamp: int
    ) -> Result[Reading, InvalidReadingError]:
        """Build a reading from its fields and append it."""
        reading = Reading(
            patient_id=patient_id, record_type=record_type, value=value, timestamp=timestamp
        )
        return self.append(reading)

    def query(
        self, patient_id: int, start: int | None = None, end: int | None = None
    ) -> list[Reading]:
        """
        Readings of one patient with ``start <= timestamp <= end``, oldest first.

        An omitted bound is unbounded. The returned list is an independent
        copy; unknown patients and empty ranges yield an empty list.
        """
        timeline = self._timelines.get(patient_id)
        if timeline is None:
            return []
        return timeline.snapshot(start, end)

    def readings_since(self, patient_id: int, cursor: int = 0) -> tuple[list[Reading], int]:
        """
        Readings of one patient stored after the first ``cursor`` arrivals.

        Returned in arrival order together with the cursor to pass next time,
        so a consumer sees every reading exactly once, late ones included.
        """
        timeline = self._timelines.get(patient_id)
        if timeline is None:
            return [], cursor
        return timeline.since(cursor)

    def patient_ids(self) -> list[int]:
        with self._registry_lock:
            return sorted(self._timelines)

    def count(self, patient_id: int | None = None) -> int:
        """Number of stored readings, for one patient or in total."""
        if patient_id is not None:
            timeline = self._timelines.get(patient_id)
            return 0 if timeline is None else len(timeline)
        with self._registry_lock:
            timelines = list(self._timelines.values())
        return sum(len(t) for t in timelines)

    def _timeline(self, patient_id: int) -> PatientTimeline:
        timeline = self._timelines.get(patient_id)
        if timeline is not None:
            return timeline
        with self._registry_lock:
            timeline = self._timelines.get(patient_id)
            if timeline is None:
                timeline = PatientTimeline(patient_id)
                self._timelines[patient_id] = timeline
                self.logger.debug("timeline_created", patient_id=patient_id)
            return timeline

    def _reject(self, reading: Reading, reason: str) -> Result[Reading, InvalidReadingError]:
        self.logger.warning(
            "reading_rejected",
            patient_id=reading.patient_id,
            record_type=reading.record_type.value,
            value=reading.value,
            timestamp=reading.timestamp,
            reason=reason,
        )
        return Result.err(InvalidReadingError(reason))
