"""
Line codec shared by the stream connector, the file importer and the
broadcast sink.

Canonical field order for both streaming and batch input:

    patientId,timestamp,recordType,value

e.g. ``7,1700000001000,HeartRate,88.0``.
"""

import re

from vitals.domain.errors import MalformedMessageError, UnknownRecordTypeError
from vitals.domain.models import Reading, RecordType
from vitals.domain.result import Result

FIELD_SEPARATOR = ","
FIELD_COUNT = 4

_INTEGER = re.compile(r"[+-]?[0-9]+")
_DECIMAL = re.compile(
    r"[+-]?([0-9]+\.?[0-9]*|\.[0-9]+)([eE][+-]?[0-9]+)?|[+-]?(nan|inf|infinity)", re.IGNORECASE
)


def parse_message(line: str) -> Result[Reading, MalformedMessageError]:
    """Decode one canonical line into a Reading."""
    raw = line.rstrip("\r\n")
    fields = [f.strip() for f in raw.split(FIELD_SEPARATOR)]
    if len(fields) != FIELD_COUNT:
        return Result.err(
            MalformedMessageError(f"expected {FIELD_COUNT} fields, got {len(fields)}", raw)
        )

    patient_field, timestamp_field, type_field, value_field = fields
    try:
        patient_id = _to_int(patient_field)
        timestamp = _to_int(timestamp_field)
        value = _to_float(value_field)
    except ValueError as e:
        return Result.err(MalformedMessageError(f"numeric field failed to parse ({e})", raw))

    record_type = RecordType.parse(type_field)
    if record_type is None:
        return Result.err(UnknownRecordTypeError(f"unknown record type {type_field!r}", raw))

    return Result.ok(
        Reading(patient_id=patient_id, record_type=record_type, value=value, timestamp=timestamp)
    )


def format_message(patient_id: int, timestamp: int, label: str, data: str) -> str:
    """Encode one sink call as a canonical line, without the trailing newline."""
    return FIELD_SEPARATOR.join((str(patient_id), str(timestamp), label, data))


def _to_int(field: str) -> int:
    if not _INTEGER.fullmatch(field):
        raise ValueError(f"invalid integer {field!r}")
    return int(field)


def _to_float(field: str) -> float:
    # Non-finite spellings are decoded here and rejected by the store
    if not _DECIMAL.fullmatch(field):
        raise ValueError(f"invalid number {field!r}")
    return float(field)
