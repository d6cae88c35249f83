"""
Tests for threshold evaluation.

Covers:
- Exact boundary behavior for every rule (strict bounds)
- The "No Data" alert and its evaluation-time timestamp
- Deterministic, category-ordered alert sequences
- Dispatch to sinks, including a failing sink
"""

import pytest

from vitals.adapters.sinks import MemorySink
from vitals.domain.models import AlertCategory, Reading, RecordType
from vitals.services.alert_evaluator import (
    THRESHOLD_RULES,
    AlertEvaluator,
    check_reading,
)
from vitals.services.record_store import RecordStore

EVALUATION_TIME = 1_700_000_999_000


class ExplodingSink:
    def emit(self, patient_id: int, timestamp: int, label: str, data: str) -> None:
        raise ConnectionError("sink offline")


@pytest.fixture
def store() -> RecordStore:
    return RecordStore()


@pytest.fixture
def evaluator(store: RecordStore) -> AlertEvaluator:
    return AlertEvaluator(store, clock=lambda: EVALUATION_TIME)


def _add(
    store: RecordStore,
    record_type: RecordType,
    value: float,
    timestamp: int,
    patient_id: int = 1,
) -> None:
    assert store.add(patient_id, value, record_type, timestamp).is_ok()


@pytest.mark.parametrize(
    "record_type,value,expected_label",
    [
        (RecordType.HEART_RATE, 60.0, None),
        (RecordType.HEART_RATE, 59.999, "Bradycardia"),
        (RecordType.HEART_RATE, 100.0, None),
        (RecordType.HEART_RATE, 100.001, "Tachycardia"),
        (RecordType.SYSTOLIC_BP, 90.0, None),
        (RecordType.SYSTOLIC_BP, 89.999, "Hypotension"),
        (RecordType.SYSTOLIC_BP, 140.0, None),
        (RecordType.SYSTOLIC_BP, 140.001, "Hypertension"),
        (RecordType.TEMPERATURE, 95.0, None),
        (RecordType.TEMPERATURE, 94.999, "Hypothermia"),
        (RecordType.TEMPERATURE, 100.4, None),
        (RecordType.TEMPERATURE, 100.401, "Fever"),
        (RecordType.BLOOD_SATURATION, 95.0, None),
        (RecordType.BLOOD_SATURATION, 94.999, "Low Blood Oxygen"),
        (RecordType.BLOOD_SATURATION, 100.0, None),
    ],
)
def test_boundary_exactness(
    store: RecordStore,
    evaluator: AlertEvaluator,
    record_type: RecordType,
    value: float,
    expected_label: str | None,
) -> None:
    _add(store, record_type, value, 1000)

    alerts = evaluator.evaluate(1)

    if expected_label is None:
        assert alerts == []
    else:
        assert len(alerts) == 1
        assert alerts[0].label == expected_label
        assert alerts[0].value == value
        assert alerts[0].timestamp == 1000


def test_scenario_yields_bradycardia_and_hypertension_only(
    store: RecordStore, evaluator: AlertEvaluator
) -> None:
    _add(store, RecordType.HEART_RATE, 55.0, 1000)
    _add(store, RecordType.SYSTOLIC_BP, 150.0, 2000)
    _add(store, RecordType.TEMPERATURE, 99.0, 3000)

    alerts = evaluator.evaluate(1)

    assert [(a.label, a.timestamp) for a in alerts] == [
        ("Bradycardia", 1000),
        ("Hypertension", 2000),
    ]
    assert alerts[0].condition == "Bradycardia: Heart rate 55.0 bpm"
    assert alerts[0].category is AlertCategory.HEART_RATE
    assert alerts[1].condition == "Hypertension: Systolic BP 150.0 mmHg"
    assert alerts[1].category is AlertCategory.BLOOD_PRESSURE


def test_patient_without_readings_gets_exactly_one_no_data_alert(
    evaluator: AlertEvaluator,
) -> None:
    alerts = evaluator.evaluate(9)

    assert len(alerts) == 1
    assert alerts[0].condition == "No Data"
    assert alerts[0].category is AlertCategory.NO_DATA
    assert alerts[0].timestamp == EVALUATION_TIME
    assert alerts[0].patient_id == 9
    assert alerts[0].value is None


def test_empty_sub_range_counts_as_no_data(store: RecordStore, evaluator: AlertEvaluator) -> None:
    _add(store, RecordType.HEART_RATE, 40.0, 1000)

    alerts = evaluator.evaluate(1, start=2000, end=3000)

    assert [a.condition for a in alerts] == ["No Data"]


def test_sub_range_only_sees_readings_inside_it(
    store: RecordStore, evaluator: AlertEvaluator
) -> None:
    _add(store, RecordType.HEART_RATE, 40.0, 1000)
    _add(store, RecordType.HEART_RATE, 130.0, 2000)

    alerts = evaluator.evaluate(1, start=1500)

    assert [a.label for a in alerts] == ["Tachycardia"]


def test_readings_without_rules_raise_nothing(
    store: RecordStore, evaluator: AlertEvaluator
) -> None:
    _add(store, RecordType.DIASTOLIC_BP, 20.0, 1000)
    _add(store, RecordType.ECG, -3.5, 1001)

    assert evaluator.evaluate(1) == []


def test_alerts_are_grouped_by_category_in_fixed_order(
    store: RecordStore, evaluator: AlertEvaluator
) -> None:
    _add(store, RecordType.BLOOD_SATURATION, 90.0, 100)
    _add(store, RecordType.TEMPERATURE, 102.0, 200)
    _add(store, RecordType.HEART_RATE, 130.0, 300)
    _add(store, RecordType.HEART_RATE, 45.0, 400)

    alerts = evaluator.evaluate(1)

    assert [a.label for a in alerts] == [
        "Tachycardia",
        "Bradycardia",
        "Fever",
        "Low Blood Oxygen",
    ]


def test_repeated_evaluation_is_identical(store: RecordStore, evaluator: AlertEvaluator) -> None:
    for i, value in enumerate((50.0, 120.0, 80.0, 30.0)):
        _add(store, RecordType.HEART_RATE, value, 1000 + i)
        _add(store, RecordType.SYSTOLIC_BP, value + 60, 1000 + i)

    assert evaluator.evaluate(1) == evaluator.evaluate(1)


def test_check_reading_ignores_other_record_types() -> None:
    heart_rate_rule = THRESHOLD_RULES[0]
    reading = Reading(
        patient_id=1, record_type=RecordType.TEMPERATURE, value=10.0, timestamp=1
    )

    assert heart_rate_rule.record_type is RecordType.HEART_RATE
    assert check_reading(heart_rate_rule, reading) is None


def test_evaluate_all_covers_every_known_patient(
    store: RecordStore, evaluator: AlertEvaluator
) -> None:
    _add(store, RecordType.HEART_RATE, 70.0, 1000, patient_id=3)
    _add(store, RecordType.HEART_RATE, 150.0, 1000, patient_id=1)

    results = evaluator.evaluate_all()

    assert list(results) == [1, 3]
    assert [a.label for a in results[1]] == ["Tachycardia"]
    assert results[3] == []


def test_evaluation_does_not_modify_the_store(
    store: RecordStore, evaluator: AlertEvaluator
) -> None:
    _add(store, RecordType.HEART_RATE, 150.0, 1000)
    before = store.query(1)

    evaluator.evaluate(1)

    assert store.query(1) == before


def test_dispatch_emits_alert_details_to_every_sink(store: RecordStore) -> None:
    first, second = MemorySink(), MemorySink()
    evaluator = AlertEvaluator(store, sinks=[first, ExplodingSink(), second])
    _add(store, RecordType.HEART_RATE, 55.0, 1000)

    alerts = evaluator.evaluate_and_dispatch(1)

    assert len(alerts) == 1
    for sink in (first, second):
        assert len(sink.emissions) == 1
        emission = sink.emissions[0]
        assert emission.patient_id == 1
        assert emission.timestamp == 1000
        assert emission.label == "Alert"
        assert emission.data == "Bradycardia: Heart rate 55.0 bpm"
