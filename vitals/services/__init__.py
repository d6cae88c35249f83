"""
Core services for the application.

This package contains the pipeline components: the record store, the stream
connector feeding it, the file importer, and the alert evaluator reading it.
"""

from .alert_evaluator import THRESHOLD_RULES, AlertEvaluator, Sink, ThresholdRule, check_reading
from .connector import (
    ConnectionState,
    ConnectorConfig,
    ConnectorStats,
    StreamConnector,
    StreamTransport,
    TcpStreamTransport,
)
from .file_importer import FileImporter, ImportSummary
from .record_store import RecordStore

__all__ = [
    "AlertEvaluator",
    "ConnectionState",
    "ConnectorConfig",
    "ConnectorStats",
    "FileImporter",
    "ImportSummary",
    "RecordStore",
    "Sink",
    "StreamConnector",
    "StreamTransport",
    "TcpStreamTransport",
    "THRESHOLD_RULES",
    "ThresholdRule",
    "check_reading",
]
