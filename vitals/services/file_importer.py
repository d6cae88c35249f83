"""
Batch importer: the file-based counterpart of the stream connector.

Reads canonical lines (``patientId,timestamp,recordType,value``) and appends
them to the record store through the same contract the connector uses. Safe
to run on a worker thread while the connector is ingesting.
"""

from collections.abc import Iterable
from dataclasses import dataclass
from pathlib import Path

import structlog

from vitals.domain.wire import parse_message
from vitals.services.record_store import RecordStore

logger = structlog.get_logger(__name__)

COMMENT_PREFIX = "#"


@dataclass
class ImportSummary:
    """Outcome of one import run."""

    lines_read: int = 0
    stored: int = 0
    rejected: int = 0

    def merge(self, other: "ImportSummary") -> None:
        self.lines_read += other.lines_read
        self.stored += other.stored
        self.rejected += other.rejected


class FileImporter:
    """Loads static datasets into a record store."""

    def __init__(self, store: RecordStore) -> None:
        self.store = store
        self.logger = logger.bind(component="file_importer")

    def import_lines(self, lines: Iterable[str], source: str = "<lines>") -> ImportSummary:
        summary = ImportSummary()
        for line_number, line in enumerate(lines, start=1):
            stripped = line.strip()
            if not stripped or stripped.startswith(COMMENT_PREFIX):
                continue
            summary.lines_read += 1

            parsed = parse_message(stripped)
            if parsed.is_err():
                summary.rejected += 1
                self.logger.warning(
                    "import_line_skipped",
                    source=source,
                    line_number=line_number,
                    reason=str(parsed.unwrap_err()),
                )
                continue

            if self.store.append(parsed.unwrap()).is_ok():
                summary.stored += 1
            else:
                summary.rejected += 1
        return summary

    def import_file(self, path: str | Path) -> ImportSummary:
        """
        Import one file.

        Raises:
            OSError: if the file cannot be opened or read.
        """
        path = Path(path)
        with path.open(encoding="ascii", errors="replace") as handle:
            summary = self.import_lines(handle, source=str(path))

        self.logger.info(
            "file_imported",
            path=str(path),
            lines_read=summary.lines_read,
            stored=summary.stored,
            rejected=summary.rejected,
        )
        return summary

    def import_directory(self, directory: str | Path, pattern: str = "*.txt") -> ImportSummary:
        """Import every file matching ``pattern`` in ``directory``, in name order."""
        total = ImportSummary()
        for path in sorted(Path(directory).glob(pattern)):
            if path.is_file():
                total.merge(self.import_file(path))
        return total
