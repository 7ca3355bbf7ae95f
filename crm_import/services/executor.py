from __future__ import annotations

import logging
import threading
from collections.abc import Iterable

from ..models.column_mapping import ColumnMapping
from ..models.import_result import ImportResult
from ..models.raw_table import RawTable
from .collaborators import RecordImporter
from .preview import active_columns
from .progress import ProgressSignal

logger = logging.getLogger(__name__)

"""Import executor: submits the mapped dataset as one batch request.

Row-level validation belongs to the persistence collaborator; the executor
only builds the payload, makes the call and checks the reply. A failed call
yields ImportExecutionError and no result, leaving table and mapping as they
were so the caller can retry.
"""

__all__ = [
    "ImportExecutionError",
    "ImportInProgressError",
    "ImportExecutor",
    "build_records",
]


class ImportExecutionError(Exception):
    """The batch request failed as a whole (transport/backend fault)."""


class ImportInProgressError(RuntimeError):
    """``execute`` was called while another batch request is in flight."""


def build_records(
    raw_table: RawTable, mappings: Iterable[ColumnMapping]
) -> list[dict[str, str]]:
    """One record per row: field key -> value, mapped columns only.

    When several columns target the same key the later column (mapping order)
    wins.
    """
    columns = active_columns(raw_table, mappings)
    return [{key: row[idx] for idx, key in columns} for row in raw_table.rows]


class ImportExecutor:
    """Runs at most one batch import at a time."""

    def __init__(self, importer: RecordImporter, progress: ProgressSignal | None = None) -> None:
        self.importer = importer
        self.progress = progress or ProgressSignal()
        self._guard = threading.Lock()

    @property
    def in_flight(self) -> bool:
        return self._guard.locked()

    def execute(
        self,
        raw_table: RawTable,
        mappings: Iterable[ColumnMapping],
        module_id: str,
        saved_mapping_name: str | None = None,
    ) -> ImportResult:
        """Submit all rows and aggregate the backend's per-row outcome.

        Raises:
            ImportInProgressError: Another execute is still running
            ImportExecutionError: The request failed or the reply is malformed
        """
        if not self._guard.acquire(blocking=False):
            raise ImportInProgressError("an import is already in flight for this session")
        try:
            records = build_records(raw_table, mappings)
            logger.info(f"submitting {len(records)} records to module '{module_id}'")
            try:
                self.progress.start()
                reply = self.importer.import_records(module_id, records, saved_mapping_name)
            except Exception as e:
                raise ImportExecutionError(f"import request failed: {e}") from e
            finally:
                # 成功/失敗どちらでも応答後にのみ 100
                self.progress.finish()

            try:
                result = ImportResult.from_response(reply)
            except (KeyError, TypeError, ValueError) as e:
                raise ImportExecutionError(f"malformed import reply {reply!r}: {e}") from e
            if result.total != len(records):
                raise ImportExecutionError(
                    f"import reply total={result.total} does not match submitted={len(records)}"
                )
            if result.has_errors:
                logger.warning(f"{result.errors} of {result.total} records were rejected")
            return result
        finally:
            self._guard.release()
