from __future__ import annotations

import logging
from collections.abc import Mapping, Sequence
from typing import Any

from ..logging.error_log import ErrorLogBuffer
from ..models.error_record import ErrorRecord
from ..services.collaborators import FieldCatalog
from .batch_insert import BatchMetrics, insert_records
from .validation import DUPLICATE_STRATEGIES

logger = logging.getLogger(__name__)

"""PostgreSQL persistence collaborator for batch imports.

One ``import_records`` call = one transaction: the records (with per-row
failure isolation) plus a ``crm_import_jobs`` row describing the run. With a
field catalog, records are checked against the module's fields (required,
email format, email duplicates) before insert. Any exception rolls the
transaction back and propagates; the executor turns it into
ImportExecutionError.
"""

__all__ = [
    "PostgresRecordImporter",
]

JOBS_TABLE = "crm_import_jobs"


class PostgresRecordImporter:
    def __init__(
        self,
        conn: Any,
        *,
        catalog: FieldCatalog | None = None,
        duplicate_strategy: str = "skip",
        error_log: ErrorLogBuffer | None = None,
        file_name: str = "",
        page_size: int = 1000,
    ) -> None:
        if duplicate_strategy not in DUPLICATE_STRATEGIES:
            raise ValueError(
                f"duplicate_strategy must be one of {DUPLICATE_STRATEGIES}, got '{duplicate_strategy}'"
            )
        self.conn = conn
        self.catalog = catalog
        self.duplicate_strategy = duplicate_strategy
        self.error_log = error_log
        self.file_name = file_name
        self.page_size = page_size
        self.batch_metrics: list[BatchMetrics] = []

    def import_records(
        self,
        module_id: str,
        records: Sequence[Mapping[str, str]],
        saved_mapping_name: str | None = None,
    ) -> dict[str, int]:
        fields = self.catalog.get_fields(module_id) if self.catalog is not None else ()
        cur = self.conn.cursor()
        try:
            result = insert_records(
                cur,
                module_id,
                records,
                page_size=self.page_size,
                metrics_callback=self.batch_metrics.append,
                fields=fields,
                duplicate_strategy=self.duplicate_strategy,
            )
            cur.execute(
                f"INSERT INTO {JOBS_TABLE} (module_id, file_name, mapping_name, total, success, errors)"
                " VALUES (%s, %s, %s, %s, %s, %s)",
                (
                    module_id,
                    self.file_name,
                    saved_mapping_name,
                    len(records),
                    result.inserted_rows,
                    result.failed_rows,
                ),
            )
            self.conn.commit()
        except Exception:
            self.conn.rollback()
            raise
        finally:
            cur.close()

        for failure in result.failures:
            logger.debug(f"record {failure.row} rejected: {failure.message}")
            if self.error_log is not None:
                self.error_log.append(
                    ErrorRecord.create(
                        file=self.file_name,
                        module=module_id,
                        row=failure.row,
                        error_type=failure.error_type,
                        message=failure.message,
                    )
                )
        return {
            "success": result.inserted_rows,
            "errors": result.failed_rows,
            "total": len(records),
        }
