from __future__ import annotations

import time
from collections.abc import Callable, Mapping, Sequence
from dataclasses import dataclass, field
from typing import Any

import psycopg2
from psycopg2.extras import Json, execute_values

from ..models.target_field import TargetField
from .validation import DEDUPE_KEY, RECORDS_TABLE, RowFailure, find_duplicates, validate_records

"""Batch insert of mapped CRM records.

Records are written to ``crm_records(module_id, data jsonb)`` with
``execute_values``. If the batch statement fails (one bad record poisons the
whole statement) it is rolled back to a savepoint and the rows are retried one
by one, each under its own savepoint, so every valid record still lands and
every invalid one is reported with its error. Given the module's fields,
records failing the checks in ``validation`` are reported and never sent.

The caller owns the transaction (BEGIN/COMMIT); only savepoints are issued here.
"""

__all__ = [
    "BatchInsertError",
    "BatchMetrics",
    "RowFailure",
    "InsertResult",
    "insert_records",
]


class BatchInsertError(Exception):
    pass


@dataclass(frozen=True)
class BatchMetrics:
    """Timing for a single insert round (batch or row-by-row fallback)."""
    batch_size: int
    elapsed_seconds: float
    start_time: float
    end_time: float
    fallback: bool = False  # True = 行単位リトライ


@dataclass(frozen=True)
class InsertResult:
    inserted_rows: int
    failures: list[RowFailure] = field(default_factory=list)

    @property
    def failed_rows(self) -> int:
        return len(self.failures)


def _emit(
    callback: Callable[[BatchMetrics], None] | None, size: int, start: float, fallback: bool
) -> None:
    if callback is None:
        return
    end = time.time()
    callback(
        BatchMetrics(
            batch_size=size,
            elapsed_seconds=end - start,
            start_time=start,
            end_time=end,
            fallback=fallback,
        )
    )


def insert_records(
    cursor: Any,
    module_id: str,
    records: Sequence[Mapping[str, str]],
    page_size: int = 1000,
    metrics_callback: Callable[[BatchMetrics], None] | None = None,
    fields: Sequence[TargetField] = (),
    duplicate_strategy: str = "skip",
) -> InsertResult:
    """Insert records for ``module_id``, isolating per-record failures.

    Parameters
    ----------
    cursor: psycopg2 cursor inside an open transaction
    module_id: target CRM module
    records: field key -> value dicts
    page_size: execute_values page size
    metrics_callback: receives BatchMetrics per round (not called when nothing is inserted)
    fields: module catalog; enables required/email checks, and dedupe when it has ``email``
    duplicate_strategy: ``skip`` or ``error`` for records whose email already exists

    Raises
    ------
    BatchInsertError: savepoint handling itself failed (connection-level fault)
    """
    if not records:
        return InsertResult(inserted_rows=0)

    rejected = validate_records(records, fields)
    pending = [i for i in range(len(records)) if i not in rejected]
    if pending and any(f.key == DEDUPE_KEY for f in fields):
        try:
            rejected.update(find_duplicates(cursor, module_id, records, pending, duplicate_strategy))
        except psycopg2.Error as e:
            raise BatchInsertError(str(e)) from e
        pending = [i for i in pending if i not in rejected]

    result = _insert(cursor, module_id, records, pending, page_size, metrics_callback)
    failures = sorted([*rejected.values(), *result.failures], key=lambda f: f.row)
    return InsertResult(inserted_rows=result.inserted_rows, failures=failures)


def _insert(
    cursor: Any,
    module_id: str,
    records: Sequence[Mapping[str, str]],
    indexes: list[int],
    page_size: int,
    metrics_callback: Callable[[BatchMetrics], None] | None,
) -> InsertResult:
    if not indexes:
        return InsertResult(inserted_rows=0)

    rows = [(module_id, Json(dict(records[i]))) for i in indexes]
    sql = f"INSERT INTO {RECORDS_TABLE} (module_id, data) VALUES %s"

    start = time.time()
    try:
        cursor.execute("SAVEPOINT crm_import_batch")
        try:
            execute_values(cursor, sql, rows, page_size=page_size)
        except psycopg2.Error:
            cursor.execute("ROLLBACK TO SAVEPOINT crm_import_batch")
            cursor.execute("RELEASE SAVEPOINT crm_import_batch")
        else:
            cursor.execute("RELEASE SAVEPOINT crm_import_batch")
            return InsertResult(inserted_rows=len(rows))
        finally:
            _emit(metrics_callback, len(rows), start, fallback=False)
    except psycopg2.Error as e:
        raise BatchInsertError(str(e)) from e

    # バッチ失敗 -> 行単位で再試行
    numbers = [i + 1 for i in indexes]
    return _insert_row_by_row(cursor, sql, rows, numbers, metrics_callback)


def _insert_row_by_row(
    cursor: Any,
    sql: str,
    rows: list[tuple[str, Any]],
    numbers: list[int],
    metrics_callback: Callable[[BatchMetrics], None] | None,
) -> InsertResult:
    inserted = 0
    failures: list[RowFailure] = []
    start = time.time()
    try:
        for number, row in zip(numbers, rows):
            cursor.execute("SAVEPOINT crm_import_row")
            try:
                execute_values(cursor, sql, [row])
            except psycopg2.Error as e:
                cursor.execute("ROLLBACK TO SAVEPOINT crm_import_row")
                cursor.execute("RELEASE SAVEPOINT crm_import_row")
                failures.append(RowFailure(row=number, message=str(e).strip()))
            else:
                cursor.execute("RELEASE SAVEPOINT crm_import_row")
                inserted += 1
    except psycopg2.Error as e:
        raise BatchInsertError(str(e)) from e
    finally:
        _emit(metrics_callback, len(rows), start, fallback=True)
    return InsertResult(inserted_rows=inserted, failures=failures)
