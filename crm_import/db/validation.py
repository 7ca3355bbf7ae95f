from __future__ import annotations

from collections.abc import Mapping, Sequence
from dataclasses import dataclass
from typing import Any

from email_validator import EmailNotValidError, validate_email

from ..models.target_field import TargetField

"""Row-level checks run before records reach ``crm_records``.

- required fields must carry a non-blank value (an unmapped required field
  counts as blank)
- email-typed fields (key ``email`` or ``*_email``) must parse as an address
- the ``email`` field is the dedupe key within a module: a value already
  stored, or seen earlier in the same batch, is a duplicate and handled per
  the duplicate strategy

Nothing here raises for a bad record; every problem becomes a RowFailure.
"""

__all__ = [
    "DUPLICATE_STRATEGIES",
    "DEDUPE_KEY",
    "RowFailure",
    "validate_records",
    "find_duplicates",
]

DEDUPE_KEY = "email"
DUPLICATE_STRATEGIES = ("skip", "error")

RECORDS_TABLE = "crm_records"


@dataclass(frozen=True)
class RowFailure:
    row: int  # 1-based record number
    message: str
    error_type: str = "RECORD_REJECTED"


def _is_email_field(key: str) -> bool:
    return key == DEDUPE_KEY or key.endswith("_" + DEDUPE_KEY)


def _check_record(record: Mapping[str, str], fields: Sequence[TargetField]) -> list[str]:
    problems: list[str] = []
    for f in fields:
        value = (record.get(f.key) or "").strip()
        if not value:
            if f.required:
                problems.append(f"{f.label} is required")
            continue
        if _is_email_field(f.key):
            try:
                validate_email(value, check_deliverability=False)
            except EmailNotValidError:
                problems.append(f"{f.label} is not a valid email address")
    return problems


def validate_records(
    records: Sequence[Mapping[str, str]], fields: Sequence[TargetField]
) -> dict[int, RowFailure]:
    """Return ``{record index: RowFailure}`` for records failing a field check."""
    failures: dict[int, RowFailure] = {}
    if not fields:
        return failures
    for index, record in enumerate(records):
        problems = _check_record(record, fields)
        if problems:
            failures[index] = RowFailure(
                row=index + 1, message="; ".join(problems), error_type="VALIDATION_FAILED"
            )
    return failures


def _existing_keys(cursor: Any, module_id: str, candidates: set[str]) -> set[str]:
    if not candidates:
        return set()
    cursor.execute(
        f"SELECT DISTINCT lower(data->>'{DEDUPE_KEY}') FROM {RECORDS_TABLE}"
        f" WHERE module_id = %s AND lower(data->>'{DEDUPE_KEY}') = ANY(%s)",
        (module_id, sorted(candidates)),
    )
    return {row[0] for row in cursor.fetchall()}


def find_duplicates(
    cursor: Any,
    module_id: str,
    records: Sequence[Mapping[str, str]],
    indexes: Sequence[int],
    strategy: str = "skip",
) -> dict[int, RowFailure]:
    """Mark records in ``indexes`` whose dedupe key is already taken.

    The first occurrence within the batch wins unless the key is already
    stored for ``module_id``. ``skip`` and ``error`` both keep the record out
    of the insert; they differ in how the row is reported.
    """
    if strategy not in DUPLICATE_STRATEGIES:
        raise ValueError(f"duplicate strategy must be one of {DUPLICATE_STRATEGIES}, got '{strategy}'")

    keyed: list[tuple[int, str]] = []
    for index in indexes:
        value = (records[index].get(DEDUPE_KEY) or "").strip().lower()
        if value:
            keyed.append((index, value))

    taken = _existing_keys(cursor, module_id, {value for _, value in keyed})
    failures: dict[int, RowFailure] = {}
    for index, value in keyed:
        if value in taken:
            if strategy == "skip":
                failures[index] = RowFailure(
                    row=index + 1,
                    message=f"duplicate {DEDUPE_KEY} '{value}' skipped",
                    error_type="DUPLICATE_SKIPPED",
                )
            else:
                failures[index] = RowFailure(
                    row=index + 1,
                    message=f"duplicate {DEDUPE_KEY} '{value}'",
                    error_type="DUPLICATE_RECORD",
                )
            continue
        taken.add(value)
    return failures
