from __future__ import annotations

from collections.abc import Iterable, Sequence

from ..models.column_mapping import ColumnMapping
from ..models.raw_table import RawTable
from ..models.target_field import TargetField

"""Preview projector: a bounded, read-only sample of transformed rows.

Shows the user what the import will send, keyed by field label. Nothing here
mutates the table or the mapping.
"""

__all__ = [
    "preview",
    "active_columns",
]


def active_columns(
    raw_table: RawTable, mappings: Iterable[ColumnMapping]
) -> list[tuple[int, str]]:
    """(header position, field key) for every mapped column, in mapping order."""
    columns: list[tuple[int, str]] = []
    for entry in mappings:
        if entry.target_field is None:
            continue
        idx = raw_table.column_index(entry.source_column)
        if idx is None:
            continue
        columns.append((idx, entry.target_field))
    return columns


def preview(
    raw_table: RawTable,
    mappings: Iterable[ColumnMapping],
    catalog: Sequence[TargetField],
    limit: int,
) -> list[dict[str, str]]:
    """Project the first ``limit`` rows onto mapped fields.

    Args:
        raw_table: Parsed upload
        mappings: Column mappings (skipped columns are left out)
        catalog: Field catalog used to turn keys into labels
        limit: Maximum number of rows (negative treated as 0)

    Returns:
        ``min(limit, row_count)`` dicts of label -> value in mapping order.
        A key missing from the catalog is shown as-is.
    """
    labels = {f.key: f.label for f in catalog}
    columns = [
        (idx, labels.get(key, key)) for idx, key in active_columns(raw_table, mappings)
    ]
    sample = raw_table.rows[: max(limit, 0)]
    return [{label: row[idx] for idx, label in columns} for row in sample]
