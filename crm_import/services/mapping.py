from __future__ import annotations

import logging
from collections.abc import Mapping, Sequence

from ..models.column_mapping import ColumnMapping
from ..models.raw_table import RawTable
from ..models.target_field import TargetField
from .field_matcher import FieldMatcher

logger = logging.getLogger(__name__)

"""Mapping model: source column -> target field bindings for one upload.

Entries are seeded once from the field matcher and afterwards change only
through ``set_target``. Any edit marks the entry as manual, even when the new
target equals the original suggestion. Several columns may point at the same
field; ``duplicate_targets`` reports this but nothing prevents it.
"""

__all__ = [
    "UnknownColumnError",
    "MappingModel",
]


class UnknownColumnError(KeyError):
    """Raised when a mapping edit names a column that is not in the upload."""

    def __str__(self) -> str:  # KeyError は repr で包むため上書き
        return str(self.args[0]) if self.args else "unknown column"


class MappingModel:
    """Ordered column mappings keyed by source column."""

    def __init__(self, mappings: Sequence[ColumnMapping] = ()) -> None:
        self._entries: dict[str, ColumnMapping] = {}
        for entry in mappings:
            self._entries.setdefault(entry.source_column, entry)

    @classmethod
    def seed(
        cls,
        raw_table: RawTable,
        catalog: Sequence[TargetField],
        matcher: FieldMatcher | None = None,
    ) -> MappingModel:
        """Run the matcher once per header and build the initial mapping.

        Duplicate header names produce a single entry (first occurrence order).
        """
        matcher = matcher or FieldMatcher()
        entries: list[ColumnMapping] = []
        seen: set[str] = set()
        for header in raw_table.headers:
            if header in seen:
                logger.debug(f"duplicate header '{header}' shares one mapping entry")
                continue
            seen.add(header)
            field = matcher.resolve(header, catalog)
            entries.append(
                ColumnMapping(
                    source_column=header,
                    target_field=field.key if field is not None else None,
                    auto_mapped=field is not None,
                )
            )
        model = cls(entries)
        logger.debug(
            f"seeded mapping columns={len(entries)} auto_mapped={model.auto_mapped_count}"
        )
        return model

    @property
    def entries(self) -> tuple[ColumnMapping, ...]:
        return tuple(self._entries.values())

    def __len__(self) -> int:
        return len(self._entries)

    def __iter__(self):
        return iter(self.entries)

    def __contains__(self, source_column: object) -> bool:
        return source_column in self._entries

    def get(self, source_column: str) -> ColumnMapping:
        try:
            return self._entries[source_column]
        except KeyError:
            raise UnknownColumnError(f"column not in mapping: '{source_column}'") from None

    def set_target(self, source_column: str, target_field: str | None) -> ColumnMapping:
        """Replace the target of ``source_column`` as a manual edit.

        Raises:
            UnknownColumnError: If the column is not part of this mapping
        """
        if source_column not in self._entries:
            raise UnknownColumnError(f"column not in mapping: '{source_column}'")
        entry = ColumnMapping(
            source_column=source_column,
            target_field=target_field,
            auto_mapped=False,
        )
        # dict の挿入順は置換で変わらない -> mapping 順維持
        self._entries[source_column] = entry
        return entry

    def active(self) -> tuple[ColumnMapping, ...]:
        """Entries with a target, in mapping order."""
        return tuple(e for e in self._entries.values() if not e.is_skipped)

    @property
    def mapped_count(self) -> int:
        return len(self.active())

    @property
    def auto_mapped_count(self) -> int:
        return sum(1 for e in self._entries.values() if e.auto_mapped)

    def duplicate_targets(self) -> dict[str, list[str]]:
        """Field keys targeted by more than one column -> those columns."""
        by_target: dict[str, list[str]] = {}
        for entry in self.active():
            by_target.setdefault(entry.target_field, []).append(entry.source_column)  # type: ignore[arg-type]
        return {key: cols for key, cols in by_target.items() if len(cols) > 1}

    def missing_required(self, catalog: Sequence[TargetField]) -> list[TargetField]:
        """Required catalog fields no column maps to (advisory only)."""
        mapped = {e.target_field for e in self.active()}
        return [f for f in catalog if f.required and f.key not in mapped]

    def as_template(self) -> dict[str, str]:
        """Saved-mapping form: source column -> field key, mapped columns only."""
        return {e.source_column: e.target_field for e in self.active()}  # type: ignore[misc]

    def apply_template(self, template: Mapping[str, str | None]) -> int:
        """Apply a saved template as manual edits.

        Columns of the template absent from this upload are ignored.

        Returns:
            Number of entries changed
        """
        applied = 0
        for source_column, target_field in template.items():
            if source_column not in self._entries:
                logger.debug(f"template column '{source_column}' not in upload, ignored")
                continue
            self.set_target(source_column, target_field)
            applied += 1
        return applied
