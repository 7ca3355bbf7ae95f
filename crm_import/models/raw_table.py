from __future__ import annotations

from dataclasses import dataclass

"""RawTable model for the CRM bulk import pipeline.

RawTable is the parser output: the header row of an upload plus every data
row as a positional tuple of strings. Rows are already padded/truncated to the
header width by the parser, so consumers can index them by header position
without bounds checks.
"""

__all__ = [
    "RawTable",
]


@dataclass(frozen=True)
class RawTable:
    """Parsed upload: header row + positional data rows.

    Header names are not required to be unique. Lookups by name resolve to the
    last position carrying that name (same as building a row dict column by
    column, where later columns overwrite earlier ones).
    """
    headers: tuple[str, ...]
    rows: tuple[tuple[str, ...], ...]

    def column_index(self, name: str) -> int | None:
        """Return the position used for values of ``name`` (None if absent)."""
        index = None
        for i, header in enumerate(self.headers):
            if header == name:
                index = i
        return index

    @property
    def row_count(self) -> int:
        return len(self.rows)
