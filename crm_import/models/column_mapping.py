from __future__ import annotations

from dataclasses import dataclass

"""ColumnMapping model: binds one source column to at most one target field.

A mapping whose ``target_field`` is None means the column is skipped and never
reaches the preview or the import payload.
"""

__all__ = [
    "ColumnMapping",
]


@dataclass(frozen=True)
class ColumnMapping:
    source_column: str  # アップロードの元ヘッダ (表示用, 正規化しない)
    target_field: str | None  # TargetField.key, None = skip
    auto_mapped: bool = False  # resolver 由来かつ未編集のときのみ True

    @property
    def is_skipped(self) -> bool:
        return self.target_field is None
