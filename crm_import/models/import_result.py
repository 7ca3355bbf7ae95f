from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass
from typing import Any

"""ImportResult model for the CRM bulk import pipeline.

Produced once per completed batch import. The counts come from the
persistence collaborator; this model only guarantees they are consistent.
"""

__all__ = [
    "ImportResult",
]


def _count(data: Mapping[str, Any], key: str) -> int:
    value = data[key]
    # bool は int のサブクラス -> type で判定
    if type(value) is not int:
        raise TypeError(f"'{key}' must be an int, got {type(value).__name__} {value!r}")
    return value


@dataclass(frozen=True)
class ImportResult:
    """Aggregate outcome of one batch import.

    Attributes:
        total: Number of records submitted
        success: Records the backend accepted
        errors: Records the backend rejected (row-level validation failures)

    Raises:
        ValueError: If a count is negative or ``success + errors != total``
    """
    total: int
    success: int
    errors: int

    def __post_init__(self) -> None:
        if min(self.total, self.success, self.errors) < 0:
            raise ValueError(
                f"negative count in import result: total={self.total} "
                f"success={self.success} errors={self.errors}"
            )
        if self.success + self.errors != self.total:
            raise ValueError(
                f"inconsistent import result: success({self.success}) + "
                f"errors({self.errors}) != total({self.total})"
            )

    @staticmethod
    def from_response(data: Mapping[str, Any]) -> ImportResult:
        """Build from a collaborator reply ``{"success", "errors", "total"}``.

        Counts must be real ints; numeric strings, floats and bools are
        rejected rather than coerced.

        Raises:
            KeyError: If a count is missing
            TypeError: If a count is not an int
            ValueError: If the invariant fails
        """
        return ImportResult(
            total=_count(data, "total"),
            success=_count(data, "success"),
            errors=_count(data, "errors"),
        )

    @property
    def has_errors(self) -> bool:
        return self.errors > 0
