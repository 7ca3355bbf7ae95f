from __future__ import annotations

import json
from dataclasses import asdict, dataclass
from datetime import UTC, datetime

"""ErrorRecord model for error logging.

ErrorRecord is the JSON Lines entry written by the error log buffer for
failures during an import: rows the backend rejected, and batch-level faults
where no single row is to blame. The latter use row=-1 as a sentinel.
"""

__all__ = [
    "ErrorRecord",
    "BATCH_LEVEL_ROW",
]

BATCH_LEVEL_ROW = -1


@dataclass(frozen=True)
class ErrorRecord:
    """Structured error record for JSON Lines logging.

    Attributes:
        timestamp: ISO8601 UTC timestamp with 'Z' suffix
        file: Uploaded file name
        module: Target CRM module id
        row: 1-based data row number, -1 for batch-level errors
        error_type: Error classification in UPPER_SNAKE_CASE format
        message: Backend or transport error message
    """
    timestamp: str  # ISO8601 UTC
    file: str
    module: str
    row: int  # 不明な場合 -1
    error_type: str  # UPPER_SNAKE
    message: str

    @staticmethod
    def create(file: str, module: str, row: int, error_type: str, message: str) -> ErrorRecord:
        """Create a new ErrorRecord stamped with the current UTC time."""
        ts = datetime.now(UTC).isoformat().replace("+00:00", "Z")
        return ErrorRecord(
            timestamp=ts,
            file=file,
            module=module,
            row=row,
            error_type=error_type,
            message=message,
        )

    def to_json_line(self) -> str:
        # dataclass -> dict のみ (追加キーなし)
        return json.dumps(asdict(self), ensure_ascii=False)
