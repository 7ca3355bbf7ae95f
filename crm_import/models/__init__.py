"""Domain models for the CRM bulk import pipeline.

This package contains the value types passed between the parser, the mapping
model, the preview projector and the import executor.
"""

from .column_mapping import ColumnMapping
from .error_record import BATCH_LEVEL_ROW, ErrorRecord
from .import_result import ImportResult
from .raw_table import RawTable
from .session_state import ALLOWED_TRANSITIONS, SessionState
from .target_field import TargetField

__all__ = [
    # Parsed input
    "RawTable",
    # Catalog / mapping
    "TargetField",
    "ColumnMapping",
    # Outcome
    "ImportResult",
    "ErrorRecord",
    "BATCH_LEVEL_ROW",
    # Session lifecycle
    "SessionState",
    "ALLOWED_TRANSITIONS",
]
