from __future__ import annotations

from enum import Enum

"""SessionState enum for the import wizard lifecycle.

State transitions:
    selecting_module → awaiting_upload → mapping ⇄ previewing → importing → completed
    importing → previewing   (execution failure, mapping kept)
    completed → selecting_module   (the only reset)
"""

__all__ = [
    "SessionState",
    "ALLOWED_TRANSITIONS",
]


class SessionState(Enum):
    """Step of one import session.

    - SELECTING_MODULE: No target module chosen yet
    - AWAITING_UPLOAD: Field catalog loaded, waiting for a file
    - MAPPING: File parsed, columns seeded, user may edit targets
    - PREVIEWING: User is confirming the transformed sample
    - IMPORTING: Batch request in flight
    - COMPLETED: ImportResult available
    """
    SELECTING_MODULE = "selecting_module"
    AWAITING_UPLOAD = "awaiting_upload"
    MAPPING = "mapping"
    PREVIEWING = "previewing"
    IMPORTING = "importing"
    COMPLETED = "completed"


ALLOWED_TRANSITIONS: dict[SessionState, frozenset[SessionState]] = {
    SessionState.SELECTING_MODULE: frozenset({SessionState.AWAITING_UPLOAD}),
    SessionState.AWAITING_UPLOAD: frozenset({SessionState.MAPPING}),
    SessionState.MAPPING: frozenset({SessionState.PREVIEWING}),
    SessionState.PREVIEWING: frozenset({SessionState.MAPPING, SessionState.IMPORTING}),
    SessionState.IMPORTING: frozenset({SessionState.COMPLETED, SessionState.PREVIEWING}),
    SessionState.COMPLETED: frozenset({SessionState.SELECTING_MODULE}),
}
