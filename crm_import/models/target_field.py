from __future__ import annotations

from dataclasses import dataclass
from typing import Any

"""TargetField model: one attribute of a CRM module a column can map onto."""

__all__ = [
    "TargetField",
]


@dataclass(frozen=True)
class TargetField:
    """Field definition supplied by the field catalog.

    ``key`` is the stable identifier (unique within a module), ``label`` the
    human-readable name shown in previews. ``required`` is advisory only; the
    persistence side enforces it.
    """
    key: str
    label: str
    required: bool = False

    @staticmethod
    def from_dict(data: dict[str, Any]) -> TargetField:
        return TargetField(
            key=str(data["key"]),
            label=str(data.get("label", data["key"])),
            required=bool(data.get("required", False)),
        )
