from __future__ import annotations

from collections.abc import Mapping, Sequence
from typing import Any, Protocol

from ..models.target_field import TargetField

"""Interfaces of the services the import pipeline consumes.

Implementations live in ``services.catalog`` (config-declared catalog) and in
``db`` (PostgreSQL). Tests substitute simple fakes.
"""

__all__ = [
    "FieldCatalog",
    "RecordImporter",
    "MappingStore",
]


class FieldCatalog(Protocol):
    def get_fields(self, module_id: str) -> Sequence[TargetField]:
        """Field definitions of a module, keys stable within the module."""
        ...


class RecordImporter(Protocol):
    def import_records(
        self,
        module_id: str,
        records: Sequence[Mapping[str, str]],
        saved_mapping_name: str | None = None,
    ) -> Mapping[str, Any]:
        """Persist one batch, returning ``{"success", "errors", "total"}``.

        Must tolerate invalid records (counted in ``errors``) instead of
        failing the batch. Raising means the whole request failed.
        """
        ...


class MappingStore(Protocol):
    def save(self, module_id: str, name: str, template: Mapping[str, str]) -> None:
        ...

    def load(self, module_id: str, name: str) -> dict[str, str] | None:
        ...
