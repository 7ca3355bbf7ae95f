from __future__ import annotations

from collections.abc import Mapping, Sequence

from ..models.target_field import TargetField

"""Field catalog declared in the import config (``modules:`` section).

Used when no database catalog is available, e.g. for one-off imports or
tests. Field order in the config is the catalog order the matcher sees.
"""

__all__ = [
    "CatalogError",
    "StaticFieldCatalog",
]


class CatalogError(Exception):
    """Raised when a module has no field definitions."""


class StaticFieldCatalog:
    def __init__(self, modules: Mapping[str, Sequence[TargetField]]) -> None:
        self._modules = {module_id: tuple(fields) for module_id, fields in modules.items()}

    @property
    def module_ids(self) -> list[str]:
        return list(self._modules)

    def get_fields(self, module_id: str) -> tuple[TargetField, ...]:
        try:
            return self._modules[module_id]
        except KeyError:
            raise CatalogError(
                f"unknown module '{module_id}' (configured: {sorted(self._modules)})"
            ) from None
