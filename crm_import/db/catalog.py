from __future__ import annotations

from typing import Any

from ..models.target_field import TargetField
from ..services.catalog import CatalogError

"""Field catalog backed by the ``crm_fields`` table."""

__all__ = [
    "PostgresFieldCatalog",
]


class PostgresFieldCatalog:
    def __init__(self, conn: Any) -> None:
        self.conn = conn

    def get_fields(self, module_id: str) -> tuple[TargetField, ...]:
        cur = self.conn.cursor()
        try:
            cur.execute(
                "SELECT key, label, required FROM crm_fields"
                " WHERE module_id = %s ORDER BY display_order, key",
                (module_id,),
            )
            rows = cur.fetchall()
        finally:
            cur.close()
        if not rows:
            raise CatalogError(f"no fields defined for module '{module_id}'")
        return tuple(
            TargetField(key=key, label=label or key, required=bool(required))
            for key, label, required in rows
        )
