from __future__ import annotations

from collections.abc import Mapping
from typing import Any

from psycopg2.extras import Json

"""Saved mapping templates (``crm_import_mappings``).

A template is ``source column -> field key`` stored per (module, name); saving
the same name again replaces it.
"""

__all__ = [
    "PostgresMappingStore",
]


class PostgresMappingStore:
    def __init__(self, conn: Any) -> None:
        self.conn = conn

    def save(self, module_id: str, name: str, template: Mapping[str, str]) -> None:
        cur = self.conn.cursor()
        try:
            cur.execute(
                "INSERT INTO crm_import_mappings (module_id, name, mapping) VALUES (%s, %s, %s)"
                " ON CONFLICT (module_id, name) DO UPDATE SET mapping = EXCLUDED.mapping",
                (module_id, name, Json(dict(template))),
            )
            self.conn.commit()
        except Exception:
            self.conn.rollback()
            raise
        finally:
            cur.close()

    def load(self, module_id: str, name: str) -> dict[str, str] | None:
        cur = self.conn.cursor()
        try:
            cur.execute(
                "SELECT mapping FROM crm_import_mappings WHERE module_id = %s AND name = %s",
                (module_id, name),
            )
            row = cur.fetchone()
        finally:
            cur.close()
        if row is None:
            return None
        return {str(k): str(v) for k, v in row[0].items()}
