from __future__ import annotations

from collections.abc import Iterable, Mapping
from types import MappingProxyType

"""Built-in defaults for the import pipeline.

DEFAULT_FIELD_ALIASES is the alias table the field matcher falls back to when
a header matches no key or label. It is read-only; configuration builds a new
table with ``build_alias_table`` instead of mutating it.
"""

__all__ = [
    "DEFAULT_FIELD_ALIASES",
    "DEFAULT_PREVIEW_LIMIT",
    "DEFAULT_ERROR_LOG_DIR",
    "DEFAULT_DUPLICATE_STRATEGY",
    "AliasTable",
    "build_alias_table",
]

AliasTable = Mapping[str, tuple[str, ...]]

DEFAULT_PREVIEW_LIMIT = 5
DEFAULT_ERROR_LOG_DIR = "logs"
DEFAULT_DUPLICATE_STRATEGY = "skip"

# field key -> 既知の別表記 (順序 = マッチ優先順)
DEFAULT_FIELD_ALIASES: AliasTable = MappingProxyType({
    "first_name": ("first name", "firstname", "fname", "given name"),
    "last_name": ("last name", "lastname", "lname", "surname", "family name"),
    "email": ("email address", "e-mail", "mail"),
    "phone": ("phone number", "telephone", "mobile", "cell"),
    "mailing_street": ("street", "address", "mailing address", "street address"),
    "mailing_city": ("city", "town"),
    "mailing_state": ("state", "province", "region"),
    "mailing_zip": ("zip", "zip code", "postal code", "postcode"),
    "contact_status": ("status", "contact status"),
    "lead_status": ("status", "lead status"),
    "lead_source": ("source", "lead source"),
    "date_of_birth": ("dob", "birthdate", "birth date", "birthday"),
})


def build_alias_table(
    overrides: Mapping[str, Iterable[str]] | None = None,
    *,
    base: AliasTable | None = DEFAULT_FIELD_ALIASES,
) -> AliasTable:
    """Return a read-only alias table: ``base`` with ``overrides`` applied.

    Keys present in ``overrides`` replace the base entry; new keys are appended
    after the base keys, so base precedence is kept. Aliases are lowercased and
    stripped. Pass ``base=None`` to use the overrides alone.
    """
    table: dict[str, tuple[str, ...]] = dict(base or {})
    for key, aliases in (overrides or {}).items():
        table[key] = tuple(a.strip().lower() for a in aliases if a.strip())
    return MappingProxyType(table)
