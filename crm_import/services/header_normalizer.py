from __future__ import annotations

import re

"""Header normalization for column matching.

The normalized token is only used for comparison; the original header text is
what users see in mappings and error messages.
"""

__all__ = [
    "normalize_header",
]

_NON_ALNUM = re.compile(r"[^a-z0-9]")
_UNDERSCORE_RUN = re.compile(r"_+")


def normalize_header(header: str) -> str:
    """Canonicalize a raw column label.

    Lowercase, replace anything outside [a-z0-9] with '_', collapse runs of
    '_' and drop a leading/trailing '_'.

    >>> normalize_header("First Name")
    'first_name'
    >>> normalize_header("  E-Mail!! ")
    'e_mail'
    """
    token = _NON_ALNUM.sub("_", header.lower())
    token = _UNDERSCORE_RUN.sub("_", token)
    return token.strip("_")
