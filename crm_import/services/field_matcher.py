from __future__ import annotations

import re
from collections.abc import Callable, Sequence

from ..config.defaults import DEFAULT_FIELD_ALIASES, AliasTable
from ..models.target_field import TargetField
from .header_normalizer import normalize_header

"""Field-match resolver: proposes a target field for a source header.

Matching is an ordered pipeline of stages; the first stage returning a field
wins and ties inside a stage go to the earliest catalog entry:

1. exact key    normalize(header) == field.key
2. exact label  case-insensitive equality with field.label
3. label part   case-insensitive containment, either direction
4. alias        an alias (spaces -> '_') occurs inside normalize(header)

Blank headers never match, and blank labels are ignored by stage 3, since an
empty string is contained in every string.
"""

__all__ = [
    "MatchStage",
    "FieldMatcher",
    "match_exact_key",
    "match_exact_label",
    "match_label_substring",
    "alias_stage",
    "default_stages",
    "resolve",
]

MatchStage = Callable[[str, Sequence[TargetField]], TargetField | None]

_WHITESPACE = re.compile(r"\s+")


def match_exact_key(header: str, catalog: Sequence[TargetField]) -> TargetField | None:
    token = normalize_header(header)
    return next((f for f in catalog if f.key == token), None)


def match_exact_label(header: str, catalog: Sequence[TargetField]) -> TargetField | None:
    wanted = header.lower()
    return next((f for f in catalog if f.label.lower() == wanted), None)


def match_label_substring(header: str, catalog: Sequence[TargetField]) -> TargetField | None:
    wanted = header.lower()
    for field in catalog:
        label = field.label.lower()
        if not label:
            continue
        if wanted in label or label in wanted:
            return field
    return None


def alias_stage(aliases: AliasTable) -> MatchStage:
    """Build the alias stage over a fixed alias table.

    Alias keys are tried in table order; a key whose aliases hit but which is
    missing from the catalog does not stop the search.
    """
    compiled = [
        (key, tuple(_WHITESPACE.sub("_", alias) for alias in alias_list))
        for key, alias_list in aliases.items()
    ]

    def match_alias(header: str, catalog: Sequence[TargetField]) -> TargetField | None:
        token = normalize_header(header)
        for key, patterns in compiled:
            if any(p in token for p in patterns):
                field = next((f for f in catalog if f.key == key), None)
                if field is not None:
                    return field
        return None

    return match_alias


def default_stages(aliases: AliasTable = DEFAULT_FIELD_ALIASES) -> tuple[MatchStage, ...]:
    return (
        match_exact_key,
        match_exact_label,
        match_label_substring,
        alias_stage(aliases),
    )


class FieldMatcher:
    """Runs match stages in order against a field catalog.

    The matcher holds no mutable state: the same header and catalog always
    resolve to the same field.
    """

    def __init__(
        self,
        aliases: AliasTable = DEFAULT_FIELD_ALIASES,
        *,
        stages: Sequence[MatchStage] | None = None,
    ) -> None:
        self.aliases = aliases
        self.stages: tuple[MatchStage, ...] = (
            tuple(stages) if stages is not None else default_stages(aliases)
        )

    def resolve(self, header: str, catalog: Sequence[TargetField]) -> TargetField | None:
        if not header.strip():
            return None
        for stage in self.stages:
            field = stage(header, catalog)
            if field is not None:
                return field
        return None


_DEFAULT_MATCHER = FieldMatcher()


def resolve(header: str, catalog: Sequence[TargetField]) -> TargetField | None:
    """Resolve with the built-in alias table."""
    return _DEFAULT_MATCHER.resolve(header, catalog)
