from __future__ import annotations

from types import MappingProxyType

import pytest

from crm_import.config.defaults import DEFAULT_FIELD_ALIASES, build_alias_table
from crm_import.models.target_field import TargetField
from crm_import.services.field_matcher import (
    FieldMatcher,
    alias_stage,
    match_exact_key,
    match_exact_label,
    match_label_substring,
    resolve,
)
from crm_import.services.header_normalizer import normalize_header


@pytest.mark.parametrize(
    ("raw", "expected"),
    [
        ("First Name", "first_name"),
        ("  E-Mail!! ", "e_mail"),
        ("ZIP/Postal  Code", "zip_postal_code"),
        ("already_ok", "already_ok"),
        ("", ""),
        ("!!!", ""),
    ],
)
def test_normalize_header(raw, expected):
    assert normalize_header(raw) == expected


def test_stage_one_key_match_beats_label_substring_of_earlier_field():
    catalog = [
        TargetField(key="work_email", label="Work Email"),
        TargetField(key="email", label="Email Address"),
    ]
    field = resolve("email", catalog)
    assert field is not None and field.key == "email"


def test_exact_label_match_is_case_insensitive():
    catalog = [TargetField(key="fn", label="First Name")]
    assert match_exact_label("FIRST NAME", catalog) == catalog[0]
    assert resolve("first name", catalog) == catalog[0]


def test_substring_label_match_both_directions():
    catalog = [TargetField(key="company", label="Company Name")]
    assert match_label_substring("company", catalog) == catalog[0]
    assert match_label_substring("Primary Company Name (legal)", catalog) == catalog[0]


def test_substring_stage_ignores_blank_labels():
    catalog = [TargetField(key="blank", label=""), TargetField(key="notes", label="Notes")]
    assert match_label_substring("notes", catalog) == catalog[1]


def test_ties_resolve_to_first_catalog_entry():
    catalog = [
        TargetField(key="home_phone", label="Home Phone"),
        TargetField(key="work_phone", label="Work Phone"),
    ]
    # "phone" is contained in both labels
    assert resolve("Phone", catalog) == catalog[0]


def test_alias_postal_code_resolves_to_mailing_zip():
    catalog = [
        TargetField(key="first_name", label="First Name"),
        TargetField(key="mailing_zip", label="Mailing Zip"),
    ]
    field = resolve("Postal Code", catalog)
    assert field is not None and field.key == "mailing_zip"


def test_alias_key_missing_from_catalog_continues_search():
    # "Contact Status" hits contact_status first, which is absent here
    catalog = [TargetField(key="lead_status", label="Lifecycle")]
    field = resolve("Contact Status", catalog)
    assert field is not None and field.key == "lead_status"


def test_no_match_returns_none(contacts_fields):
    assert resolve("Favourite Colour", contacts_fields) is None


def test_blank_header_never_matches(contacts_fields):
    assert resolve("", contacts_fields) is None
    assert resolve("   ", contacts_fields) is None


def test_resolver_is_deterministic(contacts_fields):
    headers = ["First Name", "e-mail", "Postal Code", "Mobile", "???"]
    first = [resolve(h, contacts_fields) for h in headers]
    second = [resolve(h, list(contacts_fields)) for h in headers]
    assert first == second


def test_injected_alias_table_replaces_defaults():
    catalog = [TargetField(key="email", label="Electronic Address")]
    assert resolve("Courriel", catalog) is None
    matcher = FieldMatcher(build_alias_table({"email": ["courriel"]}, base=None))
    assert matcher.resolve("Courriel", catalog) == catalog[0]


def test_alias_stage_replaces_spaces_with_underscores():
    stage = alias_stage(MappingProxyType({"first_name": ("given name",)}))
    catalog = [TargetField(key="first_name", label="Vorname")]
    assert stage("Given  Name", catalog) == catalog[0]


def test_custom_stage_order():
    catalog = [
        TargetField(key="email", label="Phone"),
        TargetField(key="phone", label="Email"),
    ]
    key_first = FieldMatcher()
    label_first = FieldMatcher(stages=[match_exact_label, match_exact_key])
    assert key_first.resolve("email", catalog).key == "email"
    assert label_first.resolve("email", catalog).key == "phone"


def test_default_alias_table_is_read_only():
    with pytest.raises(TypeError):
        DEFAULT_FIELD_ALIASES["x"] = ("y",)  # type: ignore[index]
