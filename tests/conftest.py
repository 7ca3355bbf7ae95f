# Shared pytest fixtures
from __future__ import annotations

import tempfile
from collections.abc import Mapping, Sequence
from contextlib import contextmanager
from pathlib import Path

import pytest

from crm_import.logging.error_log import ErrorLogBuffer
from crm_import.logging.init import reset_logging
from crm_import.models.error_record import ErrorRecord
from crm_import.models.target_field import TargetField
from crm_import.services.catalog import CatalogError


class FakeImporter:
    """In-memory RecordImporter: records each call, replies per ``reject``."""

    def __init__(self, reject: Sequence[int] = (), fail_with: Exception | None = None) -> None:
        self.reject = set(reject)  # 0-based record indexes to report as errors
        self.fail_with = fail_with
        self.error_log: ErrorLogBuffer | None = None
        self.file_name = ""
        self.calls: list[tuple[str, list[dict[str, str]], str | None]] = []

    def import_records(
        self,
        module_id: str,
        records: Sequence[Mapping[str, str]],
        saved_mapping_name: str | None = None,
    ) -> dict[str, int]:
        self.calls.append((module_id, [dict(r) for r in records], saved_mapping_name))
        if self.fail_with is not None:
            raise self.fail_with
        errors = sum(1 for i in range(len(records)) if i in self.reject)
        if self.error_log is not None:
            for i in sorted(self.reject):
                if i < len(records):
                    self.error_log.append(
                        ErrorRecord.create(self.file_name, module_id, i + 1, "RECORD_REJECTED", "rejected by fake backend")
                    )
        return {"success": len(records) - errors, "errors": errors, "total": len(records)}


class FakeCatalog:
    def __init__(self, modules: Mapping[str, Sequence[TargetField]]) -> None:
        self.modules = modules

    def get_fields(self, module_id: str) -> Sequence[TargetField]:
        if module_id not in self.modules:
            raise CatalogError(f"unknown module '{module_id}'")
        return self.modules[module_id]


class FakeMappingStore:
    def __init__(self) -> None:
        self.saved: dict[tuple[str, str], dict[str, str]] = {}

    def save(self, module_id: str, name: str, template: Mapping[str, str]) -> None:
        self.saved[(module_id, name)] = dict(template)

    def load(self, module_id: str, name: str) -> dict[str, str] | None:
        return self.saved.get((module_id, name))


@pytest.fixture()
def contacts_fields() -> list[TargetField]:
    return [
        TargetField(key="first_name", label="First Name", required=True),
        TargetField(key="last_name", label="Last Name", required=True),
        TargetField(key="email", label="Email", required=True),
        TargetField(key="phone", label="Phone"),
        TargetField(key="mailing_zip", label="ZIP"),
    ]


@pytest.fixture()
def simple_csv() -> str:
    return "First Name,Email,Phone\nJane,jane@x.com,555-1234\n"


@pytest.fixture()
def temp_workdir(monkeypatch) -> Path:
    with tempfile.TemporaryDirectory() as d:
        p = Path(d)
        (p / "config").mkdir()
        (p / "data").mkdir()
        monkeypatch.chdir(p)
        yield p


@pytest.fixture()
def sample_config_yaml() -> str:
    return """preview_limit: 5
error_log_dir: ./logs
field_aliases:
  mailing_zip: [zip, postal code]
modules:
  contacts:
    fields:
      - {key: first_name, label: First Name, required: true}
      - {key: last_name, label: Last Name, required: true}
      - {key: email, label: Email, required: true}
      - {key: phone, label: Phone}
      - {key: mailing_zip, label: ZIP}
database:
  host: localhost
  port: 5432
  user: appuser
  password: secret
  database: crm
"""


@pytest.fixture()
def write_config(temp_workdir: Path, sample_config_yaml: str) -> Path:
    cfg = temp_workdir / "config" / "import.yml"
    cfg.write_text(sample_config_yaml, encoding="utf-8")
    return cfg


@pytest.fixture()
def write_csv(temp_workdir: Path):
    def _write(text: str, name: str = "contacts.csv") -> Path:
        f = temp_workdir / "data" / name
        f.write_text(text, encoding="utf-8")
        return f
    return _write


@pytest.fixture()
def make_importer():
    return FakeImporter


@pytest.fixture()
def contacts_catalog(contacts_fields) -> FakeCatalog:
    return FakeCatalog({"contacts": contacts_fields})


@pytest.fixture()
def mapping_store() -> FakeMappingStore:
    return FakeMappingStore()


@pytest.fixture()
def fresh_logging():
    """CLI tests: rebuild the app logger so it writes to the captured stdout."""
    reset_logging()
    yield
    reset_logging()


@pytest.fixture()
def fake_backend(monkeypatch, contacts_catalog, mapping_store):
    """Replace the database with in-memory collaborators for ``main``.

    ``backend.importer`` can be reconfigured (reject / fail_with) before the
    run; ``backend.connected`` tells whether a connection was requested.
    """
    import crm_import.cli.__main__ as cli

    backend = _Backend(FakeImporter(), mapping_store, contacts_catalog)

    @contextmanager
    def fake_connect(cfg, needed):
        backend.connected = needed
        yield object() if needed else None

    def fake_build(cfg, conn, error_log, file_name):
        backend.importer.error_log = error_log
        backend.importer.file_name = file_name
        return cli.Collaborators(
            catalog=backend.catalog,
            importer=backend.importer if conn is not None else None,
            mapping_store=backend.store if conn is not None else None,
        )

    monkeypatch.setattr(cli, "_connect", fake_connect)
    monkeypatch.setattr(cli, "_build_collaborators", fake_build)
    return backend


class _Backend:
    def __init__(self, importer: FakeImporter, store: FakeMappingStore, catalog: FakeCatalog) -> None:
        self.importer = importer
        self.store = store
        self.catalog = catalog
        self.connected: bool | None = None
