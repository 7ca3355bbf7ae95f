from __future__ import annotations

import pytest

from crm_import.delimited.reader import parse_table
from crm_import.models.import_result import ImportResult
from crm_import.services.executor import (
    ImportExecutionError,
    ImportExecutor,
    ImportInProgressError,
    build_records,
)
from crm_import.services.mapping import MappingModel
from crm_import.services.progress import ProgressSignal, ProgressState

CSV = "First Name,Email,Phone,Shoe Size\nJane,jane@x.com,555-1234,38\nJohn,john@x.com,,44\n"


@pytest.fixture()
def table():
    return parse_table(CSV)


@pytest.fixture()
def model(table, contacts_fields):
    return MappingModel.seed(table, contacts_fields)


def test_build_records_only_mapped_columns(table, model):
    records = build_records(table, model)
    assert records == [
        {"first_name": "Jane", "email": "jane@x.com", "phone": "555-1234"},
        {"first_name": "John", "email": "john@x.com", "phone": ""},
    ]


def test_skipped_column_never_sent(table, model, make_importer):
    model.set_target("Phone", None)
    importer = make_importer()
    ImportExecutor(importer).execute(table, model, "contacts")
    _, records, _ = importer.calls[0]
    assert all("phone" not in r for r in records)


def test_duplicate_target_last_column_wins(table, model):
    model.set_target("Shoe Size", "phone")
    assert [r["phone"] for r in build_records(table, model)] == ["38", "44"]


def test_execute_full_success(table, model, make_importer):
    importer = make_importer()
    result = ImportExecutor(importer).execute(table, model, "contacts", "my mapping")
    assert result == ImportResult(total=2, success=2, errors=0)
    module_id, records, name = importer.calls[0]
    assert module_id == "contacts" and name == "my mapping" and len(records) == 2


def test_execute_partial_success_is_not_an_error(table, model, make_importer):
    result = ImportExecutor(make_importer(reject=[1])).execute(table, model, "contacts")
    assert result == ImportResult(total=2, success=1, errors=1)
    assert result.success + result.errors == result.total


def test_execute_empty_mapping_still_submits_every_row(table, model, make_importer):
    for entry in model.entries:
        model.set_target(entry.source_column, None)
    importer = make_importer(reject=[0, 1])
    result = ImportExecutor(importer).execute(table, model, "contacts")
    assert importer.calls[0][1] == [{}, {}]
    assert result == ImportResult(total=2, success=0, errors=2)


def test_transport_failure_wraps_and_keeps_inputs(table, model, make_importer):
    before = model.entries
    importer = make_importer(fail_with=ConnectionError("backend down"))
    with pytest.raises(ImportExecutionError, match="backend down"):
        ImportExecutor(importer).execute(table, model, "contacts")
    assert model.entries == before
    assert table.row_count == 2


@pytest.mark.parametrize(
    "reply",
    [
        {"success": 2, "errors": 1, "total": 2},
        {"success": 1, "errors": 1, "total": 3},
        {"success": 2, "total": 2},
        {"success": "two", "errors": 0, "total": 2},
        {"success": "2", "errors": 0, "total": 2},
        {"success": 2.9, "errors": 0, "total": 2},
        {"success": True, "errors": 1, "total": 2},
        None,
    ],
)
def test_malformed_reply_is_execution_error(table, model, reply):
    class BadImporter:
        def import_records(self, module_id, records, saved_mapping_name=None):
            return reply

    with pytest.raises(ImportExecutionError):
        ImportExecutor(BadImporter()).execute(table, model, "contacts")


def test_progress_reaches_100_only_after_reply(table, model):
    signal = ProgressSignal()
    seen: list[tuple[ProgressState, float]] = []
    signal.subscribe(lambda state, pct: seen.append((state, pct)))

    class ObservingImporter:
        def import_records(self, module_id, records, saved_mapping_name=None):
            assert signal.state is ProgressState.IN_FLIGHT
            assert signal.percent < 100
            return {"success": len(records), "errors": 0, "total": len(records)}

    ImportExecutor(ObservingImporter(), signal).execute(table, model, "contacts")
    assert seen == [(ProgressState.IN_FLIGHT, 0.0), (ProgressState.DONE, 100.0)]


def test_progress_done_on_failure_too(table, model, make_importer):
    signal = ProgressSignal()
    with pytest.raises(ImportExecutionError):
        ImportExecutor(make_importer(fail_with=RuntimeError("x")), signal).execute(
            table, model, "contacts"
        )
    assert signal.state is ProgressState.DONE
    assert signal.percent == 100.0


def test_reentrant_execute_is_rejected(table, model):
    executor: ImportExecutor

    class ReentrantImporter:
        def __init__(self):
            self.inner_error = None

        def import_records(self, module_id, records, saved_mapping_name=None):
            assert executor.in_flight
            try:
                executor.execute(table, model, module_id)
            except ImportInProgressError as e:
                self.inner_error = e
            return {"success": len(records), "errors": 0, "total": len(records)}

    importer = ReentrantImporter()
    executor = ImportExecutor(importer)
    executor.execute(table, model, "contacts")
    assert isinstance(importer.inner_error, ImportInProgressError)
    assert not executor.in_flight


def test_executor_usable_again_after_failure(table, model, make_importer):
    importer = make_importer(fail_with=TimeoutError("slow"))
    executor = ImportExecutor(importer)
    with pytest.raises(ImportExecutionError):
        executor.execute(table, model, "contacts")
    importer.fail_with = None
    assert executor.execute(table, model, "contacts").success == 2


def test_progress_listener_error_is_execution_error(table, model, make_importer):
    signal = ProgressSignal()

    def failing_listener(state, percent):
        if state is ProgressState.IN_FLIGHT:
            raise RuntimeError("terminal gone")

    signal.subscribe(failing_listener)
    importer = make_importer()
    executor = ImportExecutor(importer, signal)

    with pytest.raises(ImportExecutionError, match="terminal gone"):
        executor.execute(table, model, "contacts")

    assert importer.calls == []
    assert not executor.in_flight
    assert signal.state is ProgressState.DONE
