from __future__ import annotations

import logging
from collections.abc import Mapping

from ..delimited.reader import EmptyInputError, parse_table
from ..logging.error_log import ErrorLogBuffer
from ..models.error_record import BATCH_LEVEL_ROW, ErrorRecord
from ..models.import_result import ImportResult
from ..models.raw_table import RawTable
from ..models.session_state import ALLOWED_TRANSITIONS, SessionState
from ..models.target_field import TargetField
from .collaborators import FieldCatalog, MappingStore
from .executor import ImportExecutor
from .field_matcher import FieldMatcher
from .mapping import MappingModel, UnknownColumnError
from .preview import preview

logger = logging.getLogger(__name__)

"""Import session: one upload from module selection to result.

Drives the wizard state machine around the pure pipeline steps:

    SELECTING_MODULE -> AWAITING_UPLOAD -> MAPPING <-> PREVIEWING -> IMPORTING -> COMPLETED

- An empty upload keeps the session in AWAITING_UPLOAD.
- A failed import returns to PREVIEWING with table and mapping untouched.
- An edit naming an unknown column faults the session; only ``reset`` helps.
- An edit naming an unknown target field is rejected; the mapping is unchanged.
- COMPLETED -> SELECTING_MODULE (``reset``) is the only way back to the start.
"""

__all__ = [
    "ImportSessionError",
    "InvalidTransitionError",
    "SessionFaultedError",
    "InvalidMappingNameError",
    "UnknownTargetFieldError",
    "ImportSession",
]


class ImportSessionError(Exception):
    """Base exception for session misuse."""


class InvalidTransitionError(ImportSessionError):
    """Operation not allowed in the current session state."""


class SessionFaultedError(ImportSessionError):
    """The session hit a fatal mapping error and must be reset."""


class InvalidMappingNameError(ImportSessionError, ValueError):
    """Saving a mapping template was requested with a blank name."""


class UnknownTargetFieldError(ImportSessionError, ValueError):
    """A mapping edit or template names a field the module does not have."""


class ImportSession:
    def __init__(
        self,
        catalog_service: FieldCatalog,
        executor: ImportExecutor,
        *,
        matcher: FieldMatcher | None = None,
        mapping_store: MappingStore | None = None,
        preview_limit: int = 5,
        error_log: ErrorLogBuffer | None = None,
    ) -> None:
        self.catalog_service = catalog_service
        self.executor = executor
        self.matcher = matcher or FieldMatcher()
        self.mapping_store = mapping_store
        self.preview_limit = preview_limit
        self.error_log = error_log
        self._clear()

    def _clear(self) -> None:
        self.state = SessionState.SELECTING_MODULE
        self.module_id: str | None = None
        self.fields: tuple[TargetField, ...] = ()
        self.raw_table: RawTable | None = None
        self.mapping: MappingModel | None = None
        self.file_name: str = ""
        self.result: ImportResult | None = None
        self.faulted = False

    # -- state helpers -------------------------------------------------

    def _require(self, *states: SessionState) -> None:
        if self.faulted:
            raise SessionFaultedError("session faulted by an invalid mapping edit; reset required")
        if self.state not in states:
            wanted = "/".join(s.value for s in states)
            raise InvalidTransitionError(f"operation requires state {wanted}, session is {self.state.value}")

    def _move(self, target: SessionState) -> None:
        if target not in ALLOWED_TRANSITIONS[self.state]:
            raise InvalidTransitionError(f"cannot move {self.state.value} -> {target.value}")
        logger.debug(f"session {self.state.value} -> {target.value}")
        self.state = target

    # -- steps ---------------------------------------------------------

    def select_module(self, module_id: str) -> tuple[TargetField, ...]:
        """Load the module's field catalog and wait for an upload.

        Catalog errors propagate and leave the session in SELECTING_MODULE.
        """
        self._require(SessionState.SELECTING_MODULE)
        fields = tuple(self.catalog_service.get_fields(module_id))
        self.module_id = module_id
        self.fields = fields
        self._move(SessionState.AWAITING_UPLOAD)
        logger.info(f"module '{module_id}' selected ({len(fields)} fields)")
        return fields

    def upload(self, text: str, file_name: str = "") -> MappingModel:
        """Parse the upload and seed the mapping.

        Raises:
            EmptyInputError: Upload lacks a header or data row (state unchanged)
        """
        self._require(SessionState.AWAITING_UPLOAD)
        try:
            table = parse_table(text)
        except EmptyInputError:
            logger.warning(f"upload '{file_name}' rejected: no header or data row")
            raise
        self.raw_table = table
        self.file_name = file_name
        self.mapping = MappingModel.seed(table, self.fields, self.matcher)
        self._move(SessionState.MAPPING)
        logger.info(
            f"parsed '{file_name}' columns={len(table.headers)} rows={table.row_count} "
            f"auto_mapped={self.mapping.auto_mapped_count}/{len(self.mapping)}"
        )
        return self.mapping

    def set_target(self, source_column: str, target_field: str | None) -> None:
        """Manual mapping edit. An unknown column faults the session.

        Raises:
            UnknownTargetFieldError: ``target_field`` is not a key of the module
        """
        self._require(SessionState.MAPPING)
        assert self.mapping is not None
        if target_field is not None and source_column in self.mapping:
            self._check_targets({source_column: target_field})
        try:
            self.mapping.set_target(source_column, target_field)
        except UnknownColumnError:
            self.faulted = True
            logger.error(f"mapping edit for unknown column '{source_column}'; session faulted")
            raise

    def apply_template(self, name: str) -> int:
        """Load a saved mapping template and apply it as manual edits."""
        self._require(SessionState.MAPPING)
        assert self.mapping is not None and self.module_id is not None
        if self.mapping_store is None:
            raise ImportSessionError("no mapping store configured")
        template = self.mapping_store.load(self.module_id, name)
        if template is None:
            raise ImportSessionError(f"saved mapping '{name}' not found for module '{self.module_id}'")
        self._check_targets({
            column: target
            for column, target in template.items()
            if column in self.mapping and target is not None
        })
        applied = self.mapping.apply_template(template)
        logger.info(f"applied saved mapping '{name}' to {applied} columns")
        return applied

    def preview(self, limit: int | None = None) -> list[dict[str, str]]:
        """Move to PREVIEWING (if needed) and return the sample rows."""
        self._require(SessionState.MAPPING, SessionState.PREVIEWING)
        assert self.raw_table is not None and self.mapping is not None
        if self.state is SessionState.MAPPING:
            self._move(SessionState.PREVIEWING)
        n = self.preview_limit if limit is None else limit
        return preview(self.raw_table, self.mapping, self.fields, n)

    def back_to_mapping(self) -> None:
        self._require(SessionState.PREVIEWING)
        self._move(SessionState.MAPPING)

    def execute(self, save_mapping_as: str | None = None) -> ImportResult:
        """Run the batch import.

        Raises:
            InvalidMappingNameError: ``save_mapping_as`` given but blank
            ImportExecutionError: Request failed; session back in PREVIEWING
                (any other exception also returns the session to PREVIEWING)
        """
        self._require(SessionState.PREVIEWING)
        assert self.raw_table is not None and self.mapping is not None and self.module_id is not None
        name = None
        if save_mapping_as is not None:
            name = save_mapping_as.strip()
            if not name:
                raise InvalidMappingNameError("mapping name must not be blank")

        self._move(SessionState.IMPORTING)
        try:
            result = self.executor.execute(self.raw_table, self.mapping, self.module_id, name)
        except Exception as e:
            # どの失敗でも IMPORTING に留まらない
            self._record_failure(e)
            self._move(SessionState.PREVIEWING)
            raise

        self.result = result
        self._move(SessionState.COMPLETED)
        if name and self.mapping_store is not None:
            self._save_template(name)
        return result

    def reset(self) -> None:
        """Back to module selection. Allowed after completion or a fault."""
        if not self.faulted and self.state is not SessionState.COMPLETED:
            raise InvalidTransitionError(f"cannot reset from {self.state.value}")
        if self.state is SessionState.COMPLETED:
            self._move(SessionState.SELECTING_MODULE)
        self._clear()

    # -- internals -----------------------------------------------------

    def _check_targets(self, edits: Mapping[str, str]) -> None:
        keys = {f.key for f in self.fields}
        unknown = {column: target for column, target in edits.items() if target not in keys}
        if unknown:
            raise UnknownTargetFieldError(
                f"unknown target field for module '{self.module_id}': "
                + ", ".join(f"'{column}' -> '{target}'" for column, target in unknown.items())
            )

    def _record_failure(self, error: Exception) -> None:
        logger.error(f"import failed, mapping kept for retry: {error}")
        if self.error_log is not None:
            self.error_log.append(
                ErrorRecord.create(
                    file=self.file_name,
                    module=self.module_id or "",
                    row=BATCH_LEVEL_ROW,
                    error_type="IMPORT_EXECUTION_ERROR",
                    message=str(error),
                )
            )

    def _save_template(self, name: str) -> None:
        assert self.mapping is not None and self.module_id is not None and self.mapping_store is not None
        template: Mapping[str, str] = self.mapping.as_template()
        try:
            self.mapping_store.save(self.module_id, name, template)
        except Exception as e:
            # 取込自体は完了済 -> 結果は保持し警告のみ
            logger.warning(f"import done but saving mapping '{name}' failed: {e}")
            return
        logger.info(f"saved mapping '{name}' ({len(template)} columns)")
