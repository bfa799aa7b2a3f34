"""Step-by-step import session: sheet → table → mapping → preview → references → commit."""

import logging
from enum import Enum
from pathlib import Path
from typing import Any, Optional

from clubimport import (
    ColumnMapping,
    ImportOutcome,
    ParsedSheet,
    PreviewRow,
    RowStatus,
    TableSchema,
    UnresolvedReference,
)
from clubimport.committer import ImportCommitter
from clubimport.errors import ParseError, WizardStateError
from clubimport.mapping import (
    MIN_CONFIDENCE,
    auto_map,
    find_duplicate_targets,
    override_mapping,
    suggest_table,
)
from clubimport.normalize import normalize_name
from clubimport.reader import read_sheet
from clubimport.resolver import collect_unresolved, ensure_complete, find_incomplete
from clubimport.schemas import get_schema
from clubimport.store import Repository, load_reference_data
from clubimport.transform import ReferenceSnapshot, transform_and_validate

log = logging.getLogger(__name__)


def _has_field(table_key: str, field_key: str) -> bool:
    schema = get_schema(table_key)
    return schema is not None and schema.field(field_key) is not None


class WizardStep(Enum):
    SELECT_SHEET = 'select-sheet'
    SELECT_TABLE = 'select-table'
    MAP_COLUMNS = 'map-columns'
    PREVIEW = 'preview'
    RESOLVE_REFERENCES = 'resolve-references'
    COMMITTING = 'committing'
    RESULT = 'result'


class ImportWizard:
    """State machine owning one import session.

    Every public method is an event; sending one in a step that does not
    accept it raises WizardStateError and leaves the state untouched.
    Going back discards everything computed after the step returned to.
    Not safe for concurrent use.

    Args:
        repository: Persistence collaborator used for the commit.
        reference_snapshot: Existing reference entities keyed by table;
            read once from ``repository`` when omitted.
        min_confidence: Acceptance threshold for automatic column mapping.
    """

    def __init__(
        self,
        repository: Repository,
        reference_snapshot: Optional[ReferenceSnapshot] = None,
        min_confidence: float = MIN_CONFIDENCE,
    ):
        self.committer = ImportCommitter(repository)
        if reference_snapshot is None:
            reference_snapshot = load_reference_data(repository)
        self.reference_snapshot = reference_snapshot
        self.min_confidence = min_confidence
        self.reset()

    def reset(self) -> None:
        """Drop the whole session and start again from sheet selection."""
        self.step = WizardStep.SELECT_SHEET
        self.sheet: Optional[ParsedSheet] = None
        self.suggested_table: Optional[str] = None
        self.schema: Optional[TableSchema] = None
        self.mappings: list[ColumnMapping] = []
        self.preview_rows: list[PreviewRow] = []
        self.unresolved: list[UnresolvedReference] = []
        self.outcome: Optional[ImportOutcome] = None

    def _expect(self, event: str, *steps: WizardStep) -> None:
        if self.step not in steps:
            raise WizardStateError(f"{event} is not allowed in step {self.step.value}")

    # Forward events

    def load_sheet(self, sheet: ParsedSheet) -> None:
        self._expect('load_sheet', WizardStep.SELECT_SHEET)
        if not sheet.rows:
            self.reset()
            raise ParseError(f"Sheet {sheet.name!r} has no data rows")
        self.sheet = sheet
        self.suggested_table = suggest_table(sheet.headers, self.min_confidence)
        self.step = WizardStep.SELECT_TABLE
        log.info("Sheet %r loaded: %d rows, suggested table %s",
                 sheet.name, len(sheet.rows), self.suggested_table)

    def load_file(self, path: str | Path) -> None:
        self._expect('load_file', WizardStep.SELECT_SHEET)
        try:
            sheet = read_sheet(path)
        except ParseError:
            self.reset()
            raise
        self.load_sheet(sheet)

    def select_table(self, table_key: str) -> list[ColumnMapping]:
        self._expect('select_table', WizardStep.SELECT_TABLE)
        schema = get_schema(table_key)
        if schema is None:
            raise WizardStateError(f"Unknown table {table_key!r}")
        self.schema = schema
        self.mappings = auto_map(self.sheet.headers, table_key, self.min_confidence)
        self.step = WizardStep.MAP_COLUMNS
        return self.mappings

    def override_mapping(self, excel_column: str, db_field: Optional[str]) -> None:
        self._expect('override_mapping', WizardStep.MAP_COLUMNS)
        if excel_column not in self.sheet.headers:
            raise WizardStateError(f"Unknown column {excel_column!r}")
        if db_field is not None and self.schema.field(db_field) is None:
            raise WizardStateError(f"{self.schema.key} has no field {db_field!r}")
        self.mappings = override_mapping(self.mappings, excel_column, db_field)

    @property
    def duplicate_targets(self) -> dict[str, list[str]]:
        return find_duplicate_targets(self.mappings)

    def confirm_mappings(self) -> list[PreviewRow]:
        self._expect('confirm_mappings', WizardStep.MAP_COLUMNS)
        for field_key, columns in self.duplicate_targets.items():
            log.warning("%s is mapped from %s; the last filled column wins",
                        field_key, ', '.join(columns))
        self.preview_rows = transform_and_validate(
            self.sheet.rows, self.mappings, self.schema, self.reference_snapshot,
        )
        self.unresolved = collect_unresolved(self.preview_rows, self.schema)
        self.step = WizardStep.PREVIEW
        return self.preview_rows

    @property
    def counts(self) -> dict[str, int]:
        """Ready / warning / error totals of the current preview."""
        return {
            status.value: sum(1 for r in self.preview_rows if r.status is status)
            for status in RowStatus
        }

    def proceed(self) -> WizardStep:
        """Leave the preview or the reference step towards the commit."""
        self._expect('proceed', WizardStep.PREVIEW, WizardStep.RESOLVE_REFERENCES)
        if self.step is WizardStep.PREVIEW and self.unresolved:
            self.step = WizardStep.RESOLVE_REFERENCES
        else:
            if self.step is WizardStep.RESOLVE_REFERENCES:
                ensure_complete(self.unresolved)
            self.step = WizardStep.COMMITTING
        return self.step

    def supply_attribute(
        self,
        name: str,
        attribute: str,
        value: Any,
        table: Optional[str] = None,
    ) -> None:
        """Set an attribute of a missing reference.

        Only references whose table has ``attribute`` are considered, so a
        trainer and a hall sharing a name need ``table`` only when both
        tables have the attribute.
        """
        self._expect('supply_attribute', WizardStep.RESOLVE_REFERENCES)
        key = normalize_name(name)
        candidates = [
            ref for ref in self.unresolved
            if normalize_name(ref.name) == key and (table is None or ref.table == table)
        ]
        if not candidates:
            raise WizardStateError(f"No missing reference named {name!r}")
        matching = [ref for ref in candidates if _has_field(ref.table, attribute)]
        if not matching:
            raise WizardStateError(f"{name!r} has no attribute {attribute!r}")
        if len(matching) > 1:
            tables = ', '.join(ref.table for ref in matching)
            raise WizardStateError(f"{name!r} is missing from several tables ({tables}); pass the table")
        matching[0].supplied_attributes[attribute] = value

    def incomplete_references(self) -> dict[str, list[str]]:
        return find_incomplete(self.unresolved)

    def commit(self) -> ImportOutcome:
        """Write the preview; the wizard ends in RESULT whatever happens."""
        self._expect('commit', WizardStep.COMMITTING)
        try:
            self.outcome = self.committer.commit(
                self.preview_rows, {}, self.schema.key, references=self.unresolved,
            )
        finally:
            self.unresolved = []
            self.step = WizardStep.RESULT
        return self.outcome

    # Backward events

    def back(self) -> WizardStep:
        self._expect('back', WizardStep.MAP_COLUMNS, WizardStep.PREVIEW,
                     WizardStep.RESOLVE_REFERENCES)
        if self.step is WizardStep.MAP_COLUMNS:
            self.schema = None
            self.mappings = []
            self.step = WizardStep.SELECT_TABLE
        elif self.step is WizardStep.PREVIEW:
            self.preview_rows = []
            self.unresolved = []
            self.step = WizardStep.MAP_COLUMNS
        else:
            self.unresolved = collect_unresolved(self.preview_rows, self.schema)
            self.step = WizardStep.PREVIEW
        return self.step
