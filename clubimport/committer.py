"""Commit validated preview rows to the destination store."""

import logging
from typing import Any, Mapping, Sequence

from clubimport import (
    ImportOutcome,
    PendingId,
    PreviewRow,
    RowOutcome,
    RowStatus,
    UnresolvedReference,
)
from clubimport.errors import RepositoryError
from clubimport.schemas import get_schema
from clubimport.store import Repository
from clubimport.transform import DISPLAY_PREFIX, coerce_value, fill_names, is_blank

log = logging.getLogger(__name__)


class ImportCommitter:
    """Writes references and rows through a repository, one row at a time.

    Writes are best effort: a failed row is recorded and the batch goes on.
    Nothing is rolled back, so references created before a failing row stay
    in the store.
    """

    def __init__(self, repository: Repository):
        self.repository = repository

    def reference_record(self, reference: UnresolvedReference) -> dict[str, Any]:
        """Build the record that provisions a missing reference entity."""
        record: dict[str, Any] = {reference.display_field: reference.name.strip()}
        schema = get_schema(reference.table)
        if schema is not None:
            fill_names(record, schema)
        for key, raw in reference.supplied_attributes.items():
            if is_blank(raw):
                continue
            field = schema.field(key) if schema else None
            record[key] = coerce_value(field, raw)[0] if field else str(raw).strip()
        return record

    def create_references(
        self,
        references: Sequence[UnresolvedReference],
    ) -> tuple[dict[PendingId, str], dict[str, str]]:
        """Create missing reference entities.

        Args:
            references: References whose attributes have been supplied.

        Returns:
            Tuple of (created ids keyed by pending sentinel,
            error message keyed by reference name).
        """
        created: dict[PendingId, str] = {}
        failures: dict[str, str] = {}
        for ref in references:
            if ref.pending in created:
                continue
            try:
                result = self.repository.insert(ref.table, self.reference_record(ref))
            except RepositoryError as exc:
                failures[ref.name] = str(exc)
                log.warning("Could not create %s %r: %s", ref.table, ref.name, exc)
                continue
            created[ref.pending] = str(result['id'])
            log.info("Created %s %r as %s", ref.table, ref.name, result['id'])
        return created, failures

    def _write(self, table: str, record: dict[str, Any]) -> tuple[str, str]:
        record_id = record.get('id')
        if record_id and self.repository.find_by(table, 'id', record_id) is not None:
            self.repository.update(table, record_id, {k: v for k, v in record.items() if k != 'id'})
            return 'updated', str(record_id)
        result = self.repository.insert(table, record)
        return 'created', str(result['id'])

    def commit(
        self,
        preview_rows: Sequence[PreviewRow],
        reference_ids: Mapping[PendingId, str],
        table_key: str,
        references: Sequence[UnresolvedReference] = (),
    ) -> ImportOutcome:
        """Write every importable preview row to ``table_key``.

        References not yet present in ``reference_ids`` are created first.
        Rows with error status are counted as failed without reaching the
        store; pending foreign keys are replaced by the created ids; a row
        whose ``id`` already exists is updated, any other row is inserted.

        Args:
            preview_rows: Validated rows, in source order.
            reference_ids: Ids of references created beforehand.
            table_key: Destination table.
            references: Missing references to create before the rows.

        Returns:
            ImportOutcome with one RowOutcome per preview row.
        """
        outcome = ImportOutcome()
        ids = dict(reference_ids)

        to_create = [r for r in references if r.pending not in ids]
        if to_create:
            created, failures = self.create_references(to_create)
            ids.update(created)
            outcome.reference_failures = failures
        outcome.created_references = ids

        for row in preview_rows:
            if row.status is RowStatus.ERROR:
                self._fail(outcome, row.index, '; '.join(row.messages) or 'invalid row')
                continue

            record = row.record
            missing = [
                str(row.transformed.get(DISPLAY_PREFIX + key, value.key))
                for key, value in record.items()
                if isinstance(value, PendingId) and value not in ids
            ]
            if missing:
                self._fail(outcome, row.index, f"reference not created: {', '.join(missing)}")
                continue
            record = {
                key: ids[value] if isinstance(value, PendingId) else value
                for key, value in record.items()
            }

            try:
                action, record_id = self._write(table_key, record)
            except RepositoryError as exc:
                self._fail(outcome, row.index, str(exc))
                continue

            outcome.outcomes.append(RowOutcome(row.index, True, created_id=record_id, action=action))
            if action == 'updated':
                outcome.updated_count += 1
            else:
                outcome.created_count += 1

        log.info(
            "Import into %s finished: %d created, %d updated, %d failed",
            table_key, outcome.created_count, outcome.updated_count, outcome.failed_count,
        )
        return outcome

    @staticmethod
    def _fail(outcome: ImportOutcome, index: int, error: str) -> None:
        log.warning("Row %d not imported: %s", index + 1, error)
        outcome.outcomes.append(RowOutcome(index, False, error=error))
        outcome.failed_count += 1
