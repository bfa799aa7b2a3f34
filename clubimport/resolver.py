"""Detection and provisioning of foreign-key references missing from the store."""

import logging
from typing import Any, Mapping, Optional, Sequence

from clubimport import (
    FieldSchema,
    PendingId,
    PreviewRow,
    RowStatus,
    TableSchema,
    UnresolvedReference,
)
from clubimport.errors import ResolutionIncomplete
from clubimport.normalize import normalize_header
from clubimport.schemas import get_schema, hints_for
from clubimport.transform import DISPLAY_PREFIX, NAME_FIELDS, coerce_value, is_blank

log = logging.getLogger(__name__)


def collect_unresolved(
    preview_rows: Sequence[PreviewRow],
    schema: Optional[TableSchema] = None,
) -> list[UnresolvedReference]:
    """Deduplicate pending foreign-key values across preview rows.

    Names are grouped per referenced table, case-insensitively; the first
    spelling seen is kept. Rows with error status are never imported and
    are not counted. Provisioning attributes found in a referencing row are
    pre-filled, see :func:`seed_attributes`.

    Args:
        preview_rows: Output of the transformer.
        schema: Imported table schema, used to know each reference's
            display field (``name_ar`` when omitted).

    Returns:
        One UnresolvedReference per distinct name, in order of first use.
    """
    refs: dict[PendingId, UnresolvedReference] = {}
    for row in preview_rows:
        if row.status is RowStatus.ERROR:
            continue
        seen_in_row: set[PendingId] = set()
        for key, value in row.transformed.items():
            if not isinstance(value, PendingId):
                continue
            ref = refs.get(value)
            if ref is None:
                field = schema.field(key) if schema else None
                ref = UnresolvedReference(
                    table=value.table,
                    source_field=key,
                    name=str(row.transformed.get(DISPLAY_PREFIX + key, value.key)),
                    display_field=(field.reference_display_field if field else None) or 'name_ar',
                )
                refs[value] = ref
            if value not in seen_in_row:
                ref.used_by_row_count += 1
                seen_in_row.add(value)
            seed_attributes(ref, row)

    if refs:
        log.info("%d missing references found", len(refs))
    return list(refs.values())


def required_attributes(reference: UnresolvedReference) -> tuple[FieldSchema, ...]:
    """Return the fields that must be supplied before the reference can be created."""
    schema = get_schema(reference.table)
    if schema is None:
        return ()
    keys = list(schema.provision_fields)
    for f in schema.required_fields:
        if f.key != reference.display_field and f.key not in NAME_FIELDS and f.key not in keys:
            keys.append(f.key)
    return tuple(f for f in (schema.field(k) for k in keys) if f is not None)


def _source_value(source: Mapping[str, Any], table_key: str, field: FieldSchema) -> Any:
    terms = {normalize_header(t) for t in (field.key, field.label, *hints_for(table_key, field.key))}
    for header, value in source.items():
        if normalize_header(header) in terms and not is_blank(value):
            return value
    return None


def seed_attributes(reference: UnresolvedReference, row: PreviewRow) -> None:
    """Pre-fill missing provisioning attributes from a referencing row.

    The row's transformed value of the same field is used first, then a
    source column whose header names the field (e.g. a ``phone`` column).
    Values already present are kept, so the first row that has one wins.
    """
    for f in required_attributes(reference):
        if not is_blank(reference.supplied_attributes.get(f.key)):
            continue
        value = row.transformed.get(f.key)
        if is_blank(value) or isinstance(value, PendingId):
            value = _source_value(row.source, reference.table, f)
        if not is_blank(value):
            reference.supplied_attributes[f.key] = str(value).strip()


def find_incomplete(references: Sequence[UnresolvedReference]) -> dict[str, list[str]]:
    """Check every reference's supplied attributes against its table's validation.

    Warnings count as failures here: an entity cannot be fixed up after it
    has been created as part of a batch.

    Returns:
        Problems keyed by reference name, or by ``name (table)`` when the
        same name is missing from several tables; empty when all are
        complete.
    """
    tables_by_name: dict[str, set[str]] = {}
    for ref in references:
        tables_by_name.setdefault(ref.name, set()).add(ref.table)

    incomplete: dict[str, list[str]] = {}
    for ref in references:
        problems = []
        if get_schema(ref.table) is None:
            problems.append(f"{ref.table} cannot be created from an import")
        for f in required_attributes(ref):
            raw = ref.supplied_attributes.get(f.key)
            if is_blank(raw):
                problems.append(f"missing {f.key}")
                continue
            _value, severity, message = coerce_value(f, raw)
            if severity is not None:
                problems.append(message)
        if problems:
            key = ref.name if len(tables_by_name[ref.name]) == 1 else f"{ref.name} ({ref.table})"
            incomplete[key] = problems
    return incomplete


def ensure_complete(references: Sequence[UnresolvedReference]) -> None:
    """Raise ResolutionIncomplete unless every reference can be created."""
    incomplete = find_incomplete(references)
    if incomplete:
        log.warning("Reference resolution incomplete: %s", ', '.join(incomplete))
        raise ResolutionIncomplete(incomplete)


def confirm_resolutions(references: Sequence[UnresolvedReference], committer) -> dict[PendingId, str]:
    """Create all resolved references through the committer.

    Args:
        references: References with their attributes filled in.
        committer: ImportCommitter used for the writes.

    Returns:
        Created ids keyed by pending sentinel. References the store
        rejected are left out and logged.

    Raises:
        ResolutionIncomplete: If any reference lacks a valid attribute.
    """
    ensure_complete(references)
    created, failures = committer.create_references(references)
    for name, error in failures.items():
        log.warning("Reference %r was not created: %s", name, error)
    return created
