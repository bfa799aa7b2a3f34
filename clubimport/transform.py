"""Row transformation and validation against a destination schema."""

import logging
import math
from datetime import date, datetime
from typing import Any, Mapping, Optional, Sequence

from rapidfuzz import fuzz, process

from clubimport import (
    ColumnMapping,
    FieldKind,
    FieldSchema,
    PendingId,
    PreviewRow,
    RowStatus,
    TableSchema,
)
from clubimport.mapping import find_duplicate_targets
from clubimport.normalize import (
    is_valid_phone,
    normalize_name,
    normalize_phone,
    to_ascii_digits,
)
from clubimport.schemas import ENUM_ALIASES

log = logging.getLogger(__name__)

DATE_FORMAT = '%Y-%m-%d'
# Minimum rapidfuzz ratio (0–100) for a fuzzy foreign-key match
FK_FUZZY_THRESHOLD = 85

NAME_FIELDS = ('name_ar', 'name_he', 'name_en')
DISPLAY_PREFIX = '_display_'

ReferenceSnapshot = Mapping[str, Sequence[Mapping[str, Any]]]


def is_blank(value: Any) -> bool:
    """Check whether a raw cell value counts as absent."""
    return value is None or str(value).strip() == ''


class ReferenceIndex:
    """Lookup of existing reference entities by any of their names.

    Exact matches are case-insensitive and trimmed against the display
    field and the other localized name fields; the first entity wins on
    duplicate names.
    """

    def __init__(self, entities: Sequence[Mapping[str, Any]], display_field: str):
        self.display_field = display_field
        self._by_name: dict[str, tuple[str, str]] = {}
        match_fields = [display_field] + [f for f in NAME_FIELDS if f != display_field]
        for entity in entities:
            label = str(entity.get(display_field) or '')
            for f in match_fields:
                value = entity.get(f)
                if is_blank(value):
                    continue
                self._by_name.setdefault(normalize_name(value), (str(entity['id']), label))
        self._keys = list(self._by_name)

    def exact(self, name: str) -> Optional[tuple[str, str]]:
        return self._by_name.get(normalize_name(name))

    def fuzzy(self, name: str, threshold: float) -> Optional[tuple[str, str, float]]:
        if not self._keys:
            return None
        hit = process.extractOne(
            normalize_name(name), self._keys, scorer=fuzz.ratio, score_cutoff=threshold,
        )
        if hit is None:
            return None
        ref_id, label = self._by_name[hit[0]]
        return ref_id, label, hit[1]


def coerce_value(
    field: FieldSchema,
    raw: Any,
    date_format: str = DATE_FORMAT,
) -> tuple[Any, Optional[RowStatus], Optional[str]]:
    """Coerce a raw, non-blank cell value according to the field kind.

    Foreign keys are not handled here; see :func:`transform_row`.

    Args:
        field: Destination field.
        raw: Raw cell value.
        date_format: Accepted date format for text cells.

    Returns:
        Tuple of (value, severity, message). Severity and message are None
        when the value is clean; value is None when it could not be parsed.
    """
    text = str(raw).strip()

    if field.kind is FieldKind.NUMBER:
        invalid = f"not a valid number for {field.key}: '{text}'"
        if isinstance(raw, int) and not isinstance(raw, bool):
            return raw, None, None
        if isinstance(raw, float):
            number = raw
        elif '_' in text:
            return None, RowStatus.ERROR, invalid
        else:
            try:
                number = float(to_ascii_digits(text).replace(',', ''))
            except ValueError:
                return None, RowStatus.ERROR, invalid
        # float() also accepts nan and inf spellings
        if not math.isfinite(number):
            return None, RowStatus.ERROR, invalid
        return (int(number) if number.is_integer() else number), None, None

    if field.kind is FieldKind.DATE:
        if isinstance(raw, datetime):
            return raw.date(), None, None
        if isinstance(raw, date):
            return raw, None, None
        try:
            return datetime.strptime(text, date_format).date(), None, None
        except ValueError:
            return None, RowStatus.ERROR, f"not a valid date for {field.key}: '{text}'"

    if field.kind is FieldKind.PHONE:
        if isinstance(raw, float) and raw.is_integer():
            text = str(int(raw))
        canonical = normalize_phone(text)
        if not is_valid_phone(canonical):
            return canonical, RowStatus.WARNING, f"phone number too short for {field.key}: '{text}'"
        return canonical, None, None

    if field.kind is FieldKind.ENUM:
        lowered = text.lower()
        for option in field.options:
            if option.lower() == lowered:
                return option, None, None
        alias = ENUM_ALIASES.get(lowered)
        if alias in field.options:
            return alias, None, None
        return text, RowStatus.WARNING, f"unknown value for {field.key}: '{text}'"

    return text, None, None


def fill_names(transformed: dict[str, Any], schema: TableSchema) -> None:
    """Copy a single provided localized name into the empty name fields."""
    present = [f for f in NAME_FIELDS if schema.field(f) and transformed.get(f)]
    if len(present) != 1:
        return
    value = transformed[present[0]]
    for f in NAME_FIELDS:
        if schema.field(f) and not transformed.get(f):
            transformed[f] = value


CellResult = tuple[dict[str, Any], list[tuple[RowStatus, str]]]


def resolve_foreign_key(
    field: FieldSchema,
    name: str,
    ref_index: Optional[ReferenceIndex],
    fk_fuzzy_threshold: float = FK_FUZZY_THRESHOLD,
) -> CellResult:
    """Look a reference label up; unknown labels get a PendingId."""
    label_key = DISPLAY_PREFIX + field.key
    exact = ref_index.exact(name) if ref_index else None
    if exact:
        ref_id, label = exact
        return {field.key: ref_id, label_key: label}, []
    fuzzy = ref_index.fuzzy(name, fk_fuzzy_threshold) if ref_index else None
    if fuzzy:
        ref_id, label, _score = fuzzy
        return (
            {field.key: ref_id, label_key: label},
            [(RowStatus.WARNING, f"{field.key}: matched '{name}' to '{label}'")],
        )
    pending = PendingId(field.reference_table or '', normalize_name(name))
    return (
        {field.key: pending, label_key: name},
        [(RowStatus.WARNING, f"{field.key} will be created: {name}")],
    )


def transform_row(
    row: Mapping[str, Any],
    index: int,
    mappings: Sequence[ColumnMapping],
    schema: TableSchema,
    indexes: Mapping[str, ReferenceIndex],
    collisions: Mapping[str, list[str]],
    date_format: str = DATE_FORMAT,
    fk_fuzzy_threshold: float = FK_FUZZY_THRESHOLD,
) -> PreviewRow:
    """Transform a single source row into a validated PreviewRow."""
    transformed: dict[str, Any] = {}
    messages: list[str] = []
    severities: set[RowStatus] = set()

    def flag(severity: RowStatus, message: str) -> None:
        severities.add(severity)
        messages.append(message)

    # Keyed by field so that only the last filled column of a field counts
    results: dict[str, CellResult] = {}
    for mapping in mappings:
        if not mapping.db_field:
            continue
        field = schema.field(mapping.db_field)
        if field is None:
            continue
        raw = row.get(mapping.excel_column)
        if is_blank(raw):
            continue

        if field.kind is FieldKind.FOREIGN_KEY:
            results[field.key] = resolve_foreign_key(
                field, str(raw).strip(), indexes.get(field.reference_table or ''),
                fk_fuzzy_threshold,
            )
            continue

        value, severity, message = coerce_value(field, raw, date_format)
        values = {field.key: value} if value is not None and value != '' else {}
        results[field.key] = values, ([(severity, message)] if severity is not None else [])

    for values, flags in results.values():
        transformed.update(values)
        for severity, message in flags:
            flag(severity, message)

    for field_key, columns in collisions.items():
        filled = [c for c in columns if not is_blank(row.get(c))]
        if len(filled) > 1:
            flag(
                RowStatus.WARNING,
                f"{field_key} is mapped from several columns ({', '.join(filled)}), "
                f"using '{filled[-1]}'",
            )

    fill_names(transformed, schema)

    for field in schema.required_fields:
        if transformed.get(field.key) in (None, ''):
            flag(RowStatus.ERROR, f"missing required field {field.key} ({field.label})")

    if RowStatus.ERROR in severities:
        status = RowStatus.ERROR
    elif RowStatus.WARNING in severities:
        status = RowStatus.WARNING
    else:
        status = RowStatus.VALID

    return PreviewRow(
        index=index,
        source=dict(row),
        transformed=transformed,
        status=status,
        messages=tuple(messages),
    )


def build_reference_indexes(
    schema: TableSchema,
    reference_snapshot: ReferenceSnapshot,
) -> dict[str, ReferenceIndex]:
    """Build one ReferenceIndex per table referenced by the schema's foreign keys."""
    indexes: dict[str, ReferenceIndex] = {}
    for field in schema.fields:
        if field.kind is not FieldKind.FOREIGN_KEY or not field.reference_table:
            continue
        entities = reference_snapshot.get(field.reference_table, [])
        indexes[field.reference_table] = ReferenceIndex(
            entities, field.reference_display_field or 'name_ar',
        )
    return indexes


def transform_and_validate(
    rows: Sequence[Mapping[str, Any]],
    mappings: Sequence[ColumnMapping],
    schema: TableSchema,
    reference_snapshot: ReferenceSnapshot,
    date_format: str = DATE_FORMAT,
    fk_fuzzy_threshold: float = FK_FUZZY_THRESHOLD,
) -> list[PreviewRow]:
    """Apply confirmed mappings to every source row and validate the result.

    Rows keep their source order; the source rows and the reference
    snapshot are only read.

    Args:
        rows: Source rows keyed by header.
        mappings: Confirmed column mappings.
        schema: Destination table schema.
        reference_snapshot: Existing reference entities keyed by table.
        date_format: Accepted date format for text date cells.
        fk_fuzzy_threshold: Minimum similarity for a fuzzy foreign-key match.

    Returns:
        One PreviewRow per source row.
    """
    unknown = [m.db_field for m in mappings if m.db_field and schema.field(m.db_field) is None]
    if unknown:
        log.warning("Ignoring mappings onto unknown %s fields: %s", schema.key, ', '.join(unknown))

    indexes = build_reference_indexes(schema, reference_snapshot)
    collisions = find_duplicate_targets(mappings)

    preview = [
        transform_row(
            row, i, mappings, schema, indexes, collisions, date_format, fk_fuzzy_threshold,
        )
        for i, row in enumerate(rows)
    ]

    log.info(
        "Validated %d rows for %s: %d valid, %d warning, %d error",
        len(preview), schema.key,
        sum(1 for r in preview if r.status is RowStatus.VALID),
        sum(1 for r in preview if r.status is RowStatus.WARNING),
        sum(1 for r in preview if r.status is RowStatus.ERROR),
    )
    return preview
