"""Heuristic mapping of sheet columns onto destination fields."""

import logging
from collections import defaultdict
from typing import Optional, Sequence

from rapidfuzz import fuzz

from clubimport import ColumnMapping, FieldSchema
from clubimport.normalize import normalize_header
from clubimport.schemas import get_schema, hints_for, list_schemas

log = logging.getLogger(__name__)

# Minimum score (0–100) for an automatic assignment
MIN_CONFIDENCE = 60
# Floor applied when one normalized string contains the other
CONTAINMENT_SCORE = 70
CONTAINMENT_MIN_LENGTH = 3


def _comparable(text: str) -> str:
    """Normalize, falling back to the trimmed lowercase text for symbol-only headers."""
    normalized = normalize_header(text)
    return normalized or str(text).strip().lower()


def _field_terms(table_key: str, field: FieldSchema) -> list[str]:
    terms = [field.key, field.label, *hints_for(table_key, field.key)]
    return [t for t in (_comparable(term) for term in terms) if t]


def score_header(header: str, terms: Sequence[str]) -> float:
    """Score how well a normalized header matches a field's normalized terms.

    Args:
        header: Normalized source header.
        terms: Normalized field key, label and synonyms.

    Returns:
        Best similarity between 0.0 and 100.0.
    """
    best = 0.0
    for term in terms:
        if header == term:
            return 100.0
        score = fuzz.ratio(header, term)
        shorter = min(len(header), len(term))
        if shorter >= CONTAINMENT_MIN_LENGTH and (term in header or header in term):
            score = max(score, CONTAINMENT_SCORE)
        best = max(best, score)
    return best


def auto_map(
    headers: Sequence[str],
    table_key: str,
    min_confidence: float = MIN_CONFIDENCE,
) -> list[ColumnMapping]:
    """Propose a destination field for every source column.

    All (column, field) pairs scoring at least ``min_confidence`` are ranked
    by score, then required fields first, then field declaration order, then
    column order. Pairs are claimed greedily so a field is never assigned to
    two columns and a column receives at most one field.

    Args:
        headers: Sheet headers in sheet order.
        table_key: Destination table.
        min_confidence: Acceptance threshold (0–100).

    Returns:
        One ColumnMapping per header, in header order. Unmatched columns
        have ``db_field=None`` and confidence 0.
    """
    schema = get_schema(table_key)
    if schema is None:
        log.warning("Unknown target table %r, all columns left unmapped", table_key)
        return [ColumnMapping(h, None, 0) for h in headers]

    field_terms = [(f, _field_terms(table_key, f)) for f in schema.fields]

    candidates = []
    for col_idx, header in enumerate(headers):
        normalized = _comparable(header)
        if not normalized:
            continue
        for field_idx, (f, terms) in enumerate(field_terms):
            score = score_header(normalized, terms)
            if score >= min_confidence:
                candidates.append((score, f.required, field_idx, col_idx, f.key))

    candidates.sort(key=lambda c: (-c[0], not c[1], c[2], c[3]))

    claimed: set[str] = set()
    assigned: dict[int, tuple[str, float]] = {}
    for score, _required, _field_idx, col_idx, field_key in candidates:
        if col_idx in assigned or field_key in claimed:
            continue
        claimed.add(field_key)
        assigned[col_idx] = (field_key, score)

    mappings = []
    for col_idx, header in enumerate(headers):
        if col_idx in assigned:
            field_key, score = assigned[col_idx]
            mappings.append(ColumnMapping(header, field_key, int(round(score))))
        else:
            mappings.append(ColumnMapping(header, None, 0))

    log.info(
        "Auto-mapped %d of %d columns onto %s",
        len(assigned), len(headers), table_key,
    )
    return mappings


def override_mapping(
    mappings: Sequence[ColumnMapping],
    excel_column: str,
    db_field: Optional[str],
) -> list[ColumnMapping]:
    """Return a copy of ``mappings`` with one column manually (re)assigned."""
    result = []
    for m in mappings:
        if m.excel_column == excel_column:
            result.append(ColumnMapping(excel_column, db_field, 100 if db_field else 0))
        else:
            result.append(ColumnMapping(m.excel_column, m.db_field, m.confidence))
    return result


def find_duplicate_targets(mappings: Sequence[ColumnMapping]) -> dict[str, list[str]]:
    """Return destination fields claimed by more than one column."""
    by_field: dict[str, list[str]] = defaultdict(list)
    for m in mappings:
        if m.db_field:
            by_field[m.db_field].append(m.excel_column)
    return {k: cols for k, cols in by_field.items() if len(cols) > 1}


def suggest_table(headers: Sequence[str], min_confidence: float = MIN_CONFIDENCE) -> str:
    """Guess the destination table that best fits a sheet's headers.

    Each table scores one point per mapped column plus two per mapped
    required field; ties go to the first declared table.
    """
    best_key = ''
    best_score = -1
    for schema in list_schemas():
        mappings = auto_map(headers, schema.key, min_confidence)
        mapped = {m.db_field for m in mappings if m.db_field}
        required = sum(1 for f in schema.required_fields if f.key in mapped)
        score = len(mapped) + 2 * required
        if score > best_score:
            best_score = score
            best_key = schema.key
    return best_key
