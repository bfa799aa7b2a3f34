"""Delimited-text sheet reader with encoding, delimiter and header-row detection."""

import csv
import io
import logging
from pathlib import Path
from typing import Any, Optional

from clubimport import ParsedSheet
from clubimport.errors import ParseError
from clubimport.normalize import normalize_whitespace

log = logging.getLogger(__name__)

# Rows inspected when looking for the header row
HEADER_SCAN_ROWS = 5


def detect_encoding(path: Path) -> str:
    """Detect file encoding by checking for BOM bytes.

    Args:
        path: Path to the sheet file.

    Returns:
        Encoding string suitable for open().
    """
    with open(path, 'rb') as f:
        bom = f.read(2)
    if bom in (b'\xff\xfe', b'\xfe\xff'):
        return 'utf-16'
    return 'utf-8-sig'


def detect_delimiter(content: str) -> str:
    """Pick tab, semicolon or comma from the first non-empty line."""
    first = next((line for line in content.splitlines() if line.strip()), '')
    if '\t' in first:
        return '\t'
    if first.count(';') > first.count(','):
        return ';'
    return ','


def _filled(cells: list[Any]) -> int:
    return sum(1 for c in cells if c is not None and str(c).strip() != '')


def detect_header_row(rows: list[list[Any]]) -> int:
    """Return the index of the first row with the most non-empty cells.

    Only the first HEADER_SCAN_ROWS rows are inspected, so title lines
    above the real header are skipped.
    """
    best_index = 0
    best_count = 0
    for i, row in enumerate(rows[:HEADER_SCAN_ROWS]):
        count = _filled(row)
        if count > best_count:
            best_count = count
            best_index = i
    return best_index


def forward_fill_sparse_columns(rows: list[list[Any]], column_count: int) -> None:
    """Forward-fill category-style columns in place.

    A column is filled downwards when it has some values but is mostly
    empty, as produced by merged cells spanning several rows.
    """
    for c in range(column_count):
        values = [row[c] if c < len(row) else None for row in rows]
        filled = _filled(values)
        if filled == 0 or len(rows) - filled <= filled:
            continue
        last: Optional[Any] = None
        for row in rows:
            while len(row) <= c:
                row.append(None)
            if row[c] is not None and str(row[c]).strip() != '':
                last = row[c]
            elif last is not None:
                row[c] = last


def _unique_headers(raw: list[Any]) -> list[str]:
    headers: list[str] = []
    for i, cell in enumerate(raw):
        header = normalize_whitespace(str(cell)) if cell is not None else ''
        header = header or f'Column {i + 1}'
        candidate, n = header, 2
        while candidate in headers:
            candidate = f'{header} ({n})'
            n += 1
        headers.append(candidate)
    return headers


def read_sheet(path: str | Path, delimiter: Optional[str] = None) -> ParsedSheet:
    """Read a delimited-text sheet into a ParsedSheet.

    Handles UTF-16 (with BOM) and UTF-8 encoded files. Empty cells become
    None, blank rows are dropped.

    Args:
        path: Path to the sheet file.
        delimiter: Field delimiter; detected when omitted.

    Returns:
        ParsedSheet named after the file.

    Raises:
        ParseError: If the file cannot be read or has no data rows.
    """
    path = Path(path)
    try:
        encoding = detect_encoding(path)
        with open(path, 'r', encoding=encoding) as f:
            content = f.read()
    except (OSError, UnicodeError) as exc:
        raise ParseError(f"Cannot read {path}: {exc}") from exc

    content = content.lstrip('\ufeff')
    reader = csv.reader(io.StringIO(content), delimiter=delimiter or detect_delimiter(content))
    try:
        raw_rows: list[list[Any]] = [
            [cell if cell.strip() != '' else None for cell in row]
            for row in reader
        ]
    except csv.Error as exc:
        raise ParseError(f"Cannot parse {path} near line {reader.line_num}: {exc}") from exc
    raw_rows = [row for row in raw_rows if _filled(row)]
    if not raw_rows:
        raise ParseError(f"{path} is empty")

    header_index = detect_header_row(raw_rows)
    headers = _unique_headers(raw_rows[header_index])
    data_rows = raw_rows[header_index + 1:]
    if not data_rows:
        raise ParseError(f"{path} has no data rows")

    forward_fill_sparse_columns(data_rows, len(headers))

    rows = []
    for row in data_rows:
        rows.append({h: (row[i] if i < len(row) else None) for i, h in enumerate(headers)})

    log.info("%d rows read from %s", len(rows), path)
    return ParsedSheet(headers=tuple(headers), rows=tuple(rows), name=path.stem)
