"""Report generation for previews and import outcomes (CSV, HTML, summary)."""

import csv
import logging
from pathlib import Path
from typing import Sequence

from jinja2 import Environment, FileSystemLoader

from clubimport import ImportOutcome, PreviewRow, RowStatus
from clubimport.transform import DISPLAY_PREFIX

log = logging.getLogger(__name__)

TEMPLATE_DIR = Path(__file__).resolve().parent / 'templates'

OUTCOME_COLUMNS = ['Row', 'Status', 'Action', 'Record_ID', 'Error']
PREVIEW_COLUMNS = ['Row', 'Status', 'Record', 'Messages']


def _display_record(row: PreviewRow) -> str:
    """Render transformed values, showing reference labels instead of ids."""
    parts = []
    for key, value in row.record.items():
        label = row.transformed.get(DISPLAY_PREFIX + key, value)
        parts.append(f'{key}={label}')
    return ', '.join(parts)


def _outcome_rows(outcome: ImportOutcome) -> list[dict]:
    return [
        {
            'Row': str(o.index + 1),
            'Status': 'OK' if o.success else 'FAILED',
            'Action': o.action or '',
            'Record_ID': o.created_id or '',
            'Error': o.error or '',
        }
        for o in outcome.outcomes
    ]


def _preview_rows(rows: Sequence[PreviewRow]) -> list[dict]:
    return [
        {
            'Row': str(r.index + 1),
            'Status': r.status.value,
            'Record': _display_record(r),
            'Messages': ' | '.join(r.messages),
        }
        for r in rows
    ]


def _write_csv(rows: list[dict], columns: list[str], output_path: Path) -> None:
    output_path = Path(output_path)
    output_path.parent.mkdir(parents=True, exist_ok=True)
    # utf-8-sig and ';' so Excel opens Arabic/Hebrew text correctly
    with open(output_path, 'w', newline='', encoding='utf-8-sig') as f:
        writer = csv.DictWriter(f, fieldnames=columns, delimiter=';', extrasaction='ignore')
        writer.writeheader()
        writer.writerows(rows)
    log.info("CSV report written: %s (%d rows)", output_path, len(rows))


def write_csv_report(outcome: ImportOutcome, output_path: Path) -> None:
    """Write one line per committed row with its action or failure reason."""
    _write_csv(_outcome_rows(outcome), OUTCOME_COLUMNS, output_path)


def write_preview_csv(rows: Sequence[PreviewRow], output_path: Path) -> None:
    """Write the validated preview, one line per source row."""
    _write_csv(_preview_rows(rows), PREVIEW_COLUMNS, output_path)


def compute_preview_stats(rows: Sequence[PreviewRow]) -> dict:
    stats = {status.value: 0 for status in RowStatus}
    for r in rows:
        stats[r.status.value] += 1
    stats['total'] = len(rows)
    return stats


def write_html_report(
    outcome: ImportOutcome,
    rows: Sequence[PreviewRow],
    output_path: Path,
    sheet_name: str = '',
) -> None:
    """Write preview and outcome as an HTML report using Jinja2.

    Args:
        outcome: Result of the commit.
        rows: Preview rows that were committed.
        output_path: Path for the output HTML file.
        sheet_name: Name of the imported sheet (for the report title).
    """
    output_path = Path(output_path)
    output_path.parent.mkdir(parents=True, exist_ok=True)

    env = Environment(
        loader=FileSystemLoader(str(TEMPLATE_DIR)),
        autoescape=True,
    )
    template = env.get_template('report.html')

    html = template.render(
        sheet_name=sheet_name,
        preview=_preview_rows(rows),
        preview_stats=compute_preview_stats(rows),
        outcome=outcome,
        outcome_rows=_outcome_rows(outcome),
        reference_failures=outcome.reference_failures,
    )

    output_path.write_text(html, encoding='utf-8')
    log.info("HTML report written: %s", output_path)


def print_preview_summary(rows: Sequence[PreviewRow], sheet_name: str = '') -> None:
    """Print ready/warning/error counts of a preview to stdout."""
    stats = compute_preview_stats(rows)
    print(f"\n=== Preview: {sheet_name} ===")
    print(f"Rows total:                {stats['total']:>5}")
    print(f"Ready:                     {stats['valid']:>5}")
    print(f"With warnings:             {stats['warning']:>5}")
    print(f"With errors:               {stats['error']:>5}")
    print()


def print_summary(outcome: ImportOutcome, sheet_name: str = '') -> None:
    """Print created/updated/failed counts and every failure reason to stdout."""
    print(f"\n=== Import: {sheet_name} ===")
    print(f"Created:                   {outcome.created_count:>5}")
    print(f"Updated:                   {outcome.updated_count:>5}")
    print(f"Failed:                    {outcome.failed_count:>5}")
    if outcome.created_references:
        print(f"References created:        {len(outcome.created_references):>5}")
    for name, error in outcome.reference_failures.items():
        print(f"  ! reference {name}: {error}")
    if outcome.failures:
        print("---")
        for failure in outcome.failures:
            print(f"  - row {failure.index + 1}: {failure.error}")
    print()
