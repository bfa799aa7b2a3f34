"""club-import – CLI tool for importing club spreadsheets (teams, trainers, players, halls)."""

import argparse
import logging
import sys
from pathlib import Path

from clubimport.errors import ParseError, ResolutionIncomplete, WizardStateError
from clubimport.mapping import MIN_CONFIDENCE
from clubimport.reporter import (
    print_preview_summary,
    print_summary,
    write_csv_report,
    write_html_report,
    write_preview_csv,
)
from clubimport.schemas import list_schemas
from clubimport.store import JsonFileRepository
from clubimport.wizard import ImportWizard, WizardStep


def build_parser() -> argparse.ArgumentParser:
    """Build the argument parser for the CLI."""
    parser = argparse.ArgumentParser(
        description='Import a spreadsheet export into the club store.',
        prog='importer.py',
    )
    parser.add_argument(
        '--sheet', required=True, type=Path,
        help='Path to the sheet (CSV, semicolon or tab separated)',
    )
    parser.add_argument(
        '--store', required=True, type=Path,
        help='Path to the JSON store holding existing records',
    )
    parser.add_argument(
        '--table', choices=[s.key for s in list_schemas()],
        help='Destination table (default: best guess from the headers)',
    )
    parser.add_argument(
        '--map', action='append', default=[], metavar='COLUMN=FIELD',
        help='Override the mapping of a column; an empty FIELD skips the column',
    )
    parser.add_argument(
        '--resolve', action='append', default=[], metavar='NAME:ATTR=VALUE',
        help='Attribute for a missing reference, e.g. "Coach Sami:phone=0501234567"',
    )
    parser.add_argument(
        '--min-confidence', type=float, default=MIN_CONFIDENCE,
        help=f'Threshold for automatic column mapping (default: {MIN_CONFIDENCE})',
    )
    parser.add_argument(
        '--output', type=Path,
        help='Path for the CSV report (preview with --dry-run, outcome otherwise)',
    )
    parser.add_argument(
        '--html', action='store_true',
        help='Also write an HTML report next to --output',
    )
    parser.add_argument(
        '--summary', action='store_true',
        help='Print a summary to stdout',
    )
    parser.add_argument(
        '--dry-run', action='store_true',
        help='Stop after the preview, nothing is written to the store',
    )
    return parser


def parse_assignment(text: str) -> tuple[str, str]:
    """Split ``KEY=VALUE``; raises ValueError without '='."""
    key, sep, value = text.partition('=')
    if not sep or not key.strip():
        raise ValueError(f"expected KEY=VALUE, got {text!r}")
    return key.strip(), value.strip()


def parse_resolution(text: str) -> tuple[str, str, str]:
    """Split ``NAME:ATTR=VALUE`` into its three parts."""
    name, sep, assignment = text.rpartition(':')
    if not sep or not name.strip():
        raise ValueError(f"expected NAME:ATTR=VALUE, got {text!r}")
    attribute, value = parse_assignment(assignment)
    return name.strip(), attribute, value


def run(args: argparse.Namespace) -> int:
    """Drive one wizard session from the command line; returns the exit code."""
    wizard = ImportWizard(JsonFileRepository(args.store), min_confidence=args.min_confidence)

    try:
        wizard.load_file(args.sheet)
    except ParseError as exc:
        logging.error("%s", exc)
        return 1

    table = args.table or wizard.suggested_table
    logging.info("Importing %s into %s", args.sheet.name, table)
    wizard.select_table(table)

    try:
        for item in args.map:
            column, field = parse_assignment(item)
            wizard.override_mapping(column, field or None)
    except (ValueError, WizardStateError) as exc:
        logging.error("Invalid --map: %s", exc)
        return 2

    for m in wizard.mappings:
        logging.info("  %s -> %s (%d)", m.excel_column, m.db_field or '-', m.confidence)

    rows = wizard.confirm_mappings()
    if args.summary:
        print_preview_summary(rows, args.sheet.name)

    if args.dry_run:
        if args.output:
            write_preview_csv(rows, args.output)
        return 0

    if wizard.proceed() is WizardStep.RESOLVE_REFERENCES:
        try:
            for item in args.resolve:
                wizard.supply_attribute(*parse_resolution(item))
            wizard.proceed()
        except (ValueError, WizardStateError) as exc:
            logging.error("Invalid --resolve: %s", exc)
            return 2
        except ResolutionIncomplete as exc:
            for name, problems in exc.incomplete.items():
                logging.error("Missing reference %r: %s", name, '; '.join(problems))
            return 3

    outcome = wizard.commit()

    if args.output:
        write_csv_report(outcome, args.output)
        if args.html:
            write_html_report(outcome, rows, args.output.with_suffix('.html'), args.sheet.stem)

    if args.summary:
        print_summary(outcome, args.sheet.name)

    return 0 if outcome.failed_count == 0 else 4


def main() -> None:
    """Main entry point."""
    logging.basicConfig(
        level=logging.INFO,
        format='%(levelname)s: %(message)s',
    )

    parser = build_parser()
    args = parser.parse_args()

    if args.html and not args.output:
        parser.error('--html requires --output.')

    sys.exit(run(args))


if __name__ == '__main__':
    main()
