"""Tests for clubimport.transform module."""

import copy
from datetime import date, datetime

import pytest

from clubimport import ColumnMapping, PendingId, RowStatus
from clubimport.schemas import get_schema
from clubimport.transform import coerce_value, transform_and_validate

TRAINEES = get_schema('trainees')

MAPPINGS = [
    ColumnMapping('Name', 'name_ar', 100),
    ColumnMapping('Phone', 'phone', 100),
    ColumnMapping('Team', 'class_id', 100),
    ColumnMapping('Jersey', 'jersey_number', 100),
    ColumnMapping('Gender', 'gender', 100),
    ColumnMapping('Born', 'birth_date', 100),
    ColumnMapping('Notes', None, 0),
]


def _row(**kwargs) -> dict:
    """Create a source row with defaults."""
    defaults = {
        'Name': 'أحمد خليل', 'Phone': '0501234567', 'Team': 'الأشبال',
        'Jersey': '7', 'Gender': 'male', 'Born': '2012-05-03', 'Notes': 'x',
    }
    defaults.update(kwargs)
    return defaults


@pytest.fixture
def transform(reference_snapshot):
    def _transform(rows, mappings=MAPPINGS):
        return transform_and_validate(rows, mappings, TRAINEES, reference_snapshot)
    return _transform


class TestRowSet:
    """Properties of the whole preview set."""

    def test_length_and_order_preserved(self, transform):
        rows = [_row(Name=f'Player {i}') for i in range(7)]
        preview = transform(rows)
        assert len(preview) == len(rows)
        assert [p.index for p in preview] == list(range(7))
        assert [p.transformed['name_ar'] for p in preview] == [f'Player {i}' for i in range(7)]

    def test_idempotent(self, transform):
        rows = [_row(), _row(Team='Unknown team'), _row(Name='')]
        assert transform(rows) == transform(rows)

    def test_source_rows_not_mutated(self, transform):
        rows = [_row(), _row(Phone='12', Team='new')]
        before = copy.deepcopy(rows)
        transform(rows)
        assert rows == before

    def test_empty_input(self, transform):
        assert transform([]) == []

    def test_sample_sheet(self, sample_sheet, reference_snapshot):
        from clubimport.mapping import auto_map
        mappings = auto_map(sample_sheet.headers, 'trainees')
        preview = transform_and_validate(sample_sheet.rows, mappings, TRAINEES, reference_snapshot)
        assert [p.status for p in preview] == [
            RowStatus.VALID, RowStatus.VALID, RowStatus.ERROR,
            RowStatus.WARNING, RowStatus.WARNING, RowStatus.ERROR,
        ]


class TestValidRow:
    """A fully valid row."""

    def test_values_coerced(self, transform):
        row = transform([_row()])[0]
        assert row.status is RowStatus.VALID
        assert row.messages == ()
        assert row.transformed['phone'] == '972501234567'
        assert row.transformed['jersey_number'] == 7
        assert row.transformed['gender'] == 'male'
        assert row.transformed['birth_date'] == date(2012, 5, 3)
        assert row.transformed['class_id'] == 'class-1'
        assert row.transformed['_display_class_id'] == 'الأشبال'

    def test_skipped_column_not_transformed(self, transform):
        row = transform([_row()])[0]
        assert 'Notes' not in row.transformed
        assert 'x' not in row.record.values()

    def test_text_trimmed(self, transform):
        row = transform([_row(Name='  أحمد خليل  ')])[0]
        assert row.transformed['name_ar'] == 'أحمد خليل'

    def test_record_excludes_display_entries(self, transform):
        row = transform([_row()])[0]
        assert '_display_class_id' not in row.record
        assert row.record['class_id'] == 'class-1'

    def test_names_filled_from_single_language(self, transform):
        row = transform([_row()])[0]
        assert row.transformed['name_he'] == 'أحمد خليل'
        assert row.transformed['name_en'] == 'أحمد خليل'


class TestRequiredFields:
    """Missing required values."""

    def test_missing_name_is_error(self, transform):
        row = transform([_row(Name='')])[0]
        assert row.status is RowStatus.ERROR
        assert any('name_ar' in m for m in row.messages)

    def test_none_value_counts_as_missing(self, transform):
        row = transform([_row(Name=None)])[0]
        assert row.status is RowStatus.ERROR

    def test_unmapped_required_field_is_error(self, transform):
        mappings = [m for m in MAPPINGS if m.db_field != 'name_ar']
        row = transform([_row()], mappings)[0]
        assert row.status is RowStatus.ERROR

    def test_other_language_name_satisfies_required(self, transform):
        mappings = [ColumnMapping('Name', 'name_en', 100)]
        row = transform([_row(Name='Ahmad')], mappings)[0]
        assert row.status is RowStatus.VALID
        assert row.transformed['name_ar'] == 'Ahmad'


class TestNumbers:
    """Number fields."""

    def test_invalid_number_is_error(self, transform):
        row = transform([_row(Jersey='x')])[0]
        assert row.status is RowStatus.ERROR
        assert 'not a valid number for jersey_number' in row.messages[0]
        assert 'jersey_number' not in row.transformed

    def test_decimal(self, transform):
        row = transform([_row(Jersey='12.5')])[0]
        assert row.transformed['jersey_number'] == 12.5

    def test_arabic_digits(self, transform):
        row = transform([_row(Jersey='١٢')])[0]
        assert row.transformed['jersey_number'] == 12

    def test_numeric_cell(self, transform):
        row = transform([_row(Jersey=9)])[0]
        assert row.transformed['jersey_number'] == 9

    @pytest.mark.parametrize('raw', ['nan', 'inf', '-Infinity', '1_000', float('nan'), float('inf')])
    def test_non_finite_and_underscored_values_are_errors(self, transform, raw):
        row = transform([_row(Jersey=raw)])[0]
        assert row.status is RowStatus.ERROR
        assert 'not a valid number for jersey_number' in row.messages[0]
        assert 'jersey_number' not in row.transformed

    def test_thousands_separator(self, transform):
        row = transform([_row(Jersey='1,000')])[0]
        assert row.transformed['jersey_number'] == 1000

    def test_whole_float_cell(self, transform):
        row = transform([_row(Jersey=12.0)])[0]
        assert row.transformed['jersey_number'] == 12


class TestDates:
    """Date fields."""

    def test_wrong_format_is_error(self, transform):
        row = transform([_row(Born='03/05/2012')])[0]
        assert row.status is RowStatus.ERROR
        assert any('birth_date' in m for m in row.messages)

    def test_datetime_cell(self, transform):
        row = transform([_row(Born=datetime(2011, 1, 2, 0, 0))])[0]
        assert row.transformed['birth_date'] == date(2011, 1, 2)

    def test_custom_format(self, reference_snapshot):
        rows = [_row(Born='03/05/2012')]
        preview = transform_and_validate(
            rows, MAPPINGS, TRAINEES, reference_snapshot, date_format='%d/%m/%Y',
        )
        assert preview[0].transformed['birth_date'] == date(2012, 5, 3)


class TestPhones:
    """Phone fields."""

    def test_short_phone_is_warning(self, transform):
        row = transform([_row(Phone='12345')])[0]
        assert row.status is RowStatus.WARNING
        assert row.transformed['phone'] == '12345'

    def test_float_cell_lost_leading_zero(self, transform):
        row = transform([_row(Phone=501234567.0)])[0]
        assert row.transformed['phone'] == '972501234567'
        assert row.status is RowStatus.VALID


class TestEnums:
    """Enum fields."""

    def test_case_insensitive(self, transform):
        row = transform([_row(Gender='FEMALE')])[0]
        assert row.transformed['gender'] == 'female'

    @pytest.mark.parametrize('raw,expected', [('ذكر', 'male'), ('נקבה', 'female'), ('m', 'male')])
    def test_localized_alias(self, transform, raw, expected):
        row = transform([_row(Gender=raw)])[0]
        assert row.transformed['gender'] == expected

    def test_unknown_value_is_warning_passed_through(self, transform):
        row = transform([_row(Gender='other')])[0]
        assert row.status is RowStatus.WARNING
        assert row.transformed['gender'] == 'other'


class TestForeignKeys:
    """Foreign-key lookups against the reference snapshot."""

    def test_match_is_case_insensitive_on_other_names(self, transform):
        row = transform([_row(Team='  CUBS ')])[0]
        assert row.transformed['class_id'] == 'class-1'
        assert row.transformed['_display_class_id'] == 'الأشبال'
        assert row.status is RowStatus.VALID

    def test_fuzzy_match_is_warning(self, transform):
        row = transform([_row(Team='الاشبال')])[0]
        assert row.transformed['class_id'] == 'class-1'
        assert row.status is RowStatus.WARNING
        assert 'matched' in row.messages[0]

    def test_unknown_name_is_pending(self, transform):
        row = transform([_row(Team='البراعم')])[0]
        assert row.transformed['class_id'] == PendingId('classes', 'البراعم')
        assert row.transformed['_display_class_id'] == 'البراعم'
        assert row.status is RowStatus.WARNING
        assert row.messages == ('class_id will be created: البراعم',)
        assert row.pending == [PendingId('classes', 'البراعم')]

    def test_empty_snapshot_makes_everything_pending(self):
        row = transform_and_validate([_row()], MAPPINGS, TRAINEES, {})[0]
        assert isinstance(row.transformed['class_id'], PendingId)


class TestDuplicateTargets:
    """Two columns mapped onto the same field."""

    MAPPINGS = [
        ColumnMapping('Name', 'name_ar', 100),
        ColumnMapping('Phone', 'phone', 100),
        ColumnMapping('Mobile', 'phone', 100),
    ]

    def test_last_filled_column_wins_with_warning(self, transform):
        row = transform([{'Name': 'A', 'Phone': '0501111111', 'Mobile': '0502222222'}], self.MAPPINGS)[0]
        assert row.transformed['phone'] == '972502222222'
        assert row.status is RowStatus.WARNING
        assert 'phone is mapped from several columns' in row.messages[0]

    def test_single_filled_column_no_warning(self, transform):
        row = transform([{'Name': 'A', 'Phone': '0501111111', 'Mobile': ''}], self.MAPPINGS)[0]
        assert row.transformed['phone'] == '972501111111'
        assert row.status is RowStatus.VALID


class TestCoerceValue:
    """Direct coercion, as used by the reference gate."""

    def test_phone_ok(self):
        value, severity, message = coerce_value(get_schema('trainers').field('phone'), '050-123-4567')
        assert (value, severity, message) == ('972501234567', None, None)

    def test_phone_short(self):
        _value, severity, message = coerce_value(get_schema('trainers').field('phone'), '050')
        assert severity is RowStatus.WARNING
        assert message


class TestDuplicateTargetOutcomes:
    """Only the winning column's value and messages reach the row."""

    def test_invalid_first_column_overridden(self, transform):
        mappings = [
            ColumnMapping('Name', 'name_ar', 100),
            ColumnMapping('Jersey', 'jersey_number', 100),
            ColumnMapping('Shirt', 'jersey_number', 100),
        ]
        row = transform([{'Name': 'A', 'Jersey': 'x', 'Shirt': '7'}], mappings)[0]
        assert row.transformed['jersey_number'] == 7
        assert row.status is RowStatus.WARNING
        assert not any('not a valid number' in m for m in row.messages)

    def test_invalid_last_column_wins(self, transform):
        mappings = [
            ColumnMapping('Name', 'name_ar', 100),
            ColumnMapping('Jersey', 'jersey_number', 100),
            ColumnMapping('Shirt', 'jersey_number', 100),
        ]
        row = transform([{'Name': 'A', 'Jersey': '7', 'Shirt': 'x'}], mappings)[0]
        assert row.status is RowStatus.ERROR
        assert 'jersey_number' not in row.transformed

    def test_unknown_team_overridden_by_known_one(self, transform):
        mappings = [
            ColumnMapping('Name', 'name_ar', 100),
            ColumnMapping('Team', 'class_id', 100),
            ColumnMapping('Group', 'class_id', 100),
        ]
        row = transform([{'Name': 'A', 'Team': 'Unknown team', 'Group': 'Cubs'}], mappings)[0]
        assert row.transformed['class_id'] == 'class-1'
        assert row.transformed['_display_class_id'] == 'الأشبال'
        assert row.pending == []
        assert not any('will be created' in m for m in row.messages)
        assert row.status is RowStatus.WARNING
