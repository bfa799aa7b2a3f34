"""Registry of importable destination tables and their fields."""

from typing import Optional

from clubimport import FieldKind, FieldSchema, TableSchema

GENDER_OPTIONS = ('male', 'female')

# Localized spellings accepted for enum options
ENUM_ALIASES: dict[str, str] = {
    'm': 'male',
    'ذكر': 'male',
    'זכר': 'male',
    'f': 'female',
    'أنثى': 'female',
    'انثى': 'female',
    'נקבה': 'female',
}


def _name_fields(label: str) -> tuple[FieldSchema, ...]:
    return (
        FieldSchema('name_ar', label, required=True),
        FieldSchema('name_he', f'{label} (عبري)'),
        FieldSchema('name_en', f'{label} (إنجليزي)'),
    )


_ID_FIELD = FieldSchema('id', 'المعرف')

TABLE_SCHEMAS: tuple[TableSchema, ...] = (
    TableSchema(
        key='classes',
        label='الفرق',
        fields=_name_fields('اسم الفريق') + (
            FieldSchema('trainer_id', 'المدرب', FieldKind.FOREIGN_KEY,
                        reference_table='trainers', reference_display_field='name_ar'),
            FieldSchema('hall_id', 'القاعة', FieldKind.FOREIGN_KEY,
                        reference_table='halls', reference_display_field='name_ar'),
            FieldSchema('schedule_info', 'الجدول'),
            _ID_FIELD,
        ),
    ),
    TableSchema(
        key='trainers',
        label='المدربين',
        fields=_name_fields('الاسم') + (
            FieldSchema('phone', 'الهاتف', FieldKind.PHONE),
            FieldSchema('gender', 'الجنس', FieldKind.ENUM, options=GENDER_OPTIONS),
            _ID_FIELD,
        ),
        provision_fields=('phone',),
    ),
    TableSchema(
        key='trainees',
        label='اللاعبين',
        fields=_name_fields('الاسم') + (
            FieldSchema('phone', 'الهاتف', FieldKind.PHONE),
            FieldSchema('jersey_number', 'رقم القميص', FieldKind.NUMBER),
            FieldSchema('class_id', 'الفريق', FieldKind.FOREIGN_KEY,
                        reference_table='classes', reference_display_field='name_ar'),
            FieldSchema('gender', 'الجنس', FieldKind.ENUM, options=GENDER_OPTIONS),
            FieldSchema('amount_paid', 'المبلغ المدفوع', FieldKind.NUMBER),
            FieldSchema('birth_date', 'تاريخ الميلاد', FieldKind.DATE),
            _ID_FIELD,
        ),
    ),
    TableSchema(
        key='halls',
        label='القاعات',
        fields=_name_fields('اسم القاعة') + (_ID_FIELD,),
    ),
)

# Header synonyms per table and field, in Arabic, Hebrew and English
MAPPING_HINTS: dict[str, dict[str, list[str]]] = {
    'classes': {
        'name_ar': ['קבוצה', 'فريق', 'team', 'اسم الفريق', 'group', 'class'],
        'name_he': ['שם קבוצה', 'team hebrew'],
        'name_en': ['team name', 'team english'],
        'trainer_id': ['מאמן', 'مدرب', 'trainer', 'coach', 'مدرّب'],
        'hall_id': ['אולם', 'قاعة', 'hall', 'venue', 'ملعب'],
        'schedule_info': ['יומן', 'schedule', 'جدول', 'مواعيد', 'توقيت', 'أوقات'],
        'id': ['id', 'מזהה', 'معرف'],
    },
    'trainers': {
        'name_ar': ['שם', 'اسم', 'name', 'מאמן', 'مدرب', 'trainer'],
        'name_he': ['שם בעברית', 'hebrew name'],
        'name_en': ['english name'],
        'phone': ['טלפון', 'هاتف', 'phone', 'tel', 'mobile', 'جوال'],
        'gender': ['מין', 'جنس', 'gender', 'sex'],
        'id': ['id', 'מזהה', 'معرف'],
    },
    'trainees': {
        'name_ar': ['שם', 'اسم', 'name', 'لاعب', 'שחקן', 'player', 'trainee'],
        'name_he': ['שם בעברית', 'hebrew name'],
        'name_en': ['english name'],
        'phone': ['טלפון', 'هاتف', 'phone', 'tel', 'mobile', 'جوال'],
        'jersey_number': ['מספר חולצה', 'رقم القميص', 'jersey', '#', 'number'],
        'class_id': ['קבוצה', 'فريق', 'team', 'class', 'group'],
        'gender': ['מין', 'جنس', 'gender', 'sex'],
        'amount_paid': ['תשלום', 'مبلغ', 'payment', 'amount', 'paid', 'دفع'],
        'birth_date': ['תאריך לידה', 'ميلاد', 'birth date', 'birthday', 'dob'],
        'id': ['id', 'מזהה', 'معرف'],
    },
    'halls': {
        'name_ar': ['שם', 'اسم', 'name', 'אולם', 'قاعة', 'hall'],
        'name_he': ['שם בעברית', 'hebrew name'],
        'name_en': ['english name', 'venue'],
        'id': ['id', 'מזהה', 'معرف'],
    },
}

_BY_KEY = {schema.key: schema for schema in TABLE_SCHEMAS}


def list_schemas() -> list[TableSchema]:
    """Return all importable table schemas in declaration order."""
    return list(TABLE_SCHEMAS)


def get_schema(key: Optional[str]) -> Optional[TableSchema]:
    """Return the schema for ``key`` or None when it is not registered."""
    if key is None:
        return None
    return _BY_KEY.get(key)


def hints_for(table_key: str, field_key: str) -> list[str]:
    """Return the configured header synonyms of a field."""
    return MAPPING_HINTS.get(table_key, {}).get(field_key, [])
