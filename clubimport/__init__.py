"""Core module for club-import."""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Optional

from clubimport.normalize import normalize_name


class FieldKind(Enum):
    """How a destination field is coerced and validated."""

    TEXT = 'text'
    NUMBER = 'number'
    DATE = 'date'
    PHONE = 'phone'
    ENUM = 'enum'
    FOREIGN_KEY = 'foreign-key'


class RowStatus(Enum):
    """Validation status of a preview row."""

    VALID = 'valid'
    WARNING = 'warning'
    ERROR = 'error'


@dataclass(frozen=True)
class FieldSchema:
    """A single destination field of an importable table."""

    key: str
    label: str
    kind: FieldKind = FieldKind.TEXT
    required: bool = False
    reference_table: Optional[str] = None
    reference_display_field: Optional[str] = None
    options: tuple[str, ...] = ()


@dataclass(frozen=True)
class TableSchema:
    """An importable destination table."""

    key: str
    label: str
    fields: tuple[FieldSchema, ...]
    # Attributes collected before an entity can be provisioned as a missing reference
    provision_fields: tuple[str, ...] = ()

    def field(self, key: str) -> Optional[FieldSchema]:
        for f in self.fields:
            if f.key == key:
                return f
        return None

    @property
    def required_fields(self) -> tuple[FieldSchema, ...]:
        return tuple(f for f in self.fields if f.required)


@dataclass(frozen=True)
class ParsedSheet:
    """A parsed sheet: ordered headers plus rows keyed by header."""

    headers: tuple[str, ...]
    rows: tuple[dict[str, Any], ...]
    name: str = ''


@dataclass
class ColumnMapping:
    """Mapping of one source column onto a destination field (None = skip)."""

    excel_column: str
    db_field: Optional[str]
    confidence: int = 0   # 0 – 100


@dataclass(frozen=True)
class PendingId:
    """Placeholder for a foreign key whose referenced entity is not created yet."""

    table: str
    key: str      # normalized reference name


@dataclass(frozen=True)
class PreviewRow:
    """A transformed and validated source row."""

    index: int
    source: dict[str, Any]
    transformed: dict[str, Any]
    status: RowStatus
    messages: tuple[str, ...] = ()

    @property
    def record(self) -> dict[str, Any]:
        """Transformed values without the synthetic ``_display_`` entries."""
        return {k: v for k, v in self.transformed.items() if not k.startswith('_')}

    @property
    def pending(self) -> list[PendingId]:
        return [v for v in self.transformed.values() if isinstance(v, PendingId)]


@dataclass
class UnresolvedReference:
    """A foreign-key label with no match in the reference snapshot."""

    table: str            # referenced table, e.g. 'trainers'
    source_field: str     # foreign-key field on the imported table
    name: str             # raw label as it appears in the sheet
    supplied_attributes: dict[str, str] = field(default_factory=dict)
    used_by_row_count: int = 0
    display_field: str = 'name_ar'

    @property
    def pending(self) -> PendingId:
        return PendingId(self.table, normalize_name(self.name))


@dataclass
class RowOutcome:
    """Result of committing a single preview row."""

    index: int
    success: bool
    error: Optional[str] = None
    created_id: Optional[str] = None
    action: Optional[str] = None    # 'created', 'updated' or None on failure


@dataclass
class ImportOutcome:
    """Aggregated result of a commit."""

    outcomes: list[RowOutcome] = field(default_factory=list)
    created_count: int = 0
    updated_count: int = 0
    failed_count: int = 0
    created_references: dict[PendingId, str] = field(default_factory=dict)
    reference_failures: dict[str, str] = field(default_factory=dict)

    @property
    def failures(self) -> list[RowOutcome]:
        return [o for o in self.outcomes if not o.success]

    @property
    def attempted(self) -> int:
        return self.created_count + self.updated_count + self.failed_count
