"""Persistence collaborators: repository protocol, in-memory and JSON-file stores."""

import copy
import json
import logging
import os
import tempfile
from pathlib import Path
from typing import Any, Iterable, Optional, Protocol

from clubimport.errors import RepositoryError

log = logging.getLogger(__name__)


class Repository(Protocol):
    """Generic CRUD repository addressed by table name."""

    def select(self, table: str) -> list[dict[str, Any]]: ...

    def insert(self, table: str, record: dict[str, Any]) -> dict[str, Any]: ...

    def update(self, table: str, record_id: str, record: dict[str, Any]) -> None: ...

    def find_by(self, table: str, field: str, value: Any) -> Optional[dict[str, Any]]: ...


class InMemoryRepository:
    """Dictionary-backed repository with sequential ids and unique constraints.

    Args:
        tables: Initial rows keyed by table name. Rows are copied.
        unique: Field names that must stay unique, keyed by table name.
    """

    def __init__(
        self,
        tables: Optional[dict[str, list[dict[str, Any]]]] = None,
        unique: Optional[dict[str, Iterable[str]]] = None,
    ):
        self.tables: dict[str, list[dict[str, Any]]] = {
            name: [dict(r) for r in rows] for name, rows in (tables or {}).items()
        }
        self.unique = {name: tuple(fields) for name, fields in (unique or {}).items()}
        self._counter = sum(len(rows) for rows in self.tables.values())

    def select(self, table: str) -> list[dict[str, Any]]:
        return [dict(r) for r in self.tables.get(table, [])]

    def find_by(self, table: str, field: str, value: Any) -> Optional[dict[str, Any]]:
        for row in self.tables.get(table, []):
            if row.get(field) == value:
                return dict(row)
        return None

    def _check_unique(self, table: str, record: dict[str, Any], skip_id: Optional[str] = None) -> None:
        for field in self.unique.get(table, ()):
            value = record.get(field)
            if value in (None, ''):
                continue
            for row in self.tables.get(table, []):
                if row.get('id') != skip_id and row.get(field) == value:
                    raise RepositoryError(
                        f"duplicate value for {table}.{field}: {value!r}"
                    )

    def insert(self, table: str, record: dict[str, Any]) -> dict[str, Any]:
        self._check_unique(table, record)
        row = dict(record)
        if not row.get('id'):
            self._counter += 1
            row['id'] = f"{table}-{self._counter}"
        elif self.find_by(table, 'id', row['id']) is not None:
            raise RepositoryError(f"duplicate id for {table}: {row['id']!r}")
        self.tables.setdefault(table, []).append(row)
        return {'id': row['id']}

    def update(self, table: str, record_id: str, record: dict[str, Any]) -> None:
        for row in self.tables.get(table, []):
            if row.get('id') == record_id:
                self._check_unique(table, record, skip_id=record_id)
                row.update({k: v for k, v in record.items() if k != 'id'})
                return
        raise RepositoryError(f"no {table} row with id {record_id!r}")


class JsonFileRepository(InMemoryRepository):
    """InMemoryRepository persisted to a JSON document after every write.

    The document maps table names to lists of rows. A missing file starts
    an empty store. The document is replaced atomically; a write that
    cannot be saved is undone in memory and raised as RepositoryError.
    """

    def __init__(self, path: str | Path, unique: Optional[dict[str, Iterable[str]]] = None):
        self.path = Path(path)
        tables: dict[str, list[dict[str, Any]]] = {}
        if self.path.exists():
            with open(self.path, 'r', encoding='utf-8') as f:
                tables = json.load(f)
            log.info("Store loaded from %s", self.path)
        super().__init__(tables, unique)

    def save(self) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp_name = tempfile.mkstemp(dir=self.path.parent, prefix=self.path.name, suffix='.tmp')
        try:
            with os.fdopen(fd, 'w', encoding='utf-8') as f:
                # Dates and other non-JSON values are written as strings
                json.dump(self.tables, f, ensure_ascii=False, indent=2, default=str,
                          allow_nan=False)
            os.replace(tmp_name, self.path)
        except Exception:
            if os.path.exists(tmp_name):
                os.unlink(tmp_name)
            raise

    def _persist(self, before: dict[str, list[dict[str, Any]]], counter: int) -> None:
        try:
            self.save()
        except (OSError, ValueError) as exc:
            self.tables = before
            self._counter = counter
            raise RepositoryError(f"cannot save {self.path}: {exc}") from exc

    def insert(self, table: str, record: dict[str, Any]) -> dict[str, Any]:
        before, counter = copy.deepcopy(self.tables), self._counter
        result = super().insert(table, record)
        self._persist(before, counter)
        return result

    def update(self, table: str, record_id: str, record: dict[str, Any]) -> None:
        before, counter = copy.deepcopy(self.tables), self._counter
        super().update(table, record_id, record)
        self._persist(before, counter)


def load_reference_data(
    repository: Repository,
    tables: Iterable[str] = ('trainers', 'halls', 'classes'),
) -> dict[str, list[dict[str, Any]]]:
    """Read a snapshot of the reference tables used for foreign-key matching."""
    snapshot = {table: repository.select(table) for table in tables}
    log.info(
        "Reference snapshot loaded: %s",
        ', '.join(f"{t}={len(rows)}" for t, rows in snapshot.items()),
    )
    return snapshot
