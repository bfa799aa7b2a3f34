"""Shared test fixtures."""

import json
import shutil
from pathlib import Path

import pytest

from clubimport.reader import read_sheet
from clubimport.store import InMemoryRepository


DATA_DIR = Path(__file__).resolve().parent.parent / 'data'


@pytest.fixture(scope='session')
def data_dir() -> Path:
    """Path to the data directory."""
    return DATA_DIR


@pytest.fixture(scope='session')
def sample_sheet():
    """The parsed trainees.csv sample sheet."""
    return read_sheet(DATA_DIR / 'trainees.csv')


@pytest.fixture
def store_tables() -> dict:
    """Fresh copy of the tables in store.json."""
    with open(DATA_DIR / 'store.json', encoding='utf-8') as f:
        return json.load(f)


@pytest.fixture
def repository(store_tables) -> InMemoryRepository:
    """In-memory repository seeded from store.json."""
    return InMemoryRepository(store_tables)


@pytest.fixture
def reference_snapshot(store_tables) -> dict:
    """Reference snapshot as read at wizard start."""
    return {t: store_tables[t] for t in ('trainers', 'halls', 'classes')}


@pytest.fixture
def store_path(tmp_path) -> Path:
    """Writable copy of store.json."""
    path = tmp_path / 'store.json'
    shutil.copy(DATA_DIR / 'store.json', path)
    return path
