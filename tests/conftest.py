"""
Shared pytest fixtures for bracket tests.

Running tests:
    pytest tests/
"""
import pytest
import random
import sys
import os

# Add src directory to path for imports
sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..', 'src'))

from bracket.models import Participant
from store import YamlRowStore, StoreError

SCOPE_ID = 'sub-1'

# Alternating associations so every group in an in-order draw is a pair
EIGHT_PLAYERS = [
    {'id': f'p{i}', 'name': f'Player {i}', 'association': 'North' if i % 2 else 'South', 'weight': 60 + i}
    for i in range(1, 9)
]


class InOrderRandom(random.Random):
    """Random source whose shuffle leaves the list untouched."""

    def shuffle(self, x, *args, **kwargs):
        return None


class FailingStore(YamlRowStore):
    """YAML store that rejects inserts into chosen tables."""

    def __init__(self, data_dir, failing_tables):
        super().__init__(data_dir)
        self.failing_tables = set(failing_tables)

    def insert(self, table, rows):
        if table in self.failing_tables:
            raise StoreError(f'insert into {table} rejected')
        return super().insert(table, rows)


@pytest.fixture
def in_order_rng():
    return InOrderRandom()


@pytest.fixture
def make_players():
    """Build Participant objects from a list of association names."""
    def _make(associations):
        return [
            Participant(id=f'p{i}', name=f'Player {i}', association=association)
            for i, association in enumerate(associations, start=1)
        ]
    return _make


@pytest.fixture
def store(tmp_path):
    return YamlRowStore(str(tmp_path / 'data'))


@pytest.fixture
def seeded_store(store):
    """Store with a titled scope and eight registered participants."""
    store.insert('scopes', [{'id': SCOPE_ID, 'title': 'Under 66kg', 'kind': 'sub_event', 'parent_id': 'event-1'}])
    store.insert('participants', [{'scope_id': SCOPE_ID, **row} for row in EIGHT_PLAYERS])
    return store


@pytest.fixture
def failing_store_factory(tmp_path):
    def _make(*tables):
        return FailingStore(str(tmp_path / 'data'), tables)
    return _make


@pytest.fixture
def client(seeded_store):
    """Flask test client wired to the seeded YAML store."""
    from app import app
    app.config['TESTING'] = True
    app.config['BRACKET_STORE'] = seeded_store
    with app.test_client() as client:
        yield client
    app.config['BRACKET_STORE'] = None
