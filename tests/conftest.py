"""
Shared pytest fixtures for the SteamWatch test suite.
"""
from datetime import datetime

import pytest

from steamwatch import storage
from steamwatch.errors import FetchError
from steamwatch.models import PriceObservation
from steamwatch.state import PriceStateStore

from tests.pages import GAME_URL, FakeSite


@pytest.fixture
def db(tmp_path, monkeypatch):
    """Fresh SQLite database in a temp dir."""
    monkeypatch.setenv("DB_PATH", str(tmp_path / "test.db"))
    storage.init_db()
    return tmp_path / "test.db"


@pytest.fixture
def fake_site():
    return FakeSite()


@pytest.fixture
def state_store(db):
    return PriceStateStore()


@pytest.fixture
def make_product(db):
    """Insert a product directly, as if it had just been added."""
    def _make(url=GAME_URL, base=100.0, discount=None, title="Portal 2"):
        return storage.insert_product(
            url=url,
            title=title,
            observation=PriceObservation(base_price=base, discount_price=discount),
            checked_at=datetime(2024, 1, 1, 12, 0),
        )
    return _make


@pytest.fixture
def fetch_error():
    return FetchError("connection timed out")
