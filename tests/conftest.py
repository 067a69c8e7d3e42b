"""
Shared pytest fixtures for async key-value store tests.

SQLite-backed tests always run against a database file in a temporary
directory. The same tests run against PostgreSQL when SQLKV_TEST_POSTGRES
is set; connection parameters come from the usual PG* variables.
"""

import os
import tempfile
import uuid

import pytest
import pytest_asyncio

from sqlkv.engine.store import Store
from sqlkv.models.config import SQLITE, StoreConfig

POSTGRES_ENABLED = bool(os.environ.get("SQLKV_TEST_POSTGRES"))


@pytest.fixture
def temp_dir():
    """Provide a temporary directory that is cleaned up after test."""
    with tempfile.TemporaryDirectory() as tmpdir:
        yield tmpdir


@pytest.fixture
def sqlite_config(temp_dir):
    """Provide a factory for sqlite configs sharing one database file."""

    def factory(**overrides) -> StoreConfig:
        overrides.setdefault("table", f"kv_{uuid.uuid4().hex[:12]}")
        return StoreConfig(
            backend=SQLITE,
            database=os.path.join(temp_dir, "store.db"),
            **overrides,
        )

    return factory


@pytest.fixture(params=["sqlite", "postgres"])
def make_config(request, sqlite_config):
    """Provide a config factory for every enabled backend."""
    if request.param == "sqlite":
        return sqlite_config

    if not POSTGRES_ENABLED:
        pytest.skip("set SQLKV_TEST_POSTGRES=1 to run against PostgreSQL")

    def factory(**overrides) -> StoreConfig:
        table = overrides.pop("table", f"kv_{uuid.uuid4().hex[:12]}")
        return StoreConfig.from_env(table, **overrides)

    return factory


@pytest_asyncio.fixture
async def store(make_config):
    """Provide an opened Store; the table is dropped afterwards."""
    config = make_config()
    async with Store(config) as s:
        yield s
    await Store.destroy(config)


@pytest_asyncio.fixture
async def small_fetch_store(make_config):
    """Provide a Store fetching one row per cursor round-trip."""
    config = make_config(fetch_size=1)
    async with Store(config) as s:
        yield s
    await Store.destroy(config)


@pytest.fixture
def sample_keys():
    """Provide keys from the range examples."""
    return ["a", "aa", "ab", "ac"]
