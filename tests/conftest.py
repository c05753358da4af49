"""
Pytest configuration for AlloyDB bootstrap.

Provides fixtures for:
- An isolated environment (no DB_* variables, no cached settings, no handle)
- Required connection settings
- A fake AlloyDB driver backed by a sqlite file, and a matching engine factory
"""

from __future__ import annotations

import os
import sqlite3
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple

import pytest
from sqlalchemy import create_engine
from sqlalchemy.engine import Engine

from alloydb_bootstrap.config import Settings, get_settings
from alloydb_bootstrap.infrastructure.db_factory import ConnectionFactory, close_db
from alloydb_bootstrap.infrastructure.drivers import close_drivers

REQUIRED_ENV: Dict[str, str] = {
    "DB_HOST": "projects/demo/locations/us-central1/clusters/main/instances/primary",
    "DB_USER": "app",
    "DB_PASS": "s3cret",
    "DB_NAME": "appdb",
    "DB_CERT_PATH": "/var/secrets/alloydb-key.json",
}

_MANAGED_PREFIXES = ("DB_", "LOG_")


@pytest.fixture(autouse=True)
def isolated_env(monkeypatch: pytest.MonkeyPatch, tmp_path: Path):
    """
    Strip configuration from the environment and reset process-wide state.

    Runs from a temporary directory so a developer's `.env` is never read.
    """
    for key in list(os.environ):
        if key.startswith(_MANAGED_PREFIXES):
            monkeypatch.delenv(key, raising=False)
    monkeypatch.chdir(tmp_path)
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()
    close_db()
    close_drivers()


@pytest.fixture
def required_env(monkeypatch: pytest.MonkeyPatch) -> Dict[str, str]:
    for key, value in REQUIRED_ENV.items():
        monkeypatch.setenv(key, value)
    return dict(REQUIRED_ENV)


def make_settings(**env: str) -> Settings:
    """Settings built from the required values plus `env` overrides, by env name."""
    values: Dict[str, Any] = {**REQUIRED_ENV, **env}
    return Settings(**values)


@pytest.fixture
def settings_for():
    """Factory fixture: `settings_for(DB_MAX_IDLE_CONNS="10")`."""
    return make_settings


class FakeDriver:
    """
    Stands in for the AlloyDB driver: connections go to a sqlite file.

    Set `error` to make every connect attempt fail with it.
    """

    def __init__(self, path: Path, error: Optional[Exception] = None) -> None:
        self.path = path
        self.error = error
        self.connect_calls: List[Tuple[str, str, str, str]] = []

    def connect(self, instance_uri: str, user: str, password: str, db: str) -> sqlite3.Connection:
        self.connect_calls.append((instance_uri, user, password, db))
        if self.error is not None:
            raise self.error
        return sqlite3.connect(str(self.path), check_same_thread=False)


class RecordingDriverFactory:
    def __init__(self, driver: FakeDriver) -> None:
        self.driver = driver
        self.calls: List[Tuple[str, str]] = []

    def __call__(self, name: str, credentials_file: str) -> FakeDriver:
        self.calls.append((name, credentials_file))
        return self.driver


class SqliteEngineFactory:
    """`create_engine` stand-in that keeps the pool arguments but talks sqlite."""

    def __init__(self) -> None:
        self.calls: List[Dict[str, Any]] = []

    def __call__(self, url: Any, **kwargs: Any) -> Engine:
        self.calls.append({"url": url, **kwargs})
        return create_engine("sqlite://", **kwargs)


@pytest.fixture
def fake_driver(tmp_path: Path) -> FakeDriver:
    return FakeDriver(tmp_path / "alloydb.sqlite")


@pytest.fixture
def driver_factory(fake_driver: FakeDriver) -> RecordingDriverFactory:
    return RecordingDriverFactory(fake_driver)


@pytest.fixture
def engine_factory() -> SqliteEngineFactory:
    return SqliteEngineFactory()


@pytest.fixture
def make_factory(driver_factory: RecordingDriverFactory, engine_factory: SqliteEngineFactory):
    """Build a ConnectionFactory wired to the fake driver and sqlite engines."""

    def _make(settings: Settings) -> ConnectionFactory:
        return ConnectionFactory(
            settings,
            driver_factory=driver_factory,
            engine_factory=engine_factory,
        )

    return _make
