"""
Database connection factory for AlloyDB bootstrap.

`ConnectionFactory` turns a `Settings` object into a verified, pooled `Database`
handle: register the AlloyDB driver, tune the pool, open the engine, ping, wrap
in an ORM session factory. Each stage failure surfaces as its own
`InitializationError` subclass; nothing is retried.

For code that prefers a process-wide handle, `init_db` / `get_db` keep a single
`Database` in a thread-safe `DatabaseManager`, disposed on application exit.
"""

from __future__ import annotations

import atexit
import threading
from dataclasses import dataclass
from typing import Any, Callable, Optional

from sqlalchemy import create_engine, text
from sqlalchemy.engine import URL, Engine
from sqlalchemy.orm import Session, sessionmaker

from alloydb_bootstrap.config import Settings, get_settings
from alloydb_bootstrap.exceptions import (
    ConnectionOpenError,
    DriverRegistrationError,
    OrmWrapError,
    PingError,
    PoolConfigurationError,
)
from alloydb_bootstrap.infrastructure.drivers import DRIVER_NAME, register_driver
from alloydb_bootstrap.infrastructure.pool import (
    PoolOptions,
    apply_pool_settings,
    install_idle_timeout,
)
from alloydb_bootstrap.utils.logging import get_logger

log = get_logger(__name__)

DriverFactory = Callable[[str, str], Any]
EngineFactory = Callable[..., Engine]


@dataclass(frozen=True)
class Database:
    """
    A live, pooled database connection and its ORM session factory.

    The engine owns the connection pool and is safe to share across threads;
    sessions are not, so create one per unit of work.
    """

    engine: Engine
    session_factory: sessionmaker

    def session(self) -> Session:
        return self.session_factory()

    def dispose(self) -> None:
        """Close every pooled connection."""
        self.engine.dispose()


def build_url(settings: Settings) -> URL:
    """
    Build the engine URL.

    The connector supplies the socket and credentials through the engine's
    creator, so the URL only selects the dialect and names the user and database.
    """
    return URL.create(
        drivername="postgresql+pg8000",
        username=settings.db_user,
        database=settings.db_name,
    )


class ConnectionFactory:
    """
    Builds a `Database` from settings.

    Parameters
    ----------
    settings : Settings
        Resolved configuration.
    driver_factory : callable, optional
        `(name, credentials_file) -> driver`; the driver must expose
        `connect(instance_uri, user, password, db)`. Defaults to `register_driver`.
    engine_factory : callable, optional
        Same signature as `sqlalchemy.create_engine`.
    """

    def __init__(
        self,
        settings: Settings,
        driver_factory: DriverFactory = register_driver,
        engine_factory: EngineFactory = create_engine,
    ) -> None:
        self._settings = settings
        self._driver_factory = driver_factory
        self._engine_factory = engine_factory

    def create(self) -> Database:
        """
        Run every initialization stage and return the verified handle.

        Raises
        ------
        DriverRegistrationError, PoolConfigurationError, ConnectionOpenError,
        PingError, OrmWrapError
            Depending on the stage that failed.
        """
        settings = self._settings
        try:
            driver = self._driver_factory(DRIVER_NAME, settings.db_cert_path)
        except DriverRegistrationError:
            raise
        except Exception as exc:
            raise DriverRegistrationError(exc) from exc

        try:
            pool = PoolOptions()
            applied = apply_pool_settings(settings, pool)
            engine_kwargs = pool.engine_kwargs()
        except (TypeError, ValueError, OverflowError) as exc:
            raise PoolConfigurationError(exc) from exc
        if applied:
            log.info("Pool overrides applied", extra={"pool_overrides": applied})

        def creator() -> Any:
            return driver.connect(
                settings.db_host,
                settings.db_user,
                settings.db_pass.get_secret_value(),
                settings.db_name,
            )

        url = build_url(settings)
        try:
            engine = self._engine_factory(url, creator=creator, **engine_kwargs)
            install_idle_timeout(engine, pool.conn_max_idle_time)
        except Exception as exc:
            raise ConnectionOpenError(exc) from exc

        try:
            self.ping(engine)
        except Exception as exc:
            engine.dispose()
            raise PingError(exc) from exc

        try:
            session_factory = sessionmaker(bind=engine, expire_on_commit=False)
        except Exception as exc:
            engine.dispose()
            raise OrmWrapError(exc) from exc

        log.info(
            "Database initialized",
            extra={"url": url.render_as_string(hide_password=True), "instance": settings.db_host},
        )
        return Database(engine=engine, session_factory=session_factory)

    @staticmethod
    def ping(engine: Engine) -> None:
        with engine.connect() as conn:
            conn.execute(text("SELECT 1"))


class DatabaseManager:
    """
    Thread-safe singleton holding the process-wide `Database`.

    Initialization runs at most once; the handle is stored only after every
    stage succeeded. Disposed automatically via atexit hook.
    """

    _instance: Optional["DatabaseManager"] = None
    _lock = threading.Lock()

    def __new__(cls) -> "DatabaseManager":
        """Create or return the singleton instance."""
        with cls._lock:
            if cls._instance is None:
                cls._instance = super().__new__(cls)
                cls._instance._database = None
                cls._instance._init_lock = threading.Lock()
                atexit.register(cls._instance.close)
            return cls._instance

    @property
    def database(self) -> Optional[Database]:
        return self._database

    def initialize(
        self,
        settings: Optional[Settings] = None,
        factory: Optional[ConnectionFactory] = None,
    ) -> Database:
        """
        Initialize the process-wide handle, or return it if already initialized.

        Raises
        ------
        ConfigurationError
            If settings are not given and cannot be loaded from the environment.
        InitializationError
            If a factory stage fails; the stored handle is left untouched.
        """
        with self._init_lock:
            if self._database is not None:
                return self._database
            if factory is None:
                factory = ConnectionFactory(settings or get_settings())
            self._database = factory.create()
            return self._database

    def close(self) -> None:
        """
        Dispose the process-wide handle and forget it.

        This is called automatically on exit via atexit hook.
        """
        with self._init_lock:
            database, self._database = self._database, None
        if database is not None:
            database.dispose()


def init_db(
    settings: Optional[Settings] = None,
    factory: Optional[ConnectionFactory] = None,
) -> Database:
    """Initialize the process-wide database handle via DatabaseManager."""
    return DatabaseManager().initialize(settings=settings, factory=factory)


def get_db() -> Optional[Database]:
    """
    Return the process-wide handle, or None before a successful `init_db`.
    """
    return DatabaseManager().database


def close_db() -> None:
    DatabaseManager().close()


__all__ = [
    "ConnectionFactory",
    "Database",
    "DatabaseManager",
    "build_url",
    "close_db",
    "get_db",
    "init_db",
]
