"""
AlloyDB bootstrap - pooled, verified database connections for Cloud AlloyDB.

Reads connection settings from the environment, registers the AlloyDB connector
as a named driver, opens a SQLAlchemy engine with optional pool tuning, pings it,
and hands back an ORM-ready `Database` handle.
"""

from __future__ import annotations

__version__ = "1.0.0"
__license__ = "MIT"


def get_version() -> str:
    """Return the package version."""
    return __version__


# Public API exports
from alloydb_bootstrap.config import Settings, get_settings, load_settings  # noqa: E402
from alloydb_bootstrap.exceptions import (  # noqa: E402
    ConfigurationError,
    InitializationError,
)
from alloydb_bootstrap.infrastructure.db_factory import (  # noqa: E402
    ConnectionFactory,
    Database,
    close_db,
    get_db,
    init_db,
)
from alloydb_bootstrap.utils.logging import configure_logging, get_logger  # noqa: E402

__all__ = [
    # Version info
    "__version__",
    "__license__",
    "get_version",
    # Configuration
    "Settings",
    "get_settings",
    "load_settings",
    # Errors
    "ConfigurationError",
    "InitializationError",
    # Connection factory
    "ConnectionFactory",
    "Database",
    "init_db",
    "get_db",
    "close_db",
    # Logging
    "configure_logging",
    "get_logger",
]
