"""
Infrastructure package for AlloyDB bootstrap.

Centralizes database connectivity concerns (driver registry, pool tuning, the
connection factory). Keep this layer focused on I/O and resource management.
"""

from alloydb_bootstrap.infrastructure.db_factory import (
    ConnectionFactory,
    Database,
    close_db,
    get_db,
    init_db,
)

__all__ = [
    "ConnectionFactory",
    "Database",
    "close_db",
    "get_db",
    "init_db",
]
