"""
Utilities package for AlloyDB bootstrap.

Exports shared helpers for cross-cutting concerns. Keep this package lightweight
and free of database logic.
"""

from alloydb_bootstrap.utils.logging import configure_logging, get_logger

__all__ = [
    "configure_logging",
    "get_logger",
]
