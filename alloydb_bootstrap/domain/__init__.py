"""
Domain package for AlloyDB bootstrap.

Exports the ORM base and the example model used by the demo command.
"""

from alloydb_bootstrap.domain.models import Base, User

__all__ = [
    "Base",
    "User",
]
