"""
Error taxonomy for AlloyDB bootstrap.

Two families:
- `ConfigurationError`: required settings are missing or malformed. Raised before
  any connection work happens; callers usually abort.
- `InitializationError`: one stage of the connection factory failed. Each subclass
  names its stage and chains the underlying cause.
"""

from __future__ import annotations

from typing import Iterable, Sequence, Tuple


class BootstrapError(Exception):
    """Base class for every error raised by this package."""


class ConfigurationError(BootstrapError):
    """
    Configuration could not be resolved from the environment.

    Attributes
    ----------
    missing : tuple of str
        Environment variable names that were absent or empty.
    invalid : tuple of str
        Environment variable names whose values could not be parsed.
    """

    def __init__(self, missing: Iterable[str] = (), invalid: Iterable[str] = ()) -> None:
        self.missing: Tuple[str, ...] = tuple(missing)
        self.invalid: Tuple[str, ...] = tuple(invalid)
        super().__init__(self._describe(self.missing, self.invalid))

    @staticmethod
    def _describe(missing: Sequence[str], invalid: Sequence[str]) -> str:
        parts = []
        if len(missing) == 1:
            parts.append(f"{missing[0]} environment variable not set.")
        elif missing:
            parts.append(f"{', '.join(missing)} environment variables not set.")
        for name in invalid:
            parts.append(f"{name} environment variable is not a valid integer.")
        return " ".join(parts) or "Invalid configuration."


class InitializationError(BootstrapError):
    """A stage of database initialization failed."""

    stage: str = "initialize database"

    def __init__(self, detail: object) -> None:
        self.detail = detail
        super().__init__(f"failed to {self.stage}: {detail}")


class DriverRegistrationError(InitializationError):
    stage = "register alloydb driver"


class PoolConfigurationError(InitializationError):
    stage = "configure connection pool"


class ConnectionOpenError(InitializationError):
    stage = "open database"


class PingError(InitializationError):
    stage = "ping database"


class OrmWrapError(InitializationError):
    stage = "create orm session factory"


__all__ = [
    "BootstrapError",
    "ConfigurationError",
    "InitializationError",
    "DriverRegistrationError",
    "PoolConfigurationError",
    "ConnectionOpenError",
    "PingError",
    "OrmWrapError",
]
