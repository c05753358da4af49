"""
Named database driver registry.

A driver wraps an AlloyDB `Connector` built from a service account key file. The
connector handles TLS and IAM authorization to the instance; the driver only
hands out pg8000 DBAPI connections through it. Registration is process-wide,
guarded by a lock, and idempotent for the same name and credentials file.
Connectors are closed on interpreter exit.
"""

from __future__ import annotations

import atexit
import threading
from typing import Any, Callable, Dict, List, Optional

from google.auth.exceptions import GoogleAuthError
from google.cloud.alloydb.connector import Connector
from google.oauth2 import service_account

from alloydb_bootstrap.exceptions import DriverRegistrationError
from alloydb_bootstrap.utils.logging import get_logger

log = get_logger(__name__)

DRIVER_NAME = "alloydb"
DBAPI_DRIVER = "pg8000"
CLOUD_PLATFORM_SCOPE = "https://www.googleapis.com/auth/cloud-platform"

ConnectorFactory = Callable[..., Any]


class AlloyDBDriver:
    """
    Opens DBAPI connections to AlloyDB instances through a connector.

    Parameters
    ----------
    name : str
        Registry name of the driver.
    connector : Connector
        Connector holding the credentials used for every connection.
    credentials_file : str
        Key file the connector was built from.
    """

    def __init__(self, name: str, connector: Any, credentials_file: str) -> None:
        self.name = name
        self.credentials_file = credentials_file
        self._connector = connector

    def connect(self, instance_uri: str, user: str, password: str, db: str) -> Any:
        return self._connector.connect(
            instance_uri,
            DBAPI_DRIVER,
            user=user,
            password=password,
            db=db,
        )

    def close(self) -> None:
        self._connector.close()


_drivers: Dict[str, AlloyDBDriver] = {}
_lock = threading.Lock()


def load_credentials(credentials_file: str) -> service_account.Credentials:
    """Load service account credentials scoped for Cloud APIs."""
    return service_account.Credentials.from_service_account_file(
        credentials_file, scopes=[CLOUD_PLATFORM_SCOPE]
    )


def register_driver(
    name: str,
    credentials_file: str,
    connector_factory: ConnectorFactory = Connector,
) -> AlloyDBDriver:
    """
    Register an AlloyDB driver under `name`.

    Registering the same name again with the same key file returns the driver
    already registered.

    Raises
    ------
    DriverRegistrationError
        If the name is taken by a driver built from another key file, or the
        credentials/connector cannot be created.
    """
    with _lock:
        existing = _drivers.get(name)
        if existing is not None:
            if existing.credentials_file != credentials_file:
                raise DriverRegistrationError(
                    f"driver {name!r} already registered with a different credentials file"
                )
            log.debug("Driver already registered", extra={"driver": name})
            return existing

        try:
            credentials = load_credentials(credentials_file)
            connector = connector_factory(credentials=credentials)
        # A key file holding valid JSON of the wrong shape fails with
        # AttributeError/TypeError inside google-auth.
        except (OSError, ValueError, TypeError, AttributeError, GoogleAuthError) as exc:
            raise DriverRegistrationError(exc) from exc

        driver = AlloyDBDriver(name, connector, credentials_file)
        _drivers[name] = driver
        log.info("Driver registered", extra={"driver": name})
        return driver


def get_driver(name: str) -> Optional[AlloyDBDriver]:
    with _lock:
        return _drivers.get(name)


def registered_drivers() -> List[str]:
    with _lock:
        return sorted(_drivers)


def unregister_driver(name: str) -> None:
    """Remove a driver from the registry and close its connector."""
    with _lock:
        driver = _drivers.pop(name, None)
    if driver is not None:
        driver.close()


def close_drivers() -> None:
    """
    Close every registered connector and empty the registry.

    Called automatically on exit via atexit hook.
    """
    with _lock:
        drivers = list(_drivers.values())
        _drivers.clear()
    for driver in drivers:
        driver.close()


atexit.register(close_drivers)


__all__ = [
    "AlloyDBDriver",
    "DRIVER_NAME",
    "close_drivers",
    "get_driver",
    "load_credentials",
    "register_driver",
    "registered_drivers",
    "unregister_driver",
]
