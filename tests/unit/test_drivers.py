from __future__ import annotations

from typing import Any, List

import pytest

from alloydb_bootstrap.exceptions import DriverRegistrationError
from alloydb_bootstrap.infrastructure import drivers
from alloydb_bootstrap.infrastructure.drivers import (
    DRIVER_NAME,
    AlloyDBDriver,
    close_drivers,
    get_driver,
    register_driver,
    registered_drivers,
    unregister_driver,
)

KEY_FILE = "/var/secrets/alloydb-key.json"


class _FakeConnector:
    instances: List["_FakeConnector"] = []

    def __init__(self, credentials: Any) -> None:
        self.credentials = credentials
        self.closed = False
        self.connect_calls: List[Any] = []
        _FakeConnector.instances.append(self)

    def connect(self, instance_uri: str, driver: str, **kwargs: Any) -> object:
        self.connect_calls.append((instance_uri, driver, kwargs))
        return object()

    def close(self) -> None:
        self.closed = True


@pytest.fixture
def fake_credentials(monkeypatch):
    loaded = []

    def _load(credentials_file):
        loaded.append(credentials_file)
        return {"file": credentials_file}

    monkeypatch.setattr(drivers, "load_credentials", _load)
    _FakeConnector.instances = []
    return loaded


def test_register_driver_builds_connector_from_key_file(fake_credentials):
    driver = register_driver(DRIVER_NAME, KEY_FILE, connector_factory=_FakeConnector)

    assert isinstance(driver, AlloyDBDriver)
    assert fake_credentials == [KEY_FILE]
    assert _FakeConnector.instances[0].credentials == {"file": KEY_FILE}
    assert get_driver(DRIVER_NAME) is driver
    assert registered_drivers() == [DRIVER_NAME]


def test_register_driver_is_idempotent_for_same_key_file(fake_credentials):
    first = register_driver(DRIVER_NAME, KEY_FILE, connector_factory=_FakeConnector)
    second = register_driver(DRIVER_NAME, KEY_FILE, connector_factory=_FakeConnector)

    assert first is second
    assert len(_FakeConnector.instances) == 1


def test_register_driver_rejects_other_key_file_under_same_name(fake_credentials):
    register_driver(DRIVER_NAME, KEY_FILE, connector_factory=_FakeConnector)

    with pytest.raises(DriverRegistrationError, match="different credentials file"):
        register_driver(DRIVER_NAME, "/tmp/other.json", connector_factory=_FakeConnector)


def test_missing_key_file_is_registration_error(tmp_path):
    missing = tmp_path / "absent.json"

    with pytest.raises(DriverRegistrationError) as excinfo:
        register_driver(DRIVER_NAME, str(missing), connector_factory=_FakeConnector)

    assert isinstance(excinfo.value.__cause__, FileNotFoundError)
    assert get_driver(DRIVER_NAME) is None


def test_malformed_key_file_is_registration_error(tmp_path):
    key_file = tmp_path / "key.json"
    key_file.write_text("not json", encoding="utf-8")

    with pytest.raises(DriverRegistrationError, match="failed to register alloydb driver"):
        register_driver(DRIVER_NAME, str(key_file), connector_factory=_FakeConnector)


@pytest.mark.parametrize("content", ["[]", "42", '"key"'])
def test_key_file_that_is_not_an_object_is_registration_error(tmp_path, content):
    key_file = tmp_path / "key.json"
    key_file.write_text(content, encoding="utf-8")

    with pytest.raises(DriverRegistrationError, match="failed to register alloydb driver"):
        register_driver(DRIVER_NAME, str(key_file), connector_factory=_FakeConnector)
    assert get_driver(DRIVER_NAME) is None


def test_driver_connects_through_pg8000(fake_credentials):
    driver = register_driver(DRIVER_NAME, KEY_FILE, connector_factory=_FakeConnector)

    driver.connect("projects/p/locations/r/clusters/c/instances/i", "app", "pw", "appdb")

    assert _FakeConnector.instances[0].connect_calls == [
        (
            "projects/p/locations/r/clusters/c/instances/i",
            "pg8000",
            {"user": "app", "password": "pw", "db": "appdb"},
        )
    ]


def test_unregister_driver_closes_connector(fake_credentials):
    register_driver(DRIVER_NAME, KEY_FILE, connector_factory=_FakeConnector)

    unregister_driver(DRIVER_NAME)

    assert _FakeConnector.instances[0].closed
    assert get_driver(DRIVER_NAME) is None


def test_close_drivers_closes_every_connector(fake_credentials):
    register_driver("primary", KEY_FILE, connector_factory=_FakeConnector)
    register_driver("replica", KEY_FILE, connector_factory=_FakeConnector)

    close_drivers()

    assert all(connector.closed for connector in _FakeConnector.instances)
    assert registered_drivers() == []
