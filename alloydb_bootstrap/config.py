"""
Configuration settings for AlloyDB bootstrap.

Uses Pydantic Settings to load the connection parameters and pool-tuning knobs
from environment variables (or a `.env` file). Required values that are absent or
empty surface as a `ConfigurationError` naming the offending variables; the
caller decides whether that is fatal.
"""
from __future__ import annotations

from datetime import timedelta
from functools import lru_cache
from typing import Any, Dict, List

from pydantic import Field, SecretStr, ValidationError, ValidationInfo, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from alloydb_bootstrap.exceptions import ConfigurationError

# Documented pool defaults. A pool setting is only pushed to the pool when it
# differs from these.
DEFAULT_MAX_OPEN_CONNS = 0  # unlimited
DEFAULT_MAX_IDLE_CONNS = 2
DEFAULT_CONN_MAX_LIFETIME_MINUTES = 0  # unlimited
DEFAULT_CONN_MAX_IDLE_TIME_MINUTES = 0  # unlimited

REQUIRED_FIELDS = ("db_host", "db_user", "db_pass", "db_name", "db_cert_path")
POOL_FIELDS = ("max_open_conns", "max_idle_conns", "conn_max_lifetime", "conn_max_idle_time")


class Settings(BaseSettings):
    # Connection (required)
    db_host: str = Field(..., alias="DB_HOST", description="AlloyDB instance URI.")
    db_user: str = Field(..., alias="DB_USER")
    db_pass: SecretStr = Field(..., alias="DB_PASS")
    db_name: str = Field(..., alias="DB_NAME")
    db_cert_path: str = Field(..., alias="DB_CERT_PATH", description="Service account key file.")

    # Must stay declared before the pool fields: their validator reads it.
    strict_parsing: bool = Field(True, alias="DB_STRICT_PARSING")

    # Pool tuning (optional)
    max_open_conns: int = Field(DEFAULT_MAX_OPEN_CONNS, alias="DB_MAX_OPEN_CONNS")
    max_idle_conns: int = Field(DEFAULT_MAX_IDLE_CONNS, alias="DB_MAX_IDLE_CONNS")
    conn_max_lifetime: int = Field(
        DEFAULT_CONN_MAX_LIFETIME_MINUTES,
        alias="DB_CONN_MAX_LIFETIME",
        description="Minutes; 0 means connections are never recycled.",
    )
    conn_max_idle_time: int = Field(
        DEFAULT_CONN_MAX_IDLE_TIME_MINUTES,
        alias="DB_CONN_MAX_IDLE_TIME",
        description="Minutes; 0 means idle connections never expire.",
    )

    # Application
    log_level: str = Field("INFO", alias="LOG_LEVEL")
    log_json: bool = Field(False, alias="LOG_JSON")

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        frozen=True,
        populate_by_name=True,
    )

    @field_validator(*REQUIRED_FIELDS, mode="before")
    @classmethod
    def _reject_empty(cls, value: Any) -> Any:
        if value is None or (isinstance(value, str) and value == ""):
            raise ValueError("value is empty")
        return value

    @field_validator(*POOL_FIELDS, mode="before")
    @classmethod
    def _parse_pool_number(cls, value: Any, info: ValidationInfo) -> Any:
        """
        Parse a pool-tuning number from its environment text.

        Empty text means "use the default". Malformed text is rejected in strict
        mode and resolves to 0 otherwise.
        """
        if value is None or value == "":
            return cls.model_fields[info.field_name].default
        if isinstance(value, int) and not isinstance(value, bool):
            return value
        try:
            return int(value)
        except (TypeError, ValueError):
            if info.data.get("strict_parsing", True):
                raise ValueError(f"{value!r} is not a valid integer") from None
            return 0

    @property
    def conn_max_lifetime_delta(self) -> timedelta:
        return timedelta(minutes=self.conn_max_lifetime)

    @property
    def conn_max_idle_time_delta(self) -> timedelta:
        return timedelta(minutes=self.conn_max_idle_time)

    def describe(self) -> Dict[str, Any]:
        """Effective configuration with secrets masked, for display and logs."""
        return {
            "DB_HOST": self.db_host,
            "DB_USER": self.db_user,
            "DB_PASS": "**********",
            "DB_NAME": self.db_name,
            "DB_CERT_PATH": self.db_cert_path,
            "DB_MAX_OPEN_CONNS": self.max_open_conns,
            "DB_MAX_IDLE_CONNS": self.max_idle_conns,
            "DB_CONN_MAX_LIFETIME": self.conn_max_lifetime,
            "DB_CONN_MAX_IDLE_TIME": self.conn_max_idle_time,
            "DB_STRICT_PARSING": self.strict_parsing,
        }


def env_name(field_name: str) -> str:
    """Environment variable backing a Settings field."""
    alias = Settings.model_fields[field_name].alias
    return alias or field_name.upper()


def _env_names_by_key() -> Dict[str, str]:
    names: Dict[str, str] = {}
    for name, field in Settings.model_fields.items():
        alias = field.alias or name.upper()
        names[name] = alias
        names[alias] = alias
    return names


def _configuration_error(exc: ValidationError) -> ConfigurationError:
    names = _env_names_by_key()
    required = {env_name(name) for name in REQUIRED_FIELDS}
    missing: List[str] = []
    invalid: List[str] = []
    for error in exc.errors():
        key = str(error["loc"][0]) if error["loc"] else ""
        var = names.get(key, key)
        bucket = missing if var in required else invalid
        if var not in bucket:
            bucket.append(var)
    return ConfigurationError(missing=missing, invalid=invalid)


def load_settings() -> Settings:
    """
    Build Settings from the environment.

    Raises
    ------
    ConfigurationError
        If a required variable is absent or empty, or a pool number is malformed
        while strict parsing is on.
    """
    try:
        return Settings()  # type: ignore[call-arg]
    except ValidationError as exc:
        raise _configuration_error(exc) from exc


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """
    Retrieve a cached instance of Settings to avoid repeated env parsing.
    """
    return load_settings()


__all__ = [
    "Settings",
    "get_settings",
    "load_settings",
    "env_name",
    "DEFAULT_MAX_OPEN_CONNS",
    "DEFAULT_MAX_IDLE_CONNS",
    "DEFAULT_CONN_MAX_LIFETIME_MINUTES",
    "DEFAULT_CONN_MAX_IDLE_TIME_MINUTES",
]
