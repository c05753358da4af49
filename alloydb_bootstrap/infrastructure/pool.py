"""
Connection pool tuning.

`PoolOptions` collects the four pool knobs through setters and translates them
into SQLAlchemy `create_engine` keyword arguments. `apply_pool_settings` pushes a
configured value into the options only when the operator set it explicitly and it
differs from the documented default, so untouched knobs keep the pool's baseline.
"""

from __future__ import annotations

import time
from datetime import timedelta
from typing import Any, Dict, List

from sqlalchemy import event
from sqlalchemy.engine import Engine
from sqlalchemy.exc import DisconnectionError
from sqlalchemy.pool import NullPool, QueuePool

from alloydb_bootstrap.config import (
    DEFAULT_CONN_MAX_IDLE_TIME_MINUTES,
    DEFAULT_CONN_MAX_LIFETIME_MINUTES,
    DEFAULT_MAX_IDLE_CONNS,
    DEFAULT_MAX_OPEN_CONNS,
    Settings,
)
from alloydb_bootstrap.utils.logging import get_logger

log = get_logger(__name__)

_CHECKED_IN_AT = "alloydb_bootstrap.checked_in_at"


def _close_on_checkin(dbapi_connection: Any, connection_record: Any) -> None:
    # The record stays in the pool as a checkout slot; the next checkout reconnects.
    if dbapi_connection is not None:
        connection_record.invalidate()


class PoolOptions:
    """
    Pool sizing and expiry, starting from the documented defaults.

    max_open_conns <= 0 means unlimited; max_idle_conns == 0 keeps no idle
    connections; a zero lifetime or idle time never expires connections.
    """

    def __init__(self) -> None:
        self.max_open_conns = DEFAULT_MAX_OPEN_CONNS
        self.max_idle_conns = DEFAULT_MAX_IDLE_CONNS
        self.conn_max_lifetime = timedelta(minutes=DEFAULT_CONN_MAX_LIFETIME_MINUTES)
        self.conn_max_idle_time = timedelta(minutes=DEFAULT_CONN_MAX_IDLE_TIME_MINUTES)

    def set_max_open_conns(self, n: int) -> None:
        self.max_open_conns = max(n, 0)
        if self.max_open_conns > 0 and self.max_idle_conns > self.max_open_conns:
            self.max_idle_conns = self.max_open_conns

    def set_max_idle_conns(self, n: int) -> None:
        n = max(n, 0)
        if self.max_open_conns > 0 and n > self.max_open_conns:
            n = self.max_open_conns
        self.max_idle_conns = n

    def set_conn_max_lifetime(self, d: timedelta) -> None:
        self.conn_max_lifetime = max(d, timedelta(0))

    def set_conn_max_idle_time(self, d: timedelta) -> None:
        self.conn_max_idle_time = max(d, timedelta(0))

    def engine_kwargs(self) -> Dict[str, Any]:
        """
        Keyword arguments for `sqlalchemy.create_engine`.

        Idle connections map to the QueuePool's retained size; connections above
        it are overflow and get closed on check-in. With no idle connections but a
        cap on open ones, the pool still bounds checkouts and drops every
        connection as it is checked in.
        """
        recycle = int(self.conn_max_lifetime.total_seconds()) or -1
        if self.max_idle_conns == 0:
            if self.max_open_conns == 0:
                return {"poolclass": NullPool, "pool_recycle": recycle}
            return {
                "poolclass": QueuePool,
                "pool_size": self.max_open_conns,
                "max_overflow": 0,
                "pool_recycle": recycle,
                "pool_events": [(_close_on_checkin, "checkin")],
            }

        if self.max_open_conns > 0:
            max_overflow = self.max_open_conns - self.max_idle_conns
        else:
            max_overflow = -1
        return {
            "poolclass": QueuePool,
            "pool_size": self.max_idle_conns,
            "max_overflow": max_overflow,
            "pool_recycle": recycle,
        }


def _explicitly_changed(settings: Settings, field: str, default: int) -> bool:
    return field in settings.model_fields_set and getattr(settings, field) != default


def apply_pool_settings(settings: Settings, pool: PoolOptions) -> List[str]:
    """
    Push explicitly configured, non-default pool settings into `pool`.

    Returns
    -------
    list of str
        Names of the settings that were applied, in application order.
    """
    applied: List[str] = []
    if _explicitly_changed(settings, "max_open_conns", DEFAULT_MAX_OPEN_CONNS):
        pool.set_max_open_conns(settings.max_open_conns)
        applied.append("max_open_conns")
    if _explicitly_changed(settings, "max_idle_conns", DEFAULT_MAX_IDLE_CONNS):
        pool.set_max_idle_conns(settings.max_idle_conns)
        applied.append("max_idle_conns")
    if _explicitly_changed(settings, "conn_max_lifetime", DEFAULT_CONN_MAX_LIFETIME_MINUTES):
        pool.set_conn_max_lifetime(settings.conn_max_lifetime_delta)
        applied.append("conn_max_lifetime")
    if _explicitly_changed(settings, "conn_max_idle_time", DEFAULT_CONN_MAX_IDLE_TIME_MINUTES):
        pool.set_conn_max_idle_time(settings.conn_max_idle_time_delta)
        applied.append("conn_max_idle_time")
    return applied


def install_idle_timeout(engine: Engine, max_idle_time: timedelta) -> None:
    """
    Discard pooled connections that sat idle longer than `max_idle_time`.

    The check happens on checkout: a stale connection raises DisconnectionError,
    which makes the pool invalidate it and hand out a fresh one.
    """
    limit = max_idle_time.total_seconds()
    if limit <= 0:
        return

    @event.listens_for(engine, "checkin")
    def _stamp_checkin(dbapi_connection: Any, connection_record: Any) -> None:
        connection_record.info[_CHECKED_IN_AT] = time.monotonic()

    @event.listens_for(engine, "checkout")
    def _expire_idle(dbapi_connection: Any, connection_record: Any, connection_proxy: Any) -> None:
        checked_in_at = connection_record.info.pop(_CHECKED_IN_AT, None)
        if checked_in_at is not None and time.monotonic() - checked_in_at > limit:
            log.debug("Discarding idle connection", extra={"idle_limit_seconds": limit})
            raise DisconnectionError("connection exceeded max idle time")


__all__ = ["PoolOptions", "apply_pool_settings", "install_idle_timeout"]
