from __future__ import annotations

import json
import sys

import typer
from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError

from alloydb_bootstrap import get_version
from alloydb_bootstrap.config import Settings, get_settings
from alloydb_bootstrap.domain.models import Base, User
from alloydb_bootstrap.exceptions import ConfigurationError, InitializationError
from alloydb_bootstrap.infrastructure.db_factory import ConnectionFactory, Database, init_db
from alloydb_bootstrap.infrastructure.pool import PoolOptions, apply_pool_settings
from alloydb_bootstrap.utils.logging import configure_logging, get_logger

app = typer.Typer(help="AlloyDB connection bootstrap CLI.")
log = get_logger(__name__)


def _require_settings() -> Settings:
    """Resolve settings or abort: missing configuration is not recoverable here."""
    try:
        settings = get_settings()
    except ConfigurationError as exc:
        typer.echo(f"Fatal Error: {exc}", err=True)
        raise typer.Exit(code=1) from exc
    configure_logging(level=settings.log_level, json_logs=settings.log_json)
    return settings


def _connect(settings: Settings) -> Database:
    try:
        return init_db(factory=ConnectionFactory(settings))
    except InitializationError as exc:
        log.error("Database initialization failed", extra={"stage": exc.stage})
        typer.echo(f"Failed to initialize database: {exc}", err=True)
        raise typer.Exit(code=1) from exc


@app.command()
def info() -> None:
    """
    Show effective configuration values and the pool overrides they imply.
    """
    settings = _require_settings()
    applied = apply_pool_settings(settings, PoolOptions())
    payload = {"settings": settings.describe(), "pool_overrides": applied}
    typer.echo(json.dumps(payload, indent=2))


@app.command()
def version() -> None:
    """
    Print the package version.
    """
    typer.echo(get_version())


@app.command()
def ping() -> None:
    """
    Initialize the database connection and verify it responds.
    """
    settings = _require_settings()
    _connect(settings)
    typer.echo(f"Connected to {settings.db_name} on {settings.db_host}.")


@app.command()
def demo(
    name: str = typer.Option("test user", "--name", "-n", help="Name of the user to insert."),
) -> None:
    """
    Create the users table, insert one user and count all users.
    """
    settings = _require_settings()
    database = _connect(settings)

    try:
        Base.metadata.create_all(database.engine)
    except SQLAlchemyError as exc:
        typer.echo(f"Failed to migrate schema: {exc}", err=True)
        raise typer.Exit(code=1) from exc

    users = []
    with database.session() as session:
        try:
            session.add(User(name=name))
            session.commit()
        except SQLAlchemyError:
            session.rollback()
            log.exception("Failed to create user")

        try:
            users = list(session.scalars(select(User)))
        except SQLAlchemyError:
            log.exception("Failed to query users")

    log.info("Queried users", extra={"count": len(users)})
    typer.echo(f"Found {len(users)} users.")


def main() -> None:
    try:
        app()
    except KeyboardInterrupt:
        typer.echo("Cancelled by user.", err=True)
        sys.exit(130)


if __name__ == "__main__":
    main()
