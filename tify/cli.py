"""Typer CLI for Tify Events."""

from __future__ import annotations

import json
from pathlib import Path

from sqlalchemy.exc import OperationalError
import typer
import uvicorn

from .config import (
    load_settings,
    settings,
    settings_as_dict,
    update_config_file,
)
from .scheduler import start_scheduler, stop_scheduler
from .seed import seed_fake_data
from .storage import (
    ensure_root_token,
    fetch_root_token,
    init_db,
    rotate_root_token,
    upgrade_database,
    vacuum_database,
)

app = typer.Typer(help="Tify Events command-line interface")


def _exit_if_readonly(exc: OperationalError, action: str) -> None:
    message = str(getattr(exc, "orig", exc)).lower()
    if "readonly" in message or "read-only" in message:
        typer.secho(
            f"Unable to {action} because the database is read-only. "
            f"Ensure the process can write to {settings.database_path} "
            "(run with sudo or adjust file ownership/permissions).",
            err=True,
            fg=typer.colors.RED,
        )
        raise typer.Exit(code=1)


@app.callback(invoke_without_command=True)
def main(ctx: typer.Context) -> None:
    """Show help when no subcommand is provided."""
    if ctx.invoked_subcommand is None:
        typer.echo(ctx.get_help())
        raise typer.Exit()


@app.command("admin-token")
def admin_token() -> None:
    """Print the current root admin token."""
    init_db()
    token = fetch_root_token()
    typer.echo(token)


@app.command("rotate-admin-token")
def rotate_admin_token() -> None:
    """Rotate the root admin token."""
    try:
        init_db()
        token = rotate_root_token()
    except OperationalError as exc:
        _exit_if_readonly(exc, "rotate the root admin token")
        raise
    typer.echo(token)


@app.command("upgrade-db")
def upgrade_db(
    no_backup: bool = typer.Option(
        False,
        "--no-backup",
        help="Skip creating a .bak copy of the database before upgrading",
    ),
) -> None:
    """Upgrade the database schema if needed."""
    try:
        actions = upgrade_database(make_backup=not no_backup)
    except OperationalError as exc:
        _exit_if_readonly(exc, "upgrade")
        raise

    if not actions:
        typer.echo("Database already up to date.")
        return

    ensure_root_token()
    typer.echo("Database upgrade complete:")
    for action in actions:
        typer.echo(f"- {action}")


@app.command("vacuum")
def vacuum() -> None:
    """Run SQLite VACUUM manually."""
    init_db()
    if vacuum_database():
        typer.echo("Database vacuum complete.")
    else:
        typer.echo("VACUUM skipped: database is not SQLite.")


@app.command("runserver")
def runserver(
    host: str = typer.Option(settings.app_host, "--host", help="Host to bind"),
    port: int = typer.Option(settings.app_port, "--port", help="Port to bind"),
):
    """Start FastAPI with APScheduler."""
    init_db()
    start_scheduler()
    config = uvicorn.Config(
        "tify.api:app",
        host=host,
        port=port,
        reload=False,
        proxy_headers=True,
        forwarded_allow_ips="*",
    )
    server = uvicorn.Server(config)
    try:
        typer.echo(f"Starting Tify Events on {host}:{port}")
        server.run()
    finally:
        stop_scheduler()


@app.command("seed-data")
def seed_data(
    events: int = typer.Option(
        settings.seed_events, "--events", min=0, help="Number of events to create"
    ),
    zones: int = typer.Option(
        settings.seed_zones,
        "--zones",
        min=0,
        help="Seated zones to create for each event",
    ),
    rows: int = typer.Option(
        settings.seed_rows, "--rows", min=1, help="Seat rows per seated zone"
    ),
    cols: int = typer.Option(
        settings.seed_cols, "--cols", min=1, help="Seats per row"
    ),
    general_capacity: int = typer.Option(
        settings.seed_general_capacity,
        "--general-capacity",
        min=0,
        help="Capacity of the general admission zone (0 to skip it)",
    ),
):
    """Populate the database with fake events and layouts for testing."""
    stats = seed_fake_data(
        event_count=events,
        zones_per_event=zones,
        rows=rows,
        cols=cols,
        general_capacity=general_capacity,
    )
    typer.echo(
        f"Seed complete: {stats['events']} events, {stats['zones']} zones, "
        f"{stats['seats']} seats created."
    )


@app.command("config")
def configure(
    show: bool = typer.Option(
        False, "--show", help="Show the current effective configuration"
    ),
    database_url: str | None = typer.Option(
        None, "--database-url", help="SQLAlchemy URL (empty uses the SQLite file)"
    ),
    max_wait: float | None = typer.Option(
        None,
        "--max-wait",
        min=0.0,
        help="Seconds a sale may wait to acquire the write lock",
    ),
    timeout: float | None = typer.Option(
        None,
        "--timeout",
        min=0.0,
        help="Seconds a sale transaction may run before it is aborted",
    ),
    vacuum_hours: int | None = typer.Option(
        None, "--vacuum-hours", min=1, help="Hours between SQLite VACUUM runs"
    ),
    email_sender: str | None = typer.Option(
        None, "--email-sender", help="From address on notification emails"
    ),
    host: str | None = typer.Option(None, "--host", help="Default host for runserver"),
    port: int | None = typer.Option(None, "--port", help="Default port for runserver"),
    config_path: Path | None = typer.Option(
        None, "--config-path", help="Path to tify.toml (default: ./tify.toml)"
    ),
    seed_events: int | None = typer.Option(
        None, "--seed-events", min=0, help="Default seed-data events"
    ),
    seed_zones: int | None = typer.Option(
        None, "--seed-zones", min=0, help="Default seed-data zones/event"
    ),
    seed_rows: int | None = typer.Option(
        None, "--seed-rows", min=1, help="Default seed-data rows/zone"
    ),
    seed_cols: int | None = typer.Option(
        None, "--seed-cols", min=1, help="Default seed-data seats/row"
    ),
    seed_general_capacity: int | None = typer.Option(
        None,
        "--seed-general-capacity",
        min=0,
        help="Default seed-data general admission capacity",
    ),
    enable_scheduler: bool | None = typer.Option(
        None,
        "--enable-scheduler/--disable-scheduler",
        help="Toggle background scheduler (vacuum)",
    ),
):
    """View or update the persistent configuration file."""

    updates = {
        "database_url": database_url,
        "transaction_max_wait_seconds": max_wait,
        "transaction_timeout_seconds": timeout,
        "sqlite_vacuum_hours": vacuum_hours,
        "email_sender": email_sender,
        "app_host": host,
        "app_port": port,
        "seed_events": seed_events,
        "seed_zones": seed_zones,
        "seed_rows": seed_rows,
        "seed_cols": seed_cols,
        "seed_general_capacity": seed_general_capacity,
        "enable_scheduler": enable_scheduler,
    }
    clean_updates = {k: v for k, v in updates.items() if v is not None}

    settings_ref = settings
    target_path = config_path or settings.config_path
    if clean_updates:
        settings_ref = update_config_file(clean_updates, path=target_path)
        typer.echo(f"Updated configuration in {target_path}")
    else:
        settings_ref = load_settings(target_path)
    if show or not clean_updates:
        effective = settings_as_dict(settings_ref)
        effective["config_path"] = str(target_path)
        typer.echo(json.dumps(effective, indent=2))


if __name__ == "__main__":
    app()
