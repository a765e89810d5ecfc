"""
Maintenance CLI commands.

Provides commands to:
- Run the maintenance daemon
- Run a single maintenance cycle
- Report series integrity for every active tenant
"""

import asyncio
import sys

import click

from clubcal.src.config.settings import get_settings
from clubcal.src.db.database import SessionLocal, TenantSessionFactory
from clubcal.src.main import MaintenanceRunner, main as run_daemon
from clubcal.src.services.recurrence_manager import RecurrenceManager
from clubcal.src.services.tenant_service import TenantService
from clubcal.src.utils.logging_config import init_logging


@click.command()
def start() -> None:
    """
    Start the maintenance daemon.

    Runs maintenance cycles at the configured interval until stopped with
    Ctrl+C or SIGTERM.

    Example:

        clubcal start
    """
    settings = get_settings()
    click.echo("Starting recurrence maintenance...")
    click.echo(f"  Interval: {settings.maintenance_interval_minutes}m")
    click.echo(f"  Retry after failure: {settings.error_retry_minutes}m")
    click.echo()
    click.echo("Press Ctrl+C to stop")
    click.echo()

    sys.exit(run_daemon())


@click.command("run-once")
def run_once() -> None:
    """
    Run a single maintenance cycle and print its statistics.

    Exits with status 1 when any tenant or series failed.
    """
    init_logging()
    loop = MaintenanceRunner().build_loop()
    stats = asyncio.run(loop.run_cycle())

    click.echo(f"Tenants processed: {stats.tenants_processed}")
    click.echo(f"Tenants failed:    {stats.tenants_failed}")
    click.echo(f"Series extended:   {stats.masters_processed}")
    click.echo(f"Series failed:     {stats.masters_failed}")
    click.echo(f"Occurrences created: {stats.occurrences_created}")
    click.echo(f"Occurrences cleaned: {stats.occurrences_cleaned}")

    for error in stats.errors:
        click.echo(click.style("Error: ", fg="red", bold=True) + error)

    if stats.tenants_failed or stats.masters_failed:
        sys.exit(1)


@click.command()
def check() -> None:
    """
    Report series integrity for every active tenant.

    Read-only: lists active series without occurrences and counts orphaned
    occurrences. Exits with status 1 when any tenant is unhealthy.
    """
    settings = get_settings()
    sessions = TenantSessionFactory(SessionLocal)

    db = SessionLocal()
    try:
        tenants = TenantService(db).list_active_tenants()
    finally:
        db.close()

    unhealthy = 0
    for tenant in tenants:
        with sessions.open(tenant) as tenant_db:
            report = RecurrenceManager(tenant_db, tenant.id, settings).validate_integrity()

        if report.is_healthy:
            click.echo(f"{tenant.name}: OK ({report.masters_checked} series)")
            continue

        unhealthy += 1
        click.echo(click.style(f"{tenant.name}: ", fg="yellow", bold=True) + "issues found")
        for guid in report.masters_without_occurrences:
            click.echo(f"  Series without occurrences: {guid}")
        if report.orphaned_occurrences:
            click.echo(f"  Orphaned occurrences: {report.orphaned_occurrences}")

    if unhealthy:
        sys.exit(1)
