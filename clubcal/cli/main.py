"""
ClubCal CLI entry point.

Main command group for the recurrence engine CLI.
"""

import click

from clubcal.src.db.database import init_db


@click.group()
@click.version_option(version="0.1.0", prog_name="clubcal")
@click.pass_context
def cli(ctx: click.Context) -> None:
    """
    ClubCal - Recurring event generation and reconciliation.

    Keeps every active recurring series of every active tenant materialized
    ahead of time.

    Use 'clubcal COMMAND --help' for more information on a command.
    """
    ctx.ensure_object(dict)


@click.command("init-db")
def init_db_command() -> None:
    """Create all database tables (setup and testing only)."""
    init_db()
    click.echo("Database tables created")


# Import and register subcommands
from clubcal.cli.maintenance import start, run_once, check  # noqa: E402
from clubcal.cli.tenants import tenants  # noqa: E402

cli.add_command(start)
cli.add_command(run_once)
cli.add_command(check)
cli.add_command(init_db_command)
cli.add_command(tenants)


def main() -> None:
    """Main entry point for CLI."""
    cli()


if __name__ == "__main__":
    main()
