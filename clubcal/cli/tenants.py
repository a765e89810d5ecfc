"""
Tenant CLI commands.

Provides commands to list active tenants and register new ones.
"""

from typing import Optional

import click

from clubcal.src.db.database import SessionLocal
from clubcal.src.services.exceptions import ConflictError, ValidationError
from clubcal.src.services.tenant_service import TenantService


@click.group()
def tenants():
    """Manage the tenant directory."""
    pass


@tenants.command("list")
def list_tenants() -> None:
    """List active tenants in maintenance order."""
    db = SessionLocal()
    try:
        rows = TenantService(db).list_active_tenants()
        if not rows:
            click.echo("No active tenants")
            return
        for tenant in rows:
            schema = tenant.schema_name or "(shared)"
            click.echo(f"{tenant.guid}  {tenant.slug:<30} {tenant.domain:<30} {schema}")
    finally:
        db.close()


@tenants.command("create")
@click.argument("name")
@click.argument("domain")
@click.option("--schema", "schema_name", default=None, help="Dedicated database schema")
@click.option("--inactive", is_flag=True, help="Register without scheduling maintenance")
@click.pass_context
def create_tenant(
    ctx: click.Context,
    name: str,
    domain: str,
    schema_name: Optional[str],
    inactive: bool
) -> None:
    """
    Register a new tenant.

    Example:

        clubcal tenants create "Riverside Tennis Club" riverside.example
    """
    db = SessionLocal()
    try:
        tenant = TenantService(db).create_tenant(
            name, domain, schema_name=schema_name, is_active=not inactive
        )
        click.echo(f"Created tenant {tenant.name} ({tenant.guid})")
    except (ConflictError, ValidationError) as e:
        click.echo(click.style("Error: ", fg="red", bold=True) + e.message)
        ctx.exit(1)
    finally:
        db.close()
