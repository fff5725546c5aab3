"""Flask CLI commands.

Usage:
    flask --app app expire-quotations
    flask --app app create-admin alice --role sales
"""

from __future__ import annotations

import click
from flask.cli import with_appcontext

from errors import ValidationError
from models import VALID_ROLES


@click.command("expire-quotations")
@with_appcontext
def expire_quotations_command():
    """Move SENT quotations past their validity date to EXPIRED."""
    from services.quotation import mark_expired_quotations

    count = mark_expired_quotations()
    click.echo(f"Expired {count} quotation(s).")


@click.command("create-admin")
@click.argument("username")
@click.option("--role", type=click.Choice(VALID_ROLES), default="admin", show_default=True)
@click.option("--name", default=None, help="Display name")
@click.option("--email", default=None)
@click.password_option()
@with_appcontext
def create_admin_command(username: str, role: str, name, email, password: str):
    """Create an admin dashboard user."""
    from services.auth import create_admin_user

    try:
        user = create_admin_user(username, password, role, name=name, email=email)
    except ValidationError as e:
        click.echo(f"Error: {e.message}", err=True)
        raise SystemExit(1)
    click.echo(f"Created {user.role} user {user.username}.")


def register_cli(app) -> None:
    app.cli.add_command(expire_quotations_command)
    app.cli.add_command(create_admin_command)
