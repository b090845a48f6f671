# Overview: Flask CLI command groups for bootstrap, inspection, and maintenance.

# backend/athar/cli.py
# Commands Legend (run from the backend directory):
# Prereqs:
# - Activate your virtualenv.
# - Set FLASK_APP to wsgi.py (PowerShell: $env:FLASK_APP="wsgi.py").
# - Use: python -m flask <group> <command> [options]
#
# System bootstrap/repair:
# - python -m flask system init-db
#   Create missing tables and seed the default inventory catalog (idempotent).
# - python -m flask system reset-db --yes
#   DEV/TEST only: drop and recreate all tables (deletes all data).
#
# Dashboard operators:
# - python -m flask users create --email admin@athar.local --password "Password123!"
#   Create an operator (prompts if options are omitted).
# - python -m flask users list
# - python -m flask users deactivate --email admin@athar.local
#   Block logins and revoke the operator's open sessions.
#
# Inventory:
# - python -m flask inventory seed
#   Seed the default box recipe when the catalog is empty.
# - python -m flask inventory status
#   Stock per item and how many boxes can be prepared.
# - python -m flask inventory verify
#   Check current_stock against the transaction ledger (exit code 1 on mismatch).
#
# Bot:
# - python -m flask telegram set-webhook --url https://example.org/api/telegram/webhook
# - python -m flask telegram delete-webhook

import click
from flask import current_app
from flask.cli import with_appcontext

from .extensions import db, channel
from .models import User
from .services.auth_service import create_user, deactivate_user, PasswordValidationError
from .services import inventory_service
from .services.messaging import TelegramChannel


@click.group('system')
def system_group():
    """System bootstrap and repair commands."""


@system_group.command('init-db')
@with_appcontext
def init_db():
    """Create missing tables and seed the inventory catalog."""
    click.echo("BUILD  Creating tables...")
    db.create_all()

    if inventory_service.ensure_default_catalog():
        click.echo(f"PASS Seeded {len(inventory_service.DEFAULT_CATALOG)} inventory items")
    else:
        click.echo("PASS Inventory catalog already present")

    click.echo("PASS Database ready. Create an operator with 'python -m flask users create'.")


@system_group.command('reset-db')
@click.option('--yes', is_flag=True, help='Skip confirmation')
@with_appcontext
def reset_db(yes):
    """
    DANGER: Drop all tables and recreate schema.

    This will DELETE ALL DATA!
    """
    if not yes:
        click.confirm("WARN This will DELETE ALL DATA. Are you sure?", abort=True)

    click.echo("DELETE  Dropping all tables...")
    db.drop_all()

    click.echo("BUILD  Creating all tables...")
    db.create_all()

    click.echo("PASS Database reset complete. Run 'python -m flask system init-db' to seed.")


@click.group('users')
def users_group():
    """Dashboard operator management."""


@users_group.command('create')
@click.option('--email', prompt=True, help='Email address (login)')
@click.option('--password', prompt=True, hide_input=True, confirmation_prompt=True, help='Password')
@click.option('--name', 'display_name', default=None, help='Display name')
@with_appcontext
def create_user_cli(email, password, display_name):
    """Create a dashboard operator."""
    try:
        user = create_user(email, password, display_name=display_name)
    except PasswordValidationError as e:
        raise click.ClickException(f"Weak password: {e}")
    except ValueError as e:
        raise click.ClickException(str(e))

    click.echo(f"PASS Created operator {user.email} (ID: {user.id})")


@users_group.command('list')
@with_appcontext
def list_users():
    """List dashboard operators."""
    users = db.session.query(User).order_by(User.id.asc()).all()

    if not users:
        click.echo("No users found.")
        return

    click.echo("\n" + "="*80)
    click.echo(f"{'ID':<5} {'Email':<35} {'Name':<25} {'Active':<8}")
    click.echo("="*80)

    for user in users:
        active_str = "Yes" if user.is_active else "No"
        click.echo(f"{user.id:<5} {user.email:<35} {(user.display_name or '-'):<25} {active_str:<8}")

    click.echo("="*80 + "\n")


@users_group.command('deactivate')
@click.option('--email', required=True, help='Operator email')
@with_appcontext
def deactivate_user_cli(email):
    """Block an operator and end their sessions."""
    try:
        user, revoked = deactivate_user(email)
    except ValueError as e:
        raise click.ClickException(str(e))

    click.echo(f"PASS Deactivated {user.email} ({revoked} session(s) revoked)")


@click.group('inventory')
def inventory_group():
    """Box-ingredient inventory inspection."""


@inventory_group.command('seed')
@with_appcontext
def seed_inventory():
    """Seed the default catalog if there are no items."""
    if inventory_service.ensure_default_catalog():
        click.echo(f"PASS Seeded {len(inventory_service.DEFAULT_CATALOG)} inventory items")
    else:
        click.echo("SKIP Catalog already has items")


@inventory_group.command('status')
@with_appcontext
def inventory_status():
    """Stock per item and the number of boxes that can be prepared."""
    items = inventory_service.list_items()
    if not items:
        click.echo("No inventory items. Run 'python -m flask inventory seed'.")
        return

    capacity = inventory_service.compute_capacity(
        items, target_boxes=int(current_app.config["TARGET_BOXES"])
    )

    click.echo("\n" + "="*80)
    click.echo(f"{'ID':<5} {'Code':<10} {'Stock':>12} {'Per box':>10} {'Unit':<8} {'Boxes':>8}")
    click.echo("="*80)
    for item in items:
        boxes = inventory_service.boxes_from_stock(item.current_stock, item.quantity_per_box)
        click.echo(
            f"{item.id:<5} {item.code:<10} {item.current_stock:>12g} "
            f"{item.quantity_per_box:>10g} {item.unit:<8} {boxes:>8}"
        )
    click.echo("="*80)

    limiting = capacity.limiting_item.code if capacity.limiting_item else "-"
    click.echo(f"Possible boxes: {capacity.possible_boxes} (limited by {limiting})")
    click.echo(f"Still needed for target: {capacity.needed_for_target}\n")


@inventory_group.command('verify')
@with_appcontext
def verify_inventory():
    """Exit 1 if any item's stock disagrees with its transactions."""
    mismatches = inventory_service.verify_ledger()
    if not mismatches:
        click.echo("PASS Stock matches the transaction ledger for every item")
        return

    for m in mismatches:
        click.echo(
            f"FAIL {m['code']} (ID {m['item_id']}): current_stock={m['current_stock']:g} "
            f"ledger_total={m['ledger_total']:g}"
        )
    raise SystemExit(1)


@click.group('telegram')
def telegram_group():
    """Bot webhook registration."""


def _telegram_client() -> TelegramChannel:
    client = channel.client
    if not isinstance(client, TelegramChannel):
        raise click.ClickException("TELEGRAM_BOT_TOKEN and TELEGRAM_CHAT_ID must be set")
    return client


@telegram_group.command('set-webhook')
@click.option('--url', required=True, help='Public URL of /api/telegram/webhook')
@with_appcontext
def set_webhook(url):
    """Point the bot at this deployment (callback_query updates only)."""
    result = _telegram_client().set_webhook(
        url, secret_token=current_app.config.get("TELEGRAM_WEBHOOK_SECRET") or None
    )
    if not result.ok:
        raise click.ClickException(f"setWebhook failed: {result.error}")
    click.echo(f"PASS Webhook set to {url}")


@telegram_group.command('delete-webhook')
@with_appcontext
def delete_webhook():
    result = _telegram_client().delete_webhook()
    if not result.ok:
        raise click.ClickException(f"deleteWebhook failed: {result.error}")
    click.echo("PASS Webhook removed")


def register_commands(app):
    """Register all CLI commands with Flask app."""
    app.cli.add_command(system_group)
    app.cli.add_command(users_group)
    app.cli.add_command(inventory_group)
    app.cli.add_command(telegram_group)
