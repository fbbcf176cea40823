# Overview: Flask CLI command groups for schema bootstrap, ledger checks and loan inspection.

# backend/packloop/cli.py
# Commands Legend (run from the backend directory):
# Prereqs:
# - Activate your virtualenv.
# - Set FLASK_APP to wsgi.py (PowerShell: $env:FLASK_APP="wsgi.py").
# - Use: python -m flask <group> <command> [options]
#
# System bootstrap/repair:
# - python -m flask system init-db
#   Create tables and reporting views if they do not exist.
# - python -m flask system reset-db --yes
#   DEV/TEST only: drop and recreate all tables and views (deletes all data).
#
# Deposit ledger:
# - python -m flask ledger reconcile
#   Check balance == sum(transactions) for every account; exits 1 on drift.
# - python -m flask ledger statement --account-id 1
#   Print one account's transactions with running balance.
#
# Loans:
# - python -m flask loans overdue [--as-of 2026-01-31T00:00:00Z]
#   List open checkouts past due, most overdue first.

import click
from flask.cli import with_appcontext

from .errors import PackLoopError
from .extensions import db
from .services import ledger_service, loan_service
from .time_utils import parse_iso_datetime


@click.group('system')
def system_group():
    """System bootstrap and repair commands."""


@system_group.command('init-db')
@with_appcontext
def init_db():
    """Create all tables and views (idempotent)."""
    db.create_all()
    click.echo("PASS Schema ready.")


@system_group.command('reset-db')
@click.option('--yes', is_flag=True, help='Skip confirmation')
@with_appcontext
def reset_db(yes):
    """
    DANGER: Drop all tables and views, then recreate the schema.

    This will DELETE ALL DATA!
    """
    if not yes:
        click.confirm("WARN This will DELETE ALL DATA. Are you sure?", abort=True)

    click.echo("DELETE  Dropping all tables...")
    db.drop_all()

    click.echo("BUILD  Creating all tables...")
    db.create_all()

    click.echo("PASS Database reset complete.")


@click.group('ledger')
def ledger_group():
    """Deposit ledger inspection commands."""


@ledger_group.command('reconcile')
@with_appcontext
def reconcile_cli():
    """
    Reconcile every deposit account.

    Exit code 1 when any account's stored balance disagrees with its ledger.
    """
    drifted = ledger_service.reconcile_all()
    if not drifted:
        click.echo("PASS All deposit accounts reconcile.")
        return

    click.echo(f"FAIL {len(drifted)} account(s) drifted:")
    click.echo(f"{'Account':<10} {'Balance':>12} {'Ledger sum':>12}")
    for row in drifted:
        click.echo(f"{row['account_id']:<10} {row['balance_cents']:>12} {row['ledger_sum_cents']:>12}")
    raise SystemExit(1)


@ledger_group.command('statement')
@click.option('--account-id', type=int, required=True, help='Deposit account ID')
@with_appcontext
def statement_cli(account_id):
    """Print one account's transactions with running balance."""
    try:
        rows = ledger_service.account_statement(account_id)
    except PackLoopError as e:
        raise click.ClickException(str(e))
    if not rows:
        click.echo("No transactions.")
        return

    click.echo(f"{'ID':<6} {'When':<21} {'Reason':<16} {'Delta':>8} {'Balance':>9} {'Ref'}")
    for row in rows:
        ref = f"{row['ref_table']}:{row['ref_id']}" if row["ref_table"] else "-"
        click.echo(
            f"{row['id']:<6} {row['created_at']:<21} {row['reason']:<16} "
            f"{row['delta_cents']:>8} {row['running_balance_cents']:>9} {ref}"
        )


@click.group('loans')
def loans_group():
    """Loan cycle inspection commands."""


@loans_group.command('overdue')
@click.option('--as-of', 'as_of', default=None, help='ISO-8601 timestamp (default: now)')
@with_appcontext
def overdue_cli(as_of):
    """
    List overdue checkouts.

    Example:
        flask loans overdue
        flask loans overdue --as-of 2026-01-31T00:00:00Z
    """
    try:
        as_of_dt = parse_iso_datetime(as_of)
    except ValueError:
        raise click.BadParameter("must be an ISO-8601 datetime", param_hint="--as-of")

    rows = list(loan_service.overdue_checkouts(as_of_dt))
    if not rows:
        click.echo("No overdue checkouts.")
        return

    click.echo(f"{'Checkout':<10} {'Instance':<10} {'Customer':<10} {'Due':<21} {'Days overdue':>12}")
    for row in rows:
        co = row.checkout
        due = row.to_dict()["due_at"]
        click.echo(f"{co.id:<10} {co.instance_id:<10} {co.customer_id:<10} {due:<21} {row.days_overdue:>12}")


def register_commands(app):
    """Register all CLI commands with Flask app."""
    app.cli.add_command(system_group)
    app.cli.add_command(ledger_group)
    app.cli.add_command(loans_group)
