# rewardhub/commands.py
from datetime import datetime, timedelta

import click
from flask import current_app
from flask.cli import AppGroup

from rewardhub.services import ledger, reports
from rewardhub.services.redemption import seed_services
from rewardhub.services.withdrawals import reconcile_stuck

withdrawals_cli = AppGroup("withdrawals", help="Withdrawal settlement maintenance.")
ledger_cli = AppGroup("ledger", help="Coin ledger maintenance.")
services_cli = AppGroup("services", help="Redeemable service catalogue.")
reports_cli = AppGroup("reports", help="Activity reports.")


@withdrawals_cli.command("reconcile")
@click.option("--older-than", "older_than", type=int, default=None, help="Minutes an APPROVED row may sit.")
def reconcile_command(older_than):
    """Resolve withdrawals stuck in APPROVED or flagged for reconciliation."""
    summary = reconcile_stuck(older_than_minutes=older_than)
    click.echo(
        "checked={checked} succeeded={succeeded} failed={failed} flagged={flagged} errors={errors}".format(
            **summary
        )
    )


@ledger_cli.command("compact")
@click.option("--days", type=int, default=None, help="Keep this many days of entries.")
def compact_command(days):
    """Fold old ledger entries into one carry-forward entry per account."""
    if days is None:
        days = current_app.config.get("LEDGER_RETENTION_DAYS", 365)
    if days < 1:
        raise click.BadParameter("must be at least 1", param_hint="--days")

    removed = ledger.compact(datetime.utcnow() - timedelta(days=days))
    click.echo(f"Compacted {removed} ledger entries older than {days} days.")


@ledger_cli.command("audit")
def audit_command():
    """Report accounts whose balance or tier disagrees with the ledger."""
    drifted = ledger.audit()
    if not drifted:
        click.echo("Ledger OK")
        return

    for row in drifted:
        click.echo(
            "account={account_id} balance={balance} ledger_sum={ledger_sum} "
            "tier={tier} expected_tier={expected_tier}".format(**row)
        )
    raise click.ClickException(f"{len(drifted)} account(s) out of balance")


@services_cli.command("seed")
def seed_command():
    """Insert the default service catalogue when it is empty."""
    created = seed_services()
    click.echo(f"Seeded {created} services." if created else "Services already present.")


@reports_cli.command("daily")
@click.option("--date", "day", type=click.DateTime(formats=["%Y-%m-%d"]), default=None, help="Defaults to yesterday (UTC).")
def daily_report_command(day):
    """Print the summary of one day's activity."""
    day = day.date() if day else (datetime.utcnow() - timedelta(days=1)).date()
    summary = reports.daily_report(day)["summary"]
    for key, value in summary.items():
        click.echo(f"{key}: {value}")


def register_commands(app):
    app.cli.add_command(withdrawals_cli)
    app.cli.add_command(ledger_cli)
    app.cli.add_command(services_cli)
    app.cli.add_command(reports_cli)
