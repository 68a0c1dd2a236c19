# Overview: Flask CLI command group for purchasing maintenance.

# backend/purchasing/cli.py
# Commands Legend (run from the backend directory):
# Prereqs:
# - Activate your virtualenv.
# - Set FLASK_APP to wsgi.py (PowerShell: $env:FLASK_APP="wsgi.py").
# - Use: python -m flask purchases <command> [options]
#
# - python -m flask purchases backfill-timeline [--purchase-id 12]
#   Synthesize missing timeline events (one purchase, or all when omitted). Idempotent.
# - python -m flask purchases fix-statuses
#   Re-derive purchase statuses from item quantities and record corrections.

import click
from flask.cli import with_appcontext

from .errors import NotFoundError
from .services import maintenance_service, timeline_service


@click.group('purchases')
def purchases_group():
    """Purchase lifecycle maintenance commands."""


@purchases_group.command('backfill-timeline')
@click.option('--purchase-id', type=int, default=None, help='Backfill a single purchase.')
@with_appcontext
def backfill_timeline_cmd(purchase_id):
    """Create missing timeline events for existing purchases."""
    if purchase_id is not None:
        try:
            created = timeline_service.backfill_timeline(purchase_id)
        except NotFoundError as exc:
            raise click.ClickException(str(exc))
        if created:
            click.echo(f"Purchase {purchase_id}: created {', '.join(created)}")
        else:
            click.echo(f"Purchase {purchase_id}: timeline already complete")
        return

    summary = timeline_service.backfill_all_timelines()
    click.echo(
        f"Processed {summary['processed']} purchases, "
        f"created {summary['events_created']} events"
    )
    if summary["failed"]:
        click.echo(f"Failed: {', '.join(str(pid) for pid in summary['failed'])}", err=True)


@purchases_group.command('fix-statuses')
@with_appcontext
def fix_statuses_cmd():
    """Recompute every purchase status from its items."""
    summary = maintenance_service.fix_purchase_statuses()
    for fix in summary["fixed"]:
        click.echo(f"Purchase {fix['purchase_id']}: {fix['from']} -> {fix['to']}")
    click.echo(f"Checked {summary['checked']} purchases, fixed {len(summary['fixed'])}")


def register_commands(app):
    app.cli.add_command(purchases_group)
