"""Command line entry point for the OrderOps cron job.

Run from cron or a scheduler every few minutes::

    orderops cron
    orderops cron --json --grace-days 14
"""

import asyncio
import json
import logging
from dataclasses import replace

import click

from orderops.billing.context import RunContext
from orderops.config import settings
from orderops.events import get_event_bus
from orderops.services.cron_job import run_cron_job
from orderops.services.reconciliation import RunSummary

logger = logging.getLogger(__name__)


async def _run(context: RunContext) -> RunSummary:
    from orderops.database import async_session_factory, dispose_engine

    event_bus = get_event_bus()
    try:
        async with async_session_factory() as session:
            summary = await run_cron_job(session, context, event_bus=event_bus)
        await event_bus.drain()
        return summary
    finally:
        await dispose_engine()


def _print_summary(summary: RunSummary) -> None:
    click.echo(f"Suspended orders: {summary.subscriptions_suspended}")
    click.echo(f"Cancelled orders: {summary.subscriptions_cancelled}")
    click.echo(f"Sent number of invoices: {summary.invoices_created}")
    click.echo(f"Updated upgrades: {summary.upgrades_updated}")
    click.echo(f"Deleted upgrades: {summary.upgrades_deleted}")
    click.echo(f"Deleted logs: {summary.logs_purged}")
    for error in summary.errors:
        click.echo(f"Error: {error}", err=True)
    click.echo("Cron job finished")


@click.group()
def cli() -> None:
    """OrderOps billing maintenance commands."""
    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


@cli.command()
@click.option("--renewal-window-days", type=click.IntRange(min=0), default=None, help="Invoice this many days before expiry.")
@click.option("--grace-days", type=click.IntRange(min=0), default=None, help="Cancel unpaid orders this many days after expiry.")
@click.option("--log-retention-days", type=click.IntRange(min=0), default=None, help="Delete logs older than this.")
@click.option("--json", "as_json", is_flag=True, help="Print the run summary as JSON.")
def cron(
    renewal_window_days: int | None,
    grace_days: int | None,
    log_retention_days: int | None,
    as_json: bool,
) -> None:
    """Run one subscription lifecycle and billing reconciliation pass."""
    context = RunContext.from_settings(settings)
    overrides = {
        "renewal_window_days": renewal_window_days,
        "grace_days": grace_days,
        "log_retention_days": log_retention_days,
    }
    context = replace(context, **{key: value for key, value in overrides.items() if value is not None})

    if not as_json:
        click.echo("Cron job started")
    try:
        summary = asyncio.run(_run(context))
    except Exception as exc:
        logger.exception("Cron job aborted")
        raise click.ClickException(f"Cron job aborted: {exc}") from exc

    if as_json:
        click.echo(json.dumps(summary.as_dict(), indent=2))
    else:
        _print_summary(summary)


if __name__ == "__main__":
    cli()
