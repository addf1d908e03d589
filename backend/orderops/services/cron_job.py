"""Wiring for one cron run, shared by the CLI and the HTTP trigger."""

import logging

from sqlalchemy.ext.asyncio import AsyncSession

from orderops.billing.context import RunContext
from orderops.billing.provisioning import LocalProvisioner, ProvisioningBackend
from orderops.events import EventBus, get_event_bus
from orderops.services.notifications import Notifier, TemplateNotifier
from orderops.services.order_repository import SqlAlchemyOrderRepository
from orderops.services.reconciliation import ReconciliationDriver, RunSummary

logger = logging.getLogger(__name__)


async def run_cron_job(
    session: AsyncSession,
    context: RunContext,
    event_bus: EventBus | None = None,
    provisioner: ProvisioningBackend | None = None,
    notifier: Notifier | None = None,
) -> RunSummary:
    """Run every cron pass in ``session`` with the default collaborators."""
    event_bus = event_bus or get_event_bus()
    repository = SqlAlchemyOrderRepository(session, event_bus=event_bus)
    driver = ReconciliationDriver(
        repository=repository,
        provisioner=provisioner or LocalProvisioner(repository),
        notifier=notifier or TemplateNotifier(),
        event_bus=event_bus,
        context=context,
    )
    summary = await driver.run()
    if summary.errors:
        logger.warning("Cron job finished with %d error(s)", len(summary.errors))
    return summary
