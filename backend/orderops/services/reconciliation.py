"""One full pass of the subscription cron job.

Passes run in a fixed order:

1. expiring: expired subscriptions go through the state machine
2. upcoming: subscriptions entering the renewal window get an invoice
3. upgrades: pending upgrades are pruned or re-prorated
4. logs: old log rows are purged

The expiring pass runs before the upgrade pass so a subscription cancelled in
this run has its upgrade pruned in the same run.
"""

import logging
from collections.abc import Awaitable, Callable
from dataclasses import asdict, dataclass, field, replace
from datetime import datetime, timezone
from typing import Any

from orderops.billing.context import RunContext
from orderops.billing.cycles import cycle_length_days
from orderops.billing.enums import InvoiceStatus, SubscriptionStatus
from orderops.billing.proration import prorate
from orderops.billing.provisioning import ProvisioningBackend
from orderops.billing.records import Subscription, SubscriptionUpgrade
from orderops.billing.state_machine import Decision, Effect, TransitionAction, can_transition, decide
from orderops.events import EventBus
from orderops.exceptions import CalculationError, DataError, MissingRelationError
from orderops.services.invoice_generator import InvoiceGenerator, is_renewal_due
from orderops.services.notifications import Notifier
from orderops.services.order_repository import OrderRepository

logger = logging.getLogger(__name__)


@dataclass
class RunSummary:
    """Counters collected during one pass."""

    started_at: datetime
    finished_at: datetime | None = None
    subscriptions_suspended: int = 0
    subscriptions_cancelled: int = 0
    invoices_created: int = 0
    invoices_cancelled: int = 0
    invoices_auto_paid: int = 0
    upgrades_updated: int = 0
    upgrades_deleted: int = 0
    logs_purged: int = 0
    errors: list[str] = field(default_factory=list)

    def as_dict(self) -> dict:
        data = asdict(self)
        data["started_at"] = self.started_at.isoformat()
        data["finished_at"] = self.finished_at.isoformat() if self.finished_at else None
        return data


class ReconciliationDriver:
    """Runs every cron pass against a repository and external collaborators."""

    def __init__(
        self,
        repository: OrderRepository,
        provisioner: ProvisioningBackend,
        notifier: Notifier,
        event_bus: EventBus,
        context: RunContext,
    ) -> None:
        self.repository = repository
        self.provisioner = provisioner
        self.notifier = notifier
        self.event_bus = event_bus
        self.context = context
        self.invoice_generator = InvoiceGenerator(repository, provisioner, notifier, event_bus)

    async def run(self) -> RunSummary:
        """Run all passes; repository failures propagate and abort the run."""
        summary = RunSummary(started_at=_utcnow())
        logger.info("Cron job started")

        await self.handle_expiring_orders(summary)
        await self.handle_upcoming_orders(summary)
        await self.handle_order_product_upgrades(summary)
        await self.clean_old_logs(summary)

        summary.errors.extend(self.repository.pop_read_errors())
        summary.finished_at = _utcnow()
        logger.info("Cron job finished")
        return summary

    # ------------------------------------------------------------------
    # Expiring pass
    # ------------------------------------------------------------------

    async def handle_expiring_orders(self, summary: RunSummary) -> None:
        candidates = await self.repository.find_expired_subscriptions(self.context.today)
        for candidate in candidates:
            try:
                await self._reconcile_expired(candidate, summary)
            except DataError as exc:
                logger.warning("Skipping order product %s: %s", candidate.id, exc)
                summary.errors.append(f"order product {candidate.id}: {exc}")

    async def _reconcile_expired(self, candidate: Subscription, summary: RunSummary) -> None:
        # Payment webhooks may have changed the row since the candidate query.
        subscription = await self.repository.get_subscription(candidate.id)
        if subscription is None:
            return

        decision = decide(subscription, self.context)
        if not decision.is_transition:
            return
        if not can_transition(subscription.status, decision.next_status):
            logger.error(
                "Refusing backward transition %s -> %s for order product %s",
                subscription.status.value,
                decision.next_status.value,
                subscription.id,
            )
            return
        if subscription.order is None:
            raise MissingRelationError("Subscription", subscription.id, "order")

        updated = await self.repository.save(replace(subscription, status=decision.next_status))
        if decision.next_status is SubscriptionStatus.SUSPENDED:
            summary.subscriptions_suspended += 1
            logger.info("Suspended order product %s", subscription.id)
        else:
            summary.subscriptions_cancelled += 1
            logger.info("Cancelled order product %s (%s)", subscription.id, decision.action.value)

        await self._apply_effects(updated, decision, summary)

    async def _apply_effects(self, subscription: Subscription, decision: Decision, summary: RunSummary) -> None:
        """Carry out side effects; provisioning and notification failures are recorded, not raised."""
        order = subscription.order
        user = order.user
        cancellation = subscription.cancellation if decision.action is TransitionAction.CANCEL_REQUESTED else None
        for effect in decision.effects:
            if effect is Effect.SUSPEND:
                await self._best_effort(summary, effect, subscription, self.provisioner.suspend, subscription)
            elif effect is Effect.TERMINATE:
                await self._best_effort(summary, effect, subscription, self.provisioner.terminate, subscription)
            elif effect is Effect.NOTIFY_DELETED_ORDER:
                await self._best_effort(
                    summary,
                    effect,
                    subscription,
                    self.notifier.send_deleted_order_notification,
                    order,
                    user,
                    cancellation,
                )
            elif effect is Effect.NOTIFY_UNPAID_INVOICE:
                open_invoices = await self.repository.find_open_invoices(subscription)
                if open_invoices:
                    await self._best_effort(
                        summary,
                        effect,
                        subscription,
                        self.notifier.send_unpaid_invoice_notification,
                        open_invoices[0],
                        user,
                    )
            elif effect is Effect.CANCEL_OPEN_INVOICE:
                await self._cancel_open_invoice(subscription, summary)

    @staticmethod
    async def _best_effort(
        summary: RunSummary,
        effect: Effect,
        subscription: Subscription,
        call: Callable[..., Awaitable[None]],
        *args: Any,
    ) -> None:
        try:
            await call(*args)
        except Exception as exc:
            logger.exception("%s failed for order product %s", effect.value, subscription.id)
            summary.errors.append(f"{effect.value} {subscription.id}: {exc}")

    async def _cancel_open_invoice(self, subscription: Subscription, summary: RunSummary) -> None:
        open_invoices = await self.repository.find_open_invoices(subscription)
        if not open_invoices:
            return
        invoice = open_invoices[0]
        if invoice.status is InvoiceStatus.PAID:
            return
        cancelled = replace(invoice, status=InvoiceStatus.CANCELLED, cancelled_at=self.context.now)
        await self.repository.save(cancelled)
        summary.invoices_cancelled += 1
        logger.info("Invoice %s status changed to %s", invoice.id, cancelled.status.value)

    # ------------------------------------------------------------------
    # Upcoming pass
    # ------------------------------------------------------------------

    async def handle_upcoming_orders(self, summary: RunSummary) -> None:
        candidates = await self.repository.find_upcoming_subscriptions(
            self.context.renewal_horizon, SubscriptionStatus.CANCELLED
        )
        created = 0
        for candidate in candidates:
            # Cheap checks first; the re-read and open-invoice query only run for eligible rows.
            if not is_renewal_due(candidate, 0, self.context):
                continue
            try:
                subscription = await self.repository.get_subscription(candidate.id)
                if subscription is None:
                    continue
                open_invoices = await self.repository.find_open_invoices(subscription)
                if not is_renewal_due(subscription, len(open_invoices), self.context):
                    continue
                invoice = await self.invoice_generator.generate(subscription)
            except DataError as exc:
                logger.warning("Skipping renewal for order product %s: %s", candidate.id, exc)
                summary.errors.append(f"renewal {candidate.id}: {exc}")
                continue
            created += 1
            if invoice.status is InvoiceStatus.PAID:
                summary.invoices_auto_paid += 1

        summary.invoices_created += created
        summary.errors.extend(self.invoice_generator.errors)
        self.invoice_generator.errors.clear()
        logger.info("Sent number of invoices: %d", created)

    # ------------------------------------------------------------------
    # Upgrade settlement pass
    # ------------------------------------------------------------------

    async def handle_order_product_upgrades(self, summary: RunSummary) -> None:
        for upgrade in await self.repository.list_upgrades():
            if upgrade.subscription.is_expired(self.context.today):
                await self.repository.delete(upgrade)
                summary.upgrades_deleted += 1
                logger.info("Deleted expired upgrade %s", upgrade.id)
                continue
            try:
                settled = await self._settle_upgrade(upgrade)
            except (DataError, CalculationError) as exc:
                logger.warning("Skipping upgrade %s: %s", upgrade.id, exc)
                summary.errors.append(f"upgrade {upgrade.id}: {exc}")
                continue
            if settled:
                summary.upgrades_updated += 1

    async def _settle_upgrade(self, upgrade: SubscriptionUpgrade) -> bool:
        """Overwrite the upgrade invoice's first line with a fresh proration.

        Returns False, writing nothing, once the invoice is no longer pending.
        """
        subscription = upgrade.subscription
        days_in_cycle = cycle_length_days(subscription.billing_cycle)

        new_price = await self.repository.product_price(upgrade.product_id, subscription.billing_cycle)
        if new_price is None:
            raise MissingRelationError("Product", upgrade.product_id, f"{subscription.billing_cycle.value} price")
        if subscription.product_id is None:
            raise MissingRelationError("Subscription", subscription.id, "product")
        old_price = await self.repository.product_price(subscription.product_id, subscription.billing_cycle)
        if old_price is None:
            raise MissingRelationError(
                "Product", subscription.product_id, f"{subscription.billing_cycle.value} price"
            )

        invoice = await self.repository.get_invoice(upgrade.invoice_id)
        if invoice is None or not invoice.items:
            raise MissingRelationError("Upgrade", upgrade.id, "invoice item")
        if invoice.status is not InvoiceStatus.PENDING:
            logger.info("Upgrade %s invoice is %s; leaving it unchanged", upgrade.id, invoice.status.value)
            return False

        unused_days = (subscription.expiry_date - self.context.today).days
        item = replace(invoice.items[0], total=prorate(new_price, old_price, days_in_cycle, unused_days))
        await self.repository.save(item)
        logger.info("Updated invoice item %s", item.id)
        return True

    # ------------------------------------------------------------------
    # Log retention
    # ------------------------------------------------------------------

    async def clean_old_logs(self, summary: RunSummary) -> None:
        summary.logs_purged = await self.repository.purge_logs(self.context.log_cutoff)
        logger.info("Deleted logs: %d", summary.logs_purged)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc).replace(tzinfo=None)
