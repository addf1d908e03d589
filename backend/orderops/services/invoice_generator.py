"""Renewal invoice generation for subscriptions entering their renewal window."""

import logging

from orderops.billing.context import RunContext
from orderops.billing.cycles import billing_period_label
from orderops.billing.enums import InvoiceStatus, SubscriptionStatus
from orderops.billing.provisioning import ProvisioningBackend
from orderops.billing.records import Invoice, InvoiceItem, Subscription
from orderops.events import EventBus, InvoiceCreated
from orderops.exceptions import MissingRelationError
from orderops.services.notifications import Notifier
from orderops.services.order_repository import OrderRepository

logger = logging.getLogger(__name__)


def is_renewal_due(subscription: Subscription, open_invoice_count: int, context: RunContext) -> bool:
    """True when ``subscription`` should get a renewal invoice this pass."""
    return (
        subscription.expiry_date <= context.renewal_horizon
        and subscription.status is not SubscriptionStatus.CANCELLED
        and not subscription.is_exempt
        and not subscription.has_cancellation_request
        and open_invoice_count == 0
    )


def renewal_description(subscription: Subscription) -> str:
    """Line item text: product name and the period being billed."""
    if subscription.product_name is None:
        return ""
    period = billing_period_label(subscription.expiry_date, subscription.billing_cycle)
    return f"{subscription.product_name} ({period})"


class InvoiceGenerator:
    """Creates one pending renewal invoice per call to ``generate``."""

    def __init__(
        self,
        repository: OrderRepository,
        provisioner: ProvisioningBackend,
        notifier: Notifier,
        event_bus: EventBus,
    ) -> None:
        self.repository = repository
        self.provisioner = provisioner
        self.notifier = notifier
        self.event_bus = event_bus
        self.errors: list[str] = []

    async def generate(self, subscription: Subscription) -> Invoice:
        """Create, announce and (for zero totals) settle a renewal invoice.

        Raises:
            MissingRelationError: the subscription has no parent order.
        """
        order = subscription.order
        if order is None:
            raise MissingRelationError("Subscription", subscription.id, "order")
        user = order.user

        header = await self.repository.save_without_side_effects(
            Invoice(
                order_id=order.id,
                user_id=user.id if user else None,
                status=InvoiceStatus.PENDING,
            )
        )
        await self.repository.save(
            InvoiceItem(
                invoice_id=header.id,
                subscription_id=subscription.id,
                description=renewal_description(subscription),
                total=subscription.price,
            )
        )
        invoice = await self.repository.get_invoice(header.id)
        if invoice is None:
            raise MissingRelationError("Invoice", header.id, "database row")

        try:
            await self.notifier.send_new_invoice_notification(invoice, user)
        except Exception as exc:
            logger.exception("New invoice notification failed for invoice %s", invoice.id)
            self.errors.append(f"notify new invoice {invoice.id}: {exc}")

        self.event_bus.publish(InvoiceCreated(invoice))

        if invoice.total == 0:
            try:
                await self.provisioner.mark_paid(invoice.id)
            except Exception as exc:
                logger.exception("Auto-payment failed for invoice %s", invoice.id)
                self.errors.append(f"mark paid {invoice.id}: {exc}")
            else:
                invoice = await self.repository.get_invoice(invoice.id) or invoice
                logger.info("Invoice %s status changed to %s", invoice.id, invoice.status.value)

        logger.info("Sent invoice %s for order product %s", invoice.id, subscription.id)
        return invoice
