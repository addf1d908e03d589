"""Billing notifications — compose templated customer emails for the cron job.

Delivery is pluggable: ``TemplateNotifier`` renders subject and body and hands
them to a ``deliver`` coroutine. The default delivery only logs the message
(simulated send); production wires in the mail transport.
"""

import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import Protocol

from orderops.billing.records import CancellationRequest, Customer, Invoice, OrderRef
from orderops.config import settings
from orderops.exceptions import NotificationError

logger = logging.getLogger(__name__)

TEMPLATES = {
    "deleted_order": {
        "subject": "Your order {order_id} has been cancelled",
        "body": (
            "Dear {customer_name},\n\n"
            "Order {order_id} has been cancelled and its services have been removed.\n"
            "{cancellation_note}\n"
            "If you believe this is a mistake, please contact support.\n\n"
            "Best regards,\nOrderOps Billing"
        ),
    },
    "unpaid_invoice": {
        "subject": "Payment overdue for invoice {invoice_id}",
        "body": (
            "Dear {customer_name},\n\n"
            "Invoice {invoice_id} for {invoice_total} is still unpaid and the related "
            "service has been suspended.\n\n"
            "Pay the invoice to reactivate your service.\n\n"
            "Best regards,\nOrderOps Billing"
        ),
    },
    "new_invoice": {
        "subject": "New invoice {invoice_id}",
        "body": (
            "Dear {customer_name},\n\n"
            "A new invoice has been issued for your subscription.\n\n"
            "{invoice_lines}\n"
            "Total: {invoice_total}\n\n"
            "Best regards,\nOrderOps Billing"
        ),
    },
}


@dataclass(frozen=True)
class Notification:
    """A rendered message ready for delivery."""

    template: str
    sender: str
    recipient_name: str
    recipient_email: str
    subject: str
    body: str


DeliverFn = Callable[[Notification], Awaitable[None]]


class Notifier(Protocol):
    """Customer notifications sent by the cron job."""

    async def send_deleted_order_notification(
        self,
        order: OrderRef,
        user: Customer | None,
        cancellation: CancellationRequest | None = None,
    ) -> None: ...

    async def send_unpaid_invoice_notification(self, invoice: Invoice, user: Customer | None) -> None: ...

    async def send_new_invoice_notification(self, invoice: Invoice, user: Customer | None) -> None: ...


async def log_delivery(notification: Notification) -> None:
    """Default delivery: log the notification (simulated send)."""
    logger.info(
        "Notification sent [%s] from %s to %s <%s>: %s",
        notification.template,
        notification.sender,
        notification.recipient_name,
        notification.recipient_email,
        notification.subject,
    )


def render(template: str, sender: str, recipient: Customer, **template_vars: str) -> Notification:
    """Render ``template`` for ``recipient``, sent from ``sender``."""
    tmpl = TEMPLATES[template]
    template_vars = {"customer_name": recipient.name, **template_vars}
    return Notification(
        template=template,
        sender=sender,
        recipient_name=recipient.name,
        recipient_email=recipient.email,
        subject=tmpl["subject"].format(**template_vars),
        body=tmpl["body"].format(**template_vars),
    )


def _invoice_lines(invoice: Invoice) -> str:
    return "\n".join(f"- {item.description}: {item.total}" for item in invoice.items)


class TemplateNotifier:
    """``Notifier`` that renders ``TEMPLATES`` and passes them to ``deliver``."""

    def __init__(self, deliver: DeliverFn | None = None, sender: str | None = None) -> None:
        self.deliver = deliver or log_delivery
        self.sender = sender or settings.notification_from_email

    async def send_deleted_order_notification(
        self,
        order: OrderRef,
        user: Customer | None,
        cancellation: CancellationRequest | None = None,
    ) -> None:
        recipient = self._require_recipient(user, f"order {order.id}")
        note = ""
        if cancellation is not None:
            note = f"You requested this cancellation ({cancellation.cancellation_type})."
            if cancellation.reason:
                note += f" Reason given: {cancellation.reason}"
            note += "\n"
        await self.deliver(
            render("deleted_order", self.sender, recipient, order_id=str(order.id), cancellation_note=note)
        )

    async def send_unpaid_invoice_notification(self, invoice: Invoice, user: Customer | None) -> None:
        recipient = self._require_recipient(user, f"invoice {invoice.id}")
        await self.deliver(
            render(
                "unpaid_invoice",
                self.sender,
                recipient,
                invoice_id=str(invoice.id),
                invoice_total=str(invoice.total),
            )
        )

    async def send_new_invoice_notification(self, invoice: Invoice, user: Customer | None) -> None:
        recipient = self._require_recipient(user, f"invoice {invoice.id}")
        await self.deliver(
            render(
                "new_invoice",
                self.sender,
                recipient,
                invoice_id=str(invoice.id),
                invoice_lines=_invoice_lines(invoice),
                invoice_total=str(invoice.total),
            )
        )

    @staticmethod
    def _require_recipient(user: Customer | None, subject: str) -> Customer:
        if user is None:
            raise NotificationError(f"No recipient for {subject}")
        return user
