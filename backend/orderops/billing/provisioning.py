"""Provisioning calls made on behalf of the cron job.

Hosting backends live outside this service; the cron job only needs the
three calls in ``ProvisioningBackend``. ``LocalProvisioner`` is the default:
it records suspensions/terminations in the log and settles invoices directly
in the database.
"""

import logging
import uuid
from dataclasses import replace
from datetime import datetime, timezone
from typing import Protocol

from orderops.billing.enums import InvoiceStatus
from orderops.billing.records import Subscription
from orderops.exceptions import MissingRelationError, ProvisioningError

logger = logging.getLogger(__name__)


class ProvisioningBackend(Protocol):
    """Outbound provisioning operations."""

    async def suspend(self, subscription: Subscription) -> None: ...

    async def terminate(self, subscription: Subscription) -> None: ...

    async def mark_paid(self, invoice_id: uuid.UUID) -> None: ...


class LocalProvisioner:
    """Provisioner for deployments without a hosting backend."""

    def __init__(self, repository) -> None:
        self.repository = repository

    async def suspend(self, subscription: Subscription) -> None:
        logger.info("Suspending service for order product %s", subscription.id)

    async def terminate(self, subscription: Subscription) -> None:
        logger.info("Terminating service for order product %s", subscription.id)

    async def mark_paid(self, invoice_id: uuid.UUID) -> None:
        """Settle an invoice without a payment (zero-total renewals)."""
        invoice = await self.repository.get_invoice(invoice_id)
        if invoice is None:
            raise MissingRelationError("Invoice", invoice_id, "database row")
        if invoice.status is InvoiceStatus.PAID:
            return
        if invoice.status is InvoiceStatus.CANCELLED:
            raise ProvisioningError(f"Invoice {invoice_id} is cancelled and cannot be settled")
        paid_at = datetime.now(timezone.utc).replace(tzinfo=None)
        await self.repository.save(replace(invoice, status=InvoiceStatus.PAID, paid_at=paid_at))
        logger.info("Invoice %s marked as paid", invoice_id)
