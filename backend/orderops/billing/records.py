"""Plain data records the cron job reads and writes through the repository.

The engine never touches ORM instances: the repository maps rows to these
frozen dataclasses and maps them back on save, so a record is a snapshot of
committed state at read time.
"""

import uuid
from dataclasses import dataclass, field
from datetime import date, datetime
from decimal import Decimal

from orderops.billing.enums import BillingCycle, InvoiceStatus, SubscriptionStatus


@dataclass(frozen=True)
class Customer:
    """The user an order belongs to."""

    id: uuid.UUID
    email: str
    name: str


@dataclass(frozen=True)
class OrderRef:
    """Parent order of a subscription."""

    id: uuid.UUID
    user: Customer | None


@dataclass(frozen=True)
class CancellationRequest:
    """A customer's request to cancel; only its presence drives the state machine."""

    id: uuid.UUID
    subscription_id: uuid.UUID
    reason: str | None = None
    cancellation_type: str = "end_of_period"


@dataclass(frozen=True)
class Subscription:
    """An order product: one purchased, provisioned product instance."""

    id: uuid.UUID
    order: OrderRef | None
    product_id: uuid.UUID | None
    product_name: str | None
    price: Decimal
    billing_cycle: BillingCycle
    status: SubscriptionStatus
    expiry_date: date
    cancellation: CancellationRequest | None = None

    @property
    def has_cancellation_request(self) -> bool:
        return self.cancellation is not None

    @property
    def is_exempt(self) -> bool:
        """Free and one-time subscriptions are never suspended, cancelled or re-invoiced."""
        return self.price == 0 or not self.billing_cycle.is_recurring

    def is_expired(self, today: date) -> bool:
        """The expiry date is midnight, so a subscription expiring today has already lapsed."""
        return self.expiry_date <= today


@dataclass(frozen=True)
class InvoiceItem:
    """A billed line; ``total`` may be negative for proration credits."""

    invoice_id: uuid.UUID | None
    subscription_id: uuid.UUID | None
    description: str
    total: Decimal
    id: uuid.UUID | None = None


@dataclass(frozen=True)
class Invoice:
    """Invoice header with its line items."""

    order_id: uuid.UUID | None
    user_id: uuid.UUID | None
    status: InvoiceStatus = InvoiceStatus.PENDING
    cancelled_at: datetime | None = None
    paid_at: datetime | None = None
    items: tuple[InvoiceItem, ...] = field(default_factory=tuple)
    id: uuid.UUID | None = None

    @property
    def total(self) -> Decimal:
        return sum((item.total for item in self.items), Decimal("0"))

    @property
    def is_open(self) -> bool:
        return self.status is InvoiceStatus.PENDING


@dataclass(frozen=True)
class SubscriptionUpgrade:
    """A pending switch of ``subscription`` to ``product_id``, billed on ``invoice_id``."""

    id: uuid.UUID
    subscription: Subscription
    product_id: uuid.UUID
    invoice_id: uuid.UUID
