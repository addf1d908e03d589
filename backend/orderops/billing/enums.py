"""Closed enumerations for billing cycles and record statuses."""

from enum import Enum


class BillingCycle(str, Enum):
    """Recurrence unit of a subscription."""

    FREE = "free"
    ONE_TIME = "one-time"
    MONTHLY = "monthly"
    QUARTERLY = "quarterly"
    SEMI_ANNUALLY = "semi_annually"
    ANNUALLY = "annually"
    BIENNIALLY = "biennially"
    TRIENNIALLY = "triennially"

    @classmethod
    def _missing_(cls, value: object) -> "BillingCycle | None":
        # Older rows were written with hyphenated / underscored variants.
        if isinstance(value, str):
            normalized = value.strip().lower()
            aliases = {"semi-annually": "semi_annually", "one_time": "one-time"}
            normalized = aliases.get(normalized, normalized)
            for member in cls:
                if member.value == normalized:
                    return member
        return None

    @property
    def is_recurring(self) -> bool:
        return self not in (BillingCycle.FREE, BillingCycle.ONE_TIME)


class SubscriptionStatus(str, Enum):
    """Lifecycle status of an order product."""

    PENDING = "pending"
    ACTIVE = "active"
    SUSPENDED = "suspended"
    CANCELLED = "cancelled"

    @classmethod
    def _missing_(cls, value: object) -> "SubscriptionStatus | None":
        if value == "paid":
            return cls.ACTIVE
        return None


class InvoiceStatus(str, Enum):
    """Settlement status of an invoice."""

    PENDING = "pending"
    PAID = "paid"
    CANCELLED = "cancelled"
