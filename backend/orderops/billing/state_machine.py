"""Order state machine — decides what happens to an expired subscription.

``decide`` is pure: it looks at one subscription snapshot and the run context
and returns the next status plus the side effects to perform. The
reconciliation driver persists the status and then carries out the effects.

Statuses only move forward::

    pending/active -> suspended -> cancelled

and ``cancelled`` is absorbing, so re-running ``decide`` on the result of a
transition never produces another one in the same pass.
"""

from dataclasses import dataclass
from enum import Enum

from orderops.billing.context import RunContext
from orderops.billing.enums import SubscriptionStatus
from orderops.billing.records import Subscription


class TransitionAction(str, Enum):
    """What the state machine decided for a subscription."""

    NONE = "none"
    CANCEL_REQUESTED = "cancel_requested"  # active + customer asked to cancel
    SUSPEND = "suspend"  # active, unpaid past expiry
    CANCEL_UNPAID = "cancel_unpaid"  # suspended/pending past the grace period


class Effect(str, Enum):
    """Side effects the driver performs after persisting a transition."""

    SUSPEND = "suspend"
    TERMINATE = "terminate"
    NOTIFY_DELETED_ORDER = "notify_deleted_order"
    NOTIFY_UNPAID_INVOICE = "notify_unpaid_invoice"
    CANCEL_OPEN_INVOICE = "cancel_open_invoice"


@dataclass(frozen=True)
class Decision:
    """Result of ``decide``: the action, target status and ordered effects."""

    action: TransitionAction
    next_status: SubscriptionStatus | None = None
    effects: tuple[Effect, ...] = ()

    @property
    def is_transition(self) -> bool:
        return self.action is not TransitionAction.NONE


NO_TRANSITION = Decision(TransitionAction.NONE)

_STATUS_RANK: dict[SubscriptionStatus, int] = {
    SubscriptionStatus.PENDING: 0,
    SubscriptionStatus.ACTIVE: 0,
    SubscriptionStatus.SUSPENDED: 1,
    SubscriptionStatus.CANCELLED: 2,
}


def can_transition(current: SubscriptionStatus, target: SubscriptionStatus) -> bool:
    """True when ``target`` is strictly further along the lifecycle than ``current``."""
    return _STATUS_RANK[target] > _STATUS_RANK[current]


def decide(subscription: Subscription, context: RunContext) -> Decision:
    """Decide the transition for a subscription whose expiry date has been reached."""
    if not subscription.is_expired(context.today):
        return NO_TRANSITION
    if subscription.is_exempt:
        return NO_TRANSITION

    status = subscription.status
    if status is SubscriptionStatus.ACTIVE:
        if subscription.has_cancellation_request:
            return Decision(
                TransitionAction.CANCEL_REQUESTED,
                SubscriptionStatus.CANCELLED,
                (Effect.TERMINATE, Effect.NOTIFY_DELETED_ORDER),
            )
        return Decision(
            TransitionAction.SUSPEND,
            SubscriptionStatus.SUSPENDED,
            (Effect.SUSPEND, Effect.NOTIFY_UNPAID_INVOICE),
        )

    if status in (SubscriptionStatus.SUSPENDED, SubscriptionStatus.PENDING):
        if subscription.expiry_date <= context.grace_cutoff:
            return Decision(
                TransitionAction.CANCEL_UNPAID,
                SubscriptionStatus.CANCELLED,
                (Effect.TERMINATE, Effect.NOTIFY_DELETED_ORDER, Effect.CANCEL_OPEN_INVOICE),
            )
        return NO_TRANSITION

    if status is SubscriptionStatus.CANCELLED:
        return NO_TRANSITION

    raise ValueError(f"Unhandled subscription status: {status!r}")
