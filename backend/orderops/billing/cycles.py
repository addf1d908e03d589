"""Billing cycle arithmetic — next billing dates and proration day counts."""

from datetime import date

from dateutil.relativedelta import relativedelta

from orderops.billing.enums import BillingCycle
from orderops.exceptions import UnknownBillingCycleError

# Calendar months added per renewal. relativedelta clamps the day of month to
# the end of a shorter target month: 2024-01-31 + 1 month == 2024-02-29.
CYCLE_MONTHS: dict[BillingCycle, int] = {
    BillingCycle.MONTHLY: 1,
    BillingCycle.QUARTERLY: 3,
    BillingCycle.SEMI_ANNUALLY: 6,
    BillingCycle.ANNUALLY: 12,
    BillingCycle.BIENNIALLY: 24,
    BillingCycle.TRIENNIALLY: 36,
}

# Fixed approximation used only for proration, never for expiry dates.
CYCLE_LENGTH_DAYS: dict[BillingCycle, int] = {
    BillingCycle.MONTHLY: 30,
    BillingCycle.QUARTERLY: 90,
    BillingCycle.SEMI_ANNUALLY: 180,
    BillingCycle.ANNUALLY: 365,
    BillingCycle.BIENNIALLY: 730,
    BillingCycle.TRIENNIALLY: 1095,
}


def next_billing_date(expiry: date, cycle: BillingCycle | str) -> date:
    """Return the expiry date one billing cycle after ``expiry``.

    Cycles without a recurrence (free, one-time) and unrecognised values fall
    back to one month.
    """
    try:
        months = CYCLE_MONTHS.get(BillingCycle(cycle), 1)
    except ValueError:
        months = 1
    return expiry + relativedelta(months=months)


def cycle_length_days(cycle: BillingCycle | str) -> int:
    """Day count of one billing cycle, for proration.

    Raises:
        UnknownBillingCycleError: for free, one-time or unrecognised cycles.
    """
    try:
        return CYCLE_LENGTH_DAYS[BillingCycle(cycle)]
    except (KeyError, ValueError):
        raise UnknownBillingCycleError(cycle) from None


def billing_period_label(expiry: date, cycle: BillingCycle | str) -> str:
    """Human-readable period billed by a renewal invoice, e.g. ``2026-01-31 - 2026-02-28``."""
    return f"{expiry.isoformat()} - {next_billing_date(expiry, cycle).isoformat()}"
