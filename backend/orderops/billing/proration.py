"""Proration of mid-cycle product changes."""

from decimal import ROUND_HALF_UP, Decimal

from orderops.exceptions import ProrationError

CENT = Decimal("0.01")


def prorate(
    new_cycle_total: Decimal | int | str,
    old_cycle_total: Decimal | int | str,
    cycle_length_days: int,
    elapsed_days: int,
) -> Decimal:
    """Charge for switching products part-way through a cycle.

    The new product's full-cycle price minus a refund of the old product's
    daily rate for ``elapsed_days``. Arithmetic stays in ``Decimal`` and the
    result is rounded half-up to cents once, at the end. It may be negative
    (a net credit).

    >>> prorate(100, 60, 30, 10)
    Decimal('80.00')
    """
    if cycle_length_days <= 0:
        raise ProrationError(f"cycle_length_days must be positive, got {cycle_length_days}")
    if elapsed_days < 0:
        raise ProrationError(f"elapsed_days must not be negative, got {elapsed_days}")

    new_total = Decimal(str(new_cycle_total))
    old_total = Decimal(str(old_cycle_total))
    refund = old_total / Decimal(cycle_length_days) * Decimal(elapsed_days)
    return (new_total - refund).quantize(CENT, rounding=ROUND_HALF_UP)
