"""Tests for renewal invoice generation."""

from dataclasses import replace
from datetime import datetime, timedelta
from decimal import Decimal

import pytest

from orderops.billing.context import RunContext
from orderops.billing.enums import InvoiceStatus, SubscriptionStatus
from orderops.billing.provisioning import LocalProvisioner
from orderops.events import InvoiceCreated
from orderops.exceptions import MissingRelationError, NotificationError
from orderops.services.invoice_generator import InvoiceGenerator, is_renewal_due, renewal_description

NOW = datetime(2026, 10, 19, 12, 0)
TODAY = NOW.date()


@pytest.fixture
def generator(repository, provisioner, notifier, event_bus) -> InvoiceGenerator:
    return InvoiceGenerator(repository, provisioner, notifier, event_bus)


# ---------------------------------------------------------------------------
# Eligibility
# ---------------------------------------------------------------------------


class TestIsRenewalDue:
    """Test the renewal trigger."""

    @pytest.mark.asyncio
    async def test_due_inside_window(self, repository, make_order_product, context):
        row = await make_order_product(expiry_date=TODAY + timedelta(days=6))
        subscription = await repository.get_subscription(row.id)
        assert is_renewal_due(subscription, 0, context) is True

    @pytest.mark.asyncio
    async def test_window_includes_its_last_day(self, repository, make_order_product, context):
        last_day = await make_order_product(expiry_date=TODAY + timedelta(days=7))
        beyond = await make_order_product(expiry_date=TODAY + timedelta(days=8))
        last_day, beyond = [await repository.get_subscription(row.id) for row in (last_day, beyond)]
        assert is_renewal_due(last_day, 0, context) is True
        assert is_renewal_due(beyond, 0, context) is False

    @pytest.mark.asyncio
    async def test_open_invoice_blocks_renewal(self, repository, make_order_product, context):
        row = await make_order_product(expiry_date=TODAY + timedelta(days=3))
        subscription = await repository.get_subscription(row.id)
        assert is_renewal_due(subscription, 1, context) is False

    @pytest.mark.asyncio
    async def test_cancelled_requested_and_free_are_never_due(self, repository, make_order_product, context):
        soon = TODAY + timedelta(days=3)
        cancelled = await make_order_product(expiry_date=soon, status="cancelled")
        requested = await make_order_product(expiry_date=soon, cancellation=True)
        free = await make_order_product(expiry_date=soon, price="0.00")
        one_time = await make_order_product(expiry_date=soon, billing_cycle="one-time")

        for row in (cancelled, requested, free, one_time):
            subscription = await repository.get_subscription(row.id)
            assert is_renewal_due(subscription, 0, context) is False, row

    @pytest.mark.asyncio
    async def test_wider_window_from_context(self, repository, make_order_product):
        row = await make_order_product(expiry_date=TODAY + timedelta(days=10))
        subscription = await repository.get_subscription(row.id)
        assert is_renewal_due(subscription, 0, RunContext(now=NOW)) is False
        assert is_renewal_due(subscription, 0, RunContext(now=NOW, renewal_window_days=14)) is True


class TestRenewalDescription:
    """Test the line item text."""

    @pytest.mark.asyncio
    async def test_product_name_and_period(self, repository, make_order_product):
        row = await make_order_product(expiry_date=TODAY + timedelta(days=3))
        subscription = await repository.get_subscription(row.id)
        assert renewal_description(subscription) == "Starter VPS (2026-10-22 - 2026-11-22)"

    @pytest.mark.asyncio
    async def test_missing_product_gives_empty_text(self, repository, make_order_product):
        row = await make_order_product(expiry_date=TODAY + timedelta(days=3))
        subscription = replace(await repository.get_subscription(row.id), product_name=None)
        assert renewal_description(subscription) == ""


# ---------------------------------------------------------------------------
# generate
# ---------------------------------------------------------------------------


class TestGenerate:
    """Test InvoiceGenerator.generate."""

    @pytest.mark.asyncio
    async def test_creates_pending_invoice_with_one_item(
        self, generator, repository, make_order_product, notifier, test_user
    ):
        row = await make_order_product(expiry_date=TODAY + timedelta(days=3))
        subscription = await repository.get_subscription(row.id)

        invoice = await generator.generate(subscription)

        assert invoice.status is InvoiceStatus.PENDING
        assert invoice.user_id == test_user.id
        assert len(invoice.items) == 1
        assert invoice.items[0].subscription_id == row.id
        assert invoice.items[0].total == Decimal("50.00")
        assert invoice.items[0].description == "Starter VPS (2026-10-22 - 2026-11-22)"

        notifier.send_new_invoice_notification.assert_awaited_once()
        sent_invoice, sent_user = notifier.send_new_invoice_notification.await_args.args
        assert sent_invoice.id == invoice.id
        assert sent_user.email == test_user.email

        open_invoices = await repository.find_open_invoices(subscription)
        assert [i.id for i in open_invoices] == [invoice.id]

    @pytest.mark.asyncio
    async def test_publishes_invoice_created(self, generator, repository, make_order_product, event_bus):
        seen = []

        async def handler(event):
            seen.append(event)

        event_bus.subscribe(InvoiceCreated.event_type, handler)
        row = await make_order_product(expiry_date=TODAY + timedelta(days=3))

        invoice = await generator.generate(await repository.get_subscription(row.id))
        await event_bus.drain()

        assert len(seen) == 1
        assert seen[0].invoice.id == invoice.id

    @pytest.mark.asyncio
    async def test_zero_total_is_marked_paid(self, repository, make_order_product, notifier, event_bus):
        generator = InvoiceGenerator(repository, LocalProvisioner(repository), notifier, event_bus)
        row = await make_order_product(expiry_date=TODAY + timedelta(days=3), price="0.00")

        invoice = await generator.generate(await repository.get_subscription(row.id))

        assert invoice.status is InvoiceStatus.PAID
        assert invoice.paid_at is not None
        assert generator.errors == []

    @pytest.mark.asyncio
    async def test_non_zero_total_is_not_settled(self, generator, repository, make_order_product, provisioner):
        row = await make_order_product(expiry_date=TODAY + timedelta(days=3))
        await generator.generate(await repository.get_subscription(row.id))
        provisioner.mark_paid.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_missing_order_raises(self, generator, repository, make_order_product):
        row = await make_order_product(expiry_date=TODAY + timedelta(days=3), order=None)
        subscription = await repository.get_subscription(row.id)

        with pytest.raises(MissingRelationError):
            await generator.generate(subscription)

    @pytest.mark.asyncio
    async def test_notification_failure_is_recorded(self, generator, repository, make_order_product, notifier):
        notifier.send_new_invoice_notification.side_effect = NotificationError("smtp down")
        row = await make_order_product(expiry_date=TODAY + timedelta(days=3))
        subscription = await repository.get_subscription(row.id)

        invoice = await generator.generate(subscription)

        assert invoice.id is not None
        assert len(generator.errors) == 1
        assert "smtp down" in generator.errors[0]

    @pytest.mark.asyncio
    async def test_mark_paid_failure_is_recorded(self, generator, repository, make_order_product, provisioner):
        provisioner.mark_paid.side_effect = RuntimeError("gateway timeout")
        row = await make_order_product(expiry_date=TODAY + timedelta(days=3), price="0.00")

        invoice = await generator.generate(await repository.get_subscription(row.id))

        assert invoice.status is InvoiceStatus.PENDING
        assert any("gateway timeout" in error for error in generator.errors)

    @pytest.mark.asyncio
    async def test_does_not_change_subscription(self, generator, repository, make_order_product):
        row = await make_order_product(expiry_date=TODAY + timedelta(days=3))
        await generator.generate(await repository.get_subscription(row.id))

        subscription = await repository.get_subscription(row.id)
        assert subscription.status is SubscriptionStatus.ACTIVE
        assert subscription.expiry_date == TODAY + timedelta(days=3)
