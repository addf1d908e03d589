"""Tests for SqlAlchemyOrderRepository against an in-memory database."""

from dataclasses import replace
from datetime import datetime, timedelta
from decimal import Decimal

import pytest
from sqlalchemy import select, update

from orderops.billing.enums import BillingCycle, InvoiceStatus, SubscriptionStatus
from orderops.billing.records import Invoice, InvoiceItem
from orderops.events import EntitySaved, EventBus
from orderops.models import Log, OrderProductUpgrade
from orderops.models.order_product import OrderProduct
from orderops.services.order_repository import SqlAlchemyOrderRepository

NOW = datetime(2026, 10, 19, 12, 0)
TODAY = NOW.date()


class TestSubscriptionQueries:
    """Test find_expired_subscriptions / find_upcoming_subscriptions / get_subscription."""

    @pytest.mark.asyncio
    async def test_find_expired_includes_today(self, repository, make_order_product):
        yesterday = await make_order_product(expiry_date=TODAY - timedelta(days=1))
        today = await make_order_product(expiry_date=TODAY)
        await make_order_product(expiry_date=TODAY + timedelta(days=1))

        found = await repository.find_expired_subscriptions(TODAY)
        assert {s.id for s in found} == {yesterday.id, today.id}

    @pytest.mark.asyncio
    async def test_find_upcoming_includes_horizon(self, repository, make_order_product):
        on_horizon = await make_order_product(expiry_date=TODAY + timedelta(days=7))
        await make_order_product(expiry_date=TODAY + timedelta(days=8))

        found = await repository.find_upcoming_subscriptions(
            TODAY + timedelta(days=7), SubscriptionStatus.CANCELLED
        )
        assert [s.id for s in found] == [on_horizon.id]

    @pytest.mark.asyncio
    async def test_find_upcoming_excludes_status(self, repository, make_order_product):
        soon = await make_order_product(expiry_date=TODAY + timedelta(days=3))
        await make_order_product(expiry_date=TODAY + timedelta(days=3), status="cancelled")
        await make_order_product(expiry_date=TODAY + timedelta(days=30))

        found = await repository.find_upcoming_subscriptions(
            TODAY + timedelta(days=7), SubscriptionStatus.CANCELLED
        )
        assert [s.id for s in found] == [soon.id]

    @pytest.mark.asyncio
    async def test_maps_relations_and_enums(self, repository, make_order_product, test_user):
        row = await make_order_product(status="paid", billing_cycle="semi-annually", cancellation=True)

        subscription = await repository.get_subscription(row.id)
        assert subscription.status is SubscriptionStatus.ACTIVE
        assert subscription.billing_cycle is BillingCycle.SEMI_ANNUALLY
        assert subscription.price == Decimal("50.00")
        assert subscription.product_name == "Starter VPS"
        assert subscription.order.user.email == test_user.email
        assert subscription.cancellation.reason == "Too expensive"

    @pytest.mark.asyncio
    async def test_unreadable_rows_are_skipped(self, repository, make_order_product):
        good = await make_order_product(expiry_date=TODAY - timedelta(days=2))
        await make_order_product(expiry_date=TODAY - timedelta(days=2), status="frozen")

        found = await repository.find_expired_subscriptions(TODAY)
        assert [s.id for s in found] == [good.id]

    @pytest.mark.asyncio
    async def test_unreadable_rows_are_reported_once(self, repository, make_order_product):
        frozen = await make_order_product(expiry_date=TODAY - timedelta(days=2), status="frozen")

        await repository.find_expired_subscriptions(TODAY)
        await repository.find_upcoming_subscriptions(TODAY + timedelta(days=7), SubscriptionStatus.CANCELLED)

        errors = repository.pop_read_errors()
        assert len(errors) == 1
        assert str(frozen.id) in errors[0]
        assert repository.pop_read_errors() == []

    @pytest.mark.asyncio
    async def test_get_subscription_rereads_committed_state(self, repository, db_session, make_order_product):
        """A row changed behind the identity map is re-read, not served from cache."""
        row = await make_order_product()
        await repository.get_subscription(row.id)

        await db_session.execute(
            update(OrderProduct)
            .where(OrderProduct.id == row.id)
            .values(status="suspended")
            .execution_options(synchronize_session=False)
        )
        await db_session.commit()
        assert row.status == "active"

        subscription = await repository.get_subscription(row.id)
        assert subscription.status is SubscriptionStatus.SUSPENDED


class TestInvoices:
    """Test invoice reads and writes."""

    @pytest.mark.asyncio
    async def test_find_open_invoices_oldest_first(self, repository, make_order_product, make_invoice):
        row = await make_order_product()
        newer = await make_invoice(row, created_at=NOW - timedelta(days=1))
        older = await make_invoice(row, created_at=NOW - timedelta(days=5))
        await make_invoice(row, status="paid")

        subscription = await repository.get_subscription(row.id)
        found = await repository.find_open_invoices(subscription)
        assert [i.id for i in found] == [older.id, newer.id]

    @pytest.mark.asyncio
    async def test_create_invoice_then_item(self, repository, make_order_product, test_order):
        row = await make_order_product()
        header = await repository.save_without_side_effects(Invoice(order_id=test_order.id, user_id=None))
        assert header.id is not None

        item = await repository.save(
            InvoiceItem(invoice_id=header.id, subscription_id=row.id, description="Renewal", total=Decimal("12.50"))
        )
        invoice = await repository.get_invoice(header.id)
        assert invoice.status is InvoiceStatus.PENDING
        assert [i.id for i in invoice.items] == [item.id]
        assert invoice.total == Decimal("12.50")

    @pytest.mark.asyncio
    async def test_update_invoice_status(self, repository, make_order_product, make_invoice):
        row = await make_order_product()
        invoice_row = await make_invoice(row)
        invoice = await repository.get_invoice(invoice_row.id)

        await repository.save(replace(invoice, status=InvoiceStatus.CANCELLED, cancelled_at=NOW))
        reloaded = await repository.get_invoice(invoice_row.id)
        assert reloaded.status is InvoiceStatus.CANCELLED
        assert reloaded.cancelled_at == NOW


class TestSideEffectContract:
    """save publishes EntitySaved, save_without_side_effects does not."""

    @pytest.mark.asyncio
    async def test_save_publishes_quiet_save_does_not(self, db_session, test_order):
        bus = EventBus()
        seen = []

        async def handler(event):
            seen.append(event.entity)

        bus.subscribe(EntitySaved.event_type, handler)
        repository = SqlAlchemyOrderRepository(db_session, event_bus=bus)

        quiet = await repository.save_without_side_effects(Invoice(order_id=test_order.id, user_id=None))
        await bus.drain()
        assert seen == []

        loud = await repository.save(Invoice(order_id=test_order.id, user_id=None))
        await bus.drain()
        assert [e.id for e in seen] == [loud.id]
        assert quiet.id != loud.id

    @pytest.mark.asyncio
    async def test_save_rejects_unknown_entities(self, repository):
        with pytest.raises(TypeError):
            await repository.save(object())


class TestUpgradesAndPrices:
    """Test list_upgrades / product_price / delete."""

    @pytest.mark.asyncio
    async def test_list_and_delete_upgrade(
        self, repository, db_session, make_order_product, make_invoice, make_product
    ):
        row = await make_order_product(expiry_date=TODAY + timedelta(days=10))
        target = await make_product("Pro VPS", monthly="90.00")
        invoice = await make_invoice(row, total="0.00")
        db_session.add(OrderProductUpgrade(order_product_id=row.id, product_id=target.id, invoice_id=invoice.id))
        await db_session.commit()

        upgrades = await repository.list_upgrades()
        assert len(upgrades) == 1
        assert upgrades[0].subscription.id == row.id
        assert upgrades[0].product_id == target.id

        await repository.delete(upgrades[0])
        remaining = (await db_session.execute(select(OrderProductUpgrade))).scalars().all()
        assert remaining == []

    @pytest.mark.asyncio
    async def test_product_price_by_cycle(self, repository, make_product):
        product = await make_product("Pro VPS", monthly="40.00", **{"semi-annually": "200.00"})
        assert await repository.product_price(product.id, BillingCycle.MONTHLY) == Decimal("40.00")
        assert await repository.product_price(product.id, BillingCycle.SEMI_ANNUALLY) == Decimal("200.00")
        assert await repository.product_price(product.id, BillingCycle.ANNUALLY) is None


class TestPurgeLogs:
    """Test purge_logs."""

    @pytest.mark.asyncio
    async def test_deletes_only_old_rows(self, repository, db_session):
        db_session.add_all(
            [
                Log(message="old", created_at=NOW - timedelta(days=10)),
                Log(message="older", created_at=NOW - timedelta(days=30)),
                Log(message="fresh", created_at=NOW - timedelta(days=1)),
            ]
        )
        await db_session.commit()

        deleted = await repository.purge_logs(NOW - timedelta(days=7))
        assert deleted == 2
        remaining = (await db_session.execute(select(Log.message))).scalars().all()
        assert remaining == ["fresh"]
