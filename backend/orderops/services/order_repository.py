"""Order repository — the cron job's only window onto the database.

Every read goes to the database (``populate_existing``) so the engine always
decides on committed state, and every write commits immediately: a failure
later in the pass leaves earlier writes in place.
"""

import logging
import uuid
from datetime import date, datetime
from decimal import Decimal
from typing import Any, Protocol

from sqlalchemy import delete, select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from orderops.billing.enums import BillingCycle, InvoiceStatus, SubscriptionStatus
from orderops.billing.records import (
    CancellationRequest,
    Customer,
    Invoice,
    InvoiceItem,
    OrderRef,
    Subscription,
    SubscriptionUpgrade,
)
from orderops.events import EntitySaved, EventBus
from orderops.exceptions import InvalidRecordError, MissingRelationError
from orderops.models.invoice import Invoice as InvoiceRow
from orderops.models.invoice import InvoiceItem as InvoiceItemRow
from orderops.models.log import Log
from orderops.models.order import Order
from orderops.models.order_product import OrderProduct
from orderops.models.product import ProductPrice
from orderops.models.upgrade import OrderProductUpgrade

logger = logging.getLogger(__name__)

# Spellings found in product_prices.billing_cycle for each cycle.
_CYCLE_SPELLINGS: dict[BillingCycle, tuple[str, ...]] = {
    BillingCycle.SEMI_ANNUALLY: ("semi_annually", "semi-annually"),
}

# Explicit eager loads so populate_existing refreshes relationships too.
_SUBSCRIPTION_LOADERS = (
    selectinload(OrderProduct.order).selectinload(Order.user),
    selectinload(OrderProduct.product),
    selectinload(OrderProduct.cancellation),
)


class OrderRepository(Protocol):
    """Persistence operations the reconciliation driver depends on."""

    async def find_expired_subscriptions(self, as_of: date) -> list[Subscription]: ...

    async def find_upcoming_subscriptions(
        self, horizon: date, exclude_status: SubscriptionStatus
    ) -> list[Subscription]: ...

    async def get_subscription(self, subscription_id: uuid.UUID) -> Subscription | None: ...

    async def find_open_invoices(self, subscription: Subscription) -> list[Invoice]: ...

    async def get_invoice(self, invoice_id: uuid.UUID) -> Invoice | None: ...

    async def list_upgrades(self) -> list[SubscriptionUpgrade]: ...

    async def product_price(self, product_id: uuid.UUID, cycle: BillingCycle) -> Decimal | None: ...

    async def save(self, entity: Any) -> Any: ...

    async def save_without_side_effects(self, entity: Any) -> Any: ...

    async def delete(self, entity: Any) -> None: ...

    async def purge_logs(self, before: datetime) -> int: ...

    def pop_read_errors(self) -> list[str]: ...


def to_subscription(row: OrderProduct) -> Subscription:
    """Map an ``order_products`` row (with its relationships loaded) to a record."""
    try:
        cycle = BillingCycle(row.billing_cycle)
        status = SubscriptionStatus(row.status)
    except ValueError as exc:
        raise InvalidRecordError(f"Order product {row.id}: {exc}") from exc

    order = None
    if row.order is not None:
        user = row.order.user
        order = OrderRef(
            id=row.order.id,
            user=Customer(id=user.id, email=user.email, name=user.name) if user else None,
        )

    cancellation = None
    if row.cancellation is not None:
        cancellation = CancellationRequest(
            id=row.cancellation.id,
            subscription_id=row.id,
            reason=row.cancellation.reason,
            cancellation_type=row.cancellation.cancellation_type,
        )

    return Subscription(
        id=row.id,
        order=order,
        product_id=row.product_id,
        product_name=row.product.name if row.product is not None else None,
        price=Decimal(row.price),
        billing_cycle=cycle,
        status=status,
        expiry_date=row.expiry_date,
        cancellation=cancellation,
    )


def to_invoice(row: InvoiceRow) -> Invoice:
    try:
        status = InvoiceStatus(row.status)
    except ValueError as exc:
        raise InvalidRecordError(f"Invoice {row.id}: {exc}") from exc
    return Invoice(
        id=row.id,
        order_id=row.order_id,
        user_id=row.user_id,
        status=status,
        cancelled_at=row.cancelled_at,
        paid_at=row.paid_at,
        items=tuple(to_invoice_item(item) for item in row.items),
    )


def to_invoice_item(row: InvoiceItemRow) -> InvoiceItem:
    return InvoiceItem(
        id=row.id,
        invoice_id=row.invoice_id,
        subscription_id=row.order_product_id,
        description=row.description,
        total=Decimal(row.total),
    )


class SqlAlchemyOrderRepository:
    """``OrderRepository`` backed by an ``AsyncSession``.

    ``save`` publishes ``EntitySaved`` on the event bus after committing;
    ``save_without_side_effects`` writes the same way but stays silent.
    """

    def __init__(self, session: AsyncSession, event_bus: EventBus | None = None) -> None:
        self.session = session
        self.event_bus = event_bus
        # Rows skipped as unreadable since the last pop_read_errors, keyed by id.
        self._read_errors: dict[uuid.UUID, str] = {}

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    async def find_expired_subscriptions(self, as_of: date) -> list[Subscription]:
        """Subscriptions whose expiry date is on or before ``as_of``."""
        stmt = (
            select(OrderProduct)
            .where(OrderProduct.expiry_date <= as_of)
            .order_by(OrderProduct.expiry_date)
            .options(*_SUBSCRIPTION_LOADERS)
            .execution_options(populate_existing=True)
        )
        return await self._subscriptions(stmt)

    async def find_upcoming_subscriptions(
        self, horizon: date, exclude_status: SubscriptionStatus
    ) -> list[Subscription]:
        """Subscriptions expiring on or before ``horizon`` that are not in ``exclude_status``."""
        stmt = (
            select(OrderProduct)
            .where(
                OrderProduct.expiry_date <= horizon,
                OrderProduct.status != exclude_status.value,
            )
            .order_by(OrderProduct.expiry_date)
            .options(*_SUBSCRIPTION_LOADERS)
            .execution_options(populate_existing=True)
        )
        return await self._subscriptions(stmt)

    async def get_subscription(self, subscription_id: uuid.UUID) -> Subscription | None:
        stmt = (
            select(OrderProduct)
            .where(OrderProduct.id == subscription_id)
            .options(*_SUBSCRIPTION_LOADERS)
            .execution_options(populate_existing=True)
        )
        row = (await self.session.execute(stmt)).scalar_one_or_none()
        return to_subscription(row) if row is not None else None

    async def find_open_invoices(self, subscription: Subscription) -> list[Invoice]:
        """Pending invoices billing ``subscription``, oldest first."""
        billed = select(InvoiceItemRow.invoice_id).where(
            InvoiceItemRow.order_product_id == subscription.id
        )
        stmt = (
            select(InvoiceRow)
            .where(
                InvoiceRow.id.in_(billed),
                InvoiceRow.status == InvoiceStatus.PENDING.value,
            )
            .order_by(InvoiceRow.created_at)
            .options(selectinload(InvoiceRow.items))
            .execution_options(populate_existing=True)
        )
        result = await self.session.execute(stmt)
        return [to_invoice(row) for row in result.scalars().all()]

    async def get_invoice(self, invoice_id: uuid.UUID) -> Invoice | None:
        stmt = (
            select(InvoiceRow)
            .where(InvoiceRow.id == invoice_id)
            .options(selectinload(InvoiceRow.items))
            .execution_options(populate_existing=True)
        )
        row = (await self.session.execute(stmt)).scalar_one_or_none()
        return to_invoice(row) if row is not None else None

    async def list_upgrades(self) -> list[SubscriptionUpgrade]:
        stmt = (
            select(OrderProductUpgrade)
            .order_by(OrderProductUpgrade.created_at)
            .options(selectinload(OrderProductUpgrade.order_product).options(*_SUBSCRIPTION_LOADERS))
            .execution_options(populate_existing=True)
        )
        result = await self.session.execute(stmt)
        upgrades = []
        for row in result.scalars().all():
            try:
                subscription = to_subscription(row.order_product)
            except InvalidRecordError as exc:
                logger.warning("Skipping upgrade %s: unreadable order product", row.id, exc_info=True)
                self._read_errors[row.id] = f"upgrade {row.id}: {exc}"
                continue
            upgrades.append(
                SubscriptionUpgrade(
                    id=row.id,
                    subscription=subscription,
                    product_id=row.product_id,
                    invoice_id=row.invoice_id,
                )
            )
        return upgrades

    async def product_price(self, product_id: uuid.UUID, cycle: BillingCycle) -> Decimal | None:
        """Price of ``product_id`` for ``cycle``, or ``None`` when it is not sold on that cycle."""
        spellings = _CYCLE_SPELLINGS.get(cycle, (cycle.value,))
        result = await self.session.execute(
            select(ProductPrice.amount).where(
                ProductPrice.product_id == product_id,
                ProductPrice.billing_cycle.in_(spellings),
            )
        )
        amount = result.scalars().first()
        return Decimal(amount) if amount is not None else None

    def pop_read_errors(self) -> list[str]:
        """Return and forget the rows skipped as unreadable; each row is reported once."""
        errors = list(self._read_errors.values())
        self._read_errors.clear()
        return errors

    async def _subscriptions(self, stmt) -> list[Subscription]:
        result = await self.session.execute(stmt)
        subscriptions = []
        for row in result.scalars().all():
            try:
                subscriptions.append(to_subscription(row))
            except InvalidRecordError as exc:
                logger.warning("Skipping unreadable order product %s", row.id, exc_info=True)
                self._read_errors[row.id] = str(exc)
        return subscriptions

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    async def save(self, entity: Any) -> Any:
        """Persist ``entity``, commit, then publish ``EntitySaved``."""
        saved = await self._write(entity)
        if self.event_bus is not None:
            self.event_bus.publish(EntitySaved(saved))
        return saved

    async def save_without_side_effects(self, entity: Any) -> Any:
        """Persist ``entity`` and commit without publishing anything."""
        return await self._write(entity)

    async def delete(self, entity: Any) -> None:
        if isinstance(entity, SubscriptionUpgrade):
            model = OrderProductUpgrade
        elif isinstance(entity, Invoice):
            model = InvoiceRow
        elif isinstance(entity, InvoiceItem):
            model = InvoiceItemRow
        else:
            raise TypeError(f"Cannot delete {type(entity).__name__}")

        row = await self.session.get(model, entity.id)
        if row is None:
            logger.info("%s %s already deleted", type(entity).__name__, entity.id)
            return
        await self.session.delete(row)
        await self.session.commit()

    async def purge_logs(self, before: datetime) -> int:
        """Delete log rows created before ``before``; returns the number deleted."""
        result = await self.session.execute(delete(Log).where(Log.created_at < before))
        await self.session.commit()
        return result.rowcount or 0

    async def _write(self, entity: Any) -> Any:
        if isinstance(entity, Subscription):
            saved = await self._write_subscription(entity)
        elif isinstance(entity, Invoice):
            saved = await self._write_invoice(entity)
        elif isinstance(entity, InvoiceItem):
            saved = await self._write_invoice_item(entity)
        else:
            raise TypeError(f"Cannot save {type(entity).__name__}")
        await self.session.commit()
        return saved

    async def _write_subscription(self, subscription: Subscription) -> Subscription:
        row = await self.session.get(OrderProduct, subscription.id)
        if row is None:
            raise MissingRelationError("Subscription", subscription.id, "database row")
        row.status = subscription.status.value
        row.price = subscription.price
        row.billing_cycle = subscription.billing_cycle.value
        row.expiry_date = subscription.expiry_date
        return subscription

    async def _write_invoice(self, invoice: Invoice) -> Invoice:
        if invoice.id is None:
            row = InvoiceRow(
                id=uuid.uuid4(),
                order_id=invoice.order_id,
                user_id=invoice.user_id,
                status=invoice.status.value,
                cancelled_at=invoice.cancelled_at,
                paid_at=invoice.paid_at,
                items=[
                    InvoiceItemRow(
                        id=uuid.uuid4(),
                        order_product_id=item.subscription_id,
                        description=item.description,
                        total=item.total,
                    )
                    for item in invoice.items
                ],
            )
            self.session.add(row)
            await self.session.flush()
            return to_invoice(row)

        row = await self.session.get(InvoiceRow, invoice.id)
        if row is None:
            raise MissingRelationError("Invoice", invoice.id, "database row")
        row.status = invoice.status.value
        row.cancelled_at = invoice.cancelled_at
        row.paid_at = invoice.paid_at
        return invoice

    async def _write_invoice_item(self, item: InvoiceItem) -> InvoiceItem:
        if item.id is None:
            if item.invoice_id is None:
                raise MissingRelationError("InvoiceItem", None, "invoice")
            row = InvoiceItemRow(
                id=uuid.uuid4(),
                invoice_id=item.invoice_id,
                order_product_id=item.subscription_id,
                description=item.description,
                total=item.total,
            )
            self.session.add(row)
            await self.session.flush()
            return to_invoice_item(row)

        row = await self.session.get(InvoiceItemRow, item.id)
        if row is None:
            raise MissingRelationError("InvoiceItem", item.id, "database row")
        row.description = item.description
        row.total = item.total
        return item
