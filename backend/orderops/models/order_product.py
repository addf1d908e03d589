"""Order product model — one provisioned, billable product instance."""

import uuid
from datetime import date
from decimal import Decimal

from sqlalchemy import Date, ForeignKey, Numeric, String, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from orderops.database import Base, TimestampMixin, UUIDPrimaryKeyMixin


class OrderProduct(UUIDPrimaryKeyMixin, TimestampMixin, Base):
    """A subscription: product, price, billing cycle, status and expiry."""

    __tablename__ = "order_products"

    # Nullable so that a deleted order or product leaves the row behind; the
    # cron job reports those as data errors instead of crashing.
    order_id: Mapped[uuid.UUID | None] = mapped_column(
        ForeignKey("orders.id", ondelete="SET NULL"),
        nullable=True,
        index=True,
    )
    product_id: Mapped[uuid.UUID | None] = mapped_column(
        ForeignKey("products.id", ondelete="SET NULL"),
        nullable=True,
        index=True,
    )

    price: Mapped[Decimal] = mapped_column(Numeric(10, 2), nullable=False, server_default="0")
    billing_cycle: Mapped[str] = mapped_column(String(20), nullable=False, server_default="monthly")
    status: Mapped[str] = mapped_column(
        String(50),
        nullable=False,
        server_default="pending",
        index=True,
    )  # pending, active, suspended, cancelled
    expiry_date: Mapped[date] = mapped_column(Date, nullable=False, index=True)

    # Relationships
    order: Mapped["Order | None"] = relationship(lazy="selectin")  # type: ignore[name-defined]  # noqa: F821
    product: Mapped["Product | None"] = relationship(lazy="selectin")  # type: ignore[name-defined]  # noqa: F821
    cancellation: Mapped["Cancellation | None"] = relationship(
        back_populates="order_product", uselist=False, lazy="selectin", cascade="all, delete-orphan"
    )

    def __repr__(self) -> str:
        return f"<OrderProduct(id={self.id}, status={self.status}, expiry_date={self.expiry_date})>"


class Cancellation(UUIDPrimaryKeyMixin, TimestampMixin, Base):
    """A customer's request to cancel an order product."""

    __tablename__ = "order_product_cancellations"

    order_product_id: Mapped[uuid.UUID] = mapped_column(
        ForeignKey("order_products.id", ondelete="CASCADE"),
        unique=True,
        nullable=False,
    )
    reason: Mapped[str | None] = mapped_column(Text, default=None)
    cancellation_type: Mapped[str] = mapped_column(
        String(50), nullable=False, server_default="end_of_period"
    )  # immediate, end_of_period

    order_product: Mapped["OrderProduct"] = relationship(back_populates="cancellation")

    def __repr__(self) -> str:
        return f"<Cancellation(id={self.id}, order_product_id={self.order_product_id})>"
