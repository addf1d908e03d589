"""Order product upgrade — a pending mid-cycle product change."""

import uuid

from sqlalchemy import ForeignKey
from sqlalchemy.orm import Mapped, mapped_column, relationship

from orderops.database import Base, TimestampMixin, UUIDPrimaryKeyMixin


class OrderProductUpgrade(UUIDPrimaryKeyMixin, TimestampMixin, Base):
    """Switch of an order product to another product, billed on its own invoice."""

    __tablename__ = "order_product_upgrades"

    order_product_id: Mapped[uuid.UUID] = mapped_column(
        ForeignKey("order_products.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    product_id: Mapped[uuid.UUID] = mapped_column(
        ForeignKey("products.id", ondelete="CASCADE"),
        nullable=False,
    )
    invoice_id: Mapped[uuid.UUID] = mapped_column(
        ForeignKey("invoices.id", ondelete="CASCADE"),
        nullable=False,
    )

    # Relationships
    order_product: Mapped["OrderProduct"] = relationship(lazy="selectin")  # type: ignore[name-defined]  # noqa: F821

    def __repr__(self) -> str:
        return f"<OrderProductUpgrade(id={self.id}, order_product_id={self.order_product_id})>"
