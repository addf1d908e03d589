"""Product catalogue — sellable products and their per-cycle prices."""

import uuid
from decimal import Decimal

from sqlalchemy import ForeignKey, Numeric, String, Text, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from orderops.database import Base, TimestampMixin, UUIDPrimaryKeyMixin


class Product(UUIDPrimaryKeyMixin, TimestampMixin, Base):
    """A product a customer can order (hosting plan, licence, ...)."""

    __tablename__ = "products"

    name: Mapped[str] = mapped_column(String(255), nullable=False)
    description: Mapped[str | None] = mapped_column(Text, default=None)

    # Relationships
    prices: Mapped[list["ProductPrice"]] = relationship(
        back_populates="product", lazy="selectin", cascade="all, delete-orphan"
    )

    def __repr__(self) -> str:
        return f"<Product(id={self.id}, name={self.name!r})>"


class ProductPrice(UUIDPrimaryKeyMixin, Base):
    """Price of a product for one billing cycle."""

    __tablename__ = "product_prices"

    product_id: Mapped[uuid.UUID] = mapped_column(
        ForeignKey("products.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    billing_cycle: Mapped[str] = mapped_column(String(20), nullable=False)
    amount: Mapped[Decimal] = mapped_column(Numeric(10, 2), nullable=False)

    product: Mapped["Product"] = relationship(back_populates="prices")

    __table_args__ = (UniqueConstraint("product_id", "billing_cycle", name="uq_product_prices_cycle"),)

    def __repr__(self) -> str:
        return f"<ProductPrice(product_id={self.product_id}, cycle={self.billing_cycle}, amount={self.amount})>"
