"""SQLAlchemy models for OrderOps.

All models are imported here so that Alembic's autogenerate can discover
them via Base.metadata. If you add a new model, import it in this file.
"""

from orderops.models.invoice import Invoice, InvoiceItem
from orderops.models.log import Log
from orderops.models.order import Order
from orderops.models.order_product import Cancellation, OrderProduct
from orderops.models.product import Product, ProductPrice
from orderops.models.upgrade import OrderProductUpgrade
from orderops.models.user import User

__all__ = [
    "Cancellation",
    "Invoice",
    "InvoiceItem",
    "Log",
    "Order",
    "OrderProduct",
    "OrderProductUpgrade",
    "Product",
    "ProductPrice",
    "User",
]
