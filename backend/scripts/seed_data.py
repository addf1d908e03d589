"""Seed the database with demo subscriptions covering every cron job branch.

Each demo order product is dated relative to today so that a cron run right
after seeding exercises suspension, cancellation, grace periods, renewal
invoicing and upgrade proration.

Run from the backend directory:
    python -m scripts.seed_data
"""

import asyncio
import sys
from datetime import date, timedelta
from decimal import Decimal
from pathlib import Path

# Add backend to path so imports work when run as a script
sys.path.insert(0, str(Path(__file__).resolve().parent.parent))

from sqlalchemy import delete, select

from orderops.database import async_session_factory, engine
from orderops.models import (
    Cancellation,
    Invoice,
    InvoiceItem,
    Order,
    OrderProduct,
    OrderProductUpgrade,
    Product,
    ProductPrice,
    User,
)

# ---------------------------------------------------------------------------
# Seed data definitions
# ---------------------------------------------------------------------------

DEMO_USER = {
    "email": "demo@orderops.local",
    "name": "Demo Customer",
}

PRODUCTS = [
    {
        "name": "Starter VPS",
        "description": "1 vCPU, 2 GB RAM, 40 GB SSD",
        "prices": {"monthly": "10.00", "quarterly": "28.00", "annually": "100.00"},
    },
    {
        "name": "Pro VPS",
        "description": "4 vCPU, 8 GB RAM, 160 GB SSD",
        "prices": {"monthly": "40.00", "quarterly": "110.00", "annually": "400.00"},
    },
    {
        "name": "Community Forum",
        "description": "Shared forum hosting, free tier",
        "prices": {"free": "0.00"},
    },
]

# (label, product index, cycle, price, status, expiry offset in days, cancellation requested)
ORDER_PRODUCTS = [
    ("active, expired yesterday -> suspend", 0, "monthly", "10.00", "active", -1, False),
    ("active, expired, cancel requested -> cancel", 0, "monthly", "10.00", "active", -2, True),
    ("suspended, inside grace -> keep", 1, "monthly", "40.00", "suspended", -3, False),
    ("suspended, past grace -> cancel", 1, "monthly", "40.00", "suspended", -10, False),
    ("active, expires in 3 days -> invoice", 0, "quarterly", "28.00", "active", 3, False),
    ("active, expires in 30 days -> nothing", 1, "annually", "400.00", "active", 30, False),
    ("free, long expired -> exempt", 2, "free", "0.00", "active", -90, False),
    ("active, upgrading mid-cycle", 0, "monthly", "10.00", "active", 20, False),
]


async def seed() -> None:
    """Populate the database with demo billing data.

    Idempotent: deletes the demo user's orders and re-seeds them.
    """
    async with async_session_factory() as session:
        result = await session.execute(select(User).where(User.email == DEMO_USER["email"]))
        existing_user = result.scalar_one_or_none()

        if existing_user is not None:
            print(f"⚠️  Demo user '{DEMO_USER['email']}' already exists. Deleting and re-seeding...")
            order_ids = select(Order.id).where(Order.user_id == existing_user.id)
            await session.execute(delete(Invoice).where(Invoice.order_id.in_(order_ids)))
            await session.execute(delete(OrderProduct).where(OrderProduct.order_id.in_(order_ids)))
            await session.execute(delete(Order).where(Order.user_id == existing_user.id))
            await session.execute(delete(User).where(User.id == existing_user.id))
            await session.flush()

        await session.execute(delete(Product).where(Product.name.in_([p["name"] for p in PRODUCTS])))
        await session.flush()

        # ------------------------------------------------------------------
        # 1. Customer and products
        # ------------------------------------------------------------------
        user = User(email=DEMO_USER["email"], name=DEMO_USER["name"], is_active=True)
        session.add(user)
        await session.flush()
        print(f"✅ Created demo customer: {user.email} (id={user.id})")

        products: list[Product] = []
        for product_data in PRODUCTS:
            product = Product(name=product_data["name"], description=product_data["description"])
            product.prices = [
                ProductPrice(billing_cycle=cycle, amount=Decimal(amount))
                for cycle, amount in product_data["prices"].items()
            ]
            session.add(product)
            products.append(product)
        await session.flush()
        print(f"✅ Created {len(products)} products")

        # ------------------------------------------------------------------
        # 2. Orders and order products
        # ------------------------------------------------------------------
        today = date.today()
        order = Order(user_id=user.id)
        session.add(order)
        await session.flush()

        created: list[OrderProduct] = []
        for label, product_index, cycle, price, status, offset, cancel in ORDER_PRODUCTS:
            order_product = OrderProduct(
                order_id=order.id,
                product_id=products[product_index].id,
                price=Decimal(price),
                billing_cycle=cycle,
                status=status,
                expiry_date=today + timedelta(days=offset),
            )
            if cancel:
                order_product.cancellation = Cancellation(reason="No longer needed", cancellation_type="end_of_period")
            session.add(order_product)
            created.append(order_product)
            print(f"   📦 {label}")
        await session.flush()

        # ------------------------------------------------------------------
        # 3. Open invoice for the suspended order past grace, and an upgrade
        # ------------------------------------------------------------------
        overdue = Invoice(order_id=order.id, user_id=user.id, status="pending")
        overdue.items = [
            InvoiceItem(order_product_id=created[3].id, description="Pro VPS (overdue)", total=Decimal("40.00"))
        ]
        session.add(overdue)

        upgrade_invoice = Invoice(order_id=order.id, user_id=user.id, status="pending")
        upgrade_invoice.items = [
            InvoiceItem(order_product_id=created[7].id, description="Upgrade to Pro VPS", total=Decimal("0.00"))
        ]
        session.add(upgrade_invoice)
        await session.flush()

        session.add(
            OrderProductUpgrade(
                order_product_id=created[7].id,
                product_id=products[1].id,
                invoice_id=upgrade_invoice.id,
            )
        )
        await session.commit()

        print()
        print("=" * 60)
        print("📊 Seed Summary")
        print("=" * 60)
        print(f"   Customers:      1 ({DEMO_USER['email']})")
        print(f"   Products:       {len(products)}")
        print(f"   Order products: {len(created)}")
        print("   Invoices:       2 (1 overdue, 1 upgrade)")
        print("=" * 60)
        print("Run `orderops cron` to process them.")

    await engine.dispose()


if __name__ == "__main__":
    asyncio.run(seed())
