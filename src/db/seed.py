# demo account and sample records for a fresh database
from datetime import datetime, timedelta

from db import crud, models
from db.access import DataAccess
from utils.logger import get_logger

_logger = get_logger(__name__)

DEMO_EMAIL = "demo@example.com"
DEMO_PASSWORD = "demo1234"


async def seed_demo(backend: DataAccess, now: datetime) -> bool:
    """
    Create the demo account with a few customers, products, invoices and
    events. Does nothing if the account already exists.
    Returns True if data was created.
    """
    if not await crud.email_available(backend, DEMO_EMAIL):
        return False

    _logger.info("Seeding demo data...")
    await crud.register_user(backend, DEMO_EMAIL, DEMO_PASSWORD, now)
    await crud.login(backend, DEMO_EMAIL, DEMO_PASSWORD, now)
    try:
        alice = await crud.create_customer(
            backend, "Alice Harthy", "alice@example.com", "+968 9000 1111", "Muscat", now
        )
        bob = await crud.create_customer(
            backend, "Bob Said", "bob@example.com", "+968 9000 2222", "Sohar", now
        )
        lamp = await crud.create_product(
            backend,
            models.ProductDraft(
                name="Desk Lamp",
                selling_price=12.5,
                details=models.PhysicalDetails(stock=40, purchase_price=7.25),
            ),
            now,
        )
        hosting = await crud.create_product(
            backend,
            models.ProductDraft(
                name="Web Hosting",
                selling_price=30.0,
                details=models.SubscriptionDetails(
                    details="10 GB, daily backups", contract_duration="1-month"
                ),
            ),
            now,
        )
        support = await crud.create_product(
            backend,
            models.ProductDraft(
                name="Support Plan",
                selling_price=120.0,
                details=models.SubscriptionDetails(
                    details="Business hours support", contract_duration="1-year"
                ),
            ),
            now,
        )

        # back-dated so the notifications screen has one of each state
        await crud.create_invoice(
            backend,
            models.CustomerSnapshot.of(alice),
            [models.InvoiceLineDraft(hosting), models.InvoiceLineDraft(lamp, 2)],
            now - timedelta(days=26),
        )
        await crud.create_invoice(
            backend,
            models.CustomerSnapshot.of(bob),
            [models.InvoiceLineDraft(hosting)],
            now - timedelta(days=40),
        )
        await crud.create_invoice(
            backend,
            models.CustomerSnapshot.of(bob),
            [models.InvoiceLineDraft(support)],
            now - timedelta(days=3),
        )
        await crud.create_invoice(
            backend,
            models.CustomerSnapshot.of(alice),
            [models.InvoiceLineDraft(lamp, 1)],
            now - timedelta(days=1),
            status="Pending",
            payment_method="Cash",
        )

        day = now.replace(hour=10, minute=0, second=0, microsecond=0)
        await crud.create_event(
            backend,
            "Supplier call",
            "Restock desk lamps",
            day + timedelta(days=1),
            day + timedelta(days=1, hours=1),
            now,
        )
        await crud.create_event(
            backend,
            "Inventory count",
            "Quarterly stock take",
            day - timedelta(days=2),
            day - timedelta(days=2, hours=-3),
            now,
        )
    finally:
        crud.logout(backend)
    return True
