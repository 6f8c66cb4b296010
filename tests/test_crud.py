import os
import re
import sqlite3
import sys
import tempfile
import unittest
from contextlib import asynccontextmanager
from datetime import datetime, timedelta
from unittest import mock

# Ensure project src/ is on sys.path for imports
ROOT = os.path.abspath(os.path.join(os.path.dirname(__file__), os.pardir))
src_path = os.path.join(ROOT, "src")
if src_path not in sys.path:
    sys.path.insert(0, src_path)

from db import crud  # noqa: E402
from db import database as db_database  # noqa: E402
from db import models  # noqa: E402
from db.access import SqliteDataAccess  # noqa: E402
from db.seed import DEMO_EMAIL, DEMO_PASSWORD, seed_demo  # noqa: E402
from utils.errors import (  # noqa: E402
    RemoteOperationFailed,
    Unauthenticated,
    ValidationFailed,
    attempt,
)

NOW = datetime(2025, 3, 15, 12, 0, 0)


def physical(name="Desk Lamp", price=10.0, stock=5, purchase=4.0):
    return models.ProductDraft(
        name=name,
        selling_price=price,
        details=models.PhysicalDetails(stock=stock, purchase_price=purchase),
    )


def subscription(name="Web Hosting", price=30.0, duration="1-month"):
    return models.ProductDraft(
        name=name,
        selling_price=price,
        details=models.SubscriptionDetails(details="10 GB", contract_duration=duration),
    )


class CrudTestCase(unittest.IsolatedAsyncioTestCase):
    def setUp(self):
        # Point the DB to a temporary file and force re-initialization
        self.temp_dir = tempfile.TemporaryDirectory()
        self.db_path = os.path.join(self.temp_dir.name, "test.sqlite")
        self._orig_db_path = db_database.DB_PATH
        db_database.use_database(self.db_path)

    async def asyncSetUp(self):
        self.backend = SqliteDataAccess()
        await crud.register_user(self.backend, "owner@example.com", "secret1", NOW)
        self.user = await crud.login(self.backend, "owner@example.com", "secret1", NOW)

    def tearDown(self):
        db_database.use_database(self._orig_db_path)
        self.temp_dir.cleanup()

    async def _second_user(self) -> SqliteDataAccess:
        other = SqliteDataAccess()
        await crud.register_user(other, "other@example.com", "secret2", NOW)
        await crud.login(other, "other@example.com", "secret2", NOW)
        return other

    async def _invoice(self, lines, now=NOW, **kwargs) -> models.Invoice:
        return await crud.create_invoice(
            self.backend, models.CustomerSnapshot(name="Alice"), lines, now, **kwargs
        )

    # ---------- Auth & registration ----------

    async def test_register_login_and_logout(self):
        self.assertIsNotNone(self.user)
        self.assertEqual(self.backend.current_user_id(), self.user.id)
        self.assertFalse(await crud.email_available(self.backend, "owner@example.com"))
        self.assertTrue(await crud.email_available(self.backend, "new@example.com"))

        fresh = SqliteDataAccess()
        self.assertIsNone(await crud.login(fresh, "owner@example.com", "wrong!"))
        self.assertIsNone(fresh.session)

        # emails are matched case-insensitively
        user = await crud.login(fresh, "  OWNER@Example.com ", "secret1")
        self.assertEqual(user.id, self.user.id)
        self.assertEqual(fresh.session.email, "owner@example.com")

        crud.logout(fresh)
        self.assertIsNone(fresh.current_user_id())

        got = await crud.get_user(self.backend, self.user.id)
        self.assertEqual(got.email, "owner@example.com")
        self.assertIsNone(await crud.get_user(self.backend, 424242))

    async def test_register_rejects_bad_input(self):
        with self.assertRaises(ValidationFailed):
            await crud.register_user(self.backend, "owner@example.com", "secret1")
        with self.assertRaises(ValidationFailed):
            await crud.register_user(self.backend, "not-an-email", "secret1")
        with self.assertRaises(ValidationFailed):
            await crud.register_user(self.backend, "short@example.com", "123")
        self.assertTrue(await crud.email_available(self.backend, "short@example.com"))

    async def test_passwords_are_not_stored_in_plain_text(self):
        async with db_database.connect() as conn:
            cur = await conn.execute("SELECT pwd_hash FROM users;")
            (stored,) = await cur.fetchone()
            await cur.close()
        self.assertNotIn("secret1", stored)
        self.assertTrue(crud._verify_password("secret1", stored))
        self.assertFalse(crud._verify_password("secret2", stored))
        self.assertTrue(stored.startswith("$pbkdf2-sha256$"))
        self.assertFalse(crud._verify_password("secret1", "not-a-hash"))

    async def test_operations_require_a_session(self):
        anon = SqliteDataAccess()
        with self.assertRaises(Unauthenticated):
            await crud.list_customers(anon)
        with self.assertRaises(Unauthenticated):
            await crud.create_customer(anon, "Bob", "bob@example.com", "123")
        with self.assertRaises(Unauthenticated):
            await crud.list_subscription_watches(anon, NOW)

        _, error = await attempt("load customers", crud.list_customers(anon))
        self.assertEqual(error, "User not authenticated")

    # ---------- Customers ----------

    async def test_customer_crud(self):
        older = await crud.create_customer(
            self.backend, "Alice", "alice@example.com", "+968 1", "Muscat", NOW
        )
        newer = await crud.create_customer(
            self.backend, "Bob", "bob@example.com", "+968 2", now=NOW + timedelta(hours=1)
        )
        self.assertEqual(
            [c.id for c in await crud.list_customers(self.backend)], [newer.id, older.id]
        )

        await crud.update_customer(
            self.backend, older.id, "Alice H", "alice@example.com", "+968 1", "Sohar"
        )
        got = await crud.get_customer(self.backend, older.id)
        self.assertEqual((got.name, got.address), ("Alice H", "Sohar"))

        await crud.delete_customers(self.backend, [older.id])
        self.assertIsNone(await crud.get_customer(self.backend, older.id))
        self.assertEqual(len(await crud.list_customers(self.backend)), 1)

    async def test_customer_requires_name_email_and_phone(self):
        with self.assertRaises(ValidationFailed):
            await crud.create_customer(self.backend, "Alice", "alice@example.com", "  ")
        with self.assertRaises(ValidationFailed):
            await crud.create_customer(self.backend, "", "alice@example.com", "123")
        self.assertEqual(await crud.list_customers(self.backend), [])

    async def test_records_are_scoped_to_owner(self):
        mine = await crud.create_customer(
            self.backend, "Alice", "alice@example.com", "123", now=NOW
        )
        other = await self._second_user()

        self.assertEqual(await crud.list_customers(other), [])
        self.assertIsNone(await crud.get_customer(other, mine.id))

        # other users can neither delete nor edit my records
        await crud.delete_customers(other, [mine.id])
        with self.assertRaises(RemoteOperationFailed):
            await crud.update_customer(other, mine.id, "X", "x@example.com", "1")
        got = await crud.get_customer(self.backend, mine.id)
        self.assertEqual(got.name, "Alice")

    # ---------- Products ----------

    async def test_product_variants(self):
        lamp = await crud.create_product(self.backend, physical(), NOW)
        hosting = await crud.create_product(self.backend, subscription(), NOW)

        self.assertIsInstance(lamp.details, models.PhysicalDetails)
        self.assertEqual(lamp.details.stock, 5)
        self.assertFalse(lamp.is_subscription)
        self.assertIsInstance(hosting.details, models.SubscriptionDetails)
        self.assertEqual(hosting.details.contract_duration, "1-month")
        self.assertTrue(hosting.is_subscription)

        async with db_database.connect() as conn:
            cur = await conn.execute(
                "SELECT subscription_details, contract_duration FROM products WHERE id=?;",
                (lamp.id,),
            )
            row = await cur.fetchone()
            await cur.close()
        self.assertEqual(tuple(row), (None, None))

    async def test_storage_rejects_mixed_product_fields(self):
        record = physical().to_record()
        record.update(
            contract_duration="1-month",
            created_at=NOW,
            owner_id=self.user.id,
        )
        with self.assertRaises(RemoteOperationFailed):
            await self.backend.insert("products", record)

    async def test_product_validation(self):
        with self.assertRaises(ValidationFailed):
            await crud.create_product(self.backend, physical(price=-1.0), NOW)
        with self.assertRaises(ValidationFailed):
            await crud.create_product(self.backend, physical(stock=-2), NOW)
        with self.assertRaises(ValidationFailed):
            await crud.create_product(self.backend, subscription(duration="2-weeks"), NOW)
        with self.assertRaises(ValidationFailed):
            await crud.create_product(self.backend, physical(name="  "), NOW)
        self.assertEqual(await crud.list_products(self.backend), [])

    async def test_product_price_and_status(self):
        lamp = await crud.create_product(self.backend, physical(), NOW)
        await crud.update_product_price(self.backend, lamp.id, 12.5)
        self.assertEqual((await crud.get_product(self.backend, lamp.id)).selling_price, 12.5)
        with self.assertRaises(ValidationFailed):
            await crud.update_product_price(self.backend, lamp.id, -3)

        await crud.set_product_status(self.backend, lamp.id, "inactive")
        self.assertEqual(await crud.list_products(self.backend, active_only=True), [])
        self.assertEqual(len(await crud.list_products(self.backend)), 1)
        with self.assertRaises(ValidationFailed):
            await crud.set_product_status(self.backend, lamp.id, "archived")

    # ---------- Invoices ----------

    async def test_invoice_total_and_number(self):
        a = await crud.create_product(self.backend, physical("A", price=10.0), NOW)
        b = await crud.create_product(self.backend, physical("B", price=5.0), NOW)

        inv = await self._invoice(
            [models.InvoiceLineDraft(a, 2), models.InvoiceLineDraft(b, 1)]
        )
        self.assertAlmostEqual(inv.total, 25.0)
        self.assertEqual([i.position for i in inv.items], [1, 2])
        self.assertEqual([i.product_name for i in inv.items], ["A", "B"])
        self.assertRegex(inv.number, r"^INV-\d+-00001$")

        second = await self._invoice([models.InvoiceLineDraft(b)])
        self.assertRegex(second.number, r"^INV-\d+-00002$")
        self.assertNotEqual(inv.number, second.number)

    async def test_invoice_keeps_prices_and_customer_at_creation(self):
        customer = await crud.create_customer(
            self.backend, "Alice", "alice@example.com", "123", "Muscat", NOW
        )
        lamp = await crud.create_product(self.backend, physical(price=10.0), NOW)
        inv = await crud.create_invoice(
            self.backend,
            models.CustomerSnapshot.of(customer),
            [models.InvoiceLineDraft(lamp, 3)],
            NOW,
        )

        await crud.update_product_price(self.backend, lamp.id, 99.0)
        await crud.update_customer(
            self.backend, customer.id, "Alicia", "new@example.com", "999"
        )

        got = await crud.get_invoice(self.backend, inv.id)
        self.assertEqual(got.items[0].unit_price, 10.0)
        self.assertAlmostEqual(got.total, 30.0)
        self.assertEqual(got.customer.name, "Alice")
        self.assertEqual(got.customer.address, "Muscat")

    async def test_invoice_rejects_bad_input(self):
        lamp = await crud.create_product(self.backend, physical(), NOW)
        with self.assertRaises(ValidationFailed):
            await self._invoice([])
        with self.assertRaises(ValidationFailed):
            await self._invoice([models.InvoiceLineDraft(lamp, 0)])
        with self.assertRaises(ValidationFailed):
            await self._invoice([models.InvoiceLineDraft(lamp)], status="Refunded")
        with self.assertRaises(ValidationFailed):
            await crud.create_invoice(
                self.backend, models.CustomerSnapshot(name=" "), [models.InvoiceLineDraft(lamp)]
            )
        await crud.set_product_status(self.backend, lamp.id, "inactive")
        retired = await crud.get_product(self.backend, lamp.id)
        with self.assertRaises(ValidationFailed):
            await self._invoice([models.InvoiceLineDraft(retired)])
        self.assertEqual(await crud.list_invoices(self.backend), [])

    async def test_invoice_rejects_products_of_other_users(self):
        other = await self._second_user()
        theirs = await crud.create_product(other, physical(), NOW)
        with self.assertRaises(ValidationFailed):
            await self._invoice([models.InvoiceLineDraft(theirs)])

    async def test_invoice_uses_stored_product_not_form_copy(self):
        lamp = await crud.create_product(self.backend, physical(price=10.0), NOW)
        draft = models.InvoiceLineDraft(lamp, 2)

        # repriced after the form loaded the product
        await crud.update_product_price(self.backend, lamp.id, 12.5)
        inv = await self._invoice([draft])
        self.assertEqual(inv.items[0].unit_price, 12.5)
        self.assertAlmostEqual(inv.total, 25.0)

        # retired after the form loaded the product
        await crud.set_product_status(self.backend, lamp.id, "inactive")
        with self.assertRaises(ValidationFailed):
            await self._invoice([draft])
        self.assertEqual(len(await crud.list_invoices(self.backend)), 1)

    async def test_invoice_order_keeps_sub_second_times(self):
        lamp = await crud.create_product(self.backend, physical(), NOW)
        later = await self._invoice(
            [models.InvoiceLineDraft(lamp)], NOW + timedelta(milliseconds=500)
        )
        earlier = await self._invoice([models.InvoiceLineDraft(lamp)], NOW)

        listed = await crud.list_invoices(self.backend)
        self.assertEqual([i.id for i in listed], [later.id, earlier.id])
        self.assertEqual(listed[0].created_at, NOW + timedelta(milliseconds=500))

    async def test_failed_item_insert_leaves_no_invoice(self):
        lamp = await crud.create_product(self.backend, physical(), NOW)

        class FlakyAccess(SqliteDataAccess):
            async def insert(self, table, record):
                if table == "invoice_items":
                    raise RemoteOperationFailed("disk full")
                return await super().insert(table, record)

        flaky = FlakyAccess(self.backend.session)
        with self.assertRaises(RemoteOperationFailed):
            await crud.create_invoice(
                flaky, models.CustomerSnapshot(name="Alice"), [models.InvoiceLineDraft(lamp)]
            )
        self.assertEqual(await crud.list_invoices(self.backend), [])

    async def test_delete_invoices_removes_exactly_those(self):
        lamp = await crud.create_product(self.backend, physical(), NOW)
        invs = [
            await self._invoice([models.InvoiceLineDraft(lamp)], NOW + timedelta(minutes=i))
            for i in range(3)
        ]
        await crud.delete_invoices(self.backend, [invs[0].id, invs[2].id])

        remaining = await crud.list_invoices(self.backend)
        self.assertEqual([i.id for i in remaining], [invs[1].id])
        async with db_database.connect() as conn:
            cur = await conn.execute("SELECT DISTINCT invoice_id FROM invoice_items;")
            rows = await cur.fetchall()
            await cur.close()
        self.assertEqual([r[0] for r in rows], [invs[1].id])

    async def test_invoice_status_and_listing(self):
        lamp = await crud.create_product(self.backend, physical(), NOW)
        first = await self._invoice([models.InvoiceLineDraft(lamp)], NOW)
        second = await self._invoice(
            [models.InvoiceLineDraft(lamp)], NOW + timedelta(days=1), status="Pending",
            payment_method="Cash",
        )
        self.assertEqual(
            [i.id for i in await crud.list_invoices(self.backend)], [second.id, first.id]
        )

        await crud.update_invoice_status(self.backend, second.id, "Failed")
        got = await crud.get_invoice(self.backend, second.id)
        self.assertEqual((got.status, got.payment_method), ("Failed", "Cash"))
        with self.assertRaises(ValidationFailed):
            await crud.update_invoice_status(self.backend, second.id, "Lost")
        with self.assertRaises(RemoteOperationFailed):
            await crud.update_invoice_status(self.backend, 424242, "Completed")

    async def test_subscription_items_get_contract_window(self):
        monthly = await crud.create_product(self.backend, subscription(), NOW)
        forever = await crud.create_product(
            self.backend, subscription("Licence", duration="lifetime"), NOW
        )
        lamp = await crud.create_product(self.backend, physical(), NOW)
        jan_31 = datetime(2025, 1, 31, 9, 0)
        inv = await self._invoice(
            [
                models.InvoiceLineDraft(monthly),
                models.InvoiceLineDraft(forever),
                models.InvoiceLineDraft(lamp),
            ],
            jan_31,
        )
        monthly_item, forever_item, lamp_item = inv.items
        self.assertTrue(inv.has_subscription)
        self.assertEqual(monthly_item.contract_start, jan_31)
        self.assertEqual(monthly_item.contract_end, datetime(2025, 2, 28, 9, 0))
        self.assertIsNone(forever_item.contract_end)
        self.assertIsNone(lamp_item.contract_start)

    # ---------- Subscription watches ----------

    async def test_subscription_watches(self):
        monthly = await crud.create_product(self.backend, subscription(), NOW)
        yearly = await crud.create_product(
            self.backend, subscription("Support", duration="1-year"), NOW
        )
        lamp = await crud.create_product(self.backend, physical(), NOW)

        soon = await self._invoice([models.InvoiceLineDraft(monthly)], NOW - timedelta(days=26))
        gone = await self._invoice([models.InvoiceLineDraft(monthly)], NOW - timedelta(days=40))
        fine = await self._invoice(
            [models.InvoiceLineDraft(yearly), models.InvoiceLineDraft(lamp)],
            NOW - timedelta(days=3),
        )
        # only completed invoices count
        await self._invoice([models.InvoiceLineDraft(monthly)], NOW, status="Pending")

        other = await self._second_user()
        theirs = await crud.create_product(other, subscription(), NOW)
        await crud.create_invoice(
            other,
            models.CustomerSnapshot(name="Zed"),
            [models.InvoiceLineDraft(theirs)],
            NOW - timedelta(days=26),
        )

        watches = await crud.list_subscription_watches(self.backend, NOW)
        self.assertEqual(
            [(w.invoice_number, w.status) for w in watches],
            [
                (gone.number, "expired"),
                (soon.number, "expiring_soon"),
                (fine.number, "active"),
            ],
        )
        self.assertEqual([w.days_remaining for w in watches[:2]], [-12, 2])
        self.assertEqual(watches[0].product_name, "Web Hosting")
        self.assertEqual(watches[0].customer_name, "Alice")

        # a status change moves the invoice out of the watch list
        await crud.update_invoice_status(self.backend, gone.id, "Failed")
        watches = await crud.list_subscription_watches(self.backend, NOW)
        self.assertNotIn(gone.number, [w.invoice_number for w in watches])

    # ---------- Calendar events ----------

    async def test_events(self):
        day = datetime(2025, 1, 10)
        ev = await crud.create_event(
            self.backend,
            "Supplier call",
            "",
            day.replace(hour=10),
            day.replace(hour=12),
            NOW,
        )
        self.assertIsNone(ev.status)

        for hour, expected in ((9, "upcoming"), (11, "ongoing"), (13, "completed")):
            (got,) = await crud.list_events(self.backend, day.replace(hour=hour))
            self.assertEqual(got.status, expected)

        with self.assertRaises(ValidationFailed):
            await crud.create_event(
                self.backend, "Bad", "", day.replace(hour=12), day.replace(hour=10), NOW
            )
        with self.assertRaises(ValidationFailed):
            await crud.create_event(self.backend, "", "", day, day, NOW)

        await crud.delete_event(self.backend, ev.id)
        self.assertEqual(await crud.list_events(self.backend, NOW), [])

    async def test_events_are_ordered_by_start(self):
        later = await crud.create_event(
            self.backend, "Later", "", NOW + timedelta(days=2), NOW + timedelta(days=3), NOW
        )
        sooner = await crud.create_event(
            self.backend, "Sooner", "", NOW + timedelta(days=1), NOW + timedelta(days=1), NOW
        )
        self.assertEqual(
            [e.id for e in await crud.list_events(self.backend, NOW)], [sooner.id, later.id]
        )

    # ---------- Overview ----------

    async def test_dashboard_summary(self):
        await crud.create_customer(self.backend, "Alice", "a@example.com", "1", now=NOW)
        lamp = await crud.create_product(self.backend, physical(price=10.0), NOW)
        monthly = await crud.create_product(self.backend, subscription(price=30.0), NOW)
        await self._invoice([models.InvoiceLineDraft(lamp, 2)], status="Pending")
        await crud.set_product_status(self.backend, lamp.id, "inactive")
        await self._invoice([models.InvoiceLineDraft(monthly)], NOW - timedelta(days=26))
        await crud.create_event(
            self.backend, "Call", "", NOW + timedelta(hours=1), NOW + timedelta(hours=2), NOW
        )

        summary = await crud.dashboard_summary(self.backend, NOW)
        self.assertEqual(summary["customers"], 1)
        self.assertEqual(summary["products"], 2)
        self.assertEqual(summary["active_products"], 1)
        self.assertEqual(summary["invoices"], 2)
        self.assertAlmostEqual(summary["revenue_total"], 50.0)
        self.assertAlmostEqual(summary["pending_total"], 20.0)
        self.assertAlmostEqual(summary["completed_total"], 30.0)
        self.assertAlmostEqual(summary["failed_total"], 0.0)
        self.assertEqual(summary["upcoming_events"], 1)
        self.assertEqual(summary["expiring_soon"], 1)
        self.assertEqual(summary["expired"], 0)

    # ---------- Failures ----------

    async def test_backend_failure_is_reported(self):
        @asynccontextmanager
        async def broken_connect():
            raise sqlite3.OperationalError("database is locked")
            yield  # pragma: no cover

        with mock.patch.object(db_database, "connect", broken_connect):
            with self.assertRaises(RemoteOperationFailed):
                await crud.list_customers(self.backend)
            result, error = await attempt(
                "load customers", crud.list_customers(self.backend)
            )
        self.assertIsNone(result)
        self.assertEqual(error, "Failed to load customers")

    async def test_validation_failure_message_names_the_problem(self):
        _, error = await attempt(
            "create customer", crud.create_customer(self.backend, "", "", "")
        )
        self.assertIn("name", error)

    # ---------- Demo data ----------

    async def test_seed_demo(self):
        fresh = SqliteDataAccess()
        self.assertTrue(await seed_demo(fresh, NOW))
        self.assertIsNone(fresh.session)
        self.assertFalse(await seed_demo(fresh, NOW))

        await crud.login(fresh, DEMO_EMAIL, DEMO_PASSWORD, NOW)
        statuses = {w.status for w in await crud.list_subscription_watches(fresh, NOW)}
        self.assertEqual(statuses, {"active", "expiring_soon", "expired"})
        self.assertEqual(len(await crud.list_customers(fresh)), 2)
        self.assertTrue(
            all(re.match(r"^INV-\d+-\d{5}$", i.number) for i in await crud.list_invoices(fresh))
        )


if __name__ == "__main__":
    unittest.main()
