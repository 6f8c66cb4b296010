import dataclasses
import os
import re
import sys
import tempfile
import unittest
from datetime import datetime

ROOT = os.path.abspath(os.path.join(os.path.dirname(__file__), os.pardir))
src_path = os.path.join(ROOT, "src")
if src_path not in sys.path:
    sys.path.insert(0, src_path)

from db import models  # noqa: E402
from utils.errors import DashboardError  # noqa: E402
from utils.pdf import build_pdf, export_invoice_pdf, invoice_document_lines  # noqa: E402

CREATED = datetime(2025, 1, 10, 9, 0)


def make_invoice() -> models.Invoice:
    hosting = models.Product(
        id=2,
        name="Web Hosting",
        selling_price=30.0,
        details=models.SubscriptionDetails(details="10 GB", contract_duration="1-month"),
        status="active",
        created_at=CREATED,
        owner_id=1,
    )
    lamp = models.Product(
        id=1,
        name="Desk Lamp (LED)",
        selling_price=12.5,
        details=models.PhysicalDetails(stock=3, purchase_price=7.0),
        status="active",
        created_at=CREATED,
        owner_id=1,
    )
    items = (
        models.InvoiceItem(
            id=1, invoice_id=7, product_id=1, quantity=2, unit_price=12.5, position=1,
            product=lamp,
        ),
        models.InvoiceItem(
            id=2, invoice_id=7, product_id=2, quantity=1, unit_price=30.0, position=2,
            contract_start=CREATED, contract_end=datetime(2025, 2, 10, 9, 0),
            product=hosting,
        ),
    )
    return models.Invoice(
        id=7,
        number="INV-1736500000000-00001",
        customer=models.CustomerSnapshot(
            name="Alice", email="alice@example.com", phone="+968 1", address=""
        ),
        items=items,
        total=55.0,
        created_at=CREATED,
        status="Completed",
        payment_method="Cash",
        owner_id=1,
    )


class BuildPdfTestCase(unittest.TestCase):
    def test_document_structure(self):
        pdf = build_pdf(["hello", "world"])
        self.assertTrue(pdf.startswith(b"%PDF-1.4\n"))
        self.assertTrue(pdf.endswith(b"%%EOF\n"))
        self.assertIn(b"/Count 1", pdf)
        self.assertIn(b"(hello) Tj", pdf)

    def test_xref_offsets_point_at_objects(self):
        pdf = build_pdf([f"line {i}" for i in range(60)], lines_per_page=25)
        xref_at = int(pdf.rsplit(b"startxref\n", 1)[1].split(b"\n")[0])
        self.assertTrue(pdf[xref_at:].startswith(b"xref\n"))
        entries = re.findall(rb"(\d{10}) 00000 n ", pdf[xref_at:])
        self.assertEqual(len(entries), 3 + 2 * 3)
        for obj_id, offset in enumerate(entries, start=1):
            self.assertTrue(pdf[int(offset):].startswith(b"%d 0 obj" % obj_id))

    def test_pages_split(self):
        pdf = build_pdf([f"line {i}" for i in range(100)], lines_per_page=48)
        self.assertIn(b"/Count 3", pdf)
        self.assertIn(b"(3 / 3) Tj", pdf)
        self.assertEqual(pdf.count(b"/Type /Page "), 3)

    def test_text_is_escaped(self):
        pdf = build_pdf(["a (b) c\\d"])
        self.assertIn(b"(a \\(b\\) c\\\\d) Tj", pdf)

    def test_empty_document_has_one_page(self):
        self.assertIn(b"/Count 1", build_pdf([]))

    def test_latin1_accents_are_kept(self):
        self.assertIn("(Café) Tj".encode("latin-1"), build_pdf(["Café"]))

    def test_text_outside_font_is_rejected(self):
        with self.assertRaises(DashboardError) as ctx:
            build_pdf(["Name: محمد"])
        self.assertIn("محمد", ctx.exception.message)


class InvoiceDocumentTestCase(unittest.TestCase):
    def test_lines(self):
        lines = invoice_document_lines(make_invoice(), brand="ACME")
        self.assertEqual(lines[0], "ACME")
        self.assertIn("Invoice number: INV-1736500000000-00001", lines)
        self.assertIn("Date: 2025-01-10", lines)
        self.assertIn("  Address: -", lines)
        self.assertIn("    Line total: 25.000 OMR", lines)
        self.assertIn("    Contract: 2025-01-10 - 2025-02-10", lines)
        self.assertIn("Invoice total: 55.000 OMR", lines)
        self.assertIn("Payment status: Completed", lines)
        # one contract line, for the subscription only
        self.assertEqual(sum(1 for line in lines if "Contract:" in line), 1)

    def test_export_writes_file(self):
        with tempfile.TemporaryDirectory() as tmp:
            out_dir = os.path.join(tmp, "exports")
            path = export_invoice_pdf(make_invoice(), out_dir)
            self.assertEqual(
                path, os.path.join(out_dir, "invoice-INV-1736500000000-00001.pdf")
            )
            with open(path, "rb") as f:
                data = f.read()
        self.assertTrue(data.startswith(b"%PDF"))
        self.assertIn(b"Desk Lamp \\(LED\\)", data)

    def test_export_failure_is_reported(self):
        with tempfile.NamedTemporaryFile() as not_a_dir:
            with self.assertRaises(DashboardError):
                export_invoice_pdf(make_invoice(), not_a_dir.name)

    def test_unprintable_name_writes_no_file(self):
        invoice = dataclasses.replace(
            make_invoice(), customer=models.CustomerSnapshot(name="محمد")
        )
        with tempfile.TemporaryDirectory() as tmp:
            with self.assertRaises(DashboardError):
                export_invoice_pdf(invoice, tmp)
            self.assertEqual(os.listdir(tmp), [])


if __name__ == "__main__":
    unittest.main()
