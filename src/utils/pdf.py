# invoice export: plain text lines laid out on letter-sized PDF pages
import io
import os
from typing import List

from core.invoice_calc import format_price
from db.models import Invoice
from utils import config
from utils.errors import DashboardError
from utils.logger import get_logger

_logger = get_logger(__name__)

LINES_PER_PAGE = 48
_LINE_HEIGHT = 14


def _pdf_escape_text(value: str) -> str:
    replacements = [("\\", "\\\\"), ("(", "\\("), (")", "\\)")]
    escaped = value
    for old, new in replacements:
        escaped = escaped.replace(old, new)
    return escaped


def _page_stream(lines: List[str], page_no: int, page_cnt: int) -> bytes:
    commands = ["BT", "/F1 12 Tf", "72 770 Td"]
    for idx, line in enumerate(lines):
        if idx:
            commands.append(f"0 -{_LINE_HEIGHT} Td")
        commands.append(f"({_pdf_escape_text(line)}) Tj")
    commands.append("ET")
    # page footer
    commands += ["BT", "/F1 9 Tf", "520 30 Td", f"({page_no} / {page_cnt}) Tj", "ET"]
    text = "\n".join(commands)
    try:
        return text.encode("latin-1")
    except UnicodeEncodeError as err:
        # the built-in Helvetica font only covers Latin-1
        bad = text[err.start : err.end]
        raise DashboardError(f"Cannot print {bad!r} in a PDF export") from err


def build_pdf(lines: List[str], lines_per_page: int = LINES_PER_PAGE) -> bytes:
    """Render text lines into a PDF, starting a new page every ``lines_per_page``."""
    if not lines:
        lines = [""]
    pages = [lines[i : i + lines_per_page] for i in range(0, len(lines), lines_per_page)]

    # object ids: 1 catalog, 2 page tree, 3 font, then (page, content) pairs
    page_ids = [4 + 2 * i for i in range(len(pages))]

    buffer = io.BytesIO()
    buffer.write(b"%PDF-1.4\n")
    offsets = {}

    def write_obj(obj_id: int, body: bytes) -> None:
        offsets[obj_id] = buffer.tell()
        buffer.write(f"{obj_id} 0 obj\n".encode("latin-1"))
        buffer.write(body)
        if not body.endswith(b"\n"):
            buffer.write(b"\n")
        buffer.write(b"endobj\n")

    kids = " ".join(f"{pid} 0 R" for pid in page_ids)
    write_obj(1, b"<< /Type /Catalog /Pages 2 0 R >>\n")
    write_obj(
        2, f"<< /Type /Pages /Kids [{kids}] /Count {len(pages)} >>\n".encode("latin-1")
    )
    write_obj(3, b"<< /Type /Font /Subtype /Type1 /BaseFont /Helvetica >>\n")
    for no, (page_id, page_lines) in enumerate(zip(page_ids, pages), start=1):
        write_obj(
            page_id,
            (
                f"<< /Type /Page /Parent 2 0 R /MediaBox [0 0 612 792] "
                f"/Contents {page_id + 1} 0 R /Resources << /Font << /F1 3 0 R >> >> >>\n"
            ).encode("latin-1"),
        )
        stream = _page_stream(page_lines, no, len(pages))
        write_obj(
            page_id + 1,
            b"<< /Length %d >>\nstream\n" % len(stream) + stream + b"\nendstream\n",
        )

    obj_cnt = max(offsets)
    xref_offset = buffer.tell()
    buffer.write(f"xref\n0 {obj_cnt + 1}\n".encode("latin-1"))
    buffer.write(b"0000000000 65535 f \n")
    for obj_id in range(1, obj_cnt + 1):
        buffer.write(f"{offsets[obj_id]:010d} 00000 n \n".encode("latin-1"))
    buffer.write(b"trailer\n")
    buffer.write(f"<< /Size {obj_cnt + 1} /Root 1 0 R >>\n".encode("latin-1"))
    buffer.write(b"startxref\n")
    buffer.write(f"{xref_offset}\n".encode("latin-1"))
    buffer.write(b"%%EOF\n")
    return buffer.getvalue()


def invoice_document_lines(invoice: Invoice, brand: str = config.BRAND) -> List[str]:
    """The printable content of an invoice, one string per line."""
    cust = invoice.customer
    lines: List[str] = [
        brand,
        "",
        f"Invoice number: {invoice.number}",
        f"Date: {invoice.created_at:%Y-%m-%d}",
        "",
        "Customer:",
        f"  Name: {cust.name}",
        f"  Email: {cust.email or '-'}",
        f"  Phone: {cust.phone or '-'}",
        f"  Address: {cust.address or '-'}",
        "",
        "Items:",
    ]
    for item in invoice.items:
        lines.append(f"  {item.product_name}")
        lines.append(f"    Quantity: {item.quantity}")
        lines.append(f"    Unit price: {format_price(item.unit_price)}")
        lines.append(f"    Line total: {format_price(item.line_total)}")
        if item.contract_end:
            lines.append(
                f"    Contract: {item.contract_start:%Y-%m-%d} - {item.contract_end:%Y-%m-%d}"
            )
    lines += [
        "",
        f"Invoice total: {format_price(invoice.total)}",
        f"Payment status: {invoice.status}",
        f"Payment method: {invoice.payment_method or '-'}",
    ]
    return lines


def export_invoice_pdf(invoice: Invoice, directory: str = config.EXPORT_DIR) -> str:
    """Write ``invoice-<number>.pdf`` into ``directory`` and return its path."""
    path = os.path.join(directory, f"invoice-{invoice.number}.pdf")
    data = build_pdf(invoice_document_lines(invoice))
    try:
        os.makedirs(directory, exist_ok=True)
        with open(path, "wb") as f:
            f.write(data)
    except OSError as err:
        _logger.error(f"Export of {invoice.number} failed: {err}")
        raise DashboardError(f"Could not write {path}") from err
    _logger.info(f"Exported invoice {invoice.number} to {path}")
    return path
