from datetime import datetime
from typing import List, Literal, Optional, Sequence

from db.models import Customer, Invoice, Product


def _cell(value) -> str:
    # pipes and newlines would break the table row
    return str(value).replace("|", "\\|").replace("\n", " ")


def generate_markdown_table(
    headers: Optional[List[str]],
    rows: List[List[object]],
    aligns: Optional[List[Literal["l", "c", "r"]]] = None,
) -> str:
    """
    Build a Markdown table from rows of values (cells are stringified).
    With ``headers=None`` the first row becomes the header.
    Alignments default to left; must match the column count if given.
    """
    if not rows:
        return ""

    if not headers:
        headers, rows = rows[0], rows[1:]

    header_cells = [_cell(h) for h in headers]
    if aligns is None:
        aligns = ["l"] * len(header_cells)
    elif len(aligns) != len(header_cells):
        raise ValueError("Length of aligns must match number of headers.")

    align_map = {"l": ":---", "c": ":---:", "r": "---:"}
    lines = [
        "| " + " | ".join(header_cells) + " |",
        "| " + " | ".join(align_map[a] for a in aligns) + " |",
    ]
    lines += ["| " + " | ".join(_cell(v) for v in row) + " |" for row in rows]
    return "\n".join(lines)


def _contains(haystack: str, needle: str) -> bool:
    return needle in (haystack or "").lower()


def filter_customers(customers: Sequence[Customer], query: str) -> List[Customer]:
    """Case-insensitive match on name or email; phone matches as typed."""
    q = (query or "").strip()
    if not q:
        return list(customers)
    ql = q.lower()
    return [
        c
        for c in customers
        if _contains(c.name, ql) or _contains(c.email, ql) or q in (c.phone or "")
    ]


def filter_products(products: Sequence[Product], query: str) -> List[Product]:
    q = (query or "").strip().lower()
    return [p for p in products if _contains(p.name, q)]


def filter_invoices(
    invoices: Sequence[Invoice], query: str = "", status: Optional[str] = None
) -> List[Invoice]:
    """
    Narrow invoices by a status (None keeps all) and a search string matched
    against the number, customer name and payment method.
    """
    q = (query or "").strip().lower()
    return [
        inv
        for inv in invoices
        if (status is None or inv.status == status)
        and (
            not q
            or _contains(inv.number, q)
            or _contains(inv.customer.name, q)
            or _contains(inv.payment_method, q)
        )
    ]


DATETIME_INPUT_FORMAT = "%Y-%m-%d %H:%M"


def parse_datetime_input(text: str) -> Optional[datetime]:
    """Parse ``YYYY-MM-DD HH:MM`` (or a bare date, meaning midnight); None if invalid."""
    text = (text or "").strip()
    for fmt in (DATETIME_INPUT_FORMAT, "%Y-%m-%d"):
        try:
            return datetime.strptime(text, fmt)
        except ValueError:
            continue
    return None


def fmt_datetime(value: Optional[datetime]) -> str:
    return value.strftime(DATETIME_INPUT_FORMAT) if value else "-"
