# invoice arithmetic, numbering and money formatting
from __future__ import annotations

import time
from typing import Iterable, Optional, Protocol, Tuple

from utils.config import CURRENCY, PRICE_DECIMALS
from utils.errors import ValidationFailed


class Priced(Protocol):
    unit_price: float
    quantity: int


class Totalled(Protocol):
    total: float
    status: str


def line_total(unit_price: float, quantity: int) -> float:
    """Price of one invoice line. Quantity must be a positive integer."""
    if isinstance(quantity, bool) or not isinstance(quantity, int) or quantity < 1:
        raise ValidationFailed(f"Quantity must be at least 1 (got {quantity!r}).")
    return unit_price * quantity


def invoice_total(items: Iterable[Priced | Tuple[float, int]]) -> float:
    """
    Sum of line totals; accepts item objects or ``(unit_price, quantity)``
    pairs. An empty invoice totals 0.
    """
    total = 0.0
    for item in items:
        if isinstance(item, tuple):
            price, qty = item
        else:
            price, qty = item.unit_price, item.quantity
        total += line_total(price, qty)
    return total


def next_invoice_number(existing_count: int, clock_ms: int) -> str:
    return f"INV-{clock_ms}-{existing_count + 1:05d}"


class InvoiceNumberSequence:
    """
    Hands out invoice numbers whose timestamp part strictly increases,
    so two numbers issued by one process never collide.
    """

    def __init__(self) -> None:
        self._last_ms = 0

    def next(self, existing_count: int, clock_ms: Optional[int] = None) -> str:
        if clock_ms is None:
            clock_ms = time.time_ns() // 1_000_000
        if clock_ms <= self._last_ms:
            clock_ms = self._last_ms + 1
        self._last_ms = clock_ms
        return next_invoice_number(existing_count, clock_ms)


def format_price(value: float, currency: str = CURRENCY) -> str:
    return f"{value:.{PRICE_DECIMALS}f} {currency}"


def total_by_status(invoices: Iterable[Totalled], status: Optional[str] = None) -> float:
    """Sum invoice totals, optionally only those with the given status."""
    return sum(
        (inv.total for inv in invoices if status is None or inv.status == status),
        0.0,
    )
