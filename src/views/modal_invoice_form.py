from __future__ import annotations

from dataclasses import dataclass
from typing import List, Optional, Sequence, Tuple

from textual import on
from textual.app import ComposeResult
from textual.containers import Horizontal, Vertical
from textual.screen import ModalScreen
from textual.validation import Number
from textual.widgets import Button, DataTable, Input, Label, Select

from core.invoice_calc import format_price, invoice_total, line_total
from db.crud import PAYMENT_METHODS
from db.models import (
    INVOICE_STATUSES,
    Customer,
    CustomerSnapshot,
    InvoiceLineDraft,
    Product,
)


@dataclass(frozen=True)
class InvoiceRequest:
    customer: CustomerSnapshot
    lines: Tuple[InvoiceLineDraft, ...]
    status: str
    payment_method: str


class InvoiceFormModal(ModalScreen[Optional[InvoiceRequest]]):
    """
    New invoice: pick a saved customer (or type one in), add active
    products with quantities and watch the total update.
    """

    BINDINGS = [("escape", "cancel", "Cancel")]

    def __init__(self, customers: Sequence[Customer], products: Sequence[Product]) -> None:
        super().__init__()
        self._customers = list(customers)
        self._products = [p for p in products if p.status == "active"]
        self._lines: List[InvoiceLineDraft] = []

    def compose(self) -> ComposeResult:
        with Vertical(id="div-form"):
            yield Label("New invoice", id="label-form-title")
            yield Label("Customer")
            yield Select(
                [(f"{c.name} <{c.email}>", c.id) for c in self._customers],
                prompt="Type a new customer below, or pick one",
                id="select-customer",
            )
            with Horizontal(id="div-customer"):
                yield Input(placeholder="Name *", id="input-cust-name")
                yield Input(placeholder="Email", id="input-cust-email")
                yield Input(placeholder="Phone", id="input-cust-phone")
                yield Input(placeholder="Address", id="input-cust-address")
            yield Label("Products")
            with Horizontal(id="div-add-line"):
                yield Select(
                    [
                        (f"{p.name} ({format_price(p.selling_price)})", p.id)
                        for p in self._products
                    ],
                    prompt="Pick an active product",
                    id="select-product",
                )
                yield Input(
                    "1", id="input-qty", type="integer", validators=[Number(minimum=1)]
                )
                yield Button("Add", id="btn-add-line")
                yield Button("Remove", id="btn-remove-line")
            yield DataTable(id="table-lines")
            yield Label("", id="label-total")
            with Horizontal(id="div-payment"):
                yield Select(
                    [(s, s) for s in INVOICE_STATUSES],
                    value="Completed",
                    allow_blank=False,
                    id="select-status",
                )
                yield Select(
                    [(m, m) for m in PAYMENT_METHODS],
                    value=PAYMENT_METHODS[0],
                    allow_blank=False,
                    id="select-payment",
                )
            with Horizontal(id="div-form-btns"):
                yield Button("Cancel", id="btn-cancel")
                yield Button("Create invoice", id="btn-save", variant="primary")

    def on_mount(self) -> None:
        table = self.query_one("#table-lines", DataTable)
        table.cursor_type = "row"
        table.add_columns("Product", "Qty", "Unit price", "Line total")
        self._render_lines()
        self.query_one("#select-customer").focus()

    @on(Select.Changed, "#select-customer")
    def handle_customer_picked(self, event: Select.Changed) -> None:
        customer = next((c for c in self._customers if c.id == event.value), None)
        if customer is None:
            return
        self.query_one("#input-cust-name", Input).value = customer.name
        self.query_one("#input-cust-email", Input).value = customer.email
        self.query_one("#input-cust-phone", Input).value = customer.phone
        self.query_one("#input-cust-address", Input).value = customer.address

    @on(Button.Pressed, "#btn-add-line")
    def handle_add_line(self) -> None:
        pid = self.query_one("#select-product", Select).value
        product = next((p for p in self._products if p.id == pid), None)
        if product is None:
            self.notify("Pick a product first.", severity="warning")
            return
        qty_input = self.query_one("#input-qty", Input)
        try:
            qty = int(qty_input.value)
        except ValueError:
            qty = 0
        if qty < 1:
            qty_input.add_class("-invalid")
            self.notify("Quantity must be at least 1.", severity="error")
            return

        # adding the same product again raises its quantity
        for idx, line in enumerate(self._lines):
            if line.product.id == product.id:
                self._lines[idx] = InvoiceLineDraft(product, line.quantity + qty)
                break
        else:
            self._lines.append(InvoiceLineDraft(product, qty))
        qty_input.value = "1"
        self._render_lines()

    @on(Button.Pressed, "#btn-remove-line")
    def handle_remove_line(self) -> None:
        table = self.query_one("#table-lines", DataTable)
        if not self._lines or table.cursor_row is None:
            return
        del self._lines[table.cursor_row]
        self._render_lines()

    def _render_lines(self) -> None:
        table = self.query_one("#table-lines", DataTable)
        table.clear()
        for line in self._lines:
            table.add_row(
                line.product.name,
                str(line.quantity),
                format_price(line.unit_price),
                format_price(line_total(line.unit_price, line.quantity)),
            )
        self.query_one("#label-total", Label).update(
            f"Total: {format_price(invoice_total(self._lines))}"
        )

    @on(Button.Pressed, "#btn-save")
    def handle_save(self) -> None:
        name_input = self.query_one("#input-cust-name", Input)
        if not name_input.value.strip():
            name_input.add_class("-invalid")
            name_input.focus()
            self.notify("Customer name is required.", severity="error")
            return
        if not self._lines:
            self.notify("Add at least one product.", severity="error")
            return
        self.dismiss(
            InvoiceRequest(
                customer=CustomerSnapshot(
                    name=name_input.value.strip(),
                    email=self.query_one("#input-cust-email", Input).value.strip(),
                    phone=self.query_one("#input-cust-phone", Input).value.strip(),
                    address=self.query_one("#input-cust-address", Input).value.strip(),
                ),
                lines=tuple(self._lines),
                status=self.query_one("#select-status", Select).value,
                payment_method=self.query_one("#select-payment", Select).value,
            )
        )

    @on(Button.Pressed, "#btn-cancel")
    def action_cancel(self) -> None:
        self.dismiss(None)
