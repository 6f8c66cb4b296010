from __future__ import annotations

from datetime import datetime
from typing import List, Optional

from textual import on, work
from textual.app import ComposeResult
from textual.binding import Binding
from textual.containers import Horizontal, Vertical
from textual.events import ScreenResume
from textual.validation import Number
from textual.widgets import Button, DataTable, Input, Label, MarkdownViewer

import db.crud
from core.contracts import DURATION_LABELS
from core.invoice_calc import format_price
from db.models import PhysicalDetails, Product
from utils.pure import filter_products, generate_markdown_table
from views.base_screen import BaseScreen
from views.modal_product_form import ProductFormModal


def product_rows(prod: Product) -> List[List[str]]:
    rows = [
        ["Name", prod.name],
        ["Kind", prod.kind],
        ["Selling price", format_price(prod.selling_price)],
        ["Status", prod.status],
    ]
    if isinstance(prod.details, PhysicalDetails):
        rows += [
            ["Stock", str(prod.details.stock)],
            ["Purchase price", format_price(prod.details.purchase_price)],
        ]
    else:
        rows += [
            ["Details", prod.details.details or "-"],
            ["Contract", DURATION_LABELS.get(prod.details.contract_duration, "-")],
        ]
    rows.append(["Created", f"{prod.created_at:%Y-%m-%d %H:%M}"])
    return rows


class StoreScreen(BaseScreen):
    """
    Product catalog: search, add products, change prices and
    switch products between active and inactive.
    """

    BINDINGS = [
        Binding("ctrl+n", "new_product", "New Product", show=True),
    ]

    current_pid: Optional[int] = None

    def __init__(self) -> None:
        super().__init__()
        self._products: List[Product] = []

    def compose(self) -> ComposeResult:
        yield from super().compose()
        with Vertical():
            yield Input(id="input-search", placeholder="Search products...")
            yield DataTable(id="table-products")
            yield MarkdownViewer(id="md-prod", show_table_of_contents=False)
        with Horizontal(id="hort-controls"):
            yield Button("New", id="btn-new", variant="primary")
            with Vertical(id="div-price"):
                yield Label("New selling price:")
                yield Input(
                    placeholder="leave blank to keep",
                    id="input-price",
                    type="number",
                    validators=[Number(minimum=0.0)],
                )
            yield Button("Update price", id="btn-update", variant="success")
            yield Button("Toggle active", id="btn-toggle", variant="warning")

    def on_mount(self) -> None:
        table = self.query_one(DataTable)
        table.cursor_type = "row"
        table.zebra_stripes = True
        table.add_columns("Name", "Kind", "Price", "Status")

    @on(ScreenResume)
    def handle_refresh(self):
        self.load_products()

    @on(Input.Changed, "#input-search")
    def handle_search(self) -> None:
        self._render_table()

    @on(DataTable.RowHighlighted)
    async def handle_row_highlight(self, event: DataTable.RowHighlighted) -> None:
        if event.row_key is None:
            return
        self.current_pid = int(event.row_key.value)
        await self.render_product()

    @work(exclusive=True, group="products")
    async def load_products(self) -> None:
        products, error = await self.run_op(
            "load products", db.crud.list_products(self.backend)
        )
        if error:
            return
        self._products = products
        self._render_table()

    def _render_table(self) -> None:
        query = self.query_one("#input-search", Input).value
        table = self.query_one(DataTable)
        table.clear()
        for p in filter_products(self._products, query):
            table.add_row(
                p.name, p.kind, format_price(p.selling_price), p.status, key=str(p.id)
            )
        if table.row_count == 0:
            self.current_pid = None
            self.query_one("#md-prod", MarkdownViewer).document.update(
                "### No products to show."
            )

    def _current(self) -> Optional[Product]:
        return next((p for p in self._products if p.id == self.current_pid), None)

    async def render_product(self) -> None:
        prod = self._current()
        if prod is None:
            return
        md_table = generate_markdown_table(["Attribute", "Value"], product_rows(prod))
        await self.query_one("#md-prod", MarkdownViewer).document.update(
            f"### Product Detail: {prod.name}\n\n" + md_table
        )
        # prefill with the current price for convenience
        self.query_one("#input-price", Input).value = f"{prod.selling_price:.3f}"

    @on(Button.Pressed, "#btn-new")
    @work()
    async def action_new_product(self) -> None:
        draft = await self.app.push_screen_wait(ProductFormModal())
        if draft is None:
            return
        _, error = await self.run_op(
            "create product",
            db.crud.create_product(self.backend, draft, datetime.now()),
        )
        if not error:
            self.notify(f"Product {draft.name} added.")
            self.load_products()

    @on(Button.Pressed, "#btn-update")
    @work(exclusive=True, group="price")
    async def handle_update(self) -> None:
        prod = self._current()
        price_input = self.query_one("#input-price", Input)
        if prod is None:
            self.notify("Select a product first.", severity="warning")
            return
        try:
            new_price = float(price_input.value)
        except ValueError:
            price_input.focus()
            price_input.add_class("-invalid")
            return

        if new_price == prod.selling_price:
            self.notify("Nothing to update.", severity="warning")
            return

        _, error = await self.run_op(
            "update price", db.crud.update_product_price(self.backend, prod.id, new_price)
        )
        if not error:
            self.notify("Price updated. Existing invoices keep their prices.")
            self.load_products()

    @on(Button.Pressed, "#btn-toggle")
    @work(exclusive=True, group="product-status")
    async def handle_toggle(self) -> None:
        prod = self._current()
        if prod is None:
            self.notify("Select a product first.", severity="warning")
            return
        status = "inactive" if prod.status == "active" else "active"
        _, error = await self.run_op(
            "change product status",
            db.crud.set_product_status(self.backend, prod.id, status),
        )
        if not error:
            self.notify(f"{prod.name} is now {status}.")
            self.load_products()
