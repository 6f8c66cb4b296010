from datetime import datetime
from typing import List, Optional

from textual import on, work
from textual.app import ComposeResult
from textual.binding import Binding
from textual.containers import Horizontal, Vertical
from textual.events import ScreenResume
from textual.widgets import Button, DataTable, Input

import db.crud
from db.models import Customer
from utils.pure import filter_customers
from views.base_screen import BaseScreen
from views.modal_customer_form import CustomerFormModal
from views.modal_dialog import DialogModal


class CustomersScreen(BaseScreen):
    """
    Customer list with search, create, edit and delete.
    """

    BINDINGS = [
        Binding("ctrl+n", "new_customer", "New Customer", show=True),
    ]

    def __init__(self) -> None:
        super().__init__()
        self._customers: List[Customer] = []

    def compose(self) -> ComposeResult:
        yield from super().compose()
        with Vertical():
            yield Input(id="input-search", placeholder="Search name, email or phone...")
            yield DataTable(id="table-customers")
        with Horizontal(id="hort-table-control"):
            yield Button("Refresh", id="btn-refresh")
            yield Button("New", id="btn-new", variant="primary")
            yield Button("Edit", id="btn-edit")
            yield Button("Delete", id="btn-delete", variant="error")

    def on_mount(self) -> None:
        table = self.query_one(DataTable)
        table.cursor_type = "row"
        table.zebra_stripes = True
        table.add_columns("Name", "Email", "Phone", "Address", "Created")

    @on(Button.Pressed, "#btn-refresh")
    @on(ScreenResume)
    def handle_refresh(self):
        self.load_customers()

    @on(Input.Changed, "#input-search")
    def handle_search(self) -> None:
        self._render_table()

    @work(exclusive=True, group="customers")
    async def load_customers(self) -> None:
        customers, error = await self.run_op(
            "load customers", db.crud.list_customers(self.backend)
        )
        if error:
            return
        self._customers = customers
        self._render_table()

    def _render_table(self) -> None:
        query = self.query_one("#input-search", Input).value
        table = self.query_one(DataTable)
        table.clear()
        for c in filter_customers(self._customers, query):
            table.add_row(
                c.name, c.email, c.phone, c.address or "-",
                f"{c.created_at:%Y-%m-%d}", key=str(c.id),
            )

    def _selected(self) -> Optional[Customer]:
        table = self.query_one(DataTable)
        if table.row_count == 0:
            return None
        row_key, _ = table.coordinate_to_cell_key(table.cursor_coordinate)
        return next((c for c in self._customers if str(c.id) == row_key.value), None)

    @on(Button.Pressed, "#btn-new")
    @work()
    async def action_new_customer(self) -> None:
        fields = await self.app.push_screen_wait(CustomerFormModal())
        if fields is None:
            return
        _, error = await self.run_op(
            "create customer",
            db.crud.create_customer(self.backend, now=datetime.now(), **fields),
        )
        if not error:
            self.notify(f"Customer {fields['name']} added.")
            self.load_customers()

    @on(Button.Pressed, "#btn-edit")
    @work()
    async def handle_edit(self) -> None:
        customer = self._selected()
        if customer is None:
            self.notify("Select a customer first.", severity="warning")
            return
        fields = await self.app.push_screen_wait(CustomerFormModal(customer))
        if fields is None:
            return
        _, error = await self.run_op(
            "update customer",
            db.crud.update_customer(self.backend, customer.id, **fields),
        )
        if not error:
            self.notify("Customer updated.")
            self.load_customers()

    @on(Button.Pressed, "#btn-delete")
    @work()
    async def handle_delete(self) -> None:
        customer = self._selected()
        if customer is None:
            self.notify("Select a customer first.", severity="warning")
            return
        if not await self.app.push_screen_wait(
            DialogModal(
                f"Delete customer {customer.name}?",
                primary_text="Delete",
                secondary_text="Cancel",
                tone="error",
            )
        ):
            return
        _, error = await self.run_op(
            "delete customer", db.crud.delete_customers(self.backend, [customer.id])
        )
        if not error:
            self.notify("Customer deleted.")
            self.load_customers()
