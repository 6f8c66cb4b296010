from __future__ import annotations

from datetime import datetime
from typing import List, Optional, Set

from textual import on, work
from textual.app import ComposeResult
from textual.binding import Binding
from textual.containers import Horizontal, Vertical
from textual.events import ScreenResume
from textual.widgets import Button, DataTable, Input, Label, Select

import db.crud
from core.invoice_calc import format_price, total_by_status
from db.models import INVOICE_STATUSES, Invoice
from utils.pure import filter_invoices
from views.base_screen import BaseScreen
from views.modal_dialog import DialogModal
from views.modal_invoice_detail import InvoiceDetailModal
from views.modal_invoice_form import InvoiceFormModal

ALL_STATUSES = "all"


class InvoicesScreen(BaseScreen):
    """
    Invoice list with totals by payment status, search, a status filter and
    multi-select for bulk deletion.

    Layout:
    - totals cards on top
    - search box and status filter
    - invoices table (space marks a row, enter opens the detail)
    """

    BINDINGS = [
        Binding("space", "toggle_mark", "Mark", show=True),
        Binding("ctrl+a", "mark_all", "Mark All", show=True),
        Binding("ctrl+n", "new_invoice", "New Invoice", show=True),
    ]

    def __init__(self) -> None:
        super().__init__()
        self._invoices: List[Invoice] = []
        self._marked: Set[int] = set()

    def compose(self) -> ComposeResult:
        yield from super().compose()
        with Vertical():
            with Horizontal(id="div-cards"):
                yield Label("", id="card-total", classes="card")
                yield Label("", id="card-completed", classes="card")
                yield Label("", id="card-pending", classes="card")
                yield Label("", id="card-failed", classes="card")
            with Horizontal(id="div-filters"):
                yield Input(
                    id="input-search", placeholder="Search number, customer, payment..."
                )
                yield Select(
                    [("All statuses", ALL_STATUSES)] + [(s, s) for s in INVOICE_STATUSES],
                    value=ALL_STATUSES,
                    allow_blank=False,
                    id="select-filter",
                )
            yield DataTable(id="table-invoices")
        with Horizontal(id="hort-table-control"):
            yield Button("New", id="btn-new", variant="primary")
            yield Button("Select all", id="btn-mark-all")
            yield Button("Delete selected", id="btn-delete", variant="error")
            yield Select(
                [(s, s) for s in INVOICE_STATUSES],
                prompt="Set status...",
                id="select-set-status",
            )

    def on_mount(self) -> None:
        table = self.query_one(DataTable)
        table.cursor_type = "row"
        table.zebra_stripes = True
        table.add_columns(" ", "Number", "Date", "Customer", "Total", "Status", "Payment")

    @on(ScreenResume)
    def handle_refresh(self):
        self.load_invoices()

    @on(Input.Changed, "#input-search")
    @on(Select.Changed, "#select-filter")
    def handle_filter(self) -> None:
        self._render_table()

    @work(exclusive=True, group="invoices")
    async def load_invoices(self) -> None:
        invoices, error = await self.run_op(
            "load invoices", db.crud.list_invoices(self.backend)
        )
        if error:
            return
        self._invoices = invoices
        # forget marks on invoices that no longer exist
        self._marked &= {inv.id for inv in invoices}
        self._render_cards()
        self._render_table()

    def _render_cards(self) -> None:
        cards = {
            "#card-total": ("Total", None),
            "#card-completed": ("Completed", "Completed"),
            "#card-pending": ("Pending", "Pending"),
            "#card-failed": ("Failed", "Failed"),
        }
        for card_id, (title, status) in cards.items():
            amount = format_price(total_by_status(self._invoices, status))
            self.query_one(card_id, Label).update(f"{title}\n{amount}")

    def _visible(self) -> List[Invoice]:
        status = self.query_one("#select-filter", Select).value
        return filter_invoices(
            self._invoices,
            self.query_one("#input-search", Input).value,
            None if status == ALL_STATUSES else status,
        )

    def _marked_visible(self) -> List[int]:
        """Marked invoices that pass the current search and status filter."""
        return sorted(inv.id for inv in self._visible() if inv.id in self._marked)

    def _render_table(self) -> None:
        table = self.query_one(DataTable)
        cursor_row = table.cursor_row
        table.clear()
        for inv in self._visible():
            table.add_row(
                "[x]" if inv.id in self._marked else "[ ]",
                inv.number,
                f"{inv.created_at:%Y-%m-%d}",
                inv.customer.name,
                format_price(inv.total),
                inv.status,
                inv.payment_method or "-",
                key=str(inv.id),
            )
        if table.row_count:
            table.move_cursor(row=min(cursor_row, table.row_count - 1))
        self.query_one("#btn-delete", Button).label = (
            f"Delete selected ({len(self._marked_visible())})"
        )

    def _current(self) -> Optional[Invoice]:
        table = self.query_one(DataTable)
        if table.row_count == 0:
            return None
        row_key, _ = table.coordinate_to_cell_key(table.cursor_coordinate)
        return next((i for i in self._invoices if str(i.id) == row_key.value), None)

    def action_toggle_mark(self) -> None:
        inv = self._current()
        if inv is None:
            return
        self._marked ^= {inv.id}
        self._render_table()

    @on(Button.Pressed, "#btn-mark-all")
    def action_mark_all(self) -> None:
        visible = {inv.id for inv in self._visible()}
        if visible and visible <= self._marked:
            self._marked -= visible
        else:
            self._marked |= visible
        self._render_table()

    @on(DataTable.RowSelected)
    def handle_row_selected(self) -> None:
        inv = self._current()
        if inv is not None:
            self.app.push_screen(InvoiceDetailModal(inv))

    @on(Button.Pressed, "#btn-new")
    @work()
    async def action_new_invoice(self) -> None:
        customers, error = await self.run_op(
            "load customers", db.crud.list_customers(self.backend)
        )
        if error:
            return
        products, error = await self.run_op(
            "load products", db.crud.list_products(self.backend, active_only=True)
        )
        if error:
            return
        if not products:
            self.notify("Add an active product in the store first.", severity="warning")
            return

        request = await self.app.push_screen_wait(InvoiceFormModal(customers, products))
        if request is None:
            return
        invoice, error = await self.run_op(
            "create invoice",
            db.crud.create_invoice(
                self.backend,
                request.customer,
                request.lines,
                datetime.now(),
                status=request.status,
                payment_method=request.payment_method,
            ),
        )
        if not error:
            self.notify(f"Invoice {invoice.number} created.")
            self.load_invoices()

    @on(Button.Pressed, "#btn-delete")
    @work()
    async def handle_delete(self) -> None:
        ids = self._marked_visible()
        if not ids:
            self.notify("Mark invoices with space first.", severity="warning")
            return
        if not await self.app.push_screen_wait(
            DialogModal(
                f"Delete {len(ids)} invoice(s)?",
                primary_text="Delete",
                secondary_text="Cancel",
                tone="error",
            )
        ):
            return
        _, error = await self.run_op(
            "delete invoices", db.crud.delete_invoices(self.backend, ids)
        )
        if not error:
            self._marked -= set(ids)
            self.notify(f"Deleted {len(ids)} invoice(s).")
            self.load_invoices()

    @on(Select.Changed, "#select-set-status")
    @work(group="status")
    async def handle_set_status(self, event: Select.Changed) -> None:
        if event.value is Select.BLANK:
            return
        status = event.value
        # resetting the prompt must not fire a second change
        with self.prevent(Select.Changed):
            event.select.clear()
        inv = self._current()
        if inv is None or inv.status == status:
            return
        _, error = await self.run_op(
            "update invoice status",
            db.crud.update_invoice_status(self.backend, inv.id, status),
        )
        if not error:
            self.notify(f"{inv.number} is now {status}.")
            self.load_invoices()
