from textual import on
from textual.app import ComposeResult
from textual.containers import Horizontal, Vertical
from textual.screen import ModalScreen
from textual.widgets import Button, MarkdownViewer

from core.invoice_calc import format_price
from db.models import Invoice
from utils.errors import DashboardError
from utils.pdf import export_invoice_pdf
from utils.pure import generate_markdown_table


def invoice_markdown(invoice: Invoice) -> str:
    cust = invoice.customer
    header = (
        f"### Invoice {invoice.number}\n"
        f"Date: {invoice.created_at:%Y-%m-%d %H:%M}  \n"
        f"Customer: {cust.name}  \n"
        f"Email: {cust.email or '-'}  \n"
        f"Phone: {cust.phone or '-'}  \n"
        f"Address: {cust.address or '-'}\n\n"
    )
    rows = []
    for item in invoice.items:
        contract = "-"
        if item.contract_end:
            contract = f"{item.contract_start:%Y-%m-%d} to {item.contract_end:%Y-%m-%d}"
        rows.append(
            [
                item.product_name,
                item.quantity,
                format_price(item.unit_price),
                format_price(item.line_total),
                contract,
            ]
        )
    table = generate_markdown_table(
        ["Product", "Qty", "Unit Price", "Line Total", "Contract"],
        rows,
        ["l", "r", "r", "r", "l"],
    )
    footer = (
        f"\n\n**Total:** {format_price(invoice.total)}  \n"
        f"**Status:** {invoice.status}  \n"
        f"**Payment method:** {invoice.payment_method or '-'}"
    )
    return header + table + footer


class InvoiceDetailModal(ModalScreen[None]):
    """Read-only invoice view with PDF export."""

    BINDINGS = [("escape", "close", "Close")]

    def __init__(self, invoice: Invoice) -> None:
        super().__init__()
        self._invoice = invoice

    def compose(self) -> ComposeResult:
        with Vertical(id="div-invoice-detail"):
            yield MarkdownViewer(
                invoice_markdown(self._invoice), show_table_of_contents=False
            )
            with Horizontal(id="div-form-btns"):
                yield Button("Close", id="btn-close")
                yield Button("Export PDF", id="btn-export", variant="primary")

    @on(Button.Pressed, "#btn-export")
    def handle_export(self) -> None:
        try:
            path = export_invoice_pdf(self._invoice)
        except DashboardError as exc:
            self.notify(exc.message, severity="error")
            return
        self.notify(f"Saved {path}")

    @on(Button.Pressed, "#btn-close")
    def action_close(self) -> None:
        self.dismiss(None)
