from datetime import datetime

from textual import on, work
from textual.app import ComposeResult
from textual.containers import Horizontal, Vertical
from textual.events import ScreenResume
from textual.widgets import Button, MarkdownViewer

import db.crud
from core.invoice_calc import format_price
from utils.pure import generate_markdown_table
from views.base_screen import BaseScreen


class OverviewScreen(BaseScreen):
    """
    Headline numbers: revenue by payment status, record counts, calendar and
    subscription alerts.
    """

    def compose(self) -> ComposeResult:
        yield from super().compose()
        with Vertical():
            yield MarkdownViewer(id="md-overview", show_table_of_contents=False)
        with Horizontal(id="hort-table-control"):
            yield Button("Refresh", id="btn-refresh")

    @on(Button.Pressed, "#btn-refresh")
    @on(ScreenResume)
    def handle_refresh(self):
        self.load_summary()

    @work(exclusive=True, group="summary")
    async def load_summary(self) -> None:
        summary, error = await self.run_op(
            "load overview", db.crud.dashboard_summary(self.backend, datetime.now())
        )
        if error:
            return

        revenue = generate_markdown_table(
            ["Invoices", "Amount"],
            [
                ["All", format_price(summary["revenue_total"])],
                ["Completed", format_price(summary["completed_total"])],
                ["Pending", format_price(summary["pending_total"])],
                ["Failed", format_price(summary["failed_total"])],
            ],
            ["l", "r"],
        )
        counts = generate_markdown_table(
            ["Records", "Count"],
            [
                ["Customers", summary["customers"]],
                ["Products", summary["products"]],
                ["Active products", summary["active_products"]],
                ["Invoices", summary["invoices"]],
            ],
            ["l", "r"],
        )
        alerts = generate_markdown_table(
            ["Alerts", "Count"],
            [
                ["Upcoming events", summary["upcoming_events"]],
                ["Ongoing events", summary["ongoing_events"]],
                ["Subscriptions expiring soon", summary["expiring_soon"]],
                ["Expired subscriptions", summary["expired"]],
            ],
            ["l", "r"],
        )
        md = (
            "## Overview\n\n### Revenue\n\n"
            + revenue
            + "\n\n### Records\n\n"
            + counts
            + "\n\n### Alerts\n\n"
            + alerts
        )
        await self.query_one("#md-overview", MarkdownViewer).document.update(md)
