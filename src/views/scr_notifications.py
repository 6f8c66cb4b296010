from __future__ import annotations

from datetime import datetime
from typing import List, Optional

from textual import on, work
from textual.app import ComposeResult
from textual.containers import Horizontal, Vertical
from textual.events import ScreenResume
from textual.timer import Timer
from textual.widgets import Button, MarkdownViewer

import db.crud
from db.models import SubscriptionWatch
from utils import config
from utils.pure import generate_markdown_table
from views.base_screen import BaseScreen

SECTIONS = (
    ("expiring_soon", "Expiring soon"),
    ("active", "Active"),
    ("expired", "Expired"),
)


def _days_text(watch: SubscriptionWatch) -> str:
    if watch.days_remaining < 0:
        return f"{-watch.days_remaining} day(s) ago"
    return f"{watch.days_remaining} day(s)"


def notifications_markdown(watches: List[SubscriptionWatch]) -> str:
    parts = ["## Subscription notifications"]
    for status, title in SECTIONS:
        rows = [
            [
                w.product_name,
                w.customer_name,
                w.invoice_number,
                f"{w.contract_end:%Y-%m-%d}",
                _days_text(w),
            ]
            for w in watches
            if w.status == status
        ]
        parts.append(f"### {title} ({len(rows)})")
        if rows:
            parts.append(
                generate_markdown_table(
                    ["Product", "Customer", "Invoice", "Ends", "Remaining"],
                    rows,
                    ["l", "l", "l", "l", "r"],
                )
            )
        else:
            parts.append("Nothing here.")
    return "\n\n".join(parts)


class NotificationsScreen(BaseScreen):
    """
    Subscription contracts from completed invoices, grouped by how close
    they are to the end date. Fetched again on every tick.
    """

    def __init__(self) -> None:
        super().__init__()
        self._timer: Optional[Timer] = None

    def compose(self) -> ComposeResult:
        yield from super().compose()
        with Vertical():
            yield MarkdownViewer(id="md-notifications", show_table_of_contents=False)
        with Horizontal(id="hort-table-control"):
            yield Button("Refresh", id="btn-refresh")

    def on_mount(self) -> None:
        self._timer = self.set_interval(config.REFRESH_INTERVAL, self.handle_tick)

    def on_unmount(self) -> None:
        if self._timer is not None:
            self._timer.stop()
            self._timer = None

    def handle_tick(self) -> None:
        # timers keep running behind the login screen
        if self.app.state.signed_in:
            self.load_watches()

    @on(Button.Pressed, "#btn-refresh")
    @on(ScreenResume)
    def handle_refresh(self):
        self.load_watches()

    @work(exclusive=True, group="watches")
    async def load_watches(self) -> None:
        watches, error = await self.run_op(
            "load notifications",
            db.crud.list_subscription_watches(self.backend, datetime.now()),
        )
        if error:
            return
        await self.query_one("#md-notifications", MarkdownViewer).document.update(
            notifications_markdown(watches)
        )
