from __future__ import annotations

from datetime import datetime
from typing import List, Optional

from textual import on, work
from textual.app import ComposeResult
from textual.binding import Binding
from textual.containers import Horizontal, Vertical
from textual.events import ScreenResume
from textual.timer import Timer
from textual.widgets import Button, DataTable, Label

import db.crud
from core.status import with_event_statuses
from db.models import Event
from utils import config
from utils.pure import fmt_datetime
from views.base_screen import BaseScreen
from views.modal_dialog import DialogModal
from views.modal_event_form import EventFormModal

STATUS_LABELS = {"upcoming": "Upcoming", "ongoing": "Ongoing", "completed": "Completed"}


class CalendarScreen(BaseScreen):
    """
    Events ordered by start time. Statuses are recomputed from the clock on
    every tick without fetching again; only completed events can be deleted.
    """

    BINDINGS = [
        Binding("ctrl+n", "new_event", "New Event", show=True),
    ]

    def __init__(self) -> None:
        super().__init__()
        self._events: List[Event] = []
        self._timer: Optional[Timer] = None

    def compose(self) -> ComposeResult:
        yield from super().compose()
        with Vertical():
            yield Label("", id="label-event-counts")
            yield DataTable(id="table-events")
        with Horizontal(id="hort-table-control"):
            yield Button("Refresh", id="btn-refresh")
            yield Button("New", id="btn-new", variant="primary")
            yield Button("Delete", id="btn-delete", variant="error")

    def on_mount(self) -> None:
        table = self.query_one(DataTable)
        table.cursor_type = "row"
        table.zebra_stripes = True
        table.add_columns("Title", "Start", "End", "Status", "Description")
        self._timer = self.set_interval(config.REFRESH_INTERVAL, self.reclassify)

    def on_unmount(self) -> None:
        if self._timer is not None:
            self._timer.stop()
            self._timer = None

    @on(Button.Pressed, "#btn-refresh")
    @on(ScreenResume)
    def handle_refresh(self):
        self.load_events()

    @work(exclusive=True, group="events")
    async def load_events(self) -> None:
        events, error = await self.run_op(
            "load events", db.crud.list_events(self.backend, datetime.now())
        )
        if error:
            return
        self._events = events
        self._render_table()

    def reclassify(self) -> None:
        self._events = with_event_statuses(self._events, datetime.now())
        self._render_table()

    def _render_table(self) -> None:
        table = self.query_one(DataTable)
        cursor_row = table.cursor_row
        table.clear()
        for ev in self._events:
            table.add_row(
                ev.title,
                fmt_datetime(ev.start_time),
                fmt_datetime(ev.end_time),
                STATUS_LABELS.get(ev.status, ev.status),
                ev.description or "-",
                key=str(ev.id),
            )
        if table.row_count:
            table.move_cursor(row=min(cursor_row, table.row_count - 1))

        counts = {
            status: sum(1 for ev in self._events if ev.status == status)
            for status in STATUS_LABELS
        }
        self.query_one("#label-event-counts", Label).update(
            "   ".join(f"{STATUS_LABELS[s]}: {n}" for s, n in counts.items())
        )

    def _current(self) -> Optional[Event]:
        table = self.query_one(DataTable)
        if table.row_count == 0:
            return None
        row_key, _ = table.coordinate_to_cell_key(table.cursor_coordinate)
        return next((e for e in self._events if str(e.id) == row_key.value), None)

    @on(Button.Pressed, "#btn-new")
    @work()
    async def action_new_event(self) -> None:
        request = await self.app.push_screen_wait(EventFormModal())
        if request is None:
            return
        _, error = await self.run_op(
            "create event",
            db.crud.create_event(
                self.backend,
                request.title,
                request.description,
                request.start,
                request.end,
                datetime.now(),
            ),
        )
        if not error:
            self.notify(f"Event {request.title} added.")
            self.load_events()

    @on(Button.Pressed, "#btn-delete")
    @work()
    async def handle_delete(self) -> None:
        ev = self._current()
        if ev is None:
            self.notify("Select an event first.", severity="warning")
            return
        if ev.status != "completed":
            self.notify("Only completed events can be deleted.", severity="warning")
            return
        if not await self.app.push_screen_wait(
            DialogModal(
                f"Delete event {ev.title}?",
                primary_text="Delete",
                secondary_text="Cancel",
                tone="error",
            )
        ):
            return
        _, error = await self.run_op(
            "delete event", db.crud.delete_event(self.backend, ev.id)
        )
        if not error:
            self.notify("Event deleted.")
            self.load_events()
