from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Optional

from textual import on
from textual.app import ComposeResult
from textual.containers import Horizontal, Vertical
from textual.screen import ModalScreen
from textual.widgets import Button, Input, Label

from utils.pure import DATETIME_INPUT_FORMAT, parse_datetime_input


@dataclass(frozen=True)
class EventRequest:
    title: str
    description: str
    start: datetime
    end: datetime


class EventFormModal(ModalScreen[Optional[EventRequest]]):
    """New calendar event; times are typed as YYYY-MM-DD HH:MM."""

    BINDINGS = [("escape", "cancel", "Cancel")]

    def compose(self) -> ComposeResult:
        start = datetime.now().replace(minute=0, second=0, microsecond=0) + timedelta(
            hours=1
        )
        with Vertical(id="div-form"):
            yield Label("New event", id="label-form-title")
            yield Label("Title *")
            yield Input(id="input-title")
            yield Label("Description")
            yield Input(id="input-description")
            yield Label("Start (YYYY-MM-DD HH:MM)")
            yield Input(start.strftime(DATETIME_INPUT_FORMAT), id="input-start")
            yield Label("End (YYYY-MM-DD HH:MM)")
            yield Input(
                (start + timedelta(hours=1)).strftime(DATETIME_INPUT_FORMAT),
                id="input-end",
            )
            with Horizontal(id="div-form-btns"):
                yield Button("Cancel", id="btn-cancel")
                yield Button("Save", id="btn-save", variant="primary")

    def on_mount(self) -> None:
        self.query_one("#input-title").focus()

    def _invalid(self, widget_id: str, message: str) -> None:
        widget = self.query_one(widget_id, Input)
        widget.add_class("-invalid")
        widget.focus()
        self.notify(message, severity="error")

    @on(Button.Pressed, "#btn-save")
    def handle_save(self) -> None:
        title = self.query_one("#input-title", Input).value.strip()
        if not title:
            self._invalid("#input-title", "Title is required.")
            return
        start = parse_datetime_input(self.query_one("#input-start", Input).value)
        if start is None:
            self._invalid("#input-start", "Start must look like 2025-01-10 10:00.")
            return
        end = parse_datetime_input(self.query_one("#input-end", Input).value)
        if end is None:
            self._invalid("#input-end", "End must look like 2025-01-10 12:00.")
            return
        if end < start:
            self._invalid("#input-end", "An event cannot end before it starts.")
            return
        self.dismiss(
            EventRequest(
                title=title,
                description=self.query_one("#input-description", Input).value.strip(),
                start=start,
                end=end,
            )
        )

    @on(Button.Pressed, "#btn-cancel")
    def action_cancel(self) -> None:
        self.dismiss(None)
