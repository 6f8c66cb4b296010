from typing import Dict, Optional

from textual import on
from textual.app import ComposeResult
from textual.containers import Horizontal, Vertical
from textual.screen import ModalScreen
from textual.widgets import Button, Input, Label

from db.models import Customer


class CustomerFormModal(ModalScreen[Optional[Dict[str, str]]]):
    """
    New / edit customer form.
    Dismisses with the entered fields, or None when cancelled.
    """

    BINDINGS = [("escape", "cancel", "Cancel")]

    def __init__(self, customer: Optional[Customer] = None) -> None:
        super().__init__()
        self._customer = customer

    def compose(self) -> ComposeResult:
        c = self._customer
        with Vertical(id="div-form"):
            yield Label("Edit customer" if c else "New customer", id="label-form-title")
            yield Label("Name *")
            yield Input(c.name if c else "", id="input-name")
            yield Label("Email *")
            yield Input(c.email if c else "", id="input-email")
            yield Label("Phone *")
            yield Input(c.phone if c else "", id="input-phone")
            yield Label("Address")
            yield Input(c.address if c else "", id="input-address")
            with Horizontal(id="div-form-btns"):
                yield Button("Cancel", id="btn-cancel")
                yield Button("Save", id="btn-save", variant="primary")

    def on_mount(self) -> None:
        self.query_one("#input-name").focus()

    @on(Button.Pressed, "#btn-save")
    def handle_save(self) -> None:
        fields = {
            key: self.query_one(f"#input-{key}", Input).value.strip()
            for key in ("name", "email", "phone", "address")
        }
        for key in ("name", "email", "phone"):
            if not fields[key]:
                widget = self.query_one(f"#input-{key}", Input)
                widget.add_class("-invalid")
                widget.focus()
                self.notify(f"{key.capitalize()} is required.", severity="error")
                return
        self.dismiss(fields)

    @on(Button.Pressed, "#btn-cancel")
    def action_cancel(self) -> None:
        self.dismiss(None)
