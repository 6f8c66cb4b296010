from typing import Optional

from textual import on
from textual.app import ComposeResult
from textual.containers import Horizontal, Vertical
from textual.screen import ModalScreen
from textual.validation import Number
from textual.widgets import Button, Input, Label, Select

from core.contracts import DURATION_LABELS
from db.models import PhysicalDetails, ProductDraft, SubscriptionDetails


def _number(raw: str, cast=float):
    try:
        return cast(raw.strip())
    except ValueError:
        return None


class ProductFormModal(ModalScreen[Optional[ProductDraft]]):
    """
    New product form; the fields shown depend on the product kind.
    Dismisses with a ProductDraft, or None when cancelled.
    """

    BINDINGS = [("escape", "cancel", "Cancel")]

    def compose(self) -> ComposeResult:
        with Vertical(id="div-form"):
            yield Label("New product", id="label-form-title")
            yield Label("Kind")
            yield Select(
                [("Physical", "physical"), ("Subscription", "subscription")],
                value="physical",
                allow_blank=False,
                id="select-kind",
            )
            yield Label("Name *")
            yield Input(id="input-name")
            yield Label("Selling price *")
            yield Input(
                id="input-price", type="number", validators=[Number(minimum=0.0)]
            )
            with Vertical(id="div-physical"):
                yield Label("Stock")
                yield Input(
                    "0", id="input-stock", type="integer", validators=[Number(minimum=0)]
                )
                yield Label("Purchase price")
                yield Input(
                    "0", id="input-purchase", type="number",
                    validators=[Number(minimum=0.0)],
                )
            with Vertical(id="div-subscription", classes="hidden"):
                yield Label("Details")
                yield Input(id="input-details")
                yield Label("Contract duration")
                yield Select(
                    [(label, key) for key, label in DURATION_LABELS.items()],
                    value="1-month",
                    allow_blank=False,
                    id="select-duration",
                )
            with Horizontal(id="div-form-btns"):
                yield Button("Cancel", id="btn-cancel")
                yield Button("Save", id="btn-save", variant="primary")

    def on_mount(self) -> None:
        self.query_one("#input-name").focus()

    @on(Select.Changed, "#select-kind")
    def handle_kind_changed(self, event: Select.Changed) -> None:
        subscription = event.value == "subscription"
        self.query_one("#div-physical").set_class(subscription, "hidden")
        self.query_one("#div-subscription").set_class(not subscription, "hidden")

    def _invalid(self, widget_id: str, message: str) -> None:
        widget = self.query_one(widget_id, Input)
        widget.add_class("-invalid")
        widget.focus()
        self.notify(message, severity="error")

    @on(Button.Pressed, "#btn-save")
    def handle_save(self) -> None:
        name = self.query_one("#input-name", Input).value.strip()
        if not name:
            self._invalid("#input-name", "Name is required.")
            return
        price = _number(self.query_one("#input-price", Input).value)
        if price is None or price < 0:
            self._invalid("#input-price", "Enter a valid selling price.")
            return

        if self.query_one("#select-kind", Select).value == "subscription":
            details = SubscriptionDetails(
                details=self.query_one("#input-details", Input).value.strip(),
                contract_duration=self.query_one("#select-duration", Select).value,
            )
        else:
            stock = _number(self.query_one("#input-stock", Input).value or "0", int)
            if stock is None or stock < 0:
                self._invalid("#input-stock", "Enter a valid stock count.")
                return
            purchase = _number(self.query_one("#input-purchase", Input).value or "0")
            if purchase is None or purchase < 0:
                self._invalid("#input-purchase", "Enter a valid purchase price.")
                return
            details = PhysicalDetails(stock=stock, purchase_price=purchase)

        self.dismiss(ProductDraft(name=name, selling_price=price, details=details))

    @on(Button.Pressed, "#btn-cancel")
    def action_cancel(self) -> None:
        self.dismiss(None)
