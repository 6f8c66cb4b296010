from datetime import datetime
from typing import Optional

from textual import on, work
from textual.app import App, ComposeResult
from textual.binding import Binding
from textual.widgets import LoadingIndicator

from db.seed import seed_demo
from utils import config
from utils.errors import attempt
from utils.logger import get_logger
from utils.messages import ModeSwitchedMessage, QuitRequestedMessage, UserLogoutMessage
from utils.state import AppState
from views.scr_calendar import CalendarScreen
from views.scr_customers import CustomersScreen
from views.scr_invoices import InvoicesScreen
from views.scr_login import LoginScreen
from views.scr_notifications import NotificationsScreen
from views.scr_overview import OverviewScreen
from views.scr_store import StoreScreen

_logger = get_logger(__name__)


class DashboardApp(App):
    BINDINGS = [
        Binding("ctrl+t", "switch_light", "Toggle Theme", show=True),
    ]

    MODES = {
        "overview": OverviewScreen,
        "customers": CustomersScreen,
        "invoices": InvoicesScreen,
        "store": StoreScreen,
        "calendar": CalendarScreen,
        "notifications": NotificationsScreen,
    }

    # sidebar menu, in display order
    MENU = {
        "overview": "Overview",
        "customers": "Customers",
        "invoices": "Invoices",
        "store": "Store",
        "calendar": "Calendar",
        "notifications": "Notifications",
    }

    CSS_PATH = [
        "views/styles/index.tcss",
        "views/styles/login.tcss",
        "views/styles/forms.tcss",
        "views/styles/invoices.tcss",
    ]

    state: AppState

    def __init__(self, state: Optional[AppState] = None):
        super().__init__()
        self.state = state or AppState()

    def compose(self) -> ComposeResult:
        yield LoadingIndicator()

    async def on_mount(self) -> None:
        self.main_flow()

    def action_switch_light(self):
        if self.theme == "textual-dark":
            self.theme = "solarized-light"
        else:
            self.theme = "textual-dark"
        self.notify(f"Theme changed to {self.theme}")

    @on(ModeSwitchedMessage)
    def handle_mode_switched(self, message: ModeSwitchedMessage) -> None:
        _logger.debug(f"Mode {message.old_mode} -> {message.new_mode}")

    @on(UserLogoutMessage)
    @work
    async def handle_user_logout(self):
        self.state.sign_out()
        self.notify("Logout successful.")
        self.main_flow()

    @on(QuitRequestedMessage)
    @work
    async def handle_quit(self):
        self.state.sign_out()
        self.exit()

    @work(exclusive=True, group="main")
    async def main_flow(self):
        if config.SEED_DEMO:
            seeded, _ = await attempt(
                "seed demo data", seed_demo(self.state.backend, datetime.now())
            )
            if seeded:
                _logger.info("Demo account created")

        await self.push_screen_wait(LoginScreen())
        if self.current_mode != "overview":
            self.post_message(ModeSwitchedMessage(self.current_mode, "overview"))
            await self.switch_mode("overview")


def run() -> None:
    DashboardApp().run()


if __name__ == "__main__":
    run()
