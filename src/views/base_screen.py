from typing import Awaitable, Optional, Tuple, TypeVar

from textual import on, work
from textual.app import ComposeResult
from textual.binding import Binding
from textual.containers import Container
from textual.events import ScreenResume
from textual.screen import Screen
from textual.widgets import Button, Footer, Header, Label, ListItem, ListView, Markdown

from utils.errors import attempt
from utils.messages import ModeSwitchedMessage, UserLogoutMessage
from utils.pure import generate_markdown_table
from views.modal_dialog import DialogModal, QuitDialogModal

T = TypeVar("T")


class Sidebar(Container):
    init_mode = ""

    def compose(self) -> ComposeResult:
        yield Label("Signed in as", id="label-info-1")
        yield Markdown("", id="md-userinfo")
        yield Button("Log out", id="btn-logout", variant="error")
        yield Label("Menu", id="label-info-2")
        yield ListView(
            *[
                ListItem(Label(label), id="list-menu-item-" + mode)
                for mode, label in self.app.MENU.items()
            ],
            id="list-menu",
        )

    async def on_mount(self):
        self.init_mode = self.app.current_mode
        self.highlight_item(self.init_mode)
        await self.populate()

    async def populate(self) -> None:
        """show the signed-in user"""
        user = self.app.state.user
        if user is None:
            return
        table_rows = [
            ["Email", user.email],
            ["Member since", f"{user.created_at:%Y-%m-%d}"],
        ]
        await self.query_one(Markdown).update(
            generate_markdown_table(None, table_rows, ["l", "l"])
        )

    async def on_list_view_selected(self, event: ListView.Selected):
        selected_mode = event.item.id.removeprefix("list-menu-item-")
        self.highlight_item(self.init_mode)
        if self.app.current_mode != selected_mode:
            self.post_message(ModeSwitchedMessage(self.app.current_mode, selected_mode))
            await self.app.switch_mode(selected_mode)

    @on(Button.Pressed, "#btn-logout")
    @work()
    async def handle_logout(self):
        if not await self.app.push_screen_wait(
            DialogModal(
                "Are you sure you want to log out?",
                primary_text="Yes",
                secondary_text="No",
                tone="warning",
            )
        ):
            return

        self.post_message(UserLogoutMessage())

    def highlight_item(self, mode_str: str):
        list_menu = self.query_one("#list-menu")
        for item in list_menu.children:
            item.highlighted = item.id == "list-menu-item-" + mode_str


class BaseScreen(Screen):
    """
    Inherited by all screens, contains common elements like
    headers, footers, sidebar, and keybindings.
    """

    BINDINGS = [
        Binding("ctrl+z", "quit", "Quit App", show=True),
    ]

    def __init__(self):
        super().__init__()

        self.configure()

    def configure(
        self,
        header_sub_title: str = "Dashboard",
        show_sidebar: bool = True,
    ) -> None:
        """
        set the header subtitle (menu label when the screen is a mode)
        and whether the sidebar is shown
        """
        self.app.title = "RESTA Dashboard"
        self.sub_title = header_sub_title
        for mode, screen_cls in self.app.MODES.items():
            if isinstance(self, screen_cls) and mode in self.app.MENU:
                self.sub_title = self.app.MENU[mode]

        self._show_sidebar = show_sidebar

    def compose(self) -> ComposeResult:
        if self._show_sidebar:
            yield Sidebar()
        yield Header()
        yield Footer(show_command_palette=False)

    @property
    def backend(self):
        return self.app.state.backend

    async def run_op(
        self, action: str, operation: Awaitable[T]
    ) -> Tuple[Optional[T], Optional[str]]:
        """
        Run one user action against the backend. A failure is shown as a
        single error notification; the caller keeps its current state.
        """
        result, error = await attempt(action, operation)
        if error:
            self.notify(error, severity="error")
        return result, error

    @on(ScreenResume)
    async def handle_user_change(self):
        # the account may have changed while this screen was suspended
        for sidebar in self.query(Sidebar):
            await sidebar.populate()

    @work()
    async def action_quit(self):
        await self.app.push_screen_wait(QuitDialogModal())
