from textual.message import Message


class QuitRequestedMessage(Message):
    """
    Posted by the quit dialog once confirmed; the app closes the session and exits.
    """

    bubble = True


class UserLogoutMessage(Message):
    """
    Posted by the sidebar's logout button; the app drops the session and
    shows the login screen again.
    """

    bubble = True


class ModeSwitchedMessage(Message):
    """
    Posted right before switch_mode, carrying the menu entry left and entered.
    """

    bubble = True

    def __init__(self, old_mode: str, new_mode: str) -> None:
        super().__init__()
        self.old_mode = old_mode
        self.new_mode = new_mode
