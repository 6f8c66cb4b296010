# failure taxonomy shared by the operations and the screens
from __future__ import annotations

from typing import Awaitable, Optional, Tuple, TypeVar

from utils.logger import get_logger

_logger = get_logger(__name__)

T = TypeVar("T")


class DashboardError(Exception):
    """Base for every failure that is reported back to the user."""

    message = "Something went wrong"

    def __init__(self, message: Optional[str] = None) -> None:
        super().__init__(message or self.message)
        if message:
            self.message = message


class Unauthenticated(DashboardError):
    """No user is signed in; nothing was read or written."""

    message = "User not authenticated"


class RemoteOperationFailed(DashboardError):
    """The backend rejected a read or write."""

    message = "Backend operation failed"


class ValidationFailed(DashboardError):
    """Local input check failed before any write was attempted."""

    message = "Invalid input"


def describe(exc: DashboardError, action: str) -> str:
    """Turn a failure into the single message shown to the user."""
    if isinstance(exc, RemoteOperationFailed):
        return f"Failed to {action}"
    return exc.message


async def attempt(
    action: str, operation: Awaitable[T]
) -> Tuple[Optional[T], Optional[str]]:
    """
    Await ``operation`` at the boundary of a user action.

    Returns ``(result, None)`` on success, or ``(None, message)`` when the
    operation raised a DashboardError. The failure is logged here and never
    propagates to the caller.
    """
    try:
        return await operation, None
    except DashboardError as exc:
        if isinstance(exc, ValidationFailed):
            _logger.warning(f"{action}: {exc.message}")
        else:
            _logger.error(f"{action} failed: {exc}")
        return None, describe(exc, action)
