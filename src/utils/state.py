from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Optional

import db.crud as crud
from db.access import SqliteDataAccess
from db.models import User


@dataclass
class AppState:
    """
    Session context handed to every operation by the screens.

    Fields:
      - backend: data access object; carries the signed-in session
      - user: the signed-in account, None before login
    """

    backend: SqliteDataAccess = field(default_factory=SqliteDataAccess)
    user: Optional[User] = None

    @property
    def signed_in(self) -> bool:
        return self.backend.current_user_id() is not None

    async def sign_in(self, email: str, pwd: str) -> Optional[User]:
        """Open a session; returns the user, or None on bad credentials."""
        self.user = await crud.login(self.backend, email, pwd, datetime.now())
        return self.user

    def sign_out(self) -> None:
        crud.logout(self.backend)
        self.user = None
