"""Session state persisted between runs."""

from datetime import datetime
from typing import NewType

from pydantic import BaseModel

AuthToken = NewType("AuthToken", str)


class Session(BaseModel):
    """Bearer token of the signed-in user.

    `ever_logged_in` survives logout so the store knows whether server data
    was ever pulled into it.
    """

    auth_token: str | None = None
    user_id: int | None = None
    logged_in_at: datetime | None = None
    ever_logged_in: bool = False
