"""Exception types raised by the user tracking services."""

from __future__ import annotations


class NotFoundError(LookupError):
    """Raised when Discord reports that a requested entity does not exist."""


class UserNotFoundError(NotFoundError):
    def __init__(self, user_id: int):
        super().__init__(f"Discord user {user_id} does not exist")
        self.user_id = user_id


class GuildNotFoundError(NotFoundError):
    def __init__(self, guild_id: int):
        super().__init__(f"Discord guild {guild_id} does not exist")
        self.guild_id = guild_id


class DuplicateKeyError(RuntimeError):
    """Raised when a user record is created while another one already exists for the id."""

    def __init__(self, user_id: int):
        super().__init__(f"A user record for {user_id} already exists")
        self.user_id = user_id


class ReconciliationError(RuntimeError):
    """Raised when an observation could not be written to the user store."""

    def __init__(self, user_id: int, message: str):
        super().__init__(f"Failed to reconcile user {user_id}: {message}")
        self.user_id = user_id
