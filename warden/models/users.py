"""User records and the rules for folding observations into them."""

from __future__ import annotations

from datetime import datetime, timedelta
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict

PLACEHOLDER_USERNAME = "[UNKNOWN USERNAME]"
PLACEHOLDER_DISCRIMINATOR = "????"

# Smallest step the stored timestamps can represent.
_LAST_SEEN_STEP = timedelta(microseconds=1)


class UserRecord(BaseModel):
    """Persisted view of a Discord user, one per user id."""

    model_config = ConfigDict(frozen=True)

    id: int
    username: str
    discriminator: str
    nickname: Optional[str] = None
    first_seen: datetime
    last_seen: datetime


class UserObservation(BaseModel):
    """A possibly incomplete snapshot of a user seen somewhere on Discord.

    ``discriminator`` uses ``0`` for "unknown". ``nickname`` is only
    meaningful when ``guild_scoped`` is set; a guild-scoped observation
    without a nickname means the member has none.
    """

    model_config = ConfigDict(frozen=True)

    id: int
    username: Optional[str] = None
    discriminator: int = 0
    guild_scoped: bool = False
    guild_id: Optional[int] = None
    nickname: Optional[str] = None


def format_discriminator(value: int) -> str:
    return f"{value:04d}"


def _has_discriminator(observation: UserObservation) -> bool:
    return 0 < observation.discriminator <= 9999


def new_record(observation: UserObservation, *, now: datetime) -> UserRecord:
    """Build the first record for a user, filling gaps with placeholders."""

    return UserRecord(
        id=observation.id,
        username=observation.username or PLACEHOLDER_USERNAME,
        discriminator=(
            format_discriminator(observation.discriminator)
            if _has_discriminator(observation)
            else PLACEHOLDER_DISCRIMINATOR
        ),
        nickname=observation.nickname if observation.guild_scoped else None,
        first_seen=now,
        last_seen=now,
    )


def merge_observation(
    existing: UserRecord, observation: UserObservation, *, now: datetime
) -> UserRecord:
    """Return ``existing`` updated with the fields ``observation`` actually carries.

    Missing usernames and unknown discriminators never overwrite stored
    values. The nickname is only touched by guild-scoped observations.
    ``last_seen`` always moves forward, even if the clock did not.
    """

    if observation.id != existing.id:
        raise ValueError(
            f"Cannot merge observation for user {observation.id} into record {existing.id}"
        )

    updates: dict[str, Any] = {
        "last_seen": max(now, existing.last_seen + _LAST_SEEN_STEP),
    }
    if observation.username:
        updates["username"] = observation.username
    if _has_discriminator(observation):
        updates["discriminator"] = format_discriminator(observation.discriminator)
    if observation.guild_scoped:
        updates["nickname"] = observation.nickname
    return existing.model_copy(update=updates)


def observation_from_discord(user: Any) -> UserObservation:
    """Translate a discord.py ``User`` or ``Member`` into an observation.

    Members carry a ``guild`` and are treated as guild-scoped. Accounts
    migrated to unique usernames report a discriminator of ``"0"``, which
    maps to unknown.
    """

    guild = getattr(user, "guild", None)
    try:
        discriminator = int(getattr(user, "discriminator", 0) or 0)
    except (TypeError, ValueError):
        discriminator = 0

    return UserObservation(
        id=user.id,
        username=getattr(user, "name", None) or None,
        discriminator=discriminator,
        guild_scoped=guild is not None,
        guild_id=guild.id if guild is not None else None,
        nickname=getattr(user, "nick", None) if guild is not None else None,
    )
