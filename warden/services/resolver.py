"""Lookups of live Discord users and guilds."""

from __future__ import annotations

import logging
from typing import Any, Optional, Protocol

import discord

logger = logging.getLogger(__name__)


class IdentityResolver(Protocol):
    """Resolves ids to live Discord objects. ``None`` means Discord has no such entity."""

    async def fetch_user(self, user_id: int) -> Optional[Any]: ...

    async def fetch_guild(self, guild_id: int) -> Optional[Any]: ...

    async def fetch_member(self, guild: Any, user_id: int) -> Optional[Any]: ...


class DiscordIdentityResolver:
    """Resolver backed by a discord.py client: gateway cache first, REST second."""

    def __init__(self, client: discord.Client):
        self._client = client

    async def fetch_user(self, user_id: int) -> Optional[discord.User]:
        user = self._client.get_user(user_id)
        if user is not None:
            return user
        try:
            return await self._client.fetch_user(user_id)
        except discord.NotFound:
            logger.debug("Discord has no user %s", user_id)
            return None

    async def fetch_guild(self, guild_id: int) -> Optional[discord.Guild]:
        guild = self._client.get_guild(guild_id)
        if guild is not None:
            return guild
        try:
            return await self._client.fetch_guild(guild_id)
        except (discord.NotFound, discord.Forbidden):
            # Guilds the bot is not a member of are reported as Forbidden.
            logger.debug("Guild %s is not visible to the bot", guild_id)
            return None

    async def fetch_member(self, guild: discord.Guild, user_id: int) -> Optional[discord.Member]:
        member = guild.get_member(user_id)
        if member is not None:
            return member
        try:
            return await guild.fetch_member(user_id)
        except discord.NotFound:
            logger.debug("User %s is not a member of guild %s", user_id, guild.id)
            return None
