"""Discord bot wiring for Warden."""

from __future__ import annotations

import logging

import discord
from discord.ext import commands

from .commands.slash import register_slash_commands
from .models.config import BotSettings
from .services.resolver import DiscordIdentityResolver
from .services.user_store import UserRecordStore
from .services.users import UserReconciler, UserService

logger = logging.getLogger(__name__)


def create_bot(settings: BotSettings, store: UserRecordStore) -> commands.Bot:
    intents = discord.Intents.default()
    intents.members = True

    # Using slash commands exclusively - no text command prefix needed
    bot = commands.Bot(
        command_prefix="!",  # Required by discord.py but unused (slash commands only)
        intents=intents,
        help_command=None,
    )

    reconciler = UserReconciler(store, max_create_retries=settings.create_race_retries)
    users = UserService(
        DiscordIdentityResolver(bot),
        reconciler,
        reconcile_failures=settings.reconcile_failures,
    )

    register_slash_commands(bot.tree, users)

    @bot.event
    async def setup_hook() -> None:  # type: ignore[override]
        storage = type(store).__name__
        logger.info("Tracking users with %s", storage)

        try:
            logger.info("Syncing commands to Discord...")
            synced = await bot.tree.sync()
            logger.info("✅ Synced %d commands to Discord", len(synced))
            for cmd in synced:
                logger.debug("  - %s (%s)", cmd.name, cmd.type.name)
        except Exception:
            logger.exception("Failed to sync commands to Discord")

    @bot.event
    async def on_ready() -> None:
        logger.info("Logged in as %s", bot.user)

    @bot.event
    async def on_message(message: discord.Message) -> None:
        await bot.process_commands(message)
        if message.webhook_id is not None:
            return
        # Guild messages carry a Member author, DMs a plain User.
        await users.track_user(message.author)

    @bot.event
    async def on_member_join(member: discord.Member) -> None:
        await users.track_user(member)

    @bot.event
    async def on_member_update(before: discord.Member, after: discord.Member) -> None:
        await users.track_user(after)

    @bot.event
    async def on_user_update(before: discord.User, after: discord.User) -> None:
        await users.track_user(after)

    return bot
