"""Slash command definitions for Warden user lookups."""

from __future__ import annotations

import logging
from typing import Optional

import discord
from discord import app_commands

from ..errors import NotFoundError
from ..models.users import UserRecord
from ..services.users import UserService
from ..utils.discord import chunk_lines

logger = logging.getLogger(__name__)

_MAX_RECENT_USERS = 50


def format_user_record(record: Optional[UserRecord]) -> str:
    if record is None:
        return "No stored record."
    nickname = record.nickname or "none"
    return (
        f"**{record.username}#{record.discriminator}** (`{record.id}`)\n"
        f"Nickname: {nickname}\n"
        f"First seen: {discord.utils.format_dt(record.first_seen, 'R')}\n"
        f"Last seen: {discord.utils.format_dt(record.last_seen, 'R')}"
    )


def register_slash_commands(tree: app_commands.CommandTree, users: UserService) -> None:
    """Register all slash commands to the command tree."""

    @tree.command(name="whois", description="Show what Warden knows about a server member")
    @app_commands.describe(member="The member to look up")
    @app_commands.checks.has_permissions(moderate_members=True)
    async def whois(interaction: discord.Interaction, member: discord.Member) -> None:
        if interaction.guild is None:
            await interaction.response.send_message(
                "❌ This command can only be used inside a server.", ephemeral=True
            )
            return

        await interaction.response.defer(ephemeral=True)

        try:
            resolved = await users.get_guild_user(interaction.guild.id, member.id)
            record = await users.store.get(resolved.id)
        except NotFoundError as e:
            await interaction.followup.send(f"❌ {e}", ephemeral=True)
            return
        except Exception:
            logger.exception("Failed to look up member %s", member.id)
            await interaction.followup.send("❌ Failed to look up that member.", ephemeral=True)
            return

        await interaction.followup.send(
            f"{resolved.mention}\n{format_user_record(record)}", ephemeral=True
        )

    @tree.command(name="lookup-user", description="Look up any Discord user by ID")
    @app_commands.describe(user_id="The Discord ID of the user")
    @app_commands.checks.has_permissions(moderate_members=True)
    async def lookup_user(interaction: discord.Interaction, user_id: str) -> None:
        # Snowflakes exceed the integer range Discord accepts for options.
        try:
            parsed_id = int(user_id.strip())
        except ValueError:
            await interaction.response.send_message(
                f"❌ `{user_id}` is not a valid user ID.", ephemeral=True
            )
            return

        await interaction.response.defer(ephemeral=True)

        try:
            user = await users.get_user(parsed_id, scope_guild_id=interaction.guild_id)
            record = await users.store.get(user.id)
        except NotFoundError as e:
            await interaction.followup.send(f"❌ {e}", ephemeral=True)
            return
        except Exception:
            logger.exception("Failed to look up user %s", parsed_id)
            await interaction.followup.send("❌ Failed to look up that user.", ephemeral=True)
            return

        await interaction.followup.send(
            f"{user.mention}\n{format_user_record(record)}", ephemeral=True
        )

    @tree.command(name="recent-users", description="List the users Warden saw most recently")
    @app_commands.describe(limit="How many users to show (max 50)")
    @app_commands.checks.has_permissions(moderate_members=True)
    async def recent_users(interaction: discord.Interaction, limit: int = 10) -> None:
        await interaction.response.defer(ephemeral=True)

        limit = max(1, min(limit, _MAX_RECENT_USERS))
        try:
            records = await users.store.recent(limit)
        except Exception:
            logger.exception("Failed to list recent users")
            await interaction.followup.send("❌ Failed to list recent users.", ephemeral=True)
            return

        if not records:
            await interaction.followup.send("ℹ️ No users recorded yet.", ephemeral=True)
            return

        lines = [f"**Recently seen users ({len(records)}):**"]
        for record in records:
            lines.append(
                f"• `{record.id}` {record.username}#{record.discriminator} "
                f"(last seen {discord.utils.format_dt(record.last_seen, 'R')})"
            )
        for chunk in chunk_lines(lines):
            await interaction.followup.send(chunk, ephemeral=True)

    @tree.command(name="sync", description="Manually sync bot commands to Discord")
    @app_commands.checks.has_permissions(administrator=True)
    async def sync_commands(interaction: discord.Interaction) -> None:
        """Manually sync slash commands to Discord."""
        await interaction.response.defer(ephemeral=True)
        try:
            synced = await tree.sync()
            await interaction.followup.send(
                f"✅ Synced {len(synced)} commands to Discord.\n"
                f"Commands may take a few minutes to appear in the UI.",
                ephemeral=True,
            )
            logger.info("Manually synced %d commands via /sync command", len(synced))
        except Exception as e:
            logger.exception("Failed to sync commands via /sync command")
            await interaction.followup.send(f"❌ Failed to sync commands: {e}", ephemeral=True)
