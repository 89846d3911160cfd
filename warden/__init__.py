"""Warden: Discord moderation bot that keeps a record of every user it sees."""

from .bot import create_bot

__all__ = ["create_bot"]
