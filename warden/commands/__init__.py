"""Command registration for Warden."""

from .slash import register_slash_commands

__all__ = ["register_slash_commands"]
