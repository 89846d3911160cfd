"""Discord-specific utility functions."""

from __future__ import annotations

from typing import Iterable, List

# Discord's maximum message length
DISCORD_MAX_MESSAGE_LENGTH = 2000


def chunk_lines(
    lines: Iterable[str], max_length: int = DISCORD_MAX_MESSAGE_LENGTH
) -> List[str]:
    """Pack lines into as few messages as fit within Discord's character limit.

    Lines are never split across messages. A single line longer than
    ``max_length`` is truncated with an ellipsis.

    Examples:
        >>> chunk_lines(["one", "two"])
        ['one\\ntwo']
        >>> len(chunk_lines(["a" * 1500, "b" * 1500]))
        2
    """
    chunks: List[str] = []
    current = ""

    for line in lines:
        if len(line) > max_length:
            line = line[: max_length - 3] + "..."
        candidate = f"{current}\n{line}" if current else line
        if len(candidate) <= max_length:
            current = candidate
            continue
        chunks.append(current)
        current = line

    if current or not chunks:
        chunks.append(current)
    return chunks
