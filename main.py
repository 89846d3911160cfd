"""Entry-point for running the Warden Discord bot."""

from __future__ import annotations

import asyncio
import logging

from warden import create_bot
from warden.db import Database
from warden.health import start_health_server
from warden.models.config import load_settings
from warden.services.user_store import create_user_store


def configure_logging(level: str = "INFO") -> None:
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format="%(asctime)s | %(levelname)s | %(name)s | %(message)s",
    )


async def async_main() -> None:
    settings = load_settings()
    configure_logging(settings.log_level)
    database = Database(settings.database_url, pool_size=settings.database_pool_size)
    await database.connect()

    store = create_user_store(database)
    bot = create_bot(settings, store)
    health_server = await start_health_server(
        settings.health_host, settings.health_port, store, database
    )
    try:
        await bot.start(settings.discord_token)
    finally:
        health_server.close()
        await health_server.wait_closed()
        await bot.close()
        await database.close()


def main() -> None:
    try:
        asyncio.run(async_main())
    except KeyboardInterrupt:
        pass


if __name__ == "__main__":
    main()
