"""Configuration helpers for the Warden bot."""

from __future__ import annotations

import os
from enum import Enum
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv
from pydantic import AliasChoices, BaseModel, Field, ValidationError


class ReconcileFailurePolicy(str, Enum):
    """What a user lookup does when recording the resolved user fails."""

    LOG = "log"  # return the resolved user anyway
    RAISE = "raise"  # fail the lookup


class BotSettings(BaseModel):
    """Runtime configuration parsed from environment variables."""

    discord_token: str = Field(..., alias="DISCORD_TOKEN")
    database_url: Optional[str] = Field(
        default=None,
        alias="DATABASE_URL",
        validation_alias=AliasChoices("DATABASE_URL", "SUPABASE_DB_URL", "database_url"),
    )
    database_pool_size: int = Field(default=5, alias="DATABASE_POOL_SIZE", ge=1)
    health_host: str = Field(default="0.0.0.0", alias="HEALTH_HOST")
    health_port: int = Field(default=8080, alias="HEALTH_PORT")
    log_level: str = Field(default="INFO", alias="LOG_LEVEL")
    reconcile_failures: ReconcileFailurePolicy = Field(
        default=ReconcileFailurePolicy.LOG, alias="RECONCILE_FAILURES"
    )
    create_race_retries: int = Field(default=3, alias="CREATE_RACE_RETRIES", ge=0)

    class Config:
        populate_by_name = True


def load_settings(env_file: str | None = ".env") -> BotSettings:
    """Load and validate configuration, raising a helpful error if missing."""

    if env_file and Path(env_file).exists():
        load_dotenv(env_file)

    try:
        settings = BotSettings.model_validate(dict(os.environ))
    except ValidationError as exc:
        missing = [err["loc"][0] for err in exc.errors() if err["type"] == "missing"]
        if not missing:
            raise RuntimeError(f"Invalid configuration: {exc}") from exc
        raise RuntimeError(
            (
                "Missing required configuration values: "
                f"{', '.join(str(key) for key in missing)}. "
                "Ensure DISCORD_TOKEN is set before running the bot."
            )
        ) from exc

    return settings
