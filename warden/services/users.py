"""Tracking of Discord users seen by the bot."""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Any, Callable, Optional

from ..errors import DuplicateKeyError, GuildNotFoundError, ReconciliationError, UserNotFoundError
from ..models.config import ReconcileFailurePolicy
from ..models.users import (
    UserObservation,
    merge_observation,
    new_record,
    observation_from_discord,
)
from .resolver import IdentityResolver
from .user_store import UserRecordStore

logger = logging.getLogger(__name__)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class UserReconciler:
    """Folds user observations into the store with create-or-merge semantics.

    Two reconciliations that both find no record will both try to create
    one; the loser gets ``DuplicateKeyError`` from the store and retries as
    an update in a fresh transaction.
    """

    def __init__(
        self,
        store: UserRecordStore,
        *,
        max_create_retries: int = 3,
        clock: Callable[[], datetime] = _utcnow,
    ):
        self._store = store
        self._max_create_retries = max(max_create_retries, 0)
        self._clock = clock

    @property
    def store(self) -> UserRecordStore:
        return self._store

    async def reconcile(self, observation: UserObservation) -> None:
        attempts = self._max_create_retries + 1
        for attempt in range(1, attempts + 1):
            try:
                await self._reconcile_once(observation)
                return
            except DuplicateKeyError:
                logger.info(
                    "User %s was created concurrently; retrying as update (%d/%d)",
                    observation.id,
                    attempt,
                    attempts,
                )
        raise ReconciliationError(
            observation.id, f"record creation kept racing after {attempts} attempts"
        )

    async def _reconcile_once(self, observation: UserObservation) -> None:
        now = self._clock()
        async with self._store.begin_create_transaction() as transaction:
            updated = await transaction.try_update(
                observation.id,
                lambda existing: merge_observation(existing, observation, now=now),
            )
            if not updated:
                logger.debug(
                    "First sighting of user %s (guild %s)",
                    observation.id,
                    observation.guild_id if observation.guild_scoped else "none",
                )
                await transaction.create(new_record(observation, now=now))
            await transaction.commit()


class UserService:
    """Looks users up on Discord and records every user it resolves."""

    def __init__(
        self,
        resolver: IdentityResolver,
        reconciler: UserReconciler,
        *,
        reconcile_failures: ReconcileFailurePolicy = ReconcileFailurePolicy.LOG,
    ):
        self._resolver = resolver
        self._reconciler = reconciler
        self._reconcile_failures = ReconcileFailurePolicy(reconcile_failures)

    @property
    def store(self) -> UserRecordStore:
        return self._reconciler.store

    async def get_user(self, user_id: int, *, scope_guild_id: Optional[int] = None) -> Any:
        """Resolve a user, inside ``scope_guild_id`` when one is given.

        Raises ``UserNotFoundError`` (or ``GuildNotFoundError`` for an
        unknown scope) before anything is written to the store.
        """

        if scope_guild_id is None:
            user = await self._resolver.fetch_user(user_id)
        else:
            guild = await self._resolver.fetch_guild(scope_guild_id)
            if guild is None:
                raise GuildNotFoundError(scope_guild_id)
            user = await self._resolver.fetch_member(guild, user_id)

        if user is None:
            raise UserNotFoundError(user_id)

        await self.track_user(user)
        return user

    async def get_guild_user(self, guild_id: int, user_id: int) -> Any:
        guild = await self._resolver.fetch_guild(guild_id)
        if guild is None:
            raise GuildNotFoundError(guild_id)

        member = await self._resolver.fetch_member(guild, user_id)
        if member is None:
            raise UserNotFoundError(user_id)

        await self.track_user(member)
        return member

    async def track_user(self, user: Any) -> None:
        """Record a user or member the bot has seen."""

        await self.observe(observation_from_discord(user))

    async def observe(self, observation: UserObservation) -> None:
        try:
            await self._reconciler.reconcile(observation)
        except Exception:
            if self._reconcile_failures is ReconcileFailurePolicy.RAISE:
                raise
            logger.exception("Failed to record user %s", observation.id)
