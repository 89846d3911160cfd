"""Durable storage of one record per Discord user."""

from __future__ import annotations

import abc
import asyncio
import logging
from typing import TYPE_CHECKING, Callable, Dict, List, Literal, Optional, Tuple

from psycopg2 import errors as pg_errors

from ..db import Database, insert_user, select_user_for_update, update_user
from ..errors import DuplicateKeyError
from ..models.users import UserRecord

if TYPE_CHECKING:
    from types import TracebackType

    from psycopg2.extensions import connection as PsycopgConnection

logger = logging.getLogger(__name__)

RecordMerge = Callable[[UserRecord], UserRecord]


class UserTransaction(abc.ABC):
    """Scoped unit of work against the user store.

    Use as ``async with store.begin_create_transaction() as transaction``.
    Nothing written through the transaction persists unless ``commit`` is
    awaited exactly once before the block exits.
    """

    def __init__(self) -> None:
        self._committed = False
        self._closed = False

    async def __aenter__(self) -> UserTransaction:
        await self._begin()
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc_value: BaseException | None,
        traceback: TracebackType | None,
    ) -> Literal[False]:
        try:
            if not self._committed:
                await self._rollback_on_exit(exc_type is not None)
        finally:
            self._closed = True
            await self._end()
        return False

    async def _rollback_on_exit(self, failing: bool) -> None:
        try:
            await self.rollback()
        except Exception:
            if not failing:
                raise
            # Keep the error that aborted the transaction.
            logger.exception("Failed to roll back user transaction")

    async def commit(self) -> None:
        if self._committed:
            raise RuntimeError("Transaction has already been committed")
        if self._closed:
            raise RuntimeError("Transaction is closed")
        await self._commit()
        self._committed = True

    @abc.abstractmethod
    async def try_update(self, user_id: int, merge: RecordMerge) -> bool:
        """Apply ``merge`` to the stored record for ``user_id``.

        Returns ``False`` without writing anything when no record exists.
        """

    @abc.abstractmethod
    async def create(self, record: UserRecord) -> None:
        """Insert ``record``. Raises ``DuplicateKeyError`` if the id is taken."""

    @abc.abstractmethod
    async def rollback(self) -> None: ...

    async def _begin(self) -> None:
        return None

    async def _end(self) -> None:
        return None

    @abc.abstractmethod
    async def _commit(self) -> None: ...


class UserRecordStore(abc.ABC):
    """Keyed storage of user records with transactional upsert primitives."""

    @abc.abstractmethod
    def begin_create_transaction(self) -> UserTransaction: ...

    @abc.abstractmethod
    async def get(self, user_id: int) -> Optional[UserRecord]: ...

    @abc.abstractmethod
    async def recent(self, limit: int = 10) -> List[UserRecord]:
        """Most recently seen records first."""

    @abc.abstractmethod
    async def count(self) -> int: ...


class InMemoryUserStore(UserRecordStore):
    """Process-local store used when no database is configured."""

    def __init__(self) -> None:
        self._records: Dict[int, UserRecord] = {}
        self._lock = asyncio.Lock()

    def begin_create_transaction(self) -> UserTransaction:
        return _InMemoryUserTransaction(self)

    async def get(self, user_id: int) -> Optional[UserRecord]:
        async with self._lock:
            return self._records.get(user_id)

    async def recent(self, limit: int = 10) -> List[UserRecord]:
        async with self._lock:
            records = sorted(self._records.values(), key=lambda r: r.last_seen, reverse=True)
        return records[:limit]

    async def count(self) -> int:
        async with self._lock:
            return len(self._records)


class _InMemoryUserTransaction(UserTransaction):
    """Stages writes and applies them atomically on commit.

    Updates are stored as merge functions and replayed against the record
    current at commit time, so concurrent transactions never lose each
    other's fields. Staged creates are re-checked on commit; a record
    committed by someone else in the meantime raises ``DuplicateKeyError``.
    """

    def __init__(self, store: InMemoryUserStore):
        super().__init__()
        self._store = store
        self._updates: List[Tuple[int, RecordMerge]] = []
        self._creates: Dict[int, UserRecord] = {}

    async def try_update(self, user_id: int, merge: RecordMerge) -> bool:
        if user_id in self._creates:
            self._creates[user_id] = merge(self._creates[user_id])
            return True
        async with self._store._lock:
            exists = user_id in self._store._records
        if not exists:
            return False
        self._updates.append((user_id, merge))
        return True

    async def create(self, record: UserRecord) -> None:
        if record.id in self._creates:
            raise DuplicateKeyError(record.id)
        async with self._store._lock:
            if record.id in self._store._records:
                raise DuplicateKeyError(record.id)
        self._creates[record.id] = record

    async def rollback(self) -> None:
        self._updates.clear()
        self._creates.clear()

    async def _commit(self) -> None:
        async with self._store._lock:
            records = self._store._records
            for user_id in self._creates:
                if user_id in records:
                    raise DuplicateKeyError(user_id)
            staged: Dict[int, UserRecord] = {}
            for user_id, merge in self._updates:
                staged[user_id] = merge(staged.get(user_id, records[user_id]))
            staged.update(self._creates)
            records.update(staged)
        self._updates.clear()
        self._creates.clear()


class PostgresUserStore(UserRecordStore):
    """User store backed by the ``users`` table."""

    def __init__(self, database: Database):
        self._database = database

    def begin_create_transaction(self) -> UserTransaction:
        return _PostgresUserTransaction(self._database)

    async def get(self, user_id: int) -> Optional[UserRecord]:
        row = await self._database.fetch_user(user_id)
        return UserRecord.model_validate(row) if row else None

    async def recent(self, limit: int = 10) -> List[UserRecord]:
        rows = await self._database.fetch_recent_users(limit=limit)
        return [UserRecord.model_validate(row) for row in rows]

    async def count(self) -> int:
        return await self._database.count_users()


class _PostgresUserTransaction(UserTransaction):
    """One pooled connection held for the lifetime of the transaction.

    ``try_update`` locks the row with ``select ... for update``. A racing
    insert for the same id blocks until the other transaction finishes and
    then fails with a unique violation, which surfaces as
    ``DuplicateKeyError``.
    """

    def __init__(self, database: Database):
        super().__init__()
        self._database = database
        self._conn: Optional[PsycopgConnection] = None

    @property
    def _connection(self) -> PsycopgConnection:
        if self._conn is None:
            raise RuntimeError("Transaction has not been entered")
        return self._conn

    async def _begin(self) -> None:
        self._conn = await self._database.acquire()

    async def _end(self) -> None:
        if self._conn is not None:
            conn, self._conn = self._conn, None
            await self._database.release(conn)

    async def try_update(self, user_id: int, merge: RecordMerge) -> bool:
        conn = self._connection
        row = await asyncio.to_thread(select_user_for_update, conn, user_id)
        if row is None:
            return False
        updated = merge(UserRecord.model_validate(row))
        await asyncio.to_thread(update_user, conn, updated.model_dump())
        return True

    async def create(self, record: UserRecord) -> None:
        try:
            await asyncio.to_thread(insert_user, self._connection, record.model_dump())
        except pg_errors.UniqueViolation as exc:
            raise DuplicateKeyError(record.id) from exc

    async def rollback(self) -> None:
        if self._conn is not None:
            await asyncio.to_thread(self._conn.rollback)

    async def _commit(self) -> None:
        await asyncio.to_thread(self._connection.commit)


def create_user_store(database: Optional[Database]) -> UserRecordStore:
    """Pick the Postgres store when the database is reachable, else keep users in memory."""

    if database is not None and database.is_connected:
        return PostgresUserStore(database)
    logger.warning("Database unavailable; user records will not survive a restart")
    return InMemoryUserStore()
