"""Database integration for persistent user records."""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Optional

import certifi
from psycopg2.extensions import connection as PsycopgConnection
from psycopg2.extras import RealDictCursor
from psycopg2.pool import ThreadedConnectionPool

logger = logging.getLogger(__name__)

_USER_COLUMNS = "id, username, discriminator, nickname, first_seen, last_seen"


class Database:
    """psycopg2 connection pool that initialises tables and runs queries via asyncio."""

    def __init__(self, database_url: Optional[str], *, pool_size: int = 5):
        self._url = database_url
        self._pool_size = max(pool_size, 1)
        self._pool: Optional[ThreadedConnectionPool] = None
        self._lock = asyncio.Lock()
        # getconn fails instead of waiting once every pooled connection is out.
        self._checkouts = asyncio.Semaphore(self._pool_size)

    @property
    def is_connected(self) -> bool:
        return self._pool is not None and not self._pool.closed

    async def connect(self) -> None:
        if not self._url:
            logger.info("Database URL not configured; user records will be kept in memory.")
            return
        async with self._lock:
            if self.is_connected:
                return
            try:
                ssl_args = {}
                if "supabase.co" in self._url:
                    ssl_args = {"sslmode": "verify-full", "sslrootcert": certifi.where()}
                self._pool = await asyncio.to_thread(
                    lambda: ThreadedConnectionPool(
                        1, self._pool_size, dsn=self._url, **ssl_args
                    )
                )
                await asyncio.to_thread(self._run_initial_schema_statements)
            except Exception:
                logger.exception(
                    "Failed to initialise database connection; falling back to in-memory users."
                )
                if self._pool is not None and not self._pool.closed:
                    self._pool.closeall()
                self._pool = None

    async def close(self) -> None:
        async with self._lock:
            if self.is_connected:
                await asyncio.to_thread(self._pool.closeall)
            self._pool = None

    async def acquire(self) -> PsycopgConnection:
        """Check a connection out of the pool, waiting while all of them are in use.

        Callers must hand the connection back via ``release``.
        """

        if not self.is_connected:
            raise RuntimeError("Database is not connected")
        await self._checkouts.acquire()
        try:
            return await asyncio.to_thread(self._pool.getconn)
        except BaseException:
            self._checkouts.release()
            raise

    async def release(self, conn: PsycopgConnection) -> None:
        try:
            if self._pool is None or self._pool.closed:
                conn.close()
            else:
                await asyncio.to_thread(self._pool.putconn, conn)
        finally:
            self._checkouts.release()

    def _run_initial_schema_statements(self) -> None:
        conn = self._pool.getconn()
        try:
            with conn, conn.cursor() as cur:
                cur.execute(
                    """
                    create table if not exists users (
                        id bigint primary key,
                        username text not null,
                        discriminator text not null,
                        nickname text,
                        first_seen timestamptz not null,
                        last_seen timestamptz not null
                    );
                    """
                )
                cur.execute(
                    """
                    create index if not exists idx_users_last_seen
                    on users(last_seen desc);
                    """
                )
        finally:
            self._pool.putconn(conn)

    async def _fetchall(
        self, query: str, params: tuple[Any, ...] | tuple[()]
    ) -> list[dict[str, Any]]:
        if not self.is_connected:
            return []
        conn = await self.acquire()
        try:
            return await asyncio.to_thread(self._fetchall_sync, conn, query, params)
        finally:
            await self.release(conn)

    def _fetchall_sync(
        self, conn: PsycopgConnection, query: str, params: tuple[Any, ...] | tuple[()]
    ) -> list[dict[str, Any]]:
        with conn.cursor(cursor_factory=RealDictCursor) as cur:
            cur.execute(query, params)
            rows = cur.fetchall()
        conn.commit()
        return [dict(row) for row in rows]

    async def _fetchone(
        self, query: str, params: tuple[Any, ...] | tuple[()]
    ) -> Optional[dict[str, Any]]:
        rows = await self._fetchall(query, params)
        return rows[0] if rows else None

    async def fetch_user(self, user_id: int) -> Optional[dict[str, Any]]:
        return await self._fetchone(
            f"select {_USER_COLUMNS} from users where id = %s;", (user_id,)
        )

    async def fetch_recent_users(self, *, limit: int = 10) -> list[dict[str, Any]]:
        return await self._fetchall(
            f"""
            select {_USER_COLUMNS}
            from users
            order by last_seen desc
            limit %s;
            """,
            (limit,),
        )

    async def count_users(self) -> int:
        row = await self._fetchone("select count(*) as total from users;", ())
        return int(row["total"]) if row else 0


def select_user_for_update(conn: PsycopgConnection, user_id: int) -> Optional[dict[str, Any]]:
    """Read a user row and lock it until the surrounding transaction ends."""

    with conn.cursor(cursor_factory=RealDictCursor) as cur:
        cur.execute(
            f"select {_USER_COLUMNS} from users where id = %s for update;",
            (user_id,),
        )
        row = cur.fetchone()
    return dict(row) if row else None


def update_user(conn: PsycopgConnection, row: dict[str, Any]) -> None:
    with conn.cursor() as cur:
        cur.execute(
            """
            update users
            set username = %(username)s,
                discriminator = %(discriminator)s,
                nickname = %(nickname)s,
                last_seen = %(last_seen)s
            where id = %(id)s;
            """,
            row,
        )


def insert_user(conn: PsycopgConnection, row: dict[str, Any]) -> None:
    """Insert a new user row. Raises ``psycopg2.errors.UniqueViolation`` on conflict."""

    with conn.cursor() as cur:
        cur.execute(
            f"""
            insert into users ({_USER_COLUMNS})
            values (
                %(id)s,
                %(username)s,
                %(discriminator)s,
                %(nickname)s,
                %(first_seen)s,
                %(last_seen)s
            );
            """,
            row,
        )
