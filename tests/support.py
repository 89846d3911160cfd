"""Fakes and helpers shared by the Warden tests."""

from __future__ import annotations

import time
from datetime import datetime, timedelta, timezone
from types import SimpleNamespace
from typing import Optional

import psycopg2
from psycopg2.errors import UniqueViolation
from psycopg2.extensions import TRANSACTION_STATUS_IDLE
from psycopg2.pool import ThreadedConnectionPool

T0 = datetime(2024, 1, 1, 12, 0, tzinfo=timezone.utc)


class SteppingClock:
    """Deterministic clock that advances one second per reading."""

    def __init__(self, start: datetime = T0, step: timedelta = timedelta(seconds=1)):
        self._next = start
        self._step = step

    def __call__(self) -> datetime:
        value = self._next
        self._next += self._step
        return value


def make_user(user_id: int, name: Optional[str] = "Ann", discriminator: str = "0"):
    """Stand-in for ``discord.User``."""
    return SimpleNamespace(id=user_id, name=name, discriminator=discriminator)


def make_member(
    user_id: int,
    guild_id: int,
    name: Optional[str] = "Ann",
    discriminator: str = "0",
    nick: Optional[str] = None,
):
    """Stand-in for ``discord.Member``."""
    return SimpleNamespace(
        id=user_id,
        name=name,
        discriminator=discriminator,
        nick=nick,
        guild=SimpleNamespace(id=guild_id),
    )


class FakeConnection:
    """Just enough of a psycopg2 connection for the pool and the transactions."""

    def __init__(self):
        self.closed = 0
        self.info = SimpleNamespace(transaction_status=TRANSACTION_STATUS_IDLE)
        self.commits = 0
        self.rollbacks = 0
        self.fail_rollback = False

    def commit(self):
        self.commits += 1

    def rollback(self):
        if self.fail_rollback:
            raise psycopg2.InterfaceError("connection already closed")
        self.rollbacks += 1

    def close(self):
        self.closed = 1


class FakeConnectionPool(ThreadedConnectionPool):
    """Real psycopg2 pool bookkeeping over ``FakeConnection`` objects."""

    def __init__(self, minconn: int, maxconn: int):
        self.connections = []
        self.peak_in_use = 0
        super().__init__(minconn, maxconn)

    def _connect(self, key=None):
        conn = FakeConnection()
        self.connections.append(conn)
        if key is not None:
            self._used[key] = conn
            self._rused[id(conn)] = key
        else:
            self._pool.append(conn)
        return conn

    def getconn(self, key=None):
        conn = super().getconn(key)
        self.peak_in_use = max(self.peak_in_use, len(self._used))
        return conn

    @property
    def in_use(self) -> int:
        return len(self._used)


class FakeUsersTable:
    """Stands in for the row-level SQL helpers of ``warden.db``."""

    def __init__(self, delay: float = 0.0):
        self.rows = {}
        self.delay = delay
        self.updates = []

    def select_for_update(self, conn, user_id):
        time.sleep(self.delay)
        row = self.rows.get(user_id)
        return dict(row) if row else None

    def update(self, conn, row):
        self.updates.append(row["id"])
        self.rows[row["id"]] = dict(row)

    def insert(self, conn, row):
        if row["id"] in self.rows:
            raise UniqueViolation("duplicate key value violates unique constraint")
        self.rows[row["id"]] = dict(row)
