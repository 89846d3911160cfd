"""Lightweight HTTP health endpoint for deployment platforms."""

from __future__ import annotations

import asyncio
import json
import logging

from .db import Database
from .services.user_store import PostgresUserStore, UserRecordStore

logger = logging.getLogger(__name__)


async def build_health_payload(store: UserRecordStore, database: Database) -> dict:
    payload = {
        "status": "ok",
        "storage": "database" if isinstance(store, PostgresUserStore) else "in-memory",
        "database_connected": database.is_connected if database else False,
        "tracked_users": None,
    }
    try:
        payload["tracked_users"] = await store.count()
    except Exception:
        logger.exception("Failed to count tracked users for health check")
        payload["status"] = "degraded"
    return payload


async def _handle_client(
    reader: asyncio.StreamReader,
    writer: asyncio.StreamWriter,
    store: UserRecordStore,
    database: Database,
) -> None:
    try:
        data = await reader.readuntil(b"\r\n\r\n")
    except (asyncio.IncompleteReadError, asyncio.LimitOverrunError):
        writer.close()
        await writer.wait_closed()
        return

    request_line = data.decode(errors="ignore").split("\r\n", 1)[0]
    method, path, *_ = request_line.split(" ") + ["", ""]
    if method.upper() != "GET" or path not in {"/", "/health", "/healthz"}:
        response = "HTTP/1.1 404 Not Found\r\nContent-Length: 0\r\nConnection: close\r\n\r\n"
        writer.write(response.encode())
        await writer.drain()
        writer.close()
        await writer.wait_closed()
        return

    body = json.dumps(await build_health_payload(store, database)).encode()
    response = (
        "HTTP/1.1 200 OK\r\n"
        "Content-Type: application/json\r\n"
        f"Content-Length: {len(body)}\r\n"
        "Connection: close\r\n"
        "\r\n"
    ).encode() + body
    writer.write(response)
    await writer.drain()
    writer.close()
    await writer.wait_closed()


async def start_health_server(
    host: str,
    port: int,
    store: UserRecordStore,
    database: Database,
) -> asyncio.AbstractServer:
    server = await asyncio.start_server(
        lambda r, w: _handle_client(r, w, store, database),
        host,
        port,
    )
    return server
