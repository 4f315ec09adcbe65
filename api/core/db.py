"""
Connection provider (raw SQL) backed by an asyncpg pool.

This module owns the connection pool. FastAPI initializes it on startup and
closes it on shutdown (see `api/main.py`).

The CRUD dispatch never talks to the pool directly: it asks a provider for a
connection, runs exactly one statement on it and releases it.

SQL parameter style:
- asyncpg uses positional placeholders: $1, $2, $3, ...
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field
from typing import Any, Protocol, Sequence
from urllib.parse import parse_qsl, urlencode, urlsplit, urlunsplit

import asyncpg

from core import config

logger = logging.getLogger(__name__)

_pool: asyncpg.Pool | None = None


def _sanitize_database_url(url: str) -> str:
    parts = urlsplit(url)
    if not parts.query:
        return url

    params = [(k, v) for (k, v) in parse_qsl(parts.query, keep_blank_values=True) if k != "sslmode"]
    query = urlencode(params)
    return urlunsplit((parts.scheme, parts.netloc, parts.path, query, parts.fragment))


def database_url() -> str:
    url = os.environ.get("DATABASE_URL", "").strip()
    if not url:
        raise RuntimeError("DATABASE_URL is not set.")
    return _sanitize_database_url(url)


async def init_pool() -> None:
    global _pool
    if _pool is not None:
        return None
    created = await asyncpg.create_pool(
        dsn=database_url(),
        min_size=config.pool_min_size(),
        max_size=config.pool_max_size(),
        command_timeout=config.command_timeout_s(),
    )
    if _pool is not None:
        # Another caller won the race while we were connecting.
        await created.close()
        return None
    _pool = created


async def close_pool() -> None:
    global _pool
    if _pool is None:
        return None
    await _pool.close()
    _pool = None


def pool() -> asyncpg.Pool:
    if _pool is None:
        raise RuntimeError("DB pool is not initialized. Call init_pool() on startup.")
    return _pool


def _record_to_dict(record: asyncpg.Record) -> dict[str, Any]:
    return dict(record)


def _affected_rows(status: str | None) -> int:
    """
    Parse the row count out of a command tag ("UPDATE 3", "INSERT 0 1").
    """
    if not status:
        return 0
    last = status.rsplit(" ", 1)[-1]
    return int(last) if last.isdigit() else 0


@dataclass(frozen=True)
class UpdateResult:
    updated: int
    keys: list[Any] = field(default_factory=list)


class Connection(Protocol):
    async def query(self, sql: str) -> list[dict[str, Any]]: ...

    async def query_with_params(self, sql: str, params: Sequence[Any]) -> list[dict[str, Any]]: ...

    async def update_with_params(self, sql: str, params: Sequence[Any]) -> UpdateResult: ...

    async def release(self) -> None: ...


class ConnectionProvider(Protocol):
    async def acquire_connection(self) -> Connection: ...


class PooledConnection:
    """
    One connection borrowed from the pool for the duration of one operation.
    """

    def __init__(self, owner: asyncpg.Pool, connection: asyncpg.Connection) -> None:
        self._owner = owner
        self._connection: asyncpg.Connection | None = connection

    def _conn(self) -> asyncpg.Connection:
        if self._connection is None:
            raise RuntimeError("Connection was already released.")
        return self._connection

    async def query(self, sql: str) -> list[dict[str, Any]]:
        rows = await self._conn().fetch(sql)
        return [_record_to_dict(r) for r in rows]

    async def query_with_params(self, sql: str, params: Sequence[Any]) -> list[dict[str, Any]]:
        rows = await self._conn().fetch(sql, *params)
        return [_record_to_dict(r) for r in rows]

    async def update_with_params(self, sql: str, params: Sequence[Any]) -> UpdateResult:
        """
        Run INSERT/UPDATE/DELETE. Generated keys come from a RETURNING clause:
        the first column of every returned row.
        """
        statement = await self._conn().prepare(sql)
        rows = await statement.fetch(*params)
        keys = [row[0] for row in rows]
        return UpdateResult(updated=_affected_rows(statement.get_statusmsg()), keys=keys)

    async def release(self) -> None:
        if self._connection is None:
            return None
        connection, self._connection = self._connection, None
        await self._owner.release(connection)


class PoolConnectionProvider:
    async def acquire_connection(self) -> PooledConnection:
        # The pool may have failed to start; retry so callers see the driver error.
        if _pool is None:
            await init_pool()
        owner = pool()
        connection = await owner.acquire()
        return PooledConnection(owner, connection)


async def check_connection(provider: ConnectionProvider) -> bool:
    """
    Borrow and return one connection to prove the database is reachable.
    """
    try:
        connection = await provider.acquire_connection()
    except Exception:
        logger.exception("database_unreachable")
        return False
    await connection.release()
    logger.info("database_ready")
    return True
