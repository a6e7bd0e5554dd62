"""Shared application context owning the process-wide database pool."""
from __future__ import annotations

import logging
from threading import Lock
from typing import Optional

from psycopg2.extensions import connection as PgConnection
from psycopg2.pool import ThreadedConnectionPool

from .config import DatabaseConfig, load_database_config

logger = logging.getLogger("travel_backend.db")

_pool: Optional[ThreadedConnectionPool] = None
_pool_lock = Lock()


def init_pool(config: Optional[DatabaseConfig] = None) -> ThreadedConnectionPool:
    """Create the connection pool once; later calls return the existing pool."""

    global _pool
    with _pool_lock:
        if _pool is not None:
            return _pool
        config = config or load_database_config()
        _pool = ThreadedConnectionPool(config.pool_min, config.pool_max, **config.connect_kwargs())
        logger.info(
            "Database pool initialised host=%s db=%s size=%s..%s",
            config.host,
            config.dbname,
            config.pool_min,
            config.pool_max,
        )
        return _pool


def close_pool() -> None:
    global _pool
    with _pool_lock:
        if _pool is None:
            return
        _pool.closeall()
        _pool = None
        logger.info("Database pool closed")


def get_pool() -> ThreadedConnectionPool:
    if _pool is None:
        raise RuntimeError("Database pool has not been initialised yet")
    return _pool


def get_conn() -> PgConnection:
    return get_pool().getconn()


def release_conn(connection: PgConnection, *, discard: bool = False) -> None:
    pool = _pool
    if pool is None:
        connection.close()
        return
    pool.putconn(connection, close=discard)


__all__ = ["close_pool", "get_conn", "get_pool", "init_pool", "release_conn"]
