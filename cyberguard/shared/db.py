import os
import asyncio
import logging
from contextlib import asynccontextmanager
from typing import Any, Dict, List, Optional, Sequence

import asyncpg
from fastapi import Request

from .config import DatabaseConfig
from .errors import DatabaseConnectionError, QueryError

# Configure logging
logging.basicConfig(
    level=os.getenv("LOG_LEVEL", "INFO"),
    format="%(asctime)s [%(levelname)s] %(name)s: %(message)s"
)
logger = logging.getLogger(__name__)

MAX_CONNECT_ATTEMPTS = 3
RETRY_DELAY_SECONDS = 1.0

# Errors that mean the server or the socket is gone, as opposed to a bad statement
CONNECTION_ERRORS = (OSError, asyncio.TimeoutError, asyncpg.PostgresError, asyncpg.InterfaceError)
STATEMENT_ERRORS = (asyncpg.PostgresError, asyncpg.InterfaceError)


def _first_line(sql: str) -> str:
    lines = sql.strip().splitlines()
    return lines[0][:100] if lines else ""


class DatabaseSession:
    """
    One checked-out connection plus the statement and transaction helpers used on it.
    Note: use $1, $2, ... as placeholders in SQL; parameters are always bound, never formatted in.
    """

    def __init__(self, conn):
        self._conn = conn
        self._transaction = None

    async def _run(self, method: str, sql: str, params: Optional[Sequence[Any]]):
        logger.debug(f"Executing SQL query: {_first_line(sql)}... | Params: {params}")
        try:
            return await getattr(self._conn, method)(sql, *(params or ()))
        except STATEMENT_ERRORS as e:
            logger.error(f"Database query error: {e} | SQL: {sql.strip()}")
            raise QueryError(sql, e) from e

    async def query(self, sql: str, params: Optional[Sequence[Any]] = None) -> str:
        """Execute a statement and return its status tag, e.g. 'INSERT 0 1'"""
        return await self._run("execute", sql, params)

    async def fetch_one(self, sql: str, params: Optional[Sequence[Any]] = None) -> Optional[Dict[str, Any]]:
        row = await self._run("fetchrow", sql, params)
        return dict(row) if row is not None else None

    async def fetch_all(self, sql: str, params: Optional[Sequence[Any]] = None) -> List[Dict[str, Any]]:
        rows = await self._run("fetch", sql, params)
        return [dict(row) for row in rows]

    async def fetch_value(self, sql: str, params: Optional[Sequence[Any]] = None) -> Any:
        return await self._run("fetchval", sql, params)

    async def _control(self, statement: str, action) -> None:
        try:
            await action()
        except STATEMENT_ERRORS as e:
            logger.error(f"Transaction {statement} failed: {e}")
            raise QueryError(statement, e) from e
        logger.debug(f"Transaction {statement} done.")

    async def begin_transaction(self) -> None:
        transaction = self._conn.transaction()
        await self._control("BEGIN", transaction.start)
        self._transaction = transaction

    async def commit(self) -> None:
        transaction, self._transaction = self._transaction, None
        await self._control("COMMIT", transaction.commit)

    async def rollback(self) -> None:
        transaction, self._transaction = self._transaction, None
        await self._control("ROLLBACK", transaction.rollback)

    def in_transaction(self) -> bool:
        return self._transaction is not None and self._conn.is_in_transaction()


class ConnectionManager:
    """
    Owns the process' asyncpg pool.

    The pool is opened lazily on first use with a bounded retry, and re-opened
    when a checked-out connection fails its liveness probe. Construct one per
    application and pass it to whatever needs the database.
    """

    def __init__(
        self,
        config: DatabaseConfig,
        max_attempts: int = MAX_CONNECT_ATTEMPTS,
        retry_delay: float = RETRY_DELAY_SECONDS,
    ):
        if config is None:
            raise ValueError("Database configuration required for first connection")
        self.config = config
        self.max_attempts = max_attempts
        self.retry_delay = retry_delay
        self.connection_attempts = 0
        self._pool = None
        self._lock = asyncio.Lock()

    @property
    def is_connected(self) -> bool:
        return self._pool is not None

    async def _open_pool(self):
        self.connection_attempts = 0
        last_error = None
        while self.connection_attempts < self.max_attempts:
            self.connection_attempts += 1
            try:
                logger.info(f"Initializing database connection pool (attempt {self.connection_attempts})...")
                pool = await asyncpg.create_pool(**self.config.connect_kwargs())
                logger.info(f"Database connection pool initialized successfully ({self.config.database}).")
                return pool
            except CONNECTION_ERRORS as e:
                last_error = e
                logger.error(f"Database connection failed (attempt {self.connection_attempts}/{self.max_attempts}): {e}")
                if self.connection_attempts < self.max_attempts:
                    await asyncio.sleep(self.retry_delay)
        raise DatabaseConnectionError(self.connection_attempts, last_error)

    async def connect(self):
        """Open the pool if it is not open yet and return it."""
        async with self._lock:
            if self._pool is None:
                self._pool = await self._open_pool()
            return self._pool

    async def reconnect(self, stale_pool=None):
        """Drop the current pool and open a new one, unless another caller already replaced it."""
        async with self._lock:
            if self._pool is not None and self._pool is not stale_pool:
                return self._pool
            if self._pool is not None:
                logger.warning("Discarding stale database connection pool...")
                self._pool.terminate()
                self._pool = None
            self._pool = await self._open_pool()
            return self._pool

    async def close(self):
        async with self._lock:
            if self._pool is not None:
                logger.info("Closing database connection pool...")
                await self._pool.close()
                self._pool = None
                logger.info("Database connection pool closed.")

    async def _checkout(self, pool):
        conn = await pool.acquire()
        try:
            await conn.fetchval("SELECT 1")
        except BaseException:
            await pool.release(conn)
            raise
        return conn

    @asynccontextmanager
    async def get_connection(self):
        """
        Check out a live connection from the pool.
        Use with 'async with manager.get_connection() as conn:'
        """
        pool = await self.connect()
        try:
            conn = await self._checkout(pool)
        except CONNECTION_ERRORS as e:
            logger.warning(f"Database connection lost ({e}), reconnecting...")
            pool = await self.reconnect(pool)
            try:
                conn = await self._checkout(pool)
            except CONNECTION_ERRORS as retry_error:
                raise DatabaseConnectionError(self.connection_attempts, retry_error) from retry_error
        logger.debug("Database connection acquired.")
        try:
            yield conn
        finally:
            await pool.release(conn)
            logger.debug("Database connection released.")

    @asynccontextmanager
    async def session(self):
        """Yield a DatabaseSession; a transaction still open on exit is rolled back."""
        async with self.get_connection() as conn:
            session = DatabaseSession(conn)
            try:
                yield session
            finally:
                if session.in_transaction():
                    logger.warning("Session closed with an open transaction, rolling back.")
                    await session.rollback()

    async def query(self, sql: str, params: Optional[Sequence[Any]] = None) -> str:
        async with self.session() as session:
            return await session.query(sql, params)

    async def fetch_one(self, sql: str, params: Optional[Sequence[Any]] = None) -> Optional[Dict[str, Any]]:
        async with self.session() as session:
            return await session.fetch_one(sql, params)

    async def fetch_all(self, sql: str, params: Optional[Sequence[Any]] = None) -> List[Dict[str, Any]]:
        async with self.session() as session:
            return await session.fetch_all(sql, params)

    async def test_connection(self) -> Dict[str, Any]:
        """Run a probe query. Connection failures propagate; a failed probe is reported."""
        try:
            result = await self.fetch_one(
                "SELECT 'CyberGuard DB Connection Test' AS test_message, NOW() AS test_time"
            )
        except QueryError as e:
            return {"success": False, "error": str(e)}
        return {
            "success": True,
            "message": result["test_message"],
            "timestamp": result["test_time"],
            "database": self.config.database,
            "host": self.config.host,
        }


def get_db(request: Request) -> ConnectionManager:
    """FastAPI dependency returning the application's connection manager"""
    return request.app.state.db
