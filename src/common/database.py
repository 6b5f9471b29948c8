import logging
from contextlib import contextmanager
from typing import Generator, Iterable, Optional

import mysql.connector
import mysql.connector.pooling

from src.common.constants.database import (
    DB_LOCK_TIMEOUT_SECONDS,
    DB_POOL_SIZE,
    MYSQL_DATABASE,
    MYSQL_HOST,
    MYSQL_PASSWORD,
    MYSQL_PORT,
    MYSQL_USER,
)

logger = logging.getLogger(__name__)


class StorageError(Exception):
    """
    The store failed mid-operation.

    Raised after the surrounding transaction has been rolled back, so the
    caller may retry the whole operation.
    """


# ─────────────────────────────────────────────────────────────
# MySQL connection pool
# ─────────────────────────────────────────────────────────────

_connection_pool: Optional[mysql.connector.pooling.MySQLConnectionPool] = None


def _get_pool() -> mysql.connector.pooling.MySQLConnectionPool:
    """
    Get (or lazily create) the global MySQL connection pool.

    The pool is created on first use so that environment values loaded
    after import are still picked up.

    Returns:
        MySQLConnectionPool instance.
    """
    global _connection_pool
    if _connection_pool is None:
        logger.info(
            "Initialising MySQL pool: pool_size=%d, host=%s, database=%s",
            DB_POOL_SIZE, MYSQL_HOST, MYSQL_DATABASE,
        )
        _connection_pool = mysql.connector.pooling.MySQLConnectionPool(
            pool_name="xp_pool",
            pool_size=DB_POOL_SIZE,
            pool_reset_session=True,
            host=MYSQL_HOST,
            user=MYSQL_USER,
            password=MYSQL_PASSWORD,
            database=MYSQL_DATABASE,
            port=MYSQL_PORT,
        )
    return _connection_pool


def reset_pool() -> None:
    """
    Drop the global pool (tests and re-initialisation).
    """
    global _connection_pool
    _connection_pool = None


@contextmanager
def get_db_connection(
    host: str = MYSQL_HOST,
    user: str = MYSQL_USER,
    password: str = MYSQL_PASSWORD,
    database: str = MYSQL_DATABASE,
    port: int = MYSQL_PORT,
    **kwargs
) -> Generator[mysql.connector.MySQLConnection, None, None]:
    """
    Context manager for a MySQL connection.

    Default parameters take a connection from the pool; anything else opens
    a one-off connection (migrations, tests).

    Commits on success, rolls back on any exception and always closes
    (returns to the pool). Driver errors are re-raised as StorageError.
    """
    use_pool = (
        host == MYSQL_HOST
        and user == MYSQL_USER
        and password == MYSQL_PASSWORD
        and database == MYSQL_DATABASE
        and port == MYSQL_PORT
        and not kwargs
    )

    conn = None
    try:
        if use_pool:
            conn = _get_pool().get_connection()
        else:
            conn = mysql.connector.connect(
                host=host,
                user=user,
                password=password,
                database=database,
                port=port,
                **kwargs
            )
        yield conn
        conn.commit()
    except mysql.connector.Error as e:
        if conn:
            _safe_rollback(conn)
        logger.error("Storage failure, transaction rolled back: %s", e)
        raise StorageError(str(e)) from e
    except Exception:
        if conn:
            _safe_rollback(conn)
        raise
    finally:
        if conn and conn.is_connected():
            conn.close()


@contextmanager
def get_cursor(conn, dictionary=True):
    """Context manager for a MySQL cursor."""
    cursor = conn.cursor(dictionary=dictionary)
    try:
        yield cursor
    finally:
        cursor.close()


@contextmanager
def transaction(
    lock_names: Iterable[str] = (),
    isolation_level: str = "SERIALIZABLE",
    lock_timeout: int = DB_LOCK_TIMEOUT_SECONDS,
):
    """
    Run a block inside one transaction, holding named advisory locks.

    Locks are acquired in sorted order with GET_LOCK. The transaction is
    committed (or rolled back) before the locks are released, so the next
    holder of a lock always reads committed rows. Everything executed
    through the yielded cursor commits together or not at all.

    Args:
        lock_names: Names passed to GET_LOCK for the duration of the block.
        isolation_level: Isolation level for START TRANSACTION.
        lock_timeout: Seconds to wait for each lock.

    Yields:
        Dictionary cursor bound to the transaction.
    """
    names = sorted(set(lock_names))
    with get_db_connection() as conn:
        conn.start_transaction(isolation_level=isolation_level)
        with get_cursor(conn) as cursor:
            acquired = []
            try:
                for name in names:
                    cursor.execute("SELECT GET_LOCK(%s, %s) AS acquired", (name, lock_timeout))
                    row = cursor.fetchone()
                    if not row or row['acquired'] != 1:
                        raise StorageError(f"Could not acquire lock {name!r} within {lock_timeout}s")
                    acquired.append(name)
                yield cursor
                conn.commit()
            except Exception:
                _safe_rollback(conn)
                raise
            finally:
                for name in reversed(acquired):
                    try:
                        cursor.execute("SELECT RELEASE_LOCK(%s) AS released", (name,))
                        cursor.fetchone()
                    except mysql.connector.Error as e:
                        # the lock dies with the session anyway
                        logger.warning("Failed to release lock %s: %s", name, e)


def _safe_rollback(conn) -> None:
    try:
        conn.rollback()
    except mysql.connector.Error as e:
        logger.error("Rollback failed: %s", e)
