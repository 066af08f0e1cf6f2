"""
SQLite connection handling with SQLAlchemy.

This module provides:
1. Engine creation and management through a thread-safe registry
2. The `ConnectionWrapper` class that wraps one open connection
3. The `Transaction` context manager for explicit BEGIN/COMMIT/ROLLBACK
4. `open_connection()`, which opens and configures a fresh connection

Engines use NullPool, so every `open_connection()` call opens a new DB-API
connection and closing the wrapper closes it.
"""
import atexit
import logging
import sqlite3
import threading
from typing import Any, Self

import sqlalchemy as sa
from sqlalchemy.engine import Engine
from sqlalchemy.pool import NullPool
from sqlite_connector.cursor import Cursor
from sqlite_connector.exceptions import ConnectionFailure
from sqlite_connector.options import ConnectorOptions, create_url_from_options

__all__ = [
    'ConnectionWrapper',
    'Transaction',
    'open_connection',
    'configure_connection',
    'get_engine_for_options',
    'dispose_engine',
    'dispose_all_engines',
]

logger = logging.getLogger(__name__)

_engine_registry: dict[str, Engine] = {}
_engine_registry_lock = threading.RLock()

_local = threading.local()


def _engine_key(options: ConnectorOptions) -> str:
    return f'{create_url_from_options(options)}_{options.timeout}_{options.echo}'


def get_engine_for_options(options: ConnectorOptions) -> Engine:
    """Get or create a SQLAlchemy engine for the given options.
    """
    key = _engine_key(options)

    with _engine_registry_lock:
        if key in _engine_registry:
            return _engine_registry[key]

        url = create_url_from_options(options)
        engine = sa.create_engine(
            url,
            echo=options.echo,
            poolclass=NullPool,
            connect_args={'timeout': options.timeout},
        )
        _engine_registry[key] = engine
        logger.debug(f'Created new engine for {options.data_file}')

        return engine


def dispose_engine(options: ConnectorOptions) -> None:
    """Dispose the engine registered for the given options, if any.
    """
    with _engine_registry_lock:
        engine = _engine_registry.pop(_engine_key(options), None)
        if engine is not None:
            engine.dispose()
            logger.debug(f'Disposed engine for {options.data_file}')


def dispose_all_engines() -> None:
    """Dispose all engines in the registry.
    """
    with _engine_registry_lock:
        for engine in _engine_registry.values():
            engine.dispose()
        _engine_registry.clear()
        logger.debug('All database engines disposed')


atexit.register(dispose_all_engines)


def configure_connection(dbapi_connection: Any, options: ConnectorOptions) -> None:
    """Configure a fresh sqlite3 connection.

    Rows come back as sqlite3.Row, the driver runs in autocommit mode
    (transactions are opened with an explicit BEGIN) and foreign key
    enforcement follows the options.
    """
    dbapi_connection.isolation_level = None
    dbapi_connection.row_factory = sqlite3.Row
    flag = 'ON' if options.foreign_keys else 'OFF'
    dbapi_connection.execute(f'PRAGMA foreign_keys = {flag}')


class ConnectionWrapper:
    """Wraps one open SQLAlchemy connection to track calls and execution time

    This class provides a thin wrapper around an SQLAlchemy connection that:
    1. Tracks query execution counts and timing
    2. Exposes the underlying sqlite3 connection as `dbapi_connection`
    3. Supports context manager protocol for guaranteed close
    """

    def __init__(self, sa_connection: sa.engine.Connection,
                 options: ConnectorOptions) -> None:
        self.sa_connection = sa_connection
        self.options = options
        self.dbapi_connection = sa_connection.connection.driver_connection
        self.calls = 0
        self.time = 0.0
        self.in_transaction = False

    def __enter__(self) -> Self:
        return self

    def __exit__(self, exc_type: type | None, exc_val: Exception | None,
                 exc_tb: Any | None) -> None:
        self.close()

    @property
    def closed(self) -> bool:
        return self.sa_connection.closed

    def cursor(self) -> Cursor:
        """Get a wrapped cursor for this connection."""
        if self.closed:
            raise ConnectionFailure('Connection is closed')
        return Cursor(self.dbapi_connection.cursor(), self)

    def execute(self, sql: str, params: Any = None) -> Cursor:
        """Execute a statement on a new cursor and return the cursor."""
        return self.cursor().execute(sql, params)

    def addcall(self, elapsed: float) -> None:
        """Track execution statistics"""
        self.time += elapsed
        self.calls += 1

    def begin(self) -> None:
        self.dbapi_connection.execute('BEGIN')
        self.in_transaction = True

    def commit(self) -> None:
        self.dbapi_connection.commit()
        self.in_transaction = False

    def rollback(self) -> None:
        self.dbapi_connection.rollback()
        self.in_transaction = False

    def close(self) -> None:
        """Close the connection, rolling back any open transaction."""
        if self.closed:
            return
        try:
            if self.in_transaction:
                logger.warning('Closing connection with an open transaction, rolling back')
                self.rollback()
        finally:
            self.sa_connection.close()
            logger.debug(f'Connection closed: {self.calls} queries in {self.time:.2f}s')


def open_connection(options: ConnectorOptions) -> ConnectionWrapper:
    """Open and configure a new connection for the given options.

    Raises
        ConnectionFailure: If the database file cannot be opened
    """
    engine = get_engine_for_options(options)
    try:
        sa_connection = engine.connect()
    except sa.exc.DBAPIError as e:
        raise ConnectionFailure(f'Unable to open {options.data_file}: {e.orig}') from e.orig

    try:
        configure_connection(sa_connection.connection.driver_connection, options)
    except Exception:
        sa_connection.close()
        raise

    logger.debug(f'Opened connection to {options.data_file}')
    return ConnectionWrapper(sa_connection, options)


class Transaction:
    """Context manager for running multiple commands in a transaction.

    Uses thread-local storage to refuse nested transactions on the same
    connection. On exit the transaction commits, or rolls back and lets the
    exception propagate.

    Examples
        with Transaction(cn):
            connector.execute('delete from ...', params, connection=cn)
            connector.execute('update ...', params, connection=cn)
    """

    def __init__(self, cn: ConnectionWrapper) -> None:
        self.connection = cn

        if not hasattr(_local, 'active_transactions'):
            _local.active_transactions = set()

        if id(cn) in _local.active_transactions or cn.in_transaction:
            raise RuntimeError('Nested transactions are not supported')

    def __enter__(self) -> ConnectionWrapper:
        _local.active_transactions.add(id(self.connection))
        try:
            self.connection.begin()
        except Exception:
            _local.active_transactions.discard(id(self.connection))
            raise
        logger.debug(f'Started transaction for connection {id(self.connection)}')
        return self.connection

    def __exit__(self, exc_type: type | None, value: Exception | None,
                 traceback: Any | None) -> None:
        try:
            if exc_type is not None:
                self.connection.rollback()
                logger.warning('Rolling back the current transaction')
            else:
                try:
                    self.connection.commit()
                except Exception:
                    self.connection.rollback()
                    raise
                logger.debug(f'Committed transaction for connection {id(self.connection)}')
        finally:
            _local.active_transactions.discard(id(self.connection))
