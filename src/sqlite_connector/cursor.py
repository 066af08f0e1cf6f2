"""
Cursor wrapper and streaming results for SQLite connections.

Implements the subset of Python DB-API 2.0 (PEP-249) the connector uses,
with named-parameter expansion and SQL logging on every execute.
"""
import logging
import time
from collections.abc import Callable, Iterator
from functools import wraps
from typing import TYPE_CHECKING, Any, Generic, Self, TypeVar

from sqlite_connector.sql import expand_parameters, placeholder_names
from sqlite_connector.sql import split_statements
from sqlite_connector.types import Parameters

if TYPE_CHECKING:
    from sqlite_connector.connection import ConnectionWrapper

logger = logging.getLogger(__name__)

T = TypeVar('T')


def dumpsql(func):
    """Decorator for logging SQL queries and parameters."""
    @wraps(func)
    def wrapper(self, operation: str, *args: Any, **kwargs: Any):
        start = time.time()
        logger.debug(f'SQL:\n{operation}\nargs: {args}')
        try:
            return func(self, operation, *args, **kwargs)
        except Exception:
            logger.error(f'Error with query:\nSQL:\n{operation}\nargs: {args}')
            raise
        finally:
            elapsed = time.time() - start
            self.connwrapper.addcall(elapsed)
            logger.debug(f'Query time: {elapsed:.4f}s')
    return wrapper


class Cursor:
    """Cursor wrapper binding named parameters with collection expansion.
    """

    def __init__(self, cursor: Any, connection_wrapper: 'ConnectionWrapper') -> None:
        self.dbapi_cursor = cursor
        self.connwrapper = connection_wrapper
        self._rowcount = None

    def __getattr__(self, name: str) -> Any:
        """Delegate members to underlying cursor."""
        return getattr(self.dbapi_cursor, name)

    def __iter__(self) -> Iterator:
        return iter(self.dbapi_cursor)

    @property
    def description(self) -> tuple | None:
        """Column descriptions for last query."""
        return self.dbapi_cursor.description

    @property
    def column_names(self) -> list[str]:
        """Names of the result columns of the last query."""
        return [d[0] for d in self.dbapi_cursor.description or ()]

    @property
    def rowcount(self) -> int:
        """Number of rows affected by last operation.

        For a script, the sum over its statements, or -1 when none of them
        reports a count.
        """
        if self._rowcount is not None:
            return self._rowcount
        return self.dbapi_cursor.rowcount

    @property
    def lastrowid(self) -> int | None:
        return self.dbapi_cursor.lastrowid

    def close(self) -> None:
        self.dbapi_cursor.close()

    def fetchone(self) -> Any:
        return self.dbapi_cursor.fetchone()

    def fetchmany(self, size: int | None = None) -> list:
        if size is None:
            return self.dbapi_cursor.fetchmany()
        return self.dbapi_cursor.fetchmany(size)

    def fetchall(self) -> list:
        return self.dbapi_cursor.fetchall()

    @dumpsql
    def execute(self, operation: str, params: Parameters = None) -> Self:
        """Execute SQL, expanding collection-valued parameters.

        Text holding several statements runs them in order, each bound to
        the parameters it references. Results are those of the last one.
        """
        sql, bound = expand_parameters(operation, params)
        if sql != operation:
            logger.debug(f'Expanded SQL:\n{sql}')

        self._rowcount = None
        statements = split_statements(sql)
        if len(statements) <= 1:
            self.dbapi_cursor.execute(sql, bound)
            return self

        logger.debug(f'Executing script of {len(statements)} statements')
        total = -1
        for statement in statements:
            names = set(placeholder_names(statement))
            self.dbapi_cursor.execute(statement, {k: v for k, v in bound.items() if k in names})
            if self.dbapi_cursor.rowcount >= 0:
                total = max(total, 0) + self.dbapi_cursor.rowcount
        self._rowcount = total
        return self


class ResultStream(Generic[T]):
    """Lazy, forward-only, single-pass sequence of mapped rows.

    The stream owns the connection its query ran on. The connection is
    released when the rows are exhausted, when `close()` is called, or when
    a ``with`` block around the stream exits. A stream that is neither
    drained nor closed keeps its connection open.

    Examples
        with connector.select(Product, 'select * from Product') as rows:
            for product in rows:
                ...
    """

    def __init__(self, cursor: Cursor, connection: 'ConnectionWrapper',
                 transform: Callable[[Any], T]) -> None:
        self._cursor = cursor
        self._connection = connection
        self._transform = transform
        self._closed = False

    def __iter__(self) -> Self:
        return self

    def __next__(self) -> T:
        if self._closed:
            raise StopIteration
        try:
            row = self._cursor.fetchone()
            if row is None:
                self.close()
                raise StopIteration
            return self._transform(row)
        except StopIteration:
            raise
        except Exception:
            self.close()
            raise

    def __enter__(self) -> Self:
        return self

    def __exit__(self, exc_type: type | None, exc_val: Exception | None,
                 exc_tb: Any | None) -> None:
        self.close()

    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def column_names(self) -> list[str]:
        return self._cursor.column_names

    def close(self) -> None:
        """Release the cursor and connection. Safe to call repeatedly."""
        if self._closed:
            return
        self._closed = True
        try:
            self._cursor.close()
        finally:
            self._connection.close()
            logger.debug('Result stream closed')
