"""
The Connector: data-access facade over one SQLite database file.

Every operation opens a fresh connection, runs, and closes it on all exit
paths. The ``connection=`` variants of `execute` reuse a caller-owned
connection instead, typically one yielded by `Connector.transaction()`.

    connector = Connector('app.db')
    connector.execute('insert into Product (Name) values (@name)', {'name': 'Tea'})
    product = connector.select_entity(Product, 'select * from Product where Id = @id',
                                      [QueryParameter('@id', 1)])
    names = list(connector.select_values('select Name from Product where Id in (@ids)',
                                         {'ids': [1, 2, 3]}))
"""
import logging
from collections.abc import Iterable, Iterator
from contextlib import contextmanager
from dataclasses import replace
from typing import Any, Self, TypeVar

from sqlite_connector.connection import ConnectionWrapper, Transaction
from sqlite_connector.connection import dispose_engine, open_connection
from sqlite_connector.cursor import ResultStream
from sqlite_connector.mapping import coerce_value, get_binding
from sqlite_connector.options import ConnectorOptions, build_connection_string
from sqlite_connector.options import parse_connection_string
from sqlite_connector.types import ExtractorLike, MapperLike, Parameters
from sqlite_connector.types import PreparedCommand, QueryParameter

__all__ = ['Connector']

logger = logging.getLogger(__name__)

T = TypeVar('T')

CHECK_TABLE_EXISTS = "SELECT name FROM sqlite_master WHERE type='table' AND name=:TableName;"
LAST_ROW_ID = 'SELECT last_insert_rowid()'


def _first_column(row: Any) -> Any:
    return row[0]


class Connector:
    """Executes parameterized SQL against a SQLite file and maps the results.

    Parameters
        data_file: SQLite database file path
        options: Optional ConnectorOptions; its foreign_keys and timeout
                 settings apply when no explicit connection string is set
    """

    def __init__(self, data_file: str, options: ConnectorOptions | None = None) -> None:
        if not data_file:
            raise ValueError('data_file is required')

        self._data_file = data_file
        self._connection_string = None
        self._defaults = options or ConnectorOptions(data_file=data_file)
        if self._defaults.connection_string:
            self._connection_string = self._defaults.connection_string

    @classmethod
    def from_options(cls, options: ConnectorOptions | dict[str, Any]) -> Self:
        """Create a connector from ConnectorOptions or a dict of options.
        """
        if isinstance(options, dict):
            options = ConnectorOptions.from_dict(options)
        return cls(options.data_file, options)

    def __enter__(self) -> Self:
        return self

    def __exit__(self, exc_type: type | None, exc_val: Exception | None,
                 exc_tb: Any | None) -> None:
        self.close()

    def __repr__(self) -> str:
        return f'Connector({self._data_file!r})'

    @property
    def data_file(self) -> str:
        """Active database file. Updated by a successful `connect()`."""
        return self._data_file

    @property
    def connection_string(self) -> str:
        """Connection string used to open connections.

        Derived from the data file unless set explicitly; assigning None
        restores the derived value.
        """
        if self._connection_string:
            return self._connection_string
        return build_connection_string(self._data_file, self._defaults.foreign_keys)

    @connection_string.setter
    def connection_string(self, value: str | None) -> None:
        if value:
            parse_connection_string(value)
        self._connection_string = value or None

    @property
    def options(self) -> ConnectorOptions:
        """Effective options, parsed from the connection string."""
        parsed = parse_connection_string(self.connection_string)
        if self._connection_string:
            return replace(parsed, echo=self._defaults.echo)
        return replace(parsed, timeout=self._defaults.timeout,
                       read_only=self._defaults.read_only, echo=self._defaults.echo)

    def open(self) -> ConnectionWrapper:
        """Open a new configured connection. The caller must close it."""
        return open_connection(self.options)

    def close(self) -> None:
        """Dispose the engine behind this connector."""
        dispose_engine(self.options)

    def connect(self, data_file: str) -> bool:
        """Check that a database file can be opened and make it active.

        A throwaway connection is opened and closed; on success the file
        becomes the connector's data file.

        Raises
            ConnectionFailure: If the file cannot be opened
        """
        if not data_file:
            raise ValueError('data_file is required')

        options = ConnectorOptions(data_file=data_file, timeout=self._defaults.timeout)
        try:
            with open_connection(options):
                pass
        finally:
            dispose_engine(options)

        self._data_file = data_file
        logger.debug(f'Connected to {data_file}')
        return True

    @contextmanager
    def transaction(self) -> Iterator[ConnectionWrapper]:
        """Open a connection inside a transaction.

        Commits when the block exits normally, rolls back and re-raises
        otherwise. Pass the yielded connection to `execute`.

        Examples
            with connector.transaction() as cn:
                connector.execute('delete from Item where OrderId = @id', params, connection=cn)
                connector.execute('delete from Orders where Id = @id', params, connection=cn)
        """
        with self.open() as cn, Transaction(cn):
            yield cn

    def execute(self, query: str, params: Parameters = None,
                connection: ConnectionWrapper | None = None) -> int:
        """Execute a statement and return the number of affected rows.

        Command text may hold several statements separated by semicolons,
        such as a schema script; their row counts are summed.

        Parameters
            query: Command text with named placeholders
            params: Iterable of QueryParameter, mapping of name to value, or None
            connection: Open connection to reuse; its owner commits
        """
        if connection is not None:
            return connection.execute(query, params).rowcount

        with self.open() as cn:
            return cn.execute(query, params).rowcount

    def execute_returning_id(self, query: str, params: Parameters = None,
                             connection: ConnectionWrapper | None = None) -> tuple[int, int]:
        """Execute a statement and return (affected rows, last insert rowid).

        The rowid query runs on the same connection straight after the
        statement; it is only meaningful after a single-row INSERT.
        """
        if connection is not None:
            return self._execute_returning_id(connection, query, params)

        with self.open() as cn:
            return self._execute_returning_id(cn, query, params)

    def _execute_returning_id(self, cn: ConnectionWrapper, query: str,
                              params: Parameters) -> tuple[int, int]:
        cursor = cn.execute(query, params)
        rows_affected = cursor.rowcount
        cursor.execute(LAST_ROW_ID)
        row_id = cursor.fetchone()[0]
        cursor.close()
        return rows_affected, row_id

    def execute_batch(self, commands: Iterable[PreparedCommand]) -> int:
        """Execute prepared commands in a single transaction.

        Either every command is committed or, when any command or the
        commit fails, the whole batch is rolled back, the failing stage is
        logged and the original exception re-raised.

        Returns
            Total number of affected rows; commands that report no count,
            such as DDL, add nothing
        """
        total = 0
        stage = 'open'
        try:
            with self.open() as cn, Transaction(cn):
                for index, command in enumerate(commands):
                    stage = f'command {index}'
                    total += max(cn.execute(command.command_text, command.parameters).rowcount, 0)
                stage = 'commit'
        except Exception as e:
            logger.error(f'Batch {stage} failed, rolled back: {e}')
            raise
        logger.debug(f'Batch committed, {total} rows affected')
        return total

    def select_entity(self, entity_type: type[T], query: str,
                      params: Parameters = None) -> T | None:
        """Map the first row of a query onto a new entity_type instance.

        Returns
            The mapped instance, or None when the query returns no rows
        """
        binding = get_binding(entity_type)
        with self.open() as cn:
            cursor = cn.execute(query, params)
            row = cursor.fetchone()
            cursor.close()
        if row is None:
            return None
        return binding.create(row)

    def select(self, entity_type: type[T], query: str,
               params: Parameters = None) -> ResultStream[T]:
        """Stream query rows as entity_type instances.

        The returned stream owns its connection until it is exhausted or
        closed; see `ResultStream`.
        """
        binding = get_binding(entity_type)
        return self._stream(query, params, binding.create)

    def select_value(self, query: str, params: Parameters = None,
                     mapper: MapperLike | None = None, type_: type | None = None) -> Any:
        """Return the first row mapped by `mapper`, or its first column.

        Without a mapper the first column is coerced to `type_` when given.
        SQL NULL and an empty result both return None.
        """
        transform = self._row_transform(mapper, type_)
        with self.open() as cn:
            cursor = cn.execute(query, params)
            row = cursor.fetchone()
            try:
                if row is None:
                    return None
                return transform(row)
            finally:
                cursor.close()

    def select_values(self, query: str, params: Parameters = None,
                      mapper: MapperLike | None = None,
                      type_: type | None = None) -> ResultStream[Any]:
        """Stream every row mapped by `mapper`, or its first column.
        """
        return self._stream(query, params, self._row_transform(mapper, type_))

    def select_extract(self, query: str, params: Parameters,
                       extractor: ExtractorLike) -> Any:
        """Hand the live result cursor to `extractor` and return its result.

        The connection closes as soon as the extractor returns, so it must
        materialize everything it needs.
        """
        extract = getattr(extractor, 'extract', extractor)
        with self.open() as cn:
            cursor = cn.execute(query, params)
            try:
                return extract(cursor)
            finally:
                cursor.close()

    def table_exists(self, table_name: str) -> bool:
        """Check whether a table with the given name exists."""
        with self.open() as cn:
            cursor = cn.execute(CHECK_TABLE_EXISTS, [QueryParameter(':TableName', table_name)])
            exists = cursor.fetchone() is not None
            cursor.close()
        return exists

    def _row_transform(self, mapper: MapperLike | None, type_: type | None):
        if mapper is not None:
            return getattr(mapper, 'map', mapper)
        if type_ is None:
            return _first_column
        return lambda row: coerce_value(row[0], type_, row.keys()[0])

    def _stream(self, query: str, params: Parameters, transform) -> ResultStream:
        cn = self.open()
        try:
            cursor = cn.execute(query, params)
        except Exception:
            cn.close()
            raise
        return ResultStream(cursor, cn, transform)
