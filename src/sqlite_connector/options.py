"""
Connector configuration and connection-string handling.

A connection string is a ``;``-separated list of ``key=value`` pairs in the
ADO.NET style used by SQLite tooling::

    data source=/var/lib/app/app.db;foreign keys=true;

Keys are matched case-insensitively. Recognized keys are ``data source``,
``foreign keys``, ``default timeout`` and ``read only``; ``version`` is
accepted and ignored.
"""
import logging
from dataclasses import dataclass, fields
from typing import Any

import sqlalchemy as sa
from sqlite_connector.exceptions import ValidationError

__all__ = [
    'ConnectorOptions',
    'build_connection_string',
    'parse_connection_string',
    'create_url_from_options',
]

logger = logging.getLogger(__name__)

_TRUE = {'true', '1', 'yes', 'on'}
_FALSE = {'false', '0', 'no', 'off'}


def _parse_bool(key: str, value: str) -> bool:
    lowered = value.strip().lower()
    if lowered in _TRUE:
        return True
    if lowered in _FALSE:
        return False
    raise ValidationError(f'Invalid boolean for {key!r}: {value!r}')


@dataclass
class ConnectorOptions:
    """Options

    - data_file: SQLite database file path
    - connection_string: explicit connection string; wins over data_file
    - foreign_keys: enable ``PRAGMA foreign_keys`` on every connection (default: True)
    - timeout: seconds the driver waits on a locked database (default: 5.0)
    - read_only: open the file in read-only mode (default: False)
    - echo: log SQL emitted by SQLAlchemy itself (default: False)
    """
    data_file: str = None
    connection_string: str = None
    foreign_keys: bool = True
    timeout: float = 5.0
    read_only: bool = False
    echo: bool = False

    def __post_init__(self):
        if self.connection_string:
            parsed = parse_connection_string(self.connection_string)
            if self.data_file is None:
                self.data_file = parsed.data_file
        if not self.data_file:
            raise ValidationError('data_file or connection_string is required')
        if self.timeout is not None and self.timeout < 0:
            raise ValidationError(f'timeout must be positive, got {self.timeout}')

    @classmethod
    def from_dict(cls, values: dict[str, Any]) -> 'ConnectorOptions':
        """Build options from a dict, ignoring keys that are not options.
        """
        names = {f.name for f in fields(cls)}
        unknown = set(values) - names
        for key in sorted(unknown):
            logger.debug(f'Ignoring unknown option {key}')
        return cls(**{k: v for k, v in values.items() if k in names})


def build_connection_string(data_file: str, foreign_keys: bool = True) -> str:
    """Derive the default connection string for a data file.

    >>> build_connection_string('app.db')
    'data source=app.db;foreign keys=true;'
    """
    return f'data source={data_file};foreign keys={str(foreign_keys).lower()};'


def parse_connection_string(connection_string: str) -> ConnectorOptions:
    """Parse a connection string into ConnectorOptions.

    >>> opts = parse_connection_string('Data Source=app.db;Foreign Keys=False;Version=3;')
    >>> opts.data_file, opts.foreign_keys
    ('app.db', False)
    """
    if not connection_string:
        raise ValidationError('connection string is empty')

    values: dict[str, Any] = {}
    for part in connection_string.split(';'):
        if not part.strip():
            continue
        if '=' not in part:
            raise ValidationError(f'Malformed connection string segment: {part!r}')
        key, value = part.split('=', 1)
        key = ' '.join(key.lower().split())
        value = value.strip()

        if key in {'data source', 'datasource'}:
            values['data_file'] = value
        elif key == 'foreign keys':
            values['foreign_keys'] = _parse_bool(key, value)
        elif key == 'default timeout':
            try:
                values['timeout'] = float(value)
            except ValueError as e:
                raise ValidationError(f'Invalid timeout: {value!r}') from e
        elif key == 'read only':
            values['read_only'] = _parse_bool(key, value)
        elif key == 'version':
            pass
        else:
            logger.debug(f'Ignoring connection string key {key!r}')

    if not values.get('data_file'):
        raise ValidationError(f'No data source in connection string: {connection_string!r}')

    return ConnectorOptions(**values)


def create_url_from_options(options: ConnectorOptions) -> sa.URL:
    """Convert ConnectorOptions to a SQLAlchemy URL.
    """
    if options.read_only:
        return sa.URL.create(
            drivername='sqlite',
            database=f'file:{options.data_file}',
            query={'mode': 'ro', 'uri': 'true'},
        )
    return sa.URL.create(drivername='sqlite', database=options.data_file)
