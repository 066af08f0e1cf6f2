"""
Consolidated type handling for connector operations.

This module provides:
- QueryParameter / PreparedCommand: named parameters and queued commands
- RowMapper / DataExtractor: caller-supplied result strategies
- Int32: marker type for 32-bit integer fields
- TypeConverter: convert Python values to SQLite-compatible values
"""
import datetime
import decimal
import json
import logging
import math
import uuid
from abc import ABC, abstractmethod
from collections.abc import Callable, Iterable, Mapping
from dataclasses import dataclass, field
from typing import Any, Generic, NewType, TypeVar

from sqlite_connector.exceptions import ValidationError

logger = logging.getLogger(__name__)

T = TypeVar('T')

Int32 = NewType('Int32', int)
INT32_MIN = -2**31
INT32_MAX = 2**31 - 1

PLACEHOLDER_PREFIXES = ('@', ':', '$')

# Values that bind as one parameter even though they are iterable
SCALAR_ITERABLES = (str, bytes, bytearray, memoryview, Mapping)


def is_collection(value: Any) -> bool:
    """Check if a parameter value expands into a placeholder list.

    >>> is_collection([1, 2]), is_collection('ab'), is_collection(b'ab')
    (True, False, False)
    """
    return isinstance(value, Iterable) and not isinstance(value, SCALAR_ITERABLES)


def strip_prefix(name: str) -> str:
    """Return a parameter name without its placeholder prefix.

    >>> strip_prefix('@id'), strip_prefix(':id'), strip_prefix('id')
    ('id', 'id', 'id')
    """
    if name and name[0] in PLACEHOLDER_PREFIXES:
        return name[1:]
    return name


@dataclass(frozen=True)
class QueryParameter:
    """Named query parameter.

    The name may carry its placeholder prefix (``@id``) or not (``id``).
    Non-string sequence values expand to one placeholder per element.
    """
    name: str
    value: Any = None

    def __post_init__(self):
        if not self.name or not strip_prefix(self.name):
            raise ValidationError('Parameter name is required')
        if is_collection(self.value) and not isinstance(self.value, (list, tuple)):
            # materialize generators, sets and ranges once
            object.__setattr__(self, 'value', tuple(self.value))

    @property
    def key(self) -> str:
        """Parameter name without prefix, as bound to the driver."""
        return strip_prefix(self.name)


@dataclass(frozen=True)
class PreparedCommand:
    """Command text plus its parameters, queued for a shared transaction.
    """
    command_text: str
    parameters: tuple[QueryParameter, ...] = field(default_factory=tuple)

    def __post_init__(self):
        object.__setattr__(self, 'parameters', normalize_parameters(self.parameters))


Parameters = Iterable[QueryParameter] | Mapping[str, Any] | None


def normalize_parameters(params: Parameters) -> tuple[QueryParameter, ...]:
    """Normalize a parameter set to a tuple of QueryParameter.

    Accepts an iterable of QueryParameter, a mapping of name to value,
    or None. Names must be unique once prefixes are removed.
    """
    if params is None:
        return ()

    if isinstance(params, Mapping):
        result = tuple(QueryParameter(name, value) for name, value in params.items())
    else:
        result = tuple(params)
        for param in result:
            if not isinstance(param, QueryParameter):
                raise ValidationError(f'Expected QueryParameter, got {type(param).__name__}')

    seen: set[str] = set()
    for param in result:
        if param.key in seen:
            raise ValidationError(f'Duplicate parameter name: {param.key}')
        seen.add(param.key)

    return result


class RowMapper(ABC, Generic[T]):
    """Maps a single result row to a value of T.
    """

    @abstractmethod
    def map(self, row: Any) -> T:
        """Convert one row."""

    def __call__(self, row: Any) -> T:
        return self.map(row)


class DataExtractor(ABC, Generic[T]):
    """Converts an entire result cursor to a sequence of T.

    The cursor is only valid during the call; implementations must
    materialize whatever they return.
    """

    @abstractmethod
    def extract(self, cursor: Any) -> Iterable[T]:
        """Consume the cursor."""

    def __call__(self, cursor: Any) -> Iterable[T]:
        return self.extract(cursor)


MapperLike = RowMapper[T] | Callable[[Any], T]
ExtractorLike = DataExtractor[T] | Callable[[Any], Iterable[T]]


# Type Converter - Handles Python -> SQLite value conversion

class TypeConverter:
    """Conversion of Python values into values the sqlite3 driver binds.
    """

    @staticmethod
    def convert_value(value: Any) -> Any:
        """Convert a single value to a SQLite-compatible format.

        >>> TypeConverter.convert_value(decimal.Decimal('1.50'))
        '1.50'
        >>> TypeConverter.convert_value(datetime.date(2024, 1, 2))
        '2024-01-02'
        """
        if value is None:
            return None

        if isinstance(value, bool):
            return int(value)

        if isinstance(value, float) and (math.isnan(value) or math.isinf(value)):
            return None

        if isinstance(value, uuid.UUID):
            return str(value)

        if isinstance(value, decimal.Decimal):
            if value.is_nan():
                return None
            return str(value)

        if isinstance(value, datetime.datetime):
            return value.isoformat(sep=' ')

        if isinstance(value, (datetime.date, datetime.time)):
            return value.isoformat()

        if isinstance(value, Mapping):
            return json.dumps(value, default=str)

        return value

    @staticmethod
    def convert_params(params: dict[str, Any]) -> dict[str, Any]:
        """Convert a dict of bound parameters."""
        return {k: TypeConverter.convert_value(v) for k, v in params.items()}
