"""
Row-to-entity mapping through per-type binding tables.

An `EntityBinding` is built once per mapped class and cached. It lists
every mapped attribute with its column name and resolved target type, so
mapping a row is a dictionary lookup per column followed by a coercion.

Supported targets are dataclasses and plain classes with annotated
attributes that can be constructed without arguments. A dataclass field
can map to a differently named column::

    @dataclass
    class Product:
        id: Int32
        name: str
        sku: uuid.UUID = field(default=None, metadata={'column': 'ProductSku'})

Column names are matched case-sensitively. Columns with no matching
attribute are ignored; attributes with no column keep their default.
"""
import dataclasses
import datetime
import decimal
import enum
import logging
import threading
import types
import typing
import uuid
from dataclasses import dataclass
from typing import Any, ClassVar, TypeVar, Union

import cachetools
import dateutil.parser
from sqlite_connector.exceptions import InvalidCastError
from sqlite_connector.types import INT32_MAX, INT32_MIN, Int32

logger = logging.getLogger(__name__)

T = TypeVar('T')

COLUMN_METADATA_KEY = 'column'


def _parse_datetime(value: str) -> datetime.datetime:
    return dateutil.parser.parse(value)


def _to_int32(value: Any) -> int:
    if isinstance(value, bool) or not isinstance(value, int):
        raise TypeError(f'{type(value).__name__} is not an integer')
    if not INT32_MIN <= value <= INT32_MAX:
        raise OverflowError(f'{value} is out of range for a 32-bit integer')
    return value


def _to_decimal(value: Any) -> decimal.Decimal:
    if isinstance(value, bool) or not isinstance(value, (int, float, str)):
        raise TypeError(f'{type(value).__name__} is not numeric')
    return decimal.Decimal(str(value))


def _to_uuid(value: Any) -> uuid.UUID:
    if isinstance(value, str):
        return uuid.UUID(value)
    if isinstance(value, (bytes, bytearray)):
        return uuid.UUID(bytes=bytes(value))
    raise TypeError(f'{type(value).__name__} is not a GUID representation')


def _to_datetime(value: Any) -> datetime.datetime:
    if isinstance(value, datetime.datetime):
        return value
    if isinstance(value, str):
        return _parse_datetime(value)
    raise TypeError(f'{type(value).__name__} is not a date/time representation')


def _to_date(value: Any) -> datetime.date:
    if isinstance(value, datetime.datetime):
        return value.date()
    if isinstance(value, datetime.date):
        return value
    if isinstance(value, str):
        return _parse_datetime(value).date()
    raise TypeError(f'{type(value).__name__} is not a date representation')


def _to_time(value: Any) -> datetime.time:
    if isinstance(value, datetime.time):
        return value
    if isinstance(value, str):
        return _parse_datetime(value).time()
    raise TypeError(f'{type(value).__name__} is not a time representation')


def _to_bool(value: Any) -> bool:
    if isinstance(value, int):
        return bool(value)
    raise TypeError(f'{type(value).__name__} is not a boolean representation')


def _to_float(value: Any) -> float:
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        return float(value)
    raise TypeError(f'{type(value).__name__} is not a number')


_COERCIONS: dict[Any, typing.Callable[[Any], Any]] = {
    Int32: _to_int32,
    decimal.Decimal: _to_decimal,
    uuid.UUID: _to_uuid,
    datetime.datetime: _to_datetime,
    datetime.date: _to_date,
    datetime.time: _to_time,
    bool: _to_bool,
    float: _to_float,
}


def coerce_value(value: Any, target: Any, column: str | None = None) -> Any:
    """Coerce a column value to a target type.

    SQL NULL stays None. Targets that are not plain classes (Any, generic
    aliases, unions of several types) are passed through unchanged.

    >>> coerce_value(7, Int32)
    7
    >>> coerce_value(5, decimal.Decimal)
    Decimal('5')
    >>> coerce_value('6f1e0cbb-6a55-4c51-9f38-7f56f7b30a2e', uuid.UUID)
    UUID('6f1e0cbb-6a55-4c51-9f38-7f56f7b30a2e')

    Raises
        InvalidCastError: If the value cannot be converted
    """
    if value is None or target is None or target is Any:
        return value

    converter = _COERCIONS.get(target)
    if converter is not None:
        try:
            return converter(value)
        except (TypeError, ValueError, OverflowError, decimal.InvalidOperation) as e:
            name = getattr(target, '__name__', str(target))
            raise InvalidCastError(
                f'Cannot convert {value!r} to {name}'
                + (f' for column {column!r}' if column else '') + f': {e}',
                column=column, target=target) from e

    if not isinstance(target, type):
        return value

    if isinstance(value, target):
        return value

    if issubclass(target, enum.Enum):
        try:
            return target(value)
        except ValueError as e:
            raise InvalidCastError(f'{value!r} is not a valid {target.__name__}',
                                   column=column, target=target) from e

    raise InvalidCastError(
        f'Cannot assign {type(value).__name__} to {target.__name__}'
        + (f' for column {column!r}' if column else ''),
        column=column, target=target)


def _unwrap_optional(annotation: Any) -> tuple[Any, bool]:
    """Return (target, nullable) for an annotation.

    >>> _unwrap_optional(int | None)
    (<class 'int'>, True)
    """
    origin = typing.get_origin(annotation)
    if origin is typing.Annotated:
        return _unwrap_optional(typing.get_args(annotation)[0])
    if origin is Union or origin is types.UnionType:
        args = [a for a in typing.get_args(annotation) if a is not type(None)]
        nullable = len(args) != len(typing.get_args(annotation))
        if len(args) == 1:
            return _unwrap_optional(args[0])[0], nullable
        return Any, nullable
    return annotation, False


@dataclass(frozen=True, slots=True)
class FieldBinding:
    """One attribute of a mapped type and the column it reads from."""
    attribute: str
    column: str
    target: Any
    nullable: bool = True
    init: bool = False
    required: bool = False


class EntityBinding:
    """Binding table from result columns to the attributes of one type.

    Build with `EntityBinding.for_type(cls)`, which caches the table.
    """

    def __init__(self, entity_type: type, fields: list[FieldBinding]) -> None:
        self.entity_type = entity_type
        self.fields = tuple(fields)
        self.by_column: dict[str, FieldBinding] = {}
        for fb in self.fields:
            if fb.column in self.by_column:
                raise ValueError(
                    f'{entity_type.__name__}: column {fb.column!r} is bound to both '
                    f'{self.by_column[fb.column].attribute!r} and {fb.attribute!r}')
            self.by_column[fb.column] = fb
        self.is_dataclass = dataclasses.is_dataclass(entity_type)
        self.frozen = self.is_dataclass and entity_type.__dataclass_params__.frozen

    def __repr__(self) -> str:
        cols = ', '.join(f'{fb.column}->{fb.attribute}' for fb in self.fields)
        return f'EntityBinding({self.entity_type.__name__}: {cols})'

    @classmethod
    def for_type(cls, entity_type: type) -> 'EntityBinding':
        """Get the cached binding table for a type."""
        return get_binding(entity_type)

    @classmethod
    def build(cls, entity_type: type) -> 'EntityBinding':
        """Build a binding table from dataclass fields or class annotations.
        """
        if not isinstance(entity_type, type):
            raise TypeError(f'Expected a class to map rows onto, got {entity_type!r}')

        hints = typing.get_type_hints(entity_type, include_extras=True)
        fields = []

        if dataclasses.is_dataclass(entity_type):
            for f in dataclasses.fields(entity_type):
                target, nullable = _unwrap_optional(hints.get(f.name, Any))
                required = (f.default is dataclasses.MISSING
                            and f.default_factory is dataclasses.MISSING)
                fields.append(FieldBinding(
                    attribute=f.name,
                    column=f.metadata.get(COLUMN_METADATA_KEY, f.name),
                    target=target,
                    nullable=nullable,
                    init=f.init,
                    required=required,
                ))
        else:
            for name, annotation in hints.items():
                if name.startswith('_') or typing.get_origin(annotation) is ClassVar \
                        or annotation is ClassVar:
                    continue
                target, nullable = _unwrap_optional(annotation)
                fields.append(FieldBinding(attribute=name, column=name,
                                           target=target, nullable=nullable))

        if not fields:
            raise TypeError(f'{entity_type.__name__} has no annotated attributes to map')

        binding = cls(entity_type, fields)
        logger.debug(f'Built {binding!r}')
        return binding

    def create(self, row: Any) -> Any:
        """Create an instance of the bound type from one row.

        Parameters
            row: sqlite3.Row, mapping, or any object exposing keys() and
                 yielding values in column order

        Returns
            New instance with every matched attribute assigned
        """
        values: dict[FieldBinding, Any] = {}
        for column, value in row_items(row):
            fb = self.by_column.get(column)
            if fb is None:
                continue
            values[fb] = coerce_value(value, fb.target, column)

        if not self.is_dataclass:
            instance = self.entity_type()
            for fb, value in values.items():
                setattr(instance, fb.attribute, value)
            return instance

        kwargs = {fb.attribute: v for fb, v in values.items() if fb.init}
        for fb in self.fields:
            if fb.init and fb.required and fb.attribute not in kwargs:
                kwargs[fb.attribute] = None
        instance = self.entity_type(**kwargs)
        for fb, value in values.items():
            if not fb.init:
                if self.frozen:
                    object.__setattr__(instance, fb.attribute, value)
                else:
                    setattr(instance, fb.attribute, value)
        return instance


def row_items(row: Any) -> list[tuple[str, Any]]:
    """Return (column, value) pairs of a row in column order."""
    if hasattr(row, 'items'):
        return list(row.items())
    return list(zip(row.keys(), row))


_binding_cache: cachetools.LRUCache = cachetools.LRUCache(maxsize=256)


@cachetools.cached(cache=_binding_cache, lock=threading.RLock())
def get_binding(entity_type: type) -> EntityBinding:
    """Get or build the binding table for a type."""
    return EntityBinding.build(entity_type)


def clear_binding_cache() -> None:
    """Drop all cached binding tables."""
    _binding_cache.clear()


def map_entity(entity_type: type[T], row: Any) -> T:
    """Map one row onto a new instance of entity_type."""
    return get_binding(entity_type).create(row)
