"""
Ready-made row mappers and data extractors.

Mappers turn one sqlite3.Row into a value; extractors consume a whole
cursor and must return materialized results because the connection closes
as soon as they return.
"""
import logging
from typing import Any, Generic, TypeVar

import pandas as pd
from sqlite_connector.mapping import coerce_value, get_binding, row_items
from sqlite_connector.types import DataExtractor, MapperLike, RowMapper

__all__ = [
    'dict_row',
    'ColumnMapper',
    'EntityMapper',
    'ListExtractor',
    'dict_extractor',
    'dataframe_extractor',
]

logger = logging.getLogger(__name__)

T = TypeVar('T')


def dict_row(row: Any) -> dict[str, Any]:
    """Map a row to a plain dict keyed by column name."""
    return dict(row_items(row))


class ColumnMapper(RowMapper[Any]):
    """Map a row to one of its columns, by position or name.

    >>> ColumnMapper(1).map(('a', 'b'))
    'b'
    """

    def __init__(self, column: int | str = 0, type_: type | None = None) -> None:
        self.column = column
        self.type_ = type_

    def map(self, row: Any) -> Any:
        value = row[self.column]
        if self.type_ is None:
            return value
        return coerce_value(value, self.type_, str(self.column))


class EntityMapper(RowMapper[T], Generic[T]):
    """Map a row onto an instance of a type through its binding table.
    """

    def __init__(self, entity_type: type[T]) -> None:
        self.binding = get_binding(entity_type)

    def map(self, row: Any) -> T:
        return self.binding.create(row)


class ListExtractor(DataExtractor[T], Generic[T]):
    """Collect every row through a mapper into a list.
    """

    def __init__(self, mapper: MapperLike = dict_row) -> None:
        self.mapper = getattr(mapper, 'map', mapper)

    def extract(self, cursor: Any) -> list[T]:
        return [self.mapper(row) for row in cursor]


def dict_extractor(cursor: Any) -> list[dict[str, Any]]:
    """Collect every row as a dict."""
    return [dict_row(row) for row in cursor]


def dataframe_extractor(cursor: Any) -> pd.DataFrame:
    """Load the cursor into a pandas DataFrame.

    Always returns a DataFrame; an empty result keeps its column names.
    """
    columns = [d[0] for d in cursor.description or ()]
    data = [tuple(row) for row in cursor.fetchall()]
    if not data:
        return pd.DataFrame(columns=columns)
    df = pd.DataFrame.from_records(data, columns=columns)
    logger.debug(f'Extracted DataFrame with {len(df)} rows')
    return df
