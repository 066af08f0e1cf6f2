"""
SQLite data access with parameter expansion and row-to-object mapping.

    from sqlite_connector import Connector, QueryParameter

    connector = Connector('app.db')
    connector.execute('delete from Product where Id in (@ids)', {'ids': [1, 2]})
    product = connector.select_entity(Product, 'select * from Product where Id = @id',
                                      [QueryParameter('@id', 3)])
"""
__version__ = '0.1.0'

from sqlite_connector.connection import ConnectionWrapper, Transaction
from sqlite_connector.connection import dispose_all_engines
from sqlite_connector.connector import Connector
from sqlite_connector.cursor import ResultStream
from sqlite_connector.exceptions import ConnectionFailure, DatabaseError
from sqlite_connector.exceptions import DbConnectionError, IntegrityError
from sqlite_connector.exceptions import InvalidCastError, OperationalError
from sqlite_connector.exceptions import ProgrammingError, TypeConversionError
from sqlite_connector.exceptions import ValidationError
from sqlite_connector.extractors import ColumnMapper, EntityMapper, ListExtractor
from sqlite_connector.extractors import dataframe_extractor, dict_extractor
from sqlite_connector.extractors import dict_row
from sqlite_connector.mapping import EntityBinding, coerce_value
from sqlite_connector.options import ConnectorOptions
from sqlite_connector.types import DataExtractor, Int32, PreparedCommand
from sqlite_connector.types import QueryParameter, RowMapper

__all__ = [
    'Connector',
    'ConnectorOptions',
    'ConnectionWrapper',
    'Transaction',
    'ResultStream',
    'dispose_all_engines',
    'QueryParameter',
    'PreparedCommand',
    'RowMapper',
    'DataExtractor',
    'Int32',
    'EntityBinding',
    'coerce_value',
    'ColumnMapper',
    'EntityMapper',
    'ListExtractor',
    'dict_row',
    'dict_extractor',
    'dataframe_extractor',
    'IntegrityError',
    'ProgrammingError',
    'OperationalError',
    'DbConnectionError',
    'ConnectionFailure',
    'ValidationError',
    'DatabaseError',
    'TypeConversionError',
    'InvalidCastError',
]
