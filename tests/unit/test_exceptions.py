"""
Tests for the error hierarchy and the driver-error tuples.
"""
import sqlite3

import pytest
import sqlite_connector
from sqlite_connector import exceptions


@pytest.mark.parametrize('error', [
    exceptions.ConnectionFailure,
    exceptions.TypeConversionError,
    exceptions.InvalidCastError,
    exceptions.ValidationError,
])
def test_module_errors_share_base(error):
    assert issubclass(error, exceptions.DatabaseError)


def test_invalid_cast_is_type_error():
    assert issubclass(exceptions.InvalidCastError, TypeError)


@pytest.mark.parametrize(('group', 'driver_error'), [
    (exceptions.IntegrityError, sqlite3.IntegrityError),
    (exceptions.OperationalError, sqlite3.OperationalError),
    (exceptions.ProgrammingError, sqlite3.ProgrammingError),
    (exceptions.DbConnectionError, sqlite3.OperationalError),
])
def test_driver_errors_caught_by_group(group, driver_error):
    with pytest.raises(group):
        raise driver_error('boom')


def test_connection_failure_in_connection_group():
    with pytest.raises(exceptions.DbConnectionError):
        raise exceptions.ConnectionFailure('unreachable')


def test_every_exported_error_is_defined():
    """Exported error names resolve to classes or tuples of classes."""
    for name in ('IntegrityError', 'ProgrammingError', 'OperationalError', 'DbConnectionError'):
        group = getattr(sqlite_connector, name)
        assert group and all(issubclass(e, Exception) for e in group)
    for name in ('QueryError', 'IntegrityViolationError', 'UniqueViolation'):
        assert not hasattr(exceptions, name)


if __name__ == '__main__':
    __import__('pytest').main([__file__])
