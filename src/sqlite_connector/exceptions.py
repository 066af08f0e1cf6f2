"""
Connector-specific exception classes.
"""
import sqlite3


class DatabaseError(Exception):
    """Base class for all connector errors.
    """


class ConnectionFailure(DatabaseError):
    """Error establishing or maintaining a database connection.
    """


class TypeConversionError(DatabaseError):
    """Error converting types between Python and the database.
    """


class InvalidCastError(TypeConversionError, TypeError):
    """A column value cannot be assigned to the target field type.

    Raised by entity mapping when a value falls outside the supported
    coercions (int to Int32, Decimal, UUID, date/time, bool, float).
    """

    def __init__(self, message: str, column: str | None = None,
                 target: type | None = None) -> None:
        super().__init__(message)
        self.column = column
        self.target = target


class ValidationError(DatabaseError):
    """Error in input validation.
    """


DbConnectionError = (
    sqlite3.OperationalError,
    sqlite3.InterfaceError,
    ConnectionFailure,
    )

IntegrityError = (
    sqlite3.IntegrityError,
    )

ProgrammingError = (
    sqlite3.ProgrammingError,
    sqlite3.DatabaseError,
    )

OperationalError = (
    sqlite3.OperationalError,
    )
