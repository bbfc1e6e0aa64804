"""
Database-layer exception classes.

Every failure raised by this package derives from DatabaseError. Failures
coming from the driver are chained as the ``__cause__`` of the error that
wraps them.
"""


class DatabaseError(Exception):
    """Base class for all database module errors.
    """


class ConfigurationError(DatabaseError):
    """Connection configuration is missing or invalid.
    """


class DriverNotFoundError(ConfigurationError):
    """Driver module for the configured engine cannot be loaded.
    """


class ConnectionFailure(DatabaseError):
    """Error establishing or releasing a database connection.
    """


class ConnectionStateError(DatabaseError):
    """Operation is not allowed in the wrapper's current connection state.
    """


class QueryError(DatabaseError):
    """Error creating, binding or executing a statement.
    """


class MissingParameterError(QueryError):
    """Named parameter has no value in the supplied mapping.
    """

    def __init__(self, name: str):
        self.name = name
        super().__init__(f'Missing value for named parameter: {name}')


class TransactionError(DatabaseError):
    """Error controlling the transaction state of a connection.
    """


class CommitError(TransactionError):
    """Commit failed."""


class RollbackError(TransactionError):
    """Rollback failed."""


class AutoCommitError(TransactionError):
    """Reading or changing the auto-commit mode failed."""


class DataAccessError(DatabaseError):
    """Error reading a cell value or metadata from a result cursor.
    """


class MetadataError(DataAccessError):
    """Result metadata could not be read.
    """


class LobTooLargeError(DataAccessError):
    """Large object is too large to materialize in memory.
    """

    def __init__(self, length: int, limit: int):
        self.length = length
        self.limit = limit
        super().__init__(f'Large object of length {length} exceeds the limit of {limit}')


class TypeConversionError(DatabaseError):
    """Stored value cannot be returned as the requested type.
    """


class ColumnNotFoundError(DatabaseError, LookupError):
    """Column name is not part of the row schema.
    """

    def __init__(self, column: str, table: str | None = None):
        self.column = column
        self.table = table
        msg = f"Column '{column}' not found"
        if table:
            msg += f" in table '{table}'"
        super().__init__(msg)


class ValidationError(DatabaseError, ValueError):
    """Error in input validation.
    """
