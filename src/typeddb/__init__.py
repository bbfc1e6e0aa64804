"""
Typed database access with support for PostgreSQL and SQLite.

Operations can be called either as:
- ConnectionWrapper methods: cn.execute_named_query(sql, values)
- Module functions: db.execute_named_query(cn, sql, values)

Results are read into TypedRows that share one Schema per result.
"""
__version__ = '0.1.0'

from collections.abc import Mapping
from typing import Any

from typeddb.connection import ConnectionWrapper, connect
from typeddb.cursor import NOT_SUPPORTED, ColumnInfo, DbapiResultCursor
from typeddb.cursor import ResultCursor, ResultMetadata, RowsCursor
from typeddb.exceptions import AutoCommitError, ColumnNotFoundError, CommitError
from typeddb.exceptions import ConfigurationError, ConnectionFailure
from typeddb.exceptions import ConnectionStateError, DataAccessError, DatabaseError
from typeddb.exceptions import DriverNotFoundError, LobTooLargeError, MetadataError
from typeddb.exceptions import MissingParameterError, QueryError, RollbackError
from typeddb.exceptions import TransactionError, TypeConversionError
from typeddb.exceptions import ValidationError
from typeddb.options import DatabaseOptions
from typeddb.reader import ValueReader
from typeddb.registry import ConnectionRegistry
from typeddb.resolver import PythonTypeHints, TypeHintResolver, TypeResolver
from typeddb.result import RowMaterializer, TypedResult, iter_typed_rows
from typeddb.result import to_typed_result, to_typed_row
from typeddb.row import TypedRow
from typeddb.schema import Schema, build_schema
from typeddb.sql import rewrite_named_query
from typeddb.types import ResolvedType, SqlType


def execute_update(cn: ConnectionWrapper, sql: str, *args: Any) -> int:
    """Execute a statement and return the affected row count.
    """
    return cn.execute_update(sql, *args)


def execute_query(cn: ConnectionWrapper, sql: str, *args: Any,
                  fetch_size: int | None = None) -> DbapiResultCursor:
    """Execute a query and return an open cursor the caller must close.
    """
    return cn.execute_query(sql, *args, fetch_size=fetch_size)


def execute_named_update(cn: ConnectionWrapper, sql: str, values_by_name: Mapping[str, Any]) -> int:
    """Execute a statement with :name placeholders and return the affected row count.
    """
    return cn.execute_named_update(sql, values_by_name)


def execute_named_query(cn: ConnectionWrapper, sql: str,
                        values_by_name: Mapping[str, Any],
                        fetch_size: int | None = None) -> DbapiResultCursor:
    """Execute a query with :name placeholders and return an open cursor.
    """
    return cn.execute_named_query(sql, values_by_name, fetch_size=fetch_size)


def select_typed(cn: ConnectionWrapper, sql: str, *args: Any) -> TypedResult:
    """Execute a query and read the whole result into typed rows.
    """
    return cn.select_typed(sql, *args)


def get_connection(options: DatabaseOptions, key: Any = None) -> ConnectionWrapper:
    """Get a connection from the process-wide registry.
    """
    return ConnectionRegistry.get_instance().get_connection(options, key)


def close_connection(key: Any = None) -> None:
    """Close a connection held by the process-wide registry.
    """
    ConnectionRegistry.get_instance().close_connection(key)


def close_all_connections() -> None:
    ConnectionRegistry.get_instance().close_all_connections()


def get_connection_count() -> int:
    return ConnectionRegistry.get_instance().get_connection_count()


__all__ = [
    # Connection
    'ConnectionWrapper',
    'connect',
    'DatabaseOptions',
    'ConnectionRegistry',
    'get_connection',
    'close_connection',
    'close_all_connections',
    'get_connection_count',
    # Execution
    'execute_update',
    'execute_query',
    'execute_named_update',
    'execute_named_query',
    'select_typed',
    'rewrite_named_query',
    # Typed results
    'build_schema',
    'to_typed_row',
    'to_typed_result',
    'iter_typed_rows',
    'RowMaterializer',
    'Schema',
    'TypedRow',
    'TypedResult',
    'ResolvedType',
    'SqlType',
    'TypeResolver',
    'TypeHintResolver',
    'PythonTypeHints',
    'ValueReader',
    # Cursors
    'ColumnInfo',
    'ResultMetadata',
    'ResultCursor',
    'RowsCursor',
    'DbapiResultCursor',
    'NOT_SUPPORTED',
    # Exceptions
    'DatabaseError',
    'ConfigurationError',
    'DriverNotFoundError',
    'ConnectionFailure',
    'ConnectionStateError',
    'QueryError',
    'MissingParameterError',
    'TransactionError',
    'CommitError',
    'RollbackError',
    'AutoCommitError',
    'MetadataError',
    'DataAccessError',
    'LobTooLargeError',
    'TypeConversionError',
    'ColumnNotFoundError',
    'ValidationError',
]
