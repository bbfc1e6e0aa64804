"""
Database connection handling with SQLAlchemy.

This module provides:
1. The `ConnectionWrapper` class that owns one live driver connection
2. The `connect()` function for creating a connected wrapper from options

SQLAlchemy builds the engine and opens the connection. Statements run on the
raw driver connection with auto-commit off, so callers control transactions
with `commit()` and `rollback()`.

Positional SQL uses ? placeholders on every dialect. Named SQL uses :name
placeholders and is rewritten to positional SQL before execution.
"""
import logging
import time
from collections.abc import Mapping
from dataclasses import fields
from typing import Any, Self

import sqlalchemy as sa
from sqlalchemy.pool import NullPool
from typeddb.cursor import DbapiResultCursor, ResultCursor
from typeddb.exceptions import AutoCommitError, CommitError, ConfigurationError
from typeddb.exceptions import ConnectionFailure, ConnectionStateError
from typeddb.exceptions import DatabaseError, QueryError, RollbackError
from typeddb.exceptions import ValidationError
from typeddb.options import DatabaseOptions
from typeddb.result import TypedResult, to_typed_result, to_typed_row
from typeddb.row import TypedRow
from typeddb.schema import Schema, build_schema
from typeddb.sql import bind_parameters, rewrite_named_query
from typeddb.strategy import DatabaseStrategy, get_strategy

from libb import attrdict, load_options

__all__ = [
    'ConnectionWrapper',
    'connect',
]

logger = logging.getLogger(__name__)


def close_quietly(cursor: Any, log: logging.Logger = logger) -> None:
    """Close a cursor, logging instead of raising on failure.
    """
    try:
        cursor.close()
    except Exception as exc:
        log.warning(f'Error closing cursor: {exc}')


class ConnectionWrapper:
    """Owns one database connection and its configuration.

    A wrapper is unconfigured, configured and disconnected, or connected.
    Statements, transaction control and auto-commit control require the
    connected state. One wrapper serves one caller at a time; use separate
    wrappers for separate threads.
    """

    def __init__(self, key: Any = None, options: DatabaseOptions | None = None,
                 logger: logging.Logger | None = None) -> None:
        self.key = key
        self.logger = logger or logging.getLogger(__name__)
        self.options = None
        self.strategy: DatabaseStrategy | None = None
        self.engine: sa.Engine | None = None
        self.sa_connection: sa.Connection | None = None
        self.driver_connection = None
        self.calls = 0
        self.time = 0
        if options is not None:
            self.set_options(options)

    def __enter__(self) -> Self:
        """Support for context manager protocol
        """
        return self

    def __exit__(self, exc_type: type | None, exc_val: Exception | None,
                 exc_tb: Any | None) -> None:
        """Release the connection when exiting the context manager
        """
        self.silent_close()

    def __repr__(self) -> str:
        drivername = self.options.drivername if self.options else None
        return f'ConnectionWrapper(key={self.key!r}, drivername={drivername!r}, connected={self.is_connected()})'

    @property
    def dialect(self) -> str | None:
        """Return the dialect name ('postgresql' or 'sqlite')."""
        return self.strategy.dialect_name if self.strategy else None

    def addcall(self, elapsed: float) -> None:
        """Track execution statistics
        """
        self.time += elapsed
        self.calls += 1

    def set_options(self, options: DatabaseOptions) -> None:
        """Replace the configuration, closing any live connection first.

        Raises
            ConfigurationError: If options is None or incomplete. The wrapper
                is left unchanged.
        """
        if options is None:
            raise ConfigurationError('Database options cannot be None')
        if not options.check_required_parameters():
            raise ConfigurationError(f'Invalid database options for drivername {options.drivername!r}')
        if self.is_connected():
            self.close()
        self.options = options
        self.strategy = get_strategy(options.drivername)

    def connect(self, options: DatabaseOptions | None = None) -> Self:
        """Open the connection, optionally configuring the wrapper first.

        Auto-commit is off once connected.

        Raises
            ConnectionStateError: If already connected
            ConfigurationError: If the wrapper has no valid options
            DriverNotFoundError: If the dialect's driver cannot be imported
            ConnectionFailure: If the connection cannot be opened
        """
        if self.is_connected():
            raise ConnectionStateError(f'Connection {self.key!r} is already connected')
        if self.sa_connection is not None:
            self.logger.debug(f'Releasing stale connection {self.key!r} before reconnecting')
            self.silent_close()
        if options is not None:
            self.set_options(options)
        if self.options is None:
            raise ConfigurationError(f'Connection {self.key!r} is not configured')

        self.strategy.load_driver()
        url = self.strategy.connection_url(self.options)
        safe_url = url.render_as_string(hide_password=True)
        try:
            engine = sa.create_engine(url, poolclass=NullPool,
                                      **self.strategy.get_engine_kwargs(self.options))
        except Exception as exc:
            raise ConfigurationError(f'Unable to create engine for {safe_url}: {exc}') from exc

        self.logger.debug(f'Connecting {self.key!r} to {safe_url}')
        try:
            sa_connection = engine.connect()
        except Exception as exc:
            engine.dispose()
            raise ConnectionFailure(f'Unable to connect to {safe_url}: {exc}') from exc

        try:
            driver_connection = sa_connection.connection.driver_connection
            self.strategy.configure_connection(driver_connection)
            self.strategy.disable_autocommit(driver_connection)
        except Exception as exc:
            sa_connection.close()
            engine.dispose()
            raise ConnectionFailure(f'Unable to configure connection to {safe_url}: {exc}') from exc

        self.engine = engine
        self.sa_connection = sa_connection
        self.driver_connection = driver_connection

        if self.logger.isEnabledFor(logging.DEBUG):
            info = self.get_metadata()
            self.logger.debug(f'Connected to {info.dialect} {info.server_version} using {info.driver}')
        return self

    def is_connected(self) -> bool:
        """Check that a live, open connection handle is held.
        """
        if self.sa_connection is None:
            return False
        if self.sa_connection.closed or self.sa_connection.invalidated:
            return False
        return not getattr(self.driver_connection, 'closed', False)

    def is_valid(self, timeout_seconds: float = 0) -> bool:
        """Check the connection with a round trip to the server.

        Args:
            timeout_seconds: Longest acceptable round trip, 0 for no limit

        Returns
            False if disconnected, if the round trip fails, or if it takes
            longer than `timeout_seconds`
        """
        if timeout_seconds < 0:
            raise ValidationError(f'timeout_seconds cannot be negative: {timeout_seconds}')
        if not self.is_connected():
            return False
        start = time.monotonic()
        try:
            self.strategy.ping(self.driver_connection)
        except Exception as exc:
            self.logger.warning(f'Connection {self.key!r} failed validation: {exc}')
            return False
        elapsed = time.monotonic() - start
        if timeout_seconds and elapsed > timeout_seconds:
            self.logger.warning(f'Connection {self.key!r} validation took {elapsed:.2f}s, over {timeout_seconds}s')
            return False
        return True

    def _release(self) -> None:
        try:
            if not self.sa_connection.closed:
                self.sa_connection.close()
            self.engine.dispose()
        finally:
            self.engine = None
            self.sa_connection = None
            self.driver_connection = None
        self.logger.debug(f'Connection {self.key!r} closed: {self.calls} queries in {self.time:.2f}s '
                          f'(avg: {self.time/max(1,self.calls):.3f}s per query)')

    def close(self) -> None:
        """Close the connection. Does nothing when already closed.

        Raises
            ConnectionFailure: If releasing the connection fails. The handle
                is dropped either way.
        """
        if self.sa_connection is None:
            return
        try:
            self._release()
        except Exception as exc:
            raise ConnectionFailure(f'Error closing connection {self.key!r}: {exc}') from exc

    def silent_close(self) -> None:
        """Close the connection, logging instead of raising on failure.
        """
        if self.sa_connection is None:
            return
        try:
            self._release()
        except Exception as exc:
            self.logger.warning(f'Error closing connection {self.key!r}: {exc}')

    def _assert_connected(self) -> None:
        if not self.is_connected():
            raise ConnectionStateError(f'Connection {self.key!r} is not connected')

    def commit(self) -> None:
        self._assert_connected()
        try:
            self.driver_connection.commit()
        except Exception as exc:
            raise CommitError(f'Error committing connection {self.key!r}: {exc}') from exc

    def rollback(self) -> None:
        self._assert_connected()
        try:
            self.driver_connection.rollback()
        except Exception as exc:
            raise RollbackError(f'Error rolling back connection {self.key!r}: {exc}') from exc

    def set_auto_commit(self, auto_commit: bool) -> None:
        """Turn auto-commit on or off. Turning it on commits an open transaction.
        """
        self._assert_connected()
        try:
            if auto_commit:
                self.strategy.enable_autocommit(self.driver_connection)
            else:
                self.strategy.disable_autocommit(self.driver_connection)
        except Exception as exc:
            raise AutoCommitError(f'Error setting auto-commit to {auto_commit} on {self.key!r}: {exc}') from exc

    def get_auto_commit(self) -> bool:
        self._assert_connected()
        try:
            return self.strategy.get_autocommit(self.driver_connection)
        except Exception as exc:
            raise AutoCommitError(f'Error reading auto-commit of {self.key!r}: {exc}') from exc

    def get_metadata(self) -> attrdict:
        """Describe the connected server: dialect, server version and driver.
        """
        self._assert_connected()
        dialect = self.sa_connection.dialect
        version = dialect.server_version_info
        return attrdict(
            dialect=dialect.name,
            server_version='.'.join(str(v) for v in version) if version else None,
            driver=dialect.driver,
        )

    def create_cursor(self, fetch_size: int | None = None) -> Any:
        """Create a DB-API cursor on the driver connection.

        `fetch_size`, or else the configured fetch size, becomes the cursor's
        arraysize.
        """
        self._assert_connected()
        try:
            cursor = self.driver_connection.cursor()
        except Exception as exc:
            raise QueryError(f'Error creating cursor on {self.key!r}: {exc}') from exc
        fetch_size = fetch_size or self.options.fetch_size
        if fetch_size:
            try:
                cursor.arraysize = fetch_size
            except Exception as exc:
                close_quietly(cursor, self.logger)
                raise QueryError(f'Error setting fetch size on {self.key!r}: {exc}') from exc
        return cursor

    def _execute(self, cursor: Any, sql: str, params: tuple[Any, ...]) -> None:
        start = time.time()
        if params:
            cursor.execute(self.strategy.standardize_sql(sql), bind_parameters(params))
        else:
            cursor.execute(sql)
        self.addcall(time.time() - start)
        if self.logger.isEnabledFor(logging.DEBUG):
            self.logger.debug(f'Executed query with {len(params)} parameters: {sql[:60]}...')

    def execute_update(self, sql: str, *params: Any) -> int:
        """Execute a statement and return the affected row count.

        The statement's cursor is closed before returning. The change is not
        committed.
        """
        cursor = self.create_cursor()
        try:
            self._execute(cursor, sql, params)
            return cursor.rowcount
        except DatabaseError:
            raise
        except Exception as exc:
            raise QueryError(f'Error executing statement: {sql}: {exc}') from exc
        finally:
            close_quietly(cursor, self.logger)

    def execute_query(self, sql: str, *params: Any, fetch_size: int | None = None) -> DbapiResultCursor:
        """Execute a query and return a cursor over its result.

        The caller owns the returned cursor and must close it. `fetch_size`
        overrides the configured fetch size for this cursor.
        """
        cursor = self.create_cursor(fetch_size)
        try:
            self._execute(cursor, sql, params)
        except DatabaseError:
            close_quietly(cursor, self.logger)
            raise
        except Exception as exc:
            close_quietly(cursor, self.logger)
            raise QueryError(f'Error executing query: {sql}: {exc}') from exc
        return DbapiResultCursor(cursor, self.strategy)

    def execute_named_update(self, sql: str, values_by_name: Mapping[str, Any]) -> int:
        """Execute a statement with :name placeholders, see `execute_update`.
        """
        positional_sql, values = rewrite_named_query(sql, values_by_name)
        return self.execute_update(positional_sql, *values)

    def execute_named_query(self, sql: str, values_by_name: Mapping[str, Any],
                            fetch_size: int | None = None) -> DbapiResultCursor:
        """Execute a query with :name placeholders, see `execute_query`.
        """
        positional_sql, values = rewrite_named_query(sql, values_by_name)
        return self.execute_query(positional_sql, *values, fetch_size=fetch_size)

    def build_schema(self, cursor: ResultCursor) -> Schema:
        return build_schema(cursor.metadata)

    def to_typed_row(self, cursor: ResultCursor, schema: Schema | None = None) -> TypedRow:
        return to_typed_row(cursor, schema)

    def select_typed(self, sql: str, *params: Any) -> TypedResult:
        """Execute a query and read its whole result into typed rows.
        """
        with self.execute_query(sql, *params) as cursor:
            return to_typed_result(cursor)

    def select_named_typed(self, sql: str, values_by_name: Mapping[str, Any]) -> TypedResult:
        """Execute a query with :name placeholders and read its whole result.
        """
        with self.execute_named_query(sql, values_by_name) as cursor:
            return to_typed_result(cursor)


@load_options(cls=DatabaseOptions)
def connect(options: DatabaseOptions | dict[str, Any] | str,
            config: Any | None = None, **kw: Any) -> ConnectionWrapper:
    """Connect to a database using SQLAlchemy for connection management

    Args:
        options: Can be:
                - DatabaseOptions object
                - String path to configuration
                - Dictionary of options
                - Options specified as keyword arguments
        config: Configuration object (for loading from config files)
        **kw: Additional keyword arguments to override options

    Returns
        Connected ConnectionWrapper
    """
    if isinstance(options, DatabaseOptions):
        for field in fields(options):
            kw.pop(field.name, None)
    else:
        options_func = load_options(cls=DatabaseOptions)(lambda o, c: o)
        options = options_func(options, config, **kw)

    return ConnectionWrapper(options=options).connect()
