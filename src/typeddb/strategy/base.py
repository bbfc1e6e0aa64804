"""
Base strategy interface for database-specific behaviour.

A strategy knows how to load its driver, build the SQLAlchemy URL and
engine arguments, control auto-commit on the raw driver connection,
convert ? placeholders to the driver paramstyle and describe result
columns in standard SQL type codes.
"""
import importlib
import logging
from abc import ABC, abstractmethod
from types import ModuleType
from typing import TYPE_CHECKING, Any

import sqlalchemy as sa
from typeddb.exceptions import DriverNotFoundError
from typeddb.sql import standardize_placeholders

if TYPE_CHECKING:
    from typeddb.cursor import ColumnInfo
    from typeddb.options import DatabaseOptions

logger = logging.getLogger(__name__)

# Registry of dialect name -> strategy class
# Defined here to avoid circular imports (concrete strategies import from base)
_STRATEGY_REGISTRY: dict[str, type['DatabaseStrategy']] = {}


def register_strategy(dialect: str):
    """Decorator to register a strategy class for a dialect.

    Usage:
        @register_strategy('postgresql')
        class PostgresStrategy(DatabaseStrategy):
            ...
    """
    def decorator(cls: type['DatabaseStrategy']) -> type['DatabaseStrategy']:
        _STRATEGY_REGISTRY[dialect] = cls
        return cls
    return decorator


class DatabaseStrategy(ABC):
    """Base class for database-specific operations.
    """

    #: Import name of the DB-API module the dialect connects through
    driver_module: str = None

    @property
    @abstractmethod
    def dialect_name(self) -> str:
        """Return the dialect identifier (e.g., 'postgresql', 'sqlite')."""

    def load_driver(self) -> ModuleType:
        """Import the dialect's DB-API module.

        Raises
            DriverNotFoundError: If the module cannot be imported
        """
        try:
            return importlib.import_module(self.driver_module)
        except ImportError as exc:
            raise DriverNotFoundError(
                f'Driver {self.driver_module!r} for {self.dialect_name} is not available') from exc

    def connection_url(self, options: 'DatabaseOptions') -> sa.URL:
        """Return the configured URL, or build one from the individual options.
        """
        if options.url:
            return sa.make_url(options.url)
        return self.build_connection_url(options)

    @abstractmethod
    def build_connection_url(self, options: 'DatabaseOptions') -> sa.URL:
        """Build the database connection URL for this dialect.

        Args:
            options: DatabaseOptions containing connection parameters

        Returns
            SQLAlchemy URL
        """

    @abstractmethod
    def get_engine_kwargs(self, options: 'DatabaseOptions') -> dict[str, Any]:
        """Return SQLAlchemy create_engine kwargs for this dialect.

        Args:
            options: DatabaseOptions containing connection parameters

        Returns
            Dictionary of keyword arguments for create_engine
        """

    @classmethod
    @abstractmethod
    def get_required_options(cls) -> list[str]:
        """Return list of required option field names for this dialect.

        Returns
            List of field names that must have non-None/non-zero values
        """

    @abstractmethod
    def configure_connection(self, raw_conn: Any) -> None:
        """Configure a newly opened raw driver connection.

        Args:
            raw_conn: The raw DBAPI connection (not wrapped)
        """

    @abstractmethod
    def register_type_adapters(self, raw_conn: Any) -> None:
        """Register dialect-specific parameter adapters.

        Args:
            raw_conn: The raw DBAPI connection (not wrapped)
        """

    @abstractmethod
    def enable_autocommit(self, raw_conn: Any) -> None:
        """Enable auto-commit mode on a raw database connection.
        """

    @abstractmethod
    def disable_autocommit(self, raw_conn: Any) -> None:
        """Disable auto-commit mode on a raw database connection.
        """

    @abstractmethod
    def get_autocommit(self, raw_conn: Any) -> bool:
        """Return whether auto-commit mode is on.
        """

    @abstractmethod
    def describe(self, cursor: Any) -> list['ColumnInfo']:
        """Describe the columns of an executed DB-API cursor.

        Args:
            cursor: DB-API cursor after execute

        Returns
            One ColumnInfo per column, empty if the statement returned no rows
        """

    def standardize_sql(self, sql: str) -> str:
        """Convert ? placeholders to this dialect's style.

        Args:
            sql: SQL string using ? placeholders

        Returns
            str: SQL string with placeholders converted to this dialect's style
        """
        return standardize_placeholders(sql, dialect=self.dialect_name)

    def ping(self, raw_conn: Any) -> None:
        """Run a trivial round trip on the connection. Raises on failure.
        """
        cursor = raw_conn.cursor()
        try:
            cursor.execute('select 1')
            cursor.fetchone()
        finally:
            cursor.close()
