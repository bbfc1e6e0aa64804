"""
SQLite-specific strategy implementation.

The sqlite3 module reports only column names for a result, so every column
is described with the OTHER code and values are read as the driver returns
them. Declared DATE and TIMESTAMP/DATETIME columns are converted to
date and datetime objects by the converters registered here.
"""
import datetime
import decimal
import json
import logging
import sqlite3
import uuid
from typing import TYPE_CHECKING, Any

import sqlalchemy as sa
from dateutil import parser as dateparser
from typeddb.cursor import ColumnInfo
from typeddb.strategy.base import DatabaseStrategy, register_strategy
from typeddb.types import SqlType

if TYPE_CHECKING:
    from typeddb.options import DatabaseOptions

logger = logging.getLogger(__name__)


def convert_date(value: bytes) -> datetime.date:
    return datetime.date.fromisoformat(value.decode())


def convert_datetime(value: bytes) -> datetime.datetime:
    return dateparser.isoparse(value.decode())


@register_strategy('sqlite')
class SQLiteStrategy(DatabaseStrategy):
    """SQLite-specific operations.
    """

    driver_module = 'sqlite3'

    @property
    def dialect_name(self) -> str:
        """Return the dialect identifier for SQLite."""
        return 'sqlite'

    def build_connection_url(self, options: 'DatabaseOptions') -> sa.URL:
        """Build the SQLAlchemy connection URL for SQLite."""
        return sa.URL.create('sqlite', database=options.database)

    def get_engine_kwargs(self, options: 'DatabaseOptions') -> dict[str, Any]:
        """Return SQLAlchemy create_engine kwargs for SQLite.

        The timeout is sqlite3's wait for a locked database file.
        """
        connect_args = {'detect_types': sqlite3.PARSE_DECLTYPES}
        if options.timeout:
            connect_args['timeout'] = options.timeout
        return {'connect_args': connect_args}

    @classmethod
    def get_required_options(cls) -> list[str]:
        """Return required options for SQLite connections."""
        return ['database']

    def configure_connection(self, raw_conn: Any) -> None:
        """Configure connection settings for SQLite.
        """
        raw_conn.execute('PRAGMA foreign_keys = ON')
        self.register_type_adapters(raw_conn)

    def register_type_adapters(self, raw_conn: Any) -> None:
        """Register dialect-specific type adapters and converters for SQLite.

        SQLite needs adapters to handle complex types like dict, list and
        UUID, and converters to handle date/datetime coming from the database.
        """
        # Adapters (Python -> SQLite)
        sqlite3.register_adapter(dict, json.dumps)
        sqlite3.register_adapter(list, json.dumps)
        sqlite3.register_adapter(uuid.UUID, str)
        sqlite3.register_adapter(decimal.Decimal, str)
        sqlite3.register_adapter(datetime.date, datetime.date.isoformat)
        sqlite3.register_adapter(datetime.datetime, lambda v: v.isoformat(' '))

        # Converters (SQLite -> Python)
        sqlite3.register_converter('date', convert_date)
        sqlite3.register_converter('datetime', convert_datetime)
        sqlite3.register_converter('timestamp', convert_datetime)

    def enable_autocommit(self, raw_conn: Any) -> None:
        """Enable auto-commit mode for SQLite.
        """
        raw_conn.isolation_level = None

    def disable_autocommit(self, raw_conn: Any) -> None:
        """Disable auto-commit mode for SQLite.
        """
        raw_conn.isolation_level = 'DEFERRED'

    def get_autocommit(self, raw_conn: Any) -> bool:
        return raw_conn.isolation_level is None

    def describe(self, cursor: Any) -> list[ColumnInfo]:
        """Describe result columns. sqlite3 reports names only.
        """
        if cursor.description is None:
            return []
        return [ColumnInfo(name=d[0], label=d[0], type_code=SqlType.OTHER)
                for d in cursor.description]
