"""
PostgreSQL-specific strategy implementation.

Connects through psycopg. Column types are reported by psycopg as type
OIDs and translated here into standard SQL type codes. Table names are
looked up from the result's table OIDs in pg_class.
"""
import logging
import threading
from functools import lru_cache
from typing import TYPE_CHECKING, Any

import sqlalchemy as sa
from cachetools import TTLCache
from typeddb.cursor import ColumnInfo
from typeddb.strategy.base import DatabaseStrategy, register_strategy
from typeddb.types import SqlType

if TYPE_CHECKING:
    from typeddb.options import DatabaseOptions

logger = logging.getLogger(__name__)

_PG_TYPE_CODES = {
    'bool': SqlType.BOOLEAN,
    'int2': SqlType.SMALLINT,
    'int4': SqlType.INTEGER,
    'int8': SqlType.BIGINT,
    'oid': SqlType.BIGINT,
    'float4': SqlType.REAL,
    'float8': SqlType.DOUBLE,
    'numeric': SqlType.NUMERIC,
    '"char"': SqlType.CHAR,
    'bpchar': SqlType.CHAR,
    'varchar': SqlType.VARCHAR,
    'text': SqlType.VARCHAR,
    'name': SqlType.VARCHAR,
    'date': SqlType.DATE,
    'time': SqlType.TIME,
    'timetz': SqlType.TIME_WITH_TIMEZONE,
    'timestamp': SqlType.TIMESTAMP,
    'timestamptz': SqlType.TIMESTAMP_WITH_TIMEZONE,
    'bytea': SqlType.BINARY,
    'xml': SqlType.SQLXML,
    'uuid': SqlType.OTHER,
    'json': SqlType.OTHER,
    'jsonb': SqlType.OTHER,
}


@lru_cache(maxsize=1)
def postgres_type_codes() -> dict[int, tuple[SqlType, str]]:
    """Map PostgreSQL type OIDs to (SQL type code, type name).

    Array OIDs of the mapped types map to ARRAY.
    """
    from psycopg.postgres import types as pg_types

    table = {}
    for name, code in _PG_TYPE_CODES.items():
        info = pg_types.get(name)
        if info is None:
            continue
        table[info.oid] = (code, info.name)
        if info.array_oid:
            table[info.array_oid] = (SqlType.ARRAY, f'_{info.name}')
    return table


def describe_type(oid: int) -> tuple[SqlType, str]:
    """Return the SQL type code and type name for a PostgreSQL type OID.
    """
    known = postgres_type_codes().get(oid)
    if known is not None:
        return known

    from psycopg.postgres import types as pg_types

    info = pg_types.get(oid)
    if info is None:
        return SqlType.OTHER, ''
    if info.array_oid == oid:
        return SqlType.ARRAY, f'_{info.name}'
    return SqlType.OTHER, info.name


@register_strategy('postgresql')
class PostgresStrategy(DatabaseStrategy):
    """PostgreSQL-specific operations.
    """

    driver_module = 'psycopg'

    def __init__(self):
        self._table_names = TTLCache(maxsize=1024, ttl=300)
        self._table_names_lock = threading.RLock()

    @property
    def dialect_name(self) -> str:
        """Return the dialect identifier for PostgreSQL."""
        return 'postgresql'

    def build_connection_url(self, options: 'DatabaseOptions') -> sa.URL:
        """Build the SQLAlchemy connection URL for PostgreSQL."""
        return sa.URL.create(
            'postgresql+psycopg',
            username=options.username,
            password=options.password,
            host=options.hostname,
            port=options.port or None,
            database=options.database,
        )

    def get_engine_kwargs(self, options: 'DatabaseOptions') -> dict[str, Any]:
        """Return SQLAlchemy create_engine kwargs for PostgreSQL."""
        connect_args = {'application_name': options.appname}
        if options.timeout:
            connect_args['connect_timeout'] = options.timeout
        return {'connect_args': connect_args}

    @classmethod
    def get_required_options(cls) -> list[str]:
        """Return required options for PostgreSQL connections."""
        return ['hostname', 'username', 'database']

    def configure_connection(self, raw_conn: Any) -> None:
        """Configure connection settings for PostgreSQL.
        """
        self.register_type_adapters(raw_conn)

    def register_type_adapters(self, raw_conn: Any) -> None:
        """Register dialect-specific type adapters for PostgreSQL.

        PostgreSQL with psycopg doesn't need special adapters.
        """

    def enable_autocommit(self, raw_conn: Any) -> None:
        """Enable auto-commit mode for PostgreSQL.

        psycopg refuses the switch inside a transaction, so an open one is
        committed first.
        """
        raw_conn.commit()
        raw_conn.autocommit = True

    def disable_autocommit(self, raw_conn: Any) -> None:
        """Disable auto-commit mode for PostgreSQL.
        """
        raw_conn.autocommit = False

    def get_autocommit(self, raw_conn: Any) -> bool:
        return bool(raw_conn.autocommit)

    def describe(self, cursor: Any) -> list[ColumnInfo]:
        """Describe result columns from psycopg's column OIDs.
        """
        if cursor.description is None:
            return []
        table_names = self.table_names(cursor)
        columns = []
        for i, column in enumerate(cursor.description):
            code, type_name = describe_type(column.type_code)
            columns.append(ColumnInfo(
                name=column.name,
                label=column.name,
                table_name=table_names[i],
                type_code=code,
                type_name=type_name,
            ))
        return columns

    def table_names(self, cursor: Any) -> list[str | None]:
        """Return the source table name of each result column, None where
        the column is computed or the name cannot be looked up.
        """
        count = len(cursor.description)
        pgresult = getattr(cursor, 'pgresult', None)
        if pgresult is None:
            return [None] * count

        oids = [pgresult.ftable(i) for i in range(count)]
        wanted = {oid for oid in oids if oid}
        if not wanted:
            return [None] * count

        with self._table_names_lock:
            missing = [oid for oid in wanted if oid not in self._table_names]
            if missing:
                try:
                    self._table_names.update(self._lookup_table_names(cursor.connection, missing))
                except Exception as exc:
                    logger.debug(f'Unable to look up table names for {missing}: {exc}')
            return [self._table_names.get(oid) if oid else None for oid in oids]

    def _lookup_table_names(self, raw_conn: Any, oids: list[int]) -> dict[int, str]:
        cursor = raw_conn.cursor()
        try:
            cursor.execute('select oid::int8, relname::text from pg_class where oid = any(%s::oid[])', (oids,))
            return dict(cursor.fetchall())
        finally:
            cursor.close()
