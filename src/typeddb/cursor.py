"""
Result cursors and column metadata.

A ResultCursor is positioned on one row at a time and offers the fetch
operations the value reader needs. Typed fetches that a cursor cannot
satisfy return the NOT_SUPPORTED sentinel instead of raising, so callers
can try the next representation in order.

Column indexes are 0-based.
"""
import datetime
import json
import logging
from collections.abc import Iterable, Sequence
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, Self

from dateutil import parser as dateparser
from typeddb.exceptions import DataAccessError, TypeConversionError
from typeddb.types import ResolvedType, SqlType

if TYPE_CHECKING:
    from typeddb.strategy import DatabaseStrategy

logger = logging.getLogger(__name__)


class _NotSupported:
    """Marker returned by a fetch that cannot produce the requested form."""

    _instance = None

    def __new__(cls):
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __bool__(self) -> bool:
        return False

    def __repr__(self) -> str:
        return 'NOT_SUPPORTED'


NOT_SUPPORTED = _NotSupported()


@dataclass(frozen=True)
class ColumnInfo:
    """Driver-reported description of one result column."""
    name: str
    label: str | None = None
    table_name: str | None = None
    type_code: int = SqlType.OTHER
    type_name: str = ''
    type_hint: str | None = None


class ResultMetadata:
    """Column metadata of a result, addressed by 0-based column index.
    """

    def __init__(self, columns: Iterable[ColumnInfo]):
        self._columns = tuple(columns)

    def column_count(self) -> int:
        return len(self._columns)

    def column_label(self, index: int) -> str | None:
        return self._columns[index].label

    def column_name(self, index: int) -> str:
        return self._columns[index].name

    def table_name(self, index: int) -> str | None:
        return self._columns[index].table_name

    def column_type(self, index: int) -> int:
        return self._columns[index].type_code

    def column_type_name(self, index: int) -> str:
        return self._columns[index].type_name

    def column_type_hint(self, index: int) -> str | None:
        return self._columns[index].type_hint

    @property
    def columns(self) -> tuple[ColumnInfo, ...]:
        return self._columns

    def __len__(self) -> int:
        return len(self._columns)

    def __repr__(self) -> str:
        return f'ResultMetadata({[c.name for c in self._columns]})'


class LobHandle:
    """Handle to a character or binary large object.
    """

    def __init__(self, value: str | bytes | bytearray | memoryview):
        self._value = value

    def length(self) -> int:
        return len(self._value)

    def read(self, amount: int) -> str | bytes:
        """Read up to `amount` characters or bytes from the start."""
        chunk = self._value[:amount]
        if isinstance(chunk, (bytearray, memoryview)):
            return bytes(chunk)
        return chunk

    def free(self) -> None:
        self._value = None


class XmlHandle:
    """Handle to an XML value.
    """

    def __init__(self, value: str | bytes):
        self._value = value

    def get_string(self) -> str:
        if isinstance(self._value, (bytes, bytearray)):
            return self._value.decode('utf-8')
        return str(self._value)

    def free(self) -> None:
        self._value = None


class ArrayHandle:
    """Handle to an array value and its backing storage.
    """

    def __init__(self, value: Any):
        self._value = value

    def get_array(self) -> Any:
        return self._value

    def free(self) -> None:
        self._value = None


class ResultCursor:
    """Cursor positioned on one row of a tabular result.

    Subclasses supply rows through `_fetch_row`. The fetch operations read
    cells of the current row.
    """

    def __init__(self, metadata: ResultMetadata):
        self._metadata = metadata
        self._row = None
        self.closed = False

    @property
    def metadata(self) -> ResultMetadata:
        return self._metadata

    def _fetch_row(self) -> Sequence[Any] | None:
        raise NotImplementedError

    def next(self) -> bool:
        """Advance to the next row. Returns False when the result is exhausted."""
        if self.closed:
            raise DataAccessError('Cursor is closed')
        self._row = self._fetch_row()
        return self._row is not None

    def close(self) -> None:
        self.closed = True
        self._row = None

    def __enter__(self) -> Self:
        return self

    def __exit__(self, exc_type, exc_value, traceback) -> None:
        self.close()

    def _cell(self, index: int) -> Any:
        if self._row is None:
            raise DataAccessError('Cursor is not positioned on a row')
        return self._row[index]

    def get_object(self, index: int) -> Any:
        return self._cell(index)

    def get_as(self, index: int, resolved_type: ResolvedType) -> Any:
        """Fetch a cell as the given type, or NOT_SUPPORTED if it is not one.
        """
        value = self._cell(index)
        if value is None:
            return None
        if resolved_type.accepts(value):
            return value
        return NOT_SUPPORTED

    def get_string(self, index: int) -> str | None:
        value = self._cell(index)
        if value is None or isinstance(value, str):
            return value
        if isinstance(value, (bytes, bytearray, memoryview)):
            return bytes(value).decode('utf-8')
        if isinstance(value, (dict, list)):
            return json.dumps(value)
        if isinstance(value, (datetime.date, datetime.time)):
            return value.isoformat()
        return str(value)

    def get_bytes(self, index: int) -> bytes | None:
        value = self._cell(index)
        if value is None:
            return None
        if isinstance(value, (bytes, bytearray, memoryview)):
            return bytes(value)
        raise TypeConversionError(f'Column {index} holds {type(value).__name__}, not bytes')

    def get_date(self, index: int) -> datetime.date | None:
        value = self._cell(index)
        if value is None:
            return None
        if isinstance(value, datetime.datetime):
            return value.date()
        if isinstance(value, datetime.date):
            return value
        if isinstance(value, str):
            return dateparser.isoparse(value).date()
        raise TypeConversionError(f'Column {index} holds {type(value).__name__}, not a date')

    def get_time(self, index: int, tz: datetime.tzinfo | None = None) -> datetime.time | None:
        """Fetch a time. A naive value is interpreted in `tz` when given."""
        value = self._cell(index)
        if value is None:
            return None
        if isinstance(value, datetime.datetime):
            if tz is not None and value.tzinfo is not None:
                value = value.astimezone(tz)
            value = value.timetz()
        elif isinstance(value, str):
            value = dateparser.isoparser().parse_isotime(value)
        elif not isinstance(value, datetime.time):
            raise TypeConversionError(f'Column {index} holds {type(value).__name__}, not a time')
        if tz is not None and value.tzinfo is None:
            value = value.replace(tzinfo=tz)
        return value

    def get_timestamp(self, index: int, tz: datetime.tzinfo | None = None) -> datetime.datetime | None:
        """Fetch a timestamp. A naive value is interpreted in `tz` when given,
        an aware value is converted to `tz`.
        """
        value = self._cell(index)
        if value is None:
            return None
        if isinstance(value, str):
            value = dateparser.isoparse(value)
        elif isinstance(value, datetime.date) and not isinstance(value, datetime.datetime):
            value = datetime.datetime.combine(value, datetime.time())
        elif not isinstance(value, datetime.datetime):
            raise TypeConversionError(f'Column {index} holds {type(value).__name__}, not a timestamp')
        if tz is not None:
            value = value.astimezone(tz) if value.tzinfo is not None else value.replace(tzinfo=tz)
        return value

    def get_xml(self, index: int) -> XmlHandle | None:
        value = self._cell(index)
        return None if value is None else XmlHandle(value)

    def get_clob(self, index: int) -> LobHandle | None:
        value = self._cell(index)
        if value is None:
            return None
        if isinstance(value, (bytes, bytearray, memoryview)):
            value = bytes(value).decode('utf-8')
        return LobHandle(value)

    def get_blob(self, index: int) -> LobHandle | None:
        value = self._cell(index)
        if value is None:
            return None
        if isinstance(value, str):
            value = value.encode('utf-8')
        return LobHandle(value)

    def get_array(self, index: int) -> ArrayHandle | None:
        value = self._cell(index)
        return None if value is None else ArrayHandle(value)


class RowsCursor(ResultCursor):
    """Cursor over rows already held in memory.

    >>> cursor = RowsCursor([ColumnInfo('id', type_code=SqlType.INTEGER)], [(1,), (2,)])
    >>> cursor.next(), cursor.get_object(0)
    (True, 1)
    """

    def __init__(self, columns: Iterable[ColumnInfo], rows: Iterable[Sequence[Any]]):
        super().__init__(ResultMetadata(columns))
        self._rows = iter(rows)

    def _fetch_row(self) -> Sequence[Any] | None:
        return next(self._rows, None)


class DbapiResultCursor(ResultCursor):
    """Cursor over an open DB-API cursor.

    The DB-API cursor is owned by this object: closing this cursor closes it.
    """

    def __init__(self, dbapi_cursor: Any, strategy: 'DatabaseStrategy'):
        self.dbapi_cursor = dbapi_cursor
        self.strategy = strategy
        super().__init__(None)

    @property
    def metadata(self) -> ResultMetadata:
        if self._metadata is None:
            self._metadata = ResultMetadata(self.strategy.describe(self.dbapi_cursor))
        return self._metadata

    @property
    def rowcount(self) -> int:
        return self.dbapi_cursor.rowcount

    def _fetch_row(self) -> Sequence[Any] | None:
        if self.dbapi_cursor.description is None:
            return None
        return self.dbapi_cursor.fetchone()

    def close(self) -> None:
        if not self.closed:
            self.dbapi_cursor.close()
        super().close()
