"""
Cell extraction by resolved column type.

ValueReader holds one handler per ResolvedType. Handlers that can obtain a
value in more than one way try an ordered list of attempts, each returning
NOT_SUPPORTED when it cannot produce the value, and use the first result.
"""
import array
import datetime
import logging
import uuid
from collections.abc import Callable
from typing import Any

import numpy as np
from dateutil import parser as dateparser
from typeddb.cursor import NOT_SUPPORTED, ResultCursor
from typeddb.exceptions import DataAccessError, LobTooLargeError
from typeddb.types import BINARY_CODES, CHARACTER_LOB_CODES, ResolvedType
from typeddb.types import SqlType

logger = logging.getLogger(__name__)

MAX_LOB_SIZE = 2**31 - 1

UTC = datetime.timezone.utc


def first_supported(*attempts: Callable[[], Any]) -> Any:
    """Return the first attempt result that is not NOT_SUPPORTED, else None.
    """
    for attempt in attempts:
        value = attempt()
        if value is not NOT_SUPPORTED:
            return value
    return None


def materialize_array(raw: Any) -> Any:
    """Copy array backing storage into a list of Python objects.

    Primitive storage (numpy arrays, array.array, memoryview, bytes) is boxed
    element by element. Values that are not sequences are returned as is.

    >>> materialize_array(array.array('i', [1, 2]))
    [1, 2]
    >>> materialize_array(('a', None))
    ['a', None]
    """
    if raw is None:
        return None
    if isinstance(raw, np.ndarray):
        return [item.item() if isinstance(item, np.generic) else item for item in raw]
    if isinstance(raw, (array.array, memoryview)):
        return raw.tolist()
    if isinstance(raw, (bytes, bytearray)):
        return list(raw)
    if isinstance(raw, (list, tuple)):
        return list(raw)
    return raw


class ValueReader:
    """Read cells from a ResultCursor according to their resolved type.
    """

    def __init__(self, max_lob_size: int = MAX_LOB_SIZE):
        self.max_lob_size = max_lob_size
        self._handlers = {
            ResolvedType.STRING: self._read_string,
            ResolvedType.INT8: self._read_object,
            ResolvedType.INT16: self._read_object,
            ResolvedType.INT32: self._read_object,
            ResolvedType.INT64: self._read_object,
            ResolvedType.FLOAT32: self._read_object,
            ResolvedType.FLOAT64: self._read_object,
            ResolvedType.DECIMAL: self._read_object,
            ResolvedType.BOOLEAN: self._read_object,
            ResolvedType.BYTES: self._read_bytes,
            ResolvedType.DATE: self._read_date,
            ResolvedType.TIME: self._read_time,
            ResolvedType.DATETIME: self._read_datetime,
            ResolvedType.OFFSET_DATETIME: self._read_offset_datetime,
            ResolvedType.OFFSET_TIME: self._read_offset_time,
            ResolvedType.OBJECT_ARRAY: self._read_array,
            ResolvedType.UUID: self._read_uuid,
            ResolvedType.OBJECT: self._read_generic,
        }

    def handles(self, resolved_type: ResolvedType) -> bool:
        return resolved_type in self._handlers

    def read(self, cursor: ResultCursor, index: int, resolved_type: ResolvedType,
             type_code: int) -> Any:
        """Read column `index` of the cursor's current row.

        Args:
            cursor: Cursor positioned on a row
            index: 0-based column index
            resolved_type: Type resolved for the column
            type_code: Standard SQL type code reported for the column

        Returns
            Cell value, or None for SQL NULL

        Raises
            DataAccessError: If the driver fails to produce the value
        """
        handler = self._handlers[resolved_type]
        try:
            return handler(cursor, index, type_code)
        except DataAccessError:
            raise
        except Exception as exc:
            raise DataAccessError(f'Unable to read column {index} as {resolved_type.label}: {exc}') from exc

    def _read_object(self, cursor: ResultCursor, index: int, type_code: int) -> Any:
        return cursor.get_object(index)

    def _read_generic(self, cursor: ResultCursor, index: int, type_code: int) -> Any:
        if type_code == SqlType.ARRAY:
            return self._read_array(cursor, index, type_code)
        return cursor.get_object(index)

    def _read_string(self, cursor: ResultCursor, index: int, type_code: int) -> str | None:
        if type_code == SqlType.SQLXML:
            xml = cursor.get_xml(index)
            if xml is None:
                return None
            try:
                return xml.get_string()
            finally:
                _release(xml, 'XML')
        if type_code in CHARACTER_LOB_CODES:
            return self._read_lob(cursor.get_clob(index), 'CLOB')
        return cursor.get_string(index)

    def _read_bytes(self, cursor: ResultCursor, index: int, type_code: int) -> bytes | None:
        if type_code in BINARY_CODES:
            return cursor.get_bytes(index)
        if type_code == SqlType.BLOB:
            return self._read_lob(cursor.get_blob(index), 'BLOB')
        return cursor.get_object(index)

    def _read_lob(self, lob: Any, kind: str) -> str | bytes | None:
        if lob is None:
            return None
        try:
            length = lob.length()
            if length > self.max_lob_size:
                raise LobTooLargeError(length, self.max_lob_size)
            return lob.read(length)
        finally:
            _release(lob, kind)

    def _read_offset_datetime(self, cursor: ResultCursor, index: int,
                              type_code: int) -> datetime.datetime | None:
        return first_supported(
            lambda: cursor.get_as(index, ResolvedType.OFFSET_DATETIME),
            lambda: _parse_text(cursor, index, dateparser.isoparse),
            lambda: _as_utc_datetime(cursor.get_timestamp(index, tz=UTC)),
        )

    def _read_offset_time(self, cursor: ResultCursor, index: int,
                          type_code: int) -> datetime.time | None:
        return first_supported(
            lambda: cursor.get_as(index, ResolvedType.OFFSET_TIME),
            lambda: _parse_text(cursor, index, dateparser.isoparser().parse_isotime),
            lambda: _as_utc_time(cursor.get_time(index, tz=UTC)),
        )

    def _read_date(self, cursor: ResultCursor, index: int, type_code: int) -> datetime.date | None:
        return first_supported(
            lambda: cursor.get_as(index, ResolvedType.DATE),
            lambda: cursor.get_date(index),
        )

    def _read_time(self, cursor: ResultCursor, index: int, type_code: int) -> datetime.time | None:
        return first_supported(
            lambda: cursor.get_as(index, ResolvedType.TIME),
            lambda: _drop_offset(cursor.get_time(index)),
        )

    def _read_datetime(self, cursor: ResultCursor, index: int,
                       type_code: int) -> datetime.datetime | None:
        return first_supported(
            lambda: cursor.get_as(index, ResolvedType.DATETIME),
            lambda: _drop_offset(cursor.get_timestamp(index)),
        )

    def _read_array(self, cursor: ResultCursor, index: int, type_code: int) -> list | None:
        handle = cursor.get_array(index)
        if handle is None:
            return None
        try:
            return materialize_array(handle.get_array())
        finally:
            _release(handle, 'array')

    def _read_uuid(self, cursor: ResultCursor, index: int, type_code: int) -> uuid.UUID | None:
        return first_supported(
            lambda: cursor.get_as(index, ResolvedType.UUID),
            lambda: _to_uuid(cursor.get_object(index)),
        )


def _release(handle: Any, kind: str) -> None:
    try:
        handle.free()
    except Exception as exc:
        logger.warning(f'Error releasing {kind} handle: {exc}')


def _parse_text(cursor: ResultCursor, index: int, parse: Callable[[str], Any]) -> Any:
    """Parse the string form of a cell as an offset-bearing value.
    """
    text = cursor.get_string(index)
    if text is None:
        return NOT_SUPPORTED
    try:
        value = parse(text)
    except (ValueError, OverflowError) as exc:
        logger.debug(f'Column {index} text {text!r} is not an offset temporal: {exc}')
        return NOT_SUPPORTED
    if value.tzinfo is None:
        return NOT_SUPPORTED
    return value


def _as_utc_datetime(value: datetime.datetime | None) -> datetime.datetime | None:
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value.astimezone(UTC)


def _as_utc_time(value: datetime.time | None) -> datetime.time | None:
    if value is None or value.tzinfo is not None:
        return value
    return value.replace(tzinfo=UTC)


def _drop_offset(value: Any) -> Any:
    if value is None:
        return None
    return value.replace(tzinfo=None)


def _to_uuid(value: Any) -> uuid.UUID | None:
    if value is None or isinstance(value, uuid.UUID):
        return value
    if isinstance(value, (bytes, bytearray)) and len(value) == 16:
        return uuid.UUID(bytes=bytes(value))
    return uuid.UUID(str(value))
