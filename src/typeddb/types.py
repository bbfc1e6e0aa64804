"""
Column type codes and resolved column types.

SqlType holds the standard SQL type codes (the numeric values used by JDBC
and ODBC drivers). Dialect strategies translate their native type
identifiers into these codes. ResolvedType is the closed set of tags a
schema column can carry.
"""
import datetime
import decimal
import uuid
from enum import Enum, IntEnum
from typing import Any


class SqlType(IntEnum):
    """Standard SQL type codes."""
    BIT = -7
    TINYINT = -6
    SMALLINT = 5
    INTEGER = 4
    BIGINT = -5
    FLOAT = 6
    REAL = 7
    DOUBLE = 8
    NUMERIC = 2
    DECIMAL = 3
    CHAR = 1
    VARCHAR = 12
    LONGVARCHAR = -1
    DATE = 91
    TIME = 92
    TIMESTAMP = 93
    BINARY = -2
    VARBINARY = -3
    LONGVARBINARY = -4
    NULL = 0
    OTHER = 1111
    ARRAY = 2003
    BLOB = 2004
    CLOB = 2005
    BOOLEAN = 16
    ROWID = -8
    NCHAR = -15
    NVARCHAR = -9
    LONGNVARCHAR = -16
    NCLOB = 2011
    SQLXML = 2009
    TIME_WITH_TIMEZONE = 2013
    TIMESTAMP_WITH_TIMEZONE = 2014


BINARY_CODES = frozenset({SqlType.BINARY, SqlType.VARBINARY, SqlType.LONGVARBINARY})
CHARACTER_LOB_CODES = frozenset({SqlType.CLOB, SqlType.NCLOB})


class ResolvedType(Enum):
    """Representable type chosen for a column when its schema is built.

    Each member carries a short ``label`` and the ``python_type`` its values
    are instances of.
    """
    STRING = 'string', str
    INT8 = 'int8', int
    INT16 = 'int16', int
    INT32 = 'int32', int
    INT64 = 'int64', int
    FLOAT32 = 'float32', float
    FLOAT64 = 'float64', float
    DECIMAL = 'decimal', decimal.Decimal
    BOOLEAN = 'boolean', bool
    BYTES = 'bytes', bytes
    DATE = 'date', datetime.date
    TIME = 'time', datetime.time
    DATETIME = 'datetime', datetime.datetime
    OFFSET_DATETIME = 'offset_datetime', datetime.datetime
    OFFSET_TIME = 'offset_time', datetime.time
    OBJECT_ARRAY = 'object_array', list
    UUID = 'uuid', uuid.UUID
    OBJECT = 'object', object

    def __init__(self, label: str, python_type: type):
        self.label = label
        self.python_type = python_type

    @property
    def is_integer(self) -> bool:
        return self in {ResolvedType.INT8, ResolvedType.INT16,
                        ResolvedType.INT32, ResolvedType.INT64}

    def accepts(self, value: Any) -> bool:
        """Check whether a non-None value is an instance of this type.

        Integer tags reject bool. Plain temporal tags reject values carrying
        an offset and offset tags reject naive values.

        >>> ResolvedType.INT32.accepts(1), ResolvedType.INT32.accepts(True)
        (True, False)
        >>> ResolvedType.DATE.accepts(datetime.datetime(2024, 1, 1))
        False
        """
        if self is ResolvedType.OBJECT:
            return True
        if self.is_integer:
            return isinstance(value, int) and not isinstance(value, bool)
        if self is ResolvedType.DATE:
            return isinstance(value, datetime.date) and not isinstance(value, datetime.datetime)
        if self in {ResolvedType.DATETIME, ResolvedType.TIME}:
            return isinstance(value, self.python_type) and value.tzinfo is None
        if self in {ResolvedType.OFFSET_DATETIME, ResolvedType.OFFSET_TIME}:
            return isinstance(value, self.python_type) and value.tzinfo is not None
        return isinstance(value, self.python_type)

    def __repr__(self) -> str:
        return f'<ResolvedType.{self.name}>'
