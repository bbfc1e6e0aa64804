"""
Column type resolution.

The resolved type of a column is chosen from, in order:

1. a driver-reported type hint, translated by a TypeHintResolver
2. the standard SQL type code, through a fixed table
3. the generic OBJECT type

Resolution never raises. Metadata that cannot be read degrades the column
to OBJECT.
"""
import logging
import threading
from typing import Protocol

from cachetools import LRUCache
from typeddb.cursor import ResultMetadata
from typeddb.types import ResolvedType, SqlType

logger = logging.getLogger(__name__)

GENERIC_HINTS = frozenset({'object', 'builtins.object'})

_CODE_TABLE: dict[int, ResolvedType] = {
    SqlType.CHAR: ResolvedType.STRING,
    SqlType.VARCHAR: ResolvedType.STRING,
    SqlType.LONGVARCHAR: ResolvedType.STRING,
    SqlType.NCHAR: ResolvedType.STRING,
    SqlType.NVARCHAR: ResolvedType.STRING,
    SqlType.LONGNVARCHAR: ResolvedType.STRING,
    SqlType.TINYINT: ResolvedType.INT8,
    SqlType.SMALLINT: ResolvedType.INT16,
    SqlType.INTEGER: ResolvedType.INT32,
    SqlType.BIGINT: ResolvedType.INT64,
    SqlType.BOOLEAN: ResolvedType.BOOLEAN,
    SqlType.BIT: ResolvedType.BOOLEAN,
    SqlType.DECIMAL: ResolvedType.DECIMAL,
    SqlType.NUMERIC: ResolvedType.DECIMAL,
    SqlType.REAL: ResolvedType.FLOAT32,
    SqlType.FLOAT: ResolvedType.FLOAT64,
    SqlType.DOUBLE: ResolvedType.FLOAT64,
    SqlType.DATE: ResolvedType.DATE,
    SqlType.TIME: ResolvedType.TIME,
    SqlType.TIMESTAMP: ResolvedType.DATETIME,
    SqlType.TIME_WITH_TIMEZONE: ResolvedType.OFFSET_TIME,
    SqlType.TIMESTAMP_WITH_TIMEZONE: ResolvedType.OFFSET_DATETIME,
    SqlType.BINARY: ResolvedType.BYTES,
    SqlType.VARBINARY: ResolvedType.BYTES,
    SqlType.LONGVARBINARY: ResolvedType.BYTES,
    SqlType.ARRAY: ResolvedType.OBJECT_ARRAY,
    SqlType.SQLXML: ResolvedType.STRING,
    SqlType.CLOB: ResolvedType.STRING,
    SqlType.NCLOB: ResolvedType.STRING,
    SqlType.BLOB: ResolvedType.BYTES,
}

_OTHER_TYPE_NAMES = {
    'uuid': ResolvedType.UUID,
    'json': ResolvedType.STRING,
    'jsonb': ResolvedType.STRING,
}


class TypeHintResolver(Protocol):
    """Translates a driver-reported type identifier into a resolved type.

    Driver adapters that report their own type identifiers (class names,
    native type names) implement this and pass it to TypeResolver.
    """

    def resolve_hint(self, hint: str) -> ResolvedType | None:
        """Return the resolved type for `hint`, or None if it is unknown."""


class PythonTypeHints:
    """Resolve Python type names such as ``'int'`` or ``'decimal.Decimal'``.
    """

    _HINTS = {
        'str': ResolvedType.STRING,
        'int': ResolvedType.INT64,
        'float': ResolvedType.FLOAT64,
        'bool': ResolvedType.BOOLEAN,
        'bytes': ResolvedType.BYTES,
        'bytearray': ResolvedType.BYTES,
        'memoryview': ResolvedType.BYTES,
        'list': ResolvedType.OBJECT_ARRAY,
        'tuple': ResolvedType.OBJECT_ARRAY,
        'dict': ResolvedType.OBJECT,
        'decimal.Decimal': ResolvedType.DECIMAL,
        'datetime.date': ResolvedType.DATE,
        'datetime.time': ResolvedType.TIME,
        'datetime.datetime': ResolvedType.DATETIME,
        'uuid.UUID': ResolvedType.UUID,
    }

    def resolve_hint(self, hint: str) -> ResolvedType | None:
        hint = hint.strip()
        if hint.startswith('builtins.'):
            hint = hint.removeprefix('builtins.')
        return self._HINTS.get(hint)


class TypeResolver:
    """Resolve the representable type of result columns.

    Hint lookups are cached per instance. Tests construct their own
    resolver; `get_instance` returns the process-wide one.
    """

    _instance = None
    _instance_lock = threading.Lock()

    def __init__(self, hints: TypeHintResolver | None = None, maxsize: int = 256):
        self.hints = hints or PythonTypeHints()
        self._cache = LRUCache(maxsize=maxsize)
        self._lock = threading.RLock()

    @classmethod
    def get_instance(cls) -> 'TypeResolver':
        """Return the process-wide resolver."""
        with cls._instance_lock:
            if cls._instance is None:
                cls._instance = cls()
            return cls._instance

    def resolve(self, metadata: ResultMetadata, index: int) -> ResolvedType:
        """Resolve the type of column `index`. Never raises.
        """
        try:
            hint = metadata.column_type_hint(index)
        except Exception as exc:
            logger.debug(f'Unable to read type hint of column {index}: {exc}')
            hint = None

        if hint and hint.strip() and hint.strip() not in GENERIC_HINTS:
            return self._resolve_hint(hint.strip())

        try:
            return self._resolve_code(metadata, index)
        except Exception as exc:
            logger.debug(f'Unable to read type of column {index}: {exc}')
            return ResolvedType.OBJECT

    def _resolve_hint(self, hint: str) -> ResolvedType:
        with self._lock:
            resolved = self._cache.get(hint)
            if resolved is not None:
                return resolved
            try:
                resolved = self.hints.resolve_hint(hint)
            except Exception as exc:
                logger.debug(f'Type hint {hint!r} could not be resolved: {exc}')
                resolved = None
            if resolved is None:
                logger.debug(f'Unknown type hint {hint!r}, using {ResolvedType.OBJECT.label}')
                resolved = ResolvedType.OBJECT
            self._cache[hint] = resolved
            return resolved

    def _resolve_code(self, metadata: ResultMetadata, index: int) -> ResolvedType:
        code = metadata.column_type(index)
        if code == SqlType.OTHER:
            name = (metadata.column_type_name(index) or '').lower()
            return _OTHER_TYPE_NAMES.get(name, ResolvedType.OBJECT)
        return _CODE_TABLE.get(code, ResolvedType.OBJECT)

    def cache_info(self) -> dict[str, int]:
        with self._lock:
            return {'size': len(self._cache), 'maxsize': self._cache.maxsize}

    def clear_cache(self) -> None:
        with self._lock:
            self._cache.clear()
