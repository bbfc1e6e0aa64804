"""
Result schemas.

A Schema is built once per result and shared by every TypedRow of that
result.
"""
import logging
from collections.abc import Sequence
from types import MappingProxyType

from typeddb.cursor import ResultMetadata
from typeddb.exceptions import DatabaseError, MetadataError, ValidationError
from typeddb.resolver import TypeResolver
from typeddb.types import ResolvedType

logger = logging.getLogger(__name__)


class Schema:
    """Immutable column names, resolved types and optional table name.

    Names need not be unique. When a name repeats, lookup by name finds the
    last column carrying it.
    """

    __slots__ = ('names', 'types', 'table_name', '_index')

    def __init__(self, names: Sequence[str], types: Sequence[ResolvedType],
                 table_name: str | None = None):
        if names is None or types is None:
            raise ValidationError('Schema names and types cannot be None')
        if len(names) != len(types):
            raise ValidationError(f'Schema has {len(names)} names but {len(types)} types')
        object.__setattr__(self, 'names', tuple(names))
        object.__setattr__(self, 'types', tuple(types))
        object.__setattr__(self, 'table_name', table_name)
        object.__setattr__(self, '_index', MappingProxyType({name: i for i, name in enumerate(self.names)}))

    def __setattr__(self, name, value):
        raise AttributeError(f'{type(self).__name__} is immutable')

    def index_of(self, name: str) -> int | None:
        """Return the column index for `name`, or None if it is absent."""
        return self._index.get(name)

    def type_of(self, key: int | str) -> ResolvedType | None:
        index = key if isinstance(key, int) else self.index_of(key)
        return None if index is None else self.types[index]

    def __contains__(self, name: str) -> bool:
        return name in self._index

    def __len__(self) -> int:
        return len(self.names)

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Schema):
            return NotImplemented
        return (self.names, self.types, self.table_name) == (other.names, other.types, other.table_name)

    def __hash__(self) -> int:
        return hash((self.names, self.types, self.table_name))

    def __repr__(self) -> str:
        columns = ', '.join(f'{n}:{t.label}' for n, t in zip(self.names, self.types))
        return f'Schema({columns}, table_name={self.table_name!r})'


def build_schema(metadata: ResultMetadata, resolver: TypeResolver | None = None) -> Schema:
    """Build the schema of a result from its column metadata.

    The label of each column falls back to its name. A table name is
    attributed only if every column reports the same non-empty table name;
    once a column breaks that, later columns cannot restore it.

    Args:
        metadata: Column metadata of the result
        resolver: Type resolver, the process-wide one by default

    Returns
        Schema for the result

    Raises
        MetadataError: If the metadata cannot be read
    """
    resolver = resolver or TypeResolver.get_instance()
    names = []
    types = []
    table_name = None
    invalid = False
    try:
        for i in range(metadata.column_count()):
            label = metadata.column_label(i)
            names.append(label or metadata.column_name(i))
            types.append(resolver.resolve(metadata, i))

            if invalid:
                continue
            column_table = metadata.table_name(i)
            if not column_table:
                invalid = True
                table_name = None
            elif table_name is None:
                table_name = column_table
            elif table_name != column_table:
                invalid = True
                table_name = None
    except DatabaseError:
        raise
    except Exception as exc:
        raise MetadataError(f'Unable to obtain metadata: {exc}') from exc

    schema = Schema(names, types, table_name)
    if logger.isEnabledFor(logging.DEBUG):
        logger.debug(f'Built {schema!r}')
    return schema
