"""
Schema-backed rows.
"""
from collections.abc import Iterator, Sequence
from typing import Any

from libb import attrdict
from typeddb.exceptions import ColumnNotFoundError, TypeConversionError
from typeddb.exceptions import ValidationError
from typeddb.schema import Schema
from typeddb.types import ResolvedType


class TypedRow:
    """Immutable row of values paired with the schema of its result.

    Values are addressed by 0-based index or by column name. Passing
    `as_type` to `get` checks the stored value against a Python type or a
    ResolvedType before returning it.

    >>> schema = Schema(['id', 'name'], [ResolvedType.INT32, ResolvedType.STRING], 'users')
    >>> row = TypedRow(schema, [1, 'Alice'])
    >>> row['name'], row.get(0, int)
    ('Alice', 1)
    >>> str(row)
    '1 | Alice'
    """

    __slots__ = ('_schema', '_values')

    def __init__(self, schema: Schema, values: Sequence[Any]):
        if schema is None:
            raise ValidationError('TypedRow schema cannot be None')
        if values is None:
            raise ValidationError('TypedRow values cannot be None')
        if len(values) != len(schema):
            raise ValidationError(f'Row has {len(values)} values but schema has {len(schema)} columns')
        self._schema = schema
        self._values = tuple(values)

    @property
    def schema(self) -> Schema:
        return self._schema

    @property
    def values(self) -> tuple[Any, ...]:
        return self._values

    def _index(self, key: int | str) -> int:
        if isinstance(key, bool):
            raise IndexError(f'Column index must be an int, got {key!r}')
        if isinstance(key, int):
            if key < 0:
                raise IndexError(f'Column index cannot be negative: {key}')
            return key
        index = self._schema.index_of(key)
        if index is None:
            raise ColumnNotFoundError(key, self._schema.table_name)
        return index

    def get(self, key: int | str, as_type: type | ResolvedType | None = None) -> Any:
        """Return the value at an index or column name.

        Args:
            key: 0-based index or column name
            as_type: Python type or ResolvedType the value must have

        Returns
            Stored value, None if the value is NULL

        Raises
            ColumnNotFoundError: If the name is not in the schema
            TypeConversionError: If the value is not of `as_type`
        """
        value = self._values[self._index(key)]
        if as_type is None or value is None:
            return value
        if isinstance(as_type, ResolvedType):
            ok = as_type.accepts(value)
            type_name = as_type.label
        else:
            ok = isinstance(value, as_type)
            type_name = as_type.__name__
        if not ok:
            raise TypeConversionError(f'Value of column {key!r} is {type(value).__name__}, not {type_name}')
        return value

    def __getitem__(self, key: int | str) -> Any:
        return self.get(key)

    def __contains__(self, name: str) -> bool:
        return name in self._schema

    def __len__(self) -> int:
        return len(self._values)

    def __iter__(self) -> Iterator[Any]:
        return iter(self._values)

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, TypedRow):
            return NotImplemented
        return self._schema == other._schema and self._values == other._values

    def __hash__(self) -> int:
        return hash((self._schema, self._values))

    def to_dict(self) -> dict[str, Any]:
        """Map column names to values. A repeated name keeps its last value."""
        return dict(zip(self._schema.names, self._values))

    def to_attrdict(self) -> attrdict:
        return attrdict(self.to_dict())

    def __str__(self) -> str:
        return ' | '.join(str(v) for v in self._values)

    def __repr__(self) -> str:
        return f'TypedRow({self.to_dict()!r})'
