"""
Materialization of cursor rows into typed rows.
"""
import logging
from collections.abc import Iterator, Sequence
from typing import Any

import pandas as pd
from typeddb.cursor import ResultCursor
from typeddb.exceptions import DatabaseError, MetadataError
from typeddb.reader import ValueReader
from typeddb.resolver import TypeResolver
from typeddb.row import TypedRow
from typeddb.schema import Schema, build_schema

logger = logging.getLogger(__name__)

_default_reader = ValueReader()


class RowMaterializer:
    """Read the rows of one cursor into TypedRows sharing one Schema.

    The schema and the per-column type codes are read from the cursor
    metadata once, when the materializer is created.
    """

    def __init__(self, cursor: ResultCursor, schema: Schema | None = None,
                 resolver: TypeResolver | None = None, reader: ValueReader | None = None):
        self.cursor = cursor
        self.reader = reader or _default_reader
        metadata = cursor.metadata
        self.schema = schema or build_schema(metadata, resolver)
        try:
            self._type_codes = tuple(metadata.column_type(i) for i in range(len(self.schema)))
        except DatabaseError:
            raise
        except Exception as exc:
            raise MetadataError(f'Unable to obtain metadata: {exc}') from exc

    def materialize(self) -> TypedRow:
        """Read the cursor's current row.
        """
        values = [self.reader.read(self.cursor, i, resolved_type, self._type_codes[i])
                  for i, resolved_type in enumerate(self.schema.types)]
        return TypedRow(self.schema, values)

    def __iter__(self) -> Iterator[TypedRow]:
        while self.cursor.next():
            yield self.materialize()


def to_typed_row(cursor: ResultCursor, schema: Schema | None = None,
                 resolver: TypeResolver | None = None,
                 reader: ValueReader | None = None) -> TypedRow:
    """Read the current row of a cursor as a TypedRow.

    Builds the schema from the cursor metadata unless one is given. Pass the
    schema of an earlier row to share it across rows.
    """
    return RowMaterializer(cursor, schema, resolver, reader).materialize()


def iter_typed_rows(cursor: ResultCursor, resolver: TypeResolver | None = None,
                    reader: ValueReader | None = None) -> Iterator[TypedRow]:
    """Advance through a cursor yielding one TypedRow per row.
    """
    yield from RowMaterializer(cursor, resolver=resolver, reader=reader)


class TypedResult(Sequence):
    """All rows of one result and their shared schema.
    """

    def __init__(self, schema: Schema, rows: Sequence[TypedRow]):
        self.schema = schema
        self.rows = list(rows)

    def __getitem__(self, index):
        return self.rows[index]

    def __len__(self) -> int:
        return len(self.rows)

    def to_dicts(self) -> list[dict[str, Any]]:
        return [row.to_dict() for row in self.rows]

    def column_types(self) -> dict[str, str]:
        return {name: t.label for name, t in zip(self.schema.names, self.schema.types)}

    def to_dataframe(self) -> pd.DataFrame:
        """Load the rows into a DataFrame.

        Column type labels are kept in ``DataFrame.attrs['column_types']``.
        An empty result still carries its columns.
        """
        if not self.rows:
            df = pd.DataFrame(columns=list(self.schema.names))
        else:
            df = pd.DataFrame.from_records([row.values for row in self.rows],
                                           columns=list(self.schema.names))
        df.attrs['column_types'] = self.column_types()
        return df

    def __repr__(self) -> str:
        return f'TypedResult({self.schema!r}, rows={len(self.rows)})'


def to_typed_result(cursor: ResultCursor, resolver: TypeResolver | None = None,
                    reader: ValueReader | None = None) -> TypedResult:
    """Read every remaining row of a cursor.
    """
    materializer = RowMaterializer(cursor, resolver=resolver, reader=reader)
    rows = list(materializer)
    logger.debug(f'Materialized {len(rows)} rows with {len(materializer.schema)} columns')
    return TypedResult(materializer.schema, rows)
