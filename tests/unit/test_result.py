"""
Tests for materializing cursor rows into typed rows and results.
"""
import datetime
import decimal

import pandas as pd
import pytest
from typeddb.cursor import ColumnInfo, RowsCursor
from typeddb.exceptions import DataAccessError, MetadataError
from typeddb.result import RowMaterializer, TypedResult, iter_typed_rows
from typeddb.result import to_typed_result, to_typed_row
from typeddb.schema import Schema
from typeddb.types import ResolvedType, SqlType

from tests.fixtures.cursors import BrokenCursor, FailingMetadata

COLUMNS = [
    ColumnInfo('id', table_name='products', type_code=SqlType.INTEGER),
    ColumnInfo('name', table_name='products', type_code=SqlType.VARCHAR),
    ColumnInfo('price', table_name='products', type_code=SqlType.NUMERIC),
    ColumnInfo('created', table_name='products', type_code=SqlType.TIMESTAMP),
]

ROWS = [
    (1, 'Widget', decimal.Decimal('9.99'), datetime.datetime(2024, 1, 2)),
    (2, 'Gadget', None, datetime.datetime(2024, 2, 3)),
]


class _FailingTypeCursor(RowsCursor):

    def __init__(self, columns, rows):
        super().__init__(columns, rows)
        self._metadata = FailingMetadata(columns, fail_on={'column_type'})


def test_to_typed_row(make_cursor, resolver):
    cursor = make_cursor(COLUMNS, *ROWS)
    row = to_typed_row(cursor, resolver=resolver)
    assert row.values == ROWS[0]
    assert row.schema.table_name == 'products'
    assert row.schema.types == (ResolvedType.INT32, ResolvedType.STRING,
                                ResolvedType.DECIMAL, ResolvedType.DATETIME)


def test_schema_shared_across_rows(make_cursor, resolver):
    cursor = make_cursor(COLUMNS, *ROWS)
    first = to_typed_row(cursor, resolver=resolver)
    cursor.next()
    second = to_typed_row(cursor, schema=first.schema, resolver=resolver)
    assert second.schema is first.schema
    assert second['price'] is None


def test_iter_typed_rows(resolver):
    cursor = RowsCursor(COLUMNS, ROWS)
    rows = list(iter_typed_rows(cursor, resolver=resolver))
    assert [r['name'] for r in rows] == ['Widget', 'Gadget']
    assert rows[0].schema is rows[1].schema


def test_materializer_reads_metadata_once(mocker, resolver):
    """Type codes are read when the result is opened, not once per row"""
    cursor = RowsCursor(COLUMNS, ROWS)
    spy = mocker.spy(cursor.metadata, 'column_type')
    rows = list(RowMaterializer(cursor, resolver=resolver))
    assert len(rows) == 2
    assert spy.call_count == 2 * len(COLUMNS)


def test_type_code_failure(resolver):
    schema = Schema(['id'], [ResolvedType.INT32])
    cursor = _FailingTypeCursor([ColumnInfo('id')], [(1,)])
    with pytest.raises(MetadataError):
        RowMaterializer(cursor, schema=schema, resolver=resolver)


def test_cell_failure_propagates(resolver):
    cursor = BrokenCursor([ColumnInfo('id', type_code=SqlType.INTEGER)], (1,))
    with pytest.raises(DataAccessError):
        to_typed_row(cursor, resolver=resolver)


def test_to_typed_result(resolver):
    result = to_typed_result(RowsCursor(COLUMNS, ROWS), resolver=resolver)
    assert len(result) == 2
    assert result[1]['id'] == 2
    assert result.to_dicts()[0] == {
        'id': 1,
        'name': 'Widget',
        'price': decimal.Decimal('9.99'),
        'created': datetime.datetime(2024, 1, 2),
    }
    assert result.column_types() == {
        'id': 'int32', 'name': 'string', 'price': 'decimal', 'created': 'datetime',
    }


def test_to_dataframe(resolver):
    df = to_typed_result(RowsCursor(COLUMNS, ROWS), resolver=resolver).to_dataframe()
    assert list(df.columns) == ['id', 'name', 'price', 'created']
    assert len(df) == 2
    assert df['name'].tolist() == ['Widget', 'Gadget']
    assert df.loc[0, 'created'] == pd.Timestamp('2024-01-02')
    assert df.attrs['column_types']['price'] == 'decimal'


def test_empty_result_keeps_columns(resolver):
    result = to_typed_result(RowsCursor(COLUMNS, []), resolver=resolver)
    assert len(result) == 0
    assert result.schema.names == ('id', 'name', 'price', 'created')
    df = result.to_dataframe()
    assert list(df.columns) == ['id', 'name', 'price', 'created']
    assert df.empty


def test_result_is_a_sequence():
    schema = Schema(['a'], [ResolvedType.OBJECT])
    result = TypedResult(schema, [])
    assert list(result) == []
    assert repr(result) == 'TypedResult(Schema(a:object, table_name=None), rows=0)'


if __name__ == '__main__':
    __import__('pytest').main([__file__])
