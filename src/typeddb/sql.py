"""
SQL parameter processing.

Named parameters use the ``:name`` form. A run of colons in front of a name
halves on output, and an odd run turns its last colon into a positional
placeholder:

    :id     -> ?            (value of id appended)
    ::id    -> :id          (text, no value)
    :::id   -> :?           (value of id appended)

Quoted string literals and quoted identifiers are copied verbatim. Nothing
else about SQL syntax is interpreted.

Main entry points:
- `rewrite_named_query()` - Named placeholders to positional SQL + values
- `standardize_placeholders()` - Convert ? to the driver paramstyle
- `bind_parameters()` - Normalize positional values before binding
"""
import datetime
import decimal
import logging
import re
from collections.abc import Mapping, Sequence
from dataclasses import dataclass
from enum import Enum, auto
from typing import Any

import numpy as np
import pandas as pd
from typeddb.exceptions import MissingParameterError, QueryError
from typeddb.exceptions import ValidationError

logger = logging.getLogger(__name__)


class TokenType(Enum):
    """Token types identified during SQL scanning."""
    SQL_TEXT = auto()
    STRING_LITERAL = auto()
    NAMED_PH = auto()           # :name with its leading colon run
    POSITIONAL_PH = auto()      # ?
    PERCENT = auto()


@dataclass(slots=True)
class Token:
    """Token from SQL scanning."""
    type: TokenType
    text: str
    start: int
    end: int
    colons: int = 0
    name: str | None = None


_TOKENIZE = re.compile(r"""
    (?P<string>'(?:[^']|'')*'|"(?:[^"]|"")*")
    |(?P<named>(?P<colons>:+)(?P<name>[A-Za-z_][A-Za-z0-9_]*))
    |(?P<qmark>\?)
    |(?P<percent>%)
""", re.VERBOSE)


def tokenize_sql(sql: str) -> list[Token]:
    """Split SQL into tokens in a single left-to-right pass.

    Args:
        sql: SQL query string

    Returns
        List of tokens preserving all SQL text
    """
    tokens = []
    last_end = 0

    for match in _TOKENIZE.finditer(sql):
        start, end = match.span()

        if start > last_end:
            tokens.append(Token(TokenType.SQL_TEXT, sql[last_end:start], last_end, start))

        if match.group('string'):
            tokens.append(Token(TokenType.STRING_LITERAL, match.group(), start, end))
        elif match.group('named'):
            tokens.append(Token(TokenType.NAMED_PH, match.group(), start, end,
                                colons=len(match.group('colons')),
                                name=match.group('name')))
        elif match.group('qmark'):
            tokens.append(Token(TokenType.POSITIONAL_PH, '?', start, end))
        else:
            tokens.append(Token(TokenType.PERCENT, '%', start, end))

        last_end = end

    if last_end < len(sql):
        tokens.append(Token(TokenType.SQL_TEXT, sql[last_end:], last_end, len(sql)))

    return tokens


def rewrite_named_query(sql: str, values_by_name: Mapping[str, Any],
                        placeholder: str = '?') -> tuple[str, list[Any]]:
    """Convert named-parameter SQL into positional SQL and an ordered value list.

    Values are collected in the order their tokens appear in the text, so a
    name used twice contributes its value twice. Entries of `values_by_name`
    that the SQL never references are ignored.

    Args:
        sql: SQL using ``:name`` placeholders
        values_by_name: Mapping of parameter name to value
        placeholder: Positional marker to emit

    Returns
        Tuple of (positional SQL, ordered values)

    Raises
        ValidationError: If sql or values_by_name is None
        MissingParameterError: If a referenced name has no value

    >>> rewrite_named_query('select * from t where id = :id and note = ::id', {'id': 7})
    ('select * from t where id = ? and note = :id', [7])
    """
    if sql is None:
        raise ValidationError('sql cannot be None')
    if values_by_name is None:
        raise ValidationError('values_by_name cannot be None')

    parts = []
    values = []
    for token in tokenize_sql(sql):
        if token.type != TokenType.NAMED_PH:
            parts.append(token.text)
            continue
        k = token.colons
        if k % 2 == 0:
            parts.append(':' * (k // 2) + token.name)
            continue
        if token.name not in values_by_name:
            raise MissingParameterError(token.name)
        parts.append(':' * ((k - 1) // 2) + placeholder)
        values.append(values_by_name[token.name])

    return ''.join(parts), values


def has_named_parameters(sql: str) -> bool:
    """Check whether SQL contains any named parameter outside quotes.
    """
    return any(t.type == TokenType.NAMED_PH and t.colons % 2 == 1
               for t in tokenize_sql(sql))


def standardize_placeholders(sql: str, dialect: str = 'postgresql') -> str:
    """Convert ? placeholders to the paramstyle of the dialect's driver.

    PostgreSQL (psycopg) uses %s, which means every literal % must be doubled
    once parameters are bound. SQLite uses ? natively.

    >>> standardize_placeholders("select * from t where a = ? and b like 'x%'", 'postgresql')
    "select * from t where a = %s and b like 'x%%'"
    >>> standardize_placeholders('select * from t where a = ?', 'sqlite')
    'select * from t where a = ?'
    """
    if dialect != 'postgresql' or not sql:
        return sql

    parts = []
    for token in tokenize_sql(sql):
        if token.type == TokenType.POSITIONAL_PH:
            parts.append('%s')
        elif token.type == TokenType.PERCENT:
            parts.append('%%')
        elif token.type == TokenType.STRING_LITERAL:
            parts.append(token.text.replace('%', '%%'))
        else:
            parts.append(token.text)
    return ''.join(parts)


def adapt_parameter(index: int, value: Any) -> Any:
    """Normalize one positional value by its runtime type.

    Args:
        index: 0-based position of the value
        value: Value to bind

    Returns
        Value in a form every supported driver binds directly

    Raises
        QueryError: If the value cannot be normalized
    """
    try:
        if value is None:
            return None
        if isinstance(value, str):
            return value
        if isinstance(value, (bool, np.bool_)):
            return bool(value)
        if isinstance(value, (int, np.integer)):
            return int(value)
        if isinstance(value, (float, np.floating)):
            return float(value)
        if isinstance(value, decimal.Decimal):
            return value
        if isinstance(value, pd.Timestamp):
            return value.to_pydatetime()
        if isinstance(value, np.datetime64):
            return pd.Timestamp(value).to_pydatetime()
        if isinstance(value, (datetime.datetime, datetime.date, datetime.time)):
            return value
        if isinstance(value, (bytes, bytearray, memoryview)):
            return bytes(value)
        return value
    except (TypeError, ValueError, OverflowError) as exc:
        raise QueryError(f'Unable to bind parameter at position {index + 1}: {value!r}') from exc


def bind_parameters(params: Sequence[Any]) -> tuple[Any, ...]:
    """Normalize positional values for binding.
    """
    return tuple(adapt_parameter(i, value) for i, value in enumerate(params))
