"""
SQL parameter processing.

Named placeholders (``@name``, ``:name``, ``$name``) are located with a
single-pass tokenizer so that text inside string literals, quoted
identifiers and comments is never rewritten, and a placeholder is only
matched by its full name (``@id`` never matches inside ``@ids``).

Main entry point:
- `expand_parameters(sql, params)` - expand collection values and return
  the SQL plus the driver-ready parameter dict
- `split_statements(sql)` - split a script into single statements
"""
import logging
import re
import sqlite3
from dataclasses import dataclass
from enum import Enum, auto
from typing import Any

from sqlite_connector.exceptions import ValidationError
from sqlite_connector.types import Parameters, TypeConverter, is_collection
from sqlite_connector.types import normalize_parameters

logger = logging.getLogger(__name__)

EMPTY_COLLECTION = 'NULL'


class TokenType(Enum):
    """Token types identified during SQL parsing."""
    SQL_TEXT = auto()
    STRING_LITERAL = auto()
    QUOTED_IDENTIFIER = auto()
    COMMENT = auto()
    NAMED_PH = auto()           # @name, :name, $name
    POSITIONAL_PH = auto()      # ? or ?NNN


@dataclass(slots=True)
class Token:
    """Token from SQL parsing."""
    type: TokenType
    text: str
    start: int
    end: int
    prefix: str | None = None
    name: str | None = None


_TOKENIZE = re.compile(r"""
    (?P<string>'(?:[^']|'')*')
    |(?P<quoted>"(?:[^"]|"")*"|`(?:[^`]|``)*`|\[[^\]]*\])
    |(?P<comment>--[^\n]*|/\*.*?\*/)
    |(?P<named>(?P<prefix>[@:$])(?P<pname>[A-Za-z_][A-Za-z0-9_]*))
    |(?P<positional>\?\d*)
""", re.VERBOSE | re.DOTALL)


def tokenize_sql(sql: str) -> list[Token]:
    """Parse SQL into tokens in a single pass.

    Parameters
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
            tokens.append(Token(TokenType.STRING_LITERAL, match.group(0), start, end))
        elif match.group('quoted'):
            tokens.append(Token(TokenType.QUOTED_IDENTIFIER, match.group(0), start, end))
        elif match.group('comment'):
            tokens.append(Token(TokenType.COMMENT, match.group(0), start, end))
        elif match.group('named'):
            tokens.append(Token(TokenType.NAMED_PH, match.group(0), start, end,
                                prefix=match.group('prefix'), name=match.group('pname')))
        else:
            tokens.append(Token(TokenType.POSITIONAL_PH, match.group(0), start, end))

        last_end = end

    if last_end < len(sql):
        tokens.append(Token(TokenType.SQL_TEXT, sql[last_end:], last_end, len(sql)))

    return tokens


def placeholder_names(sql: str) -> list[str]:
    """Return named placeholders in order of appearance, without prefix.

    >>> placeholder_names("SELECT * FROM t WHERE a = @a AND b = ':b' AND c IN (:c)")
    ['a', 'c']
    """
    return [t.name for t in tokenize_sql(sql) if t.type == TokenType.NAMED_PH]


def expansion_names(name: str, count: int) -> list[str]:
    """Names bound for each element of a collection parameter.

    >>> expansion_names('ids', 3)
    ['ids__0', 'ids__1', 'ids__2']
    """
    return [f'{name}__{pos}' for pos in range(count)]


def expand_parameters(sql: str, params: Parameters) -> tuple[str, dict[str, Any]]:
    """Bind a parameter set to SQL, expanding collection-valued parameters.

    Every placeholder whose name equals a collection parameter is replaced
    by a comma-joined list of uniquely suffixed placeholders, one per
    element, keeping the prefix used in the text::

        WHERE id IN (@ids)  ->  WHERE id IN (@ids__0, @ids__1, @ids__2)

    An empty collection is replaced by NULL, so ``IN (NULL)`` matches no
    rows. The same holds for ``NOT IN (NULL)``, which is never true either:
    a ``NOT IN`` filter with an empty collection excludes every row rather
    than none.

    Parameters
        sql: SQL text with named placeholders
        params: Iterable of QueryParameter, mapping of name to value, or None

    Returns
        Tuple of (processed_sql, driver-ready parameter dict)
    """
    params = normalize_parameters(params)
    if not params:
        return sql, {}

    bound: dict[str, Any] = {}
    collections: dict[str, tuple] = {}
    for param in params:
        if is_collection(param.value):
            collections[param.key] = tuple(param.value)
        else:
            bound[param.key] = param.value

    if not collections:
        return sql, TypeConverter.convert_params(bound)

    for name, values in collections.items():
        for key in expansion_names(name, len(values)):
            if key in bound:
                raise ValidationError(f'Parameter {key} collides with expansion of {name}')
            bound[key] = None

    parts = []
    for token in tokenize_sql(sql):
        if token.type != TokenType.NAMED_PH or token.name not in collections:
            parts.append(token.text)
            continue

        values = collections[token.name]
        if not values:
            logger.debug(f'Empty collection for {token.text}, substituting {EMPTY_COLLECTION}')
            parts.append(EMPTY_COLLECTION)
            continue

        names = expansion_names(token.name, len(values))
        parts.append(', '.join(f'{token.prefix}{n}' for n in names))

    for name, values in collections.items():
        bound.update(zip(expansion_names(name, len(values)), values))

    return ''.join(parts), TypeConverter.convert_params(bound)


def split_statements(sql: str) -> list[str]:
    """Split SQL text into single statements.

    Only semicolons in plain SQL text end a statement; those inside string
    literals, quoted identifiers and comments do not. A piece is emitted
    once SQLite reports it complete, so trigger bodies stay whole. Pieces
    holding nothing but whitespace and comments are dropped.

    >>> split_statements("CREATE TABLE a (x); INSERT INTO a VALUES (';');")
    ['CREATE TABLE a (x);', "INSERT INTO a VALUES (';');"]
    """
    statements = []
    current: list[str] = []
    has_content = False

    def emit():
        if has_content:
            statements.append(''.join(current).strip())

    for token in tokenize_sql(sql):
        if token.type != TokenType.SQL_TEXT:
            current.append(token.text)
            has_content = has_content or token.type != TokenType.COMMENT
            continue

        pieces = token.text.split(';')
        for piece in pieces[:-1]:
            current.append(piece + ';')
            has_content = has_content or bool(piece.strip())
            if sqlite3.complete_statement(''.join(current)):
                emit()
                current, has_content = [], False
        current.append(pieces[-1])
        has_content = has_content or bool(pieces[-1].strip())

    emit()
    return statements
