"""
Parameter binding for PostgreSQL statements.

Workflow steps pass parameters as a plain dictionary of dynamically typed
values and reference them in SQL as @name. This module maps each value onto
a closed set of parameter kinds and rewrites the SQL template to psycopg's
named placeholder syntax.
"""

import datetime
import decimal
import re
import uuid
from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, Iterable, List, Mapping, Optional, Tuple

from pgsql_plugin.core.errors import TypeBindingError, ValidationError

PARAMETER_MARKER = "@"

_HEX_UUID = r"[0-9a-fA-F]{8}-[0-9a-fA-F]{4}-[0-9a-fA-F]{4}-[0-9a-fA-F]{4}-[0-9a-fA-F]{12}"
# 8-4-4-4-12, optionally in braces or parentheses, or 32 bare hex digits
UUID_PATTERN = re.compile(rf"{_HEX_UUID}|\{{{_HEX_UUID}\}}|\({_HEX_UUID}\)|[0-9a-fA-F]{{32}}")


class ParameterKind(str, Enum):
    NULL = "null"
    TEXT = "text"
    UUID = "uuid"
    INTEGER = "integer"
    REAL = "real"
    NUMERIC = "numeric"
    BOOLEAN = "boolean"
    TIMESTAMP = "timestamp"


@dataclass(frozen=True)
class BoundParameter:
    name: str
    value: Any
    kind: ParameterKind

    @property
    def key(self) -> str:
        """Placeholder key without the marker, as used in %(key)s."""
        return self.name[len(PARAMETER_MARKER):]


def normalize_parameter_name(name: str) -> str:
    """Return the name with exactly one leading marker: id, @id, @@id -> @id."""
    stripped = str(name).strip().lstrip(PARAMETER_MARKER)
    if not stripped:
        raise ValidationError(f"Invalid parameter name: '{name}'.")
    return PARAMETER_MARKER + stripped


def _try_parse_uuid(value: str) -> Optional[uuid.UUID]:
    text = value.strip()
    if not UUID_PATTERN.fullmatch(text):
        return None
    return uuid.UUID(text.strip("{}()"))


def convert_value(name: str, value: Any) -> Tuple[Any, ParameterKind]:
    """
    Map one dynamically typed value onto a parameter kind.

    Raises:
        TypeBindingError: If the runtime type has no PostgreSQL mapping
    """
    if value is None:
        return None, ParameterKind.NULL
    if isinstance(value, uuid.UUID):
        return value, ParameterKind.UUID
    if isinstance(value, str):
        # UUID-looking strings bind as uuid so they compare against uuid columns
        parsed = _try_parse_uuid(value)
        if parsed is not None:
            return parsed, ParameterKind.UUID
        return value, ParameterKind.TEXT
    if isinstance(value, bool):
        return value, ParameterKind.BOOLEAN
    if isinstance(value, int):
        return value, ParameterKind.INTEGER
    if isinstance(value, float):
        return value, ParameterKind.REAL
    if isinstance(value, decimal.Decimal):
        return value, ParameterKind.NUMERIC
    if isinstance(value, datetime.datetime):
        return value, ParameterKind.TIMESTAMP
    if isinstance(value, datetime.date):
        return datetime.datetime.combine(value, datetime.time.min), ParameterKind.TIMESTAMP
    raise TypeBindingError(
        f"Unsupported parameter type for '{name}': {type(value).__name__}",
        parameter=name,
        value_type=type(value),
    )


def bind_parameters(parameters: Optional[Mapping[str, Any]]) -> List[BoundParameter]:
    """Produce one BoundParameter per entry, in the caller's order."""
    if not parameters:
        return []

    bound = []
    # @ID and @id name the same parameter
    seen = set()
    for raw_name, value in parameters.items():
        name = normalize_parameter_name(raw_name)
        if name.lower() in seen:
            raise ValidationError(f"Parameter '{name}' is supplied more than once.")
        seen.add(name.lower())
        converted, kind = convert_value(name, value)
        bound.append(BoundParameter(name=name, value=converted, kind=kind))
    return bound


def _is_ident_start(char: str) -> bool:
    return char.isalpha() or char == "_"


def _is_ident_char(char: str) -> bool:
    return char.isalnum() or char in "_$"


def _skip_quoted(sql: str, start: int, quote: str, backslash_escapes: bool = False) -> int:
    """Return the index just past the closing quote of a literal opened at start."""
    i = start + 1
    while i < len(sql):
        char = sql[i]
        if backslash_escapes and char == "\\":
            i += 2
            continue
        if char == quote:
            if i + 1 < len(sql) and sql[i + 1] == quote:
                i += 2
                continue
            return i + 1
        i += 1
    return len(sql)


def _dollar_tag(sql: str, start: int) -> Optional[str]:
    j = start + 1
    while j < len(sql) and (sql[j].isalnum() or sql[j] == "_"):
        j += 1
    if j < len(sql) and sql[j] == "$":
        tag = sql[start:j + 1]
        # $1 is a positional parameter, not a dollar quote
        if not tag[1:-1].isdigit():
            return tag
    return None


def render_sql(sql: str, parameters: Iterable[BoundParameter]) -> Tuple[str, Optional[Dict[str, Any]]]:
    """
    Rewrite @name placeholders into psycopg %(name)s placeholders.

    Quoted literals, quoted identifiers, comments and dollar-quoted bodies are
    copied verbatim. Names match case-insensitively. An @name with no
    matching parameter is left alone so PostgreSQL's own @ operators keep
    working. When parameters are present, every literal % is doubled because
    psycopg treats % as a placeholder start.

    Returns:
        Tuple of (sql for cursor.execute, params mapping or None)
    """
    bound = {p.key.lower(): p for p in parameters}
    if not bound:
        return sql, None

    out = []
    i = 0
    length = len(sql)

    def _emit_verbatim(chunk: str) -> None:
        out.append(chunk.replace("%", "%%"))

    while i < length:
        char = sql[i]

        if char == "'":
            escaped = i > 0 and sql[i - 1] in "eE" and (i < 2 or not _is_ident_char(sql[i - 2]))
            end = _skip_quoted(sql, i, "'", backslash_escapes=escaped)
            _emit_verbatim(sql[i:end])
            i = end
        elif char == '"':
            end = _skip_quoted(sql, i, '"')
            _emit_verbatim(sql[i:end])
            i = end
        elif sql.startswith("--", i):
            end = sql.find("\n", i)
            end = length if end == -1 else end + 1
            _emit_verbatim(sql[i:end])
            i = end
        elif sql.startswith("/*", i):
            end = sql.find("*/", i + 2)
            end = length if end == -1 else end + 2
            _emit_verbatim(sql[i:end])
            i = end
        elif char == "$" and (i == 0 or not _is_ident_char(sql[i - 1])) and _dollar_tag(sql, i):
            tag = _dollar_tag(sql, i)
            close = sql.find(tag, i + len(tag))
            end = length if close == -1 else close + len(tag)
            _emit_verbatim(sql[i:end])
            i = end
        elif char == PARAMETER_MARKER and i + 1 < length and _is_ident_start(sql[i + 1]) \
                and (i == 0 or sql[i - 1] != PARAMETER_MARKER):
            j = i + 1
            while j < length and _is_ident_char(sql[j]):
                j += 1
            parameter = bound.get(sql[i + 1:j].lower())
            if parameter is not None:
                out.append(f"%({parameter.key})s")
            else:
                out.append(sql[i:j])
            i = j
        elif char == "%":
            out.append("%%")
            i += 1
        else:
            out.append(char)
            i += 1

    return "".join(out), {p.key: p.value for p in bound.values()}
