"""
codec.py - Conversion of single field values to and from the remote store.

encode() renders a local value as a MySQL literal for the dump script.
decode() turns a raw cell (bridge JSON or local SQLite) back into the
local value for its semantic type. decode() never raises: cells that
cannot be interpreted are returned unchanged.
"""

import json
import logging
import math
from datetime import date, datetime, timezone
from decimal import Decimal
from typing import Any, Final, Mapping

from bridge_sync.catalog import SemanticType, TableDescriptor
from bridge_sync.models import Record, Value

logger = logging.getLogger(__name__)

NULL_LITERAL: Final[str] = "NULL"
REMOTE_DATE_FORMAT: Final[str] = "%Y-%m-%d"
REMOTE_DATETIME_FORMAT: Final[str] = "%Y-%m-%d %H:%M:%S"

_ESCAPES: Final[dict[str, str]] = {
    "\\": "\\\\",
    "'": "\\'",
    "\x00": "\\0",
    "\n": "\\n",
    "\r": "\\r",
    "\x1a": "\\Z",
}

_UNESCAPES: Final[dict[str, str]] = {
    "0": "\x00",
    "n": "\n",
    "r": "\r",
    "Z": "\x1a",
    "t": "\t",
    "b": "\b",
}


def _json_default(value: Any) -> Any:
    if isinstance(value, datetime):
        return value.strftime(REMOTE_DATETIME_FORMAT)
    if isinstance(value, date):
        return value.isoformat()
    if isinstance(value, Decimal):
        return float(value)
    raise TypeError(f"Object of type {type(value).__name__} is not JSON serializable")


def dump_json(value: Any) -> str:
    """Compact JSON text for a structured value."""
    return json.dumps(value, ensure_ascii=False, separators=(",", ":"), default=_json_default)


def quote_text(text: str) -> str:
    """Quote a string as a MySQL literal, escaping MySQL style."""
    return "'" + "".join(_ESCAPES.get(ch, ch) for ch in text) + "'"


def _format_datetime(value: datetime) -> str:
    if value.tzinfo is not None:
        value = value.astimezone(timezone.utc).replace(tzinfo=None)
    return value.strftime(REMOTE_DATETIME_FORMAT)


def encode(value: Value, semantic_type: SemanticType) -> str:
    """
    Render a local value as a remote-safe SQL literal.

    Args:
        value: Local field value
        semantic_type: Semantic type of the column holding the value

    DATETIME columns are naive and second-precision on the remote side:
    microseconds are dropped, aware values are converted to UTC first.

    Returns:
        Literal text, e.g. NULL, 42, 1, '2024-05-01', 'O\\'Brien'
    """
    if value is None:
        return NULL_LITERAL
    if semantic_type is SemanticType.STRUCTURED and not isinstance(value, str):
        return quote_text(dump_json(value))
    # bool first: it is an int subclass
    if isinstance(value, bool):
        return "1" if value else "0"
    if isinstance(value, int):
        return str(value)
    if isinstance(value, float):
        if not math.isfinite(value):
            return NULL_LITERAL
        return repr(value)
    if isinstance(value, Decimal):
        if not value.is_finite():
            return NULL_LITERAL
        return str(value)
    # datetime first: it is a date subclass
    if isinstance(value, datetime):
        return quote_text(_format_datetime(value))
    if isinstance(value, date):
        return quote_text(value.strftime(REMOTE_DATE_FORMAT))
    if isinstance(value, (dict, list, tuple)):
        return quote_text(dump_json(value))
    return quote_text(str(value))


def encode_values(table: TableDescriptor, record: Mapping[str, Any]) -> str:
    """Render one record as a value tuple in catalog column order."""
    values = [encode(record.get(col.name), col.semantic_type) for col in table.columns]
    return "(" + ", ".join(values) + ")"


def _unescape(body: str) -> str:
    out = []
    i = 0
    while i < len(body):
        ch = body[i]
        if ch == "\\" and i + 1 < len(body):
            nxt = body[i + 1]
            out.append(_UNESCAPES.get(nxt, nxt))
            i += 2
        elif ch == "'" and body[i + 1:i + 2] == "'":
            out.append("'")
            i += 2
        else:
            out.append(ch)
            i += 1
    return "".join(out)


def parse_literal(literal: str) -> str | None:
    """
    Read a literal produced by encode() the way the remote store would.

    NULL becomes None, quoted text is unescaped, bare literals are
    returned as their numeric text.
    """
    text = literal.strip()
    if text.upper() == NULL_LITERAL:
        return None
    if len(text) >= 2 and text[0] == "'" and text[-1] == "'":
        return _unescape(text[1:-1])
    return text


def _decode_structured(value: Any) -> Any:
    if not isinstance(value, str):
        return value
    if value and value[0] in "{[":
        try:
            return json.loads(value)
        except ValueError:
            logger.debug("Keeping malformed JSON cell as text: %.40r", value)
    return value


def _decode_integer(value: Any) -> Any:
    if isinstance(value, bool):
        return int(value)
    if isinstance(value, int):
        return value
    if isinstance(value, float) and value.is_integer():
        return int(value)
    if isinstance(value, str):
        try:
            return int(value)
        except ValueError:
            try:
                number = float(value)
            except ValueError:
                return value
            return int(number) if number.is_integer() else number
    return value


def _decode_decimal(value: Any) -> Any:
    if isinstance(value, bool):
        return value
    if isinstance(value, (int, float, Decimal)):
        return float(value)
    if isinstance(value, str):
        try:
            return float(value)
        except ValueError:
            return value
    return value


def _decode_boolean(value: Any) -> Any:
    if isinstance(value, bool):
        return value
    if isinstance(value, (int, float)):
        return bool(value)
    if isinstance(value, str):
        lowered = value.strip().lower()
        if lowered in ("1", "true"):
            return True
        if lowered in ("0", "false", ""):
            return False
    return value


def _decode_date(value: Any) -> Any:
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if isinstance(value, str):
        for candidate in (value, value[:10]):
            try:
                return date.fromisoformat(candidate)
            except ValueError:
                continue
    return value


def _decode_datetime(value: Any) -> Any:
    if isinstance(value, datetime):
        return value
    if isinstance(value, date):
        return datetime(value.year, value.month, value.day)
    if isinstance(value, str):
        text = value.strip()
        if text.endswith("Z"):
            text = text[:-1] + "+00:00"
        try:
            return datetime.fromisoformat(text)
        except ValueError:
            return value
    return value


def _decode_text(value: Any) -> Any:
    if isinstance(value, str):
        return value
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        return str(value)
    return value


_DECODERS: Final = {
    SemanticType.INTEGER: _decode_integer,
    SemanticType.DECIMAL: _decode_decimal,
    SemanticType.TEXT: _decode_text,
    SemanticType.DATE: _decode_date,
    SemanticType.DATETIME: _decode_datetime,
    SemanticType.BOOLEAN: _decode_boolean,
    SemanticType.STRUCTURED: _decode_structured,
}


def decode(remote_value: Any, semantic_type: SemanticType) -> Value:
    """
    Convert a raw cell into the local value for its semantic type.

    Structured cells are parsed as JSON only when they are non-empty
    strings starting with '{' or '['; malformed JSON is kept as text.
    """
    if remote_value is None:
        return None
    return _DECODERS[semantic_type](remote_value)


def decode_row(table: TableDescriptor, row: Mapping[str, Any]) -> Record:
    """Decode every catalog column of a raw row; unknown columns pass through."""
    record: Record = dict(row)
    for col in table.columns:
        if col.name in record:
            record[col.name] = decode(record[col.name], col.semantic_type)
    return record


def to_storage(value: Value, semantic_type: SemanticType) -> Any:
    """Convert a local value into the cell stored in SQLite."""
    if value is None:
        return None
    if semantic_type is SemanticType.STRUCTURED and not isinstance(value, str):
        return dump_json(value)
    if isinstance(value, bool):
        return int(value)
    if isinstance(value, datetime):
        return value.isoformat(sep=" ")
    if isinstance(value, date):
        return value.isoformat()
    if isinstance(value, Decimal):
        return float(value)
    if isinstance(value, (dict, list, tuple)):
        return dump_json(value)
    return value
