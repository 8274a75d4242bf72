"""Parse rules for inferred column types.

Each parser returns a ParseResult instead of raising, so type probing is a
plain chain of checks in precedence order.
"""

import calendar
import math
import re
from dataclasses import dataclass
from datetime import date
from typing import Any, Callable, Dict

from common.constants import INTEGER_MAX, INTEGER_MIN
from common.types import ColumnType

_INTEGER_RE = re.compile(r'^[+-]?[0-9]+$')
_FLOAT_RE = re.compile(r'^[+-]?(?:[0-9]+(?:\.[0-9]*)?|\.[0-9]+)(?:[eE][+-]?[0-9]+)?$')
_DATE_RE = re.compile(r'^([0-9]{4})-([0-9]{2})-([0-9]{2})$')


@dataclass(frozen=True)
class ParseResult:
    ok: bool
    value: Any = None


FAILED = ParseResult(ok=False)


def parse_integer(text: str) -> ParseResult:
    """Base-10 signed integer that fits in 64 bits."""
    text = text.strip()
    if not _INTEGER_RE.match(text):
        return FAILED
    value = int(text)
    if value < INTEGER_MIN or value > INTEGER_MAX:
        return FAILED
    return ParseResult(ok=True, value=value)


def parse_float(text: str) -> ParseResult:
    """Finite decimal number, optionally with an exponent."""
    text = text.strip()
    if not _FLOAT_RE.match(text):
        return FAILED
    value = float(text)
    if not math.isfinite(value):
        return FAILED
    return ParseResult(ok=True, value=value)


def parse_date(text: str) -> ParseResult:
    """Calendar date in exactly YYYY-MM-DD form."""
    match = _DATE_RE.match(text.strip())
    if not match:
        return FAILED
    year, month, day = (int(part) for part in match.groups())
    if year < 1 or not 1 <= month <= 12:
        return FAILED
    if not 1 <= day <= calendar.monthrange(year, month)[1]:
        return FAILED
    return ParseResult(ok=True, value=date(year, month, day))


def parse_text(text: str) -> ParseResult:
    return ParseResult(ok=True, value=text)


PARSERS: Dict[ColumnType, Callable[[str], ParseResult]] = {
    ColumnType.INTEGER: parse_integer,
    ColumnType.FLOAT: parse_float,
    ColumnType.DATE: parse_date,
    ColumnType.TEXT: parse_text,
}

# Types a column can be narrowed to, most specific first. TEXT is the fallback.
TYPE_PRECEDENCE = (ColumnType.INTEGER, ColumnType.FLOAT, ColumnType.DATE)
