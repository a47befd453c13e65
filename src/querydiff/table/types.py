"""
Scalar column types
===================

Every column of a table declares one of the types below. Values are held in
plain Python objects so that decoded tables from different wire formats can
be compared directly:

    string                 -> str
    long, unsignedLong     -> int
    double                 -> float
    boolean                -> bool
    dateTime:RFC3339[Nano] -> int (nanoseconds since the Unix epoch, UTC)
    duration               -> int (nanoseconds)
    base64Binary           -> bytes

A missing value is ``None`` regardless of the declared type.
"""

from __future__ import annotations

import base64
import binascii
import math
import re
from datetime import datetime, timedelta, timezone

STRING = "string"
LONG = "long"
UNSIGNED_LONG = "unsignedLong"
DOUBLE = "double"
BOOLEAN = "boolean"
TIME = "dateTime:RFC3339"
TIME_NANO = "dateTime:RFC3339Nano"
DURATION = "duration"
BINARY = "base64Binary"

VALID_TYPES = frozenset({STRING, LONG, UNSIGNED_LONG, DOUBLE, BOOLEAN, TIME, TIME_NANO, DURATION, BINARY})
TIME_TYPES = frozenset({TIME, TIME_NANO})

_EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)
_NANOS_PER_SECOND = 1_000_000_000
_MAX_UNSIGNED_LONG = (1 << 64) - 1
_MIN_LONG = -(1 << 63)
_MAX_LONG = (1 << 63) - 1
_INTEGER_RE = re.compile(r"^[+-]?[0-9]+$")
_UNSIGNED_RE = re.compile(r"^[0-9]+$")
_RFC3339_RE = re.compile(
    r"^(\d{4})-(\d{2})-(\d{2})[Tt](\d{2}):(\d{2}):(\d{2})(?:\.(\d{1,9}))?(Z|z|[+-]\d{2}:\d{2})$"
)
_DURATION_PART_RE = re.compile(r"([0-9]+)(ns|us|µs|ms|mo|s|m|h|d|w)")
_DURATION_UNITS = {
    "ns": 1,
    "us": 1_000,
    "µs": 1_000,
    "ms": 1_000_000,
    "s": _NANOS_PER_SECOND,
    "m": 60 * _NANOS_PER_SECOND,
    "h": 3600 * _NANOS_PER_SECOND,
    "d": 86400 * _NANOS_PER_SECOND,
    "w": 7 * 86400 * _NANOS_PER_SECOND,
}
_DURATION_FORMAT_UNITS = (
    ("h", _DURATION_UNITS["h"]),
    ("m", _DURATION_UNITS["m"]),
    ("s", _DURATION_UNITS["s"]),
    ("ms", _DURATION_UNITS["ms"]),
    ("us", _DURATION_UNITS["us"]),
    ("ns", 1),
)
_TRUE_TOKENS = frozenset({"true", "True", "TRUE", "t", "T", "1"})
_FALSE_TOKENS = frozenset({"false", "False", "FALSE", "f", "F", "0"})


def is_valid_type(token: str) -> bool:
    return token in VALID_TYPES


def parse_rfc3339(text: str) -> int:
    match = _RFC3339_RE.match(text)
    if match is None:
        raise ValueError("invalid RFC3339 timestamp %r" % text)
    year, month, day, hour, minute, second = (int(g) for g in match.groups()[:6])
    fraction, offset = match.group(7), match.group(8)
    moment = datetime(year, month, day, hour, minute, second, tzinfo=timezone.utc)
    if offset not in ("Z", "z"):
        sign = -1 if offset[0] == "-" else 1
        moment -= sign * timedelta(hours=int(offset[1:3]), minutes=int(offset[4:6]))
    delta = moment - _EPOCH
    seconds = delta.days * 86400 + delta.seconds
    nanos = int(fraction.ljust(9, "0")) if fraction else 0
    return seconds * _NANOS_PER_SECOND + nanos


def format_rfc3339(nanos: int) -> str:
    seconds, fraction = divmod(int(nanos), _NANOS_PER_SECOND)
    moment = _EPOCH + timedelta(seconds=seconds)
    text = moment.strftime("%Y-%m-%dT%H:%M:%S")
    if fraction:
        text += "." + ("%09d" % fraction).rstrip("0")
    return text + "Z"


def parse_duration(text: str) -> int:
    body = text
    sign = 1
    if body.startswith("-"):
        sign, body = -1, body[1:]
    if not body:
        raise ValueError("invalid duration %r" % text)
    total = 0
    position = 0
    for match in _DURATION_PART_RE.finditer(body):
        if match.start() != position:
            break
        unit = match.group(2)
        if unit == "mo":
            raise ValueError("calendar durations are not supported: %r" % text)
        total += int(match.group(1)) * _DURATION_UNITS[unit]
        position = match.end()
    if position != len(body):
        raise ValueError("invalid duration %r" % text)
    return sign * total


def format_duration(nanos: int) -> str:
    nanos = int(nanos)
    if nanos == 0:
        return "0ns"
    parts = ["-"] if nanos < 0 else []
    remaining = abs(nanos)
    for unit, size in _DURATION_FORMAT_UNITS:
        count, remaining = divmod(remaining, size)
        if count:
            parts.append("%d%s" % (count, unit))
    return "".join(parts)


def _parse_int(text, pattern, low, high, type_name):
    if pattern.match(text) is None:
        raise ValueError("invalid %s %r" % (type_name, text))
    value = int(text)
    if value < low or value > high:
        raise ValueError("%s out of range: %r" % (type_name, text))
    return value


def _parse_double(text: str) -> float:
    lowered = text.lower()
    if lowered in ("inf", "+inf"):
        return math.inf
    if lowered == "-inf":
        return -math.inf
    if lowered == "nan":
        return math.nan
    if "_" in text:
        raise ValueError("invalid double %r" % text)
    return float(text)


def _parse_bool(text: str) -> bool:
    if text in _TRUE_TOKENS:
        return True
    if text in _FALSE_TOKENS:
        return False
    raise ValueError("invalid boolean %r" % text)


def _parse_binary(text: str) -> bytes:
    try:
        return base64.b64decode(text, validate=True)
    except binascii.Error as exc:
        raise ValueError("invalid base64Binary %r" % text) from exc


_PARSERS = {
    STRING: str,
    LONG: lambda text: _parse_int(text, _INTEGER_RE, _MIN_LONG, _MAX_LONG, LONG),
    UNSIGNED_LONG: lambda text: _parse_int(text, _UNSIGNED_RE, 0, _MAX_UNSIGNED_LONG, UNSIGNED_LONG),
    DOUBLE: _parse_double,
    BOOLEAN: _parse_bool,
    TIME: parse_rfc3339,
    TIME_NANO: parse_rfc3339,
    DURATION: parse_duration,
    BINARY: _parse_binary,
}


def parse_value(text: str, column_type: str):
    """Parse the textual form of a cell. Raises ValueError on malformed input."""
    return _PARSERS[column_type](text)


def _format_double(value: float) -> str:
    if math.isnan(value):
        return "NaN"
    if math.isinf(value):
        return "+Inf" if value > 0 else "-Inf"
    if value.is_integer() and abs(value) < 1e21:
        return "%d" % value
    return repr(value)


def format_value(value, column_type: str) -> str:
    if value is None:
        return ""
    if column_type == BOOLEAN:
        return "true" if value else "false"
    if column_type == DOUBLE:
        return _format_double(float(value))
    if column_type in TIME_TYPES:
        return format_rfc3339(value)
    if column_type == DURATION:
        return format_duration(value)
    if column_type == BINARY:
        return base64.b64encode(value).decode("ascii")
    return str(value)


def values_equal(left, right) -> bool:
    """Exact equality, except that NaN equals NaN and bool never equals int."""
    if isinstance(left, float) and isinstance(right, float):
        if math.isnan(left) and math.isnan(right):
            return True
    if isinstance(left, bool) != isinstance(right, bool):
        return False
    return left == right
