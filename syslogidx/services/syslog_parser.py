"""Parses RFC 5424 syslog lines into the field map the handler consumes."""

import re
from datetime import datetime, timezone
from typing import Any, Dict, Optional

NIL = "-"
BOM = "\ufeff"

_HEADER_RE = re.compile(
    r'^<(?P<priority>\d{1,3})>'
    r'(?P<version>\d{1,2}) '
    r'(?P<timestamp>\S+) '
    r'(?P<hostname>\S+) '
    r'(?P<app_name>\S+) '
    r'(?P<proc_id>\S+) '
    r'(?P<msg_id>\S+) '
    r'(?P<rest>.*)$',
    re.DOTALL,
)


_FRACTION_RE = re.compile(r'\.(\d{1,6})(?=[+-])')


class SyslogParseError(ValueError):
    """A line is not a valid RFC 5424 record."""


def _nil(value: str) -> str:
    return "" if value == NIL else value


def parse_timestamp(value: str, now: Optional[datetime] = None) -> datetime:
    if value == NIL:
        return now or datetime.now(timezone.utc)
    # fromisoformat only learned the Z suffix in 3.11
    if value.endswith("Z"):
        value = value[:-1] + "+00:00"
    # and fractions other than 3 or 6 digits in 3.11
    value = _FRACTION_RE.sub(lambda m: "." + m.group(1).ljust(6, "0"), value, count=1)
    try:
        ts = datetime.fromisoformat(value)
    except ValueError as e:
        raise SyslogParseError(f"invalid timestamp {value!r}") from e
    if ts.tzinfo is None:
        raise SyslogParseError(f"timestamp {value!r} has no UTC offset")
    return ts


def split_structured_data(rest: str) -> tuple:
    """
    Split the STRUCTURED-DATA part off the front of ``rest``.

    Returns (structured_data, message). Brackets and quotes inside quoted
    PARAM-VALUEs may be escaped with a backslash.
    """
    if rest.startswith(NIL):
        return "", rest[1:]
    if not rest.startswith("["):
        raise SyslogParseError("missing structured data")

    pos = 0
    while pos < len(rest) and rest[pos] == "[":
        in_quotes = False
        pos += 1
        while True:
            if pos >= len(rest):
                raise SyslogParseError("unterminated structured data element")
            ch = rest[pos]
            if ch == "\\" and in_quotes:
                pos += 2
                continue
            if ch == '"':
                in_quotes = not in_quotes
            elif ch == "]" and not in_quotes:
                pos += 1
                break
            pos += 1
    return rest[:pos], rest[pos:]


def parse_syslog_line(line: str, now: Optional[datetime] = None) -> Dict[str, Any]:
    """
    Parse one RFC 5424 record.

    Nil header values come back as empty strings and the structured data is
    kept verbatim. The message keeps any leading whitespace.

    Raises:
        SyslogParseError: the line is not RFC 5424
    """
    m = _HEADER_RE.match(line)
    if not m:
        raise SyslogParseError(f"not an RFC 5424 record: {line[:80]!r}")

    priority = int(m.group("priority"))
    if priority > 191:
        raise SyslogParseError(f"priority {priority} out of range")

    structured_data, message = split_structured_data(m.group("rest"))
    if message.startswith(" " + BOM):
        message = " " + message[2:]

    return {
        "priority": priority,
        "facility": priority // 8,
        "severity": priority % 8,
        "version": int(m.group("version")),
        "timestamp": parse_timestamp(m.group("timestamp"), now),
        "hostname": _nil(m.group("hostname")),
        "app_name": _nil(m.group("app_name")),
        "proc_id": _nil(m.group("proc_id")),
        "msg_id": _nil(m.group("msg_id")),
        "structured_data": structured_data,
        "message": message,
    }
