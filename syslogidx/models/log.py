from pydantic import BaseModel, Field, validator
from typing import Any, Dict, Mapping
from datetime import datetime, timezone
from enum import IntEnum


INDEX_PREFIX = "log-"
INDEX_DATE_FORMAT = "%Y.%m.%d"


class Facility(IntEnum):
    """Syslog facilities (RFC 5424, section 6.2.1)"""
    KERN = 0
    USER = 1
    MAIL = 2
    DAEMON = 3
    AUTH = 4
    SYSLOG = 5
    LPR = 6
    NEWS = 7
    UUCP = 8
    CRON = 9
    AUTHPRIV = 10
    FTP = 11
    NTP = 12
    AUDIT = 13
    ALERT = 14
    CLOCK = 15
    LOCAL0 = 16
    LOCAL1 = 17
    LOCAL2 = 18
    LOCAL3 = 19
    LOCAL4 = 20
    LOCAL5 = 21
    LOCAL6 = 22
    LOCAL7 = 23


class Severity(IntEnum):
    """Syslog severities (RFC 5424, section 6.2.1)"""
    EMERG = 0
    ALERT = 1
    CRIT = 2
    ERR = 3
    WARNING = 4
    NOTICE = 5
    INFO = 6
    DEBUG = 7


def facility_name(value: int) -> str:
    """Short uppercase facility name, or the number itself when unknown."""
    try:
        return Facility(value).name
    except ValueError:
        return str(value)


def severity_name(value: int) -> str:
    """Short uppercase severity name, or the number itself when unknown."""
    try:
        return Severity(value).name
    except ValueError:
        return str(value)


def to_utc(ts: datetime) -> datetime:
    # Naive timestamps are taken to already be UTC
    if ts.tzinfo is None:
        return ts.replace(tzinfo=timezone.utc)
    return ts.astimezone(timezone.utc)


def index_name_for(ts: datetime) -> str:
    """
    Daily index partition for an event.

    Always derived from the event's own time so late deliveries land in the
    partition for the day they happened.
    """
    return INDEX_PREFIX + to_utc(ts).strftime(INDEX_DATE_FORMAT)


def format_timestamp(ts: datetime) -> str:
    """RFC 3339 rendering (second precision, UTC) used for @timestamp."""
    return to_utc(ts).strftime("%Y-%m-%dT%H:%M:%SZ")


class LogEntry(BaseModel):
    """
    One syslog record, built from the field map produced by the parser.
    """

    time: datetime = Field(..., description="Event time, normalized to UTC")
    facility: int = Field(..., ge=0, description="Syslog facility code")
    severity: int = Field(..., ge=0, description="Syslog severity code")
    hostname: str = ""
    app_name: str = ""
    proc_id: str = ""
    msg_id: str = ""
    structured_data: str = ""
    message: str = ""

    @validator("time")
    def normalize_time(cls, v):
        return to_utc(v)

    @property
    def facility_name(self) -> str:
        return facility_name(self.facility)

    @property
    def severity_name(self) -> str:
        return severity_name(self.severity)

    @property
    def index_name(self) -> str:
        return index_name_for(self.time)

    @classmethod
    def from_parts(cls, parts: Mapping[str, Any]) -> "LogEntry":
        """
        Build an entry from parsed syslog fields.

        Raises:
            TypeError: a field is missing or has the wrong type
        """
        try:
            ts = parts["timestamp"]
            facility = parts["facility"]
            severity = parts["severity"]
            strings = {
                key: parts[key]
                for key in ("hostname", "app_name", "proc_id", "msg_id", "structured_data", "message")
            }
        except KeyError as e:
            raise TypeError(f"missing syslog field {e}") from e

        if not isinstance(ts, datetime):
            raise TypeError(f"timestamp must be a datetime, got {type(ts).__name__}")
        for name, value in (("facility", facility), ("severity", severity)):
            if not isinstance(value, int) or isinstance(value, bool):
                raise TypeError(f"{name} must be an int, got {type(value).__name__}")
        for name, value in strings.items():
            if not isinstance(value, str):
                raise TypeError(f"{name} must be a str, got {type(value).__name__}")

        return cls(time=ts, facility=facility, severity=severity, **strings)

    def to_archive_dict(self) -> Dict[str, Any]:
        data = self.model_dump()
        data["time"] = self.time.isoformat()
        return data

    class Config:
        frozen = True


class IndexTarget(BaseModel):
    """Where a document is written: daily index name plus document type."""

    index_name: str
    doc_type: str

    class Config:
        frozen = True
