from .log import (
    Facility,
    Severity,
    LogEntry,
    IndexTarget,
    facility_name,
    severity_name,
    index_name_for,
    format_timestamp,
    INDEX_PREFIX
)
from .cloudtrail import (
    SNSMessage,
    CloudTrailNotification,
    CloudTrailRecord,
    CloudTrailLog
)

__all__ = [
    "Facility",
    "Severity",
    "LogEntry",
    "IndexTarget",
    "facility_name",
    "severity_name",
    "index_name_for",
    "format_timestamp",
    "INDEX_PREFIX",
    "SNSMessage",
    "CloudTrailNotification",
    "CloudTrailRecord",
    "CloudTrailLog"
]
