"""
Syslog normalization: turns parsed syslog records into indexed documents.
"""

from typing import Any, Dict, Mapping, Optional, Tuple
import json
import logging

from syslogidx.models.log import LogEntry, IndexTarget, format_timestamp
from syslogidx.services.classification_cache import ClassificationCache
from syslogidx.services.elasticsearch_service import ElasticsearchService

logger = logging.getLogger(__name__)

EC2_INTERNAL_SUFFIX = ".ec2.internal"
DEFAULT_DOC_TYPE = "syslog"

# Payload keys that steer routing and are never stored
TYPE_KEY = "_type"
RESERVED_KEYS = ("_ts", "_index")


def normalize_host(hostname: str) -> str:
    """Strip the internal EC2 DNS suffix from host names."""
    if hostname.endswith(EC2_INTERNAL_SUFFIX):
        return hostname[:-len(EC2_INTERNAL_SUFFIX)]
    return hostname


def decode_json_object(message: str) -> Optional[Dict[str, Any]]:
    """Decode a message as a JSON object, None if it isn't one."""
    try:
        value = json.loads(message)
    except ValueError:
        return None
    if not isinstance(value, dict):
        return None
    return value


class SyslogHandler:
    """
    Classifies, enriches and indexes syslog records.

    ``handle`` is called concurrently, once per record, by the listener.
    """

    def __init__(
        self,
        backend: ElasticsearchService,
        cache: ClassificationCache,
        app_types: Optional[Mapping[str, str]] = None,
        archiver=None
    ):
        self.backend = backend
        self.cache = cache
        self.app_types: Dict[str, str] = dict(app_types or {})
        self.archiver = archiver

    def classify(self, entry: LogEntry) -> Tuple[bool, Optional[Dict[str, Any]]]:
        """
        Decide whether the entry's message is JSON.

        Returns:
            (is_json, decoded payload or None)
        """
        known = self.cache.lookup(entry.app_name)

        if known is None:
            payload = decode_json_object(entry.message)
            is_json = self.cache.learn(entry.app_name, payload is not None)
            if not is_json:
                payload = None
            return is_json, payload

        if not known:
            return False, None

        payload = decode_json_object(entry.message)
        if payload is None:
            self.cache.demote(entry.app_name)
            return False, None
        return True, payload

    def normalize(self, entry: LogEntry) -> Tuple[IndexTarget, Dict[str, Any]]:
        """Build the index target and the document fields for an entry."""
        is_json, payload = self.classify(entry)

        if is_json and payload is not None:
            fields = payload
        else:
            fields = {"@message": entry.message.strip()}

        # Used by Kibana
        fields["@timestamp"] = format_timestamp(entry.time)
        fields["@version"] = "1"

        fields["@host"] = normalize_host(entry.hostname)
        fields["@app"] = entry.app_name
        fields["@proc"] = entry.proc_id
        fields["@severity"] = entry.severity_name
        fields["@facility"] = entry.facility_name

        for key in RESERVED_KEYS:
            fields.pop(key, None)

        doc_type = fields.pop(TYPE_KEY, None)
        if not isinstance(doc_type, str) or not doc_type:
            doc_type = self.app_types.get(entry.app_name)
        if not doc_type:
            doc_type = entry.app_name if is_json else DEFAULT_DOC_TYPE

        return IndexTarget(index_name=entry.index_name, doc_type=doc_type), fields

    async def handle(self, parts: Mapping[str, Any]) -> None:
        """
        Index one parsed syslog record.

        Never raises: a bad record or a failed write is logged and dropped so
        the connection it came from keeps being served.
        """
        try:
            entry = LogEntry.from_parts(parts)
        except (TypeError, ValueError) as e:
            logger.error(f"Dropping malformed syslog record: {e}")
            return

        try:
            if self.archiver is not None:
                self.archiver.add(entry)

            target, fields = self.normalize(entry)
            await self.backend.index(target.index_name, target.doc_type, fields, entry.time)
        except Exception as e:
            logger.error(f"Failed to index {entry.app_name}: {e!r}")
