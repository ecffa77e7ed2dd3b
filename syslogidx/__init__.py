"""
Syslog Indexer

Ingests RFC 5424 syslog and CloudTrail audit logs into daily Elasticsearch
indices and enforces index retention.
"""

__version__ = "1.0.0"
