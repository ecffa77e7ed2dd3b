from elasticsearch import AsyncElasticsearch
from typing import Optional, Dict, Any, Mapping
import json
import logging
from datetime import datetime

from syslogidx.core.config import Settings
from syslogidx.models.log import format_timestamp

logger = logging.getLogger(__name__)

DOC_TYPE_FIELD = "@type"


class ElasticsearchService:
    """
    Async Elasticsearch client shared by the listener, the CloudTrail indexer
    and the retention sweep.

    Elasticsearch no longer has mapping types, so the document type chosen by
    the caller is stored in the document itself under ``@type``. The client is
    safe for concurrent use; no locking happens here.
    """

    def __init__(self, settings: Settings, client: Optional[AsyncElasticsearch] = None):
        self.settings = settings
        self.client: Optional[AsyncElasticsearch] = client

    async def connect(self) -> None:
        """Create the client and check that the cluster answers."""
        if self.client is None:
            self.client = AsyncElasticsearch(
                [self.settings.elasticsearch_url],
                basic_auth=self.settings.elasticsearch_auth,
                verify_certs=False,
                request_timeout=self.settings.elasticsearch_timeout
            )

        if await self.client.ping():
            logger.info(f"Successfully connected to Elasticsearch at {self.settings.elasticsearch_url}")
        else:
            # Not fatal: indexing calls fail and get logged until it comes back
            logger.warning(f"Elasticsearch at {self.settings.elasticsearch_url} did not answer ping")

    async def disconnect(self) -> None:
        """Close Elasticsearch connection gracefully."""
        if self.client:
            await self.client.close()
            self.client = None
            logger.info("Elasticsearch connection closed")

    def _require_client(self) -> AsyncElasticsearch:
        if self.client is None:
            raise ConnectionError("Elasticsearch client not initialized")
        return self.client

    async def health_check(self) -> Dict[str, Any]:
        """
        Check Elasticsearch health status.

        Returns:
            Dict containing health status information
        """
        try:
            if not self.client:
                return {"status": "disconnected", "error": "Client not initialized"}

            health = await self.client.cluster.health()
            return {
                "status": "connected",
                "cluster_name": health.get("cluster_name"),
                "cluster_status": health.get("status"),
                "number_of_nodes": health.get("number_of_nodes")
            }
        except Exception as e:
            logger.error(f"Health check failed: {e}")
            return {"status": "error", "error": str(e)}

    async def index(
        self,
        index_name: str,
        doc_type: str,
        fields: Mapping[str, Any],
        event_time: datetime,
        doc_id: Optional[str] = None
    ) -> Dict[str, Any]:
        """
        Index a document given as a field map.

        ``@timestamp`` is filled from ``event_time`` when the fields lack it.

        Raises:
            Whatever the Elasticsearch client raises; callers decide what a
            failure means for them.
        """
        client = self._require_client()

        document = dict(fields)
        document.setdefault("@timestamp", format_timestamp(event_time))
        document[DOC_TYPE_FIELD] = doc_type

        response = await client.index(index=index_name, id=doc_id, document=document)
        logger.debug(f"Indexed {doc_type} document into {index_name}")
        return response

    async def index_json(
        self,
        index_name: str,
        doc_type: str,
        raw: bytes,
        event_time: datetime,
        doc_id: Optional[str] = None
    ) -> Dict[str, Any]:
        """
        Index an already serialized JSON object.

        Raises:
            ValueError: ``raw`` is not a JSON object
        """
        document = json.loads(raw)
        if not isinstance(document, dict):
            raise ValueError(f"expected a JSON object, got {type(document).__name__}")
        return await self.index(index_name, doc_type, document, event_time, doc_id=doc_id)

    async def aliases(self) -> Dict[str, Any]:
        """
        List every index with its aliases.

        Returns:
            Mapping of index name to its alias information
        """
        client = self._require_client()
        try:
            response = await client.indices.get_alias(index="*")
        except Exception as e:
            logger.error(f"Error listing index aliases: {e}")
            raise
        return {name: response[name] for name in response}

    async def delete_index(self, name: str) -> None:
        """Delete a single index."""
        client = self._require_client()
        await client.indices.delete(index=name)
        logger.info(f"Deleted index '{name}'")
