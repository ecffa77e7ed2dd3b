from fastapi import APIRouter, HTTPException, Request, status
from typing import Dict, Any
import logging

logger = logging.getLogger(__name__)

router = APIRouter(tags=["status"])


def _component(request: Request, name: str):
    return getattr(request.app.state, name, None)


@router.get(
    "/health",
    summary="Health check",
    description="Check the Elasticsearch connection and which ingestion paths are running"
)
async def health_check(request: Request) -> Dict[str, Any]:
    """
    Health check endpoint.

    Verifies:
    - Elasticsearch connection is active
    - Syslog listener is accepting connections
    - CloudTrail indexer, archiver and retention sweep status

    Returns:
        Health status information
    """
    backend = _component(request, "backend")
    if backend is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Service is not started"
        )

    es_health = await backend.health_check()

    listener = _component(request, "listener")
    indexer = _component(request, "cloudtrail_indexer")
    archiver = _component(request, "archiver")
    sweep = _component(request, "retention_sweep")

    return {
        "service": request.app.title,
        "status": "healthy" if es_health.get("status") == "connected" else "degraded",
        "elasticsearch": es_health,
        "syslog": {
            "listening": listener is not None and listener.address is not None,
            "active_connections": listener.active_connections if listener else 0
        },
        "cloudtrail": {
            "enabled": indexer is not None,
            **(indexer.stats if indexer else {})
        },
        "archive": {
            "enabled": archiver is not None,
            "pending": archiver.pending if archiver else 0
        },
        "retention": {
            "enabled": sweep is not None,
            "retain_days": sweep.settings.retain_days if sweep else None
        }
    }


@router.get(
    "/classification",
    summary="JSON app classification",
    description="Which syslog apps are currently treated as emitting JSON"
)
async def classification(request: Request) -> Dict[str, Any]:
    cache = _component(request, "classification_cache")
    if cache is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Service is not started"
        )

    apps = cache.snapshot()
    return {
        "total": len(apps),
        "json_apps": sorted(app for app, is_json in apps.items() if is_json),
        "plain_apps": sorted(app for app, is_json in apps.items() if not is_json)
    }
