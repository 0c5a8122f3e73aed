import logging

from fastapi import APIRouter, Depends, Response
from prometheus_client import CONTENT_TYPE_LATEST, generate_latest

from api import state
from api.dependencies import get_store
from storage.base import Store

router = APIRouter()
logger = logging.getLogger(__name__)


@router.get("/health")
async def health_check(store: Store = Depends(get_store)) -> dict:
    """Health check endpoint for container orchestration."""
    health = {"status": "healthy", "store": state.STORE_BACKEND}

    try:
        store_health = await store.health_check()
        health["database"] = store_health
        if store_health.get("status") != "healthy":
            health["status"] = "degraded"
    except Exception as e:
        logger.error(f"Store health check failed: {e}")
        health["status"] = "degraded"
        health["database"] = {"status": "error", "error": str(e)}

    return health


@router.get("/metrics")
async def metrics() -> Response:
    """
    Prometheus scrape endpoint.
    """
    return Response(content=generate_latest(), media_type=CONTENT_TYPE_LATEST)
