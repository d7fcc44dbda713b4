"""Sync worker API routes."""

from typing import Any, Dict, Optional

from fastapi import APIRouter, Query
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field

from shopify_api.api.client import ShopifyAPIClient
from shopify_api.core.errors import ErrorType
from shopify_api.core.logger import setup_logger
from airtable_sync.db.models import InvalidJobTransition
from airtable_sync.integrations.airtable import AirtableClient
from airtable_sync.repositories.base import OrderStore
from airtable_sync.services.job_control import JobNotFound, SyncJobService

logger = setup_logger(__name__)
router = APIRouter()

# Global instances (initialized in app.py on startup)
sync_job_service: Optional[SyncJobService] = None
order_store: Optional[OrderStore] = None
shopify_client: Optional[ShopifyAPIClient] = None
airtable_client: Optional[AirtableClient] = None

NOT_INITIALIZED = {"success": False, "message": "Sync service not initialized"}


def set_sync_job_service(service: Optional[SyncJobService]):
    """Set the global job-control service instance."""
    global sync_job_service
    sync_job_service = service


def set_order_store(store: Optional[OrderStore]):
    """Set the global order store instance."""
    global order_store
    order_store = store


def set_shopify_client(client: Optional[ShopifyAPIClient]):
    """Set the global Shopify client instance."""
    global shopify_client
    shopify_client = client


def set_airtable_client(client: Optional[AirtableClient]):
    """Set the global Airtable client instance."""
    global airtable_client
    airtable_client = client


class TriggerSyncRequest(BaseModel):
    """Body of a manual sync trigger."""

    metadata: Dict[str, Any] = Field(default_factory=dict)


def _not_found(message: str) -> JSONResponse:
    return JSONResponse(status_code=404, content={"success": False, "message": message})


def _bad_request(message: str) -> JSONResponse:
    return JSONResponse(status_code=400, content={"success": False, "message": message})


@router.get("/health")
async def health_check() -> dict:
    """Health check endpoint.

    Returns:
        {
            "status": "healthy|degraded|unhealthy",
            "service": "airtable-sync",
            "storage": "ok|error",
            "scheduler": {...}
        }
    """
    if not sync_job_service or not order_store:
        return {
            "status": "unhealthy",
            "service": "airtable-sync",
            "error": "Sync service not initialized",
        }

    try:
        storage_ok = await order_store.health_check()
    except Exception as e:
        logger.error(f"Health check error: {e}")
        storage_ok = False

    return {
        "status": "healthy" if storage_ok else "degraded",
        "service": "airtable-sync",
        "storage": "ok" if storage_ok else "error",
        "scheduler": sync_job_service.get_status(),
    }


# ----------------------------------------------------------------------
# Scheduler control
# ----------------------------------------------------------------------

@router.post("/api/sync/start")
async def start_scheduler() -> dict:
    if not sync_job_service:
        return NOT_INITIALIZED
    try:
        return await sync_job_service.start_scheduler()
    except Exception as e:
        logger.error(f"Error starting scheduler: {e}", exc_info=True)
        return {"success": False, "message": "Failed to start sync scheduler", "error": str(e)}


@router.post("/api/sync/stop")
async def stop_scheduler() -> dict:
    if not sync_job_service:
        return NOT_INITIALIZED
    try:
        return await sync_job_service.stop_scheduler()
    except Exception as e:
        logger.error(f"Error stopping scheduler: {e}", exc_info=True)
        return {"success": False, "message": "Failed to stop sync scheduler", "error": str(e)}


@router.get("/api/sync/status")
async def get_status() -> dict:
    if not sync_job_service:
        return NOT_INITIALIZED
    return {"success": True, "data": sync_job_service.get_status()}


@router.post("/api/sync/trigger")
async def trigger_sync(payload: Optional[TriggerSyncRequest] = None) -> dict:
    """Run a sync now. Rejected with success=false while another sync runs."""
    if not sync_job_service:
        return NOT_INITIALIZED
    try:
        return await sync_job_service.trigger_sync(payload.metadata if payload else {})
    except Exception as e:
        logger.error(f"Error triggering sync: {e}", exc_info=True)
        return {"success": False, "message": "Failed to trigger manual sync", "error": str(e)}


# ----------------------------------------------------------------------
# Jobs
# ----------------------------------------------------------------------

@router.get("/api/sync/stats")
async def get_stats() -> dict:
    if not sync_job_service:
        return NOT_INITIALIZED
    try:
        return {"success": True, "data": await sync_job_service.get_stats()}
    except Exception as e:
        logger.error(f"Error getting job stats: {e}", exc_info=True)
        return {"success": False, "message": "Failed to get job statistics", "error": str(e)}


@router.get("/api/sync/dashboard")
async def get_dashboard() -> dict:
    if not sync_job_service:
        return NOT_INITIALIZED
    try:
        return {"success": True, "data": await sync_job_service.get_dashboard()}
    except Exception as e:
        logger.error(f"Error getting dashboard: {e}", exc_info=True)
        return {"success": False, "message": "Failed to get dashboard data", "error": str(e)}


@router.get("/api/sync/jobs")
async def get_recent_jobs(limit: int = Query(20, ge=1, le=100)) -> dict:
    if not sync_job_service:
        return NOT_INITIALIZED
    try:
        jobs = await sync_job_service.get_recent_jobs(limit)
        return {"success": True, "data": jobs, "count": len(jobs)}
    except Exception as e:
        logger.error(f"Error getting recent jobs: {e}", exc_info=True)
        return {"success": False, "message": "Failed to get recent jobs", "error": str(e)}


@router.get("/api/sync/jobs/failed")
async def get_failed_jobs() -> dict:
    if not sync_job_service:
        return NOT_INITIALIZED
    try:
        jobs = await sync_job_service.get_failed_jobs()
        return {"success": True, "data": jobs, "count": len(jobs)}
    except Exception as e:
        logger.error(f"Error getting failed jobs: {e}", exc_info=True)
        return {"success": False, "message": "Failed to get failed jobs", "error": str(e)}


@router.get("/api/sync/jobs/running")
async def get_running_jobs() -> dict:
    if not sync_job_service:
        return NOT_INITIALIZED
    try:
        jobs = await sync_job_service.get_running_jobs()
        return {"success": True, "data": jobs, "count": len(jobs)}
    except Exception as e:
        logger.error(f"Error getting running jobs: {e}", exc_info=True)
        return {"success": False, "message": "Failed to get running jobs", "error": str(e)}


@router.get("/api/sync/jobs/{job_id}")
async def get_job(job_id: str):
    if not sync_job_service:
        return NOT_INITIALIZED
    try:
        return {"success": True, "data": await sync_job_service.get_job(job_id)}
    except JobNotFound as e:
        return _not_found(str(e))
    except Exception as e:
        logger.error(f"Error getting job {job_id}: {e}", exc_info=True)
        return {"success": False, "message": "Failed to get job", "error": str(e)}


@router.post("/api/sync/jobs/{job_id}/retry")
async def retry_job(job_id: str):
    if not sync_job_service:
        return NOT_INITIALIZED
    try:
        return await sync_job_service.retry_job(job_id)
    except JobNotFound as e:
        return _not_found(str(e))
    except InvalidJobTransition as e:
        return _bad_request(str(e))
    except Exception as e:
        logger.error(f"Error retrying job {job_id}: {e}", exc_info=True)
        return {"success": False, "message": "Failed to retry job", "error": str(e)}


@router.post("/api/sync/jobs/{job_id}/cancel")
async def cancel_job(job_id: str):
    if not sync_job_service:
        return NOT_INITIALIZED
    try:
        return await sync_job_service.cancel_job(job_id)
    except JobNotFound as e:
        return _not_found(str(e))
    except InvalidJobTransition as e:
        return _bad_request(str(e))
    except Exception as e:
        logger.error(f"Error cancelling job {job_id}: {e}", exc_info=True)
        return {"success": False, "message": "Failed to cancel job", "error": str(e)}


# ----------------------------------------------------------------------
# Administration
# ----------------------------------------------------------------------

@router.get("/api/shopify/orders/{order_id}")
async def get_shopify_order(order_id: str):
    """Look up one order in Shopify (GID or numeric id), with its stored copy."""
    if not shopify_client:
        return NOT_INITIALIZED

    result = await shopify_client.fetch_order_by_id(order_id)
    if not result.success and result.error.type == ErrorType.NOT_FOUND:
        return JSONResponse(status_code=404, content=result.to_dict())

    response = result.to_dict()
    if result.success and order_store:
        stored = await order_store.get_order(result.data["id"])
        response["stored"] = stored.to_dict() if stored else None
    return response


@router.post("/api/airtable/sync")
async def push_to_airtable() -> dict:
    """Re-push stored orders to Airtable without fetching from Shopify."""
    if not sync_job_service:
        return NOT_INITIALIZED
    try:
        return await sync_job_service.push_to_airtable()
    except Exception as e:
        logger.error(f"Error pushing to Airtable: {e}", exc_info=True)
        return {"success": False, "message": "Failed to push orders to Airtable", "error": str(e)}


@router.get("/api/airtable/{table_name}")
async def list_airtable_records(
    table_name: str,
    page_size: int = Query(100, ge=1, le=100),
    offset: Optional[str] = None,
    view: Optional[str] = None,
):
    """One page of records from an Airtable table. Pass ``offset`` to continue."""
    if not airtable_client:
        return NOT_INITIALIZED

    params: Dict[str, Any] = {"pageSize": page_size}
    if offset:
        params["offset"] = offset
    if view:
        params["view"] = view

    result = await airtable_client.list_records(table_name, **params)
    if not result.success and result.error.type == ErrorType.NOT_FOUND:
        return JSONResponse(status_code=404, content=result.to_dict())
    return result.to_dict()
