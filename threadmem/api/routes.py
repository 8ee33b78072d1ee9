import asyncio
from fastapi import APIRouter, HTTPException, Request
from pydantic import BaseModel, Field
from typing import Optional

from threadmem.core.database import db
from threadmem.core.logger import Logger
from threadmem.services.summary_memory import get_summary_memory_service
from threadmem.services.summary_memory.errors import StorageError

router = APIRouter(prefix="/api", tags=["API"])
logger = Logger("SummaryAPI")


# Request/Response Models
class ProcessTurnRequest(BaseModel):
    thread_id: str = Field(..., min_length=1)
    user_message_id: str = Field(..., min_length=1)
    assistant_message_id: str = Field(..., min_length=1)


class DigestResponse(BaseModel):
    thread_id: str
    digest: Optional[str] = None


# Health
@router.get("/health")
async def api_health(request: Request):
    worker = getattr(request.app.state, "summary_worker", None)
    return {
        "status": "ok",
        "database": db.pool is not None,
        "redis": db.redis is not None,
        "worker_running": bool(worker and worker.is_running),
    }


# Summary Endpoints
@router.post("/summaries/process")
async def process_turn(req: ProcessTurnRequest):
    """Process one exchange synchronously; failures come back in the body."""
    service = get_summary_memory_service()
    result = await service.process_turn(req.thread_id, req.user_message_id, req.assistant_message_id)
    return result.to_dict()


@router.post("/summaries/enqueue", status_code=202)
async def enqueue_turn(req: ProcessTurnRequest, request: Request):
    worker = getattr(request.app.state, "summary_worker", None)
    if not worker or not worker.is_running:
        raise HTTPException(status_code=503, detail="Summary worker is not running")
    try:
        worker.submit(req.thread_id, req.user_message_id, req.assistant_message_id)
    except asyncio.QueueFull:
        raise HTTPException(status_code=503, detail="Summary queue is full")
    return {"status": "queued", "thread_id": req.thread_id, "pending": worker.pending}


@router.get("/summaries/{thread_id}")
async def get_summary(thread_id: str):
    service = get_summary_memory_service()
    try:
        summary = await service.get_summary(thread_id)
    except StorageError as e:
        logger.error(f"Summary lookup failed for {thread_id}: {e}")
        raise HTTPException(status_code=503, detail=str(e))
    if summary is None:
        raise HTTPException(status_code=404, detail="Summary not found")
    return summary.to_dict()


@router.get("/summaries/{thread_id}/digest", response_model=DigestResponse)
async def get_digest(thread_id: str):
    service = get_summary_memory_service()
    try:
        digest = await service.get_digest(thread_id)
    except StorageError as e:
        logger.error(f"Digest lookup failed for {thread_id}: {e}")
        raise HTTPException(status_code=503, detail=str(e))
    return DigestResponse(thread_id=thread_id, digest=digest)


@router.get("/summaries/{thread_id}/events")
async def list_events(thread_id: str, limit: int = 50):
    limit = max(1, min(limit, 500))
    service = get_summary_memory_service()
    try:
        events = await service.list_events(thread_id, limit)
    except StorageError as e:
        logger.error(f"Event lookup failed for {thread_id}: {e}")
        raise HTTPException(status_code=503, detail=str(e))
    return {"thread_id": thread_id, "events": [e.to_dict() for e in events]}


@router.post("/summaries/{thread_id}/reconcile")
async def reconcile(thread_id: str):
    service = get_summary_memory_service()
    try:
        result = await service.reconcile(thread_id)
    except StorageError as e:
        logger.error(f"Reconcile failed for {thread_id}: {e}")
        raise HTTPException(status_code=503, detail=str(e))
    if not result.success and result.summary is None:
        raise HTTPException(status_code=404, detail=result.error)
    return result.to_dict()
