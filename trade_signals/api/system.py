"""System API: health check and queue depth."""

from fastapi import APIRouter, Depends

from trade_signals.api.deps import get_signal_service
from trade_signals.services.signal_service import SignalService

router = APIRouter(prefix="/api/system", tags=["system"])


@router.get("/health")
def health_check():
    return {"status": "ok"}


@router.get("/queue")
async def queue_status(service: SignalService = Depends(get_signal_service)):
    queue = service.queue
    return {"queue": queue.queue_name, "length": await queue.queue_length()}
