"""Signal request API: create a job, poll it, or list the caller's recent jobs."""

from fastapi import APIRouter, Depends, HTTPException

from trade_signals.api.deps import get_owner_id, get_signal_service
from trade_signals.errors import ValidationError
from trade_signals.schemas.signal import SignalCreated, SignalJobRead, SignalRequest, SignalStatus
from trade_signals.services.signal_service import SignalService
from trade_signals.utils.constants import STATUS_NOT_FOUND

router = APIRouter(prefix="/api/signals", tags=["signals"])


@router.post("", response_model=SignalCreated, status_code=201)
async def create_signal(
    data: SignalRequest,
    owner_id: str = Depends(get_owner_id),
    service: SignalService = Depends(get_signal_service),
):
    try:
        job_id = await service.create_signal_request(owner_id, data)
    except ValidationError as e:
        raise HTTPException(status_code=400, detail=str(e))
    return SignalCreated(job_id=job_id)


@router.get("", response_model=list[SignalJobRead])
def list_signals(
    limit: int = 10,
    owner_id: str = Depends(get_owner_id),
    service: SignalService = Depends(get_signal_service),
):
    return service.repository.list_owner_jobs(owner_id, limit=min(max(limit, 1), 100))


@router.get("/{job_id}", response_model=SignalStatus)
async def get_signal(job_id: str, service: SignalService = Depends(get_signal_service)):
    status = await service.get_signal_status(job_id)
    if status.status == STATUS_NOT_FOUND:
        raise HTTPException(status_code=404, detail="Signal not found")
    return status
