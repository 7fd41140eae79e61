import logging

from fastapi import APIRouter, Depends

from lapush.deps import PushState, get_push_state
from lapush.utils import short_token
from .models import PushTokenRequest, ScheduleRequest

logger = logging.getLogger(__name__)

router = APIRouter(tags=["liveactivity"])


@router.post("/request/{device_id}", summary="Zaplanuj aktualizacje live activity dla urządzenia")
async def schedule_request(
    device_id: str,
    req: ScheduleRequest,
    state: PushState = Depends(get_push_state),
):
    """
    Przyjmuje harmonogram i od razu odpowiada 200; wysyłka idzie w tle.
    Nowy harmonogram dla tego samego urządzenia zastępuje poprzedni.
    """
    state.scheduler.start(device_id, req.time_intervals, req.segment_count)
    logger.debug(
        "schedule accepted for %s (%d intervals)", short_token(device_id), len(req.time_intervals)
    )
    return {"ok": True}


@router.post("/pushtoken/{device_id}", summary="Zapisz push token urządzenia")
async def update_push_token(
    device_id: str,
    req: PushTokenRequest,
    state: PushState = Depends(get_push_state),
):
    state.push_tokens.update(device_id, req.push_token)
    return {"ok": True}


@router.post("/cancel/{device_id}", summary="Anuluj harmonogram urządzenia")
async def cancel_request(
    device_id: str,
    state: PushState = Depends(get_push_state),
):
    # brak aktywnego harmonogramu to nie błąd
    if state.cancellations.cancel(device_id):
        logger.info("schedule for %s cancelled on request", short_token(device_id))
    return {"ok": True}
