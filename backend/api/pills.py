from typing import List, Optional

from fastapi import APIRouter, Depends, Query, Response, status

from api.dependencies import get_pill_service
from models.pill import AdherenceStats, Pill, PillCreate, PillLog, PillStatusResult, PillStatusUpdate, ScheduleEntry
from services.pills import PillService

router = APIRouter(prefix="/api/pills", tags=["pills"])


@router.get("", response_model=List[Pill])
async def list_pills(pill_service: PillService = Depends(get_pill_service)):
    return await pill_service.get_user_pills()


@router.post("", response_model=Pill, status_code=status.HTTP_201_CREATED)
async def add_pill(pill_data: PillCreate, pill_service: PillService = Depends(get_pill_service)):
    return await pill_service.add_pill(pill_data)


@router.get("/schedule", response_model=List[ScheduleEntry])
async def today_schedule(pill_service: PillService = Depends(get_pill_service)):
    return await pill_service.get_today_schedule()


@router.get("/stats", response_model=AdherenceStats)
async def adherence_stats(pill_service: PillService = Depends(get_pill_service)):
    return await pill_service.get_adherence_stats()


@router.post("/reset", response_model=List[Pill])
async def reset_pills(pill_service: PillService = Depends(get_pill_service)):
    return await pill_service.reset_daily_pills()


@router.patch("/{pill_id}/status", response_model=PillStatusResult)
async def update_pill_status(
    pill_id: str,
    update: PillStatusUpdate,
    pill_service: PillService = Depends(get_pill_service),
):
    return await pill_service.update_pill_status(pill_id, update.taken, update.scheduled_time)


@router.delete("/{pill_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_pill(pill_id: str, pill_service: PillService = Depends(get_pill_service)):
    await pill_service.delete_pill(pill_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.get("/{pill_id}/logs", response_model=List[PillLog])
async def pill_logs(
    pill_id: str,
    limit: Optional[int] = Query(None, ge=1),
    pill_service: PillService = Depends(get_pill_service),
):
    return await pill_service.get_pill_logs(pill_id, limit)
