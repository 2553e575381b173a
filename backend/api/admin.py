from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query

from api.dependencies import get_admin_service
from models.pill import AdherenceStats, Pill, PillLog
from models.user import UserResponse
from services.admin import AdminService

router = APIRouter(prefix="/api/admin", tags=["admin"])


async def _existing_user(uid: str, admin_service: AdminService) -> UserResponse:
    user = await admin_service.get_user_by_uid(uid)
    if user is None:
        raise HTTPException(status_code=404, detail=f"User {uid} not found")
    return user


@router.get("/users", response_model=List[UserResponse])
async def search_users(
    email: str = Query(..., min_length=3),
    admin_service: AdminService = Depends(get_admin_service),
):
    return await admin_service.search_users_by_email(email)


@router.get("/users/{uid}", response_model=UserResponse)
async def get_user(uid: str, admin_service: AdminService = Depends(get_admin_service)):
    return await _existing_user(uid, admin_service)


@router.get("/users/{uid}/pills", response_model=List[Pill])
async def user_pills(uid: str, admin_service: AdminService = Depends(get_admin_service)):
    await _existing_user(uid, admin_service)
    return await admin_service.get_user_pills(uid)


@router.get("/users/{uid}/logs", response_model=List[PillLog])
async def user_logs(
    uid: str,
    limit: Optional[int] = Query(None, ge=1),
    admin_service: AdminService = Depends(get_admin_service),
):
    await _existing_user(uid, admin_service)
    return await admin_service.get_user_logs(uid, limit)


@router.get("/users/{uid}/stats", response_model=AdherenceStats)
async def user_stats(uid: str, admin_service: AdminService = Depends(get_admin_service)):
    await _existing_user(uid, admin_service)
    return await admin_service.get_user_stats(uid)
