"""
FastAPI dependency providers for the Supabase clients, reminder scheduler and services
"""
from typing import Optional

from fastapi import Depends

from config.supabase import SupabaseClient, get_supabase_client, get_supabase_service_client
from services.admin import AdminService
from services.auth import AuthService
from services.notifications import ReminderScheduler, get_reminder_scheduler
from services.pills import PillService
from utils.auth import CurrentUser, get_current_user_dependency, require_admin
from utils.errors import ServiceKeyRequiredError


def get_store() -> SupabaseClient:
    return get_supabase_client()


def get_service_store() -> Optional[SupabaseClient]:
    """Service-role client, or None when no service key is configured"""
    try:
        return get_supabase_service_client()
    except ValueError:
        return None


def get_scheduler() -> ReminderScheduler:
    return get_reminder_scheduler()


def get_auth_service(
    store: SupabaseClient = Depends(get_store),
    service_store: Optional[SupabaseClient] = Depends(get_service_store),
) -> AuthService:
    return AuthService(store, service_store)


def get_pill_service(
    current_user: CurrentUser = Depends(get_current_user_dependency),
    store: SupabaseClient = Depends(get_store),
    scheduler: ReminderScheduler = Depends(get_scheduler),
) -> PillService:
    return PillService(store, current_user, scheduler)


def get_admin_service(
    admin: CurrentUser = Depends(require_admin),
    service_store: Optional[SupabaseClient] = Depends(get_service_store),
) -> AdminService:
    # Other users' rows are hidden by RLS from anything but the service key
    if service_store is None:
        raise ServiceKeyRequiredError()
    return AdminService(service_store)
