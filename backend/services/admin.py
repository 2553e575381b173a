"""
Admin Service
Read-only lookups across all users. Runs with the service key, so row level
security does not apply.
"""
import logging
from typing import List, Optional

from config.supabase import SupabaseClient, SupabaseError
from models.pill import AdherenceStats, Pill, PillLog
from models.user import UserResponse
from services.auth import PROFILES_TABLE, user_from_profile
from services.pills import LOGS_TABLE, PILLS_TABLE
from services.timing import compute_adherence_stats

logger = logging.getLogger(__name__)


class AdminService:

    def __init__(self, service_client: SupabaseClient):
        self.client = service_client

    async def search_users_by_email(self, email: str) -> List[UserResponse]:
        email = email.strip().lower()
        logger.info(f"Admin search by email: {email}")
        try:
            rows = await self.client.query(PROFILES_TABLE, "GET", filters={"email": email})
        except SupabaseError as e:
            logger.error(f"Error searching users by email: {e.message}")
            raise
        return [user_from_profile(row) for row in rows]

    async def get_user_by_uid(self, uid: str) -> Optional[UserResponse]:
        logger.info(f"Admin search by UID: {uid}")
        try:
            rows = await self.client.query(PROFILES_TABLE, "GET", filters={"id": uid})
        except SupabaseError as e:
            logger.error(f"Error getting user by UID: {e.message}")
            raise
        return user_from_profile(rows[0]) if rows else None

    async def get_user_pills(self, uid: str) -> List[Pill]:
        rows = await self.client.query(
            PILLS_TABLE, "GET", filters={"user_id": uid}, order=("created_at", "desc")
        )
        return [Pill.from_row(row) for row in rows]

    async def get_user_logs(self, uid: str, limit: Optional[int] = None) -> List[PillLog]:
        rows = await self.client.query(
            LOGS_TABLE, "GET", filters={"user_id": uid}, order=("taken_at", "desc"), limit=limit
        )
        return [PillLog(**row) for row in rows]

    async def get_user_stats(self, uid: str) -> AdherenceStats:
        pills = await self.get_user_pills(uid)
        logs = await self.client.query(LOGS_TABLE, "GET", filters={"user_id": uid})
        return compute_adherence_stats(pills, logs)
