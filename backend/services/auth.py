"""
Authentication Service
Sign-up, sign-in and account management on Supabase Auth, with a mirrored
profiles table that the admin search reads from.
"""
import logging
from typing import Optional, Dict, Any

from config.settings import get_settings
from config.supabase import SupabaseClient, SupabaseError
from models.user import UserCreate, UserLogin, UserResponse, ProfileUpdate
from utils.auth import is_admin_email

logger = logging.getLogger(__name__)

PROFILES_TABLE = "profiles"


def full_name(first_name: Optional[str], last_name: Optional[str]) -> str:
    return " ".join(part for part in (first_name, last_name) if part)


def user_from_auth(user: Dict[str, Any]) -> UserResponse:
    """Build the public user view from a Supabase Auth user object"""
    metadata = user.get("user_metadata") or {}
    return UserResponse(
        id=user["id"],
        email=user.get("email") or "",
        first_name=metadata.get("first_name"),
        last_name=metadata.get("last_name"),
        full_name=metadata.get("full_name"),
        is_admin=is_admin_email(user.get("email")),
    )


def user_from_profile(profile: Dict[str, Any]) -> UserResponse:
    return UserResponse(
        id=profile["id"],
        email=profile.get("email") or "",
        first_name=profile.get("first_name"),
        last_name=profile.get("last_name"),
        full_name=profile.get("full_name"),
        is_admin=is_admin_email(profile.get("email")),
    )


class AuthService:
    """Supabase Auth wrapper"""

    def __init__(self, client: SupabaseClient, service_client: Optional[SupabaseClient] = None):
        self.client = client
        # Profiles are written with the service key when we have one (bypasses RLS)
        self.service_client = service_client

    async def sign_up(self, user_data: UserCreate) -> Dict[str, Any]:
        """Create the auth user and its profile row; returns user and session (if any)"""
        logger.info(f"Attempting to sign up user: {user_data.email}")
        try:
            auth_response = await self.client.auth_signup(
                email=user_data.email,
                password=user_data.password,
                user_metadata={
                    "first_name": user_data.first_name,
                    "last_name": user_data.last_name,
                    "full_name": full_name(user_data.first_name, user_data.last_name),
                },
            )
        except SupabaseError as e:
            logger.error(f"Sign up error: {e.message}")
            raise

        # With email confirmation on, the response IS the user object and there is no session
        auth_user = auth_response.get("user") or auth_response
        session = auth_response if auth_response.get("access_token") else None
        if not auth_user.get("id"):
            raise SupabaseError("Failed to create user in Supabase Auth")

        user = user_from_auth(auth_user)
        await self._ensure_profile(user, session.get("access_token") if session else None)

        logger.info(f"Sign up successful: {user.email}")
        return {"user": user, "session": session}

    async def _ensure_profile(self, user: UserResponse, access_token: Optional[str]) -> None:
        client = self.service_client or self.client
        token = None if self.service_client else access_token
        if client is self.client and not token:
            logger.warning(f"No session or service key, profile for {user.email} left to the database trigger")
            return

        try:
            existing = await client.query(PROFILES_TABLE, "GET", filters={"id": user.id}, access_token=token)
            if existing:
                return
            await client.query(
                PROFILES_TABLE,
                "POST",
                data=user.model_dump(exclude={"is_admin"}),
                access_token=token,
            )
            logger.info(f"Profile created for {user.email}")
        except SupabaseError as e:
            # The auth user exists either way; the profile is only a mirror
            logger.warning(f"Profile creation failed for {user.email}: {e.message}")

    async def sign_in(self, credentials: UserLogin) -> Dict[str, Any]:
        logger.info(f"Attempting to sign in user: {credentials.email}")
        try:
            auth_response = await self.client.auth_signin(email=credentials.email, password=credentials.password)
        except SupabaseError as e:
            logger.error(f"Sign in error: {e.message}")
            raise

        user = user_from_auth(auth_response["user"])
        logger.info(f"Sign in successful: {user.email}")
        return {"user": user, "session": auth_response}

    async def sign_out(self, access_token: Optional[str]) -> bool:
        logger.info("Attempting to sign out user")
        if access_token:
            try:
                await self.client.auth_signout(access_token)
            except SupabaseError as e:
                logger.error(f"Sign out error: {e.message}")
                raise
        logger.info("Sign out successful")
        return True

    async def get_current_user(self, access_token: str) -> UserResponse:
        try:
            auth_user = await self.client.auth_get_user(access_token)
        except SupabaseError as e:
            logger.error(f"Get user error: {e.message}")
            raise
        return user_from_auth(auth_user)

    async def reset_password(self, email: str) -> bool:
        logger.info(f"Attempting to reset password for: {email}")
        try:
            await self.client.auth_recover(email, redirect_to=get_settings().password_reset_redirect)
        except SupabaseError as e:
            logger.error(f"Password reset error: {e.message}")
            raise
        logger.info(f"Password reset email sent to: {email}")
        return True

    async def update_password(self, access_token: str, new_password: str) -> bool:
        logger.info("Attempting to update user password")
        try:
            await self.client.auth_update_user(access_token, {"password": new_password})
        except SupabaseError as e:
            logger.error(f"Update password error: {e.message}")
            raise
        logger.info("Password updated successfully")
        return True

    async def update_profile(self, access_token: str, updates: ProfileUpdate) -> UserResponse:
        """Update name fields in the auth metadata and the profile row"""
        changes = updates.changes()
        logger.info(f"Attempting to update user profile: {changes}")

        try:
            current = await self.client.auth_get_user(access_token)
            metadata = {**(current.get("user_metadata") or {}), **changes}
            metadata["full_name"] = full_name(metadata.get("first_name"), metadata.get("last_name"))

            updated = await self.client.auth_update_user(access_token, {"data": metadata})
            user = user_from_auth(updated or {**current, "user_metadata": metadata})

            await self.client.query(
                PROFILES_TABLE,
                "PATCH",
                data={
                    "first_name": user.first_name,
                    "last_name": user.last_name,
                    "full_name": user.full_name,
                },
                filters={"id": user.id},
                access_token=access_token,
            )
        except SupabaseError as e:
            logger.error(f"Update profile error: {e.message}")
            raise

        logger.info("Profile updated successfully")
        return user
