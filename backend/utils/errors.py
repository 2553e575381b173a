"""
Error types and user facing messages
"""
import logging
from typing import Optional

from fastapi import FastAPI, Request, status
from fastapi.responses import JSONResponse

from config.supabase import SupabaseError

logger = logging.getLogger(__name__)

GENERIC_MESSAGE = "Something went wrong. Please try again."

# Substring of the upstream error -> message shown to the user (first match wins)
FRIENDLY_MESSAGES = [
    ("Invalid login credentials", "Incorrect email or password."),
    ("Email not confirmed", "Please confirm your email address before signing in."),
    ("Too many requests", "Too many attempts. Please try again later."),
    ("User already registered", "This email address is already registered."),
    ("Password should be at least 6 characters", "Password must be at least 6 characters."),
    ("Invalid email", "Please enter a valid email address."),
    ("Signup is disabled", "Sign up is currently disabled."),
    ("User not authenticated", "Your session has expired. Please sign in again."),
    ("Network", "Please check your internet connection."),
]

# Fallback per endpoint (route name) when no substring matches
DEFAULT_MESSAGES = {
    "signup": "Sign up failed. Please try again.",
    "login": "Sign in failed. Please try again.",
    "logout": "Sign out failed. Please try again.",
    "reset_password": "Could not send the password reset email.",
    "update_password": "Could not update the password.",
    "update_profile": "Could not update the profile.",
    "list_pills": "Could not load pills.",
    "add_pill": "Could not add the pill.",
    "update_pill_status": "Could not update the pill status.",
    "delete_pill": "Could not delete the pill.",
    "reset_pills": "Could not reset pills.",
    "pill_logs": "Could not load the pill history.",
}


class PillTrackerError(Exception):
    """Base class for errors raised by the service layer"""

    status_code = status.HTTP_400_BAD_REQUEST

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class NotAuthenticatedError(PillTrackerError):
    status_code = status.HTTP_401_UNAUTHORIZED

    def __init__(self, message: str = "User not authenticated"):
        super().__init__(message)


class AdminRequiredError(PillTrackerError):
    status_code = status.HTTP_403_FORBIDDEN

    def __init__(self, message: str = "Admin access required"):
        super().__init__(message)


class PillNotFoundError(PillTrackerError):
    status_code = status.HTTP_404_NOT_FOUND

    def __init__(self, pill_id: str):
        super().__init__(f"Pill {pill_id} not found")
        self.pill_id = pill_id


class PillAlreadyTakenError(PillTrackerError):
    status_code = status.HTTP_409_CONFLICT

    def __init__(self, pill_name: str):
        super().__init__(f"{pill_name} is already marked as taken today")


class ServiceKeyRequiredError(PillTrackerError):
    status_code = status.HTTP_503_SERVICE_UNAVAILABLE

    def __init__(self, message: str = "Admin features require SUPABASE_SERVICE_KEY to be configured"):
        super().__init__(message)


def friendly_message(raw: str, default: Optional[str] = None) -> str:
    """Translate an upstream error text into a message fit for the user"""
    for needle, message in FRIENDLY_MESSAGES:
        if needle.lower() in (raw or "").lower():
            return message
    return default or GENERIC_MESSAGE


def _route_name(request: Request) -> Optional[str]:
    route = request.scope.get("route")
    return getattr(route, "name", None)


async def supabase_error_handler(request: Request, exc: SupabaseError) -> JSONResponse:
    logger.error(f"Supabase error on {request.url.path}: {exc.message}")
    status_code = exc.status_code if 400 <= exc.status_code < 600 else status.HTTP_400_BAD_REQUEST
    detail = friendly_message(exc.message, DEFAULT_MESSAGES.get(_route_name(request)))
    return JSONResponse(status_code=status_code, content={"detail": detail})


async def pilltracker_error_handler(request: Request, exc: PillTrackerError) -> JSONResponse:
    logger.warning(f"{type(exc).__name__} on {request.url.path}: {exc.message}")
    headers = {"WWW-Authenticate": "Bearer"} if exc.status_code == status.HTTP_401_UNAUTHORIZED else None
    detail = friendly_message(exc.message, exc.message) if isinstance(exc, NotAuthenticatedError) else exc.message
    return JSONResponse(status_code=exc.status_code, content={"detail": detail}, headers=headers)


def register_exception_handlers(app: FastAPI) -> None:
    app.add_exception_handler(SupabaseError, supabase_error_handler)
    app.add_exception_handler(PillTrackerError, pilltracker_error_handler)
