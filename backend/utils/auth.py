from jose import JWTError, jwt
from datetime import datetime, timedelta, timezone
from typing import Optional, Dict, Any
from fastapi import Depends, HTTPException, status
from fastapi.security import OAuth2PasswordBearer
import logging

from config.settings import get_settings
from utils.errors import AdminRequiredError

logger = logging.getLogger(__name__)

ALGORITHM = "HS256"

oauth2_scheme = OAuth2PasswordBearer(tokenUrl="/api/auth/login")


def is_admin_email(email: Optional[str]) -> bool:
    """Admin is decided by a configured email match, not a stored role"""
    return bool(email) and email.strip().lower() == get_settings().admin_email


# JWT token functions
def create_access_token(data: dict, expires_delta: Optional[timedelta] = None):
    settings = get_settings()
    to_encode = data.copy()
    expire = datetime.now(timezone.utc) + (expires_delta or timedelta(minutes=settings.access_token_expire_minutes))
    to_encode.update({"exp": expire})
    encoded_jwt = jwt.encode(to_encode, settings.secret_key, algorithm=ALGORITHM)
    return encoded_jwt


def create_session_token(user_id: str, email: str, supabase_token: Optional[str] = None) -> str:
    """Token handed to clients; carries the Supabase session so calls run under RLS"""
    return create_access_token(data={"sub": user_id, "email": email, "sb": supabase_token})


def decode_access_token(token: str) -> Optional[Dict[str, Any]]:
    try:
        payload = jwt.decode(token, get_settings().secret_key, algorithms=[ALGORITHM])
    except JWTError as e:
        logger.warning(f"JWT decode error: {e}")
        return None

    if payload.get("sub") is None:
        logger.warning("JWT payload missing 'sub' field")
        return None
    return payload


class CurrentUser:
    """Authenticated caller built from the session token"""

    def __init__(self, user_id: str, email: str, access_token: Optional[str] = None):
        self.id = user_id
        self.email = email
        self.access_token = access_token

    @property
    def is_admin(self) -> bool:
        return is_admin_email(self.email)

    @classmethod
    def from_claims(cls, payload: Dict[str, Any]) -> "CurrentUser":
        return cls(user_id=payload["sub"], email=payload.get("email") or "", access_token=payload.get("sb"))


async def get_current_user_dependency(token: str = Depends(oauth2_scheme)) -> CurrentUser:
    """FastAPI dependency for getting the current user from the bearer token"""
    payload = decode_access_token(token)

    if not payload:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Could not validate credentials",
            headers={"WWW-Authenticate": "Bearer"},
        )

    return CurrentUser.from_claims(payload)


async def require_admin(current_user: CurrentUser = Depends(get_current_user_dependency)) -> CurrentUser:
    if not current_user.is_admin:
        raise AdminRequiredError()
    return current_user
