from fastapi import APIRouter, Depends

from api.dependencies import get_auth_service
from models.user import UserCreate, UserLogin, UserResponse, PasswordReset, PasswordUpdate, ProfileUpdate
from services.auth import AuthService
from utils.auth import CurrentUser, create_session_token, get_current_user_dependency
from utils.errors import NotAuthenticatedError

router = APIRouter(prefix="/api/auth", tags=["auth"])


def _require_session(current_user: CurrentUser) -> str:
    if not current_user.access_token:
        raise NotAuthenticatedError()
    return current_user.access_token


@router.post("/signup", response_model=dict)
async def signup(user_data: UserCreate, auth_service: AuthService = Depends(get_auth_service)):
    result = await auth_service.sign_up(user_data)
    user = result["user"]
    session = result["session"]

    if not session:
        # Email confirmation pending: no token until the user signs in
        return {"token": None, "token_type": "bearer", "user": user.model_dump(), "confirmation_required": True}

    return {
        "token": create_session_token(user.id, user.email, session.get("access_token")),
        "token_type": "bearer",
        "user": user.model_dump(),
        "confirmation_required": False,
    }


@router.post("/login", response_model=dict)
async def login(credentials: UserLogin, auth_service: AuthService = Depends(get_auth_service)):
    result = await auth_service.sign_in(credentials)
    user = result["user"]

    return {
        "token": create_session_token(user.id, user.email, result["session"].get("access_token")),
        "token_type": "bearer",
        "user": user.model_dump(),
        "is_admin": user.is_admin,
    }


@router.post("/logout")
async def logout(
    current_user: CurrentUser = Depends(get_current_user_dependency),
    auth_service: AuthService = Depends(get_auth_service),
):
    await auth_service.sign_out(current_user.access_token)
    return {"success": True}


@router.get("/user", response_model=UserResponse)
async def get_user(
    current_user: CurrentUser = Depends(get_current_user_dependency),
    auth_service: AuthService = Depends(get_auth_service),
):
    return await auth_service.get_current_user(_require_session(current_user))


@router.post("/reset-password")
async def reset_password(request: PasswordReset, auth_service: AuthService = Depends(get_auth_service)):
    await auth_service.reset_password(request.email)
    return {"success": True, "message": f"Password reset link sent to {request.email}"}


@router.post("/password")
async def update_password(
    request: PasswordUpdate,
    current_user: CurrentUser = Depends(get_current_user_dependency),
    auth_service: AuthService = Depends(get_auth_service),
):
    await auth_service.update_password(_require_session(current_user), request.new_password)
    return {"success": True}


@router.patch("/profile", response_model=UserResponse)
async def update_profile(
    updates: ProfileUpdate,
    current_user: CurrentUser = Depends(get_current_user_dependency),
    auth_service: AuthService = Depends(get_auth_service),
):
    return await auth_service.update_profile(_require_session(current_user), updates)
