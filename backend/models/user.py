# Users live in Supabase Auth; profile fields are mirrored in the profiles table

from pydantic import BaseModel, EmailStr, field_validator, model_validator
from typing import Optional, Dict, Any

MIN_PASSWORD_LENGTH = 6


def _required(value: str) -> str:
    value = value.strip()
    if not value:
        raise ValueError("must not be empty")
    return value


# Pydantic models for request validation
class UserCreate(BaseModel):
    first_name: str
    last_name: str
    email: EmailStr
    password: str
    confirm_password: str

    @field_validator("first_name", "last_name")
    @classmethod
    def names_required(cls, value: str) -> str:
        return _required(value)

    @field_validator("password")
    @classmethod
    def password_length(cls, value: str) -> str:
        if len(value) < MIN_PASSWORD_LENGTH:
            raise ValueError(f"Password should be at least {MIN_PASSWORD_LENGTH} characters")
        return value

    @model_validator(mode="after")
    def passwords_match(self) -> "UserCreate":
        if self.password != self.confirm_password:
            raise ValueError("Passwords do not match")
        return self


class UserLogin(BaseModel):
    email: EmailStr
    password: str

    @field_validator("password")
    @classmethod
    def password_present(cls, value: str) -> str:
        if not value:
            raise ValueError("Password is required")
        return value


class PasswordReset(BaseModel):
    email: EmailStr


class PasswordUpdate(BaseModel):
    new_password: str

    @field_validator("new_password")
    @classmethod
    def password_length(cls, value: str) -> str:
        if len(value) < MIN_PASSWORD_LENGTH:
            raise ValueError(f"Password should be at least {MIN_PASSWORD_LENGTH} characters")
        return value


class ProfileUpdate(BaseModel):
    first_name: Optional[str] = None
    last_name: Optional[str] = None

    def changes(self) -> Dict[str, Any]:
        """Fields that were given with a non-blank value"""
        return {k: v.strip() for k, v in self.model_dump(exclude_none=True).items() if v.strip()}


class UserResponse(BaseModel):
    id: str
    email: str
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    full_name: Optional[str] = None
    is_admin: bool = False

    class Config:
        from_attributes = True
