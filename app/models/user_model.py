from pydantic import BaseModel, ConfigDict, Field, EmailStr, field_validator
from typing import Optional
from datetime import datetime
from enum import Enum

from app.utils.helpers import generate_id, utcnow


class UserRole(str, Enum):
    ADMIN = "admin"
    USER = "user"
    TRADER = "trader"


def _check_password(v: str) -> str:
    if not any(char.isdigit() for char in v):
        raise ValueError("Password must contain at least one digit")
    if not any(char.isupper() for char in v):
        raise ValueError("Password must contain at least one uppercase letter")
    return v


class UserInDB(BaseModel):
    """User model for MongoDB"""

    model_config = ConfigDict(use_enum_values=True)

    id: str = Field(default_factory=lambda: generate_id("USR"))
    email: EmailStr
    username: str
    full_name: Optional[str] = None
    hashed_password: str
    is_active: bool = True
    role: UserRole = UserRole.USER
    phone_number: Optional[str] = None
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: Optional[datetime] = None
    last_login: Optional[datetime] = None


class UserBase(BaseModel):
    email: EmailStr
    username: str = Field(..., min_length=3, max_length=50)
    full_name: Optional[str] = None
    phone_number: Optional[str] = None


class UserCreate(UserBase):
    password: str = Field(..., min_length=8, max_length=72)

    @field_validator("password")
    @classmethod
    def validate_password(cls, v):
        return _check_password(v)


class UserLogin(BaseModel):
    email: EmailStr
    password: str


class UserUpdate(BaseModel):
    full_name: Optional[str] = None
    phone_number: Optional[str] = None


class UserResponse(BaseModel):
    model_config = ConfigDict(use_enum_values=True)

    id: str
    email: EmailStr
    username: str
    full_name: Optional[str] = None
    is_active: bool
    role: UserRole
    phone_number: Optional[str] = None
    created_at: datetime
    last_login: Optional[datetime] = None


class Token(BaseModel):
    access_token: str
    token_type: str = "bearer"


class TokenData(BaseModel):
    user_id: Optional[str] = None


class PasswordChange(BaseModel):
    old_password: str
    new_password: str = Field(..., min_length=8, max_length=72)

    @field_validator("new_password")
    @classmethod
    def validate_password(cls, v):
        return _check_password(v)
