# Authentication request/response models

from typing import Optional
from pydantic import BaseModel, Field, field_validator

from utils.validators import normalize_email


def _check_email(value: str) -> str:
    email = normalize_email(value)
    local, _, domain = email.partition("@")
    if not local or "." not in domain:
        raise ValueError("Invalid email address")
    return email


class RegisterRequest(BaseModel):
    """Account registration"""
    email: str = Field(..., max_length=255)
    password: str = Field(..., min_length=8, max_length=128)
    first_name: str = Field(..., min_length=1, max_length=80)
    last_name: str = Field(..., min_length=1, max_length=80)
    phone: Optional[str] = Field(None, max_length=40)

    @field_validator("email")
    @classmethod
    def normalize_email(cls, value: str) -> str:
        return _check_email(value)


class LoginRequest(BaseModel):
    email: str = Field(..., max_length=255)
    password: str = Field(..., min_length=1, max_length=128)

    @field_validator("email")
    @classmethod
    def normalize_email(cls, value: str) -> str:
        return _check_email(value)


class UserInfo(BaseModel):
    user_id: int
    customer_id: Optional[int] = None
    email: str
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    phone: Optional[str] = None
    role: str
    is_admin: bool
    is_credit_account: bool = False


class LoginResponse(BaseModel):
    access_token: str
    token_type: str = "Bearer"
    expires_in: int
    user_info: UserInfo


class TokenData(BaseModel):
    """Claims carried by an access token"""
    user_id: int
    email: str
    is_admin: bool = False
    exp: Optional[int] = None
