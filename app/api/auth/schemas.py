import re
from typing import Annotated, Optional

from pydantic import AfterValidator, BaseModel, Field, field_validator

from app.api.users.schemas import AccountInfo
from app.core.schemas import CamelModel

EMAIL_RE = re.compile(r'^[^@\s]+@[^@\s]+\.[^@\s]+$')
PHONE_RE = re.compile(r'^\+?[\d\s\-\(\)]+$')


def normalize_email(v: str) -> str:
    v = v.strip().lower()
    if not EMAIL_RE.match(v):
        raise ValueError('email must be a valid email')
    return v


def check_phone(v: Optional[str]) -> Optional[str]:
    if v is not None and not PHONE_RE.match(v):
        raise ValueError('phoneNumber may contain digits, spaces, +, -, ( and )')
    return v


Email = Annotated[str, AfterValidator(normalize_email)]
Phone = Annotated[Optional[str], AfterValidator(check_phone)]


class UserRegister(CamelModel):
    username: str = Field(..., min_length=3, max_length=30, description="Login")
    email: Email = Field(..., max_length=255)
    password: str = Field(..., min_length=6, description="Password")
    full_name: str = Field(..., min_length=2, max_length=100, description="Display name")
    phone_number: Phone = Field(None, max_length=30)

    @field_validator('username')
    @classmethod
    def validate_username(cls, v: str) -> str:
        if not v.isalnum() or not v.isascii():
            raise ValueError('username may only contain letters and digits')
        return v


class UserLogin(CamelModel):
    email: Email
    password: str = Field(..., min_length=1)


class ChangePassword(CamelModel):
    current_password: str = Field(..., min_length=1)
    new_password: str = Field(..., min_length=6, max_length=128)


class AuthProfileUpdate(CamelModel):
    full_name: Optional[str] = Field(None, min_length=2, max_length=100)
    status_message: Optional[str] = Field(None, max_length=500)
    phone_number: Phone = Field(None, max_length=30)


class AuthPayload(BaseModel):
    user: AccountInfo
    token: str


class TokenPayload(BaseModel):
    token: str
