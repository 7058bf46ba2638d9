"""
Pydantic schemas for customer and admin principals.
"""

import re
from datetime import date, datetime
from typing import Literal, Optional

from pydantic import BaseModel, EmailStr, Field, field_validator

from app.core.config import settings

PASSWORD_SPECIALS = '!@#$%^&*(),.?":{}|<>'
_PASSWORD_RE = re.compile(
    r'^(?=.*[a-z])(?=.*[A-Z])(?=.*\d)(?=.*[' + re.escape(PASSWORD_SPECIALS) + r'])'
    r'[A-Za-z\d' + re.escape(PASSWORD_SPECIALS) + r']+$'
)
_FULL_NAME_RE = re.compile(r"^[a-zA-Z\s]+$")
_USERNAME_RE = re.compile(r"^[a-zA-Z0-9_]+$")

Gender = Literal["Male", "Female", "Prefer not to say"]
EmploymentStatus = Literal["Student", "Employed", "Unemployed", "Prefer not to say"]


def normalize_email(value: str) -> str:
    return value.strip().lower()


def check_signup_domain(email: str) -> str:
    domain = email.rsplit("@", 1)[-1]
    allowed = [d.lower() for d in settings.ALLOWED_SIGNUP_DOMAINS]
    if allowed and domain not in allowed:
        raise ValueError(
            f"Please use an email address ending with {' or '.join('@' + d for d in allowed)}"
        )
    return email


def check_password_strength(password: str) -> str:
    if len(password) < 8:
        raise ValueError("Password must be at least 8 characters long")
    if not _PASSWORD_RE.match(password):
        raise ValueError(
            "Password must contain at least one uppercase letter, one lowercase letter, "
            "one number, and one special character"
        )
    return password


def age_on(birthday: date, today: date) -> int:
    had_birthday = (today.month, today.day) >= (birthday.month, birthday.day)
    return today.year - birthday.year - (0 if had_birthday else 1)


class UserCreate(BaseModel):
    """Customer signup request (staged until the e-mail OTP is verified)"""
    full_name: str = Field(..., min_length=2, max_length=50)
    username: str = Field(..., min_length=3, max_length=20)
    email: EmailStr
    password: str
    birthday: date
    gender: Gender
    employment_status: EmploymentStatus = "Prefer not to say"

    @field_validator("full_name", "username", mode="before")
    @classmethod
    def strip_text(cls, v):
        return v.strip() if isinstance(v, str) else v

    @field_validator("full_name")
    @classmethod
    def validate_full_name(cls, v: str) -> str:
        if not _FULL_NAME_RE.match(v):
            raise ValueError("Full name can only contain letters and spaces")
        return v

    @field_validator("username")
    @classmethod
    def validate_username(cls, v: str) -> str:
        if not _USERNAME_RE.match(v):
            raise ValueError("Username can only contain letters, numbers, and underscores")
        return v

    @field_validator("email")
    @classmethod
    def validate_email(cls, v: str) -> str:
        return check_signup_domain(normalize_email(v))

    @field_validator("password")
    @classmethod
    def validate_password(cls, v: str) -> str:
        return check_password_strength(v)

    @field_validator("birthday")
    @classmethod
    def validate_birthday(cls, v: date) -> date:
        if age_on(v, date.today()) < 1:
            raise ValueError("You must be at least 1 year old to create an account")
        return v


class UserOut(BaseModel):
    """Customer profile output"""
    id: int
    email: str
    username: str
    full_name: str
    role: str
    status: str
    birthday: date
    gender: str
    employment_status: str
    last_login_at: Optional[datetime] = None
    created_at: datetime

    class Config:
        from_attributes = True


class AdminOut(BaseModel):
    """Admin profile output"""
    id: int
    email: str
    full_name: str
    role: str
    status: str
    last_login_at: Optional[datetime] = None
    remembered_until: Optional[datetime] = None
    first_login_completed: bool
    created_at: datetime

    class Config:
        from_attributes = True
