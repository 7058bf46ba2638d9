"""
Pydantic schemas for the authentication endpoints.
"""

from datetime import datetime
from typing import Annotated, Literal, Optional, Union

from pydantic import BaseModel, EmailStr, Field, field_validator

from app.schemas.user import AdminOut, UserOut, check_password_strength, check_signup_domain, normalize_email

OTPCode = Annotated[str, Field(min_length=6, max_length=6, pattern=r"^\d{6}$", description="6-digit code")]


class EmailIn(BaseModel):
    email: EmailStr

    @field_validator("email")
    @classmethod
    def lower_email(cls, v: str) -> str:
        return normalize_email(v)


class Login(EmailIn):
    password: str = Field(..., min_length=1)


class AdminOTPRequestIn(Login):
    """Admin credentials; a correct pair triggers the e-mailed second factor"""
    pass


class SignupVerifyIn(EmailIn):
    otp: OTPCode


class AdminOTPVerifyIn(EmailIn):
    otp: OTPCode
    remember: bool = Field(False, description="Trust this device for 30 days")


class ForgotPasswordIn(EmailIn):
    @field_validator("email")
    @classmethod
    def allowed_domain(cls, v: str) -> str:
        return check_signup_domain(v)


class ResetPasswordIn(EmailIn):
    otp: OTPCode
    new_password: str

    @field_validator("new_password")
    @classmethod
    def strong_password(cls, v: str) -> str:
        return check_password_strength(v)


class MessageOut(BaseModel):
    message: str


class OTPSentOut(MessageOut):
    expires_at: datetime
    requires_otp: bool = True
    user_type: Optional[str] = None


class SignupVerifiedOut(MessageOut):
    user: UserOut


class Token(BaseModel):
    access_token: str
    token_type: str = "bearer"
    expires_at: datetime


class LoginOut(Token):
    message: str
    user: Union[AdminOut, UserOut]
    principal_type: Literal["admin", "customer"]


class OTPRequiredOut(MessageOut):
    requires_otp: Literal[True] = True
    user_type: Literal["admin"] = "admin"
    expires_at: datetime
