from __future__ import annotations

from datetime import date
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field


# ---------------------------------------------------------------------------
# Requests
# ---------------------------------------------------------------------------


class RegisterRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    name: str | None = None
    email: str | None = None
    password: str | None = None
    birth_date: date | None = Field(default=None, alias="birthDate")
    terms_accepted: bool | None = Field(default=None, alias="termsAccepted")


class LoginRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    email: str | None = None
    password: str | None = None
    remember_me: bool = Field(default=False, alias="rememberMe")


class ForgotPasswordRequest(BaseModel):
    email: str | None = None


class ResetPasswordRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    token: str | None = None
    email: str | None = None
    new_password: str | None = Field(default=None, alias="newPassword")


# ---------------------------------------------------------------------------
# Responses
# ---------------------------------------------------------------------------


class RegisteredUser(BaseModel):
    id: UUID
    email: str
    name: str


class RegisterResponse(BaseModel):
    message: str
    user: RegisteredUser


class PrincipalRead(BaseModel):
    id: str | None = None
    email: str
    name: str
    kind: str


class LoginResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    message: str
    user: PrincipalRead
    session_token: str = Field(alias="sessionToken")
    remember_me: bool = Field(alias="rememberMe")
    persistent_token_set: bool = Field(alias="persistentTokenSet")


class VerifyTokenResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    message: str
    user: PrincipalRead
    auto_login: bool = Field(default=True, alias="autoLogin")


class MessageResponse(BaseModel):
    message: str


class ForgotPasswordResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    message: str
    dev_info: dict | None = Field(default=None, alias="devInfo")
