"""Authentication-related schemas."""
from __future__ import annotations

from pydantic import BaseModel, Field


class LoginRequest(BaseModel):
    email: str = Field(default="", max_length=320)
    password: str = Field(default="", max_length=256)


class DefaultCredentials(BaseModel):
    email: str
    password: str


class AuthStatus(BaseModel):
    show_default_credentials_hint: bool
    default_credentials: DefaultCredentials | None = None


class SessionStatus(BaseModel):
    authenticated: bool
    role: str | None = None
    name: str | None = None
