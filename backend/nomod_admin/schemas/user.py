"""Pydantic schemas for admin user operations."""
from __future__ import annotations

from datetime import datetime
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field


class AdminUserRead(BaseModel):
    """Public view of an admin user; never carries password material."""

    id: str
    email: str
    name: str
    role: Literal["admin", "editor"]
    is_active: bool
    created_at: datetime
    updated_at: datetime
    last_login_at: datetime | None = None

    model_config = ConfigDict(from_attributes=True)


class AdminUserCreate(BaseModel):
    email: str = Field(..., max_length=320)
    name: str = Field(..., max_length=255)
    password: str = Field(..., max_length=256)
    role: Literal["admin", "editor"] = "editor"


class AdminUserRoleUpdate(BaseModel):
    role: Literal["admin", "editor"]


class AdminUserPasswordUpdate(BaseModel):
    password: str = Field(..., max_length=256)
