"""Pydantic schemas for Users."""
from __future__ import annotations
from datetime import datetime
from typing import Optional
from pydantic import BaseModel, Field


class UserCreate(BaseModel):
    username: str = Field(min_length=1, max_length=100)
    display_name: Optional[str] = None
    role: str = "user"


class UserOut(BaseModel):
    id: int
    username: str
    display_name: Optional[str] = None
    role: str
    status: int
    created_at: Optional[datetime] = None

    model_config = {"from_attributes": True}
