"""Pydantic schemas for the audit log and field history."""
from datetime import datetime
from typing import Optional, Any
from pydantic import BaseModel


class AuditLogOut(BaseModel):
    id: int
    draft_version_id: Optional[int] = None
    entity_table: Optional[str] = None
    entity_id: Optional[int] = None
    action: str
    actor_id: Optional[int] = None
    actor_name: Optional[str] = None
    detail_json: Optional[dict[str, Any]] = None
    created_at: Optional[datetime] = None

    model_config = {"from_attributes": True}


class FieldHistoryOut(BaseModel):
    id: int
    draft_version_id: int
    entity_table: str
    entity_id: int
    field_name: str
    old_value: Optional[str] = None
    new_value: Optional[str] = None
    submit_id: int
    changed_by: int
    changed_name: Optional[str] = None
    created_at: Optional[datetime] = None

    model_config = {"from_attributes": True}


class Page(BaseModel):
    page: int
    page_size: int
    total: int


class AuditLogPage(Page):
    items: list[AuditLogOut]


class FieldHistoryPage(Page):
    items: list[FieldHistoryOut]
