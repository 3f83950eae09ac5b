"""Pydantic schemas for Submissions and confirmation."""
from datetime import datetime
from typing import Optional, Any
from pydantic import BaseModel


class DiffItem(BaseModel):
    field: str
    old: Any = None
    new: Any = None


class SubmitRequest(BaseModel):
    # Presence is checked by the service so every missing field is reported at once.
    draft_version_id: Optional[int] = None
    module_key: Optional[str] = None
    entity_table: Optional[str] = None
    entity_id: Optional[int] = None
    submit_by: Optional[int] = None
    payload: Any = None
    need_confirm: Optional[bool] = None


class SubmitResponse(BaseModel):
    submission_id: int
    submit_version: int
    status: str
    need_confirm: bool
    diff: list[DiffItem]


class ConfirmRequest(BaseModel):
    submission_id: Optional[int] = None
    confirmed_by: Optional[int] = None


class ConfirmResponse(BaseModel):
    ok: bool = True
    submission_id: int
    status: str


class SubmissionOut(BaseModel):
    id: int
    draft_version_id: int
    module_key: str
    entity_table: str
    entity_id: int
    submit_version: int
    submit_by: int
    submit_name: Optional[str] = None
    payload_json: Any = None
    diff_json: Optional[list[DiffItem]] = None
    need_confirm: bool
    status: str
    prev_submission_id: Optional[int] = None
    confirmed_by: Optional[int] = None
    confirmed_name: Optional[str] = None
    confirmed_at: Optional[datetime] = None
    created_at: Optional[datetime] = None

    model_config = {"from_attributes": True}
