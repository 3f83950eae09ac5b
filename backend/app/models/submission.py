"""Submission and FieldHistory ORM models."""
import enum
from sqlalchemy import Column, Integer, String, Text, Boolean, DateTime, JSON, ForeignKey, UniqueConstraint
from sqlalchemy.sql import func
from app.database import Base


class SubmissionStatus(str, enum.Enum):
    submitted = "submitted"
    pending_confirm = "pending_confirm"
    confirmed = "confirmed"


class Submission(Base):
    __tablename__ = "app_db_submissions"
    __table_args__ = (
        UniqueConstraint("draft_version_id", "submit_version", name="uk_submission_draft_version"),
    )

    id = Column(Integer, primary_key=True, autoincrement=True)
    draft_version_id = Column(Integer, ForeignKey("app_db_version_names.id"), nullable=False, index=True)
    module_key = Column(String(50), nullable=False, index=True)
    entity_table = Column(String(64), nullable=False)
    entity_id = Column(Integer, nullable=False)
    submit_version = Column(Integer, nullable=False)
    submit_by = Column(Integer, nullable=False)
    payload_json = Column(JSON, nullable=False)
    diff_json = Column(JSON, nullable=True)
    need_confirm = Column(Boolean, nullable=False, default=False)
    status = Column(String(32), nullable=False, default=SubmissionStatus.submitted.value)
    prev_submission_id = Column(Integer, ForeignKey("app_db_submissions.id"), nullable=True)
    confirmed_by = Column(Integer, nullable=True)
    confirmed_at = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())


class FieldHistory(Base):
    """One row per changed field per submission (append-only)."""

    __tablename__ = "app_db_field_history"

    id = Column(Integer, primary_key=True, autoincrement=True)
    draft_version_id = Column(Integer, nullable=False, index=True)
    entity_table = Column(String(64), nullable=False)
    entity_id = Column(Integer, nullable=False)
    field_name = Column(String(100), nullable=False)
    old_value = Column(Text, nullable=True)
    new_value = Column(Text, nullable=True)
    submit_id = Column(Integer, ForeignKey("app_db_submissions.id"), nullable=False, index=True)
    changed_by = Column(Integer, nullable=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
