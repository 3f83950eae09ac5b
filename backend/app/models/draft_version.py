"""DraftVersion ORM model — the container for one authored configuration snapshot."""
import enum
from sqlalchemy import Column, Integer, String, Text, DateTime
from sqlalchemy.sql import func
from app.database import Base


class DraftStatus(str, enum.Enum):
    draft = "draft"
    submitted = "submitted"
    pending_confirm = "pending_confirm"
    confirmed = "confirmed"


class SyncStatus(str, enum.Enum):
    running = "running"
    synced = "synced"
    failed = "failed"
    pending_confirm = "pending_confirm"
    imported = "imported"


class DraftVersion(Base):
    __tablename__ = "app_db_version_names"

    id = Column(Integer, primary_key=True, autoincrement=True)
    app_version_name = Column(String(255), nullable=True, index=True)
    location_name = Column(String(255), nullable=True)
    feishu_field_names = Column(Text, nullable=True)
    ai_modal = Column(String(255), nullable=True)
    status = Column(Integer, nullable=True)

    draft_status = Column(String(32), nullable=False, default=DraftStatus.draft.value)
    submit_version = Column(Integer, nullable=False, default=0)
    last_submit_by = Column(Integer, nullable=True)
    last_submit_at = Column(DateTime(timezone=True), nullable=True)
    confirmed_by = Column(Integer, nullable=True)
    confirmed_at = Column(DateTime(timezone=True), nullable=True)

    sync_status = Column(String(32), nullable=True)
    sync_message = Column(String(500), nullable=True)
    synced_at = Column(DateTime(timezone=True), nullable=True)
    target_app_version_name_id = Column(Integer, nullable=True)

    created_by = Column(Integer, nullable=True)
    updated_by = Column(Integer, nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())
