"""Sync ledger ORM models — identity map and job records."""
import enum
from sqlalchemy import Column, Integer, String, Text, DateTime, Index, UniqueConstraint, text
from sqlalchemy.sql import func
from app.database import Base


class JobStatus(str, enum.Enum):
    running = "running"
    success = "success"
    failed = "failed"


class SyncIdMap(Base):
    __tablename__ = "app_db_sync_id_map"
    __table_args__ = (
        UniqueConstraint("draft_version_id", "module_key", "draft_row_id", name="uk_draft_module_row"),
    )

    id = Column(Integer, primary_key=True, autoincrement=True)
    draft_version_id = Column(Integer, nullable=False, index=True)
    module_key = Column(String(64), nullable=False, index=True)
    draft_row_id = Column(Integer, nullable=False)
    target_row_id = Column(Integer, nullable=False, index=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())


class SyncJob(Base):
    """Whole-version sync run. At most one ``running`` row per draft version."""

    __tablename__ = "app_db_sync_jobs"
    __table_args__ = (
        Index(
            "uq_sync_jobs_running",
            "draft_version_id",
            unique=True,
            sqlite_where=text("status = 'running'"),
            postgresql_where=text("status = 'running'"),
        ),
    )

    id = Column(Integer, primary_key=True, autoincrement=True)
    draft_version_id = Column(Integer, nullable=False, index=True)
    trigger_by = Column(Integer, nullable=True)
    status = Column(String(32), nullable=False, default=JobStatus.running.value)
    error_message = Column(Text, nullable=True)
    started_at = Column(DateTime(timezone=True), nullable=True)
    finished_at = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())


class SyncModuleJob(Base):
    __tablename__ = "app_db_sync_module_jobs"

    id = Column(Integer, primary_key=True, autoincrement=True)
    sync_job_id = Column(Integer, nullable=True, index=True)
    draft_version_id = Column(Integer, nullable=False, index=True)
    module_key = Column(String(64), nullable=False, index=True)
    trigger_by = Column(Integer, nullable=True)
    status = Column(String(32), nullable=False, default=JobStatus.running.value)
    error_message = Column(Text, nullable=True)
    started_at = Column(DateTime(timezone=True), nullable=True)
    finished_at = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
