"""AuditLog ORM model — append-only ledger of every mutating action."""
import enum
from sqlalchemy import Column, Integer, String, DateTime, JSON
from sqlalchemy.sql import func
from app.database import Base


class AuditAction(str, enum.Enum):
    create = "create"
    update = "update"
    delete = "delete"
    submit = "submit"
    confirm = "confirm"
    sync = "sync"
    import_from_online = "import_from_online"


class AuditLog(Base):
    __tablename__ = "app_db_audit_logs"

    id = Column(Integer, primary_key=True, autoincrement=True)
    draft_version_id = Column(Integer, nullable=True, index=True)
    entity_table = Column(String(64), nullable=True)
    entity_id = Column(Integer, nullable=True)
    action = Column(String(50), nullable=False)
    actor_id = Column(Integer, nullable=True)
    detail_json = Column(JSON, nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
