"""History API routes — audit log and field history, newest first."""
import logging
from typing import Optional
from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from app.database import get_db
from app.models.audit_log import AuditLog
from app.models.submission import FieldHistory
from app.services.users import display_names
from app.schemas.history import AuditLogOut, AuditLogPage, FieldHistoryOut, FieldHistoryPage

logger = logging.getLogger(__name__)
router = APIRouter()


@router.get("/audit/logs", response_model=AuditLogPage)
def list_audit_logs(
    draft_version_id: Optional[int] = None,
    entity_table: Optional[str] = None,
    entity_id: Optional[int] = None,
    action: Optional[str] = None,
    page: int = Query(1, ge=1),
    page_size: int = Query(20, ge=1, le=200),
    db: Session = Depends(get_db),
):
    query = db.query(AuditLog)
    if draft_version_id:
        query = query.filter(AuditLog.draft_version_id == draft_version_id)
    if entity_table:
        query = query.filter(AuditLog.entity_table == entity_table.strip())
    if entity_id:
        query = query.filter(AuditLog.entity_id == entity_id)
    if action:
        query = query.filter(AuditLog.action == action.strip().lower())

    total = query.count()
    rows = query.order_by(AuditLog.id.desc()).offset((page - 1) * page_size).limit(page_size).all()
    names = display_names(db, [r.actor_id for r in rows])
    items = []
    for row in rows:
        out = AuditLogOut.model_validate(row)
        out.actor_name = names.get(row.actor_id) if row.actor_id else None
        items.append(out)
    return AuditLogPage(page=page, page_size=page_size, total=total, items=items)


@router.get("/field-history", response_model=FieldHistoryPage)
def list_field_history(
    draft_version_id: int = Query(..., gt=0),
    entity_table: str = Query(..., min_length=1),
    entity_id: Optional[int] = None,
    field_name: Optional[str] = None,
    page: int = Query(1, ge=1),
    page_size: int = Query(20, ge=1, le=200),
    db: Session = Depends(get_db),
):
    query = db.query(FieldHistory).filter(
        FieldHistory.draft_version_id == draft_version_id,
        FieldHistory.entity_table == entity_table.strip(),
    )
    if entity_id:
        query = query.filter(FieldHistory.entity_id == entity_id)
    if field_name:
        query = query.filter(FieldHistory.field_name == field_name.strip())

    total = query.count()
    rows = query.order_by(FieldHistory.id.desc()).offset((page - 1) * page_size).limit(page_size).all()
    names = display_names(db, [r.changed_by for r in rows])
    items = []
    for row in rows:
        out = FieldHistoryOut.model_validate(row)
        out.changed_name = names.get(row.changed_by)
        items.append(out)
    return FieldHistoryPage(page=page, page_size=page_size, total=total, items=items)
