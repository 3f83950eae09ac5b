"""Audit and field-history recorder. Both ledgers are append-only."""
import json
from typing import Any, Optional

from sqlalchemy.orm import Session

from app.models.audit_log import AuditLog, AuditAction
from app.models.submission import FieldHistory, Submission


def _json_text(value: Any) -> Optional[str]:
    if value is None:
        return None
    return json.dumps(value, ensure_ascii=False, sort_keys=True)


def record_audit(
    db: Session,
    action: AuditAction,
    actor_id: Optional[int],
    draft_version_id: Optional[int] = None,
    entity_table: Optional[str] = None,
    entity_id: Optional[int] = None,
    detail: Optional[dict[str, Any]] = None,
) -> AuditLog:
    entry = AuditLog(
        draft_version_id=draft_version_id,
        entity_table=entity_table,
        entity_id=entity_id,
        action=action.value,
        actor_id=actor_id,
        detail_json=detail,
    )
    db.add(entry)
    return entry


def record_field_history(db: Session, submission: Submission, diff: list[dict[str, Any]]) -> list[FieldHistory]:
    """One history row per diff entry, values stored as JSON text."""
    rows = []
    for item in diff:
        row = FieldHistory(
            draft_version_id=submission.draft_version_id,
            entity_table=submission.entity_table,
            entity_id=submission.entity_id,
            field_name=item["field"],
            old_value=_json_text(item["old"]),
            new_value=_json_text(item["new"]),
            submit_id=submission.id,
            changed_by=submission.submit_by,
        )
        db.add(row)
        rows.append(row)
    return rows
