"""Submission & diff engine and the confirmation gate.

Responsibilities:
- Field-level diff of a payload against the entity's last recorded state
- Monotonic submit_version per draft version (row lock + unique constraint retry)
- Immutable Submission rows with matching FieldHistory rows
- One-way pending_confirm → confirmed transition
- Audit entries for every submit/confirm
"""
import logging
from datetime import datetime, timezone
from typing import Any, Optional

from sqlalchemy import func, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from app.config import settings
from app.errors import ConflictError, InternalError, NotFoundError, ValidationError
from app.models.audit_log import AuditAction
from app.models.draft_version import DraftStatus, DraftVersion
from app.models.submission import Submission, SubmissionStatus
from app.services.audit import record_audit, record_field_history
from app.services.draft_store import get_draft_version, get_entity
from app.services.modules import get_module, module_for_table
from app.services.validation import ValidationIssue

logger = logging.getLogger(__name__)

_MISSING = object()


def _same_value(a: Any, b: Any) -> bool:
    """JSON-value equality: 1 == 1.0, but True != 1 and "1" != 1."""
    if isinstance(a, bool) or isinstance(b, bool):
        return type(a) is type(b) and a == b
    if isinstance(a, (int, float)) and isinstance(b, (int, float)):
        return a == b
    if isinstance(a, dict) and isinstance(b, dict):
        return a.keys() == b.keys() and all(_same_value(a[k], b[k]) for k in a)
    if isinstance(a, list) and isinstance(b, list):
        return len(a) == len(b) and all(_same_value(x, y) for x, y in zip(a, b))
    return type(a) is type(b) and a == b


def build_payload_diff(prev: Optional[dict[str, Any]], curr: Optional[dict[str, Any]]) -> list[dict[str, Any]]:
    """Return ``{field, old, new}`` for every key whose value or presence differs.

    A missing side is reported as ``None``. Entries are sorted by field name.
    """
    prev = prev or {}
    curr = curr or {}
    diff = []
    for key in sorted(set(prev) | set(curr)):
        old = prev.get(key, _MISSING)
        new = curr.get(key, _MISSING)
        if old is not _MISSING and new is not _MISSING and _same_value(old, new):
            continue
        diff.append({
            "field": key,
            "old": None if old is _MISSING else old,
            "new": None if new is _MISSING else new,
        })
    return diff


def submission_status(need_confirm: bool) -> str:
    if need_confirm:
        return SubmissionStatus.pending_confirm.value
    return SubmissionStatus.submitted.value


def requires_confirmation(
    module_key: str,
    previous: Optional[Submission],
    submit_by: int,
    explicit: Optional[bool] = None,
) -> bool:
    """Confirmation policy: explicit flag, then sensitive modules, then a change of submitter."""
    if explicit is not None:
        return explicit
    if module_key in settings.confirm_required_modules:
        return True
    return previous is not None and previous.submit_by != submit_by


def _check_submit_reference(
    draft_version_id: Optional[int],
    module_key: Optional[str],
    entity_table: Optional[str],
    entity_id: Optional[int],
    submit_by: Optional[int],
    payload: Any,
) -> None:
    issues = []
    if not draft_version_id or draft_version_id <= 0:
        issues.append(ValidationIssue("submission", "draft_version_id", "draft_version_id is required"))
    if not (module_key or "").strip():
        issues.append(ValidationIssue("submission", "module_key", "module_key is required"))
    if not (entity_table or "").strip():
        issues.append(ValidationIssue("submission", "entity_table", "entity_table is required"))
    if not entity_id or entity_id <= 0:
        issues.append(ValidationIssue("submission", "entity_id", "entity_id is required"))
    if not submit_by or submit_by <= 0:
        issues.append(ValidationIssue("submission", "submit_by", "submit_by is required"))
    if not isinstance(payload, dict):
        issues.append(ValidationIssue("submission", "payload", "payload must be a JSON object"))
    if issues:
        raise ValidationError("missing required fields", issues)


def _latest_submission(db: Session, draft_version_id: int, entity_table: str, entity_id: int) -> Optional[Submission]:
    return (
        db.query(Submission)
        .filter(
            Submission.draft_version_id == draft_version_id,
            Submission.entity_table == entity_table,
            Submission.entity_id == entity_id,
        )
        .order_by(Submission.submit_version.desc())
        .first()
    )


def _next_submit_version(db: Session, version: DraftVersion) -> int:
    highest = (
        db.query(func.max(Submission.submit_version))
        .filter(Submission.draft_version_id == version.id)
        .scalar()
    )
    return max(version.submit_version or 0, highest or 0) + 1


def _submit_once(
    db: Session,
    draft_version_id: int,
    module_key: str,
    entity_table: str,
    entity_id: int,
    submit_by: int,
    payload: dict[str, Any],
    need_confirm: Optional[bool],
) -> Submission:
    # Row lock serialises concurrent submitters on the same draft version.
    version = (
        db.query(DraftVersion)
        .filter(DraftVersion.id == draft_version_id)
        .with_for_update()
        .first()
    )
    if not version:
        raise NotFoundError("draft version not found")
    get_entity(db, draft_version_id, entity_table, entity_id)

    previous = _latest_submission(db, draft_version_id, entity_table, entity_id)
    diff = build_payload_diff(previous.payload_json if previous else None, payload)
    confirm_needed = requires_confirmation(module_key, previous, submit_by, need_confirm)
    status = submission_status(confirm_needed)
    submit_version = _next_submit_version(db, version)
    now = datetime.now(timezone.utc)

    submission = Submission(
        draft_version_id=draft_version_id,
        module_key=module_key,
        entity_table=entity_table,
        entity_id=entity_id,
        submit_version=submit_version,
        submit_by=submit_by,
        payload_json=payload,
        diff_json=diff,
        need_confirm=confirm_needed,
        status=status,
        prev_submission_id=previous.id if previous else None,
    )
    db.add(submission)
    db.flush()

    record_field_history(db, submission, diff)

    version.submit_version = submit_version
    version.last_submit_by = submit_by
    version.last_submit_at = now
    version.draft_status = status
    version.updated_by = submit_by

    record_audit(
        db,
        AuditAction.submit,
        actor_id=submit_by,
        draft_version_id=draft_version_id,
        entity_table=entity_table,
        entity_id=entity_id,
        detail={
            "module_key": module_key,
            "submission_id": submission.id,
            "submit_version": submit_version,
            "need_confirm": confirm_needed,
            "changed_fields": [item["field"] for item in diff],
        },
    )
    db.flush()
    return submission


def submit(
    db: Session,
    draft_version_id: Optional[int],
    module_key: Optional[str],
    entity_table: Optional[str],
    entity_id: Optional[int],
    submit_by: Optional[int],
    payload: Any,
    need_confirm: Optional[bool] = None,
) -> Submission:
    """Record a submission for one (module, entity) pair and return it.

    The computed diff is on ``submission.diff_json``.
    """
    _check_submit_reference(draft_version_id, module_key, entity_table, entity_id, submit_by, payload)
    module_key = module_key.strip().lower()
    entity_table = entity_table.strip()
    if get_module(module_key) is None:
        raise NotFoundError(f"unknown module: {module_key}")
    owner = module_for_table(entity_table)
    if owner is not None and owner.key != module_key:
        raise ValidationError(
            "module_key does not match entity_table",
            [ValidationIssue("submission", "module_key", f"{entity_table} belongs to module {owner.key}")],
        )

    attempts = max(settings.SUBMIT_VERSION_RETRIES, 1)
    for attempt in range(1, attempts + 1):
        try:
            submission = _submit_once(
                db, draft_version_id, module_key, entity_table, entity_id, submit_by, payload, need_confirm,
            )
            db.commit()
            break
        except IntegrityError as exc:
            # Another submitter took the same submit_version; re-read and retry.
            db.rollback()
            if attempt == attempts:
                raise ConflictError("submit_version_conflict") from exc
            logger.warning(
                "submit_version collision on draft version %s (attempt %d/%d)",
                draft_version_id, attempt, attempts,
            )
        except SQLAlchemyError as exc:
            db.rollback()
            raise InternalError("submit failed") from exc

    db.refresh(submission)
    logger.info(
        "Submission %s: draft version %s %s/%s#%s v%d by %s (%s, %d changed fields)",
        submission.id, draft_version_id, module_key, entity_table, entity_id,
        submission.submit_version, submit_by, submission.status, len(submission.diff_json or []),
    )
    return submission


def confirm(db: Session, submission_id: Optional[int], confirmed_by: Optional[int]) -> Submission:
    """Approve a pending submission. A second call for the same id always fails."""
    issues = []
    if not submission_id or submission_id <= 0:
        issues.append(ValidationIssue("submission", "submission_id", "submission_id is required"))
    if not confirmed_by or confirmed_by <= 0:
        issues.append(ValidationIssue("submission", "confirmed_by", "confirmed_by is required"))
    if issues:
        raise ValidationError("missing required fields", issues)

    submission = db.query(Submission).filter(Submission.id == submission_id).first()
    if not submission:
        raise NotFoundError("submission not found")

    now = datetime.now(timezone.utc)
    try:
        # Compare-and-set on status: only one confirmer can win.
        result = db.execute(
            update(Submission)
            .where(
                Submission.id == submission_id,
                Submission.status == SubmissionStatus.pending_confirm.value,
            )
            .values(
                status=SubmissionStatus.confirmed.value,
                confirmed_by=confirmed_by,
                confirmed_at=now,
            )
            .execution_options(synchronize_session=False)
        )
        if result.rowcount == 0:
            db.rollback()
            db.refresh(submission)
            logger.warning("Rejected confirm of submission %s in status %s", submission_id, submission.status)
            raise ConflictError(f"submission is {submission.status}", status=submission.status)

        pending = (
            db.query(func.count(Submission.id))
            .filter(
                Submission.draft_version_id == submission.draft_version_id,
                Submission.status == SubmissionStatus.pending_confirm.value,
            )
            .scalar()
        )
        if pending == 0:
            version = get_draft_version(db, submission.draft_version_id)
            version.draft_status = DraftStatus.confirmed.value
            version.confirmed_by = confirmed_by
            version.confirmed_at = now

        record_audit(
            db,
            AuditAction.confirm,
            actor_id=confirmed_by,
            draft_version_id=submission.draft_version_id,
            entity_table=submission.entity_table,
            entity_id=submission.entity_id,
            detail={
                "module_key": submission.module_key,
                "submission_id": submission.id,
                "submit_version": submission.submit_version,
            },
        )
        db.commit()
    except SQLAlchemyError as exc:
        db.rollback()
        raise InternalError("confirm failed") from exc

    db.refresh(submission)
    logger.info("Submission %s confirmed by %s", submission_id, confirmed_by)
    return submission
