"""Submission API routes — submit, confirm and list."""
import logging
from typing import Optional
from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from app.auth import get_current_user
from app.database import get_db
from app.models.submission import Submission
from app.models.user import User
from app.services import submission_service
from app.services.users import display_names
from app.schemas.submission import (
    ConfirmRequest,
    ConfirmResponse,
    SubmissionOut,
    SubmitRequest,
    SubmitResponse,
)

logger = logging.getLogger(__name__)
router = APIRouter()


@router.post("/submit", response_model=SubmitResponse)
def submit_draft(payload: SubmitRequest, db: Session = Depends(get_db), user: User = Depends(get_current_user)):
    """Record a submission for one draft entity and return its field diff.

    ``submit_by`` defaults to the authenticated operator.
    """
    submission = submission_service.submit(
        db,
        draft_version_id=payload.draft_version_id,
        module_key=payload.module_key,
        entity_table=payload.entity_table,
        entity_id=payload.entity_id,
        submit_by=payload.submit_by or user.id,
        payload=payload.payload,
        need_confirm=payload.need_confirm,
    )
    return SubmitResponse(
        submission_id=submission.id,
        submit_version=submission.submit_version,
        status=submission.status,
        need_confirm=submission.need_confirm,
        diff=submission.diff_json or [],
    )


@router.post("/confirm", response_model=ConfirmResponse)
def confirm_submission(payload: ConfirmRequest, db: Session = Depends(get_db), user: User = Depends(get_current_user)):
    """Confirm a pending submission. Confirming twice is a 409."""
    submission = submission_service.confirm(db, payload.submission_id, payload.confirmed_by or user.id)
    return ConfirmResponse(submission_id=submission.id, status=submission.status)


@router.get("/submissions", response_model=list[SubmissionOut])
def list_submissions(
    draft_version_id: int = Query(..., gt=0),
    module_key: Optional[str] = None,
    entity_table: Optional[str] = None,
    entity_id: Optional[int] = None,
    db: Session = Depends(get_db),
):
    """Submissions of a draft version, newest first, with operator names resolved."""
    query = db.query(Submission).filter(Submission.draft_version_id == draft_version_id)
    if module_key:
        query = query.filter(Submission.module_key == module_key.strip().lower())
    if entity_table:
        query = query.filter(Submission.entity_table == entity_table.strip())
    if entity_id:
        query = query.filter(Submission.entity_id == entity_id)
    submissions = query.order_by(Submission.submit_version.desc()).all()

    names = display_names(db, [s.submit_by for s in submissions] + [s.confirmed_by for s in submissions])
    result = []
    for s in submissions:
        out = SubmissionOut.model_validate(s)
        out.submit_name = names.get(s.submit_by)
        out.confirmed_name = names.get(s.confirmed_by) if s.confirmed_by else None
        result.append(out)
    return result
