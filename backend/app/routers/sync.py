"""Sync API routes — authoring-side sync, pull/import and job listings."""
import logging
from dataclasses import asdict
from typing import Optional
from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from app.auth import get_current_user
from app.database import get_db
from app.models.sync import SyncJob, SyncModuleJob
from app.models.user import User
from app.services.import_service import import_draft_version, pull_versions
from app.services.sync_service import sync_draft_version
from app.services.sync_target import SyncTargetClient, get_sync_target
from app.services.users import display_names
from app.schemas.sync import (
    ImportRequest,
    ImportResultOut,
    ProductionVersionList,
    SyncJobOut,
    SyncModuleJobOut,
    SyncRequest,
    SyncResultOut,
)

logger = logging.getLogger(__name__)
router = APIRouter()


@router.post("", response_model=SyncResultOut)
def run_sync(
    payload: SyncRequest,
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
    target: Optional[SyncTargetClient] = Depends(get_sync_target),
):
    """Promote a draft version into production.

    Always answers with the per-module report once the run has started,
    including partial and total module failure. ``confirm`` is required to
    overwrite an app_version_name that already exists in production. With
    SYNC_TARGET_URL set the run is pushed to the online deployment.
    """
    result = sync_draft_version(
        db,
        draft_version_id=payload.draft_version_id,
        triggered_by=user.id,
        overwrite=payload.confirm,
        modules=payload.modules,
        target=target,
    )
    return asdict(result)


@router.get("/jobs", response_model=list[SyncModuleJobOut])
def list_module_jobs(
    draft_version_id: int = Query(..., gt=0),
    module_key: Optional[str] = None,
    limit: int = Query(100, ge=1, le=500),
    db: Session = Depends(get_db),
):
    """Per-module job records of a draft version, newest first."""
    query = db.query(SyncModuleJob).filter(SyncModuleJob.draft_version_id == draft_version_id)
    if module_key:
        query = query.filter(SyncModuleJob.module_key == module_key.strip().lower())
    jobs = query.order_by(SyncModuleJob.id.desc()).limit(limit).all()
    names = display_names(db, [j.trigger_by for j in jobs])
    result = []
    for job in jobs:
        out = SyncModuleJobOut.model_validate(job)
        out.trigger_name = names.get(job.trigger_by) if job.trigger_by else None
        result.append(out)
    return result


@router.get("/runs", response_model=list[SyncJobOut])
def list_sync_runs(
    draft_version_id: int = Query(..., gt=0),
    limit: int = Query(50, ge=1, le=500),
    db: Session = Depends(get_db),
):
    """Whole-version sync runs, newest first."""
    jobs = (
        db.query(SyncJob)
        .filter(SyncJob.draft_version_id == draft_version_id)
        .order_by(SyncJob.id.desc())
        .limit(limit)
        .all()
    )
    names = display_names(db, [j.trigger_by for j in jobs])
    result = []
    for job in jobs:
        out = SyncJobOut.model_validate(job)
        out.trigger_name = names.get(job.trigger_by) if job.trigger_by else None
        result.append(out)
    return result


@router.get("/pull/versions", response_model=ProductionVersionList)
def list_pull_versions(
    db: Session = Depends(get_db),
    target: Optional[SyncTargetClient] = Depends(get_sync_target),
):
    """Production versions that can be imported as a draft version."""
    return {"data": pull_versions(db, target)}


@router.post("/import", response_model=ImportResultOut)
def import_version(
    payload: ImportRequest,
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
    target: Optional[SyncTargetClient] = Depends(get_sync_target),
):
    """Rebuild a draft version from a production version, mapped for re-sync."""
    version = import_draft_version(db, payload, user.id, target)
    return ImportResultOut(
        status="imported",
        draft_version_id=version.id,
        target_app_version_name_id=version.target_app_version_name_id,
        app_version_name=version.app_version_name,
        location_name=version.location_name,
    )
