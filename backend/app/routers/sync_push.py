"""Push receiver routes — the sync surface of the online deployment.

``/push`` is the only write; ``/versions`` and ``/snapshot`` serve the
production tables back to the authoring deployment for import.
"""
import logging
from dataclasses import asdict
from typing import Optional
from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from app.auth import require_api_key
from app.database import get_db
from app.services.import_service import list_production_versions, production_snapshot
from app.services.sync_service import receive_push
from app.schemas.sync import ProductionSnapshotOut, ProductionVersionList, SyncPushRequest, SyncResultOut

logger = logging.getLogger(__name__)
router = APIRouter(dependencies=[Depends(require_api_key)])


@router.post("/push", response_model=SyncResultOut)
def push_sync(payload: SyncPushRequest, db: Session = Depends(get_db)):
    """Write a pushed draft snapshot into the production tables."""
    logger.info(
        "Push received for draft version %s (%r, modules=%s)",
        payload.draft_version_id, payload.version.app_version_name, payload.modules or "all",
    )
    return asdict(receive_push(db, payload))


@router.get("/versions", response_model=ProductionVersionList)
def list_versions(db: Session = Depends(get_db)):
    return {"data": list_production_versions(db)}


@router.get("/snapshot", response_model=ProductionSnapshotOut)
def get_snapshot(
    target_app_version_name_id: Optional[int] = Query(None, gt=0),
    app_version_name: Optional[str] = None,
    db: Session = Depends(get_db),
):
    """One production version with all of its module rows."""
    return {"data": production_snapshot(db, target_app_version_name_id, app_version_name)}
