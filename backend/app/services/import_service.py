"""Pull and import: the reverse direction of sync.

The online deployment lists its production versions and serves one version
as a snapshot; the authoring deployment rebuilds a draft version from that
snapshot and seeds the identity map, so the next sync of the draft writes
back to the same production rows instead of duplicating them.
"""
import logging
from datetime import datetime, timezone
from typing import Any, Optional

from pydantic import ValidationError as PayloadError
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from app.errors import InternalError, NotFoundError, UpstreamError, ValidationError
from app.models.audit_log import AuditAction
from app.models.draft_version import DraftStatus, DraftVersion, SyncStatus
from app.models.production import AppVersionName
from app.models.sync import SyncIdMap
from app.schemas.sync import ImportRequest, ProductionSnapshot, ProductionVersionOut
from app.services.audit import record_audit
from app.services.draft_store import get_draft_version
from app.services.id_map import IdentityMap, SyncKey
from app.services.modules import MODULES, SCOPE_NAME, SYNC_ORDER, VERSION_MODULE, ModuleDescriptor
from app.services.sync_target import SyncTargetClient, SyncTargetError
from app.services.validation import ValidationIssue

logger = logging.getLogger(__name__)

IMPORT_ENTITY_TABLE = "sync_import"


def _missing_version_key() -> ValidationError:
    message = "target_app_version_name_id or app_version_name is required"
    return ValidationError(message, [ValidationIssue("import", "target_app_version_name_id", message)])


def _version_out(version: AppVersionName) -> ProductionVersionOut:
    return ProductionVersionOut(
        target_app_version_name_id=version.id,
        app_version_name=version.app_version_name,
        location_name=version.location_name,
        feishu_field_names=version.feishu_field_names,
        ai_modal=version.ai_modal,
        status=version.status,
        updated_at=version.updated_at,
    )


def list_production_versions(db: Session) -> list[ProductionVersionOut]:
    """Production versions, newest first."""
    versions = db.query(AppVersionName).order_by(AppVersionName.id.desc()).all()
    return [_version_out(v) for v in versions]


def _module_rows(db: Session, descriptor: ModuleDescriptor, version: AppVersionName) -> list[dict[str, Any]]:
    model = descriptor.production_model
    query = db.query(model)
    if descriptor.scope == SCOPE_NAME:
        query = query.filter(model.app_version_name == version.app_version_name)
    else:
        query = query.filter(model.app_version_name_id == version.id)

    if descriptor.singleton:
        query = query.order_by(model.id.desc()).limit(1)
    elif hasattr(model, "step_index"):
        query = query.order_by(model.step_index, model.id)
    else:
        query = query.order_by(model.sort, model.id)
    return [{"id": row.id, **{name: getattr(row, name) for name in descriptor.fields}} for row in query.all()]


def production_snapshot(
    db: Session,
    target_id: Optional[int] = None,
    app_version_name: Optional[str] = None,
) -> ProductionSnapshot:
    """One production version and its module rows, by id or by name."""
    name = (app_version_name or "").strip()
    query = db.query(AppVersionName)
    if target_id:
        version = query.filter(AppVersionName.id == target_id).first()
    elif name:
        version = query.filter(AppVersionName.app_version_name == name).first()
    else:
        raise _missing_version_key()
    if version is None:
        raise NotFoundError("version not found")

    data: dict[str, Any] = {"version": _version_out(version)}
    for key in SYNC_ORDER:
        if key == VERSION_MODULE:
            continue
        descriptor = MODULES[key]
        rows = _module_rows(db, descriptor, version)
        data[key] = (rows[0] if rows else None) if descriptor.singleton else rows
    return ProductionSnapshot.model_validate(data)


def _purge_draft(db: Session, draft_version_id: int) -> None:
    db.query(SyncIdMap).filter(SyncIdMap.draft_version_id == draft_version_id).delete(synchronize_session=False)
    for key in SYNC_ORDER:
        if key == VERSION_MODULE:
            continue
        model = MODULES[key].draft_model
        db.query(model).filter(model.draft_version_id == draft_version_id).delete(synchronize_session=False)


def import_snapshot(
    db: Session,
    snapshot: ProductionSnapshot,
    operator_id: Optional[int],
    draft_version_id: Optional[int] = None,
    source: str = "online",
) -> DraftVersion:
    """Rebuild a draft version from ``snapshot`` and map every row to its production id.

    With ``draft_version_id`` the existing draft's rows and mappings are
    replaced; otherwise a new draft version is created.
    """
    remote = snapshot.version
    target_id = remote.target_app_version_name_id
    version_values = MODULES[VERSION_MODULE].production_values(remote.model_dump())
    now = datetime.now(timezone.utc)

    try:
        if draft_version_id:
            version = get_draft_version(db, draft_version_id)
            _purge_draft(db, version.id)
            version.last_submit_by = None
            version.last_submit_at = None
            version.confirmed_by = None
            version.confirmed_at = None
        else:
            version = DraftVersion(created_by=operator_id)
            db.add(version)
        for name, value in version_values.items():
            setattr(version, name, value)
        version.draft_status = DraftStatus.draft.value
        version.sync_status = SyncStatus.imported.value
        version.sync_message = None
        version.synced_at = now
        version.target_app_version_name_id = target_id
        version.updated_by = operator_id
        db.flush()

        id_map = IdentityMap(db)
        id_map.upsert(SyncKey(version.id, VERSION_MODULE, version.id), lambda _mapped: target_id)
        counts = {}
        for key in SYNC_ORDER:
            if key == VERSION_MODULE:
                continue
            descriptor = MODULES[key]
            items = getattr(snapshot, key)
            if items is None:
                items = []
            elif not isinstance(items, list):
                items = [items]
            for item in items:
                row = descriptor.draft_model(
                    draft_version_id=version.id,
                    created_by=operator_id,
                    updated_by=operator_id,
                    **descriptor.production_values(item.model_dump()),
                )
                db.add(row)
                db.flush()
                id_map.upsert(SyncKey(version.id, key, row.id), lambda _mapped, production_id=item.id: production_id)
            counts[key] = len(items)

        record_audit(
            db,
            AuditAction.import_from_online,
            actor_id=operator_id,
            draft_version_id=version.id,
            entity_table=IMPORT_ENTITY_TABLE,
            entity_id=target_id,
            detail={
                "source": source,
                "target_app_version_name_id": target_id,
                "mode": "overwrite" if draft_version_id else "create",
                "rows": counts,
            },
        )
        db.commit()
    except SQLAlchemyError as exc:
        db.rollback()
        raise InternalError("import failed") from exc

    db.refresh(version)
    logger.info(
        "Imported production version %s (%r, %s) into draft version %s: %s",
        target_id, remote.app_version_name, source, version.id, counts,
    )
    return version


def _pull_failure(exc: SyncTargetError):
    if exc.status_code == 404:
        return NotFoundError(exc.message)
    if exc.status_code == 400:
        return ValidationError(exc.message, exc.details)
    return UpstreamError(exc.message, target_status=exc.status_code)


def pull_versions(db: Session, target: Optional[SyncTargetClient] = None) -> list[ProductionVersionOut]:
    """Production versions available for import, from the target or the local tables."""
    if target is None:
        return list_production_versions(db)
    try:
        return [ProductionVersionOut.model_validate(item) for item in target.list_versions()]
    except SyncTargetError as exc:
        raise _pull_failure(exc) from exc
    except PayloadError as exc:
        raise UpstreamError("pull versions failed: unreadable response") from exc


def import_draft_version(
    db: Session,
    request: ImportRequest,
    operator_id: Optional[int],
    target: Optional[SyncTargetClient] = None,
) -> DraftVersion:
    """Fetch the requested production snapshot and import it as a draft version."""
    if request.draft_version_id:
        get_draft_version(db, request.draft_version_id)
    if target is None:
        snapshot = production_snapshot(db, request.target_app_version_name_id, request.app_version_name)
        source = "local"
    else:
        if not request.target_app_version_name_id and not (request.app_version_name or "").strip():
            raise _missing_version_key()
        try:
            snapshot = ProductionSnapshot.model_validate(
                target.snapshot(request.target_app_version_name_id, (request.app_version_name or "").strip())
            )
        except SyncTargetError as exc:
            raise _pull_failure(exc) from exc
        except PayloadError as exc:
            raise UpstreamError("pull snapshot failed: unreadable response") from exc
        source = "online"
    return import_snapshot(db, snapshot, operator_id, request.draft_version_id, source)
