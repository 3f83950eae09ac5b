"""Sync orchestrator — promotes a validated draft snapshot into production.

Responsibilities:
- Module filter checks and snapshot validation (no production write on failure)
- Overwrite gate for an app_version_name that already exists in production
- Running-job sentinel and per-module job records
- Per-module upsert through the identity map, then delete of stale rows
- Partial success: a failing module is rolled back and recorded, the rest continue
- DraftVersion sync status and the sync audit entry

Both deployments (authoring sync and the online push receiver) go through
``SyncOrchestrator.run``. With a sync target configured, the authoring side
uses ``RemoteSyncOrchestrator`` instead, which validates and tracks jobs
locally and lets the receiver do the writes.
"""
import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Iterable, Optional

from pydantic import ValidationError as PayloadError
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from app.config import settings
from app.errors import ConflictError, DomainError, InternalError, NotFoundError, UpstreamError, ValidationError
from app.models.audit_log import AuditAction
from app.models.draft_version import DraftVersion, SyncStatus
from app.models.production import AppVersionName
from app.models.sync import JobStatus
from app.schemas.sync import SyncMapping, SyncPushRequest, SyncResultOut
from app.services.audit import record_audit
from app.services.draft_store import DraftSnapshot, load_snapshot
from app.services.id_map import IdentityMap, SyncKey
from app.services.job_tracker import JobTracker
from app.services.modules import (
    MODULES,
    SCOPE_NAME,
    SCOPE_VERSION,
    SYNC_ORDER,
    VERSION_MODULE,
    ModuleDescriptor,
    find_invalid_modules,
    normalize_modules,
    resolve_modules,
    should_sync_module,
)
from app.services.sync_target import SyncTargetClient, SyncTargetError
from app.services.validation import ValidationIssue, validate_snapshot

logger = logging.getLogger(__name__)

RESULT_SYNCED = "synced"
RESULT_PARTIAL = "partial_failed"
RESULT_FAILED = "failed"


@dataclass
class ModuleOutcome:
    module_key: str
    status: str = JobStatus.success.value
    error_message: Optional[str] = None
    inserted: int = 0
    updated: int = 0
    deleted: int = 0
    job_id: Optional[int] = None


@dataclass
class SyncResult:
    status: str
    draft_version_id: int
    job_id: Optional[int]
    target_app_version_name_id: Optional[int]
    per_module: list[ModuleOutcome] = field(default_factory=list)
    errors: list[dict[str, Any]] = field(default_factory=list)
    mappings: list[dict[str, Any]] = field(default_factory=list)


def _error_text(exc: Exception) -> str:
    if isinstance(exc, DomainError):
        return exc.message
    orig = getattr(exc, "orig", None)
    return str(orig or exc)[:500]


class SyncOrchestrator:
    """One sync run against the session's database.

    ``mark_draft`` is off on the push receiver, where the draft version row
    lives in the authoring database rather than in the local one.
    """

    def __init__(self, db: Session, mark_draft: bool = True):
        self.db = db
        self.mark_draft = mark_draft
        self.id_map = IdentityMap(db)
        self.jobs = JobTracker(db, settings.SYNC_JOB_STALE_SECONDS)
        # Set when the draft's mapped production version differs from the one
        # carrying its name: rows are then written under the new version only.
        self.retargeted = False

    # ── draft version bookkeeping ───────────────────────────────────────

    def _mark_draft(
        self,
        draft_version_id: int,
        sync_status: SyncStatus,
        message: Optional[str] = None,
        target_id: Optional[int] = None,
    ) -> None:
        if not self.mark_draft:
            return
        version = self.db.query(DraftVersion).filter(DraftVersion.id == draft_version_id).first()
        if version is None:
            return
        version.sync_status = sync_status.value
        version.sync_message = message
        if sync_status == SyncStatus.synced:
            version.synced_at = datetime.now(timezone.utc)
        if target_id:
            version.target_app_version_name_id = target_id

    def _production_version(self, app_version_name: str) -> Optional[AppVersionName]:
        if not app_version_name:
            return None
        return (
            self.db.query(AppVersionName)
            .filter(AppVersionName.app_version_name == app_version_name)
            .first()
        )

    # ── per-module reconciliation ───────────────────────────────────────

    def _scope_values(self, descriptor: ModuleDescriptor, snapshot: DraftSnapshot, target_version_id: Optional[int]) -> dict[str, Any]:
        if descriptor.scope == SCOPE_VERSION:
            return {}
        # Rows under a name with no production version are unreachable for the app.
        if not target_version_id:
            raise NotFoundError("version_not_synced")
        if descriptor.scope == SCOPE_NAME:
            return {"app_version_name": snapshot.app_version_name}
        return {"app_version_name_id": target_version_id}

    def _scoped_query(self, descriptor: ModuleDescriptor, scope: dict[str, Any]):
        model = descriptor.production_model
        query = self.db.query(model)
        for column, value in scope.items():
            query = query.filter(getattr(model, column) == value)
        return query

    def _load_target(self, descriptor: ModuleDescriptor, scope: dict[str, Any], target_id: Optional[int]):
        if not target_id:
            return None
        model = descriptor.production_model
        return self._scoped_query(descriptor, scope).filter(model.id == target_id).first()

    def _adopt(self, descriptor: ModuleDescriptor, scope: dict[str, Any], values: dict[str, Any]):
        """Existing unmapped production row to take over, for single-row modules."""
        model = descriptor.production_model
        if descriptor.scope == SCOPE_VERSION:
            return self._production_version(values.get("app_version_name") or "")
        if descriptor.singleton:
            return self._scoped_query(descriptor, scope).order_by(model.id.desc()).first()
        return None

    def _sync_module(self, descriptor: ModuleDescriptor, snapshot: DraftSnapshot, target_version_id: Optional[int]) -> ModuleOutcome:
        """Upsert every draft row of one module, then delete what the draft no longer has."""
        outcome = ModuleOutcome(module_key=descriptor.key)
        model = descriptor.production_model
        scope = self._scope_values(descriptor, snapshot, target_version_id)
        dv_id = snapshot.draft_version_id

        kept_draft_ids: list[int] = []
        kept_targets: set[int] = set()
        for row in snapshot.rows_for(descriptor.key):
            draft_row_id = row.get("id") or 0
            if draft_row_id <= 0:
                continue
            values = descriptor.production_values(row)
            values.update(scope)

            def write(mapped_id: Optional[int], values=values, hint=row.get("target_id")) -> int:
                target = None
                if descriptor.scope == SCOPE_VERSION:
                    # app_version_name is unique: the row carrying it wins over the mapping.
                    target = self._adopt(descriptor, scope, values)
                if target is None:
                    # A mapped row follows a renamed version, unless the run moved to another one.
                    target = self._load_target(descriptor, scope if self.retargeted else {}, mapped_id)
                if target is None and hint:
                    target = self._load_target(descriptor, scope, hint)
                if target is None and descriptor.scope != SCOPE_VERSION:
                    target = self._adopt(descriptor, scope, values)
                if target is None:
                    target = model()
                    self.db.add(target)
                    outcome.inserted += 1
                else:
                    outcome.updated += 1
                for name, value in values.items():
                    setattr(target, name, value)
                self.db.flush()
                return target.id

            kept_targets.add(self.id_map.upsert(SyncKey(dv_id, descriptor.key, draft_row_id), write))
            kept_draft_ids.append(draft_row_id)

        stale_targets = self.id_map.prune(dv_id, descriptor.key, kept_draft_ids)
        if descriptor.scope == SCOPE_VERSION:
            # Production versions are shared; only the mapping goes.
            return outcome

        doomed = {target.id: target for target in self._scoped_query(descriptor, scope).all()}
        for target_id in stale_targets:
            if target_id not in doomed:
                target = self.db.query(model).filter(model.id == target_id).first()
                if target is not None:
                    doomed[target_id] = target
        for target_id, target in doomed.items():
            if target_id in kept_targets:
                continue
            self.db.delete(target)
            outcome.deleted += 1
        self.db.flush()
        return outcome

    # ── run ─────────────────────────────────────────────────────────────

    def check_request(self, snapshot: DraftSnapshot, modules: Optional[Iterable[str]]) -> list[str]:
        """Reject unknown modules and invalid snapshots; return the normalised filter."""
        dv_id = snapshot.draft_version_id
        invalid = find_invalid_modules(modules)
        if invalid:
            issues = [ValidationIssue("sync", "modules", f"unknown module: {key}") for key in invalid]
            logger.warning("Sync for draft version %s rejected: invalid modules %s", dv_id, invalid)
            raise ValidationError("invalid_modules", issues, modules=invalid)

        selected = normalize_modules(modules)
        issues = validate_snapshot(snapshot, selected)
        if issues:
            logger.warning("Sync for draft version %s failed validation with %d issues", dv_id, len(issues))
            self._mark_draft(dv_id, SyncStatus.failed, "validation_failed")
            self.db.commit()
            raise ValidationError("validation_failed", issues)
        return selected

    def _precheck(self, snapshot: DraftSnapshot, overwrite: bool, modules: Optional[Iterable[str]]) -> tuple[list[str], Optional[int]]:
        dv_id = snapshot.draft_version_id
        selected = self.check_request(snapshot, modules)

        production = self._production_version(snapshot.app_version_name)
        if production is not None and not overwrite:
            logger.warning(
                "Sync for draft version %s needs confirmation: %r exists as production version %s",
                dv_id, snapshot.app_version_name, production.id,
            )
            raise ConflictError(
                "app_version_name_exists",
                need_confirm=True,
                target_app_version_name_id=production.id,
            )
        if production is None and not should_sync_module(selected, VERSION_MODULE):
            raise NotFoundError("version_not_synced")
        return resolve_modules(selected), production.id if production else None

    def run(
        self,
        snapshot: DraftSnapshot,
        triggered_by: Optional[int],
        overwrite: bool = False,
        modules: Optional[Iterable[str]] = None,
    ) -> SyncResult:
        dv_id = snapshot.draft_version_id
        try:
            plan, target_id = self._precheck(snapshot, overwrite, modules)
            job, module_jobs = self.jobs.start(dv_id, triggered_by, plan)
            self._mark_draft(dv_id, SyncStatus.running)
            self.db.commit()
        except SQLAlchemyError as exc:
            self.db.rollback()
            raise InternalError("sync failed") from exc

        mapped_version = self.id_map.lookup(SyncKey(dv_id, VERSION_MODULE, dv_id))
        self.retargeted = bool(mapped_version and target_id and mapped_version != target_id)
        if self.retargeted:
            logger.warning(
                "Draft version %s moves from production version %s to %s (%r)",
                dv_id, mapped_version, target_id, snapshot.app_version_name,
            )
        logger.info("Sync job %s started for draft version %s: modules=%s", job.id, dv_id, plan)

        outcomes: list[ModuleOutcome] = []
        for key in SYNC_ORDER:
            if key not in module_jobs:
                continue
            module_job = module_jobs[key]
            try:
                outcome = self._sync_module(MODULES[key], snapshot, target_id)
                if key == VERSION_MODULE:
                    production = self._production_version(snapshot.app_version_name)
                    target_id = production.id if production else target_id
                self.jobs.finish_module(module_job)
                self.db.commit()
                logger.info(
                    "Sync job %s module %s: +%d ~%d -%d",
                    job.id, key, outcome.inserted, outcome.updated, outcome.deleted,
                )
            except (SQLAlchemyError, DomainError) as exc:
                self.db.rollback()
                message = _error_text(exc)
                logger.exception("Sync job %s module %s failed", job.id, key)
                outcome = ModuleOutcome(module_key=key, status=JobStatus.failed.value, error_message=message)
                self.jobs.finish_module(module_job, message)
                self.db.commit()
            outcome.job_id = module_job.id
            outcomes.append(outcome)

        return self._complete(dv_id, job, plan, outcomes, target_id, triggered_by, overwrite)

    def _complete(
        self,
        dv_id: int,
        job,
        plan: list[str],
        outcomes: list[ModuleOutcome],
        target_id: Optional[int],
        triggered_by: Optional[int],
        overwrite: bool,
        **audit_extra: Any,
    ) -> SyncResult:
        """Close the run from its module outcomes: job, draft status, audit entry, result."""
        failed = [o.module_key for o in outcomes if o.status == JobStatus.failed.value]
        if not failed:
            status = RESULT_SYNCED
        elif len(failed) == len(outcomes):
            status = RESULT_FAILED
        else:
            status = RESULT_PARTIAL
        message = None if status == RESULT_SYNCED else f"{status}: {', '.join(failed)}"

        self.jobs.finish(job, message)
        if status == RESULT_SYNCED:
            self._mark_draft(dv_id, SyncStatus.synced, "ok", target_id)
        else:
            self._mark_draft(dv_id, SyncStatus.failed, message)
        record_audit(
            self.db,
            AuditAction.sync,
            actor_id=triggered_by,
            draft_version_id=dv_id,
            entity_table=DraftVersion.__tablename__,
            entity_id=dv_id,
            detail={
                "job_id": job.id,
                "status": status,
                "overwrite": overwrite,
                "modules": plan,
                "failed_modules": failed,
                "target_app_version_name_id": target_id,
                **audit_extra,
            },
        )
        self.db.commit()

        if failed:
            logger.warning("Sync job %s for draft version %s finished %s (%s)", job.id, dv_id, status, failed)
        else:
            logger.info("Sync job %s for draft version %s synced to version %s", job.id, dv_id, target_id)

        return SyncResult(
            status=status,
            draft_version_id=dv_id,
            job_id=job.id,
            target_app_version_name_id=target_id,
            per_module=outcomes,
            errors=[{"module": o.module_key, "message": o.error_message} for o in outcomes if o.error_message],
            mappings=self.id_map.mappings(dv_id, plan),
        )


def build_push_payload(
    id_map: IdentityMap,
    snapshot: DraftSnapshot,
    triggered_by: Optional[int],
    overwrite: bool,
    modules: list[str],
) -> dict[str, Any]:
    """``SyncPushRequest`` body for a snapshot, with known target ids as hints."""
    dv_id = snapshot.draft_version_id
    hints = {(m["module_key"], m["draft_id"]): m["target_id"] for m in id_map.mappings(dv_id)}
    body: dict[str, Any] = {
        "draft_version_id": dv_id,
        "trigger_by": triggered_by,
        "confirm": overwrite,
        "modules": modules,
        "version": {k: v for k, v in snapshot.version.items() if k != "id"},
    }
    for key in SYNC_ORDER:
        if key == VERSION_MODULE:
            continue
        rows = [dict(row, target_id=hints.get((key, row["id"]))) for row in snapshot.rows_for(key)]
        if MODULES[key].singleton:
            body[key] = rows[0] if rows else None
        else:
            body[key] = rows
    return SyncPushRequest.model_validate(body).model_dump(mode="json")


class RemoteSyncOrchestrator(SyncOrchestrator):
    """Authoring sync against a separate online deployment.

    Validation and job tracking stay local; the receiver runs the module
    writes and answers with its per-module report, which is mirrored onto the
    local module jobs and identity map.
    """

    def __init__(self, db: Session, target: SyncTargetClient):
        super().__init__(db)
        self.target = target

    def _record_mappings(self, dv_id: int, module_key: str, mappings: list[SyncMapping]) -> None:
        for mapping in mappings:
            self.id_map.upsert(
                SyncKey(dv_id, module_key, mapping.draft_id),
                lambda _mapped, target_id=mapping.target_id: target_id,
            )
        self.id_map.prune(dv_id, module_key, [m.draft_id for m in mappings])

    def _remote_failure(self, dv_id: int, job, module_jobs, exc: SyncTargetError) -> DomainError:
        """Close the run after the target refused it; return the error to raise."""
        sync_status = SyncStatus.pending_confirm if exc.need_confirm else SyncStatus.failed
        self.jobs.fail_all(job, module_jobs, exc.message)
        self._mark_draft(dv_id, sync_status, exc.message, exc.target_id)
        self.db.commit()
        logger.warning("Sync job %s for draft version %s rejected by target (%s): %s",
                       job.id, dv_id, exc.status_code, exc.message)

        extra = {k: v for k, v in exc.body.items() if k not in ("error", "details")}
        if exc.need_confirm or exc.status_code == 409:
            return ConflictError(exc.message, **extra)
        if exc.status_code == 400:
            return ValidationError(exc.message, exc.details, **extra)
        if exc.status_code == 404:
            return NotFoundError(exc.message, **extra)
        return UpstreamError(exc.message, target_status=exc.status_code)

    def run(
        self,
        snapshot: DraftSnapshot,
        triggered_by: Optional[int],
        overwrite: bool = False,
        modules: Optional[Iterable[str]] = None,
    ) -> SyncResult:
        dv_id = snapshot.draft_version_id
        selected = self.check_request(snapshot, modules)
        plan = resolve_modules(selected)
        payload = build_push_payload(self.id_map, snapshot, triggered_by, overwrite, selected)
        try:
            job, module_jobs = self.jobs.start(dv_id, triggered_by, plan)
            self._mark_draft(dv_id, SyncStatus.running)
            self.db.commit()
        except SQLAlchemyError as exc:
            self.db.rollback()
            raise InternalError("sync failed") from exc

        logger.info("Sync job %s pushing draft version %s to %s: modules=%s",
                    job.id, dv_id, self.target.base_url, plan)
        try:
            report = SyncResultOut.model_validate(self.target.push(payload))
        except SyncTargetError as exc:
            raise self._remote_failure(dv_id, job, module_jobs, exc) from exc
        except PayloadError as exc:
            unreadable = SyncTargetError(0, "sync failed: unreadable response")
            raise self._remote_failure(dv_id, job, module_jobs, unreadable) from exc

        remote = {o.module_key: o for o in report.per_module}
        outcomes: list[ModuleOutcome] = []
        for key in SYNC_ORDER:
            if key not in module_jobs:
                continue
            answer = remote.get(key)
            if answer is None:
                outcome = ModuleOutcome(key, JobStatus.failed.value, "not reported by sync target")
            else:
                outcome = ModuleOutcome(
                    key, answer.status, answer.error_message, answer.inserted, answer.updated, answer.deleted,
                )
            if outcome.status == JobStatus.failed.value:
                outcome.error_message = outcome.error_message or "failed"
                self.jobs.finish_module(module_jobs[key], outcome.error_message)
            else:
                self.jobs.finish_module(module_jobs[key])
                self._record_mappings(dv_id, key, [m for m in report.mappings if m.module_key == key])
            outcome.job_id = module_jobs[key].id
            outcomes.append(outcome)

        return self._complete(
            dv_id, job, plan, outcomes, report.target_app_version_name_id, triggered_by, overwrite,
            target=self.target.base_url, remote_job_id=report.job_id,
        )


def sync_draft_version(
    db: Session,
    draft_version_id: int,
    triggered_by: Optional[int],
    overwrite: bool = False,
    modules: Optional[Iterable[str]] = None,
    target: Optional[SyncTargetClient] = None,
) -> SyncResult:
    """Authoring-side sync: load the draft and run it locally or against ``target``."""
    modules = list(modules or [])
    snapshot = load_snapshot(db, draft_version_id, normalize_modules(modules))
    if target is not None:
        return RemoteSyncOrchestrator(db, target).run(snapshot, triggered_by, overwrite, modules)
    return SyncOrchestrator(db).run(snapshot, triggered_by, overwrite, modules)


def snapshot_from_push(request) -> DraftSnapshot:
    """Build a snapshot from a ``SyncPushRequest`` body."""
    version = request.version.model_dump()
    version["id"] = request.draft_version_id
    rows: dict[str, list[dict[str, Any]]] = {}
    for key in SYNC_ORDER:
        if key == VERSION_MODULE:
            continue
        items = getattr(request, key, None)
        if items is None:
            rows[key] = []
        elif isinstance(items, list):
            rows[key] = [item.model_dump() for item in items]
        else:
            rows[key] = [items.model_dump()]
    return DraftSnapshot(draft_version_id=request.draft_version_id, version=version, rows=rows)


def receive_push(db: Session, request) -> SyncResult:
    """Online receiver: same orchestrator, keyed by the pushed draft_version_id."""
    snapshot = snapshot_from_push(request)
    orchestrator = SyncOrchestrator(db, mark_draft=False)
    return orchestrator.run(snapshot, request.trigger_by, request.confirm, request.modules)
