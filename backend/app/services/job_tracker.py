"""Job tracking for sync runs.

A SyncJob row in status ``running`` is the per-draft-version sentinel: the
partial unique index on (draft_version_id) WHERE status = 'running' makes
the check-and-insert a compare-and-set, so a second concurrent run fails
instead of interleaving with the first.
"""
import logging
from datetime import datetime, timedelta, timezone
from typing import Iterable, Optional

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from app.errors import ConflictError
from app.models.sync import JobStatus, SyncJob, SyncModuleJob

logger = logging.getLogger(__name__)

ABANDONED_MESSAGE = "abandoned"


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _as_aware(value: Optional[datetime]) -> Optional[datetime]:
    # SQLite hands back naive datetimes.
    if value is not None and value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


class JobTracker:
    def __init__(self, db: Session, stale_after_seconds: int):
        self.db = db
        self.stale_after = timedelta(seconds=stale_after_seconds)

    def _recover_stale(self, draft_version_id: int) -> None:
        cutoff = _utcnow() - self.stale_after
        running = (
            self.db.query(SyncJob)
            .filter(
                SyncJob.draft_version_id == draft_version_id,
                SyncJob.status == JobStatus.running.value,
            )
            .all()
        )
        for job in running:
            started = _as_aware(job.started_at)
            if started is not None and started > cutoff:
                continue
            logger.warning(
                "Marking sync job %s for draft version %s as abandoned (started %s)",
                job.id, draft_version_id, job.started_at,
            )
            job.status = JobStatus.failed.value
            job.error_message = ABANDONED_MESSAGE
            job.finished_at = _utcnow()
            (
                self.db.query(SyncModuleJob)
                .filter(
                    SyncModuleJob.sync_job_id == job.id,
                    SyncModuleJob.status == JobStatus.running.value,
                )
                .update(
                    {
                        SyncModuleJob.status: JobStatus.failed.value,
                        SyncModuleJob.error_message: ABANDONED_MESSAGE,
                        SyncModuleJob.finished_at: _utcnow(),
                    },
                    synchronize_session=False,
                )
            )
        self.db.flush()

    def _running_job(self, draft_version_id: int) -> Optional[SyncJob]:
        return (
            self.db.query(SyncJob)
            .filter(
                SyncJob.draft_version_id == draft_version_id,
                SyncJob.status == JobStatus.running.value,
            )
            .first()
        )

    def start(
        self,
        draft_version_id: int,
        trigger_by: Optional[int],
        module_keys: Iterable[str],
    ) -> tuple[SyncJob, dict[str, SyncModuleJob]]:
        """Claim the running sentinel and open one module job per module."""
        self._recover_stale(draft_version_id)

        busy = self._running_job(draft_version_id)
        if busy:
            busy_id = busy.id
            self.db.rollback()
            logger.warning("Sync for draft version %s rejected: job %s is running", draft_version_id, busy_id)
            raise ConflictError("sync_already_running", job_id=busy_id)

        now = _utcnow()
        job = SyncJob(
            draft_version_id=draft_version_id,
            trigger_by=trigger_by,
            status=JobStatus.running.value,
            started_at=now,
        )
        self.db.add(job)
        try:
            self.db.flush()
        except IntegrityError as exc:
            # Another run inserted its sentinel between the check and our insert.
            self.db.rollback()
            winner = (
                self.db.query(SyncJob.id)
                .filter(
                    SyncJob.draft_version_id == draft_version_id,
                    SyncJob.status == JobStatus.running.value,
                )
                .scalar()
            )
            logger.warning("Sync for draft version %s lost the running-job race to job %s", draft_version_id, winner)
            raise ConflictError("sync_already_running", job_id=winner) from exc

        module_jobs = {}
        for key in module_keys:
            module_job = SyncModuleJob(
                sync_job_id=job.id,
                draft_version_id=draft_version_id,
                module_key=key,
                trigger_by=trigger_by,
                status=JobStatus.running.value,
                started_at=now,
            )
            self.db.add(module_job)
            module_jobs[key] = module_job
        self.db.commit()
        return job, module_jobs

    def finish_module(self, module_job: SyncModuleJob, error_message: Optional[str] = None) -> None:
        module_job.status = JobStatus.failed.value if error_message else JobStatus.success.value
        module_job.error_message = error_message
        module_job.finished_at = _utcnow()

    def finish(self, job: SyncJob, error_message: Optional[str] = None) -> None:
        job.status = JobStatus.failed.value if error_message else JobStatus.success.value
        job.error_message = error_message
        job.finished_at = _utcnow()

    def fail_all(self, job: SyncJob, module_jobs: dict[str, SyncModuleJob], error_message: str) -> None:
        """Close a run that failed as a whole, before any module outcome was known."""
        for module_job in module_jobs.values():
            self.finish_module(module_job, error_message)
        self.finish(job, error_message)
