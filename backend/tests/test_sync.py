"""Tests for the sync orchestrator, job tracking and the sync/push endpoints.

Covers:
- First sync writes every production table and one id-map row per draft row
- Idempotent re-sync (no new mappings, no new production rows)
- Module-scoped replace: removed draft rows are deleted from production
- Module filters, version_not_synced, overwrite gate, invalid modules
- Validation failure writes nothing
- Partial failure: failed module rolled back and recorded, siblings continue
- Running-job sentinel and stale job recovery
- Adoption of existing production rows (version, app_ui_fields singleton)
- HTTP: /api/sync, /api/sync/jobs, /api/sync/runs, /api/sync/push
- Remote sync: pushing to an online deployment and mirroring its report locally
"""
from datetime import datetime, timedelta, timezone

import httpx
import pytest
from sqlalchemy.exc import OperationalError

from app.config import settings
from app.errors import ConflictError, NotFoundError, ServiceUnavailableError, UpstreamError, ValidationError
from app.models.audit_log import AuditLog
from app.models.draft_module import DraftBanner, DraftScene
from app.models.production import (
    AppUIFields,
    AppVersionName,
    Banner,
    ClothesCategory,
    ConfigExtraStep,
    Identity,
    PhotoHobby,
    Scene,
)
from app.models.sync import SyncIdMap, SyncJob, SyncModuleJob
from app.services.job_tracker import JobTracker
from app.services.modules import SYNC_ORDER
from app.services.sync_service import SyncOrchestrator, sync_draft_version
from app.services.sync_target import SyncTargetClient, get_sync_target
from tests.conftest import auth_headers, create_draft_version, seed_complete_draft

PRODUCTION_MODELS = (
    AppVersionName, Banner, Identity, Scene, ClothesCategory, PhotoHobby, ConfigExtraStep, AppUIFields,
)


def _counts(db):
    return {model.__tablename__: db.query(model).count() for model in PRODUCTION_MODELS}


def _failing(keys, after_write=False):
    """Replacement for SyncOrchestrator._sync_module that fails for ``keys``."""
    real = SyncOrchestrator._sync_module

    def _sync_module(self, descriptor, snapshot, target_version_id):
        if descriptor.key not in keys:
            return real(self, descriptor, snapshot, target_version_id)
        if after_write:
            real(self, descriptor, snapshot, target_version_id)
        raise OperationalError("INSERT INTO " + descriptor.production_table, {}, Exception("disk full"))

    return _sync_module


class TestFirstSync:

    def test_writes_every_module(self, db, operator):
        version = seed_complete_draft(db)
        result = sync_draft_version(db, version.id, operator.id)

        assert result.status == "synced"
        assert [o.module_key for o in result.per_module] == [
            "version_names", "banners", "identities", "scenes",
            "app_ui_fields", "config_extra_steps", "clothes_categories", "photo_hobbies",
        ]
        assert all(o.status == "success" for o in result.per_module)
        assert result.errors == []
        assert _counts(db) == {
            "app_version_names": 1, "banners": 1, "identities": 1, "scenes": 2,
            "clothes_categories": 1, "photo_hobbies": 1, "config_extra_steps": 1, "app_ui_fields": 1,
        }
        assert db.query(SyncIdMap).count() == 9
        assert len(result.mappings) == 9

        target = db.query(AppVersionName).one()
        assert result.target_app_version_name_id == target.id
        assert target.ai_modal == "SD"
        assert target.status == 1

        banner = db.query(Banner).one()
        assert banner.app_version_name == "MUSEUM"
        assert banner.is_active == 1
        assert banner.sort == 1
        assert db.query(ConfigExtraStep).one().app_version_name_id == target.id
        assert db.query(AppUIFields).one().app_version_name_id == target.id
        assert {s.need_watermark for s in db.query(Scene).all()} == {1}

    def test_records_jobs_and_draft_status(self, db, operator):
        version = seed_complete_draft(db)
        result = sync_draft_version(db, version.id, operator.id)

        job = db.query(SyncJob).one()
        assert job.id == result.job_id
        assert job.status == "success"
        assert job.finished_at is not None
        module_jobs = db.query(SyncModuleJob).filter(SyncModuleJob.sync_job_id == job.id).all()
        assert len(module_jobs) == 8
        assert {j.status for j in module_jobs} == {"success"}
        assert {o.job_id for o in result.per_module} == {j.id for j in module_jobs}

        db.refresh(version)
        assert version.sync_status == "synced"
        assert version.synced_at is not None
        assert version.target_app_version_name_id == result.target_app_version_name_id

        audit = db.query(AuditLog).filter(AuditLog.action == "sync").one()
        assert audit.actor_id == operator.id
        assert audit.detail_json["status"] == "synced"

    def test_version_names_only(self, db, operator):
        version = seed_complete_draft(db)
        result = sync_draft_version(db, version.id, operator.id, modules=["version_names"])

        assert [o.module_key for o in result.per_module] == ["version_names"]
        counts = _counts(db)
        assert counts.pop("app_version_names") == 1
        assert set(counts.values()) == {0}
        assert {m.module_key for m in db.query(SyncIdMap).all()} == {"version_names"}


class TestResync:

    def test_unchanged_snapshot_is_idempotent(self, db, operator):
        version = seed_complete_draft(db)
        sync_draft_version(db, version.id, operator.id)
        counts, mappings = _counts(db), db.query(SyncIdMap).count()

        result = sync_draft_version(db, version.id, operator.id, overwrite=True)
        assert result.status == "synced"
        assert _counts(db) == counts
        assert db.query(SyncIdMap).count() == mappings
        assert sum(o.inserted for o in result.per_module) == 0
        assert sum(o.deleted for o in result.per_module) == 0
        assert sum(o.updated for o in result.per_module) == 9

    def test_existing_version_needs_overwrite(self, db, operator):
        version = seed_complete_draft(db)
        first = sync_draft_version(db, version.id, operator.id)

        with pytest.raises(ConflictError) as exc:
            sync_draft_version(db, version.id, operator.id)
        assert exc.value.status_code == 409
        assert exc.value.detail == {
            "error": "app_version_name_exists",
            "need_confirm": True,
            "target_app_version_name_id": first.target_app_version_name_id,
        }
        assert db.query(SyncJob).count() == 1

    def test_removed_rows_are_deleted_and_changes_applied(self, db, operator):
        version = seed_complete_draft(db)
        sync_draft_version(db, version.id, operator.id)

        hall = db.query(DraftScene).filter(DraftScene.name == "Hall").one()
        db.delete(hall)
        banner = db.query(DraftBanner).one()
        banner.title = "Welcome back"
        db.commit()

        result = sync_draft_version(db, version.id, operator.id, overwrite=True)
        scenes = {o.module_key: o for o in result.per_module}["scenes"]
        assert scenes.deleted == 1
        assert [s.name for s in db.query(Scene).all()] == ["Entrance"]
        assert db.query(Banner).one().title == "Welcome back"
        assert db.query(SyncIdMap).filter(SyncIdMap.module_key == "scenes").count() == 1

    def test_module_filter_leaves_other_modules_alone(self, db, operator):
        version = seed_complete_draft(db)
        sync_draft_version(db, version.id, operator.id)
        db.query(DraftBanner).one().title = "Changed"
        db.query(DraftScene).filter(DraftScene.name == "Hall").one().name = "Gallery"
        db.commit()
        mappings = {(m.module_key, m.draft_row_id): m.target_row_id for m in db.query(SyncIdMap).all()}

        result = sync_draft_version(db, version.id, operator.id, overwrite=True, modules=["Scenes"])
        assert [o.module_key for o in result.per_module] == ["scenes"]
        assert db.query(Banner).one().title == "Welcome"
        assert sorted(s.name for s in db.query(Scene).all()) == ["Entrance", "Gallery"]
        assert {(m.module_key, m.draft_row_id): m.target_row_id for m in db.query(SyncIdMap).all()} == mappings

    def test_renamed_version_moves_rows(self, db, operator):
        version = seed_complete_draft(db)
        first = sync_draft_version(db, version.id, operator.id)
        version.app_version_name = "MUSEUM-2"
        db.commit()

        result = sync_draft_version(db, version.id, operator.id)
        assert result.status == "synced"
        assert result.target_app_version_name_id == first.target_app_version_name_id
        assert db.query(AppVersionName).one().app_version_name == "MUSEUM-2"
        assert {b.app_version_name for b in db.query(Banner).all()} == {"MUSEUM-2"}
        assert {s.app_version_name for s in db.query(Scene).all()} == {"MUSEUM-2"}

    def test_rename_onto_existing_version_takes_it_over(self, db, operator):
        museum = seed_complete_draft(db, name="MUSEUM")
        other = seed_complete_draft(db, name="OTHER", location="Elsewhere")
        first = sync_draft_version(db, museum.id, operator.id)
        taken = sync_draft_version(db, other.id, operator.id)
        museum.app_version_name = "OTHER"
        db.commit()

        for _ in range(2):
            result = sync_draft_version(db, museum.id, operator.id, overwrite=True)
            assert result.status == "synced", result.errors
            assert result.target_app_version_name_id == taken.target_app_version_name_id

        versions = {v.app_version_name: v for v in db.query(AppVersionName).all()}
        assert set(versions) == {"MUSEUM", "OTHER"}
        assert versions["MUSEUM"].id == first.target_app_version_name_id
        assert versions["OTHER"].location_name == "Museum"
        assert db.query(Scene).filter(Scene.app_version_name == "MUSEUM").count() == 2
        assert db.query(Banner).filter(Banner.app_version_name == "MUSEUM").count() == 1
        assert db.query(Scene).filter(Scene.app_version_name == "OTHER").count() == 2
        assert db.query(Banner).filter(Banner.app_version_name == "OTHER").count() == 1
        ui = db.query(AppUIFields).filter(AppUIFields.app_version_name_id == versions["OTHER"].id).one()
        assert ui.home_title_left == "Hello"
        version_map = (
            db.query(SyncIdMap)
            .filter(SyncIdMap.draft_version_id == museum.id, SyncIdMap.module_key == "version_names")
            .one()
        )
        assert version_map.target_row_id == versions["OTHER"].id


class TestAdoption:

    def test_existing_production_rows_are_taken_over(self, db, operator):
        legacy = AppVersionName(app_version_name="MUSEUM", location_name="Old", ai_modal="SD", status=1)
        db.add(legacy)
        db.commit()
        db.add(AppUIFields(app_version_name_id=legacy.id, home_title_left="Old", status=1))
        db.add(Banner(app_version_name="MUSEUM", image="legacy.png", sort=0, is_active=1))
        db.commit()

        version = seed_complete_draft(db)
        result = sync_draft_version(db, version.id, operator.id, overwrite=True)

        assert result.target_app_version_name_id == legacy.id
        assert db.query(AppVersionName).one().location_name == "Museum"
        ui = db.query(AppUIFields).one()
        assert ui.home_title_left == "Hello"
        # Module-scoped replace drops rows the draft does not have.
        assert [b.image for b in db.query(Banner).all()] == ["banner/a.png"]


class TestPrechecks:

    def test_validation_failure_writes_nothing(self, db, operator):
        version = create_draft_version(db, location=" ")
        with pytest.raises(ValidationError) as exc:
            sync_draft_version(db, version.id, operator.id)
        details = exc.value.detail["details"]
        assert {(d["module"], d["field"]) for d in details} == {
            ("version_names", "location_name"),
            ("scenes", "name"),
        }
        assert set(_counts(db).values()) == {0}
        assert db.query(SyncJob).count() == 0
        assert db.query(SyncIdMap).count() == 0
        db.refresh(version)
        assert version.sync_status == "failed"
        assert version.sync_message == "validation_failed"

    def test_invalid_modules(self, db, operator):
        version = seed_complete_draft(db)
        with pytest.raises(ValidationError) as exc:
            sync_draft_version(db, version.id, operator.id, modules=["banners", "Posters"])
        assert exc.value.detail["error"] == "invalid_modules"
        assert exc.value.detail["modules"] == ["posters"]

    def test_version_not_synced(self, db, operator):
        version = seed_complete_draft(db)
        with pytest.raises(NotFoundError) as exc:
            sync_draft_version(db, version.id, operator.id, modules=["banners"])
        assert exc.value.detail["error"] == "version_not_synced"
        assert set(_counts(db).values()) == {0}

    def test_unknown_draft_version(self, db, operator):
        with pytest.raises(NotFoundError):
            sync_draft_version(db, 9999, operator.id)


class TestPartialFailure:

    def test_failed_module_is_rolled_back_and_others_continue(self, db, operator, monkeypatch):
        version = seed_complete_draft(db)
        monkeypatch.setattr(SyncOrchestrator, "_sync_module", _failing({"banners"}, after_write=True))

        result = sync_draft_version(db, version.id, operator.id)
        outcomes = {o.module_key: o for o in result.per_module}
        assert result.status == "partial_failed"
        assert outcomes["banners"].status == "failed"
        assert outcomes["banners"].error_message == "disk full"
        assert result.errors == [{"module": "banners", "message": "disk full"}]
        assert db.query(Banner).count() == 0
        assert db.query(SyncIdMap).filter(SyncIdMap.module_key == "banners").count() == 0
        assert db.query(Scene).count() == 2

        failed_job = db.query(SyncModuleJob).filter(SyncModuleJob.module_key == "banners").one()
        assert failed_job.status == "failed"
        assert failed_job.error_message == "disk full"
        job = db.query(SyncJob).one()
        assert job.status == "failed"
        assert job.error_message == "partial_failed: banners"
        db.refresh(version)
        assert version.sync_status == "failed"

    def test_retry_after_partial_failure_does_not_duplicate(self, db, operator, monkeypatch):
        version = seed_complete_draft(db)
        monkeypatch.setattr(SyncOrchestrator, "_sync_module", _failing({"banners"}))
        sync_draft_version(db, version.id, operator.id)
        monkeypatch.undo()

        result = sync_draft_version(db, version.id, operator.id, overwrite=True)
        assert result.status == "synced"
        assert db.query(Banner).count() == 1
        assert db.query(Scene).count() == 2
        assert db.query(SyncIdMap).count() == 9

    def test_modules_fail_without_production_version(self, db, operator, monkeypatch):
        version = seed_complete_draft(db)
        monkeypatch.setattr(SyncOrchestrator, "_sync_module", _failing({"version_names"}))

        result = sync_draft_version(db, version.id, operator.id)
        outcomes = {o.module_key: o for o in result.per_module}
        assert outcomes["version_names"].error_message == "disk full"
        for key in SYNC_ORDER[1:]:
            assert outcomes[key].status == "failed"
            assert outcomes[key].error_message == "version_not_synced"
        assert result.status == "failed"
        assert set(_counts(db).values()) == {0}

    def test_every_module_failing(self, db, operator, monkeypatch):
        version = seed_complete_draft(db)
        monkeypatch.setattr(SyncOrchestrator, "_sync_module", _failing(set(SYNC_ORDER)))

        result = sync_draft_version(db, version.id, operator.id)
        assert result.status == "failed"
        assert len(result.errors) == 8
        assert set(_counts(db).values()) == {0}


class TestRunningSentinel:

    def test_running_job_blocks_second_sync(self, db, operator):
        version = seed_complete_draft(db)
        running = SyncJob(draft_version_id=version.id, status="running", started_at=datetime.now(timezone.utc))
        db.add(running)
        db.commit()

        with pytest.raises(ConflictError) as exc:
            sync_draft_version(db, version.id, operator.id)
        assert exc.value.detail["error"] == "sync_already_running"
        assert exc.value.detail["job_id"] == running.id
        assert set(_counts(db).values()) == {0}

    def test_stale_job_is_abandoned(self, db, operator):
        version = seed_complete_draft(db)
        stale = SyncJob(
            draft_version_id=version.id,
            status="running",
            started_at=datetime.now(timezone.utc) - timedelta(hours=2),
        )
        db.add(stale)
        db.commit()
        db.add(SyncModuleJob(sync_job_id=stale.id, draft_version_id=version.id, module_key="banners", status="running"))
        db.commit()

        result = sync_draft_version(db, version.id, operator.id)
        assert result.status == "synced"
        db.refresh(stale)
        assert stale.status == "failed"
        assert stale.error_message == "abandoned"
        old_module_job = db.query(SyncModuleJob).filter(SyncModuleJob.sync_job_id == stale.id).one()
        assert old_module_job.status == "failed"

    def test_other_draft_versions_are_not_blocked(self, db, operator):
        other = create_draft_version(db, name="OTHER")
        db.add(SyncJob(draft_version_id=other.id, status="running", started_at=datetime.now(timezone.utc)))
        db.commit()
        version = seed_complete_draft(db)
        assert sync_draft_version(db, version.id, operator.id).status == "synced"

    def test_lost_insert_race_is_a_conflict(self, db, session_factory, operator, monkeypatch):
        version = seed_complete_draft(db)
        competitor = {}

        def _running_job(self, draft_version_id):
            # Another run claims the sentinel right after our check came back empty.
            other = session_factory()
            try:
                job = SyncJob(draft_version_id=draft_version_id, status="running", started_at=datetime.now(timezone.utc))
                other.add(job)
                other.commit()
                competitor["id"] = job.id
            finally:
                other.close()
            return None

        monkeypatch.setattr(JobTracker, "_running_job", _running_job)
        with pytest.raises(ConflictError) as exc:
            JobTracker(db, settings.SYNC_JOB_STALE_SECONDS).start(version.id, operator.id, ["banners"])
        assert exc.value.status_code == 409
        assert exc.value.detail == {"error": "sync_already_running", "job_id": competitor["id"]}
        assert db.query(SyncJob).count() == 1
        assert db.query(SyncModuleJob).count() == 0


class TestSyncApi:

    def test_sync_and_job_listings(self, client, db, operator):
        version = seed_complete_draft(db)
        resp = client.post("/api/sync", json={"draft_version_id": version.id})
        assert resp.status_code == 200, resp.text
        data = resp.json()
        assert data["status"] == "synced"
        assert len(data["per_module"]) == 8
        assert len(data["mappings"]) == 9

        resp = client.get("/api/sync/jobs", params={"draft_version_id": version.id})
        assert resp.status_code == 200
        jobs = resp.json()
        assert len(jobs) == 8
        assert {j["trigger_name"] for j in jobs} == {"Operator"}

        resp = client.get("/api/sync/jobs", params={"draft_version_id": version.id, "module_key": "scenes"})
        assert [j["module_key"] for j in resp.json()] == ["scenes"]

        runs = client.get("/api/sync/runs", params={"draft_version_id": version.id}).json()
        assert len(runs) == 1
        assert runs[0]["status"] == "success"

    def test_overwrite_flow(self, client, db):
        version = seed_complete_draft(db)
        client.post("/api/sync", json={"draft_version_id": version.id})

        resp = client.post("/api/sync", json={"draft_version_id": version.id})
        assert resp.status_code == 409
        assert resp.json()["detail"]["need_confirm"] is True

        resp = client.post("/api/sync", json={"draft_version_id": version.id, "confirm": True})
        assert resp.status_code == 200
        assert resp.json()["status"] == "synced"

    def test_partial_failure_is_still_a_report(self, client, db, monkeypatch):
        version = seed_complete_draft(db)
        monkeypatch.setattr(SyncOrchestrator, "_sync_module", _failing({"photo_hobbies"}))
        resp = client.post("/api/sync", json={"draft_version_id": version.id})
        assert resp.status_code == 200
        assert resp.json()["status"] == "partial_failed"

    def test_validation_error_body(self, client, db):
        version = create_draft_version(db)
        resp = client.post("/api/sync", json={"draft_version_id": version.id, "modules": ["scenes"]})
        assert resp.status_code == 400
        detail = resp.json()["detail"]
        assert detail["error"] == "validation_failed"
        assert detail["details"][0]["message"] == "at least one scene is required"

    def test_requires_token(self, anon_client, db):
        version = seed_complete_draft(db)
        resp = anon_client.post("/api/sync", json={"draft_version_id": version.id})
        assert resp.status_code == 401

    def test_push_route_not_served_in_internal_mode(self, client):
        resp = client.post("/api/sync/push", json={})
        assert resp.status_code in (404, 405)


def _push_body(**overrides):
    body = {
        "draft_version_id": 77,
        "trigger_by": 5,
        "version": {"app_version_name": "MUSEUM", "location_name": "Museum"},
        "scenes": [{"id": 1, "name": "Entrance"}, {"id": 2, "name": "Hall"}],
        "banners": [{"id": 3, "image": "banner/a.png"}],
        "app_ui_fields": {"id": 4, "home_title_left": "Hello"},
    }
    body.update(overrides)
    return body


class TestPushReceiver:

    def test_push_writes_production(self, online_client, online_db):
        resp = online_client.post("/api/sync/push", json=_push_body(), headers={"X-API-Key": "push-key"})
        assert resp.status_code == 200, resp.text
        data = resp.json()
        assert data["status"] == "synced"
        target = online_db.query(AppVersionName).one()
        assert data["target_app_version_name_id"] == target.id
        assert {(m["module_key"], m["draft_id"]) for m in data["mappings"]} == {
            ("version_names", 77), ("scenes", 1), ("scenes", 2), ("banners", 3), ("app_ui_fields", 4),
        }
        assert online_db.query(Scene).count() == 2
        assert online_db.query(AppUIFields).one().app_version_name_id == target.id
        assert online_db.query(SyncJob).one().trigger_by == 5

    def test_repush_is_idempotent(self, online_client, online_db):
        first = online_client.post("/api/sync/push", json=_push_body(), params={"api_key": "push-key"}).json()
        again = online_client.post(
            "/api/sync/push", json=_push_body(confirm=True, scenes=[{"id": 1, "name": "Entrance"}]),
            params={"api_key": "push-key"},
        )
        assert again.status_code == 200, again.text
        first_targets = {(m["module_key"], m["draft_id"]): m["target_id"] for m in first["mappings"]}
        for m in again.json()["mappings"]:
            assert first_targets[(m["module_key"], m["draft_id"])] == m["target_id"]
        assert online_db.query(Scene).count() == 1

    def test_push_conflict_without_confirm(self, online_client):
        online_client.post("/api/sync/push", json=_push_body(), headers={"X-API-Key": "push-key"})
        resp = online_client.post("/api/sync/push", json=_push_body(), headers={"X-API-Key": "push-key"})
        assert resp.status_code == 409
        assert resp.json()["detail"]["error"] == "app_version_name_exists"

    def test_push_validation(self, online_client, online_db):
        resp = online_client.post(
            "/api/sync/push", json=_push_body(scenes=[]), headers={"X-API-Key": "push-key"},
        )
        assert resp.status_code == 400
        assert set(_counts(online_db).values()) == {0}

    def test_missing_or_wrong_key(self, online_client):
        assert online_client.post("/api/sync/push", json=_push_body()).status_code == 401
        resp = online_client.post("/api/sync/push", json=_push_body(), headers={"X-API-Key": "nope"})
        assert resp.status_code == 401

    def test_unconfigured_key(self, online_client, monkeypatch):
        monkeypatch.setattr(settings, "SYNC_API_KEY", "")
        resp = online_client.post("/api/sync/push", json=_push_body(), headers={"X-API-Key": "push-key"})
        assert resp.status_code == 503

    def test_online_mode_serves_push_only(self, online_client, operator):
        resp = online_client.post("/api/draft/submit", json={}, headers=auth_headers(operator))
        assert resp.status_code == 404
        assert online_client.get("/api/health").json() == {"status": "ok", "mode": "online"}


def _answering(status_code, body):
    """Sync target whose every request gets the same canned answer."""
    transport = httpx.MockTransport(lambda request: httpx.Response(status_code, json=body))
    return SyncTargetClient("http://online.test/api", "push-key", http=httpx.Client(transport=transport))


class TestRemoteSync:

    def test_push_writes_online_and_mirrors_report(self, db, online_db, operator, remote_target):
        version = seed_complete_draft(db)
        result = sync_draft_version(db, version.id, operator.id, target=remote_target)

        assert result.status == "synced"
        assert set(_counts(db).values()) == {0}
        assert _counts(online_db)["scenes"] == 2
        online_version = online_db.query(AppVersionName).one()
        assert result.target_app_version_name_id == online_version.id

        local_map = {(m.module_key, m.draft_row_id): m.target_row_id for m in db.query(SyncIdMap).all()}
        online_map = {(m.module_key, m.draft_row_id): m.target_row_id for m in online_db.query(SyncIdMap).all()}
        assert len(local_map) == 9
        assert local_map == online_map

        module_jobs = db.query(SyncModuleJob).all()
        assert len(module_jobs) == 8
        assert {j.status for j in module_jobs} == {"success"}
        db.refresh(version)
        assert version.sync_status == "synced"
        assert version.target_app_version_name_id == online_version.id
        audit = db.query(AuditLog).filter(AuditLog.action == "sync").one()
        assert audit.detail_json["target"] == "http://testserver/api"

    def test_need_confirm_leaves_draft_pending(self, db, online_db, operator, remote_target):
        version = seed_complete_draft(db)
        first = sync_draft_version(db, version.id, operator.id, target=remote_target)

        with pytest.raises(ConflictError) as exc:
            sync_draft_version(db, version.id, operator.id, target=remote_target)
        assert exc.value.detail == {
            "error": "app_version_name_exists",
            "need_confirm": True,
            "target_app_version_name_id": first.target_app_version_name_id,
        }
        db.refresh(version)
        assert version.sync_status == "pending_confirm"
        latest = db.query(SyncJob).order_by(SyncJob.id.desc()).first()
        assert latest.status == "failed"
        assert latest.error_message == "app_version_name_exists"
        assert {j.status for j in db.query(SyncModuleJob).filter(SyncModuleJob.sync_job_id == latest.id)} == {"failed"}

        again = sync_draft_version(db, version.id, operator.id, overwrite=True, target=remote_target)
        assert again.status == "synced"
        assert sum(o.inserted for o in again.per_module) == 0
        assert _counts(online_db)["scenes"] == 2

    def test_partial_failure_on_target(self, db, operator, remote_target, monkeypatch):
        version = seed_complete_draft(db)
        monkeypatch.setattr(SyncOrchestrator, "_sync_module", _failing({"photo_hobbies"}))

        result = sync_draft_version(db, version.id, operator.id, target=remote_target)
        assert result.status == "partial_failed"
        failed = db.query(SyncModuleJob).filter(SyncModuleJob.status == "failed").one()
        assert failed.module_key == "photo_hobbies"
        assert failed.error_message == "disk full"
        assert db.query(SyncIdMap).filter(SyncIdMap.module_key == "photo_hobbies").count() == 0
        assert db.query(SyncIdMap).filter(SyncIdMap.module_key == "scenes").count() == 2

    def test_target_validation_error(self, db, operator):
        issue = {"module": "scenes", "field": "name", "message": "scene name is required", "row_id": 3}
        target = _answering(400, {"detail": {"error": "validation_failed", "details": [issue]}})
        version = seed_complete_draft(db)

        with pytest.raises(ValidationError) as exc:
            sync_draft_version(db, version.id, operator.id, target=target)
        assert exc.value.status_code == 400
        assert exc.value.detail["details"] == [issue]
        db.refresh(version)
        assert version.sync_status == "failed"
        assert db.query(SyncJob).one().status == "failed"

    def test_target_failure_is_bad_gateway(self, db, operator):
        version = seed_complete_draft(db)
        with pytest.raises(UpstreamError) as exc:
            sync_draft_version(db, version.id, operator.id, target=_answering(500, {"error": "boom"}))
        assert exc.value.status_code == 502
        assert exc.value.detail == {"error": "boom", "target_status": 500}
        assert db.query(SyncJob).one().error_message == "boom"

    def test_wrong_api_key(self, db, operator, online_client):
        version = seed_complete_draft(db)
        target = SyncTargetClient("http://testserver/api", "nope", http=online_client)
        with pytest.raises(UpstreamError) as exc:
            sync_draft_version(db, version.id, operator.id, target=target)
        assert exc.value.detail == {"error": "invalid api key", "target_status": 401}

    def test_unreachable_target(self, db, operator):
        def _refuse(request):
            raise httpx.ConnectError("connection refused", request=request)

        target = SyncTargetClient("http://online.test/api", "k", http=httpx.Client(transport=httpx.MockTransport(_refuse)))
        version = seed_complete_draft(db)
        with pytest.raises(UpstreamError) as exc:
            sync_draft_version(db, version.id, operator.id, target=target)
        assert exc.value.detail == {"error": "sync failed", "target_status": 0}

    def test_sync_route_uses_target(self, remote_client, db, online_db):
        version = seed_complete_draft(db)
        resp = remote_client.post("/api/sync", json={"draft_version_id": version.id})
        assert resp.status_code == 200, resp.text
        assert resp.json()["status"] == "synced"
        assert online_db.query(AppVersionName).one().app_version_name == "MUSEUM"
        assert set(_counts(db).values()) == {0}


class TestSyncTargetConfig:

    def test_blank_url_means_local_sync(self, monkeypatch):
        monkeypatch.setattr(settings, "SYNC_TARGET_URL", "")
        assert get_sync_target() is None

    def test_url_without_key(self, monkeypatch):
        monkeypatch.setattr(settings, "SYNC_TARGET_URL", "https://online.example.com/api")
        monkeypatch.setattr(settings, "SYNC_API_KEY", " ")
        with pytest.raises(ServiceUnavailableError):
            get_sync_target()

    def test_push_url_is_accepted_as_base(self, monkeypatch):
        monkeypatch.setattr(settings, "SYNC_TARGET_URL", "https://online.example.com/api/sync/push/")
        monkeypatch.setattr(settings, "SYNC_API_KEY", "push-key")
        target = get_sync_target()
        assert target.base_url == "https://online.example.com/api"
        assert target.timeout == settings.SYNC_TIMEOUT_SECONDS
