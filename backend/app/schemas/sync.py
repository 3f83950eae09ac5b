"""Pydantic schemas for sync runs, the push receiver and job listings."""
from datetime import datetime
from typing import Optional, Any
from pydantic import BaseModel, Field


class SyncRequest(BaseModel):
    draft_version_id: int = Field(gt=0)
    confirm: bool = False
    modules: list[str] = Field(default_factory=list)


# ── push payload ─────────────────────────────────────────────────────────

class PushVersion(BaseModel):
    app_version_name: Optional[str] = None
    location_name: Optional[str] = None
    feishu_field_names: Optional[str] = None
    ai_modal: Optional[str] = None
    status: Optional[int] = None


class PushRow(BaseModel):
    id: int = Field(gt=0)
    target_id: Optional[int] = None


class PushBanner(PushRow):
    title: Optional[str] = None
    image: Optional[str] = None
    sort: Optional[int] = None
    is_active: Optional[int] = None
    type: Optional[int] = None


class PushIdentity(PushRow):
    name: Optional[str] = None
    image: Optional[str] = None
    sort: Optional[int] = None
    status: Optional[int] = None


class PushScene(PushRow):
    name: Optional[str] = None
    image: Optional[str] = None
    desc: Optional[str] = None
    music: Optional[str] = None
    watermark_path: Optional[str] = None
    need_watermark: Optional[int] = None
    sort: Optional[int] = None
    status: Optional[int] = None
    oss_style: Optional[str] = None


class PushNamedMedia(PushRow):
    name: Optional[str] = None
    image: Optional[str] = None
    sort: Optional[int] = None
    status: Optional[int] = None
    music: Optional[str] = None
    music_text: Optional[str] = None
    desc: Optional[str] = None


class PushExtraStep(PushRow):
    step_index: Optional[int] = None
    field_name: Optional[str] = None
    label: Optional[str] = None
    music: Optional[str] = None
    music_text: Optional[str] = None
    status: Optional[int] = None


class PushAppUIFields(PushRow):
    home_title_left: Optional[str] = None
    home_title_right: Optional[str] = None
    home_subtitle: Optional[str] = None
    start_experience: Optional[str] = None
    step1_music: Optional[str] = None
    step1_music_text: Optional[str] = None
    step1_title: Optional[str] = None
    step2_music: Optional[str] = None
    step2_music_text: Optional[str] = None
    step2_title: Optional[str] = None
    print_wait: Optional[str] = None
    status: Optional[int] = None


class SyncPushRequest(BaseModel):
    draft_version_id: int = Field(gt=0)
    trigger_by: Optional[int] = None
    confirm: bool = False
    modules: list[str] = Field(default_factory=list)
    version: PushVersion
    app_ui_fields: Optional[PushAppUIFields] = None
    banners: list[PushBanner] = Field(default_factory=list)
    identities: list[PushIdentity] = Field(default_factory=list)
    scenes: list[PushScene] = Field(default_factory=list)
    clothes_categories: list[PushNamedMedia] = Field(default_factory=list)
    photo_hobbies: list[PushNamedMedia] = Field(default_factory=list)
    config_extra_steps: list[PushExtraStep] = Field(default_factory=list)


# ── pull / import ────────────────────────────────────────────────────────

class ProductionVersionOut(BaseModel):
    target_app_version_name_id: int
    app_version_name: Optional[str] = None
    location_name: Optional[str] = None
    feishu_field_names: Optional[str] = None
    ai_modal: Optional[str] = None
    status: Optional[int] = None
    updated_at: Optional[datetime] = None


class ProductionVersionList(BaseModel):
    data: list[ProductionVersionOut]


class ProductionSnapshot(BaseModel):
    """One production version with its module rows; ``id`` fields are production ids."""

    version: ProductionVersionOut
    app_ui_fields: Optional[PushAppUIFields] = None
    banners: list[PushBanner] = Field(default_factory=list)
    identities: list[PushIdentity] = Field(default_factory=list)
    scenes: list[PushScene] = Field(default_factory=list)
    clothes_categories: list[PushNamedMedia] = Field(default_factory=list)
    photo_hobbies: list[PushNamedMedia] = Field(default_factory=list)
    config_extra_steps: list[PushExtraStep] = Field(default_factory=list)


class ProductionSnapshotOut(BaseModel):
    data: ProductionSnapshot


class ImportRequest(BaseModel):
    target_app_version_name_id: Optional[int] = Field(default=None, gt=0)
    app_version_name: Optional[str] = None
    # Existing draft version to overwrite; a new one is created when omitted.
    draft_version_id: Optional[int] = Field(default=None, gt=0)


class ImportResultOut(BaseModel):
    status: str
    draft_version_id: int
    target_app_version_name_id: int
    app_version_name: Optional[str] = None
    location_name: Optional[str] = None


# ── results ──────────────────────────────────────────────────────────────

class ModuleOutcomeOut(BaseModel):
    module_key: str
    status: str
    error_message: Optional[str] = None
    inserted: int = 0
    updated: int = 0
    deleted: int = 0
    job_id: Optional[int] = None

    model_config = {"from_attributes": True}


class SyncMapping(BaseModel):
    module_key: str
    draft_id: int
    target_id: int


class SyncResultOut(BaseModel):
    status: str
    draft_version_id: int
    job_id: Optional[int] = None
    target_app_version_name_id: Optional[int] = None
    per_module: list[ModuleOutcomeOut]
    errors: list[dict[str, Any]]
    mappings: list[SyncMapping]

    model_config = {"from_attributes": True}


class SyncModuleJobOut(BaseModel):
    id: int
    sync_job_id: Optional[int] = None
    draft_version_id: int
    module_key: str
    trigger_by: Optional[int] = None
    trigger_name: Optional[str] = None
    status: str
    error_message: Optional[str] = None
    started_at: Optional[datetime] = None
    finished_at: Optional[datetime] = None
    created_at: Optional[datetime] = None

    model_config = {"from_attributes": True}


class SyncJobOut(BaseModel):
    id: int
    draft_version_id: int
    trigger_by: Optional[int] = None
    trigger_name: Optional[str] = None
    status: str
    error_message: Optional[str] = None
    started_at: Optional[datetime] = None
    finished_at: Optional[datetime] = None
    created_at: Optional[datetime] = None

    model_config = {"from_attributes": True}
