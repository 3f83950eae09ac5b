"""Module registry — one descriptor per syncable content module.

Every module-specific difference (tables, content fields, required fields,
production defaults, how production rows are scoped) lives here so the
validation rules and the sync orchestrator stay table-driven.
"""
from dataclasses import dataclass, field
from typing import Any, Iterable, Optional

from app.models.draft_version import DraftVersion
from app.models.draft_module import (
    DraftBanner,
    DraftIdentity,
    DraftScene,
    DraftClothesCategory,
    DraftPhotoHobby,
    DraftConfigExtraStep,
    DraftAppUIFields,
)
from app.models.production import (
    AppVersionName,
    Banner,
    Identity,
    Scene,
    ClothesCategory,
    PhotoHobby,
    ConfigExtraStep,
    AppUIFields,
)

# Production scoping, named after the production column that carries it.
SCOPE_VERSION = "version"
SCOPE_NAME = "app_version_name"
SCOPE_VERSION_ID = "app_version_name_id"

VERSION_MODULE = "version_names"


@dataclass(frozen=True)
class ModuleDescriptor:
    key: str
    label: str
    draft_model: Any
    production_model: Any
    fields: tuple[str, ...]
    scope: str
    required: tuple[str, ...] = ()
    require_rows: bool = False
    singleton: bool = False
    defaults: dict[str, Any] = field(default_factory=dict)

    @property
    def entity_table(self) -> str:
        return self.draft_model.__tablename__

    @property
    def production_table(self) -> str:
        return self.production_model.__tablename__

    def production_values(self, row: dict[str, Any]) -> dict[str, Any]:
        """Map a draft row onto production columns (trimmed, blank → NULL, then defaults)."""
        values: dict[str, Any] = {}
        for name in self.fields:
            value = row.get(name)
            if isinstance(value, str):
                value = value.strip() or None
            if value is None and name in self.defaults:
                value = self.defaults[name]
            values[name] = value
        return values


_NAMED_MEDIA_FIELDS = ("name", "image", "sort", "status", "music", "music_text", "desc")

MODULES: dict[str, ModuleDescriptor] = {
    d.key: d
    for d in (
        ModuleDescriptor(
            key=VERSION_MODULE,
            label="version",
            draft_model=DraftVersion,
            production_model=AppVersionName,
            fields=("app_version_name", "location_name", "feishu_field_names", "ai_modal", "status"),
            scope=SCOPE_VERSION,
            required=("app_version_name", "location_name"),
            singleton=True,
            defaults={"ai_modal": "SD", "status": 1},
        ),
        ModuleDescriptor(
            key="banners",
            label="banner",
            draft_model=DraftBanner,
            production_model=Banner,
            fields=("title", "image", "sort", "is_active", "type"),
            scope=SCOPE_NAME,
            required=("image",),
            defaults={"sort": 0, "is_active": 1},
        ),
        ModuleDescriptor(
            key="identities",
            label="identity",
            draft_model=DraftIdentity,
            production_model=Identity,
            fields=("name", "image", "sort", "status"),
            scope=SCOPE_NAME,
            required=("name",),
            defaults={"sort": 0, "status": 1},
        ),
        ModuleDescriptor(
            key="scenes",
            label="scene",
            draft_model=DraftScene,
            production_model=Scene,
            fields=(
                "name", "image", "desc", "music", "watermark_path",
                "need_watermark", "sort", "status", "oss_style",
            ),
            scope=SCOPE_NAME,
            required=("name",),
            require_rows=True,
            defaults={"need_watermark": 1, "sort": 0, "status": 1},
        ),
        ModuleDescriptor(
            key="app_ui_fields",
            label="app ui fields record",
            draft_model=DraftAppUIFields,
            production_model=AppUIFields,
            fields=(
                "home_title_left", "home_title_right", "home_subtitle", "start_experience",
                "step1_music", "step1_music_text", "step1_title",
                "step2_music", "step2_music_text", "step2_title",
                "print_wait", "status",
            ),
            scope=SCOPE_VERSION_ID,
            singleton=True,
            defaults={"status": 1},
        ),
        ModuleDescriptor(
            key="config_extra_steps",
            label="extra config step",
            draft_model=DraftConfigExtraStep,
            production_model=ConfigExtraStep,
            fields=("step_index", "field_name", "label", "music", "music_text", "status"),
            scope=SCOPE_VERSION_ID,
            required=("step_index", "field_name", "label"),
            defaults={"status": 1},
        ),
        ModuleDescriptor(
            key="clothes_categories",
            label="clothes category",
            draft_model=DraftClothesCategory,
            production_model=ClothesCategory,
            fields=_NAMED_MEDIA_FIELDS,
            scope=SCOPE_NAME,
            required=("name",),
            defaults={"sort": 0, "status": 1},
        ),
        ModuleDescriptor(
            key="photo_hobbies",
            label="photo hobby",
            draft_model=DraftPhotoHobby,
            production_model=PhotoHobby,
            fields=_NAMED_MEDIA_FIELDS,
            scope=SCOPE_NAME,
            required=("name",),
            defaults={"sort": 0, "status": 1},
        ),
    )
}

# version_names must run first: every other module is scoped by its result.
SYNC_ORDER: tuple[str, ...] = tuple(MODULES)

_BY_TABLE = {d.entity_table: d for d in MODULES.values()}


def _clean_keys(modules: Optional[Iterable[str]]) -> list[str]:
    keys: list[str] = []
    for module in modules or ():
        key = (module or "").strip().lower()
        if key and key not in keys:
            keys.append(key)
    return keys


def find_invalid_modules(modules: Optional[Iterable[str]]) -> list[str]:
    return [key for key in _clean_keys(modules) if key not in MODULES]


def normalize_modules(modules: Optional[Iterable[str]]) -> list[str]:
    """Known module keys from a filter, de-duplicated, in sync order."""
    wanted = {key for key in _clean_keys(modules) if key in MODULES}
    return [key for key in SYNC_ORDER if key in wanted]


def resolve_modules(modules: Optional[Iterable[str]]) -> list[str]:
    """An empty filter means every module."""
    return normalize_modules(modules) or list(SYNC_ORDER)


def should_sync_module(modules: Optional[Iterable[str]], key: str) -> bool:
    selected = normalize_modules(modules)
    return not selected or key in selected


def get_module(key: str) -> Optional[ModuleDescriptor]:
    return MODULES.get((key or "").strip().lower())


def module_for_table(entity_table: str) -> Optional[ModuleDescriptor]:
    return _BY_TABLE.get((entity_table or "").strip())
