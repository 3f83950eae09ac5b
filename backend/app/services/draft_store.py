"""Read access to the draft record store.

Assembles the snapshot the validation rules and the sync orchestrator work
on, and resolves the entity references carried by submissions.
"""
import logging
from dataclasses import dataclass, field
from typing import Any, Iterable, Optional

from sqlalchemy.orm import Session

from app.errors import NotFoundError
from app.models.draft_version import DraftVersion
from app.services.modules import MODULES, VERSION_MODULE, ModuleDescriptor, module_for_table, resolve_modules

logger = logging.getLogger(__name__)


@dataclass
class DraftSnapshot:
    """Version fields plus draft rows per module, as plain dicts keyed by column."""

    draft_version_id: int
    version: dict[str, Any]
    rows: dict[str, list[dict[str, Any]]] = field(default_factory=dict)

    @property
    def app_version_name(self) -> str:
        return (self.version.get("app_version_name") or "").strip()

    def rows_for(self, module_key: str) -> list[dict[str, Any]]:
        if module_key == VERSION_MODULE:
            return [self.version]
        return self.rows.get(module_key, [])


def _row_to_dict(obj, descriptor: ModuleDescriptor) -> dict[str, Any]:
    data = {"id": obj.id}
    for name in descriptor.fields:
        data[name] = getattr(obj, name)
    return data


def get_draft_version(db: Session, draft_version_id: int) -> DraftVersion:
    version = db.query(DraftVersion).filter(DraftVersion.id == draft_version_id).first()
    if not version:
        raise NotFoundError("draft version not found")
    return version


def load_snapshot(db: Session, draft_version_id: int, modules: Optional[Iterable[str]] = None) -> DraftSnapshot:
    """Load the draft version and the rows of the requested modules."""
    version = get_draft_version(db, draft_version_id)
    snapshot = DraftSnapshot(
        draft_version_id=version.id,
        version=_row_to_dict(version, MODULES[VERSION_MODULE]),
    )
    for key in resolve_modules(modules):
        if key == VERSION_MODULE:
            continue
        descriptor = MODULES[key]
        model = descriptor.draft_model
        items = (
            db.query(model)
            .filter(model.draft_version_id == draft_version_id)
            .order_by(model.id)
            .all()
        )
        snapshot.rows[key] = [_row_to_dict(item, descriptor) for item in items]
    logger.debug(
        "Loaded snapshot for draft version %s: %s",
        draft_version_id,
        {key: len(rows) for key, rows in snapshot.rows.items()},
    )
    return snapshot


def get_entity(db: Session, draft_version_id: int, entity_table: str, entity_id: int):
    """Return the draft row a submission refers to, scoped to its draft version."""
    descriptor = module_for_table(entity_table)
    if descriptor is None:
        raise NotFoundError(f"unknown entity table: {entity_table}")
    model = descriptor.draft_model
    entity = db.query(model).filter(model.id == entity_id).first()
    if entity is None:
        raise NotFoundError(f"{entity_table} {entity_id} not found")
    owner_id = entity.id if descriptor.key == VERSION_MODULE else entity.draft_version_id
    if owner_id != draft_version_id:
        raise NotFoundError(f"{entity_table} {entity_id} not found in draft version {draft_version_id}")
    return entity
