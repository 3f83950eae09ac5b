"""Validation rule set for an assembled draft snapshot.

Pure functions: nothing here touches the database. Issues are collected,
not fail-fast, so a caller can render every violation at once.
"""
from dataclasses import asdict, dataclass
from typing import Any, Iterable, Optional

from app.services.modules import MODULES, VERSION_MODULE, normalize_modules


@dataclass(frozen=True)
class ValidationIssue:
    module: str
    field: str
    message: str
    row_id: int = 0

    def as_dict(self) -> dict[str, Any]:
        return asdict(self)


def _is_blank(value: Any) -> bool:
    if value is None:
        return True
    if isinstance(value, str):
        return not value.strip()
    return False


def validate_snapshot(snapshot, modules: Optional[Iterable[str]] = None) -> list[ValidationIssue]:
    """Check required fields of ``snapshot`` for the selected modules.

    The version identity (app_version_name, location_name) is checked no
    matter which modules are selected; an empty ``modules`` selects all.
    """
    issues: list[ValidationIssue] = []

    version = MODULES[VERSION_MODULE]
    for name in version.required:
        if _is_blank(snapshot.version.get(name)):
            issues.append(ValidationIssue(VERSION_MODULE, name, f"{name} is required"))

    selected = normalize_modules(modules) or list(MODULES)
    for key in selected:
        if key == VERSION_MODULE:
            continue
        descriptor = MODULES[key]
        rows = snapshot.rows_for(key)
        if descriptor.require_rows and not rows:
            issues.append(ValidationIssue(
                key, descriptor.required[0], f"at least one {descriptor.label} is required",
            ))
        for row in rows:
            for name in descriptor.required:
                if _is_blank(row.get(name)):
                    issues.append(ValidationIssue(key, name, f"{name} is required", row.get("id") or 0))

    return issues
