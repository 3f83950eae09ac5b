"""Operator directory lookups."""
from typing import Iterable, Optional

from sqlalchemy.orm import Session

from app.models.user import User


def display_names(db: Session, user_ids: Iterable[Optional[int]]) -> dict[int, str]:
    """Map user id → display name (username when no display name is set)."""
    ids = {uid for uid in user_ids if uid}
    if not ids:
        return {}
    users = db.query(User).filter(User.id.in_(ids)).all()
    return {u.id: u.display_name or u.username for u in users}
