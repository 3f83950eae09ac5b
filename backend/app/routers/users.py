"""User API routes."""
import logging
from fastapi import APIRouter, Depends, status
from sqlalchemy.orm import Session

from app.auth import get_current_user
from app.database import get_db
from app.errors import ConflictError, ForbiddenError
from app.models.user import User
from app.schemas.user import UserCreate, UserOut

logger = logging.getLogger(__name__)
router = APIRouter()


@router.get("/me", response_model=UserOut)
def get_me(user: User = Depends(get_current_user)):
    """The operator behind the session token."""
    return user


@router.get("/", response_model=list[UserOut])
def list_users(db: Session = Depends(get_db)):
    """List all operators."""
    return db.query(User).order_by(User.id).all()


@router.post("/", response_model=UserOut, status_code=status.HTTP_201_CREATED)
def create_user(payload: UserCreate, db: Session = Depends(get_db), user: User = Depends(get_current_user)):
    """Register an operator record (admin only). Credentials live in the auth service."""
    if user.role != "admin":
        raise ForbiddenError("admin role required")
    if db.query(User).filter(User.username == payload.username).first():
        raise ConflictError("username already exists")
    created = User(**payload.model_dump())
    db.add(created)
    db.commit()
    db.refresh(created)
    logger.info("Created user %s (%s) by %s", created.id, created.username, user.id)
    return created
