"""Request authentication.

- Authoring routes: ``Authorization: Bearer <jwt>`` issued by the external
  auth service, HS256, ``sub`` = operator id.
- Push receiver: static ``SYNC_API_KEY`` from the ``X-API-Key`` header or
  the ``api_key`` query parameter.
"""
import hmac
import logging
from typing import Optional

from fastapi import Depends, Request
from jose import jwt
from jose.exceptions import JWTError
from sqlalchemy.orm import Session

from app.config import settings
from app.database import get_db
from app.errors import AuthorizationError, ServiceUnavailableError
from app.models.user import User

logger = logging.getLogger(__name__)


def _get_bearer_token(request: Request) -> Optional[str]:
    auth = request.headers.get("Authorization", "")
    if not auth.startswith("Bearer "):
        return None
    return auth.split(" ", 1)[1].strip() or None


def create_access_token(user_id: int, **claims) -> str:
    """Sign a session token; used by tooling and tests, issuance is otherwise external."""
    payload = {"sub": str(user_id), **claims}
    return jwt.encode(payload, settings.JWT_SECRET, algorithm=settings.JWT_ALGORITHM)


def get_current_user(request: Request, db: Session = Depends(get_db)) -> User:
    token = _get_bearer_token(request)
    if not token:
        raise AuthorizationError("missing token")
    try:
        claims = jwt.decode(token, settings.JWT_SECRET, algorithms=[settings.JWT_ALGORITHM])
        user_id = int(claims.get("sub"))
    except (JWTError, TypeError, ValueError):
        logger.warning("Rejected invalid bearer token")
        raise AuthorizationError("invalid token")

    user = db.query(User).filter(User.id == user_id, User.status == 1).first()
    if not user:
        raise AuthorizationError("unknown user")
    request.state.user_id = user.id
    return user


def require_api_key(request: Request) -> None:
    expected = settings.SYNC_API_KEY.strip()
    if not expected:
        raise ServiceUnavailableError("api key not configured")
    provided = request.headers.get("X-API-Key") or request.query_params.get("api_key") or ""
    if not hmac.compare_digest(provided.strip().encode(), expected.encode()):
        logger.warning("Rejected push from %s: invalid api key", request.client.host if request.client else "-")
        raise AuthorizationError("invalid api key")
