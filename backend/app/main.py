"""FastAPI application entry point.

``APP_MODE=internal`` serves the authoring surface (users, submissions,
history, sync, jobs); ``APP_MODE=online`` serves only the sync receiver (push, versions, snapshot).
"""
import logging

from fastapi import Depends, FastAPI
from fastapi.middleware.cors import CORSMiddleware
from app.auth import get_current_user
from app.config import settings
from app.database import Base, engine

# Import routers
from app.routers import users, submissions, sync, sync_push, history

# Import all models so Base.metadata knows about them
from app.models.user import User                          # noqa: F401
from app.models.draft_version import DraftVersion         # noqa: F401
from app.models import draft_module, production           # noqa: F401
from app.models.submission import Submission, FieldHistory  # noqa: F401
from app.models.sync import SyncIdMap, SyncJob, SyncModuleJob  # noqa: F401
from app.models.audit_log import AuditLog                 # noqa: F401

logger = logging.getLogger(__name__)


def configure_logging(level: str) -> None:
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


def create_app(mode: str = "internal") -> FastAPI:
    online = mode.strip().lower() == "online"
    app = FastAPI(
        title="App UI Dashboard",
        description="Draft lifecycle and cross-environment sync for consumer app content",
        version="0.1.0",
    )

    # CORS
    app.add_middleware(
        CORSMiddleware,
        allow_origins=[o.strip() for o in settings.CORS_ORIGINS.split(",") if o.strip()],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # Register routers
    if online:
        app.include_router(sync_push.router, prefix="/api/sync", tags=["SyncPush"])
    else:
        authed = [Depends(get_current_user)]
        app.include_router(users.router, prefix="/api/users", tags=["Users"], dependencies=authed)
        app.include_router(submissions.router, prefix="/api/draft", tags=["Submissions"], dependencies=authed)
        app.include_router(sync.router, prefix="/api/sync", tags=["Sync"], dependencies=authed)
        app.include_router(history.router, prefix="/api", tags=["History"], dependencies=authed)

    @app.on_event("startup")
    def on_startup():
        """Create database tables on startup (for SQLite dev mode)."""
        if settings.DATABASE_URL.startswith("sqlite"):
            Base.metadata.create_all(bind=engine)
        logger.info("Started in %s mode", "online" if online else "internal")

    @app.get("/api/health")
    def health_check():
        return {"status": "ok", "mode": "online" if online else "internal"}

    return app


configure_logging(settings.LOG_LEVEL)
app = create_app(settings.APP_MODE)
