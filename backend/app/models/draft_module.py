"""Draft module ORM models — rows owned by exactly one DraftVersion."""
from sqlalchemy import Column, Integer, DateTime, ForeignKey
from sqlalchemy.sql import func
from app.database import Base
from app.models.content import (
    BannerContent,
    IdentityContent,
    SceneContent,
    NamedMediaContent,
    ExtraStepContent,
    AppUIContent,
)


class DraftRowMixin:
    id = Column(Integer, primary_key=True, autoincrement=True)
    created_by = Column(Integer, nullable=True)
    updated_by = Column(Integer, nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())


class DraftBanner(DraftRowMixin, BannerContent, Base):
    __tablename__ = "app_db_banners"

    draft_version_id = Column(Integer, ForeignKey("app_db_version_names.id"), nullable=False, index=True)


class DraftIdentity(DraftRowMixin, IdentityContent, Base):
    __tablename__ = "app_db_identities"

    draft_version_id = Column(Integer, ForeignKey("app_db_version_names.id"), nullable=False, index=True)


class DraftScene(DraftRowMixin, SceneContent, Base):
    __tablename__ = "app_db_scenes"

    draft_version_id = Column(Integer, ForeignKey("app_db_version_names.id"), nullable=False, index=True)


class DraftClothesCategory(DraftRowMixin, NamedMediaContent, Base):
    __tablename__ = "app_db_clothes_categories"

    draft_version_id = Column(Integer, ForeignKey("app_db_version_names.id"), nullable=False, index=True)


class DraftPhotoHobby(DraftRowMixin, NamedMediaContent, Base):
    __tablename__ = "app_db_photo_hobbies"

    draft_version_id = Column(Integer, ForeignKey("app_db_version_names.id"), nullable=False, index=True)


class DraftConfigExtraStep(DraftRowMixin, ExtraStepContent, Base):
    __tablename__ = "app_db_config_extra_steps"

    draft_version_id = Column(Integer, ForeignKey("app_db_version_names.id"), nullable=False, index=True)


class DraftAppUIFields(DraftRowMixin, AppUIContent, Base):
    """Singleton per draft version."""

    __tablename__ = "app_db_app_ui_fields"

    draft_version_id = Column(Integer, ForeignKey("app_db_version_names.id"), nullable=False, unique=True)
