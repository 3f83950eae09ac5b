"""Production ORM models — the tables the consumer app reads."""
from sqlalchemy import Column, Integer, String, Text, DateTime
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


class ProductionRowMixin:
    id = Column(Integer, primary_key=True, autoincrement=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())


class AppVersionName(ProductionRowMixin, Base):
    __tablename__ = "app_version_names"

    app_version_name = Column(String(255), nullable=False, unique=True)
    location_name = Column(String(255), nullable=False)
    feishu_field_names = Column(Text, nullable=True)
    ai_modal = Column(String(255), nullable=False, default="SD")
    status = Column(Integer, nullable=False, default=1)


class Banner(ProductionRowMixin, BannerContent, Base):
    __tablename__ = "banners"

    app_version_name = Column(String(255), nullable=False, index=True)
    sort = Column(Integer, nullable=False, default=0)
    is_active = Column(Integer, nullable=False, default=1)


class Identity(ProductionRowMixin, IdentityContent, Base):
    __tablename__ = "identities"

    app_version_name = Column(String(255), nullable=False, index=True)
    sort = Column(Integer, nullable=False, default=0)
    status = Column(Integer, nullable=False, default=1)


class Scene(ProductionRowMixin, SceneContent, Base):
    __tablename__ = "scenes"

    app_version_name = Column(String(255), nullable=False, index=True)
    need_watermark = Column(Integer, nullable=False, default=1)
    sort = Column(Integer, nullable=False, default=0)
    status = Column(Integer, nullable=False, default=1)


class ClothesCategory(ProductionRowMixin, NamedMediaContent, Base):
    __tablename__ = "clothes_categories"

    app_version_name = Column(String(255), nullable=False, index=True)
    sort = Column(Integer, nullable=False, default=0)
    status = Column(Integer, nullable=False, default=1)


class PhotoHobby(ProductionRowMixin, NamedMediaContent, Base):
    __tablename__ = "photo_hobbies"

    app_version_name = Column(String(255), nullable=False, index=True)
    sort = Column(Integer, nullable=False, default=0)
    status = Column(Integer, nullable=False, default=1)


class ConfigExtraStep(ProductionRowMixin, ExtraStepContent, Base):
    __tablename__ = "config_extra_steps"

    app_version_name_id = Column(Integer, nullable=False, index=True)
    status = Column(Integer, nullable=False, default=1)


class AppUIFields(ProductionRowMixin, AppUIContent, Base):
    __tablename__ = "app_ui_fields"

    app_version_name_id = Column(Integer, nullable=False, index=True)
    status = Column(Integer, nullable=False, default=1)
