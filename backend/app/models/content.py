"""Content columns shared by draft and production tables of each module.

Draft tables (``app_db_*``) and their production counterparts carry the same
content fields; the mixins keep both sides in lockstep.
"""
from sqlalchemy import Column, Integer, String


class BannerContent:
    title = Column(String(255), nullable=True)
    image = Column(String(255), nullable=True)
    sort = Column(Integer, nullable=True)
    is_active = Column(Integer, nullable=True)
    type = Column(Integer, nullable=True)


class IdentityContent:
    name = Column(String(255), nullable=True)
    image = Column(String(500), nullable=True)
    sort = Column(Integer, nullable=True)
    status = Column(Integer, nullable=True)


class SceneContent:
    name = Column(String(255), nullable=True)
    image = Column(String(500), nullable=True)
    desc = Column(String(255), nullable=True)
    music = Column(String(255), nullable=True)
    watermark_path = Column(String(255), nullable=True)
    need_watermark = Column(Integer, nullable=True)
    sort = Column(Integer, nullable=True)
    status = Column(Integer, nullable=True)
    oss_style = Column(String(255), nullable=True)


class NamedMediaContent:
    """Clothes categories and photo hobbies have the same shape."""

    name = Column(String(255), nullable=True)
    image = Column(String(500), nullable=True)
    sort = Column(Integer, nullable=True)
    status = Column(Integer, nullable=True)
    music = Column(String(255), nullable=True)
    music_text = Column(String(255), nullable=True)
    desc = Column(String(255), nullable=True)


class ExtraStepContent:
    step_index = Column(Integer, nullable=True)
    field_name = Column(String(50), nullable=True)
    label = Column(String(100), nullable=True)
    music = Column(String(500), nullable=True)
    music_text = Column(String(255), nullable=True)
    status = Column(Integer, nullable=True)


class AppUIContent:
    home_title_left = Column(String(100), nullable=True)
    home_title_right = Column(String(100), nullable=True)
    home_subtitle = Column(String(200), nullable=True)
    start_experience = Column(String(255), nullable=True)
    step1_music = Column(String(500), nullable=True)
    step1_music_text = Column(String(500), nullable=True)
    step1_title = Column(String(255), nullable=True)
    step2_music = Column(String(500), nullable=True)
    step2_music_text = Column(String(500), nullable=True)
    step2_title = Column(String(255), nullable=True)
    print_wait = Column(String(255), nullable=True)
    status = Column(Integer, nullable=True)
