"""initial_schema

Revision ID: 0001
Revises:
Create Date: 2026-10-19

Creates the authoring tables (app_db_*: users, version names, module
drafts, submissions, field history, audit logs, sync id map, sync jobs)
and the production tables (app_version_names, banners, identities,
scenes, clothes_categories, photo_hobbies, config_extra_steps,
app_ui_fields).
"""
from typing import Sequence, Union
from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = "0001"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def _timestamps():
    return [
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
    ]


def _draft_columns():
    return [
        sa.Column("id", sa.Integer, primary_key=True, autoincrement=True),
        sa.Column("created_by", sa.Integer, nullable=True),
        sa.Column("updated_by", sa.Integer, nullable=True),
        *_timestamps(),
    ]


def _draft_owner(unique: bool = False):
    return sa.Column(
        "draft_version_id", sa.Integer, sa.ForeignKey("app_db_version_names.id"),
        nullable=False, index=not unique, unique=unique,
    )


def _production_columns():
    return [sa.Column("id", sa.Integer, primary_key=True, autoincrement=True), *_timestamps()]


def _scope_name():
    return sa.Column("app_version_name", sa.String(255), nullable=False, index=True)


def _scope_version_id():
    return sa.Column("app_version_name_id", sa.Integer, nullable=False, index=True)


def _banner_content(production: bool = False):
    return [
        sa.Column("title", sa.String(255), nullable=True),
        sa.Column("image", sa.String(255), nullable=True),
        sa.Column("sort", sa.Integer, nullable=not production, server_default="0" if production else None),
        sa.Column("is_active", sa.Integer, nullable=not production, server_default="1" if production else None),
        sa.Column("type", sa.Integer, nullable=True),
    ]


def _identity_content(production: bool = False):
    return [
        sa.Column("name", sa.String(255), nullable=True),
        sa.Column("image", sa.String(500), nullable=True),
        sa.Column("sort", sa.Integer, nullable=not production, server_default="0" if production else None),
        sa.Column("status", sa.Integer, nullable=not production, server_default="1" if production else None),
    ]


def _scene_content(production: bool = False):
    return [
        sa.Column("name", sa.String(255), nullable=True),
        sa.Column("image", sa.String(500), nullable=True),
        sa.Column("desc", sa.String(255), nullable=True),
        sa.Column("music", sa.String(255), nullable=True),
        sa.Column("watermark_path", sa.String(255), nullable=True),
        sa.Column("need_watermark", sa.Integer, nullable=not production, server_default="1" if production else None),
        sa.Column("sort", sa.Integer, nullable=not production, server_default="0" if production else None),
        sa.Column("status", sa.Integer, nullable=not production, server_default="1" if production else None),
        sa.Column("oss_style", sa.String(255), nullable=True),
    ]


def _named_media_content(production: bool = False):
    return [
        sa.Column("name", sa.String(255), nullable=True),
        sa.Column("image", sa.String(500), nullable=True),
        sa.Column("sort", sa.Integer, nullable=not production, server_default="0" if production else None),
        sa.Column("status", sa.Integer, nullable=not production, server_default="1" if production else None),
        sa.Column("music", sa.String(255), nullable=True),
        sa.Column("music_text", sa.String(255), nullable=True),
        sa.Column("desc", sa.String(255), nullable=True),
    ]


def _extra_step_content(production: bool = False):
    return [
        sa.Column("step_index", sa.Integer, nullable=True),
        sa.Column("field_name", sa.String(50), nullable=True),
        sa.Column("label", sa.String(100), nullable=True),
        sa.Column("music", sa.String(500), nullable=True),
        sa.Column("music_text", sa.String(255), nullable=True),
        sa.Column("status", sa.Integer, nullable=not production, server_default="1" if production else None),
    ]


def _app_ui_content(production: bool = False):
    return [
        sa.Column("home_title_left", sa.String(100), nullable=True),
        sa.Column("home_title_right", sa.String(100), nullable=True),
        sa.Column("home_subtitle", sa.String(200), nullable=True),
        sa.Column("start_experience", sa.String(255), nullable=True),
        sa.Column("step1_music", sa.String(500), nullable=True),
        sa.Column("step1_music_text", sa.String(500), nullable=True),
        sa.Column("step1_title", sa.String(255), nullable=True),
        sa.Column("step2_music", sa.String(500), nullable=True),
        sa.Column("step2_music_text", sa.String(500), nullable=True),
        sa.Column("step2_title", sa.String(255), nullable=True),
        sa.Column("print_wait", sa.String(255), nullable=True),
        sa.Column("status", sa.Integer, nullable=not production, server_default="1" if production else None),
    ]


_MODULE_CONTENT = {
    "banners": _banner_content,
    "identities": _identity_content,
    "scenes": _scene_content,
    "clothes_categories": _named_media_content,
    "photo_hobbies": _named_media_content,
}


def upgrade() -> None:
    # --- users ---
    op.create_table(
        "app_db_users",
        sa.Column("id", sa.Integer, primary_key=True, autoincrement=True),
        sa.Column("username", sa.String(100), nullable=False, unique=True),
        sa.Column("display_name", sa.String(100), nullable=True),
        sa.Column("role", sa.String(20), nullable=False, server_default="user"),
        sa.Column("status", sa.Integer, nullable=False, server_default="1"),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
    )

    # --- draft versions ---
    op.create_table(
        "app_db_version_names",
        sa.Column("id", sa.Integer, primary_key=True, autoincrement=True),
        sa.Column("app_version_name", sa.String(255), nullable=True, index=True),
        sa.Column("location_name", sa.String(255), nullable=True),
        sa.Column("feishu_field_names", sa.Text, nullable=True),
        sa.Column("ai_modal", sa.String(255), nullable=True),
        sa.Column("status", sa.Integer, nullable=True),
        sa.Column("draft_status", sa.String(32), nullable=False, server_default="draft"),
        sa.Column("submit_version", sa.Integer, nullable=False, server_default="0"),
        sa.Column("last_submit_by", sa.Integer, nullable=True),
        sa.Column("last_submit_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("confirmed_by", sa.Integer, nullable=True),
        sa.Column("confirmed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("sync_status", sa.String(32), nullable=True),
        sa.Column("sync_message", sa.String(500), nullable=True),
        sa.Column("synced_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("target_app_version_name_id", sa.Integer, nullable=True),
        sa.Column("created_by", sa.Integer, nullable=True),
        sa.Column("updated_by", sa.Integer, nullable=True),
        *_timestamps(),
    )

    # --- module drafts ---
    for table, content in _MODULE_CONTENT.items():
        op.create_table(f"app_db_{table}", *_draft_columns(), *content(), _draft_owner())
    op.create_table("app_db_config_extra_steps", *_draft_columns(), *_extra_step_content(), _draft_owner())
    op.create_table("app_db_app_ui_fields", *_draft_columns(), *_app_ui_content(), _draft_owner(unique=True))

    # --- submissions / field history / audit ---
    op.create_table(
        "app_db_submissions",
        sa.Column("id", sa.Integer, primary_key=True, autoincrement=True),
        sa.Column("draft_version_id", sa.Integer, sa.ForeignKey("app_db_version_names.id"), nullable=False, index=True),
        sa.Column("module_key", sa.String(50), nullable=False, index=True),
        sa.Column("entity_table", sa.String(64), nullable=False),
        sa.Column("entity_id", sa.Integer, nullable=False),
        sa.Column("submit_version", sa.Integer, nullable=False),
        sa.Column("submit_by", sa.Integer, nullable=False),
        sa.Column("payload_json", sa.JSON, nullable=False),
        sa.Column("diff_json", sa.JSON, nullable=True),
        sa.Column("need_confirm", sa.Boolean, nullable=False, server_default=sa.false()),
        sa.Column("status", sa.String(32), nullable=False, server_default="submitted"),
        sa.Column("prev_submission_id", sa.Integer, sa.ForeignKey("app_db_submissions.id"), nullable=True),
        sa.Column("confirmed_by", sa.Integer, nullable=True),
        sa.Column("confirmed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.UniqueConstraint("draft_version_id", "submit_version", name="uk_submission_draft_version"),
    )
    op.create_table(
        "app_db_field_history",
        sa.Column("id", sa.Integer, primary_key=True, autoincrement=True),
        sa.Column("draft_version_id", sa.Integer, nullable=False, index=True),
        sa.Column("entity_table", sa.String(64), nullable=False),
        sa.Column("entity_id", sa.Integer, nullable=False),
        sa.Column("field_name", sa.String(100), nullable=False),
        sa.Column("old_value", sa.Text, nullable=True),
        sa.Column("new_value", sa.Text, nullable=True),
        sa.Column("submit_id", sa.Integer, sa.ForeignKey("app_db_submissions.id"), nullable=False, index=True),
        sa.Column("changed_by", sa.Integer, nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
    )
    op.create_table(
        "app_db_audit_logs",
        sa.Column("id", sa.Integer, primary_key=True, autoincrement=True),
        sa.Column("draft_version_id", sa.Integer, nullable=True, index=True),
        sa.Column("entity_table", sa.String(64), nullable=True),
        sa.Column("entity_id", sa.Integer, nullable=True),
        sa.Column("action", sa.String(50), nullable=False),
        sa.Column("actor_id", sa.Integer, nullable=True),
        sa.Column("detail_json", sa.JSON, nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
    )

    # --- sync ledger ---
    op.create_table(
        "app_db_sync_id_map",
        sa.Column("id", sa.Integer, primary_key=True, autoincrement=True),
        sa.Column("draft_version_id", sa.Integer, nullable=False, index=True),
        sa.Column("module_key", sa.String(64), nullable=False, index=True),
        sa.Column("draft_row_id", sa.Integer, nullable=False),
        sa.Column("target_row_id", sa.Integer, nullable=False, index=True),
        *_timestamps(),
        sa.UniqueConstraint("draft_version_id", "module_key", "draft_row_id", name="uk_draft_module_row"),
    )
    op.create_table(
        "app_db_sync_jobs",
        sa.Column("id", sa.Integer, primary_key=True, autoincrement=True),
        sa.Column("draft_version_id", sa.Integer, nullable=False, index=True),
        sa.Column("trigger_by", sa.Integer, nullable=True),
        sa.Column("status", sa.String(32), nullable=False, server_default="running"),
        sa.Column("error_message", sa.Text, nullable=True),
        sa.Column("started_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("finished_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
    )
    op.create_index(
        "uq_sync_jobs_running",
        "app_db_sync_jobs",
        ["draft_version_id"],
        unique=True,
        sqlite_where=sa.text("status = 'running'"),
        postgresql_where=sa.text("status = 'running'"),
    )
    op.create_table(
        "app_db_sync_module_jobs",
        sa.Column("id", sa.Integer, primary_key=True, autoincrement=True),
        sa.Column("sync_job_id", sa.Integer, nullable=True, index=True),
        sa.Column("draft_version_id", sa.Integer, nullable=False, index=True),
        sa.Column("module_key", sa.String(64), nullable=False, index=True),
        sa.Column("trigger_by", sa.Integer, nullable=True),
        sa.Column("status", sa.String(32), nullable=False, server_default="running"),
        sa.Column("error_message", sa.Text, nullable=True),
        sa.Column("started_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("finished_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
    )

    # --- production ---
    op.create_table(
        "app_version_names",
        *_production_columns(),
        sa.Column("app_version_name", sa.String(255), nullable=False, unique=True),
        sa.Column("location_name", sa.String(255), nullable=False),
        sa.Column("feishu_field_names", sa.Text, nullable=True),
        sa.Column("ai_modal", sa.String(255), nullable=False, server_default="SD"),
        sa.Column("status", sa.Integer, nullable=False, server_default="1"),
    )
    for table, content in _MODULE_CONTENT.items():
        op.create_table(table, *_production_columns(), *content(production=True), _scope_name())
    op.create_table("config_extra_steps", *_production_columns(), *_extra_step_content(production=True), _scope_version_id())
    op.create_table("app_ui_fields", *_production_columns(), *_app_ui_content(production=True), _scope_version_id())


def downgrade() -> None:
    op.drop_table("app_ui_fields")
    op.drop_table("config_extra_steps")
    for table in reversed(list(_MODULE_CONTENT)):
        op.drop_table(table)
    op.drop_table("app_version_names")
    op.drop_table("app_db_sync_module_jobs")
    op.drop_index("uq_sync_jobs_running", table_name="app_db_sync_jobs")
    op.drop_table("app_db_sync_jobs")
    op.drop_table("app_db_sync_id_map")
    op.drop_table("app_db_audit_logs")
    op.drop_table("app_db_field_history")
    op.drop_table("app_db_submissions")
    op.drop_table("app_db_app_ui_fields")
    op.drop_table("app_db_config_extra_steps")
    for table in reversed(list(_MODULE_CONTENT)):
        op.drop_table(f"app_db_{table}")
    op.drop_table("app_db_version_names")
    op.drop_table("app_db_users")
