"""Alembic environment for the draft and production schema.

Both deployments (internal authoring and online receiver) migrate the same
metadata; the online one simply never writes the app_db_* draft tables.
The URL comes from DATABASE_URL via app.config, never from alembic.ini.
"""
from logging.config import fileConfig

from sqlalchemy import engine_from_config, pool
from alembic import context

from app.config import settings
from app.database import Base

# Register every table with Base.metadata
from app.models.user import User  # noqa: F401
from app.models.draft_version import DraftVersion  # noqa: F401
from app.models import draft_module, production  # noqa: F401
from app.models.submission import Submission, FieldHistory  # noqa: F401
from app.models.sync import SyncIdMap, SyncJob, SyncModuleJob  # noqa: F401
from app.models.audit_log import AuditLog  # noqa: F401

config = context.config
config.set_main_option("sqlalchemy.url", settings.DATABASE_URL)

if config.config_file_name is not None:
    fileConfig(config.config_file_name)

target_metadata = Base.metadata


def _migration_options(dialect_name: str) -> dict:
    # SQLite cannot ALTER most columns in place
    return {
        "target_metadata": target_metadata,
        "compare_type": True,
        "render_as_batch": dialect_name == "sqlite",
    }


def run_migrations_offline() -> None:
    """Emit SQL for the configured URL without connecting."""
    url = config.get_main_option("sqlalchemy.url")
    context.configure(
        url=url,
        literal_binds=True,
        dialect_opts={"paramstyle": "named"},
        **_migration_options(url.split(":", 1)[0].split("+", 1)[0]),
    )
    with context.begin_transaction():
        context.run_migrations()


def run_migrations_online() -> None:
    connectable = engine_from_config(
        config.get_section(config.config_ini_section, {}),
        prefix="sqlalchemy.",
        poolclass=pool.NullPool,
    )
    with connectable.connect() as connection:
        context.configure(connection=connection, **_migration_options(connection.dialect.name))
        with context.begin_transaction():
            context.run_migrations()


if context.is_offline_mode():
    run_migrations_offline()
else:
    run_migrations_online()
