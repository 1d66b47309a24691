from __future__ import annotations

import os
import sys
from logging.config import fileConfig

from sqlalchemy import engine_from_config, pool

from alembic import context

config = context.config
if config.config_file_name is not None:
    fileConfig(config.config_file_name)

# lancé via `alembic -c alembic.ini` depuis la racine : backend.* doit être importable
sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), "..", "..")))

from backend.app.core.config import DATABASE_URL  # noqa: E402
from backend.app.db.base import Base  # noqa: E402
from backend.app.db.models import models_v1  # noqa: F401,E402

# DATABASE_URL (env) prime sur alembic.ini
config.set_main_option("sqlalchemy.url", DATABASE_URL)

MIGRATION_OPTS = {
    "target_metadata": Base.metadata,
    "compare_type": True,
}


def run_offline(url: str) -> None:
    """SQL généré sans connexion (alembic upgrade --sql)."""
    context.configure(url=url, literal_binds=True, dialect_opts={"paramstyle": "named"}, **MIGRATION_OPTS)
    with context.begin_transaction():
        context.run_migrations()


def run_online() -> None:
    engine = engine_from_config(
        config.get_section(config.config_ini_section, {}),
        prefix="sqlalchemy.",
        poolclass=pool.NullPool,
    )
    with engine.connect() as connection:
        context.configure(
            connection=connection,
            render_as_batch=connection.dialect.name == "sqlite",
            **MIGRATION_OPTS,
        )
        with context.begin_transaction():
            context.run_migrations()


if context.is_offline_mode():
    run_offline(config.get_main_option("sqlalchemy.url"))
else:
    run_online()
