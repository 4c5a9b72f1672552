# migrations/env.py
import logging
from logging.config import fileConfig

from flask import current_app

from alembic import context

# Registrar los modelos en la metadata de la db global
from alquileres import models  # noqa: F401

config = context.config

if config.config_file_name is not None:
    fileConfig(config.config_file_name)
logger = logging.getLogger('alembic.env')


def get_engine():
    # Flask-SQLAlchemy >= 3 expone el motor como atributo
    return current_app.extensions['migrate'].db.engine


def get_engine_url():
    return get_engine().url.render_as_string(hide_password=False).replace('%', '%%')


config.set_main_option('sqlalchemy.url', get_engine_url())
target_db = current_app.extensions['migrate'].db
target_metadata = target_db.metadata

if not target_metadata.tables:
    logger.warning("La metadata de alquileres está vacía: ¿se importaron los modelos?")
else:
    logger.info(f"Tablas para Alembic: {sorted(target_metadata.tables.keys())}")


def run_migrations_offline() -> None:
    """Genera el SQL sin conectarse a la base."""
    context.configure(
        url=config.get_main_option("sqlalchemy.url"),
        target_metadata=target_metadata,
        literal_binds=True,
        dialect_opts={"paramstyle": "named"},
        render_as_batch=True,
    )
    with context.begin_transaction():
        context.run_migrations()


def run_migrations_online() -> None:
    """Aplica las migraciones sobre la base configurada en la app."""

    def process_revision_directives(context, revision, directives):
        # Sin cambios en los modelos no se genera una revisión vacía
        if getattr(config.cmd_opts, 'autogenerate', False):
            script = directives[0]
            if script.upgrade_ops.is_empty():
                directives[:] = []
                logger.info('Sin cambios en los modelos.')

    conf_args = dict(current_app.extensions['migrate'].configure_args or {})
    conf_args.setdefault("process_revision_directives", process_revision_directives)
    # SQLite necesita modo batch para ALTER de columnas y constraints
    conf_args.setdefault("render_as_batch", True)

    with get_engine().connect() as connection:
        context.configure(connection=connection, target_metadata=target_metadata, **conf_args)
        with context.begin_transaction():
            context.run_migrations()


if context.is_offline_mode():
    run_migrations_offline()
else:
    run_migrations_online()
