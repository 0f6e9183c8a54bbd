"""
Database handle and schema management.

`create_tables` and `run_migrations` are the public entry points a host
application calls at startup; nothing inside the package invokes them.
"""

from collections.abc import Generator
from contextlib import contextmanager
from typing import Any

from sqla_wrapper import SQLAlchemy, Session
from sqlalchemy.engine import make_url
from sqlalchemy.pool import StaticPool

from alembic import command
from alembic.config import Config
from keepwatching.settings.manager import settings_manager
from keepwatching.utils import alembic_dir
from keepwatching.utils.logging import logger


def build_engine_options(url: str) -> dict[str, Any]:
    """Engine options for the configured backend.

    SQLite gets a single shared connection for in-memory databases; the pooled
    settings only make sense for server databases.
    """

    parsed = make_url(url)

    if parsed.get_backend_name() == "sqlite":
        options: dict[str, Any] = {
            "connect_args": {"check_same_thread": False},
            "echo": False,
        }
        if parsed.database in (None, "", ":memory:"):
            options["poolclass"] = StaticPool
        return options

    return {
        "pool_size": 25,
        "max_overflow": 25,
        "pool_pre_ping": True,
        "pool_recycle": 1800,
        "echo": False,  # Set to true when debugging sql queries
    }


db_host = str(settings_manager.settings.database.host)
db = SQLAlchemy(db_host, engine_options=build_engine_options(db_host))


@contextmanager
def db_session() -> Generator[Session, Any, None]:
    with db.Session() as session:
        s: Session = session

        yield s


def create_tables() -> None:
    """Create every table known to the models (no migration history)."""

    from keepwatching.db.base_model import get_base_metadata

    get_base_metadata().create_all(db.engine)
    logger.log("DATABASE", "Created watch status schema")


def run_migrations(database_url: str | None = None) -> None:
    """
    Run any pending Alembic migrations up to head.

    Called by the host application at startup, before `bootstrap_services`.
    """

    try:
        alembic_cfg = Config(alembic_dir.parent / "alembic.ini")
        alembic_cfg.set_main_option("script_location", str(alembic_dir))
        if database_url:
            alembic_cfg.set_main_option("sqlalchemy.url", database_url)

        command.upgrade(alembic_cfg, "head")
        logger.success("Database migrations completed successfully")
    except Exception as e:
        logger.error(f"Migration failed: {e}")
        raise
