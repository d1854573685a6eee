"""
Migration Runner - Applies pending Alembic migrations at startup.

Alembic's command API is synchronous, so the asyncpg URL is rewritten to
psycopg2 for the duration of the run.
"""

from dataclasses import dataclass
from pathlib import Path

from sqlalchemy import Engine, create_engine
from structlog import get_logger

from alembic import command
from alembic.config import Config
from alembic.runtime.migration import MigrationContext
from alembic.script import ScriptDirectory
from userbase.config import settings

logger = get_logger(__name__)

ALEMBIC_INI_PATH = Path(__file__).parent.parent.parent / "alembic.ini"


@dataclass(frozen=True)
class MigrationStatus:
    current_revision: str | None
    head_revision: str | None

    @property
    def pending(self) -> bool:
        return self.current_revision != self.head_revision


def sync_database_url(url: str | None = None) -> str:
    """Convert the async driver URL to a psycopg2 one."""
    return (url or settings.database_url).replace("+asyncpg", "+psycopg2")


def _alembic_config() -> Config:
    alembic_cfg = Config(str(ALEMBIC_INI_PATH))
    alembic_cfg.set_main_option("sqlalchemy.url", sync_database_url().replace("%", "%%"))
    return alembic_cfg


def _current_revision(engine: Engine) -> str | None:
    with engine.connect() as conn:
        return MigrationContext.configure(conn).get_current_revision()


def check_migrations_status() -> MigrationStatus:
    """Report current and head revisions without applying anything."""
    alembic_cfg = _alembic_config()
    engine = create_engine(sync_database_url())
    try:
        head = ScriptDirectory.from_config(alembic_cfg).get_current_head()
        return MigrationStatus(current_revision=_current_revision(engine), head_revision=head)
    finally:
        engine.dispose()


def run_migrations() -> None:
    """Upgrade the database to head if it is behind."""
    if not ALEMBIC_INI_PATH.exists():
        logger.warning("alembic_config_missing", path=str(ALEMBIC_INI_PATH))
        return

    try:
        status = check_migrations_status()
        if not status.pending:
            logger.info("database_schema_current", revision=status.current_revision)
            return

        logger.info(
            "database_migration_started",
            from_revision=status.current_revision,
            to_revision=status.head_revision,
        )
        command.upgrade(_alembic_config(), "head")
        logger.info("database_migration_completed", revision=status.head_revision)
    except Exception as exc:
        logger.error("database_migration_failed", error=str(exc))
        raise RuntimeError(f"Database migration failed: {exc}") from exc
