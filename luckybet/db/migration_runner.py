"""
Migration Runner - Applies pending Alembic migrations at startup.

Enabled with RUN_MIGRATIONS_ON_STARTUP. Deployments that migrate from a
release job leave it off and use `alembic upgrade head` directly.
"""

from dataclasses import dataclass
from pathlib import Path

from sqlalchemy import create_engine
from sqlalchemy.engine import Engine

from alembic import command
from alembic.config import Config
from alembic.runtime.migration import MigrationContext
from alembic.script import ScriptDirectory
from luckybet.config import settings
from luckybet.exceptions import DatabaseError
from luckybet.observability.logging import get_logger

logger = get_logger(__name__)

# alembic.ini lives at the project root
ALEMBIC_INI_PATH = Path(__file__).parent.parent.parent / "alembic.ini"


@dataclass(frozen=True)
class MigrationStatus:
    """Current and head revisions of the schema."""

    current: str | None
    head: str | None

    @property
    def pending(self) -> bool:
        return self.current != self.head


def sync_database_url(url: str) -> str:
    """Alembic's command API is synchronous: swap asyncpg for psycopg2."""
    return url.replace("+asyncpg", "+psycopg2")


def _alembic_config() -> Config:
    alembic_cfg = Config(str(ALEMBIC_INI_PATH))
    alembic_cfg.set_main_option(
        "sqlalchemy.url", sync_database_url(settings.database_url).replace("%", "%%")
    )
    return alembic_cfg


def _status(engine: Engine, alembic_cfg: Config) -> MigrationStatus:
    with engine.connect() as conn:
        current = MigrationContext.configure(conn).get_current_revision()
    head = ScriptDirectory.from_config(alembic_cfg).get_current_head()
    return MigrationStatus(current=current, head=head)


def run_migrations() -> MigrationStatus | None:
    """
    Upgrade the schema to head if it is behind.

    Returns the status after the run, or None when no alembic.ini ships
    with the deployment.
    """
    if not ALEMBIC_INI_PATH.exists():
        logger.warning("alembic_config_missing", path=str(ALEMBIC_INI_PATH))
        return None

    alembic_cfg = _alembic_config()
    engine = create_engine(sync_database_url(settings.database_url))
    try:
        status = _status(engine, alembic_cfg)
        if not status.pending:
            logger.info("schema_up_to_date", revision=status.current)
            return status

        logger.info("migrations_starting", current=status.current, head=status.head)
        command.upgrade(alembic_cfg, "head")
        status = _status(engine, alembic_cfg)
        logger.info("migrations_complete", revision=status.current)
        return status
    except Exception as e:
        logger.error("migration_failed", error=str(e), exc_info=True)
        raise DatabaseError(f"migration failed: {e}") from e
    finally:
        engine.dispose()
