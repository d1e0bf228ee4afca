import asyncio
import logging
import re

from sqlalchemy import create_engine, text
from sqlalchemy.exc import SQLAlchemyError

from devwp.core.errors import StoreError, ValidationError

logger = logging.getLogger(__name__)


def sanitize_database_name(domain: str) -> str:
    """
    Turn a site domain into a valid MariaDB database name.
    Letters, digits, `_` and `$` only, starts with a letter or `_`, max 64 chars.
    """
    db_name = re.sub(r"[^a-zA-Z0-9_$]", "_", domain or "")
    db_name = re.sub(r"_{2,}", "_", db_name)
    db_name = db_name.strip("_")

    if db_name and not re.match(r"^[a-zA-Z_]", db_name):
        db_name = "db_" + db_name

    if not db_name:
        raise ValidationError(f"Cannot create a valid database name from site domain: '{domain}'")

    if len(db_name) > 64:
        db_name = db_name[:64].rstrip("_")

    return db_name


class MariaDBManager:
    """Server-level operations: readiness check and per-site databases."""

    def __init__(self, server_url: str):
        self.server_url = server_url
        self._engine = None

    @property
    def engine(self):
        if self._engine is None:
            self._engine = create_engine(self.server_url, pool_pre_ping=True)
        return self._engine

    def _execute(self, statement: str) -> None:
        with self.engine.connect() as conn:
            conn.execute(text(statement))
            conn.commit()

    async def wait_for_database(self, attempts: int = 30, delay: float = 1.0) -> None:
        for attempt in range(1, attempts + 1):
            try:
                await asyncio.to_thread(self._execute, "SELECT 1")
                logger.info("Database is ready (attempt %s)", attempt)
                return
            except SQLAlchemyError as e:
                logger.debug("Database not ready (attempt %s/%s): %s", attempt, attempts, e)
                if attempt < attempts:
                    await asyncio.sleep(delay)

        raise StoreError(f"Failed to connect to database after {attempts} attempts")

    async def _run(self, statement: str, action: str) -> None:
        try:
            await asyncio.to_thread(self._execute, statement)
        except SQLAlchemyError as e:
            logger.error("Error %s: %s", action, e)
            raise StoreError(f"Error {action}", diagnostic=str(e)) from e

    async def ensure_config_database(self, name: str) -> None:
        name = sanitize_database_name(name)
        await self._run(f"CREATE DATABASE IF NOT EXISTS `{name}`", f"creating config database {name}")
        logger.info("Created/verified config database: %s", name)

    async def create_database(self, name: str) -> None:
        name = sanitize_database_name(name)
        await self._run(f"CREATE DATABASE IF NOT EXISTS `{name}`", f"creating database {name}")
        logger.info("Created database: %s", name)

    async def drop_database(self, name: str) -> None:
        name = sanitize_database_name(name)
        await self._run(f"DROP DATABASE IF EXISTS `{name}`", f"dropping database {name}")
        logger.info("Dropped database: %s", name)
