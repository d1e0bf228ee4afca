import logging
from contextlib import contextmanager
from datetime import datetime
from pathlib import Path
from typing import Dict, List, Optional

from sqlalchemy.exc import SQLAlchemyError

from devwp.core.config import default_webroot
from devwp.core.database import Base
from devwp.core.errors import StoreError
from devwp.modules.settings.models import Setting
from devwp.modules.sites.models import Site
from devwp.modules.sites.schemas import Multisite, SiteRecord

logger = logging.getLogger(__name__)

WEBROOT_KEY = "webroot_path"
XDEBUG_KEY = "xdebug_enabled"


def _to_record(row: Site) -> SiteRecord:
    multisite = None
    if row.multisite_enabled:
        multisite = Multisite(enabled=True, type=row.multisite_type or "subdomain")
    return SiteRecord(
        domain=row.domain,
        aliases=row.aliases or None,
        web_root=row.web_root or None,
        multisite=multisite,
        created_at=row.created_at,
        updated_at=row.updated_at,
    )


class ConfigStore:
    """
    Site records and key/value settings of the DevWP config database.

    Every write is an upsert keyed by domain / key. Any database failure is
    raised as StoreError with the driver message as diagnostic; the
    get_webroot_path / get_xdebug_enabled helpers are the only callers that
    fall back to defaults instead.
    """

    def __init__(self, engine, session_factory):
        self.engine = engine
        self.SessionLocal = session_factory

    @contextmanager
    def _session(self, action: str):
        db = self.SessionLocal()
        try:
            yield db
        except SQLAlchemyError as e:
            db.rollback()
            logger.error("Error %s: %s", action, e)
            raise StoreError(f"Error {action}", diagnostic=str(e)) from e
        finally:
            db.close()

    def initialize(self) -> None:
        try:
            Base.metadata.create_all(bind=self.engine)
        except SQLAlchemyError as e:
            raise StoreError("Error creating config tables", diagnostic=str(e)) from e
        logger.info("Created/verified config tables")

        defaults = {WEBROOT_KEY: default_webroot(), XDEBUG_KEY: "false"}
        for key, value in defaults.items():
            try:
                if self.get_setting(key) is None:
                    self.save_setting(key, value)
            except StoreError as e:
                logger.warning("Could not initialize default setting %s: %s", key, e.diagnostic)

    # --- Sites ---

    def save_site(self, site: SiteRecord) -> None:
        enabled = bool(site.multisite and site.multisite.enabled)
        with self._session(f"saving site configuration for {site.domain}") as db:
            row = db.get(Site, site.domain)
            if row is None:
                row = Site(domain=site.domain)
                if site.created_at:
                    row.created_at = site.created_at
                db.add(row)

            row.aliases = site.aliases or ""
            row.web_root = site.web_root or ""
            row.multisite_enabled = enabled
            row.multisite_type = site.multisite.type if enabled else None
            row.updated_at = site.updated_at or datetime.now()
            db.commit()
        logger.info("Saved site configuration for: %s", site.domain)

    def get_site(self, domain: str) -> Optional[SiteRecord]:
        with self._session(f"fetching site configuration for {domain}") as db:
            row = db.get(Site, domain)
            return _to_record(row) if row else None

    def list_sites(self) -> List[SiteRecord]:
        with self._session("fetching site configurations") as db:
            rows = db.query(Site).order_by(Site.created_at.asc(), Site.domain.asc()).all()
            return [_to_record(row) for row in rows]

    def delete_site(self, domain: str) -> None:
        with self._session(f"deleting site configuration for {domain}") as db:
            db.query(Site).filter(Site.domain == domain).delete()
            db.commit()
        logger.info("Deleted site configuration for: %s", domain)

    # --- Settings ---

    def save_setting(self, key: str, value: str) -> None:
        with self._session(f"saving setting {key}") as db:
            row = db.get(Setting, key)
            if row is None:
                row = Setting(key_name=key)
                db.add(row)
            row.value_text = value
            row.updated_at = datetime.now()
            db.commit()

    def get_setting(self, key: str) -> Optional[str]:
        with self._session(f"fetching setting {key}") as db:
            row = db.get(Setting, key)
            return row.value_text if row else None

    def list_settings(self) -> Dict[str, str]:
        with self._session("fetching settings") as db:
            return {row.key_name: row.value_text for row in db.query(Setting).all()}

    def delete_setting(self, key: str) -> None:
        with self._session(f"deleting setting {key}") as db:
            db.query(Setting).filter(Setting.key_name == key).delete()
            db.commit()

    # --- Well-known settings with defaults ---

    def get_webroot_path(self) -> str:
        try:
            value = self.get_setting(WEBROOT_KEY)
        except StoreError as e:
            logger.warning("Falling back to default webroot: %s", e.diagnostic)
            return default_webroot()
        return value or default_webroot()

    def get_xdebug_enabled(self) -> bool:
        try:
            value = self.get_setting(XDEBUG_KEY)
        except StoreError as e:
            logger.warning("Falling back to xdebug disabled: %s", e.diagnostic)
            return False
        return value == "true"

    def migrate_existing_sites(self, webroot: str) -> List[str]:
        """Record a basic configuration for site folders created outside DevWP."""
        base = Path(webroot)
        if not base.is_dir():
            logger.info("No webroot at %s, nothing to migrate", base)
            return []

        names = sorted(
            entry.name
            for entry in base.iterdir()
            if entry.is_dir() and not entry.name.startswith(".")
        )
        known = {site.domain for site in self.list_sites()}

        migrated = []
        for name in names:
            if name in known:
                continue
            try:
                self.save_site(SiteRecord(domain=name))
                migrated.append(name)
                logger.info("Migrated existing site: %s", name)
            except StoreError as e:
                logger.warning("Failed to migrate site %s: %s", name, e.diagnostic)

        logger.info("Migration of existing sites completed (%s new)", len(migrated))
        return migrated
