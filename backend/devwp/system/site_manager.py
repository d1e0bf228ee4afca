import asyncio
import logging
import shutil
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path
from typing import Awaitable, Callable, List, Optional

from devwp.core.errors import AlreadyExistsError, DevWPError, FileSystemError, ReloadError, StoreError, ValidationError
from devwp.modules.sites.schemas import (
    SiteCreate,
    SiteCreateResult,
    SiteDeleteResult,
    SiteInfo,
    SiteRecord,
    SiteUpdate,
    check_domain,
    split_aliases,
)
from devwp.system.mariadb_manager import sanitize_database_name
from devwp.system.wordpress_manager import container_path

logger = logging.getLogger(__name__)


def _domain(value: str) -> str:
    try:
        return check_domain(value)
    except ValueError as e:
        raise ValidationError(f"{e}: {value!r}") from e


@dataclass
class Step:
    """One reversible provisioning step: `action`, and `undo` to compensate it."""

    name: str
    action: Callable[[], Awaitable]
    undo: Optional[Callable[[], Awaitable]] = None


async def run_steps(steps: List[Step], label: str = "") -> None:
    """
    Run the steps in order. If one fails, undo the completed ones in reverse
    order and re-raise the original error. Undo failures are only logged.
    """
    done: List[Step] = []
    for step in steps:
        try:
            logger.debug("[%s] %s", label, step.name)
            await step.action()
        except Exception:
            logger.error("[%s] Step '%s' failed, rolling back %s step(s)", label, step.name, len(done))
            for completed in reversed(done):
                if completed.undo is None:
                    continue
                try:
                    await completed.undo()
                    logger.info("[%s] Rolled back: %s", label, completed.name)
                except Exception as undo_error:
                    logger.error("[%s] Rollback of '%s' failed: %s", label, completed.name, undo_error)
            raise
        done.append(step)


class SiteManager:
    """Create, delete, list and update sites on top of the other managers."""

    def __init__(self, context):
        self.context = context

    @property
    def store(self):
        return self.context.store

    async def _webroot(self) -> Path:
        return Path(await asyncio.to_thread(self.store.get_webroot_path)).expanduser()

    async def create_site(self, request: SiteCreate) -> SiteCreateResult:
        ctx = self.context
        domain = request.domain
        aliases = split_aliases(request.aliases)
        hostnames = list(dict.fromkeys([domain, *aliases]))
        multisite = request.multisite if request.multisite and request.multisite.enabled else None
        db_name = sanitize_database_name(domain)

        webroot = await self._webroot()
        site_path = webroot / domain
        web_root_path = site_path / request.web_root if request.web_root else site_path

        # Validate before any side effect
        if await asyncio.to_thread(self.store.get_site, domain):
            raise AlreadyExistsError(f"Site '{domain}' already exists in configuration.")
        if site_path.exists():
            raise AlreadyExistsError(f"Site directory '{site_path}' already exists.")

        state = {"installed": False}
        added_hosts: List[str] = []
        warnings: List[str] = []

        async def make_directory():
            try:
                await asyncio.to_thread(web_root_path.mkdir, parents=True, exist_ok=False)
            except OSError as e:
                raise FileSystemError(f"Cannot create {web_root_path}: {e}", path=str(web_root_path)) from e
            logger.info("Created directory structure: %s", web_root_path)

        async def remove_directory():
            await asyncio.to_thread(shutil.rmtree, site_path)

        async def remove_hosts():
            for hostname in reversed(added_hosts):
                await ctx.hosts.apply_hosts_entry(hostname, "remove")
            added_hosts.clear()

        async def add_hosts():
            try:
                for hostname in hostnames:
                    await ctx.hosts.apply_hosts_entry(hostname, "add")
                    added_hosts.append(hostname)
            except Exception:
                # run_steps only undoes finished steps
                try:
                    await remove_hosts()
                except Exception as undo_error:
                    logger.error("Could not remove hosts entries %s: %s", added_hosts, undo_error)
                raise

        async def write_proxy_config():
            try:
                await ctx.frankenphp.write_config(
                    domain, container_path(domain, request.web_root), request.aliases, multisite
                )
            except ReloadError:
                # Written but never loaded; a stale file fails every later reload
                await asyncio.to_thread(ctx.frankenphp.config_path(domain).unlink, missing_ok=True)
                raise

        async def install_payload():
            try:
                await ctx.wordpress.install(domain, db_name, request.web_root)
                state["installed"] = True
            except DevWPError as e:
                logger.warning("WordPress install failed for %s, writing a welcome page instead: %s", domain, e)
                warnings.append(f"WordPress install failed: {e}")
                await asyncio.to_thread(
                    ctx.wordpress.generate_index_html, domain, str(site_path), db_name, request.web_root
                )

        async def save_record():
            now = datetime.now()
            record = SiteRecord(
                domain=domain,
                aliases=" ".join(aliases) or None,
                web_root=request.web_root or None,
                multisite=multisite,
                created_at=now,
                updated_at=now,
            )
            await asyncio.to_thread(self.store.save_site, record)

        steps = [
            Step("create directory", make_directory, remove_directory),
            Step("register hosts", add_hosts, remove_hosts),
            Step("write proxy config", write_proxy_config, lambda: ctx.frankenphp.remove_config(domain)),
            Step("create database", lambda: ctx.mariadb.create_database(db_name), lambda: ctx.mariadb.drop_database(db_name)),
            Step("install payload", install_payload),
            Step("save site record", save_record, lambda: asyncio.to_thread(self.store.delete_site, domain)),
        ]
        await run_steps(steps, label=domain)

        # Post-creation extras: failures here leave a working site
        if multisite and state["installed"]:
            try:
                await ctx.wordpress.convert_to_multisite(domain, multisite, request.web_root)
            except DevWPError as e:
                logger.warning("Multisite conversion failed for %s: %s", domain, e)
                warnings.append(f"Multisite conversion failed: {e}")

        try:
            await ctx.sonarqube.create_project(domain, db_name)
        except DevWPError as e:
            logger.warning("Failed to create SonarQube project for %s: %s", domain, e)
            warnings.append(f"SonarQube project not created: {e}")

        logger.info("Site %s created (WordPress installed: %s)", domain, state["installed"])
        return SiteCreateResult(
            domain=domain,
            url=f"https://{domain}",
            installed=state["installed"],
            warnings=warnings,
        )

    async def delete_site(self, domain: str) -> SiteDeleteResult:
        ctx = self.context
        domain = _domain(domain)
        db_name = sanitize_database_name(domain)
        site_path = (await self._webroot()) / domain

        try:
            record = await asyncio.to_thread(self.store.get_site, domain)
        except StoreError as e:
            logger.warning("Could not read configuration of %s: %s", domain, e.diagnostic)
            record = None
        hostnames = [domain, *split_aliases(record.aliases if record else None)]

        # 1. Files first; nothing else is touched if this fails
        if site_path.exists():
            try:
                await asyncio.to_thread(shutil.rmtree, site_path)
            except OSError as e:
                raise FileSystemError(f"Cannot remove {site_path}: {e}", path=str(site_path)) from e
            logger.info("Removed site directory %s", site_path)

        # 2. Best-effort cleanup of everything else
        warnings: List[str] = []

        async def attempt(description: str, operation: Awaitable):
            try:
                await operation
            except DevWPError as e:
                logger.warning("Failed to %s: %s", description, e)
                warnings.append(f"Failed to {description}: {e}")

        for hostname in hostnames:
            await attempt(f"remove hosts entry for {hostname}", ctx.hosts.apply_hosts_entry(hostname, "remove"))
        await attempt("remove FrankenPHP config", ctx.frankenphp.remove_config(domain))
        await attempt(f"drop database {db_name}", ctx.mariadb.drop_database(db_name))
        for hostname in hostnames:
            await attempt(f"clear Redis cache for {hostname}", ctx.redis.clear_site_cache(hostname))
        await attempt("delete site configuration", asyncio.to_thread(self.store.delete_site, domain))
        await attempt(f"delete SonarQube project {db_name}", ctx.sonarqube.delete_project(db_name))

        logger.info("Site %s deleted (%s warning(s))", domain, len(warnings))
        return SiteDeleteResult(domain=domain, warnings=warnings)

    async def list_sites(self) -> List[SiteInfo]:
        webroot = await self._webroot()

        try:
            records = {r.domain: r for r in await asyncio.to_thread(self.store.list_sites)}
        except StoreError as e:
            logger.warning("Failed to get sites from database, using filesystem only: %s", e.diagnostic)
            records = {}

        if not webroot.is_dir():
            logger.info("No webroot directory at %s", webroot)
            return []

        sites = []
        for entry in sorted(webroot.iterdir(), key=lambda p: p.name):
            if not entry.is_dir() or entry.name.startswith("."):
                continue
            record = records.get(entry.name)
            info = SiteInfo(name=entry.name, path=str(entry), url=f"https://{entry.name}")
            if record:
                info.aliases = record.aliases
                info.web_root = record.web_root
                info.multisite = record.multisite
                info.created_at = record.created_at
                info.updated_at = record.updated_at
            sites.append(info)
        return sites

    async def update_site(self, domain: str, update: SiteUpdate) -> SiteRecord:
        ctx = self.context
        domain = _domain(domain)

        current = await asyncio.to_thread(self.store.get_site, domain)
        if current is None:
            logger.info("Creating new configuration for site: %s", domain)
            current = SiteRecord(domain=domain, created_at=datetime.now())

        updated = current.model_copy(
            update={
                "aliases": (update.aliases if update.aliases is not None else current.aliases) or None,
                "web_root": (update.web_root if update.web_root is not None else current.web_root) or None,
                "updated_at": datetime.now(),
            }
        )
        await asyncio.to_thread(self.store.save_site, updated)

        # Keep the hosts file in step with the alias list
        old_aliases = set(split_aliases(current.aliases))
        new_aliases = split_aliases(updated.aliases)
        for alias in sorted(old_aliases - set(new_aliases)):
            await ctx.hosts.apply_hosts_entry(alias, "remove")
        for alias in new_aliases:
            if alias not in old_aliases:
                await ctx.hosts.apply_hosts_entry(alias, "add")

        await ctx.frankenphp.write_config(
            domain, container_path(domain, updated.web_root), updated.aliases, updated.multisite
        )
        logger.info("Successfully updated site configuration for: %s", domain)
        return updated

    async def scan_site(self, domain: str) -> str:
        domain = _domain(domain)
        return await self.context.sonarqube.scan(domain, sanitize_database_name(domain))
