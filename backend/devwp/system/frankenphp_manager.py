import asyncio
import logging
from pathlib import Path
from typing import Iterable, List, Optional

from devwp.core.errors import DevWPError, FileSystemError, ReloadError
from devwp.modules.sites.schemas import Multisite, SiteRecord, split_aliases
from devwp.system.shell import compose_command, compose_env, run_command
from devwp.system.wordpress_manager import container_path

logger = logging.getLogger(__name__)

CONFIG_EXTENSION = ".caddy"
CADDYFILE = "/etc/caddy/Caddyfile"
LOCAL_SUFFIXES = (".localhost", ".local", ".test")

# Site block for the FrankenPHP (Caddy) sites-enabled directory
CADDY_SITE_TEMPLATE = """
{https_addresses} {{
    {tls_directive}
    root * {root}
    encode zstd br gzip

    {multisite_rules}

    php_server
}}

{http_addresses} {{
    redir https://{{host}}{{uri}} 308
}}
"""


def site_hostnames(domain: str, aliases: Optional[str] = None, multisite: Optional[Multisite] = None) -> List[str]:
    hostnames = [domain, *split_aliases(aliases)]
    if multisite and multisite.enabled and multisite.type == "subdomain":
        hostnames.insert(0, f"*.{domain}")
    # dict keeps first-seen order
    return [h for h in dict.fromkeys(hostnames) if h]


def uses_internal_tls(hostnames: Iterable[str]) -> bool:
    for hostname in hostnames:
        name = hostname.lower()
        if name.startswith("*."):
            name = name[2:]
        if name != "localhost" and not name.endswith(LOCAL_SUFFIXES):
            return False
    return True


def render_config(
    domain: str,
    web_root: str,
    aliases: Optional[str] = None,
    multisite: Optional[Multisite] = None,
) -> str:
    hostnames = site_hostnames(domain, aliases, multisite)

    tls_directive = ""
    if uses_internal_tls(hostnames):
        tls_directive = "tls internal"
    else:
        logger.warning("No local TLS for %s: %s are not local hostnames", domain, ", ".join(hostnames))

    multisite_rules = ""
    if multisite and multisite.enabled and multisite.type == "subdirectory":
        multisite_rules = "@wpadmin path /wp-admin\n    redir @wpadmin /wp-admin/ 301"

    config = CADDY_SITE_TEMPLATE.format(
        https_addresses=", ".join(f"https://{h}" for h in hostnames),
        http_addresses=", ".join(f"http://{h}" for h in hostnames),
        tls_directive=tls_directive,
        root=web_root,
        multisite_rules=multisite_rules,
    )
    # Drop the lines left empty by unused directives
    lines = []
    for line in config.strip().split("\n"):
        if line.strip() or (lines and lines[-1] and line == ""):
            lines.append(line)
    return "\n".join(lines) + "\n"


class FrankenPHPManager:
    def __init__(self, sites_dir, project_dir: str, compose_project_name: str = "devwp", runner=run_command):
        self.sites_dir = Path(sites_dir)
        self.project_dir = project_dir
        self.compose_project_name = compose_project_name
        self.runner = runner

    def config_path(self, domain: str) -> Path:
        return self.sites_dir / f"{domain}{CONFIG_EXTENSION}"

    async def reload(self) -> None:
        args = compose_command("exec", "-T", "frankenphp", "caddy", "reload", "--config", CADDYFILE)
        try:
            await self.runner(args, cwd=self.project_dir, env=compose_env(self.compose_project_name))
        except DevWPError as e:
            logger.error("Error reloading FrankenPHP: %s", e)
            raise ReloadError(f"Failed to reload FrankenPHP configuration: {e}") from e
        logger.info("FrankenPHP reloaded successfully")

    async def write_config(
        self,
        domain: str,
        web_root: str,
        aliases: Optional[str] = None,
        multisite: Optional[Multisite] = None,
    ) -> Path:
        content = render_config(domain, web_root, aliases, multisite)
        path = self.config_path(domain)
        try:
            await asyncio.to_thread(self.sites_dir.mkdir, parents=True, exist_ok=True)
            await asyncio.to_thread(path.write_text, content, encoding="utf-8")
        except OSError as e:
            raise FileSystemError(f"Cannot write FrankenPHP config for {domain}: {e}", path=str(path)) from e

        logger.info("Generated FrankenPHP config for %s", domain)
        await self.reload()
        return path

    async def remove_config(self, domain: str) -> bool:
        path = self.config_path(domain)
        try:
            await asyncio.to_thread(path.unlink)
        except FileNotFoundError:
            logger.info("FrankenPHP config for %s not found, skipping removal", domain)
            return False
        except OSError as e:
            raise FileSystemError(f"Cannot remove FrankenPHP config for {domain}: {e}", path=str(path)) from e

        logger.info("Removed FrankenPHP config for %s", domain)
        await self.reload()
        return True

    def missing_configs(self, domains: Iterable[str]) -> List[str]:
        return [d for d in domains if not self.config_path(d).exists()]

    async def regenerate_missing(self, records: List[SiteRecord]) -> List[str]:
        """
        Write configs for stored sites that lost theirs (fresh checkout,
        wiped sites-enabled). One reload at the end instead of one per site.
        """
        missing = set(self.missing_configs(r.domain for r in records))
        if not missing:
            logger.info("All site configs present")
            return []

        written = []
        for record in records:
            if record.domain not in missing:
                continue
            content = render_config(
                record.domain,
                container_path(record.domain, record.web_root),
                record.aliases,
                record.multisite,
            )
            path = self.config_path(record.domain)
            try:
                await asyncio.to_thread(self.sites_dir.mkdir, parents=True, exist_ok=True)
                await asyncio.to_thread(path.write_text, content, encoding="utf-8")
            except OSError as e:
                logger.error("Failed to regenerate config for %s: %s", record.domain, e)
                continue
            written.append(record.domain)
            logger.info("Regenerated FrankenPHP config for %s", record.domain)

        if written:
            await self.reload()
        return written
