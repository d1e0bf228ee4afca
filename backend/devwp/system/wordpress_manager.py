import asyncio
import logging
import os
import shlex
from pathlib import Path
from typing import AsyncIterator, Optional

from devwp.core.errors import DevWPError, FileSystemError, ValidationError
from devwp.modules.sites.schemas import Multisite, check_domain
from devwp.system.shell import CommandEvent, compose_command, compose_env, run_command, stream_command

logger = logging.getLogger(__name__)

WELCOME_PAGE_TEMPLATE = """<!DOCTYPE html>
<html lang="en">
<head>
    <meta charset="UTF-8">
    <meta name="viewport" content="width=device-width, initial-scale=1.0">
    <title>Welcome to {domain}</title>
    <style>
        body {{
            font-family: -apple-system, BlinkMacSystemFont, "Segoe UI", Roboto, Helvetica, Arial, sans-serif;
            line-height: 1.6;
            color: #333;
            max-width: 800px;
            margin: 0 auto;
            padding: 2rem;
        }}
        h1 {{ color: #0066cc; }}
        .container {{
            background-color: #f9f9f9;
            border-radius: 5px;
            padding: 2rem;
            box-shadow: 0 2px 4px rgba(0,0,0,0.1);
        }}
        code {{
            background-color: #f0f0f0;
            padding: 0.2rem 0.4rem;
            border-radius: 3px;
            font-family: monospace;
        }}
        .info-box {{
            background-color: #e8f4ff;
            border-left: 4px solid #0066cc;
            padding: 1rem;
            margin: 1.5rem 0;
        }}
        .footer {{
            margin-top: 2rem;
            font-size: 0.8rem;
            color: #666;
            text-align: center;
        }}
    </style>
</head>
<body>
    <div class="container">
        <h1>Welcome to {domain}!</h1>
        <p>The site folder is ready, but WordPress could not be installed automatically.</p>

        <h2>Site Information</h2>
        <ul>
            <li><strong>Site URL:</strong> https://{domain}</li>
            <li><strong>Site Root (FrankenPHP):</strong> {container_root}</li>
            <li><strong>Filesystem Path:</strong> {host_root}</li>
        </ul>
{db_info}
        <div class="info-box">
            <h3 style="margin-top: 0;">FrankenPHP Configuration</h3>
            <p>The server block for this site lives at:</p>
            <code>config/frankenphp/sites-enabled/{domain}.caddy</code>
        </div>

        <h2>Next Steps</h2>
        <p>Replace this file with your WordPress installation or custom development files.</p>
    </div>
    <div class="footer">
        <p>Generated by DevWP - Your Local WordPress Development Environment.</p>
    </div>
</body>
</html>
"""

DB_INFO_TEMPLATE = """
        <div class="info-box">
            <h3 style="margin-top: 0;">Database Information</h3>
            <ul>
                <li><strong>Database Name:</strong> {db_name}</li>
                <li><strong>Database User:</strong> root</li>
                <li><strong>Database Password:</strong> root</li>
                <li><strong>Database Host:</strong> mariadb</li>
            </ul>
        </div>
"""


def container_path(domain: str, web_root: Optional[str] = None) -> str:
    base = f"/src/www/{domain}"
    return f"{base}/{web_root}" if web_root else base


class WordPressManager:
    def __init__(self, project_dir: str, compose_project_name: str = "devwp", runner=run_command, streamer=stream_command):
        self.project_dir = project_dir
        self.compose_project_name = compose_project_name
        self.runner = runner
        self.streamer = streamer

    def _wp(self, *args: str, workdir: Optional[str] = None):
        exec_args = ["exec", "-T"]
        if workdir:
            exec_args += ["-w", workdir]
        return compose_command(*exec_args, "frankenphp", "wp", *args)

    async def _run_wp(self, *args: str):
        return await self.runner(
            self._wp(*args),
            cwd=self.project_dir,
            env=compose_env(self.compose_project_name),
        )

    async def install(self, domain: str, db_name: str, web_root: Optional[str] = None) -> None:
        path = container_path(domain, web_root)

        # 1. Core files
        logger.info("Downloading WordPress to %s...", path)
        await self._run_wp("core", "download", f"--path={path}", "--force")

        # 2. wp-config.php
        logger.info("Creating wp-config.php...")
        await self._run_wp(
            "config", "create",
            f"--path={path}",
            f"--dbname={db_name}",
            "--dbuser=root",
            "--dbpass=root",
            "--dbhost=mariadb",
            "--force",
        )

        # 3. Install
        logger.info("Installing WordPress...")
        await self._run_wp(
            "core", "install",
            f"--path={path}",
            f"--url=https://{domain}",
            f"--title={domain}",
            "--admin_user=root",
            "--admin_password=root",
            f"--admin_email=admin@{domain}",
        )
        logger.info("Successfully installed WordPress on %s", domain)

    async def convert_to_multisite(self, domain: str, multisite: Optional[Multisite], web_root: Optional[str] = None) -> bool:
        if not multisite or not multisite.enabled:
            return False

        path = container_path(domain, web_root)
        args = ["core", "multisite-convert"]
        if multisite.type == "subdomain":
            args.append("--subdomains")
        args += [f"--path={path}", "--base=/"]

        logger.info("Converting %s to multisite (%s mode) at %s...", domain, multisite.type, path)
        result = await self._run_wp(*args)
        logger.info("Successfully converted %s to multisite (%s)", domain, multisite.type)
        logger.debug(result.stdout)
        return True

    def generate_index_html(self, domain: str, site_path: str, db_name: Optional[str] = None, web_root: Optional[str] = None) -> Path:
        host_root = Path(site_path) / web_root if web_root else Path(site_path)
        db_info = DB_INFO_TEMPLATE.format(db_name=db_name) if db_name else ""
        content = WELCOME_PAGE_TEMPLATE.format(
            domain=domain,
            container_root=container_path(domain, web_root),
            host_root=host_root,
            db_info=db_info,
        )

        index_path = host_root / "index.html"
        try:
            host_root.mkdir(parents=True, exist_ok=True)
            index_path.write_text(content, encoding="utf-8")
            os.chmod(index_path, 0o644)
        except OSError as e:
            raise FileSystemError(f"Failed to generate index.html for {domain}: {e}", path=str(index_path)) from e

        logger.info("Created index.html for %s at %s", domain, index_path)
        return index_path

    # --- Ad-hoc wp-cli from the UI ---

    def _wp_cli_args(self, site: str, command: str):
        try:
            site = check_domain(site)
        except ValueError as e:
            raise ValidationError(f"{e}: {site!r}") from e
        try:
            parts = shlex.split(command)
        except ValueError as e:
            raise ValidationError(f"Invalid command: {e}") from e
        if parts and parts[0] == "wp":
            parts = parts[1:]
        if not parts:
            raise ValidationError("Command is required")
        return self._wp(*parts, workdir=container_path(site))

    async def run_wp_cli(self, site: str, command: str) -> dict:
        args = self._wp_cli_args(site, command)
        try:
            result = await self.runner(args, cwd=self.project_dir, env=compose_env(self.compose_project_name))
        except DevWPError as e:
            logger.error("wp-cli failed for %s: %s", site, e)
            return {"success": False, "error": str(e)}
        return {"success": True, "output": result.stdout}

    async def stream_wp_cli(self, site: str, command: str) -> AsyncIterator[CommandEvent]:
        args = self._wp_cli_args(site, command)
        logger.info("Streaming wp-cli for %s: %s", site, command)
        async for event in self.streamer(args, cwd=self.project_dir, env=compose_env(self.compose_project_name)):
            yield event
