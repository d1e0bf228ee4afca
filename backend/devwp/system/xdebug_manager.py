import asyncio
import logging
from pathlib import Path
from typing import AsyncIterator

from devwp.core.errors import DevWPError, ExitCodeError, FileSystemError
from devwp.modules.xdebug.schemas import XdebugEvent
from devwp.system.config_store import XDEBUG_KEY
from devwp.system.shell import compose_command, compose_env, run_command, stream_command

logger = logging.getLogger(__name__)

CHECK_SCRIPT = "echo extension_loaded('xdebug') ? 1 : 0;"


class XdebugManager:
    """
    Xdebug on/off for the FrankenPHP container.

    The switch is the presence of conf.d/xdebug.ini (vs xdebug.ini.disabled);
    the container has to restart to pick it up. The last known state is
    cached on the app context for when the container cannot be asked.
    """

    def __init__(self, context, runner=run_command, streamer=stream_command):
        self.context = context
        self.runner = runner
        self.streamer = streamer

    @property
    def ini_path(self) -> Path:
        return self.context.settings.xdebug_ini_path

    @property
    def disabled_path(self) -> Path:
        return self.ini_path.with_name(self.ini_path.name + ".disabled")

    def _compose_kwargs(self) -> dict:
        settings = self.context.settings
        return {"cwd": settings.project_dir, "env": compose_env(settings.compose_project_name)}

    async def get_status(self) -> bool:
        args = compose_command("exec", "-T", "frankenphp", "php", "-r", CHECK_SCRIPT)
        try:
            result = await self.runner(args, **self._compose_kwargs())
        except DevWPError as e:
            logger.warning("Error checking Xdebug status, using cached value: %s", e)
            return self.context.xdebug_enabled

        enabled = result.stdout.strip() == "1"
        self.context.xdebug_enabled = enabled
        return enabled

    def _switch_ini(self, enable: bool) -> None:
        source, target = (self.disabled_path, self.ini_path) if enable else (self.ini_path, self.disabled_path)
        if not source.is_file():
            raise FileSystemError(f"Xdebug config not found: {source}", path=str(source), not_found=True)
        try:
            source.rename(target)
        except OSError as e:
            raise FileSystemError(f"Cannot rename {source}: {e}", path=str(source)) from e

    async def _toggle_steps(self) -> AsyncIterator[XdebugEvent]:
        current = await self.get_status()
        target = not current

        await asyncio.to_thread(self._switch_ini, target)
        yield XdebugEvent(status="restarting", enabled=target)

        args = compose_command("restart", "frankenphp")
        code = None
        errors = []
        try:
            async for event in self.streamer(args, **self._compose_kwargs()):
                if event.kind == "exit":
                    code = event.code
                elif event.data.strip():
                    if event.kind == "stderr":
                        errors.append(event.data.strip())
                    yield XdebugEvent(status="progress", message=event.data.strip())
            if code != 0:
                raise ExitCodeError(args, code, "\n".join(errors))
        except DevWPError:
            # Put the ini back so the file matches the running container
            await asyncio.to_thread(self._switch_ini, current)
            raise

        self.context.xdebug_enabled = target
        try:
            await asyncio.to_thread(self.context.store.save_setting, XDEBUG_KEY, "true" if target else "false")
        except DevWPError as e:
            logger.warning("Could not persist Xdebug state: %s", e)

        logger.info("Xdebug %s", "enabled" if target else "disabled")
        yield XdebugEvent(status="complete", enabled=target)

    async def stream_toggle(self) -> AsyncIterator[XdebugEvent]:
        try:
            async for event in self._toggle_steps():
                yield event
        except DevWPError as e:
            logger.error("Error toggling Xdebug: %s", e)
            yield XdebugEvent(status="error", message=f"Failed to toggle Xdebug: {e}")

    async def toggle(self) -> bool:
        async for _ in self._toggle_steps():
            pass
        return self.context.xdebug_enabled
