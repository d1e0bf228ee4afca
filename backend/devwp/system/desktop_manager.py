import logging
import platform
import webbrowser
from pathlib import Path
from typing import Optional

from devwp.core.errors import FileSystemError, ValidationError
from devwp.system.shell import run_command

logger = logging.getLogger(__name__)


def file_manager_command(path: str) -> list:
    system = platform.system()
    if system == "Windows":
        return ["explorer", path]
    if system == "Darwin":
        return ["open", path]
    return ["xdg-open", path]


async def open_target(target: str, runner=run_command, browser_open=webbrowser.open) -> str:
    """Open a URL in the default browser or a local path in the file manager."""
    target = (target or "").strip()
    if not target:
        raise ValidationError("Nothing to open")

    if target.startswith(("http://", "https://")):
        browser_open(target)
        logger.info("Opened %s in browser", target)
        return "url"

    path = Path(target).expanduser()
    if not path.exists():
        raise FileSystemError(f"Path not found: {path}", path=str(path), not_found=True)

    # explorer.exe returns 1 even on success
    await runner(file_manager_command(str(path)), check=platform.system() != "Windows")
    logger.info("Opened %s in file manager", path)
    return "path"


def list_directories(path: Optional[str] = None) -> dict:
    base = Path(path).expanduser() if path else Path.home()
    if not base.is_dir():
        raise FileSystemError(f"Directory not found: {base}", path=str(base), not_found=True)

    try:
        entries = sorted(
            (e for e in base.iterdir() if e.is_dir() and not e.name.startswith(".")),
            key=lambda e: e.name.lower(),
        )
    except PermissionError as e:
        raise FileSystemError(f"Cannot read {base}: {e}", path=str(base)) from e

    return {
        "path": str(base.resolve()),
        "parent": str(base.resolve().parent),
        "directories": [{"name": e.name, "path": str(e)} for e in entries],
    }
