import asyncio
import logging
import os
import re
import shlex
from pathlib import Path

from devwp.core.errors import FileSystemError, ValidationError
from devwp.system.shell import run_command

logger = logging.getLogger(__name__)

START_MARKER = "# Start DevWP"
END_MARKER = "# End DevWP"
LOOPBACK = "127.0.0.1"


def _find(lines, marker, start=0):
    for i in range(start, len(lines)):
        if lines[i].strip() == marker:
            return i
    return None


def update_hosts_block(content: str, domain: str, action: str) -> str:
    """
    Add or remove `127.0.0.1 <domain>` inside the DevWP block of a hosts file.

    The block is appended when missing. Existing lines for the domain are
    matched on the first token of `domain` as a plain substring, so removing
    `test.com` also drops a `mytest.com` line. When a removal leaves the block
    empty, the block and both markers go away. A start marker without its end
    marker is refused rather than guessed at.
    """
    if action not in ("add", "remove"):
        raise ValidationError(f"Unknown hosts action: {action}")

    lines = content.split("\n")
    start = _find(lines, START_MARKER)
    end = _find(lines, END_MARKER, start + 1) if start is not None else None
    if start is not None and end is None:
        raise ValidationError(f"Hosts file has a '{START_MARKER}' line without '{END_MARKER}', fix it by hand")

    if end is not None:
        before, block, after = lines[:start], lines[start + 1:end], lines[end + 1:]
    else:
        if action == "remove":
            return content
        before = lines
        if before and before[-1] == "":
            before = before[:-1]
        before = before + [""]
        block, after = [], [""]

    match = domain.split(" ")[0]
    block = [line for line in block if match not in line]

    if action == "add":
        while block and not block[-1].strip():
            block.pop()
        block.append(f"{LOOPBACK} {domain}")

    if not any(line.strip() for line in block):
        while before and not before[-1].strip():
            before.pop()
        result = "\n".join(before + after)
    else:
        result = "\n".join(before + [START_MARKER] + block + [END_MARKER] + after)

    return re.sub(r"\n{3,}", "\n\n", result)


class HostsManager:
    def __init__(self, hosts_file: str, elevate_command: str = "sudo", runner=run_command):
        self.hosts_file = hosts_file
        self.elevate_command = elevate_command
        self.runner = runner

    def _read(self) -> str:
        path = Path(self.hosts_file)
        try:
            return path.read_text(encoding="utf-8")
        except FileNotFoundError as e:
            raise FileSystemError(f"Hosts file not found: {path}", path=str(path), not_found=True) from e
        except OSError as e:
            raise FileSystemError(f"Cannot read hosts file {path}: {e}", path=str(path)) from e

    async def _write(self, content: str) -> None:
        if os.access(self.hosts_file, os.W_OK):
            try:
                await asyncio.to_thread(Path(self.hosts_file).write_text, content, encoding="utf-8")
                return
            except OSError as e:
                raise FileSystemError(f"Cannot write hosts file: {e}", path=self.hosts_file) from e

        # Privileged file: hand the content to `tee` under the elevation helper
        args = [*shlex.split(self.elevate_command), "tee", self.hosts_file]
        await self.runner(args, input=content)

    async def apply_hosts_entry(self, domain: str, action: str) -> bool:
        """Returns True when the file was rewritten."""
        content = await asyncio.to_thread(self._read)
        updated = update_hosts_block(content, domain, action)
        if updated == content:
            logger.debug("Hosts file already up to date for %s (%s)", domain, action)
            return False

        await self._write(updated)
        logger.info("Hosts entry %s: %s", "added" if action == "add" else "removed", domain)
        return True
