import asyncio
import logging
import os
import platform
from dataclasses import dataclass
from typing import AsyncIterator, Dict, List, Optional, Sequence

from devwp.core.errors import ExitCodeError, SpawnError

logger = logging.getLogger(__name__)

IS_WINDOWS = platform.system() == "Windows"
DOCKER_BIN = "docker.exe" if IS_WINDOWS else "docker"


@dataclass
class CommandResult:
    args: List[str]
    returncode: int
    stdout: str
    stderr: str


@dataclass
class CommandEvent:
    kind: str  # stdout, stderr, exit
    data: str = ""
    code: Optional[int] = None

    def as_dict(self) -> dict:
        if self.kind == "exit":
            return {"type": "exit", "code": self.code}
        return {"type": self.kind, "data": self.data}


def compose_command(*args: str) -> List[str]:
    return [DOCKER_BIN, "compose", *args]


def compose_env(project_name: str) -> Dict[str, str]:
    env = os.environ.copy()
    env["COMPOSE_PROJECT_NAME"] = project_name
    return env


async def _spawn(args: Sequence[str], cwd, env, stdin):
    try:
        return await asyncio.create_subprocess_exec(
            *args,
            stdin=stdin,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
            cwd=cwd,
            env=env,
        )
    except OSError as e:
        logger.error("Failed to spawn %s: %s", args[0], e)
        raise SpawnError(args, e) from e


async def run_command(
    args: Sequence[str],
    *,
    cwd: Optional[str] = None,
    env: Optional[Dict[str, str]] = None,
    input: Optional[str] = None,
    check: bool = True,
) -> CommandResult:
    """
    Run a command to completion and capture its output.
    No shell is involved; `args` goes straight to exec.
    """
    args = [str(a) for a in args]
    logger.debug("Executing: %s", " ".join(args))

    stdin = asyncio.subprocess.PIPE if input is not None else asyncio.subprocess.DEVNULL
    proc = await _spawn(args, cwd, env, stdin)
    out, err = await proc.communicate(input.encode() if input is not None else None)

    result = CommandResult(
        args=args,
        returncode=proc.returncode,
        stdout=out.decode(errors="replace"),
        stderr=err.decode(errors="replace"),
    )
    if check and result.returncode != 0:
        logger.debug("Command %s exited with %s: %s", args[0], result.returncode, result.stderr.strip())
        raise ExitCodeError(args, result.returncode, result.stderr)
    return result


async def stream_command(
    args: Sequence[str],
    *,
    cwd: Optional[str] = None,
    env: Optional[Dict[str, str]] = None,
) -> AsyncIterator[CommandEvent]:
    """
    Async generator version of run_command.
    Yields stdout/stderr lines as they arrive, then a single `exit` event.
    Closing the generator early kills the process.
    """
    args = [str(a) for a in args]
    logger.debug("Streaming: %s", " ".join(args))
    proc = await _spawn(args, cwd, env, asyncio.subprocess.DEVNULL)

    queue: asyncio.Queue = asyncio.Queue()

    async def pump(stream, kind):
        async for raw in stream:
            await queue.put(CommandEvent(kind, raw.decode(errors="replace").rstrip("\r\n")))
        await queue.put(None)

    readers = [
        asyncio.create_task(pump(proc.stdout, "stdout")),
        asyncio.create_task(pump(proc.stderr, "stderr")),
    ]

    try:
        open_streams = len(readers)
        while open_streams:
            event = await queue.get()
            if event is None:
                open_streams -= 1
                continue
            yield event

        code = await proc.wait()
        yield CommandEvent("exit", code=code)
    finally:
        for task in readers:
            task.cancel()
        if proc.returncode is None:
            proc.kill()
            await proc.wait()
