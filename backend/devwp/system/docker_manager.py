import asyncio
import inspect
import itertools
import logging
import re
from datetime import datetime
from typing import AsyncIterator, Callable, List, Optional

from apscheduler.jobstores.base import JobLookupError
from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.interval import IntervalTrigger

from devwp.core.errors import DevWPError, ExitCodeError, SpawnError
from devwp.modules.containers.schemas import Container, DockerStatusEvent
from devwp.system.shell import (
    DOCKER_BIN,
    compose_command,
    compose_env,
    run_command,
    stream_command,
)

logger = logging.getLogger(__name__)

POLL_JOB_ID = "container-status"
HIDDEN_CONTAINERS = ("devwp_certs",)

# Lines on compose stderr that are progress, not errors
PROGRESS_KEYWORDS = (
    "Pulling from",
    "Pulling fs layer",
    "Download complete",
    "Pull complete",
    "Digest:",
    "Status:",
    "Started",
    "Starting",
    "Running",
    "Built",
    "Creating",
    "Created",
    "Extracting",
    "Verifying Checksum",
    "Downloading",
    "Unpacking",
    "Waiting",
    "Removing",
    "Healthy",
)

# container name -> (command inside the container, stream holding the version, regex)
VERSION_PROBES = {
    "devwp_frankenphp": (["frankenphp", "version"], "stdout", r"FrankenPHP v?(\d+\.\d+\.\d+)"),
    "devwp_php": (["php", "--version"], "stdout", r"PHP\s+(\d+\.\d+\.\d+)"),
    "devwp_nginx": (["nginx", "-v"], "stderr", r"nginx/(\d+\.\d+\.\d+)"),
    "devwp_mariadb": (["mariadb", "--version"], "stdout", r"\s+([\d.]+)-MariaDB"),
    "devwp_redis": (["redis-server", "--version"], "stdout", r"v=([\d.]+)"),
    "devwp_sonarqube": (["curl", "-s", "http://localhost:9000/api/server/version"], "stdout", None),
}


def parse_ps_output(output: str) -> List[Container]:
    containers = []
    for line in output.strip().split("\n"):
        if not line.strip():
            continue
        parts = line.strip().split("|")
        if len(parts) < 3:
            logger.debug("Skipping malformed ps line: %s", line)
            continue
        cid, name, state = parts[0], parts[1], parts[2]
        if name in HIDDEN_CONTAINERS:
            continue
        containers.append(Container(id=cid, name=name, state=state.lower()))
    return containers


def is_progress_line(line: str) -> bool:
    return any(keyword in line for keyword in PROGRESS_KEYWORDS)


class DockerManager:
    """
    Container supervisor for the DevWP compose project.

    Status polling runs as a single APScheduler interval job; starting it again
    replaces the job, so there is never more than one timer.
    """

    def __init__(
        self,
        project_dir: str,
        compose_project_name: str = "devwp",
        runner=run_command,
        streamer=stream_command,
    ):
        self.project_dir = project_dir
        self.compose_project_name = compose_project_name
        self.runner = runner
        self.streamer = streamer

        self.scheduler: Optional[AsyncIOScheduler] = None
        self.snapshot: List[Container] = []
        self._watch_ids = itertools.count(1)

    def _compose_kwargs(self) -> dict:
        return {"cwd": self.project_dir, "env": compose_env(self.compose_project_name)}

    # --- Queries ---

    async def get_version(self, container: Container) -> Optional[str]:
        probe = VERSION_PROBES.get(container.name)
        try:
            if probe is None:
                result = await self.runner(
                    [DOCKER_BIN, "inspect", "--format", "{{index .Config.Image}}", container.id]
                )
                match = re.search(r":([^:]+)$", result.stdout.strip())
                return match.group(1) if match else "latest"

            command, stream, pattern = probe
            result = await self.runner([DOCKER_BIN, "exec", container.id, *command])
            output = result.stderr if stream == "stderr" else result.stdout
            if pattern is None:
                return output.strip() or None
            match = re.search(pattern, output)
            return match.group(1) if match else None
        except DevWPError as e:
            logger.debug("Version lookup failed for %s: %s", container.name, e)
            return None

    async def list_containers(self) -> List[Container]:
        result = await self.runner(
            compose_command("ps", "--format", "{{.ID}}|{{.Names}}|{{.State}}", "-a"),
            **self._compose_kwargs(),
        )
        logger.debug("[docker compose ps output]\n%s", result.stdout)
        containers = parse_ps_output(result.stdout)

        running = [c for c in containers if c.state == "running"]
        versions = await asyncio.gather(*(self.get_version(c) for c in running))
        for container, version in zip(running, versions):
            container.version = version
        return containers

    # --- Actions ---

    async def restart(self, container_id: str) -> bool:
        result = await self.runner([DOCKER_BIN, "restart", container_id])
        logger.info("Container restart output: %s", result.stdout.strip())
        return True

    async def start_mariadb(self) -> None:
        logger.info("Starting MariaDB container...")
        await self.runner(compose_command("up", "-d", "--build", "mariadb"), **self._compose_kwargs())
        logger.info("MariaDB container started successfully")

    async def stop_group(self) -> None:
        await self.runner(compose_command("down"), **self._compose_kwargs())
        logger.info("Docker containers stopped")

    async def stream_start_group(self) -> AsyncIterator[DockerStatusEvent]:
        args = compose_command("up", "-d", "--build", "frankenphp")
        yield DockerStatusEvent(status="starting", message="Starting Docker containers...")

        try:
            async for event in self.streamer(args, **self._compose_kwargs()):
                if event.kind == "exit":
                    if event.code == 0:
                        yield DockerStatusEvent(
                            status="complete", message="Docker containers started successfully", code=0
                        )
                    else:
                        logger.error("Docker compose exited with code %s", event.code)
                        yield DockerStatusEvent(
                            status="error", message=f"Process exited with code {event.code}", code=event.code
                        )
                    return

                line = event.data.strip()
                if not line:
                    continue
                logger.debug("[docker compose %s] %s", event.kind, line)
                if event.kind == "stdout" or is_progress_line(line):
                    yield DockerStatusEvent(status="progress", message=line)
                else:
                    yield DockerStatusEvent(status="error", message=line)
        except SpawnError as e:
            yield DockerStatusEvent(status="error", message=f"Failed to start Docker: {e.reason}")
            raise

    async def start_group(self, on_progress: Optional[Callable] = None) -> None:
        args = compose_command("up", "-d", "--build", "frankenphp")
        async for event in self.stream_start_group():
            if on_progress is not None:
                outcome = on_progress(event)
                if inspect.isawaitable(outcome):
                    await outcome
            if event.code is not None and event.code != 0:
                raise ExitCodeError(args, event.code)

    # --- Polling ---

    def _ensure_scheduler(self) -> AsyncIOScheduler:
        if self.scheduler is None:
            self.scheduler = AsyncIOScheduler()
        if not self.scheduler.running:
            self.scheduler.start()
        return self.scheduler

    def start_polling(
        self,
        on_update: Callable,
        interval: float = 5.0,
        on_error: Optional[Callable] = None,
        job_id: str = POLL_JOB_ID,
    ) -> Callable[[], None]:
        async def check_containers():
            try:
                containers = await self.list_containers()
                self.snapshot = containers
                outcome = on_update(containers)
                if inspect.isawaitable(outcome):
                    await outcome
            except Exception as e:
                logger.error("Error checking containers: %s", e)
                if on_error is not None:
                    on_error(e)

        scheduler = self._ensure_scheduler()
        scheduler.add_job(
            check_containers,
            IntervalTrigger(seconds=interval),
            id=job_id,
            replace_existing=True,
            next_run_time=datetime.now(),
            max_instances=1,
            coalesce=True,
        )
        logger.debug("Container polling every %ss (%s)", interval, job_id)
        return lambda: self.stop_polling(job_id)

    def stop_polling(self, job_id: str = POLL_JOB_ID) -> None:
        if self.scheduler is None:
            return
        try:
            self.scheduler.remove_job(job_id)
            logger.debug("Container polling stopped")
        except JobLookupError:
            pass

    async def watch_containers(self, interval: float = 5.0) -> AsyncIterator[List[Container]]:
        """
        Poll results as an async stream; closing the stream stops the poll.
        Each stream has its own job, so concurrent watchers do not replace each other.
        """
        queue: asyncio.Queue = asyncio.Queue()
        job_id = f"{POLL_JOB_ID}-{next(self._watch_ids)}"
        stop = self.start_polling(queue.put_nowait, interval=interval, job_id=job_id)
        try:
            while True:
                yield await queue.get()
        finally:
            stop()

    def shutdown(self) -> None:
        self.stop_polling()
        if self.scheduler is not None and self.scheduler.running:
            self.scheduler.shutdown(wait=False)
        self.scheduler = None
