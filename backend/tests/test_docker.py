import asyncio

import pytest

from devwp.core.errors import ExitCodeError, SpawnError
from devwp.modules.containers.schemas import Container
from devwp.system.docker_manager import POLL_JOB_ID, DockerManager, is_progress_line, parse_ps_output
from devwp.system.shell import CommandEvent

PS_OUTPUT = (
    "a1|devwp_frankenphp|running\n"
    "b2|devwp_mariadb|Running\n"
    "c3|devwp_certs|exited\n"
    "d4|devwp_mailpit|exited\n"
    "garbage line\n"
)


@pytest.fixture
async def manager(tmp_path, runner, streamer):
    # async so the scheduler is shut down on the loop it runs on
    manager = DockerManager(str(tmp_path), runner=runner, streamer=streamer)
    yield manager
    manager.shutdown()


def test_parse_ps_output_hides_certs_container():
    containers = parse_ps_output(PS_OUTPUT)

    assert [c.name for c in containers] == ["devwp_frankenphp", "devwp_mariadb", "devwp_mailpit"]
    assert containers[1].state == "running"


def test_parse_ps_output_empty():
    assert parse_ps_output("") == []


@pytest.mark.parametrize(
    "line, expected",
    [
        ("Container devwp_redis  Started", True),
        ("abc123 Pull complete", True),
        ("Error response from daemon: port is already allocated", False),
    ],
)
def test_is_progress_line(line, expected):
    assert is_progress_line(line) is expected


async def test_list_containers_probes_versions_of_running(manager, runner):
    runner.on("ps", stdout=PS_OUTPUT)
    runner.on("frankenphp", "version", stdout="FrankenPHP v1.2.5 PHP 8.3.9 Caddy v2.8.4")
    runner.on("mariadb", "--version", stdout="mariadb  Ver 15.1 Distrib 11.4.2-MariaDB, for debian-linux-gnu")

    containers = await manager.list_containers()

    versions = {c.name: c.version for c in containers}
    assert versions == {"devwp_frankenphp": "1.2.5", "devwp_mariadb": "11.4.2", "devwp_mailpit": None}
    # stopped containers are not probed
    assert runner.count("inspect") == 0


async def test_version_from_stderr_probe(manager, runner):
    runner.on("nginx", "-v", stderr="nginx version: nginx/1.27.0")

    version = await manager.get_version(Container(id="n1", name="devwp_nginx", state="running"))

    assert version == "1.27.0"


async def test_version_raw_output_probe(manager, runner):
    runner.on("curl", stdout="10.6.0.92116\n")

    version = await manager.get_version(Container(id="s1", name="devwp_sonarqube", state="running"))

    assert version == "10.6.0.92116"


@pytest.mark.parametrize("image, expected", [("axllent/mailpit:v1.18", "v1.18"), ("axllent/mailpit", "latest")])
async def test_version_from_image_tag(manager, runner, image, expected):
    runner.on("inspect", stdout=image + "\n")

    version = await manager.get_version(Container(id="m1", name="devwp_mailpit", state="running"))

    assert version == expected


async def test_version_failure_is_unknown(manager, runner):
    runner.on("frankenphp", "version", returncode=1, stderr="container is restarting")

    assert await manager.get_version(Container(id="a1", name="devwp_frankenphp", state="running")) is None


async def test_restart(manager, runner):
    assert await manager.restart("a1") is True
    assert runner.calls[-1].args[-2:] == ["restart", "a1"]


async def test_restart_failure_propagates(manager, runner):
    runner.on("restart", returncode=1, stderr="No such container: zz")

    with pytest.raises(ExitCodeError):
        await manager.restart("zz")


async def test_stream_start_group_classifies_lines(manager, streamer):
    streamer.on(
        "up",
        events=[
            CommandEvent("stderr", " Container devwp_frankenphp  Starting"),
            CommandEvent("stderr", "   "),
            CommandEvent("stderr", "service \"frankenphp\" refers to undefined network"),
            CommandEvent("stdout", "done"),
            CommandEvent("exit", code=0),
        ],
    )

    events = [e async for e in manager.stream_start_group()]

    assert [e.status for e in events] == ["starting", "progress", "error", "progress", "complete"]
    assert events[-1].code == 0
    assert streamer.calls[0][-4:] == ["up", "-d", "--build", "frankenphp"]


async def test_stream_start_group_reports_exit_code(manager, streamer):
    streamer.on("up", events=[CommandEvent("exit", code=1)])

    events = [e async for e in manager.stream_start_group()]

    assert events[-1].status == "error"
    assert events[-1].code == 1
    assert events[-1].message == "Process exited with code 1"


async def test_start_group_raises_on_failure(manager, streamer):
    streamer.on("up", events=[CommandEvent("exit", code=17)])
    seen = []

    with pytest.raises(ExitCodeError) as exc:
        await manager.start_group(on_progress=seen.append)

    assert exc.value.returncode == 17
    assert [e.status for e in seen] == ["starting", "error"]


async def test_start_group_spawn_failure(manager, streamer):
    streamer.on("up", events=[SpawnError(["docker"], FileNotFoundError("docker"))])
    seen = []

    with pytest.raises(SpawnError):
        await manager.start_group(on_progress=seen.append)

    assert seen[-1].status == "error"
    assert seen[-1].message.startswith("Failed to start Docker")


async def test_start_and_stop_mariadb_group(manager, runner):
    await manager.start_mariadb()
    await manager.stop_group()

    assert runner.calls[0].args[-4:] == ["up", "-d", "--build", "mariadb"]
    assert runner.calls[0].env["COMPOSE_PROJECT_NAME"] == "devwp"
    assert runner.calls[1].args[-1] == "down"


async def test_polling_delivers_snapshots_and_stops(manager, runner):
    runner.on("ps", stdout="a1|devwp_redis|exited\n")
    updates = []

    stop = manager.start_polling(updates.append, interval=0.2)
    await asyncio.sleep(0.5)
    stop()
    seen = runner.count("ps")
    await asyncio.sleep(0.5)

    assert len(updates) >= 2
    assert updates[0][0].name == "devwp_redis"
    assert manager.snapshot == updates[-1]
    assert runner.count("ps") == seen


async def test_starting_twice_keeps_one_timer(manager, runner):
    manager.start_polling(lambda containers: None, interval=0.2)
    manager.start_polling(lambda containers: None, interval=0.2)
    await asyncio.sleep(0.5)
    manager.stop_polling()

    assert len(manager.scheduler.get_jobs()) == 0
    # one job fires about three times in half a second, two would double that
    assert runner.count("ps") <= 4


async def test_polling_survives_errors(manager, runner):
    runner.on("ps", returncode=1, stderr="Cannot connect to the Docker daemon")
    errors = []

    manager.start_polling(lambda containers: None, interval=0.2, on_error=errors.append)
    await asyncio.sleep(0.5)
    manager.stop_polling()

    assert len(errors) >= 2
    assert all(isinstance(e, ExitCodeError) for e in errors)


async def test_stop_polling_without_start_is_harmless(manager):
    manager.stop_polling()
    manager.stop_polling()


async def test_watch_containers_stops_polling_when_closed(manager, runner):
    runner.on("ps", stdout="a1|devwp_frankenphp|exited\n")

    stream = manager.watch_containers(interval=0.2)
    first = await stream.__anext__()
    await stream.aclose()

    assert first[0].name == "devwp_frankenphp"
    assert manager.scheduler.get_jobs() == []


async def test_concurrent_watchers_each_get_snapshots(manager, runner):
    runner.on("ps", stdout="a1|devwp_redis|running\n")
    first = manager.watch_containers(interval=0.1)
    second = manager.watch_containers(interval=0.1)

    assert (await asyncio.wait_for(first.__anext__(), 1))[0].name == "devwp_redis"
    assert (await asyncio.wait_for(second.__anext__(), 1))[0].name == "devwp_redis"
    assert len(manager.scheduler.get_jobs()) == 2

    await second.aclose()
    # the first watcher keeps polling after the second one leaves
    assert await asyncio.wait_for(first.__anext__(), 1)
    assert len(manager.scheduler.get_jobs()) == 1

    await first.aclose()
    assert manager.scheduler.get_jobs() == []


async def test_watchers_leave_the_main_poll_alone(manager, runner):
    updates = []
    manager.start_polling(updates.append, interval=0.1)

    stream = manager.watch_containers(interval=0.1)
    await asyncio.wait_for(stream.__anext__(), 1)
    await stream.aclose()

    assert manager.scheduler.get_job(POLL_JOB_ID) is not None
