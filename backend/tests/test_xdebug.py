import pytest

from devwp.core.errors import ExitCodeError, FileSystemError, SpawnError
from devwp.system.shell import CommandEvent


@pytest.fixture
def xdebug(context):
    ini = context.settings.xdebug_ini_path
    ini.parent.mkdir(parents=True)
    ini.with_name("xdebug.ini.disabled").write_text("zend_extension=xdebug\n")
    return context.xdebug


async def test_status_reads_container(xdebug, context, runner):
    runner.on("php", "-r", stdout="1\n")

    assert await xdebug.get_status() is True
    assert context.xdebug_enabled is True


async def test_status_falls_back_to_cached_value(xdebug, context, runner):
    context.xdebug_enabled = True
    runner.on("php", error=SpawnError(["docker"], FileNotFoundError("docker")))

    assert await xdebug.get_status() is True


async def test_toggle_enables_and_persists(xdebug, context, runner, streamer):
    runner.on("php", "-r", stdout="0")
    streamer.on("restart", events=[CommandEvent("stderr", " Container devwp_frankenphp  Restarting"), CommandEvent("exit", code=0)])

    events = [e async for e in xdebug.stream_toggle()]

    assert [e.status for e in events] == ["restarting", "progress", "complete"]
    assert events[-1].enabled is True
    assert xdebug.ini_path.is_file()
    assert not xdebug.disabled_path.exists()
    assert context.xdebug_enabled is True
    assert context.store.get_xdebug_enabled() is True
    assert streamer.calls[0][-2:] == ["restart", "frankenphp"]


async def test_toggle_disables(xdebug, context, runner, streamer):
    xdebug.disabled_path.rename(xdebug.ini_path)
    runner.on("php", "-r", stdout="1")

    assert await xdebug.toggle() is False
    assert xdebug.disabled_path.is_file()
    assert context.store.get_setting("xdebug_enabled") == "false"


async def test_failed_restart_reverts_ini(xdebug, context, runner, streamer):
    runner.on("php", "-r", stdout="0")
    streamer.on("restart", events=[CommandEvent("stderr", "service is not running"), CommandEvent("exit", code=1)])

    with pytest.raises(ExitCodeError) as exc:
        await xdebug.toggle()

    assert "service is not running" in str(exc.value)
    assert xdebug.disabled_path.is_file()
    assert not xdebug.ini_path.exists()
    assert context.xdebug_enabled is False
    assert context.store.get_xdebug_enabled() is False


async def test_stream_toggle_reports_errors_as_events(xdebug, runner, streamer):
    runner.on("php", "-r", stdout="0")
    streamer.on("restart", events=[CommandEvent("exit", code=1)])

    events = [e async for e in xdebug.stream_toggle()]

    assert events[0].status == "restarting"
    assert events[-1].status == "error"
    assert events[-1].message.startswith("Failed to toggle Xdebug")


async def test_missing_ini_is_not_found(context, runner, streamer):
    runner.on("php", "-r", stdout="0")

    with pytest.raises(FileSystemError) as exc:
        await context.xdebug.toggle()

    assert exc.value.not_found is True
    assert streamer.calls == []
