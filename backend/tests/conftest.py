from dataclasses import dataclass, field
from typing import List, Optional

import pytest

from devwp.core.config import Settings
from devwp.core.context import build_context
from devwp.core.errors import ExitCodeError, StoreError
from devwp.system.shell import CommandEvent, CommandResult


@dataclass
class Call:
    args: List[str]
    cwd: Optional[str] = None
    env: Optional[dict] = None
    input: Optional[str] = None

    @property
    def line(self) -> str:
        return " ".join(self.args)


class FakeRunner:
    """
    Stand-in for shell.run_command. Rules match when every token is one of
    the args; the most recently added matching rule wins. Unmatched commands
    succeed with empty output.
    """

    def __init__(self):
        self.calls: List[Call] = []
        self.rules = []

    def on(self, *tokens, stdout="", stderr="", returncode=0, error=None):
        self.rules.append((tokens, stdout, stderr, returncode, error))
        return self

    async def __call__(self, args, *, cwd=None, env=None, input=None, check=True):
        args = [str(a) for a in args]
        self.calls.append(Call(args, cwd, env, input))
        for tokens, stdout, stderr, returncode, error in reversed(self.rules):
            if all(t in args for t in tokens):
                if error is not None:
                    raise error
                if check and returncode != 0:
                    raise ExitCodeError(args, returncode, stderr)
                return CommandResult(args, returncode, stdout, stderr)
        return CommandResult(args, 0, "", "")

    def lines(self) -> List[str]:
        return [c.line for c in self.calls]

    def count(self, *tokens) -> int:
        return sum(1 for c in self.calls if all(t in c.args for t in tokens))


class FakeStreamer:
    """Stand-in for shell.stream_command, replaying scripted events."""

    def __init__(self):
        self.calls: List[List[str]] = []
        self.scripts = []

    def on(self, *tokens, events):
        self.scripts.append((tokens, events))
        return self

    def __call__(self, args, *, cwd=None, env=None):
        args = [str(a) for a in args]
        self.calls.append(args)
        events = [CommandEvent("exit", code=0)]
        for tokens, scripted in reversed(self.scripts):
            if all(t in args for t in tokens):
                events = scripted
                break
        return self._replay(events)

    @staticmethod
    async def _replay(events):
        for event in events:
            if isinstance(event, Exception):
                raise event
            yield event


class FakeMariaDB:
    def __init__(self):
        self.created = []
        self.dropped = []
        self.fail_create = False
        self.fail_drop = False

    async def wait_for_database(self, attempts=30, delay=1.0):
        return None

    async def ensure_config_database(self, name):
        return None

    async def create_database(self, name):
        if self.fail_create:
            raise StoreError(f"Error creating database {name}", diagnostic="access denied")
        self.created.append(name)

    async def drop_database(self, name):
        if self.fail_drop:
            raise StoreError(f"Error dropping database {name}", diagnostic="gone away")
        self.dropped.append(name)


class FakeResponse:
    def __init__(self, status_code=200, payload=None, text=""):
        self.status_code = status_code
        self._payload = payload
        self.text = text

    @property
    def ok(self):
        return self.status_code < 400

    def json(self):
        if self._payload is None:
            raise ValueError("no json")
        return self._payload


@dataclass
class FakeHttpSession:
    responses: dict = field(default_factory=dict)
    posts: list = field(default_factory=list)

    def respond(self, suffix, status_code=200, payload=None, text=""):
        self.responses[suffix] = FakeResponse(status_code, payload, text)

    def post(self, url, data=None, headers=None, timeout=None):
        self.posts.append((url, data, headers))
        for suffix, response in self.responses.items():
            if url.endswith(suffix):
                if isinstance(response, Exception):
                    raise response
                return response
        return FakeResponse(200, {})


@pytest.fixture
def runner():
    return FakeRunner()


@pytest.fixture
def streamer():
    return FakeStreamer()


@pytest.fixture
def http_session():
    return FakeHttpSession()


@pytest.fixture
def hosts_file(tmp_path):
    path = tmp_path / "hosts"
    path.write_text("127.0.0.1 localhost\n::1 localhost\n", encoding="utf-8")
    return path


@pytest.fixture
def webroot(tmp_path):
    path = tmp_path / "www"
    path.mkdir()
    return path


@pytest.fixture
def settings(tmp_path, hosts_file):
    project = tmp_path / "project"
    project.mkdir()
    return Settings(
        project_dir=str(project),
        config_database_url="sqlite://",
        mariadb_url="sqlite://",
        hosts_file=str(hosts_file),
        log_dir=str(tmp_path / "logs"),
        poll_interval=0.2,
    )


@pytest.fixture
def context(settings, runner, streamer, http_session, webroot, tmp_path):
    ctx = build_context(settings, runner=runner, streamer=streamer, http_session=http_session, log_dir=tmp_path / "logs")
    ctx.mariadb = FakeMariaDB()
    ctx.store.initialize()
    ctx.store.save_setting("webroot_path", str(webroot))
    yield ctx
    ctx.docker.shutdown()
    ctx.engine.dispose()
