from dataclasses import dataclass
from pathlib import Path
from typing import Any, Optional

from fastapi.requests import HTTPConnection

from devwp.core.config import Settings
from devwp.core.database import create_session_factory
from devwp.system.config_store import ConfigStore
from devwp.system.docker_manager import DockerManager
from devwp.system.frankenphp_manager import FrankenPHPManager
from devwp.system.hosts_manager import HostsManager
from devwp.system.mariadb_manager import MariaDBManager
from devwp.system.redis_manager import RedisManager
from devwp.system.shell import run_command, stream_command
from devwp.system.site_manager import SiteManager
from devwp.system.sonarqube_manager import SonarQubeManager
from devwp.system.wordpress_manager import WordPressManager
from devwp.system.xdebug_manager import XdebugManager


@dataclass
class AppContext:
    """
    Everything the API needs at runtime, built once at startup.
    Lives on `app.state.context`; routes get it through `Depends(get_context)`.
    """

    settings: Settings
    engine: Any
    session_factory: Any
    log_dir: Optional[Path] = None

    # Last known Xdebug state, used when the container cannot be asked
    xdebug_enabled: bool = False

    runner: Any = None

    store: Any = None
    mariadb: Any = None
    hosts: Any = None
    frankenphp: Any = None
    docker: Any = None
    wordpress: Any = None
    redis: Any = None
    sonarqube: Any = None
    xdebug: Any = None
    sites: Any = None

    @property
    def verbose(self) -> bool:
        return self.settings.verbose


def build_context(settings: Settings, runner=run_command, streamer=stream_command, http_session=None, log_dir=None) -> AppContext:
    engine, SessionLocal = create_session_factory(settings.config_database_url)
    context = AppContext(
        settings=settings,
        engine=engine,
        session_factory=SessionLocal,
        log_dir=Path(log_dir or settings.log_dir).expanduser(),
    )

    context.runner = runner
    project = settings.project_dir
    compose_name = settings.compose_project_name

    context.store = ConfigStore(engine, SessionLocal)
    context.mariadb = MariaDBManager(settings.mariadb_url)
    context.hosts = HostsManager(settings.hosts_file, settings.elevate_command, runner=runner)
    context.frankenphp = FrankenPHPManager(settings.frankenphp_sites_dir, project, compose_name, runner=runner)
    context.docker = DockerManager(project, compose_name, runner=runner, streamer=streamer)
    context.wordpress = WordPressManager(project, compose_name, runner=runner, streamer=streamer)
    context.redis = RedisManager(runner=runner)
    context.sonarqube = SonarQubeManager(
        settings.sonarqube_url, settings.sonar_token, project, compose_name, runner=runner, session=http_session
    )
    context.xdebug = XdebugManager(context, runner=runner, streamer=streamer)
    context.sites = SiteManager(context)
    return context


# Dependency
def get_context(connection: HTTPConnection) -> AppContext:
    return connection.app.state.context
