import asyncio
import logging

import requests

from devwp.core.errors import ExitCodeError, SonarQubeError
from devwp.system.shell import compose_command, compose_env, run_command

logger = logging.getLogger(__name__)

AUTH_HINT = (
    "SonarQube authentication failed. Check the SONAR_TOKEN environment variable or "
    "configure a valid API token in SonarQube (Administration > Security > Users > Tokens)."
)


class SonarQubeManager:
    """
    Code-quality projects for the sites. The web API is reached from the host;
    scans run in the `sonarqube-scanner` compose service, which talks to the
    server over the compose network.
    """

    def __init__(
        self,
        base_url: str,
        token: str,
        project_dir: str,
        compose_project_name: str = "devwp",
        runner=run_command,
        session=None,
        timeout: float = 10,
    ):
        self.base_url = base_url.rstrip("/")
        self.token = token
        self.project_dir = project_dir
        self.compose_project_name = compose_project_name
        self.runner = runner
        self.session = session or requests.Session()
        self.timeout = timeout

    def _post(self, endpoint: str, data: dict) -> requests.Response:
        try:
            return self.session.post(
                f"{self.base_url}/api/{endpoint}",
                data=data,
                headers={"Authorization": f"Bearer {self.token}"},
                timeout=self.timeout,
            )
        except requests.RequestException as e:
            raise SonarQubeError(f"Cannot reach SonarQube at {self.base_url}: {e}") from e

    @staticmethod
    def _error_text(response: requests.Response) -> str:
        try:
            errors = response.json().get("errors", [])
            return "; ".join(e.get("msg", "") for e in errors) or response.text
        except ValueError:
            return response.text

    def _create_project(self, name: str, key: str) -> None:
        response = self._post("projects/create", {"name": name, "project": key})
        if response.status_code in (401, 403):
            raise SonarQubeError(AUTH_HINT)
        if not response.ok:
            raise SonarQubeError(f"SonarQube API error: {self._error_text(response)}")
        logger.info("Created SonarQube project %s (key: %s)", name, key)

    def _delete_project(self, key: str) -> None:
        response = self._post("projects/delete", {"project": key})
        if response.status_code in (401, 403):
            raise SonarQubeError(AUTH_HINT)
        if not response.ok:
            error = self._error_text(response)
            if response.status_code == 404 or "not found" in error.lower():
                logger.warning("SonarQube project %s not found for deletion (may have already been deleted)", key)
                return
            raise SonarQubeError(f"SonarQube API error: {error}")
        logger.info("Deleted SonarQube project %s", key)

    async def create_project(self, name: str, key: str) -> None:
        await asyncio.to_thread(self._create_project, name, key)

    async def delete_project(self, key: str) -> None:
        await asyncio.to_thread(self._delete_project, key)

    async def scan(self, domain: str, project_key: str) -> str:
        args = compose_command(
            "run", "--rm", "sonarqube-scanner", "sonar-scanner",
            f"-Dsonar.projectKey={project_key}",
            f"-Dsonar.sources=/src/www/{domain}",
            "-Dsonar.host.url=http://sonarqube:9000",
            f"-Dsonar.token={self.token}",
        )
        logger.info("Starting SonarQube scan for %s (project %s)", domain, project_key)
        try:
            result = await self.runner(args, cwd=self.project_dir, env=compose_env(self.compose_project_name))
        except ExitCodeError as e:
            if any(s in e.stderr for s in ("Authentication failed", "Not authorized", "401")):
                raise SonarQubeError(AUTH_HINT) from e
            if "Project not found" in e.stderr:
                raise SonarQubeError(
                    f"SonarQube project '{project_key}' not found. Ensure it was created successfully."
                ) from e
            raise SonarQubeError(f"SonarQube scan failed: {e}") from e

        if "EXECUTION_FAILURE" in result.stdout:
            raise SonarQubeError("SonarQube scan execution failed. Check scanner logs.")
        if "Not authorized" in result.stdout or "Authentication required" in result.stdout:
            raise SonarQubeError(AUTH_HINT)

        logger.info("SonarQube scan finished for %s", domain)
        return result.stdout
