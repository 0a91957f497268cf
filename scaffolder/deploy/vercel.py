#  Project Scaffolder - Vercel Deploy Target
#
#  Vercel REST client: project lookup/creation, environment variables,
#  deployment trigger, and a deadline-bounded status poll.
#
#  Depends on: config.py, exceptions.py, models/enums.py
#  Used by:    deploy/pipeline.py

import asyncio
import logging
import time

import httpx

from scaffolder.config import (
    DEPLOY_CREDENTIAL_ENV,
    VERCEL_API_URL,
    VERCEL_DEPLOY_TIMEOUT,
    VERCEL_FRAMEWORK,
    VERCEL_POLL_INTERVAL,
    get_credential,
)
from scaffolder.exceptions import (
    DeploymentStateError,
    DeploymentTimeoutError,
    ProviderNotConfiguredError,
    VercelError,
)
from scaffolder.models.enums import VercelState

logger = logging.getLogger("scaffolder.vercel")

_ENV_TARGETS = ["production", "preview"]
_FAILED_STATES = {VercelState.ERROR.value, VercelState.CANCELED.value}


class VercelService:
    """Thin async wrapper over the Vercel REST API.

    poll_interval and deploy_timeout are per instance so tests can shrink them.
    """

    def __init__(
        self,
        token: str | None = None,
        http_client: httpx.AsyncClient | None = None,
        api_url: str = VERCEL_API_URL,
        poll_interval: float = VERCEL_POLL_INTERVAL,
        deploy_timeout: float = VERCEL_DEPLOY_TIMEOUT,
    ):
        self._token = token or get_credential(DEPLOY_CREDENTIAL_ENV["vercel"])
        if not self._token:
            raise ProviderNotConfiguredError("Vercel token not configured")
        self._http_client = http_client
        self._api_url = api_url.rstrip("/")
        self.poll_interval = poll_interval
        self.deploy_timeout = deploy_timeout

    async def _request(self, method: str, path: str, *, allow_404: bool = False, **kwargs):
        client = self._http_client or httpx.AsyncClient(timeout=30.0)
        try:
            resp = await client.request(
                method,
                f"{self._api_url}{path}",
                headers={"Authorization": f"Bearer {self._token}"},
                **kwargs,
            )
        except httpx.HTTPError as e:
            raise VercelError(f"Vercel request failed: {e}") from e
        finally:
            if not self._http_client:
                await client.aclose()

        if allow_404 and resp.status_code == 404:
            return None
        if resp.status_code >= 400:
            raise VercelError(f"Vercel API error: {resp.status_code} - {resp.text}")
        if not resp.content:
            return {}
        return resp.json()

    # ------------------------------------------------------------------
    # Account & projects
    # ------------------------------------------------------------------

    async def get_user(self) -> dict:
        data = await self._request("GET", "/v2/user")
        return data.get("user", data)

    async def list_projects(self) -> list[dict]:
        data = await self._request("GET", "/v9/projects")
        return data.get("projects", [])

    async def get_project(self, name_or_id: str) -> dict | None:
        return await self._request("GET", f"/v9/projects/{name_or_id}", allow_404=True)

    async def create_project(
        self,
        name: str,
        framework: str = VERCEL_FRAMEWORK,
        build_command: str | None = None,
        output_directory: str | None = None,
        install_command: str | None = None,
    ) -> dict:
        body: dict = {"name": name, "framework": framework}
        if build_command:
            body["buildCommand"] = build_command
        if output_directory:
            body["outputDirectory"] = output_directory
        if install_command:
            body["installCommand"] = install_command
        project = await self._request("POST", "/v10/projects", json=body)
        logger.info("Created Vercel project %s (%s)", name, project.get("id"))
        return project

    async def delete_project(self, project_id: str):
        await self._request("DELETE", f"/v9/projects/{project_id}")

    async def set_environment_variables(
        self,
        project_id: str,
        env: dict[str, str],
        target: list[str] | None = None,
    ):
        if not env:
            return
        payload = [
            {"key": key, "value": value, "target": target or _ENV_TARGETS, "type": "plain"}
            for key, value in env.items()
        ]
        await self._request("POST", f"/v10/projects/{project_id}/env", json=payload)

    # ------------------------------------------------------------------
    # Deployments
    # ------------------------------------------------------------------

    async def deploy(self, project_id: str, target: str = "production") -> dict:
        return await self._request("POST", "/v13/deployments", json={
            "name": project_id,
            "target": target,
        })

    async def get_deployment(self, deployment_id: str) -> dict:
        return await self._request("GET", f"/v13/deployments/{deployment_id}")

    async def wait_for_deployment(self, deployment_id: str) -> dict:
        """Poll until READY. Raises DeploymentStateError or DeploymentTimeoutError."""
        deadline = time.monotonic() + self.deploy_timeout
        while True:
            deployment = await self.get_deployment(deployment_id)
            state = deployment.get("readyState") or deployment.get("state")
            if state == VercelState.READY:
                return deployment
            if state in _FAILED_STATES:
                raise DeploymentStateError(state)
            if time.monotonic() + self.poll_interval > deadline:
                raise DeploymentTimeoutError("Deployment timed out")
            logger.debug("Deployment %s is %s, polling again", deployment_id, state)
            await asyncio.sleep(self.poll_interval)
