#  Project Scaffolder - Deployment Pipeline
#
#  Two strict phases: (1) create/push the source repository, (2) hand the
#  project to the selected deploy target. Phase 2 never runs if phase 1
#  failed. Every outcome comes back as a PipelineResult; exceptions from
#  either phase are captured into it.
#
#  Depends on: deploy/github.py, deploy/vercel.py, config.py, models/enums.py
#  Used by:    container.py, services/deployment.py

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Callable

import httpx

from scaffolder.config import DEPLOY_CREDENTIAL_ENV, get_credential
from scaffolder.deploy.github import GitHubService
from scaffolder.deploy.vercel import VercelService
from scaffolder.exceptions import UnknownProviderError
from scaffolder.models.enums import DeployProvider

logger = logging.getLogger("scaffolder.pipeline")


def configured_deploy_providers() -> list[str]:
    """Deploy providers whose token env var is set. Offline."""
    return [name for name, env in DEPLOY_CREDENTIAL_ENV.items() if get_credential(env)]


@dataclass
class TargetConfig:
    project_name: str
    env_variables: dict[str, str] = field(default_factory=dict)
    framework: str | None = None
    build_command: str | None = None
    output_directory: str | None = None


@dataclass
class TargetResult:
    success: bool
    url: str | None = None
    deployment_id: str | None = None
    error: str | None = None
    not_implemented: bool = False


@dataclass
class PipelineResult:
    success: bool
    repo_url: str | None = None
    deployment_url: str | None = None
    deployment_id: str | None = None
    commit_sha: str | None = None
    error: str | None = None
    cause: Exception | None = field(default=None, repr=False)


# ---------------------------------------------------------------------------
# Deploy targets
# ---------------------------------------------------------------------------

class DeployTarget(ABC):
    """One hosting platform. Raises on failure or returns a failed TargetResult."""

    @abstractmethod
    async def deploy(self, config: TargetConfig) -> TargetResult:
        ...


class VercelTarget(DeployTarget):
    def __init__(self, service: VercelService):
        self._service = service

    async def deploy(self, config: TargetConfig) -> TargetResult:
        vercel = self._service
        project = await vercel.get_project(config.project_name)
        if project is None:
            kwargs = {
                "build_command": config.build_command,
                "output_directory": config.output_directory,
            }
            if config.framework:
                kwargs["framework"] = config.framework
            project = await vercel.create_project(config.project_name, **kwargs)

        if config.env_variables:
            await vercel.set_environment_variables(project["id"], config.env_variables)

        deployment = await vercel.deploy(project["id"])
        ready = await vercel.wait_for_deployment(deployment["id"])
        return TargetResult(
            success=True,
            url=f"https://{ready.get('url') or deployment.get('url')}",
            deployment_id=deployment["id"],
        )


class UnimplementedTarget(DeployTarget):
    """Accepted provider with no implementation yet. Performs no I/O."""

    def __init__(self, label: str):
        self.label = label

    async def deploy(self, config: TargetConfig) -> TargetResult:
        return TargetResult(
            success=False,
            error=f"{self.label} deployment not yet implemented",
            not_implemented=True,
        )


# ---------------------------------------------------------------------------
# Pipeline
# ---------------------------------------------------------------------------

class DeploymentPipeline:
    """Source host push followed by deploy target dispatch.

    `source_host_factory` and `target_factories` build fresh adapters per run
    (tokens are read at that point); tests replace them with fakes.
    """

    def __init__(
        self,
        http_client: httpx.AsyncClient | None = None,
        source_host_factory: Callable[[], GitHubService] | None = None,
        target_factories: dict[str, Callable[[], DeployTarget]] | None = None,
    ):
        self._http_client = http_client
        self._source_host_factory = source_host_factory or (
            lambda: GitHubService(http_client=self._http_client)
        )
        self._target_factories: dict[str, Callable[[], DeployTarget]] = {
            DeployProvider.VERCEL.value: lambda: VercelTarget(VercelService(http_client=self._http_client)),
            DeployProvider.NETLIFY.value: lambda: UnimplementedTarget("Netlify"),
            DeployProvider.GITHUB_PAGES.value: lambda: UnimplementedTarget("GitHub Pages"),
        }
        if target_factories:
            self._target_factories.update(target_factories)

    def target_for(self, provider: str) -> DeployTarget:
        factory = self._target_factories.get(provider)
        if factory is None:
            raise UnknownProviderError(f"Unknown deployment provider: {provider}")
        return factory()

    async def run(
        self,
        project_name: str,
        files: list[dict],
        provider: str,
        description: str = "",
        env_variables: dict[str, str] | None = None,
        is_private: bool = True,
    ) -> PipelineResult:
        # Phase 1: source repository
        try:
            source_host = self._source_host_factory()
            pushed = await source_host.create_and_push(
                project_name, files, description=description, is_private=is_private,
            )
        except Exception as e:
            logger.error("Repository setup for %s failed: %s", project_name, e)
            return PipelineResult(success=False, error=f"GitHub setup failed: {e}", cause=e)

        # Phase 2: deploy target
        try:
            target = self.target_for(provider)
            outcome = await target.deploy(
                TargetConfig(project_name=project_name, env_variables=env_variables or {})
            )
        except Exception as e:
            logger.error("Deployment of %s to %s failed: %s", project_name, provider, e)
            return PipelineResult(
                success=False,
                repo_url=pushed.url,
                commit_sha=pushed.commit_sha,
                error=str(e),
                cause=e,
            )

        if not outcome.success:
            return PipelineResult(
                success=False,
                repo_url=pushed.url,
                commit_sha=pushed.commit_sha,
                error=outcome.error,
            )

        logger.info("Deployed %s to %s at %s", project_name, provider, outcome.url)
        return PipelineResult(
            success=True,
            repo_url=pushed.url,
            deployment_url=outcome.url,
            deployment_id=outcome.deployment_id,
            commit_sha=pushed.commit_sha,
        )
