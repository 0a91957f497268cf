#  Project Scaffolder - Deployment Flow
#
#  Drives one deployment attempt: project GENERATED -> DEPLOYING,
#  Deployment PENDING -> BUILDING, pipeline run, then SUCCESS/DEPLOYED or
#  FAILED/FAILED. Every terminal outcome is audited.
#
#  Depends on: db/connection.py, deploy/pipeline.py, services/status_machine.py,
#              services/audit.py, config.py
#  Used by:    container.py, routes/deploy.py

import json
import logging
import re
import time
import uuid
from dataclasses import dataclass

from scaffolder.config import DEPLOY_CREDENTIAL_ENV, get_credential
from scaffolder.db.connection import Database
from scaffolder.deploy.pipeline import DeploymentPipeline, PipelineResult
from scaffolder.exceptions import (
    DeploymentPipelineError,
    InvalidStateError,
    NotFoundError,
    ProviderNotConfiguredError,
    UnknownProviderError,
)
from scaffolder.logging_config import set_project_id
from scaffolder.models.enums import AuditAction, DeploymentStatus, ProjectStatus
from scaffolder.services.audit import AuditService
from scaffolder.services.status_machine import transition_project, validate_deployment_transition

logger = logging.getLogger("scaffolder.deployment")

_SLUG_INVALID = re.compile(r"[^a-z0-9-]")


def slugify(name: str) -> str:
    """Repository/project slug: lowercase, anything outside [a-z0-9-] becomes '-'."""
    return _SLUG_INVALID.sub("-", name.lower())


@dataclass
class DeployOutcome:
    deployment_id: str
    project_id: str
    success: bool
    repo_url: str | None = None
    deployment_url: str | None = None
    error: str | None = None


def row_to_deployment(row) -> dict:
    return {
        "id": row["id"],
        "project_id": row["project_id"],
        "provider": row["provider"],
        "status": row["status"],
        "url": row["url"],
        "external_id": row["external_id"],
        "error_message": row["error_message"],
        "started_at": row["started_at"],
        "completed_at": row["completed_at"],
    }


class DeploymentService:
    """Publishes a project's generated files through the deployment pipeline."""

    def __init__(self, db: Database, pipeline: DeploymentPipeline, audit: AuditService):
        self._db = db
        self._pipeline = pipeline
        self._audit = audit

    async def deploy(
        self,
        project_id: str,
        user_id: str | None,
        provider: str,
        env_variables: dict[str, str] | None = None,
        is_private: bool = True,
    ) -> DeployOutcome:
        """Run one deployment attempt. Raises DeploymentPipelineError on failure after recording it."""
        set_project_id(project_id)
        env_name = DEPLOY_CREDENTIAL_ENV.get(provider)
        if env_name is None:
            raise UnknownProviderError(f"Unknown deployment provider: {provider}")
        if not get_credential(env_name):
            raise ProviderNotConfiguredError(f"Deployment provider {provider} is not configured")

        row = await self._db.fetchone("SELECT * FROM projects WHERE id = ?", (project_id,))
        if not row:
            raise NotFoundError(f"Project {project_id} not found")
        if row["status"] != ProjectStatus.GENERATED or row["generated_files_json"] is None:
            raise InvalidStateError("Project must have generated code before deployment")

        files = json.loads(row["generated_files_json"])
        env = env_variables
        if env is None:
            env = json.loads(row["env_variables_json"]) if row["env_variables_json"] else {}

        await transition_project(self._db, project_id, ProjectStatus.GENERATED, ProjectStatus.DEPLOYING)

        deployment_id = uuid.uuid4().hex[:12]
        # Any interruption past this point, cancellation included, ends in FAILED
        try:
            await self._db.execute_write(
                "INSERT INTO deployments (id, project_id, provider, status, started_at) "
                "VALUES (?, ?, ?, ?, ?)",
                (deployment_id, project_id, provider, DeploymentStatus.PENDING, time.time()),
            )
            validate_deployment_transition(DeploymentStatus.PENDING, DeploymentStatus.BUILDING)
            await self._db.execute_write(
                "UPDATE deployments SET status = ? WHERE id = ?",
                (DeploymentStatus.BUILDING, deployment_id),
            )
            logger.info("Deployment %s started for project %s via %s", deployment_id, project_id, provider)

            result = await self._pipeline.run(
                slugify(row["name"]),
                files,
                provider,
                description=row["description"] or "",
                env_variables=env,
                is_private=is_private,
            )
            if result.success:
                await self._complete(project_id, deployment_id, result)
        except Exception as e:
            result = PipelineResult(success=False, error=str(e), cause=e)
        except BaseException as e:
            interrupted = PipelineResult(success=False, error=str(e) or type(e).__name__, cause=e)
            await self._record_failure(project_id, deployment_id, user_id, interrupted)
            raise

        if not result.success:
            await self._record_failure(project_id, deployment_id, user_id, result)
            raise DeploymentPipelineError(result.error or "Deployment failed", result) from result.cause

        await self._audit.create(
            user_id, "Deployment", deployment_id,
            new_value={
                "project_id": project_id,
                "provider": provider,
                "url": result.deployment_url,
                "repo_url": result.repo_url,
            },
        )
        logger.info("Deployment %s succeeded: %s", deployment_id, result.deployment_url)

        return DeployOutcome(
            deployment_id=deployment_id,
            project_id=project_id,
            success=True,
            repo_url=result.repo_url,
            deployment_url=result.deployment_url,
        )

    async def _complete(self, project_id: str, deployment_id: str, result: PipelineResult):
        validate_deployment_transition(DeploymentStatus.BUILDING, DeploymentStatus.SUCCESS)
        now = time.time()
        async with self._db.transaction() as conn:
            await conn.execute(
                "UPDATE deployments SET status = ?, url = ?, external_id = ?, completed_at = ? "
                "WHERE id = ?",
                (DeploymentStatus.SUCCESS, result.deployment_url, result.deployment_id, now, deployment_id),
            )
            await transition_project(
                self._db, project_id, ProjectStatus.DEPLOYING, ProjectStatus.DEPLOYED,
                deployment_url=result.deployment_url,
                github_repo=result.repo_url,
                last_deployed_at=now,
            )

    async def _record_failure(self, project_id: str, deployment_id: str, user_id, result: PipelineResult):
        """Write FAILED on both rows plus an error audit entry."""
        logger.error("Deployment %s for project %s failed: %s", deployment_id, project_id, result.error)
        try:
            # Project row first
            fields = {"github_repo": result.repo_url} if result.repo_url else {}
            await transition_project(
                self._db, project_id, ProjectStatus.DEPLOYING, ProjectStatus.FAILED, **fields,
            )
            await self._db.execute_write(
                "UPDATE deployments SET status = ?, error_message = ?, completed_at = ? WHERE id = ?",
                (DeploymentStatus.FAILED, result.error, time.time(), deployment_id),
            )
            await self._audit.error(
                user_id, AuditAction.DEPLOY, "Deployment", deployment_id, result.error or "unknown",
                details={"project_id": project_id, "repo_url": result.repo_url},
            )
        except Exception:
            logger.exception("Failed to record failure of deployment %s", deployment_id)

    async def history(self, project_id: str) -> list[dict]:
        rows = await self._db.fetchall(
            "SELECT * FROM deployments WHERE project_id = ? ORDER BY started_at DESC",
            (project_id,),
        )
        return [row_to_deployment(r) for r in rows]
