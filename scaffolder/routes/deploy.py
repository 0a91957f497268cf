#  Project Scaffolder - Deployment Routes
#
#  Deploy a generated project and list its deployment history.
#
#  Depends on: container.py, services/deployment.py, routes/projects.py, middleware/auth.py
#  Used by:    app.py

from dependency_injector.wiring import inject, Provide
from fastapi import APIRouter, Depends, Query, Request

from scaffolder.container import Container
from scaffolder.db.connection import Database
from scaffolder.middleware.auth import get_current_user
from scaffolder.models.schemas import DeploymentOut, DeployRequest, DeployResponse
from scaffolder.rate_limit import limiter
from scaffolder.routes.projects import get_owned_project
from scaffolder.services.deployment import DeploymentService

router = APIRouter(prefix="/deploy", tags=["deploy"])


@router.post("")
@limiter.limit("5/minute")
@inject
async def deploy_project(
    request: Request,
    body: DeployRequest,
    current_user: dict = Depends(get_current_user),
    db: Database = Depends(Provide[Container.db]),
    deployment: DeploymentService = Depends(Provide[Container.deployment]),
) -> DeployResponse:
    """Push the generated files to a new repository and deploy them.

    Blocks until the deploy target reports a terminal state or times out.
    """
    await get_owned_project(db, body.project_id, current_user)

    outcome = await deployment.deploy(
        body.project_id,
        current_user["id"],
        body.provider.value,
        env_variables=body.env_variables,
        is_private=body.is_private,
    )
    return DeployResponse(
        success=outcome.success,
        deployment_id=outcome.deployment_id,
        project_id=outcome.project_id,
        repo_url=outcome.repo_url,
        deployment_url=outcome.deployment_url,
    )


@router.get("")
@inject
async def list_deployments(
    project_id: str = Query(..., min_length=1),
    current_user: dict = Depends(get_current_user),
    db: Database = Depends(Provide[Container.db]),
    deployment: DeploymentService = Depends(Provide[Container.deployment]),
) -> list[DeploymentOut]:
    """Deployment history for a project, newest first."""
    await get_owned_project(db, project_id, current_user)
    return [DeploymentOut(**d) for d in await deployment.history(project_id)]
