#  Project Scaffolder - Generation Routes
#
#  Trigger code generation for a project and list its generation history.
#
#  Depends on: container.py, services/generation.py, routes/projects.py, middleware/auth.py
#  Used by:    app.py

from dependency_injector.wiring import inject, Provide
from fastapi import APIRouter, Depends, Query, Request

from scaffolder.container import Container
from scaffolder.db.connection import Database
from scaffolder.middleware.auth import get_current_user
from scaffolder.models.schemas import GenerateRequest, GenerateResponse, GenerationOut
from scaffolder.rate_limit import limiter
from scaffolder.routes.projects import get_owned_project
from scaffolder.services.generation import GenerationService

router = APIRouter(prefix="/generate", tags=["generate"])


@router.post("")
@limiter.limit("10/minute")
@inject
async def generate_code(
    request: Request,
    body: GenerateRequest,
    current_user: dict = Depends(get_current_user),
    db: Database = Depends(Provide[Container.db]),
    generation: GenerationService = Depends(Provide[Container.generation]),
) -> GenerateResponse:
    """Generate code for a project with the requested (or default) LLM provider."""
    await get_owned_project(db, body.project_id, current_user)

    outcome = await generation.generate(
        body.project_id,
        current_user["id"],
        prompt=body.prompt,
        provider=body.provider.value if body.provider else None,
        model=body.model,
    )
    return GenerateResponse(
        generation_id=outcome.generation_id,
        project_id=outcome.project_id,
        provider=outcome.provider,
        model=outcome.model,
        files=outcome.files,
        usage=outcome.usage,
        duration_ms=outcome.duration_ms,
        version=outcome.version,
    )


@router.get("")
@inject
async def list_generations(
    project_id: str = Query(..., min_length=1),
    current_user: dict = Depends(get_current_user),
    db: Database = Depends(Provide[Container.db]),
    generation: GenerationService = Depends(Provide[Container.generation]),
) -> list[GenerationOut]:
    """Generation history for a project, newest first."""
    await get_owned_project(db, project_id, current_user)
    return [GenerationOut(**g) for g in await generation.history(project_id)]
