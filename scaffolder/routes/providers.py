#  Project Scaffolder - Provider Routes
#
#  Health check and the list of configured LLM / deploy providers.
#  Provider availability is derived from environment variables only.
#
#  Depends on: container.py, llm/registry.py, deploy/pipeline.py
#  Used by:    app.py

from dependency_injector.wiring import inject, Provide
from fastapi import APIRouter, Depends

from scaffolder.container import Container
from scaffolder.deploy.pipeline import configured_deploy_providers
from scaffolder.llm.registry import LLMProviderRegistry
from scaffolder.models.schemas import ProvidersOut

router = APIRouter(prefix="/providers", tags=["providers"])
health_router = APIRouter(tags=["health"])


@health_router.get("/health")
async def health():
    return {"status": "ok"}


@router.get("")
@inject
async def list_providers(
    llm_registry: LLMProviderRegistry = Depends(Provide[Container.llm_registry]),
) -> ProvidersOut:
    return ProvidersOut(
        llm=llm_registry.configured_providers(),
        deploy=configured_deploy_providers(),
        default_llm=llm_registry.default_provider_name(),
    )
