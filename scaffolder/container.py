#  Project Scaffolder - Dependency Injection Container
#
#  DeclarativeContainer wiring all services and their dependencies.
#  The LLM registry and deployment pipeline are built once here and
#  handed to the services that need them.
#
#  Depends on: db/connection.py, llm/registry.py, deploy/pipeline.py, services/*
#  Used by:    app.py, routes/*, middleware/auth.py

import httpx
from dependency_injector import containers, providers

from scaffolder.config import HTTP_TIMEOUT
from scaffolder.db.connection import Database
from scaffolder.deploy.pipeline import DeploymentPipeline
from scaffolder.llm.registry import LLMProviderRegistry
from scaffolder.services.audit import AuditService
from scaffolder.services.auth import AuthService
from scaffolder.services.deployment import DeploymentService
from scaffolder.services.generation import GenerationService


class Container(containers.DeclarativeContainer):
    """DI container for the Project Scaffolder.

    All services are Singletons — one instance per application lifecycle.
    Routes access them via @inject + Depends(Provide[Container.xxx]).
    Tests override them via container.xxx.override(providers.Object(mock)).
    """

    wiring_config = containers.WiringConfiguration(
        modules=[
            "scaffolder.routes.admin",
            "scaffolder.routes.auth",
            "scaffolder.routes.deploy",
            "scaffolder.routes.generate",
            "scaffolder.routes.projects",
            "scaffolder.routes.providers",
            "scaffolder.middleware.auth",
        ]
    )

    # --- Core ---
    db = providers.Singleton(Database)
    http_client = providers.Singleton(httpx.AsyncClient, timeout=HTTP_TIMEOUT)

    # --- Adapters ---
    llm_registry = providers.Singleton(LLMProviderRegistry, http_client=http_client)
    pipeline = providers.Singleton(DeploymentPipeline, http_client=http_client)

    # --- Services ---
    auth = providers.Singleton(AuthService, db=db)
    audit = providers.Singleton(AuditService, db=db)
    generation = providers.Singleton(
        GenerationService, db=db, llm_registry=llm_registry, audit=audit,
    )
    deployment = providers.Singleton(
        DeploymentService, db=db, pipeline=pipeline, audit=audit,
    )
