#  Project Scaffolder - Test Fixtures
#
#  Shared fixtures for the test suite.
#  Uses DI container overrides instead of monkey-patching singletons.
#
#  Depends on: scaffolder/db/connection.py, scaffolder/container.py, scaffolder/app.py
#  Used by:    all test files

import json
import time
from unittest.mock import AsyncMock, MagicMock

import pytest
from dependency_injector import providers

_CREDENTIAL_ENVS = [
    "ANTHROPIC_API_KEY",
    "OPENAI_API_KEY",
    "GOOGLE_AI_API_KEY",
    "GITHUB_TOKEN",
    "VERCEL_TOKEN",
    "NETLIFY_TOKEN",
    "DEFAULT_LLM_PROVIDER",
]

TODO_APP_RESPONSE = (
    "Here is your project:\n"
    + json.dumps({"files": [
        {"path": "index.js", "content": "console.log('todo');"},
        {"path": "package.json", "content": "{\"name\": \"todo\"}"},
    ]})
    + "\nLet me know if you need anything else."
)


# ---------------------------------------------------------------------------
# Environment isolation
# ---------------------------------------------------------------------------

@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    """Start every test with no provider credentials and a strong JWT secret."""
    for name in _CREDENTIAL_ENVS:
        monkeypatch.delenv(name, raising=False)
    monkeypatch.setattr("scaffolder.services.auth.AUTH_SECRET_KEY", "test-secret-" + "k" * 32)


@pytest.fixture
def anthropic_key(monkeypatch):
    monkeypatch.setenv("ANTHROPIC_API_KEY", "sk-ant-test")


@pytest.fixture
def deploy_tokens(monkeypatch):
    monkeypatch.setenv("GITHUB_TOKEN", "ghp_test")
    monkeypatch.setenv("VERCEL_TOKEN", "vercel_test")


# ---------------------------------------------------------------------------
# Database fixtures
# ---------------------------------------------------------------------------

@pytest.fixture
async def tmp_db(tmp_path):
    """Create a fresh async database with schema applied."""
    from scaffolder.db.connection import Database

    test_db = Database()
    await test_db.init(str(tmp_path / "test.db"))

    yield test_db

    await test_db.close()


async def insert_user(db, user_id="user_test_001", email="owner@example.com", role="user"):
    await db.execute_write(
        "INSERT INTO users (id, email, password_hash, display_name, role, created_at) "
        "VALUES (?, ?, '', 'Owner', ?, ?)",
        (user_id, email, role, time.time()),
    )
    return user_id


async def insert_project(
    db,
    project_id="proj_test_001",
    owner_id="user_test_001",
    status="DRAFT",
    generated_files=None,
    name="Todo App",
    prompt="Build a todo app",
    tech_stack=None,
):
    now = time.time()
    await db.execute_write(
        "INSERT INTO projects (id, owner_id, name, description, tech_stack_json, prompt, "
        "generated_files_json, status, created_at, updated_at) "
        "VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)",
        (
            project_id, owner_id, name, "A small todo list",
            json.dumps(tech_stack if tech_stack is not None else [{"name": "React", "category": "frontend"}]),
            prompt,
            json.dumps(generated_files) if generated_files is not None else None,
            status, now, now,
        ),
    )
    return project_id


@pytest.fixture
async def seeded_db(tmp_db):
    """Database with one user and one DRAFT project (React, "Build a todo app")."""
    user_id = await insert_user(tmp_db)
    project_id = await insert_project(tmp_db, owner_id=user_id)
    return tmp_db, user_id, project_id


@pytest.fixture
async def generated_db(tmp_db):
    """Database with one user and one GENERATED project with two files."""
    user_id = await insert_user(tmp_db)
    project_id = await insert_project(
        tmp_db, owner_id=user_id, status="GENERATED",
        generated_files=[
            {"path": "index.html", "content": "<h1>todo</h1>"},
            {"path": "src/app.js", "content": "export default 1;"},
        ],
    )
    return tmp_db, user_id, project_id


# ---------------------------------------------------------------------------
# Services
# ---------------------------------------------------------------------------

@pytest.fixture
async def audit_service(tmp_db):
    from scaffolder.services.audit import AuditService
    return AuditService(db=tmp_db)


@pytest.fixture
async def auth_service(tmp_db):
    from scaffolder.services.auth import AuthService
    return AuthService(db=tmp_db)


@pytest.fixture
def stub_provider():
    """An LLM provider whose backend call is an AsyncMock returning the todo app."""
    from scaffolder.llm.base import BaseLLMProvider, GenerateResult, TokenUsage

    class StubProvider(BaseLLMProvider):
        name = "anthropic"

        def __init__(self):
            self.backend = AsyncMock(return_value=GenerateResult(
                content=TODO_APP_RESPONSE,
                model="claude-test",
                provider="anthropic",
                usage=TokenUsage(input_tokens=120, output_tokens=340),
                finish_reason="end_turn",
            ))

        async def _generate_chat(self, messages, options):
            return await self.backend(messages, options)

    return StubProvider()


@pytest.fixture
def llm_registry(stub_provider):
    from scaffolder.llm.registry import LLMProviderRegistry
    registry = LLMProviderRegistry()
    registry.register(stub_provider)
    return registry


# ---------------------------------------------------------------------------
# FastAPI client fixtures
# ---------------------------------------------------------------------------

@pytest.fixture
async def app_client(tmp_db, llm_registry):
    """HTTP client against the app with a fresh database and DI overrides.

    Explicit try/finally with reset_override() keeps DI state clean between tests.
    """
    from httpx import ASGITransport, AsyncClient
    from scaffolder.app import app, container
    from scaffolder.deploy.pipeline import DeploymentPipeline
    from scaffolder.services.audit import AuditService
    from scaffolder.services.auth import AuthService
    from scaffolder.services.deployment import DeploymentService
    from scaffolder.services.generation import GenerationService

    mock_http = MagicMock()
    mock_http.aclose = AsyncMock()

    audit = AuditService(db=tmp_db)
    pipeline = DeploymentPipeline(http_client=None)

    container.db.override(providers.Object(tmp_db))
    container.http_client.override(providers.Object(mock_http))
    container.auth.override(providers.Object(AuthService(db=tmp_db)))
    container.audit.override(providers.Object(audit))
    container.llm_registry.override(providers.Object(llm_registry))
    container.pipeline.override(providers.Object(pipeline))
    container.generation.override(providers.Object(
        GenerationService(db=tmp_db, llm_registry=llm_registry, audit=audit)
    ))
    container.deployment.override(providers.Object(
        DeploymentService(db=tmp_db, pipeline=pipeline, audit=audit)
    ))

    # Reset rate limiter storage so tests don't hit limits from prior tests
    from scaffolder.rate_limit import limiter as _limiter
    _limiter.reset()

    try:
        transport = ASGITransport(app=app)
        async with AsyncClient(transport=transport, base_url="http://test") as client:
            client.pipeline = pipeline
            yield client
    finally:
        container.db.reset_override()
        container.http_client.reset_override()
        container.auth.reset_override()
        container.audit.reset_override()
        container.llm_registry.reset_override()
        container.pipeline.reset_override()
        container.generation.reset_override()
        container.deployment.reset_override()


async def register_and_login(client, email: str, password: str = "testpass123") -> str:
    resp = await client.post("/api/auth/register", json={
        "email": email, "password": password, "display_name": email.split("@")[0],
    })
    assert resp.status_code == 201
    resp = await client.post("/api/auth/login", json={"email": email, "password": password})
    assert resp.status_code == 200
    return resp.json()["access_token"]


@pytest.fixture
async def authed_client(app_client):
    """app_client with a registered (admin, first) user and Authorization header set."""
    token = await register_and_login(app_client, "test@example.com")
    app_client.headers["Authorization"] = f"Bearer {token}"
    yield app_client
