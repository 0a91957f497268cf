#  Project Scaffolder - Generation API Integration Tests
#
#  POST/GET /api/generate with the stub LLM provider from conftest.
#
#  Depends on: scaffolder/routes/generate.py, tests/conftest.py
#  Used by:    pytest

from scaffolder.exceptions import LLMError
from tests.conftest import register_and_login


async def _project(client):
    resp = await client.post("/api/projects", json={
        "name": "Todo App",
        "tech_stack": [{"name": "React", "category": "frontend"}],
        "prompt": "Build a todo app",
    })
    return resp.json()["id"]


class TestGenerate:
    async def test_success(self, authed_client, anthropic_key):
        pid = await _project(authed_client)
        resp = await authed_client.post("/api/generate", json={"project_id": pid})
        assert resp.status_code == 200
        data = resp.json()
        assert data["success"] is True
        assert data["provider"] == "anthropic"
        assert data["version"] == 2
        assert [f["path"] for f in data["files"]] == ["index.js", "package.json"]
        assert data["usage"] == {"input_tokens": 120, "output_tokens": 340}

        project = (await authed_client.get(f"/api/projects/{pid}")).json()
        assert project["status"] == "GENERATED"
        assert project["recent_generations"][0]["status"] == "COMPLETED"

        history = (await authed_client.get("/api/generate", params={"project_id": pid})).json()
        assert [h["id"] for h in history] == [data["generation_id"]]

    async def test_unconfigured_provider_is_400(self, authed_client):
        pid = await _project(authed_client)
        resp = await authed_client.post("/api/generate", json={"project_id": pid})
        assert resp.status_code == 400
        assert "not configured" in resp.json()["detail"]
        project = (await authed_client.get(f"/api/projects/{pid}")).json()
        assert project["status"] == "DRAFT"

    async def test_unknown_provider_is_422(self, authed_client, anthropic_key):
        pid = await _project(authed_client)
        resp = await authed_client.post("/api/generate", json={"project_id": pid, "provider": "cohere"})
        assert resp.status_code == 422

    async def test_parse_failure_is_422(self, authed_client, stub_provider, anthropic_key):
        stub_provider.backend.return_value.content = "no code for you"
        pid = await _project(authed_client)
        resp = await authed_client.post("/api/generate", json={"project_id": pid})
        assert resp.status_code == 422
        assert resp.json() == {"success": False, "detail": "Failed to parse generated code response"}
        project = (await authed_client.get(f"/api/projects/{pid}")).json()
        assert project["status"] == "FAILED"

    async def test_llm_failure_is_502(self, authed_client, stub_provider, anthropic_key):
        stub_provider.backend.side_effect = LLMError("Anthropic API error: overloaded")
        pid = await _project(authed_client)
        resp = await authed_client.post("/api/generate", json={"project_id": pid})
        assert resp.status_code == 502
        assert resp.json()["success"] is False

    async def test_regenerate_generated_project_conflicts(self, authed_client, anthropic_key):
        pid = await _project(authed_client)
        await authed_client.post("/api/generate", json={"project_id": pid})
        resp = await authed_client.post("/api/generate", json={"project_id": pid})
        assert resp.status_code == 409

    async def test_missing_project(self, authed_client, anthropic_key):
        resp = await authed_client.post("/api/generate", json={"project_id": "nope"})
        assert resp.status_code == 404

    async def test_not_owner(self, authed_client, anthropic_key):
        pid = await _project(authed_client)
        other = await register_and_login(authed_client, "other@test.com")
        resp = await authed_client.post(
            "/api/generate", json={"project_id": pid},
            headers={"Authorization": f"Bearer {other}"},
        )
        assert resp.status_code == 403
