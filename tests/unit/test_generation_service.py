#  Project Scaffolder - Generation Service Tests
#
#  Drives GenerationService against a real temp database with a stub LLM
#  provider (see conftest.stub_provider).
#
#  Depends on: scaffolder/services/generation.py, tests/conftest.py
#  Used by:    pytest

import asyncio
import json
import sqlite3

import pytest

from scaffolder.exceptions import (
    CodeParseError,
    InvalidStateError,
    LLMError,
    NotFoundError,
    ProviderNotConfiguredError,
    UnknownProviderError,
)
from scaffolder.services.code_parser import PARSE_ERROR_MESSAGE
from scaffolder.services.generation import GenerationOutcome, GenerationService
from tests.conftest import insert_project


@pytest.fixture
def generation_service(seeded_db, llm_registry, audit_service):
    db, _, _ = seeded_db
    return GenerationService(db=db, llm_registry=llm_registry, audit=audit_service)


async def _project(db, project_id):
    return await db.fetchone("SELECT * FROM projects WHERE id = ?", (project_id,))


async def _generations(db, project_id):
    return await db.fetchall("SELECT * FROM code_generations WHERE project_id = ?", (project_id,))


class TestGenerateSuccess:
    async def test_completes_and_updates_project(self, seeded_db, generation_service, anthropic_key):
        db, user_id, project_id = seeded_db
        outcome = await generation_service.generate(project_id, user_id)

        assert outcome.provider == "anthropic"
        assert [f["path"] for f in outcome.files] == ["index.js", "package.json"]
        assert outcome.usage == {"input_tokens": 120, "output_tokens": 340}
        assert outcome.version == 2

        project = await _project(db, project_id)
        assert project["status"] == "GENERATED"
        assert project["version"] == 2
        assert json.loads(project["generated_files_json"]) == outcome.files

        gens = await _generations(db, project_id)
        assert len(gens) == 1
        assert gens[0]["status"] == "COMPLETED"
        assert gens[0]["completed_at"] is not None
        assert json.loads(gens[0]["token_usage_json"]) == {"input_tokens": 120, "output_tokens": 340}

        audits = await db.fetchall("SELECT * FROM audit_logs WHERE resource = 'CodeGeneration'")
        assert [(a["action"], a["resource_id"]) for a in audits] == [("CREATE", outcome.generation_id)]

    async def test_prompt_and_options(self, seeded_db, generation_service, stub_provider, anthropic_key):
        _, user_id, project_id = seeded_db
        await generation_service.generate(project_id, user_id, prompt="Add dark mode")

        messages, options = stub_provider.backend.call_args.args
        prompt = messages[0].content
        assert "Todo App\n\nA small todo list\n\nAdd dark mode" in prompt
        assert "## Technology Stack\nReact" in prompt
        assert options.max_tokens == 8192
        assert options.temperature == 0.7

    async def test_retry_from_failed(self, seeded_db, generation_service, anthropic_key):
        db, user_id, project_id = seeded_db
        await db.execute_write("UPDATE projects SET status = 'FAILED' WHERE id = ?", (project_id,))
        outcome = await generation_service.generate(project_id, user_id)
        assert isinstance(outcome, GenerationOutcome)
        assert (await _project(db, project_id))["status"] == "GENERATED"


class TestGeneratePreconditions:
    async def test_unconfigured_provider_changes_nothing(self, seeded_db, generation_service, stub_provider):
        db, user_id, project_id = seeded_db
        with pytest.raises(ProviderNotConfiguredError):
            await generation_service.generate(project_id, user_id)
        stub_provider.backend.assert_not_called()
        assert (await _project(db, project_id))["status"] == "DRAFT"
        assert await _generations(db, project_id) == []

    async def test_unknown_provider(self, seeded_db, generation_service, anthropic_key):
        db, user_id, project_id = seeded_db
        with pytest.raises(UnknownProviderError):
            await generation_service.generate(project_id, user_id, provider="cohere")
        assert (await _project(db, project_id))["status"] == "DRAFT"

    async def test_missing_project(self, generation_service, anthropic_key):
        with pytest.raises(NotFoundError):
            await generation_service.generate("nope", None)

    async def test_already_generating(self, seeded_db, generation_service, anthropic_key):
        db, user_id, _ = seeded_db
        await insert_project(db, project_id="busy", owner_id=user_id, status="GENERATING")
        with pytest.raises(InvalidStateError, match="already generating"):
            await generation_service.generate("busy", user_id)

    async def test_deployed_project_must_be_reset(self, seeded_db, generation_service, anthropic_key):
        db, user_id, _ = seeded_db
        await insert_project(db, project_id="live", owner_id=user_id, status="DEPLOYED")
        with pytest.raises(InvalidStateError):
            await generation_service.generate("live", user_id)
        assert (await _project(db, "live"))["status"] == "DEPLOYED"


class TestGenerateFailures:
    async def test_parse_failure_marks_failed(self, seeded_db, generation_service, stub_provider, anthropic_key):
        db, user_id, project_id = seeded_db
        stub_provider.backend.return_value.content = "Sorry, I can't do that."

        with pytest.raises(CodeParseError):
            await generation_service.generate(project_id, user_id)

        project = await _project(db, project_id)
        assert project["status"] == "FAILED"
        assert project["generated_files_json"] is None
        assert project["version"] == 1
        gen = (await _generations(db, project_id))[0]
        assert gen["status"] == "FAILED"
        assert gen["error_message"] == PARSE_ERROR_MESSAGE

        audit = await db.fetchone("SELECT * FROM audit_logs WHERE resource = 'CodeGeneration'")
        assert audit["action"] == "GENERATE"
        assert audit["severity"] == "ERROR"
        assert json.loads(audit["details_json"])["error"] == PARSE_ERROR_MESSAGE

    async def test_llm_failure_propagates(self, seeded_db, generation_service, stub_provider, anthropic_key):
        db, user_id, project_id = seeded_db
        stub_provider.backend.side_effect = LLMError("Anthropic API error: overloaded")

        with pytest.raises(LLMError, match="overloaded"):
            await generation_service.generate(project_id, user_id)
        assert (await _project(db, project_id))["status"] == "FAILED"
        gen = (await _generations(db, project_id))[0]
        assert gen["error_message"] == "Anthropic API error: overloaded"


class TestCancelledGenerate:
    async def test_cancel_marks_failed_and_allows_retry(
        self, seeded_db, generation_service, stub_provider, anthropic_key,
    ):
        db, user_id, project_id = seeded_db
        started = asyncio.Event()

        async def hang(*args):
            started.set()
            await asyncio.sleep(30)

        stub_provider.backend.side_effect = hang
        task = asyncio.create_task(generation_service.generate(project_id, user_id))
        await started.wait()
        task.cancel()
        with pytest.raises(asyncio.CancelledError):
            await task

        assert (await _project(db, project_id))["status"] == "FAILED"
        gen = (await _generations(db, project_id))[0]
        assert gen["status"] == "FAILED"
        assert gen["error_message"] == "CancelledError"
        audit = await db.fetchone("SELECT * FROM audit_logs WHERE resource = 'CodeGeneration'")
        assert audit["action"] == "GENERATE"

        stub_provider.backend.side_effect = None
        await generation_service.generate(project_id, user_id)
        assert (await _project(db, project_id))["status"] == "GENERATED"

    async def test_history_insert_failure_marks_failed(self, seeded_db, generation_service, anthropic_key):
        db, user_id, project_id = seeded_db
        await db.execute_write("DROP TABLE code_generations")

        with pytest.raises(sqlite3.OperationalError):
            await generation_service.generate(project_id, user_id)
        assert (await _project(db, project_id))["status"] == "FAILED"


class TestConcurrentGenerate:
    async def test_only_one_request_wins(self, seeded_db, generation_service, anthropic_key):
        _, user_id, project_id = seeded_db
        results = await asyncio.gather(
            generation_service.generate(project_id, user_id),
            generation_service.generate(project_id, user_id),
            return_exceptions=True,
        )
        wins = [r for r in results if isinstance(r, GenerationOutcome)]
        losses = [r for r in results if isinstance(r, InvalidStateError)]
        assert len(wins) == 1
        assert len(losses) == 1


class TestHistory:
    async def test_history(self, seeded_db, generation_service, anthropic_key):
        _, user_id, project_id = seeded_db
        outcome = await generation_service.generate(project_id, user_id)
        history = await generation_service.history(project_id)
        assert [h["id"] for h in history] == [outcome.generation_id]
        assert history[0]["output"] == outcome.files
