#  Project Scaffolder - Generation Flow
#
#  Drives one code generation attempt: project DRAFT/FAILED -> GENERATING,
#  CodeGeneration PROCESSING, LLM call + parse, then COMPLETED/GENERATED
#  or FAILED/FAILED. Every terminal outcome is audited.
#
#  Depends on: db/connection.py, llm/registry.py, services/code_parser.py,
#              services/status_machine.py, services/audit.py, config.py
#  Used by:    container.py, routes/generate.py

import json
import logging
import time
import uuid
from dataclasses import dataclass, field

from scaffolder.config import LLM_GENERATION_MAX_TOKENS, LLM_TEMPERATURE
from scaffolder.db.connection import Database
from scaffolder.exceptions import InvalidStateError, NotFoundError
from scaffolder.llm.base import GenerateOptions
from scaffolder.llm.registry import LLMProviderRegistry
from scaffolder.logging_config import set_project_id
from scaffolder.models.enums import AuditAction, GenerationStatus, ProjectStatus
from scaffolder.services.audit import AuditService
from scaffolder.services.code_parser import build_code_generation_prompt, parse_code_generation_response
from scaffolder.services.status_machine import transition_project, validate_generation_transition

logger = logging.getLogger("scaffolder.generation")


@dataclass
class GenerationOutcome:
    generation_id: str
    project_id: str
    provider: str
    model: str
    files: list[dict] = field(default_factory=list)
    usage: dict = field(default_factory=dict)
    duration_ms: int = 0
    version: int = 1


def row_to_generation(row) -> dict:
    return {
        "id": row["id"],
        "project_id": row["project_id"],
        "prompt": row["prompt"],
        "model": row["model"],
        "provider": row["provider"],
        "output": json.loads(row["output_json"]) if row["output_json"] else None,
        "token_usage": json.loads(row["token_usage_json"]) if row["token_usage_json"] else None,
        "duration_ms": row["duration_ms"],
        "status": row["status"],
        "error_message": row["error_message"],
        "created_at": row["created_at"],
        "completed_at": row["completed_at"],
    }


class GenerationService:
    """Generates code for a project through the configured LLM provider."""

    def __init__(self, db: Database, llm_registry: LLMProviderRegistry, audit: AuditService):
        self._db = db
        self._llm = llm_registry
        self._audit = audit

    async def generate(
        self,
        project_id: str,
        user_id: str | None,
        prompt: str | None = None,
        provider: str | None = None,
        model: str | None = None,
    ) -> GenerationOutcome:
        """Run one generation attempt. Raises on any failure after recording it."""
        set_project_id(project_id)
        row = await self._db.fetchone("SELECT * FROM projects WHERE id = ?", (project_id,))
        if not row:
            raise NotFoundError(f"Project {project_id} not found")

        # Credentials are checked before any state changes
        llm = self._llm.resolve(provider)
        model_id = model or llm.default_model
        if row["status"] == ProjectStatus.GENERATING:
            raise InvalidStateError(f"Project {project_id} is already generating")

        tech_stack = json.loads(row["tech_stack_json"]) if row["tech_stack_json"] else []
        request = "\n\n".join(
            part for part in (row["name"], row["description"], prompt or row["prompt"]) if part
        )
        full_prompt = build_code_generation_prompt(request, [t["name"] for t in tech_stack])

        await transition_project(self._db, project_id, row["status"], ProjectStatus.GENERATING)

        generation_id = uuid.uuid4().hex[:12]
        # Any interruption past this point, cancellation included, ends in FAILED
        try:
            validate_generation_transition(GenerationStatus.PENDING, GenerationStatus.PROCESSING)
            await self._db.execute_write(
                "INSERT INTO code_generations (id, project_id, prompt, model, provider, status, created_at) "
                "VALUES (?, ?, ?, ?, ?, ?, ?)",
                (generation_id, project_id, full_prompt, model_id, llm.name,
                 GenerationStatus.PROCESSING, time.time()),
            )
            logger.info("Generation %s started for project %s via %s/%s",
                        generation_id, project_id, llm.name, model_id)

            result = await llm.generate(full_prompt, GenerateOptions(
                model=model_id,
                max_tokens=LLM_GENERATION_MAX_TOKENS,
                temperature=LLM_TEMPERATURE,
            ))
            files = [f.to_dict() for f in parse_code_generation_response(result.content)]
            usage = {
                "input_tokens": result.usage.input_tokens,
                "output_tokens": result.usage.output_tokens,
            }
            version = await self._complete(project_id, generation_id, files, usage, result)
        except BaseException as e:
            await self._record_failure(project_id, generation_id, user_id, e)
            raise

        await self._audit.create(
            user_id, "CodeGeneration", generation_id,
            new_value={
                "project_id": project_id,
                "provider": llm.name,
                "model": result.model,
                "file_count": len(files),
                "token_usage": usage,
            },
        )
        logger.info("Generation %s completed: %d file(s) in %dms",
                    generation_id, len(files), result.duration_ms)

        return GenerationOutcome(
            generation_id=generation_id,
            project_id=project_id,
            provider=llm.name,
            model=result.model,
            files=files,
            usage=usage,
            duration_ms=result.duration_ms,
            version=version,
        )

    async def _complete(self, project_id: str, generation_id: str, files: list[dict], usage: dict, result) -> int:
        """Atomically mark the generation COMPLETED and the project GENERATED. Returns the new version."""
        validate_generation_transition(GenerationStatus.PROCESSING, GenerationStatus.COMPLETED)
        async with self._db.transaction() as conn:
            await conn.execute(
                "UPDATE code_generations SET status = ?, output_json = ?, token_usage_json = ?, "
                "duration_ms = ?, model = ?, completed_at = ? WHERE id = ?",
                (GenerationStatus.COMPLETED, json.dumps(files), json.dumps(usage),
                 result.duration_ms, result.model, time.time(), generation_id),
            )
            cursor = await conn.execute("SELECT version FROM projects WHERE id = ?", (project_id,))
            version = (await cursor.fetchone())["version"] + 1
            await transition_project(
                self._db, project_id, ProjectStatus.GENERATING, ProjectStatus.GENERATED,
                generated_files_json=json.dumps(files),
                version=version,
            )
        return version

    async def _record_failure(self, project_id: str, generation_id: str, user_id, error: BaseException):
        """Write FAILED on both rows plus an error audit entry; never masks `error`."""
        logger.error("Generation %s for project %s failed: %s", generation_id, project_id, error)
        try:
            # Project row first
            await transition_project(
                self._db, project_id, ProjectStatus.GENERATING, ProjectStatus.FAILED,
            )
            await self._db.execute_write(
                "UPDATE code_generations SET status = ?, error_message = ?, completed_at = ? "
                "WHERE id = ?",
                (GenerationStatus.FAILED, str(error) or type(error).__name__, time.time(), generation_id),
            )
            await self._audit.error(
                user_id, AuditAction.GENERATE, "CodeGeneration", generation_id, error,
                details={"project_id": project_id},
            )
        except Exception:
            logger.exception("Failed to record failure of generation %s", generation_id)

    async def history(self, project_id: str) -> list[dict]:
        rows = await self._db.fetchall(
            "SELECT * FROM code_generations WHERE project_id = ? ORDER BY created_at DESC",
            (project_id,),
        )
        return [row_to_generation(r) for r in rows]
