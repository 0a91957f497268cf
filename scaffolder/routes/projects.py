#  Project Scaffolder - Project Routes
#
#  CRUD for scaffolder projects plus a reset back to DRAFT.
#  All endpoints enforce ownership: users see/modify only their own projects.
#  Admins and enterprise admins can access all projects.
#
#  Depends on: container.py, models/schemas.py, services/audit.py,
#              services/status_machine.py, middleware/auth.py
#  Used by:    app.py, routes/generate.py, routes/deploy.py

import json
import math
import time
import uuid

from dependency_injector.wiring import inject, Provide
from fastapi import APIRouter, Depends, HTTPException, Query

from scaffolder.container import Container
from scaffolder.db.connection import Database
from scaffolder.middleware.auth import get_current_user, is_admin
from scaffolder.models.enums import ProjectStatus
from scaffolder.models.schemas import ProjectCreate, ProjectOut, ProjectPage, ProjectUpdate
from scaffolder.services.audit import AuditService
from scaffolder.services.deployment import row_to_deployment
from scaffolder.services.generation import row_to_generation
from scaffolder.services.status_machine import transition_project

router = APIRouter(prefix="/projects", tags=["projects"])

_RECENT_LIMIT = 5


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def row_to_project(row) -> dict:
    """Convert a DB row to a ProjectOut-compatible dict."""
    env = json.loads(row["env_variables_json"]) if row["env_variables_json"] else {}
    return {
        "id": row["id"],
        "owner_id": row["owner_id"],
        "name": row["name"],
        "description": row["description"] or "",
        "tech_stack": json.loads(row["tech_stack_json"]) if row["tech_stack_json"] else [],
        "prompt": row["prompt"],
        "generated_files": (
            json.loads(row["generated_files_json"]) if row["generated_files_json"] else None
        ),
        "github_repo": row["github_repo"],
        "deployment_url": row["deployment_url"],
        "env_variable_keys": sorted(env),
        "version": row["version"],
        "status": row["status"],
        "created_at": row["created_at"],
        "updated_at": row["updated_at"],
        "last_deployed_at": row["last_deployed_at"],
    }


def _summary(project: dict) -> dict:
    """Audit snapshot without file contents."""
    return {k: v for k, v in project.items() if k != "generated_files"}


async def get_owned_project(db: Database, project_id: str, user: dict):
    """Fetch a project and verify ownership. Raises 404/403."""
    row = await db.fetchone("SELECT * FROM projects WHERE id = ?", (project_id,))
    if not row:
        raise HTTPException(404, f"Project {project_id} not found")
    if not is_admin(user) and row["owner_id"] != user["id"]:
        raise HTTPException(403, "You do not own this project")
    return row


# ---------------------------------------------------------------------------
# CRUD
# ---------------------------------------------------------------------------

@router.post("", status_code=201)
@inject
async def create_project(
    body: ProjectCreate,
    current_user: dict = Depends(get_current_user),
    db: Database = Depends(Provide[Container.db]),
    audit: AuditService = Depends(Provide[Container.audit]),
) -> ProjectOut:
    project_id = uuid.uuid4().hex[:12]
    now = time.time()
    tech_stack = [t.model_dump(mode="json") for t in body.tech_stack]

    await db.execute_write(
        "INSERT INTO projects (id, owner_id, name, description, tech_stack_json, prompt, "
        "status, created_at, updated_at) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)",
        (project_id, current_user["id"], body.name, body.description, json.dumps(tech_stack),
         body.prompt, ProjectStatus.DRAFT, now, now),
    )

    row = await db.fetchone("SELECT * FROM projects WHERE id = ?", (project_id,))
    project = row_to_project(row)
    await audit.create(current_user["id"], "Project", project_id, new_value=_summary(project))
    return ProjectOut(**project)


@router.get("")
@inject
async def list_projects(
    status: ProjectStatus | None = None,
    page: int = Query(default=1, ge=1),
    page_size: int = Query(default=10, ge=1, le=100),
    current_user: dict = Depends(get_current_user),
    db: Database = Depends(Provide[Container.db]),
) -> ProjectPage:
    where = "WHERE owner_id = ?"
    params: list = [current_user["id"]]
    if status:
        where += " AND status = ?"
        params.append(status.value)

    total_row = await db.fetchone(f"SELECT COUNT(*) AS cnt FROM projects {where}", params)
    total = total_row["cnt"]
    rows = await db.fetchall(
        f"SELECT * FROM projects {where} ORDER BY updated_at DESC LIMIT ? OFFSET ?",
        [*params, page_size, (page - 1) * page_size],
    )
    return ProjectPage(
        items=[ProjectOut(**row_to_project(r)) for r in rows],
        total=total,
        page=page,
        page_size=page_size,
        total_pages=math.ceil(total / page_size),
    )


@router.get("/{project_id}")
@inject
async def get_project(
    project_id: str,
    current_user: dict = Depends(get_current_user),
    db: Database = Depends(Provide[Container.db]),
    audit: AuditService = Depends(Provide[Container.audit]),
) -> ProjectOut:
    row = await get_owned_project(db, project_id, current_user)
    generations = await db.fetchall(
        "SELECT * FROM code_generations WHERE project_id = ? ORDER BY created_at DESC LIMIT ?",
        (project_id, _RECENT_LIMIT),
    )
    deployments = await db.fetchall(
        "SELECT * FROM deployments WHERE project_id = ? ORDER BY started_at DESC LIMIT ?",
        (project_id, _RECENT_LIMIT),
    )
    await audit.read(current_user["id"], "Project", project_id)
    return ProjectOut(
        **row_to_project(row),
        recent_generations=[row_to_generation(g) for g in generations],
        recent_deployments=[row_to_deployment(d) for d in deployments],
    )


@router.patch("/{project_id}")
@inject
async def update_project(
    project_id: str,
    body: ProjectUpdate,
    current_user: dict = Depends(get_current_user),
    db: Database = Depends(Provide[Container.db]),
    audit: AuditService = Depends(Provide[Container.audit]),
) -> ProjectOut:
    row = await get_owned_project(db, project_id, current_user)
    before = row_to_project(row)

    updates = []
    params: list = []
    if body.name is not None:
        updates.append("name = ?")
        params.append(body.name)
    if body.description is not None:
        updates.append("description = ?")
        params.append(body.description)
    if body.tech_stack is not None:
        updates.append("tech_stack_json = ?")
        params.append(json.dumps([t.model_dump(mode="json") for t in body.tech_stack]))
    if body.prompt is not None:
        updates.append("prompt = ?")
        params.append(body.prompt)
    if body.env_variables is not None:
        updates.append("env_variables_json = ?")
        params.append(json.dumps(body.env_variables))

    if not updates:
        raise HTTPException(400, "No fields to update")

    updates.extend(["version = version + 1", "updated_at = ?"])
    params.extend([time.time(), project_id])
    await db.execute_write(
        f"UPDATE projects SET {', '.join(updates)} WHERE id = ?", params,
    )

    row = await db.fetchone("SELECT * FROM projects WHERE id = ?", (project_id,))
    after = row_to_project(row)
    await audit.update(
        current_user["id"], "Project", project_id,
        old_value=_summary(before), new_value=_summary(after),
    )
    return ProjectOut(**after)


@router.delete("/{project_id}", status_code=204)
@inject
async def delete_project(
    project_id: str,
    current_user: dict = Depends(get_current_user),
    db: Database = Depends(Provide[Container.db]),
    audit: AuditService = Depends(Provide[Container.audit]),
):
    row = await get_owned_project(db, project_id, current_user)
    # Cascade deletes handle generations and deployments
    await db.execute_write("DELETE FROM projects WHERE id = ?", (project_id,))
    await audit.delete(current_user["id"], "Project", project_id, old_value=_summary(row_to_project(row)))


@router.post("/{project_id}/reset")
@inject
async def reset_project(
    project_id: str,
    current_user: dict = Depends(get_current_user),
    db: Database = Depends(Provide[Container.db]),
    audit: AuditService = Depends(Provide[Container.audit]),
) -> ProjectOut:
    """Return a project to DRAFT so it can be generated again."""
    row = await get_owned_project(db, project_id, current_user)
    await transition_project(
        db, project_id, row["status"], ProjectStatus.DRAFT, generated_files_json=None,
    )
    await audit.update(
        current_user["id"], "Project", project_id,
        old_value={"status": row["status"]}, new_value={"status": ProjectStatus.DRAFT.value},
    )
    row = await db.fetchone("SELECT * FROM projects WHERE id = ?", (project_id,))
    return ProjectOut(**row_to_project(row))
