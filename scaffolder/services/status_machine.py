#  Project Scaffolder - Status Transitions
#
#  Legal status transitions for projects, generations and deployments,
#  plus a compare-and-swap project update that doubles as the per-project
#  guard against concurrent generate/deploy requests.
#
#  Depends on: models/enums.py, exceptions.py, db/connection.py
#  Used by:    services/generation.py, services/deployment.py, routes/projects.py

import time

from scaffolder.db.connection import Database
from scaffolder.exceptions import ConcurrentModificationError, InvalidTransitionError
from scaffolder.models.enums import DeploymentStatus, GenerationStatus, ProjectStatus

PROJECT_TRANSITIONS: dict[ProjectStatus, frozenset[ProjectStatus]] = {
    ProjectStatus.DRAFT: frozenset({ProjectStatus.GENERATING, ProjectStatus.FAILED}),
    ProjectStatus.GENERATING: frozenset({ProjectStatus.GENERATED, ProjectStatus.FAILED}),
    ProjectStatus.GENERATED: frozenset({
        ProjectStatus.DEPLOYING, ProjectStatus.DRAFT, ProjectStatus.FAILED,
    }),
    ProjectStatus.DEPLOYING: frozenset({ProjectStatus.DEPLOYED, ProjectStatus.FAILED}),
    ProjectStatus.DEPLOYED: frozenset({ProjectStatus.DEPLOYING, ProjectStatus.DRAFT}),
    ProjectStatus.FAILED: frozenset({
        ProjectStatus.DRAFT, ProjectStatus.GENERATING, ProjectStatus.DEPLOYING,
    }),
}

GENERATION_TRANSITIONS: dict[GenerationStatus, frozenset[GenerationStatus]] = {
    GenerationStatus.PENDING: frozenset({GenerationStatus.PROCESSING, GenerationStatus.FAILED}),
    GenerationStatus.PROCESSING: frozenset({GenerationStatus.COMPLETED, GenerationStatus.FAILED}),
    GenerationStatus.COMPLETED: frozenset(),
    GenerationStatus.FAILED: frozenset(),
}

DEPLOYMENT_TRANSITIONS: dict[DeploymentStatus, frozenset[DeploymentStatus]] = {
    DeploymentStatus.PENDING: frozenset({
        DeploymentStatus.BUILDING, DeploymentStatus.FAILED, DeploymentStatus.CANCELLED,
    }),
    DeploymentStatus.BUILDING: frozenset({
        DeploymentStatus.SUCCESS, DeploymentStatus.FAILED, DeploymentStatus.CANCELLED,
    }),
    DeploymentStatus.SUCCESS: frozenset(),
    DeploymentStatus.FAILED: frozenset(),
    DeploymentStatus.CANCELLED: frozenset(),
}


def can_transition(table: dict, current, target) -> bool:
    """Same-state is always legal; otherwise the target must be listed."""
    status_type = type(next(iter(table)))
    current, target = status_type(current), status_type(target)
    return current == target or target in table[current]


def validate_project_transition(current, target):
    if not can_transition(PROJECT_TRANSITIONS, current, target):
        raise InvalidTransitionError("project", ProjectStatus(current).value, ProjectStatus(target).value)


def validate_generation_transition(current, target):
    if not can_transition(GENERATION_TRANSITIONS, current, target):
        raise InvalidTransitionError(
            "generation", GenerationStatus(current).value, GenerationStatus(target).value,
        )


def validate_deployment_transition(current, target):
    if not can_transition(DEPLOYMENT_TRANSITIONS, current, target):
        raise InvalidTransitionError(
            "deployment", DeploymentStatus(current).value, DeploymentStatus(target).value,
        )


async def transition_project(
    db: Database,
    project_id: str,
    current: ProjectStatus | str,
    target: ProjectStatus,
    **fields,
) -> None:
    """Move a project from `current` to `target`, writing extra columns too.

    The UPDATE only matches while the row still holds `current`, so two
    requests racing for the same project cannot both win. Raises
    InvalidTransitionError for an illegal edge and
    ConcurrentModificationError when the row moved underneath us.
    """
    validate_project_transition(current, target)

    assignments = ["status = ?", "updated_at = ?"]
    params: list = [ProjectStatus(target).value, time.time()]
    for column, value in fields.items():
        assignments.append(f"{column} = ?")
        params.append(value)
    params.extend([project_id, ProjectStatus(current).value])

    cursor = await db.execute_write(
        f"UPDATE projects SET {', '.join(assignments)} WHERE id = ? AND status = ?",
        params,
    )
    if cursor.rowcount == 0:
        raise ConcurrentModificationError(
            f"Project {project_id} is no longer {ProjectStatus(current).value}"
        )
