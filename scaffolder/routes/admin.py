#  Project Scaffolder - Admin Routes
#
#  Admin-only endpoints: audit log query/export and data-subject access
#  export / erasure.
#
#  Depends on: container.py, services/audit.py, models/schemas.py, middleware/auth.py
#  Used by:    app.py

from typing import Literal

from dependency_injector.wiring import inject, Provide
from fastapi import APIRouter, Depends, HTTPException, Query
from fastapi.responses import Response

from scaffolder.container import Container
from scaffolder.db.connection import Database
from scaffolder.middleware.auth import require_admin
from scaffolder.models.enums import AuditAction, AuditCategory, AuditSeverity
from scaffolder.models.schemas import AuditPage, UserDataExport, UserErasureOut
from scaffolder.services.audit import AuditService

router = APIRouter(prefix="/admin", tags=["admin"])


# ---------------------------------------------------------------------------
# Audit log
# ---------------------------------------------------------------------------

@router.get("/audit-logs")
@inject
async def list_audit_logs(
    user_id: str | None = None,
    action: str | None = None,
    resource: str | None = None,
    resource_id: str | None = None,
    severity: AuditSeverity | None = None,
    category: AuditCategory | None = None,
    start: float | None = None,
    end: float | None = None,
    page: int = Query(default=1, ge=1),
    page_size: int = Query(default=50, ge=1, le=200),
    _admin: dict = Depends(require_admin),
    audit: AuditService = Depends(Provide[Container.audit]),
) -> AuditPage:
    filters = {
        "user_id": user_id,
        "action": action,
        "resource": resource,
        "resource_id": resource_id,
        "severity": severity.value if severity else None,
        "category": category.value if category else None,
        "start": start,
        "end": end,
    }
    return AuditPage(**await audit.list_logs(filters, page=page, page_size=page_size))


@router.get("/audit-logs/export")
@inject
async def export_audit_logs(
    fmt: Literal["json", "csv"] = Query(default="json", alias="format"),
    start: float | None = None,
    end: float | None = None,
    _admin: dict = Depends(require_admin),
    audit: AuditService = Depends(Provide[Container.audit]),
) -> Response:
    body = await audit.export(start=start, end=end, fmt=fmt)
    media_type = "text/csv" if fmt == "csv" else "application/json"
    return Response(
        content=body,
        media_type=media_type,
        headers={"Content-Disposition": f'attachment; filename="audit-logs.{fmt}"'},
    )


# ---------------------------------------------------------------------------
# Data-subject requests
# ---------------------------------------------------------------------------

@router.get("/users/{user_id}/export")
@inject
async def export_user_data(
    user_id: str,
    admin: dict = Depends(require_admin),
    audit: AuditService = Depends(Provide[Container.audit]),
) -> UserDataExport:
    """Everything stored about a user: profile, projects, latest audit entries."""
    data = await audit.export_user_data(user_id)
    if data is None:
        raise HTTPException(404, "User not found")
    await audit.log(
        user_id=admin["id"], action=AuditAction.EXPORT, resource="User", resource_id=user_id,
        details={"projects": len(data["projects"]), "audit_entries": len(data["audit_logs"])},
    )
    return UserDataExport(**data)


@router.delete("/users/{user_id}")
@inject
async def erase_user(
    user_id: str,
    admin: dict = Depends(require_admin),
    db: Database = Depends(Provide[Container.db]),
    audit: AuditService = Depends(Provide[Container.audit]),
) -> UserErasureOut:
    """Delete a user and their projects; strip their PII from the audit log."""
    if user_id == admin["id"]:
        raise HTTPException(400, "Cannot delete your own account")
    row = await db.fetchone("SELECT id FROM users WHERE id = ?", (user_id,))
    if not row:
        raise HTTPException(404, "User not found")

    result = await audit.erase_user(user_id)
    await audit.delete(
        admin["id"], "User", user_id,
        old_value={"anonymized_audit_entries": result["anonymized_audit_entries"]},
    )
    return UserErasureOut(user_id=user_id, **result)
