#  Project Scaffolder - Audit Trail
#
#  Append-only audit log of state-changing actions. Request metadata
#  (client IP, user agent, request id) comes from the context variables
#  the request middleware sets. Rows are only ever touched again by
#  data-subject anonymization. Also serves data-subject access exports
#  and erasure.
#
#  Depends on: db/connection.py, logging_config.py, models/enums.py, config.py
#  Used by:    container.py, services/generation.py, services/deployment.py, routes/*

import csv
import io
import json
import logging
import math
import time
import uuid

from scaffolder.config import AUDIT_PAGE_SIZE
from scaffolder.db.connection import Database
from scaffolder.logging_config import get_request_meta
from scaffolder.models.enums import AuditAction, AuditCategory, AuditSeverity

logger = logging.getLogger("scaffolder.audit")

# Upper bound on audit entries returned by a data-subject access export
ACCESS_EXPORT_AUDIT_LIMIT = 1000

_CSV_HEADER = [
    "ID", "Timestamp", "User Email", "Action", "Resource",
    "Resource ID", "Severity", "Category", "IP Address",
]


def _dumps(value) -> str | None:
    return json.dumps(value, default=str) if value is not None else None


def _loads(value):
    return json.loads(value) if value else None


def row_to_entry(row) -> dict:
    return {
        "id": row["id"],
        "user_id": row["user_id"],
        "user_email": row["user_email"] if "user_email" in row.keys() else None,
        "action": row["action"],
        "resource": row["resource"],
        "resource_id": row["resource_id"],
        "old_value": _loads(row["old_value_json"]),
        "new_value": _loads(row["new_value_json"]),
        "details": _loads(row["details_json"]),
        "severity": row["severity"],
        "category": row["category"],
        "ip_address": row["ip_address"],
        "user_agent": row["user_agent"],
        "request_id": row["request_id"],
        "created_at": row["created_at"],
    }


class AuditService:
    """Writes and queries audit_logs."""

    def __init__(self, db: Database):
        self._db = db

    # ------------------------------------------------------------------
    # Writing
    # ------------------------------------------------------------------

    async def log(
        self,
        *,
        user_id: str | None,
        action: str,
        resource: str,
        resource_id: str | None = None,
        old_value=None,
        new_value=None,
        details: dict | None = None,
        severity: AuditSeverity = AuditSeverity.INFO,
        category: AuditCategory = AuditCategory.DATA_ACCESS,
    ) -> str:
        entry_id = uuid.uuid4().hex[:12]
        meta = get_request_meta()
        await self._db.execute_write(
            "INSERT INTO audit_logs (id, user_id, action, resource, resource_id, "
            "old_value_json, new_value_json, details_json, severity, category, "
            "ip_address, user_agent, request_id, created_at) "
            "VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)",
            (
                entry_id, user_id, action, resource, resource_id,
                _dumps(old_value), _dumps(new_value), _dumps(details),
                AuditSeverity(severity).value, AuditCategory(category).value,
                meta["ip_address"], meta["user_agent"], meta["request_id"],
                time.time(),
            ),
        )
        return entry_id

    async def create(self, user_id, resource: str, resource_id: str, new_value=None, details=None) -> str:
        return await self.log(
            user_id=user_id, action=AuditAction.CREATE, resource=resource,
            resource_id=resource_id, new_value=new_value, details=details,
        )

    async def read(self, user_id, resource: str, resource_id: str) -> str:
        return await self.log(
            user_id=user_id, action=AuditAction.READ, resource=resource,
            resource_id=resource_id, severity=AuditSeverity.DEBUG,
        )

    async def update(self, user_id, resource: str, resource_id: str, old_value=None, new_value=None) -> str:
        return await self.log(
            user_id=user_id, action=AuditAction.UPDATE, resource=resource,
            resource_id=resource_id, old_value=old_value, new_value=new_value,
        )

    async def delete(self, user_id, resource: str, resource_id: str, old_value=None) -> str:
        return await self.log(
            user_id=user_id, action=AuditAction.DELETE, resource=resource,
            resource_id=resource_id, old_value=old_value, severity=AuditSeverity.WARNING,
        )

    async def error(
        self, user_id, action: str, resource: str, resource_id: str | None,
        error: Exception | str, details: dict | None = None,
    ) -> str:
        return await self.log(
            user_id=user_id, action=action, resource=resource, resource_id=resource_id,
            details={**(details or {}), "error": str(error)},
            severity=AuditSeverity.ERROR, category=AuditCategory.SYSTEM,
        )

    async def security(self, user_id, action: str, details: dict | None = None) -> str:
        return await self.log(
            user_id=user_id, action=action, resource="Security", details=details,
            severity=AuditSeverity.WARNING, category=AuditCategory.SECURITY,
        )

    # ------------------------------------------------------------------
    # Querying
    # ------------------------------------------------------------------

    @staticmethod
    def _where(filters: dict) -> tuple[str, list]:
        clauses = []
        params: list = []
        for column in ("user_id", "action", "resource", "resource_id", "severity", "category"):
            if filters.get(column):
                clauses.append(f"a.{column} = ?")
                params.append(filters[column])
        if filters.get("start") is not None:
            clauses.append("a.created_at >= ?")
            params.append(filters["start"])
        if filters.get("end") is not None:
            clauses.append("a.created_at <= ?")
            params.append(filters["end"])
        where = f"WHERE {' AND '.join(clauses)}" if clauses else ""
        return where, params

    async def list_logs(
        self, filters: dict | None = None, page: int = 1, page_size: int = AUDIT_PAGE_SIZE,
    ) -> dict:
        where, params = self._where(filters or {})
        total_row = await self._db.fetchone(
            f"SELECT COUNT(*) AS cnt FROM audit_logs a {where}", params,
        )
        total = total_row["cnt"] if total_row else 0
        rows = await self._db.fetchall(
            f"SELECT a.*, u.email AS user_email FROM audit_logs a "
            f"LEFT JOIN users u ON u.id = a.user_id {where} "
            f"ORDER BY a.created_at DESC LIMIT ? OFFSET ?",
            [*params, page_size, (page - 1) * page_size],
        )
        return {
            "items": [row_to_entry(r) for r in rows],
            "total": total,
            "page": page,
            "page_size": page_size,
            "total_pages": math.ceil(total / page_size) if page_size else 0,
        }

    async def export(self, start: float | None = None, end: float | None = None, fmt: str = "json") -> str:
        """Serialize every entry in [start, end] as JSON or CSV text."""
        where, params = self._where({"start": start, "end": end})
        rows = await self._db.fetchall(
            f"SELECT a.*, u.email AS user_email FROM audit_logs a "
            f"LEFT JOIN users u ON u.id = a.user_id {where} ORDER BY a.created_at DESC",
            params,
        )
        entries = [row_to_entry(r) for r in rows]
        if fmt == "json":
            return json.dumps(entries, default=str, indent=2)
        if fmt != "csv":
            raise ValueError(f"Unsupported export format: {fmt}")

        buf = io.StringIO()
        writer = csv.writer(buf)
        writer.writerow(_CSV_HEADER)
        for e in entries:
            writer.writerow([
                e["id"], e["created_at"], e["user_email"] or "", e["action"], e["resource"],
                e["resource_id"] or "", e["severity"], e["category"], e["ip_address"] or "",
            ])
        return buf.getvalue()

    async def anonymize_user(self, user_id: str) -> int:
        """Strip PII from a user's audit rows. Returns the number of rows touched."""
        cursor = await self._db.execute_write(
            "UPDATE audit_logs SET user_id = NULL, ip_address = NULL, user_agent = NULL "
            "WHERE user_id = ?",
            (user_id,),
        )
        logger.info("Anonymized %d audit entries for a deleted user", cursor.rowcount)
        return cursor.rowcount

    # ------------------------------------------------------------------
    # Data-subject requests
    # ------------------------------------------------------------------

    async def export_user_data(self, user_id: str) -> dict | None:
        """Everything held about one user: profile, projects, recent audit entries.

        Returns None if the user does not exist.
        """
        user = await self._db.fetchone(
            "SELECT id, email, display_name, role, created_at FROM users WHERE id = ?", (user_id,),
        )
        if user is None:
            return None
        projects = await self._db.fetchall(
            "SELECT id, name, description, created_at FROM projects "
            "WHERE owner_id = ? ORDER BY created_at",
            (user_id,),
        )
        entries = await self._db.fetchall(
            "SELECT action, resource, created_at, ip_address FROM audit_logs "
            "WHERE user_id = ? ORDER BY created_at DESC LIMIT ?",
            (user_id, ACCESS_EXPORT_AUDIT_LIMIT),
        )
        return {
            "user": dict(user),
            "projects": [dict(p) for p in projects],
            "audit_logs": [dict(e) for e in entries],
        }

    async def erase_user(self, user_id: str) -> dict:
        """Delete a user (cascading to their projects) and anonymize their audit rows.

        Both writes commit together.
        """
        async with self._db.transaction() as conn:
            cursor = await conn.execute("SELECT COUNT(*) FROM projects WHERE owner_id = ?", (user_id,))
            deleted_projects = (await cursor.fetchone())[0]
            anonymized = await self.anonymize_user(user_id)
            await conn.execute("DELETE FROM users WHERE id = ?", (user_id,))
        return {"anonymized_audit_entries": anonymized, "deleted_projects": deleted_projects}
