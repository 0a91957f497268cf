#  Project Scaffolder - Audit Service Tests
#
#  Tests for audit entry writing, request metadata capture, filtered
#  listing, JSON/CSV export, user anonymization and data-subject
#  access export / erasure.
#
#  Depends on: scaffolder/services/audit.py, tests/conftest.py
#  Used by:    pytest

import csv
import io
import json
import sqlite3

import pytest

from scaffolder.logging_config import set_request_id, set_request_meta
from tests.conftest import insert_project, insert_user


class TestLogging:
    async def test_create_records_request_meta(self, tmp_db, audit_service):
        user_id = await insert_user(tmp_db)
        set_request_id("req-42")
        set_request_meta("203.0.113.9", "pytest/1.0")
        try:
            entry_id = await audit_service.create(user_id, "Project", "p1", new_value={"name": "Todo"})
        finally:
            set_request_id(None)
            set_request_meta(None, None)

        row = await tmp_db.fetchone("SELECT * FROM audit_logs WHERE id = ?", (entry_id,))
        assert row["action"] == "CREATE"
        assert row["severity"] == "INFO"
        assert row["category"] == "data_access"
        assert row["ip_address"] == "203.0.113.9"
        assert row["user_agent"] == "pytest/1.0"
        assert row["request_id"] == "req-42"
        assert json.loads(row["new_value_json"]) == {"name": "Todo"}

    async def test_ip_defaults_to_unknown(self, tmp_db, audit_service):
        entry_id = await audit_service.read(None, "Project", "p1")
        row = await tmp_db.fetchone("SELECT * FROM audit_logs WHERE id = ?", (entry_id,))
        assert row["ip_address"] == "unknown"
        assert row["severity"] == "DEBUG"

    async def test_delete_is_warning(self, tmp_db, audit_service):
        entry_id = await audit_service.delete(None, "Project", "p1", old_value={"name": "x"})
        row = await tmp_db.fetchone("SELECT * FROM audit_logs WHERE id = ?", (entry_id,))
        assert row["severity"] == "WARNING"

    async def test_error_entry(self, tmp_db, audit_service):
        entry_id = await audit_service.error(
            None, "CREATE", "Deployment", "d1", RuntimeError("timed out"), details={"project_id": "p1"},
        )
        row = await tmp_db.fetchone("SELECT * FROM audit_logs WHERE id = ?", (entry_id,))
        assert row["severity"] == "ERROR"
        assert row["category"] == "system"
        assert json.loads(row["details_json"]) == {"project_id": "p1", "error": "timed out"}

    async def test_security_entry(self, tmp_db, audit_service):
        entry_id = await audit_service.security(None, "LOGIN_FAILED", {"email": "a@b.c"})
        row = await tmp_db.fetchone("SELECT * FROM audit_logs WHERE id = ?", (entry_id,))
        assert row["resource"] == "Security"
        assert row["category"] == "security"


class TestQuerying:
    async def test_list_filters_and_pages(self, tmp_db, audit_service):
        user_id = await insert_user(tmp_db)
        for i in range(5):
            await audit_service.create(user_id, "Project", f"p{i}")
        await audit_service.delete(user_id, "Project", "p0")

        page = await audit_service.list_logs({"action": "CREATE"}, page=1, page_size=2)
        assert page["total"] == 5
        assert page["total_pages"] == 3
        assert len(page["items"]) == 2
        assert page["items"][0]["user_email"] == "owner@example.com"

        deletes = await audit_service.list_logs({"action": "DELETE", "resource_id": "p0"})
        assert deletes["total"] == 1
        assert deletes["items"][0]["severity"] == "WARNING"

    async def test_export_json(self, tmp_db, audit_service):
        await audit_service.create(None, "Project", "p1")
        data = json.loads(await audit_service.export(fmt="json"))
        assert len(data) == 1
        assert data[0]["resource_id"] == "p1"

    async def test_export_csv(self, tmp_db, audit_service):
        user_id = await insert_user(tmp_db)
        await audit_service.create(user_id, "Project", "p1")
        rows = list(csv.reader(io.StringIO(await audit_service.export(fmt="csv"))))
        assert rows[0] == [
            "ID", "Timestamp", "User Email", "Action", "Resource",
            "Resource ID", "Severity", "Category", "IP Address",
        ]
        assert rows[1][2:6] == ["owner@example.com", "CREATE", "Project", "p1"]

    async def test_export_window(self, tmp_db, audit_service):
        await audit_service.create(None, "Project", "p1")
        assert json.loads(await audit_service.export(start=0, end=1)) == []

    async def test_export_unknown_format(self, audit_service):
        with pytest.raises(ValueError, match="Unsupported export format"):
            await audit_service.export(fmt="xml")


class TestAnonymize:
    async def test_strips_pii(self, tmp_db, audit_service):
        user_id = await insert_user(tmp_db)
        set_request_meta("198.51.100.1", "agent")
        try:
            await audit_service.create(user_id, "Project", "p1")
            await audit_service.update(user_id, "Project", "p1")
        finally:
            set_request_meta(None, None)
        await audit_service.create(None, "Project", "p2")

        assert await audit_service.anonymize_user(user_id) == 2
        rows = await tmp_db.fetchall("SELECT * FROM audit_logs WHERE resource_id = 'p1'")
        assert all(r["user_id"] is None and r["ip_address"] is None for r in rows)
        assert all(r["user_agent"] is None for r in rows)


class TestDataSubjectRequests:
    async def test_export_user_data(self, tmp_db, audit_service):
        user_id = await insert_user(tmp_db)
        await insert_user(tmp_db, user_id="other", email="other@example.com")
        await insert_project(tmp_db, owner_id=user_id)
        await insert_project(tmp_db, project_id="proj_other", owner_id="other")
        set_request_meta("198.51.100.1", "agent")
        try:
            await audit_service.create(user_id, "Project", "proj_test_001")
            await audit_service.create("other", "Project", "proj_other")
        finally:
            set_request_meta(None, None)

        data = await audit_service.export_user_data(user_id)
        assert data["user"]["email"] == "owner@example.com"
        assert "password_hash" not in data["user"]
        assert [p["id"] for p in data["projects"]] == ["proj_test_001"]
        assert data["audit_logs"] == [{
            "action": "CREATE",
            "resource": "Project",
            "created_at": data["audit_logs"][0]["created_at"],
            "ip_address": "198.51.100.1",
        }]

    async def test_export_caps_audit_entries(self, tmp_db, audit_service, monkeypatch):
        monkeypatch.setattr("scaffolder.services.audit.ACCESS_EXPORT_AUDIT_LIMIT", 2)
        user_id = await insert_user(tmp_db)
        for i in range(3):
            await audit_service.update(user_id, "Project", f"p{i}")
        assert len((await audit_service.export_user_data(user_id))["audit_logs"]) == 2

    async def test_export_missing_user(self, tmp_db, audit_service):
        assert await audit_service.export_user_data("nope") is None

    async def test_erase_user(self, tmp_db, audit_service):
        user_id = await insert_user(tmp_db)
        await insert_project(tmp_db, owner_id=user_id)
        await audit_service.create(user_id, "Project", "proj_test_001")

        result = await audit_service.erase_user(user_id)
        assert result == {"anonymized_audit_entries": 1, "deleted_projects": 1}
        assert await tmp_db.fetchone("SELECT * FROM users WHERE id = ?", (user_id,)) is None
        assert await tmp_db.fetchone("SELECT * FROM projects") is None

    async def test_erase_is_atomic(self, tmp_db, audit_service):
        user_id = await insert_user(tmp_db)
        await audit_service.create(user_id, "Project", "p1")
        await tmp_db.execute_write(
            "CREATE TRIGGER block_user_delete BEFORE DELETE ON users "
            "BEGIN SELECT RAISE(ABORT, 'delete blocked'); END"
        )

        with pytest.raises(sqlite3.IntegrityError, match="delete blocked"):
            await audit_service.erase_user(user_id)

        assert await tmp_db.fetchone("SELECT * FROM users WHERE id = ?", (user_id,)) is not None
        row = await tmp_db.fetchone("SELECT * FROM audit_logs WHERE resource_id = 'p1'")
        assert row["user_id"] == user_id
