"""End-to-end tests: audited routes write the trail, audit routes read it."""
import uuid
from contextlib import asynccontextmanager

import pytest
from sqlalchemy import select

from app.crud.audit import audit as audit_store
from app.middleware.audit import AuditedAPIRoute, audit_writer
from app.models.audit import AuditAction, AuditLog, ChangeType

API = "/api/v1"


async def all_logs(db_session):
    result = await db_session.execute(select(AuditLog).order_by(AuditLog.created_at, AuditLog.id))
    return list(result.scalars().all())


async def create_case(client, headers, number="C-1", **extra):
    payload = {"case_number": number, "title": "Printer jam", "priority": "HIGH", **extra}
    response = await client.post(f"{API}/cases", json=payload, headers=headers)
    assert response.status_code == 201, response.text
    return response.json()


@pytest.mark.asyncio
async def test_create_is_audited(client, db_session, test_user, auth_headers):
    case = await create_case(client, auth_headers)

    logs = await all_logs(db_session)
    assert len(logs) == 1
    log = logs[0]
    assert log.action == AuditAction.CREATE
    assert log.entity_type == "cases"
    assert log.entity_id == case["id"]
    assert log.entity_name == "Printer jam"
    assert log.module == "cases"
    assert log.user_id == test_user.id
    assert log.user_email == "test@example.com"
    assert log.user_role == "admin"
    assert log.ip_address == "127.0.0.1"
    assert log.request_method == "POST"
    assert log.request_path == f"{API}/cases"
    assert {change.field_name for change in log.changes} == {"case_number", "title", "priority"}
    assert all(change.change_type == ChangeType.ADDED for change in log.changes)


@pytest.mark.asyncio
async def test_update_records_only_changed_fields(client, db_session, auth_headers):
    case = await create_case(client, auth_headers)

    response = await client.put(
        f"{API}/cases/{case['id']}",
        json={"title": "Printer jam", "status": "CLOSED"},
        headers=auth_headers,
    )
    assert response.status_code == 200

    logs = await all_logs(db_session)
    assert [log.action for log in logs] == [AuditAction.CREATE, AuditAction.UPDATE]
    changes = logs[1].changes
    assert len(changes) == 1
    assert changes[0].field_name == "status"
    assert changes[0].old_value == "OPEN"
    assert changes[0].new_value == "CLOSED"
    assert changes[0].change_type == ChangeType.MODIFIED


@pytest.mark.asyncio
async def test_noop_update_writes_nothing(client, db_session, auth_headers):
    case = await create_case(client, auth_headers)

    response = await client.put(
        f"{API}/cases/{case['id']}", json={"title": "Printer jam"}, headers=auth_headers
    )
    assert response.status_code == 200

    assert len(await all_logs(db_session)) == 1


@pytest.mark.asyncio
async def test_failed_mutation_is_not_audited(client, db_session, auth_headers):
    response = await client.put(
        f"{API}/cases/{uuid.uuid4()}", json={"status": "CLOSED"}, headers=auth_headers
    )
    assert response.status_code == 404

    response = await client.post(f"{API}/cases", json={"title": "no number"}, headers=auth_headers)
    assert response.status_code == 422

    assert await all_logs(db_session) == []


@pytest.mark.asyncio
async def test_delete_records_prior_state(client, db_session, auth_headers):
    case = await create_case(client, auth_headers)

    response = await client.delete(f"{API}/cases/{case['id']}", headers=auth_headers)
    assert response.status_code == 204

    log = (await all_logs(db_session))[-1]
    assert log.action == AuditAction.DELETE
    assert log.entity_id == case["id"]
    assert log.entity_name == "Printer jam"
    removed = {change.field_name: change for change in log.changes}
    assert {"id", "case_number", "title", "status"} <= set(removed)
    assert removed["title"].old_value == "Printer jam"
    assert all(change.change_type == ChangeType.REMOVED for change in log.changes)
    assert "description" not in removed


@pytest.mark.asyncio
async def test_todo_patch_records_boolean_change(client, db_session, auth_headers):
    response = await client.post(f"{API}/todos", json={"title": "Call back"}, headers=auth_headers)
    assert response.status_code == 201
    todo = response.json()

    response = await client.patch(
        f"{API}/todos/{todo['id']}", json={"is_completed": True}, headers=auth_headers
    )
    assert response.status_code == 200

    log = (await all_logs(db_session))[-1]
    assert log.action == AuditAction.UPDATE
    assert log.entity_type == "todos"
    assert log.entity_name == "Call back"
    assert [(c.field_name, c.field_type, c.old_value, c.new_value) for c in log.changes] == [
        ("is_completed", "boolean", "false", "true")
    ]


@pytest.mark.asyncio
async def test_sensitive_changes_are_masked_on_read(client, db_session, auth_headers, agent_user):
    response = await client.put(
        f"{API}/users/{agent_user.id}",
        json={"full_name": "Agent Smith", "password": "newsecret1"},
        headers=auth_headers,
    )
    assert response.status_code == 200

    log = (await all_logs(db_session))[-1]
    assert log.entity_type == "users"
    assert [change.field_name for change in log.changes] == ["password"]
    assert log.changes[0].is_sensitive is True
    assert log.operation_context["request_body"]["password"] == "***"

    response = await client.get(f"{API}/audit/logs/{log.id}", headers=auth_headers)
    assert response.status_code == 200
    change = response.json()["changes"][0]
    assert change["new_value"] == "***"
    assert change["new_display_value"] == "***"


@pytest.mark.asyncio
async def test_report_access_is_audited_as_read(client, db_session, auth_headers):
    case = await create_case(client, auth_headers)

    response = await client.get(
        f"{API}/cases/{case['id']}/summary", params={"report_type": "weekly"}, headers=auth_headers
    )
    assert response.status_code == 200
    assert response.json()["data"]["report_type"] == "weekly"

    log = (await all_logs(db_session))[-1]
    assert log.action == AuditAction.READ
    assert log.entity_id == case["id"]
    assert [(c.field_name, c.new_value) for c in log.changes] == [("reportType", "weekly")]


@pytest.mark.asyncio
async def test_plain_reads_are_not_audited(client, db_session, auth_headers):
    case = await create_case(client, auth_headers)

    await client.get(f"{API}/cases", headers=auth_headers)
    await client.get(f"{API}/cases/{case['id']}", headers=auth_headers)

    assert len(await all_logs(db_session)) == 1


@pytest.mark.asyncio
async def test_audit_write_failure_does_not_affect_response(client, db_session, auth_headers):
    @asynccontextmanager
    async def broken_factory():
        raise RuntimeError("audit database unavailable")
        yield  # pragma: no cover

    original = audit_writer.session_factory
    audit_writer.session_factory = broken_factory
    try:
        response = await client.post(
            f"{API}/cases",
            json={"case_number": "C-9", "title": "Still works"},
            headers=auth_headers,
        )
    finally:
        audit_writer.session_factory = original

    assert response.status_code == 201
    assert response.json()["title"] == "Still works"
    assert await all_logs(db_session) == []


@pytest.mark.asyncio
async def test_login_is_recorded(client, db_session, test_user):
    response = await client.post(
        f"{API}/auth/login", json={"email": "test@example.com", "password": "testpassword"}
    )
    assert response.status_code == 200

    logs = await all_logs(db_session)
    assert len(logs) == 1
    assert logs[0].action == AuditAction.LOGIN
    assert logs[0].entity_id == str(test_user.id)
    assert logs[0].module == "auth"


@pytest.mark.asyncio
async def test_list_logs_is_scoped_for_view_own(client, db_session, auth_headers, agent_headers, test_user, agent_user):
    await create_case(client, auth_headers, number="C-1")
    await create_case(client, agent_headers, number="C-2")

    response = await client.get(
        f"{API}/audit/logs", params={"user_id": str(test_user.id)}, headers=agent_headers
    )
    assert response.status_code == 200
    body = response.json()
    assert body["total"] == 1
    assert body["items"][0]["user_email"] == agent_user.email

    response = await client.get(f"{API}/audit/logs", headers=auth_headers)
    assert response.json()["total"] == 2


@pytest.mark.asyncio
async def test_list_logs_filters_and_paginates(client, db_session, auth_headers):
    for i in range(3):
        await create_case(client, auth_headers, number=f"C-{i}")

    response = await client.get(
        f"{API}/audit/logs",
        params={"action": "CREATE", "entity_type": "cases", "limit": 2, "page": 2},
        headers=auth_headers,
    )
    assert response.status_code == 200
    body = response.json()
    assert body["total"] == 3
    assert len(body["items"]) == 1
    assert body["has_next_page"] is False
    assert body["has_prev_page"] is True


@pytest.mark.asyncio
async def test_log_detail_permissions(client, db_session, auth_headers, agent_headers, viewer_headers):
    await create_case(client, auth_headers)
    log = (await all_logs(db_session))[0]

    response = await client.get(f"{API}/audit/logs/{log.id}", headers=agent_headers)
    assert response.status_code == 403

    response = await client.get(f"{API}/audit/logs/{log.id}", headers=viewer_headers)
    assert response.status_code == 403

    response = await client.get(f"{API}/audit/logs/{uuid.uuid4()}", headers=auth_headers)
    assert response.status_code == 404

    response = await client.get(f"{API}/audit/logs", headers=viewer_headers)
    assert response.status_code == 200
    assert response.json()["total"] == 0


@pytest.mark.asyncio
async def test_entity_history(client, db_session, auth_headers):
    case = await create_case(client, auth_headers)
    await client.put(f"{API}/cases/{case['id']}", json={"status": "CLOSED"}, headers=auth_headers)

    response = await client.get(
        f"{API}/audit/entity/cases/{case['id']}/history", headers=auth_headers
    )
    assert response.status_code == 200
    body = response.json()
    assert body["total_changes"] == 2
    assert body["unique_users"] == 1
    assert body["entity_name"] == "Printer jam"
    assert [item["action"] for item in body["history"]] == ["CREATE", "UPDATE"]


@pytest.mark.asyncio
async def test_statistics_endpoint(client, db_session, auth_headers, agent_headers):
    await create_case(client, auth_headers)

    response = await client.get(f"{API}/audit/statistics", params={"days": 7}, headers=auth_headers)
    assert response.status_code == 200
    body = response.json()
    assert body["total_actions"] == 1
    assert body["actions_by_type"] == {"CREATE": 1}
    assert body["most_active_user"] == "test@example.com"

    assert (await client.get(f"{API}/audit/statistics", headers=agent_headers)).status_code == 403
    response = await client.get(f"{API}/audit/statistics", params={"days": 0}, headers=auth_headers)
    assert response.status_code == 422


@pytest.mark.asyncio
async def test_manual_entry_is_not_double_audited(client, db_session, auth_headers, agent_headers):
    entry = {
        "action": "download",
        "entity_type": "file_operations",
        "entity_id": "f1",
        "module": "files",
        "changes": [{"field_name": "fileName", "new_value": "report.pdf"}],
    }

    response = await client.post(f"{API}/audit/logs", json=entry, headers=auth_headers)
    assert response.status_code == 201
    assert response.json()["action"] == "DOWNLOAD"
    assert response.json()["change_count"] == 1

    response = await client.post(f"{API}/audit/logs", json={**entry, "action": "FLY"}, headers=auth_headers)
    assert response.status_code == 422

    response = await client.post(f"{API}/audit/logs", json=entry, headers=agent_headers)
    assert response.status_code == 403

    logs = await all_logs(db_session)
    assert len(logs) == 1


@pytest.mark.asyncio
async def test_export_formats(client, db_session, auth_headers, agent_headers):
    await create_case(client, auth_headers)

    response = await client.post(
        f"{API}/audit/export", json={"format": "csv", "include_changes": True}, headers=auth_headers
    )
    assert response.status_code == 200
    assert response.headers["content-type"].startswith("text/csv")
    assert "attachment" in response.headers["content-disposition"]
    text = response.content.decode("utf-8-sig")
    assert text.splitlines()[0].startswith("Date,User,Email,Action")
    assert "Printer jam" in text

    response = await client.post(f"{API}/audit/export", json={"format": "xlsx"}, headers=auth_headers)
    assert response.status_code == 200
    assert response.content[:2] == b"PK"

    response = await client.post(f"{API}/audit/export", json={"format": "json"}, headers=auth_headers)
    assert response.json()["metadata"]["total_records"] == 1

    response = await client.post(f"{API}/audit/export", json={"format": "pdf"}, headers=auth_headers)
    assert response.status_code == 422

    response = await client.post(f"{API}/audit/export", json={"format": "csv"}, headers=agent_headers)
    assert response.status_code == 403


@pytest.mark.asyncio
async def test_cleanup_bounds_and_permissions(client, db_session, auth_headers, agent_headers):
    await create_case(client, auth_headers)

    response = await client.delete(
        f"{API}/audit/cleanup", params={"days_to_keep": 10}, headers=auth_headers
    )
    assert response.status_code == 422

    response = await client.delete(
        f"{API}/audit/cleanup", params={"days_to_keep": 30}, headers=auth_headers
    )
    assert response.status_code == 200
    assert response.json()["deleted_count"] == 0
    assert response.json()["days_to_keep"] == 30

    response = await client.delete(f"{API}/audit/cleanup", headers=agent_headers)
    assert response.status_code == 403

    assert len(await all_logs(db_session)) == 1


@pytest.mark.asyncio
async def test_audit_requires_authentication(client):
    response = await client.get(f"{API}/audit/logs")
    assert response.status_code == 401


@pytest.mark.asyncio
async def test_report_type_defaults_to_the_handler_value(client, db_session, auth_headers):
    case = await create_case(client, auth_headers)

    response = await client.get(f"{API}/cases/{case['id']}/summary", headers=auth_headers)
    assert response.status_code == 200

    log = (await all_logs(db_session))[-1]
    assert log.action == AuditAction.READ
    assert log.entity_id == case["id"]
    assert log.entity_name == "summary"
    assert [(c.field_name, c.new_value) for c in log.changes] == [("reportType", "summary")]


@pytest.mark.asyncio
async def test_audit_planning_failure_does_not_affect_response(client, db_session, auth_headers, monkeypatch):
    def broken_plan(*args, **kwargs):
        raise RuntimeError("cannot plan audit entry")

    monkeypatch.setattr(AuditedAPIRoute, "_plan", staticmethod(broken_plan))

    response = await client.post(
        f"{API}/cases", json={"case_number": "C-8", "title": "Unplanned"}, headers=auth_headers
    )

    assert response.status_code == 201
    assert response.json()["title"] == "Unplanned"
    assert await all_logs(db_session) == []


@pytest.mark.asyncio
async def test_actor_snapshot_survives_user_rename_and_delete(
    client, db_session, auth_headers, agent_headers, agent_user
):
    case = await create_case(client, agent_headers)
    agent_id = agent_user.id

    response = await client.put(
        f"{API}/users/{agent_id}", json={"full_name": "Renamed Agent"}, headers=auth_headers
    )
    assert response.status_code == 200
    response = await client.delete(f"{API}/users/{agent_id}", headers=auth_headers)
    assert response.status_code == 204

    db_session.expire_all()
    log = (await all_logs(db_session))[0]
    assert log.action == AuditAction.CREATE
    assert log.entity_id == case["id"]
    assert log.entity_name == "Printer jam"
    assert log.user_id == agent_id
    assert log.user_name == "Agent Smith"
    assert log.user_email == "agent@example.com"
    assert log.user_role == "agent"

    response = await client.get(f"{API}/audit/logs/{log.id}", headers=auth_headers)
    assert response.status_code == 200
    assert response.json()["user_name"] == "Agent Smith"


@pytest.mark.asyncio
async def test_audit_logs_cannot_be_edited(client, db_session, auth_headers):
    for name in ("update", "remove", "delete", "create"):
        assert not hasattr(audit_store, name)

    await create_case(client, auth_headers)
    log = (await all_logs(db_session))[0]

    for method in ("PUT", "PATCH", "DELETE"):
        response = await client.request(
            method, f"{API}/audit/logs/{log.id}", json={"entity_name": "tampered"}, headers=auth_headers
        )
        assert response.status_code == 405

    db_session.expire_all()
    stored = (await all_logs(db_session))[0]
    assert stored.entity_name == "Printer jam"
    assert stored.action == AuditAction.CREATE
