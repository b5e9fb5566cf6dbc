"""Tests for scoped audit reads, retention and manual entries."""
import json
import uuid
from datetime import datetime, timedelta, timezone

import pytest
from sqlalchemy import func, select

from app.core.exceptions import ForbiddenError, NotFoundError, ValidationError
from app.core.security import ROLE_PERMISSIONS, Permission
from app.crud.audit import audit
from app.models.audit import AuditAction, AuditLog
from app.models.user import Role, User
from app.schemas.audit import AuditContext, AuditExportRequest, AuditLogCreate, AuditLogFilters
from app.schemas.common import PaginationParams, SortParams
from app.services.audit_service import apply_scope, audit_service, can_view_log, validate_retention
from app.utils.diff import changes_for_update
from app.utils.permissions import resolve_audit_capabilities


def make_user(*permissions, role_name="custom", is_active=True) -> User:
    user = User(
        id=uuid.uuid4(),
        email=f"{role_name}@example.com",
        full_name=role_name.title(),
        password_hash="x",
        is_active=is_active,
    )
    user.roles = [
        Role(id=uuid.uuid4(), name=role_name, permissions=[perm.value for perm in permissions])
    ]
    return user


def make_role_user(role_name: str) -> User:
    return make_user(*ROLE_PERMISSIONS[role_name], role_name=role_name)


def context_for(user: User) -> AuditContext:
    return AuditContext(
        user_id=user.id,
        user_email=user.email,
        user_name=user.full_name,
        user_role=user.role_name,
        module="audit",
        ip_address="127.0.0.1",
        request_path="/api/v1/audit/logs",
        request_method="POST",
    )


def test_capabilities_by_role():
    admin = resolve_audit_capabilities(make_role_user("admin"))
    assert admin.is_administrator and admin.can_export and admin.can_administer

    agent = resolve_audit_capabilities(make_role_user("agent"))
    assert agent.can_view_own and not agent.can_view_all and not agent.can_export

    viewer = resolve_audit_capabilities(make_role_user("viewer"))
    assert not viewer.can_view_any

    inactive = resolve_audit_capabilities(make_user(Permission.AUDIT_VIEW_ALL, is_active=False))
    assert not inactive.can_view_any


def test_view_own_scope_overrides_requested_user():
    """A view-own caller asking for another user's logs only ever gets their own."""
    caller = make_user(Permission.AUDIT_VIEW_OWN)
    other = uuid.uuid4()

    scoped = apply_scope(AuditLogFilters(user_id=other, module=["cases"]), caller)

    assert scoped.user_id == caller.id
    assert scoped.module == ["cases"]


def test_view_all_and_admin_keep_filters():
    requested = AuditLogFilters(user_id=uuid.uuid4())
    assert apply_scope(requested, make_user(Permission.AUDIT_VIEW_ALL)).user_id == requested.user_id
    assert apply_scope(requested, make_role_user("admin")).user_id == requested.user_id
    assert apply_scope(AuditLogFilters(), make_user(Permission.AUDIT_VIEW_TEAM)).user_id is None


def test_no_capability_falls_back_to_own_logs():
    caller = make_role_user("viewer")
    assert apply_scope(AuditLogFilters(), caller).user_id == caller.id


def test_can_view_log():
    owner = make_user(Permission.AUDIT_VIEW_OWN)
    stranger = make_user(Permission.AUDIT_VIEW_OWN)
    log = AuditLog(user_id=owner.id, user_email=owner.email)

    assert can_view_log(log, owner)
    assert not can_view_log(log, stranger)
    assert can_view_log(log, make_user(Permission.AUDIT_VIEW_ALL))
    assert not can_view_log(AuditLog(user_id=None, user_email="system@unknown.com"), owner)


@pytest.mark.parametrize("days", [0, 10, 29, 2556, 10000])
def test_retention_out_of_bounds(days):
    with pytest.raises(ValidationError):
        validate_retention(days)


def test_retention_bounds_and_default():
    assert validate_retention(None) == 365
    assert validate_retention(30) == 30
    assert validate_retention(2555) == 2555


@pytest.mark.asyncio
async def test_purge_rejects_short_retention_before_touching_storage(db_session):
    await audit.append(
        db_session,
        log_data={
            "user_email": "a@example.com",
            "action": AuditAction.CREATE,
            "entity_type": "cases",
            "entity_id": "c1",
            "module": "cases",
            "created_at": datetime.now(timezone.utc) - timedelta(days=20),
        },
    )

    with pytest.raises(ValidationError):
        await audit_service.purge_older_than(db_session, days_to_keep=10)

    count = await db_session.execute(select(func.count(AuditLog.id)))
    assert count.scalar_one() == 1


@pytest.mark.asyncio
async def test_query_logs_page_metadata(db_session):
    admin = make_role_user("admin")
    for i in range(25):
        await audit.append(
            db_session,
            log_data={
                "user_email": "a@example.com",
                "action": AuditAction.UPDATE,
                "entity_type": "cases",
                "entity_id": f"c{i}",
                "module": "cases",
            },
        )

    page = await audit_service.query_logs(
        db_session,
        filters=AuditLogFilters(),
        pagination=PaginationParams(page=2, limit=10),
        sort=SortParams(),
        caller=admin,
    )

    assert page.total == 25
    assert len(page.items) == 10
    assert page.total_pages == 3
    assert page.has_next_page is True
    assert page.has_prev_page is True


@pytest.mark.asyncio
async def test_query_logs_clamps_limit(db_session):
    page = await audit_service.query_logs(
        db_session,
        filters=AuditLogFilters(),
        pagination=PaginationParams(page=1, limit=5000),
        sort=SortParams(),
        caller=make_role_user("admin"),
    )
    assert page.limit == 100
    assert page.total == 0
    assert page.total_pages == 0
    assert page.has_next_page is False


@pytest.mark.asyncio
async def test_get_log_permissions(db_session):
    owner = make_role_user("agent")
    stranger = make_user(Permission.AUDIT_VIEW_OWN, role_name="other")
    log = await audit.append(
        db_session,
        log_data={
            "user_id": owner.id,
            "user_email": owner.email,
            "action": AuditAction.CREATE,
            "entity_type": "cases",
            "entity_id": "c1",
            "module": "cases",
        },
    )

    assert (await audit_service.get_log(db_session, log_id=log.id, caller=owner)).id == log.id
    with pytest.raises(ForbiddenError):
        await audit_service.get_log(db_session, log_id=log.id, caller=stranger)
    with pytest.raises(ForbiddenError):
        await audit_service.get_log(db_session, log_id=log.id, caller=make_role_user("viewer"))
    with pytest.raises(NotFoundError):
        await audit_service.get_log(db_session, log_id=uuid.uuid4(), caller=owner)


@pytest.mark.asyncio
async def test_history_filters_logs_for_view_own(db_session):
    owner = make_role_user("agent")
    for user_id in (owner.id, uuid.uuid4()):
        await audit.append(
            db_session,
            log_data={
                "user_id": user_id,
                "user_email": "x@example.com",
                "action": AuditAction.UPDATE,
                "entity_type": "cases",
                "entity_id": "c1",
                "module": "cases",
            },
        )

    history = await audit_service.get_history(
        db_session, entity_type="cases", entity_id="c1", caller=owner, include_changes=False
    )
    assert history["total_changes"] == 1
    assert history["unique_users"] == 1
    assert history["history"][0].changes is None

    full = await audit_service.get_history(
        db_session, entity_type="cases", entity_id="c1", caller=make_role_user("admin")
    )
    assert full["total_changes"] == 2


@pytest.mark.asyncio
async def test_statistics_require_broad_view(db_session):
    with pytest.raises(ForbiddenError):
        await audit_service.get_statistics(db_session, days=30, caller=make_role_user("agent"))
    with pytest.raises(ValidationError):
        await audit_service.get_statistics(db_session, days=0, caller=make_role_user("admin"))
    stats = await audit_service.get_statistics(db_session, days=7, caller=make_role_user("supervisor"))
    assert stats["window_days"] == 7
    assert stats["total_actions"] == 0


@pytest.mark.asyncio
async def test_record_manual_entry(db_session):
    admin = make_role_user("admin")
    entry = AuditLogCreate(
        action="download",
        entity_type="file_operations",
        entity_id="f1",
        entity_name="report.pdf",
        module="files",
        changes=[{"field_name": "fileName", "new_value": "report.pdf"}],
    )

    log = await audit_service.record_manual_entry(db_session, entry=entry, context=context_for(admin))

    assert log.action == AuditAction.DOWNLOAD
    assert log.user_email == admin.email
    assert log.user_id == admin.id
    assert log.module == "files"
    assert [(c.field_name, c.new_value, c.field_type) for c in log.changes] == [
        ("fileName", "report.pdf", "string")
    ]


@pytest.mark.parametrize(
    "overrides",
    [
        {"action": "FLY"},
        {"module": ""},
        {"entity_id": "  "},
        {"entity_name": "n" * 501},
        {"module": "m" * 51},
        {"changes": [{"field_name": ""}]},
    ],
)
@pytest.mark.asyncio
async def test_record_manual_entry_validation(db_session, overrides):
    admin = make_role_user("admin")
    data = {"action": "VIEW", "entity_type": "files", "entity_id": "f1", "module": "files"}
    data.update(overrides)

    with pytest.raises(ValidationError):
        await audit_service.record_manual_entry(
            db_session, entry=AuditLogCreate(**data), context=context_for(admin)
        )

    count = await db_session.execute(select(func.count(AuditLog.id)))
    assert count.scalar_one() == 0


async def _seed_sensitive_log(db_session, user_id):
    return await audit.append(
        db_session,
        log_data={
            "user_id": user_id,
            "user_email": "a@example.com",
            "action": AuditAction.UPDATE,
            "entity_type": "users",
            "entity_id": "u1",
            "module": "users",
        },
        changes=changes_for_update({"password": None, "full_name": "Old"}, {"password": "hunter2", "full_name": "New"}),
    )


@pytest.mark.asyncio
async def test_export_masks_sensitive_values_unless_revealed(db_session):
    admin = make_role_user("admin")
    await _seed_sensitive_log(db_session, admin.id)

    masked = await audit_service.export_logs(
        db_session, request=AuditExportRequest(format="json", include_changes=True), caller=admin
    )
    payload = json.loads(masked.content)
    assert payload["metadata"]["total_records"] == 1
    values = {c["field_name"]: c["new_value"] for c in payload["data"][0]["changes"]}
    assert values == {"password": "***", "full_name": "New"}

    revealed = await audit_service.export_logs(
        db_session,
        request=AuditExportRequest(format="json", include_changes=True, include_sensitive_data=True),
        caller=admin,
    )
    values = {c["field_name"]: c["new_value"] for c in json.loads(revealed.content)["data"][0]["changes"]}
    assert values["password"] == "hunter2"


@pytest.mark.asyncio
async def test_export_reveal_requires_audit_administration(db_session):
    exporter = make_user(Permission.AUDIT_VIEW_ALL, Permission.AUDIT_EXPORT_ALL, role_name="auditor")
    await _seed_sensitive_log(db_session, exporter.id)

    exported = await audit_service.export_logs(
        db_session,
        request=AuditExportRequest(format="json", include_changes=True, include_sensitive_data=True),
        caller=exporter,
    )
    values = {c["field_name"]: c["new_value"] for c in json.loads(exported.content)["data"][0]["changes"]}
    assert values["password"] == "***"

    with pytest.raises(ForbiddenError):
        await audit_service.export_logs(
            db_session, request=AuditExportRequest(format="csv"), caller=make_role_user("agent")
        )
