"""Tests for audit context extraction."""
import uuid

from starlette.requests import Request

from app.middleware.audit_context import (
    SYSTEM_USER_EMAIL,
    SYSTEM_USER_NAME,
    SYSTEM_USER_ROLE,
    UNKNOWN,
    extract_audit_context,
    extract_ip_address,
    extract_module,
)
from app.models.user import Role, User


def make_request(path="/api/v1/cases", method="POST", headers=None, client=None) -> Request:
    scope = {
        "type": "http",
        "method": method,
        "path": path,
        "query_string": b"",
        "headers": [(k.lower().encode(), v.encode()) for k, v in (headers or {}).items()],
        "client": client,
        "server": ("testserver", 80),
        "scheme": "http",
    }
    return Request(scope)


def make_user(role_name="agent") -> User:
    user = User(
        id=uuid.uuid4(),
        email="jane@example.com",
        full_name="Jane Doe",
        password_hash="x",
        is_active=True,
    )
    user.roles = [Role(id=uuid.uuid4(), name=role_name, permissions=[])]
    return user


def test_extract_module_prefers_longest_prefix():
    assert extract_module("/api/v1/admin/case-statuses/42") == "case_statuses"
    assert extract_module("/api/v1/admin/settings") == "admin"
    assert extract_module("/api/v1/time-entries/1") == "time_tracking"
    assert extract_module("/api/v1/cases/123/todos") == "cases"


def test_extract_module_falls_back_to_first_segment():
    assert extract_module("/api/v1/widgets/7") == "widgets"
    assert extract_module("/other/thing") == "thing"
    assert extract_module("/") == UNKNOWN


def test_ip_prefers_transport_peer():
    request = make_request(headers={"X-Forwarded-For": "10.0.0.1"}, client=("192.168.1.5", 5000))
    assert extract_ip_address(request) == "192.168.1.5"


def test_ip_falls_back_to_forwarded_headers():
    request = make_request(headers={"X-Forwarded-For": "10.0.0.1, 10.0.0.2"})
    assert extract_ip_address(request) == "10.0.0.1"

    request = make_request(headers={"X-Real-IP": "172.16.0.9"})
    assert extract_ip_address(request) == "172.16.0.9"

    assert extract_ip_address(make_request()) == UNKNOWN


def test_context_without_user_uses_system_identity():
    context = extract_audit_context(make_request(client=("127.0.0.1", 1)))

    assert context.user_id is None
    assert context.user_email == SYSTEM_USER_EMAIL
    assert context.user_name == SYSTEM_USER_NAME
    assert context.user_role == SYSTEM_USER_ROLE
    assert context.module == "cases"
    assert context.request_method == "POST"
    assert context.request_path == "/api/v1/cases"


def test_context_with_user_snapshots_actor():
    user = make_user("supervisor")
    request = make_request(
        path="/api/v1/todos/5",
        method="PATCH",
        headers={"User-Agent": "pytest", "X-Session-Id": "sess-1"},
        client=("127.0.0.1", 1),
    )

    context = extract_audit_context(request, user)

    assert context.user_id == user.id
    assert context.user_email == "jane@example.com"
    assert context.user_name == "Jane Doe"
    assert context.user_role == "supervisor"
    assert context.module == "todos"
    assert context.user_agent == "pytest"
    assert context.session_id == "sess-1"
    assert context.ip_address == "127.0.0.1"
