"""Audit context extraction: who made a request, from where, and in which module."""
import logging
from typing import Callable, Dict, List, Optional

from fastapi import Request
from sqlalchemy import select

from app.config import settings
from app.models.user import User
from app.schemas.audit import AuditContext
from app.utils.security import token_subject

logger = logging.getLogger(__name__)

SYSTEM_USER_EMAIL = "system@unknown.com"
SYSTEM_USER_NAME = "System"
SYSTEM_USER_ROLE = "system"
UNKNOWN = "unknown"

# Path prefix (relative to the API prefix) -> module name
MODULE_PREFIXES: Dict[str, str] = {
    "auth": "auth",
    "admin": "admin",
    "admin/case-statuses": "case_statuses",
    "admin/todo-priorities": "todo_priorities",
    "audit": "audit",
    "cases": "cases",
    "todos": "todos",
    "users": "users",
    "roles": "roles",
    "permissions": "permissions",
    "notes": "notes",
    "time-entries": "time_tracking",
    "manual-time-entries": "manual_time_entries",
    "dashboard": "dashboard",
    "archive": "archive",
    "files": "files",
    "reports": "reports",
    "metrics": "reports",
}


def path_segments(path: str) -> List[str]:
    """Split a request path into segments, dropping the configured API prefix."""
    segments = [segment for segment in path.split("/") if segment]
    prefix = [segment for segment in settings.API_V1_PREFIX.split("/") if segment]
    if prefix and segments[: len(prefix)] == prefix:
        return segments[len(prefix):]
    return segments


def match_prefix(path: str, table: Dict[str, str]) -> Optional[str]:
    """Return the value of the longest table prefix matching the path, segment-wise."""
    segments = path_segments(path)
    best: Optional[str] = None
    best_length = 0
    for prefix, value in table.items():
        prefix_segments = prefix.split("/")
        length = len(prefix_segments)
        if length > best_length and segments[:length] == prefix_segments:
            best, best_length = value, length
    return best


def extract_module(path: str) -> str:
    module = match_prefix(path, MODULE_PREFIXES)
    if module:
        return module

    segments = [segment for segment in path.split("/") if segment]
    relative = path_segments(path)
    if relative and len(relative) < len(segments):
        return relative[0]
    if len(segments) > 1:
        return segments[1]
    return UNKNOWN


def extract_ip_address(request: Request) -> str:
    if request.client and request.client.host:
        return request.client.host
    forwarded_for = request.headers.get("x-forwarded-for")
    if forwarded_for:
        first = forwarded_for.split(",")[0].strip()
        if first:
            return first
    real_ip = request.headers.get("x-real-ip")
    if real_ip:
        return real_ip
    return UNKNOWN


def extract_audit_context(request: Request, user: Optional[User] = None) -> AuditContext:
    """Build the audit context for a request. Pure: no I/O."""
    path = request.url.path
    if user is not None:
        actor = {
            "user_id": user.id,
            "user_email": user.email,
            "user_name": user.full_name,
            "user_role": user.role_name,
        }
    else:
        actor = {
            "user_id": None,
            "user_email": SYSTEM_USER_EMAIL,
            "user_name": SYSTEM_USER_NAME,
            "user_role": SYSTEM_USER_ROLE,
        }

    return AuditContext(
        **actor,
        module=extract_module(path),
        ip_address=extract_ip_address(request),
        user_agent=request.headers.get("user-agent"),
        session_id=request.headers.get("x-session-id"),
        request_path=path,
        request_method=request.method,
    )


async def resolve_request_user(request: Request, session_factory: Callable) -> Optional[User]:
    """Resolve the caller from the bearer token; None means the system identity."""
    auth_header = request.headers.get("authorization", "")
    if not auth_header.lower().startswith("bearer "):
        return None

    try:
        user_id = token_subject(auth_header.split(" ", 1)[1].strip())
    except ValueError:
        return None

    try:
        async with session_factory() as db:
            result = await db.execute(select(User).where(User.id == user_id))
            user = result.scalar_one_or_none()
            if user is not None:
                # Roles are selectin-loaded; touch them while the session is open
                _ = user.role_name
            return user
    except Exception:
        logger.exception("Could not resolve audit actor for %s", request.url.path)
        return None
