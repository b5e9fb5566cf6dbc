"""Audit interceptor: turns successful mutating route calls into audit trail entries.

``AuditedAPIRoute`` wraps each route handler. Before the handler runs it snapshots
the request context and, for updates and deletes, the entity's prior state; after a
2xx response it diffs and hands the entry to ``AuditWriter`` as a background task,
so persistence happens after the response has been sent.
"""
import json
import logging
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional

from fastapi import Request, Response
from fastapi.routing import APIRoute
from starlette.background import BackgroundTask, BackgroundTasks

from app.config import settings
from app.core.exceptions import AuditWriteError
from app.crud.audit import audit as audit_store
from app.database import AsyncSessionLocal
from app.middleware.audit_context import (
    UNKNOWN,
    extract_audit_context,
    match_prefix,
    path_segments,
    resolve_request_user,
)
from app.middleware.metrics import audit_writes_total
from app.models.audit import AuditAction
from app.schemas.audit import AuditContext
from app.services.entity_lookup import entity_lookups
from app.utils.diff import (
    FieldChange,
    JsonRecord,
    changes_for_create,
    changes_for_delete,
    changes_for_update,
    infer_field_type,
)
from app.utils.sensitivity import is_sensitive_field, mask_record

logger = logging.getLogger(__name__)

# Route prefix (relative to the API prefix) -> logical entity type
ROUTE_ENTITY_MAPPING: Dict[str, str] = {
    "cases": "cases",
    "todos": "todos",
    "users": "users",
    "roles": "roles",
    "permissions": "permissions",
    "notes": "notes",
    "time-entries": "time_entries",
    "manual-time-entries": "manual_time_entries",
    "admin/case-statuses": "case_status_control",
    "admin/todo-priorities": "todo_priorities",
    "archive/cases": "archived_cases",
    "archive/todos": "archived_todos",
    "files": "file_operations",
    "reports": "report_access",
    "metrics": "report_access",
}

# Modules whose routes are never audited
EXCLUDED_MODULES = {"auth", "audit"}

METHOD_ACTIONS = {
    "POST": "create",
    "PUT": "update",
    "PATCH": "update",
    "DELETE": "delete",
}

ENTITY_NAME_KEYS = (
    "title",
    "name",
    "full_name",
    "fullName",
    "email",
    "description",
    "case_number",
    "caseNumber",
)


def is_excluded_path(path: str) -> bool:
    segments = path_segments(path)
    return bool(segments) and segments[0] in EXCLUDED_MODULES


def get_entity_type_from_path(path: str) -> str:
    entity_type = match_prefix(path, ROUTE_ENTITY_MAPPING)
    if entity_type:
        return entity_type
    segments = path_segments(path)
    return segments[0] if segments else UNKNOWN


def extract_entity_name(entity: Optional[Dict[str, Any]]) -> str:
    """First present human-readable field of an entity, else ``ID: <id>``."""
    if not isinstance(entity, dict):
        return UNKNOWN
    for key in ENTITY_NAME_KEYS:
        value = entity.get(key)
        if value:
            return str(value)
    return f"ID: {entity.get('id')}"


def unwrap_payload(body: Any) -> Optional[JsonRecord]:
    """Responses may wrap the entity in ``{"data": {...}}``."""
    if not isinstance(body, dict):
        return None
    data = body.get("data")
    if isinstance(data, dict):
        return data
    return body


def is_success(status_code: int) -> bool:
    return 200 <= status_code < 300


@dataclass
class AuditEntry:
    """One audit log plus its changes, ready to be persisted."""

    action: AuditAction
    context: AuditContext
    entity_type: str
    entity_id: str
    entity_name: Optional[str] = None
    changes: List[FieldChange] = field(default_factory=list)
    operation_context: Optional[Dict[str, Any]] = None

    def log_data(self) -> Dict[str, Any]:
        return {
            **self.context.dict(),
            "action": self.action,
            "entity_type": self.entity_type,
            "entity_id": self.entity_id,
            "entity_name": self.entity_name,
            "operation_context": self.operation_context,
        }


def _operation_context(payload: Optional[JsonRecord], status_code: int, **extra) -> Dict[str, Any]:
    return {
        "request_body": mask_record(payload) if payload else None,
        "response_status": status_code,
        **extra,
    }


def audit_create(
    context: AuditContext,
    *,
    entity_type: str,
    payload: Optional[JsonRecord],
    response_body: Any,
    status_code: int,
) -> Optional[AuditEntry]:
    if not is_success(status_code):
        return None
    created = unwrap_payload(response_body) or {}
    entity_id = created.get("id")
    return AuditEntry(
        action=AuditAction.CREATE,
        context=context,
        entity_type=entity_type,
        entity_id=str(entity_id) if entity_id is not None else UNKNOWN,
        entity_name=extract_entity_name(created or payload),
        changes=changes_for_create(payload),
        operation_context=_operation_context(payload, status_code),
    )


def audit_update(
    context: AuditContext,
    *,
    entity_type: str,
    entity_id: Optional[str],
    prior_state: Optional[JsonRecord],
    payload: Optional[JsonRecord],
    response_body: Any,
    status_code: int,
) -> Optional[AuditEntry]:
    """Diff the payload against the prior state; an empty diff writes nothing."""
    if not is_success(status_code):
        return None
    changes = changes_for_update(prior_state or {}, payload)
    if not changes:
        return None
    updated = unwrap_payload(response_body)
    return AuditEntry(
        action=AuditAction.UPDATE,
        context=context,
        entity_type=entity_type,
        entity_id=entity_id or UNKNOWN,
        entity_name=extract_entity_name(updated or prior_state or payload),
        changes=changes,
        operation_context=_operation_context(
            payload, status_code, prior_state_available=prior_state is not None
        ),
    )


def audit_delete(
    context: AuditContext,
    *,
    entity_type: str,
    entity_id: Optional[str],
    prior_state: Optional[JsonRecord],
    payload: Optional[JsonRecord],
    status_code: int,
) -> Optional[AuditEntry]:
    """Keyed on the prior identity; without prior state the payload is recorded as added."""
    if not is_success(status_code):
        return None
    if prior_state is not None:
        prior_id = prior_state.get("id")
        return AuditEntry(
            action=AuditAction.DELETE,
            context=context,
            entity_type=entity_type,
            entity_id=str(prior_id) if prior_id is not None else (entity_id or UNKNOWN),
            entity_name=extract_entity_name(prior_state),
            changes=changes_for_delete(prior_state),
            operation_context=_operation_context(payload, status_code, prior_state_available=True),
        )
    return AuditEntry(
        action=AuditAction.DELETE,
        context=context,
        entity_type=entity_type,
        entity_id=entity_id or UNKNOWN,
        entity_name=extract_entity_name(payload) if payload else None,
        changes=changes_for_create(payload),
        operation_context=_operation_context(payload, status_code, prior_state_available=False),
    )


def _single_field_entry(
    action: AuditAction,
    context: AuditContext,
    *,
    entity_type: str,
    entity_id: Optional[str],
    field_name: str,
    value: Any,
    status_code: int,
) -> Optional[AuditEntry]:
    if not is_success(status_code):
        return None
    return AuditEntry(
        action=action,
        context=context,
        entity_type=entity_type,
        entity_id=entity_id or UNKNOWN,
        entity_name=str(value) if value is not None else None,
        changes=[
            FieldChange(
                field=field_name,
                old_value=None,
                new_value=value,
                type=infer_field_type(value),
                is_sensitive=is_sensitive_field(field_name),
            )
        ]
        if value is not None
        else [],
        operation_context={"response_status": status_code},
    )


def audit_download(context: AuditContext, *, entity_type: str, entity_id: Optional[str], file_name: Any, status_code: int):
    return _single_field_entry(
        AuditAction.DOWNLOAD,
        context,
        entity_type=entity_type,
        entity_id=entity_id,
        field_name="fileName",
        value=file_name,
        status_code=status_code,
    )


def audit_view(context: AuditContext, *, entity_type: str, entity_id: Optional[str], file_name: Any, status_code: int):
    return _single_field_entry(
        AuditAction.VIEW,
        context,
        entity_type=entity_type,
        entity_id=entity_id,
        field_name="fileName",
        value=file_name,
        status_code=status_code,
    )


def audit_report_access(context: AuditContext, *, entity_type: str, entity_id: Optional[str], report_type: Any, status_code: int):
    return _single_field_entry(
        AuditAction.READ,
        context,
        entity_type=entity_type,
        entity_id=entity_id,
        field_name="reportType",
        value=report_type,
        status_code=status_code,
    )


class AuditWriter:
    """Persists audit entries; failures are logged and counted, never raised."""

    def __init__(self, session_factory: Callable = AsyncSessionLocal):
        self.session_factory = session_factory

    async def write(self, entry: AuditEntry) -> None:
        action = entry.action.value
        try:
            async with self.session_factory() as db:
                audit_log = await audit_store.append(
                    db, log_data=entry.log_data(), changes=entry.changes
                )
        except AuditWriteError:
            audit_writes_total.labels(action, "partial").inc()
            return
        except Exception:
            audit_writes_total.labels(action, "failure").inc()
            logger.exception(
                "Audit write failed for %s %s/%s", action, entry.entity_type, entry.entity_id
            )
            return

        audit_writes_total.labels(action, "success").inc()
        logger.info(
            "Audit %s %s/%s by %s (%d changes)",
            action,
            entry.entity_type,
            entry.entity_id,
            entry.context.user_email,
            len(entry.changes),
        )

    def dispatch(self, response: Response, entry: Optional[AuditEntry]) -> None:
        """Attach the write to the response so it runs after the body is sent."""
        if entry is None:
            return
        task = BackgroundTask(self.write, entry)
        if response.background is None:
            response.background = task
        else:
            response.background = BackgroundTasks(tasks=[response.background, task])


audit_writer = AuditWriter()


@dataclass(frozen=True)
class AuditRouteConfig:
    """Per-route audit settings, from ``openapi_extra["x-audit"]`` or the HTTP method."""

    action: Optional[str]
    entity_type: Optional[str] = None
    value_param: Optional[str] = None

    @classmethod
    def for_route(cls, route: APIRoute) -> "AuditRouteConfig":
        extra = (route.openapi_extra or {}).get("x-audit")
        if extra is False:
            return cls(action=None)
        extra = extra or {}
        action = extra.get("action")
        if action is None:
            for method in ("POST", "PUT", "PATCH", "DELETE"):
                if method in (route.methods or ()):
                    action = METHOD_ACTIONS[method]
                    break
        return cls(
            action=action,
            entity_type=extra.get("entity_type"),
            value_param=extra.get("value_param"),
        )


def path_entity_id(request: Request) -> Optional[str]:
    """The last ``id``/``*_id`` path parameter of the matched route."""
    entity_id = None
    for name, value in request.path_params.items():
        if name == "id" or name.endswith("_id"):
            entity_id = str(value)
    return entity_id


async def read_json_payload(request: Request) -> Optional[JsonRecord]:
    body = await request.body()
    if not body:
        return None
    try:
        payload = json.loads(body)
    except ValueError:
        return None
    return payload if isinstance(payload, dict) else None


def read_response_body(response: Response) -> Any:
    body = getattr(response, "body", None)
    if not body:
        return None
    try:
        return json.loads(body)
    except ValueError:
        return None


class AuditedAPIRoute(APIRoute):
    """Route that records an audit entry for every successful mutating call."""

    def get_route_handler(self) -> Callable:
        original_route_handler = super().get_route_handler()
        config = AuditRouteConfig.for_route(self)
        if config.action is None:
            return original_route_handler

        async def audited_route_handler(request: Request) -> Response:
            path = request.url.path
            if not settings.AUDIT_ENABLED or is_excluded_path(path):
                return await original_route_handler(request)

            user = await resolve_request_user(request, audit_writer.session_factory)
            context = extract_audit_context(request, user)
            entity_type = config.entity_type or get_entity_type_from_path(path)
            entity_id = path_entity_id(request)
            payload = await read_json_payload(request)

            prior_state = None
            if config.action in ("update", "delete"):
                prior_state = await entity_lookups.fetch_prior_state(entity_type, entity_id)

            response: Response = await original_route_handler(request)

            try:
                entry = self._plan(
                    config, context, request, response, entity_type, entity_id, payload, prior_state
                )
                if entry is None:
                    logger.debug("No audit entry for %s %s", request.method, path)
                audit_writer.dispatch(response, entry)
            except Exception:
                logger.exception("Audit planning failed for %s %s", request.method, path)
            return response

        return audited_route_handler

    @staticmethod
    def _plan(config, context, request, response, entity_type, entity_id, payload, prior_state):
        status_code = response.status_code
        if config.action == "create":
            return audit_create(
                context,
                entity_type=entity_type,
                payload=payload,
                response_body=read_response_body(response),
                status_code=status_code,
            )
        if config.action == "update":
            return audit_update(
                context,
                entity_type=entity_type,
                entity_id=entity_id,
                prior_state=prior_state,
                payload=payload,
                response_body=read_response_body(response),
                status_code=status_code,
            )
        if config.action == "delete":
            return audit_delete(
                context,
                entity_type=entity_type,
                entity_id=entity_id,
                prior_state=prior_state,
                payload=payload,
                status_code=status_code,
            )

        value = None
        if config.value_param:
            value = request.path_params.get(config.value_param) or request.query_params.get(
                config.value_param
            )
            if value is None:
                # Handler defaults only show up in the response
                value = (unwrap_payload(read_response_body(response)) or {}).get(config.value_param)
        value = value if value is not None else entity_id
        if config.action == "download":
            return audit_download(
                context, entity_type=entity_type, entity_id=entity_id, file_name=value, status_code=status_code
            )
        if config.action == "view":
            return audit_view(
                context, entity_type=entity_type, entity_id=entity_id, file_name=value, status_code=status_code
            )
        if config.action == "report":
            return audit_report_access(
                context, entity_type=entity_type, entity_id=entity_id, report_type=value, status_code=status_code
            )
        logger.warning("Unknown audit action %r on %s", config.action, request.url.path)
        return None
