"""Rendering of audit log exports to JSON, CSV and Excel."""
from __future__ import annotations

import asyncio
import csv
import json
from dataclasses import dataclass
from datetime import datetime, timezone
from io import BytesIO, StringIO
from typing import Any, Dict, List, Optional, Sequence

from openpyxl import Workbook
from openpyxl.styles import Alignment, Font, PatternFill
from openpyxl.utils import get_column_letter

from app.models.audit import AuditEntityChange, AuditLog
from app.schemas.audit import AuditLogResponse, ExportFormat
from app.utils.sensitivity import mask_value

DATE_FORMAT = "%Y-%m-%d %H:%M:%S"

LOG_HEADERS = [
    "Date",
    "User",
    "Email",
    "Action",
    "Entity type",
    "Entity name",
    "Module",
    "IP address",
    "Description",
]

CHANGE_HEADERS = [
    "Log ID",
    "Date",
    "Entity",
    "Field",
    "Change type",
    "Old value",
    "New value",
    "Sensitive",
]

MEDIA_TYPES = {
    "json": "application/json",
    "csv": "text/csv",
    "xlsx": "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet",
}


@dataclass
class ExportedFile:
    """Rendered export payload."""

    content: bytes
    media_type: str
    filename: str


def _change_values(change: AuditEntityChange, reveal_sensitive: bool):
    sensitive = change.is_sensitive and not reveal_sensitive
    return mask_value(change.old_value, sensitive), mask_value(change.new_value, sensitive)


def _format_date(value: Optional[datetime]) -> str:
    return value.strftime(DATE_FORMAT) if value else ""


def _log_row(log: AuditLog) -> List[Any]:
    return [
        _format_date(log.created_at),
        log.user_name or "",
        log.user_email,
        log.action.value if hasattr(log.action, "value") else str(log.action),
        log.entity_type,
        log.entity_display_name,
        log.module,
        log.ip_address or "",
        log.full_description,
    ]


def _change_summary(log: AuditLog, reveal_sensitive: bool) -> str:
    parts = []
    for change in log.changes:
        old_value, new_value = _change_values(change, reveal_sensitive)
        parts.append(f"{change.field_display_name}: {old_value or ''} -> {new_value or ''}")
    return "; ".join(parts)


def render_json(
    logs: Sequence[AuditLog],
    *,
    filters: Dict[str, Any],
    include_changes: bool,
    reveal_sensitive: bool,
) -> bytes:
    data = []
    for log in logs:
        record = AuditLogResponse.model_validate(log).model_dump(mode="json")
        if not include_changes:
            record.pop("changes", None)
        elif reveal_sensitive:
            raw = {str(change.id): change for change in log.changes}
            for change_record in record.get("changes") or []:
                source = raw.get(change_record["id"])
                if source is not None:
                    change_record["old_value"] = source.old_value
                    change_record["new_value"] = source.new_value
        data.append(record)

    payload = {
        "metadata": {
            "export_date": datetime.now(timezone.utc).isoformat(),
            "total_records": len(data),
            "filters": filters,
        },
        "data": data,
    }
    return json.dumps(payload, ensure_ascii=False, indent=2).encode("utf-8")


def render_csv(logs: Sequence[AuditLog], *, include_changes: bool, reveal_sensitive: bool) -> bytes:
    buffer = StringIO()
    writer = csv.writer(buffer)
    headers = LOG_HEADERS + (["Changes"] if include_changes else [])
    writer.writerow(headers)
    for log in logs:
        row = _log_row(log)
        if include_changes:
            row.append(_change_summary(log, reveal_sensitive))
        writer.writerow(row)
    # BOM so spreadsheet tools detect UTF-8
    return ("\ufeff" + buffer.getvalue()).encode("utf-8")


def _style_header(ws, headers: List[str]) -> None:
    header_fill = PatternFill(start_color="173F5F", end_color="173F5F", fill_type="solid")
    header_font = Font(color="FFFFFF", bold=True)
    header_alignment = Alignment(horizontal="center", vertical="center", wrap_text=True)

    ws.append(headers)
    for col_idx, _ in enumerate(headers, start=1):
        cell = ws.cell(row=1, column=col_idx)
        cell.fill = header_fill
        cell.font = header_font
        cell.alignment = header_alignment
        ws.column_dimensions[get_column_letter(col_idx)].width = 20
    ws.freeze_panes = "A2"


def _build_workbook(
    logs: Sequence[AuditLog],
    *,
    include_changes: bool,
    reveal_sensitive: bool,
) -> BytesIO:
    wb = Workbook()
    ws = wb.active
    ws.title = "Audit logs"
    _style_header(ws, LOG_HEADERS)
    for log in logs:
        ws.append(_log_row(log))

    if include_changes:
        changes_ws = wb.create_sheet("Changes")
        _style_header(changes_ws, CHANGE_HEADERS)
        for log in logs:
            for change in log.changes:
                old_value, new_value = _change_values(change, reveal_sensitive)
                changes_ws.append(
                    [
                        str(log.id),
                        _format_date(log.created_at),
                        log.entity_display_name,
                        change.field_display_name,
                        change.change_description,
                        old_value,
                        new_value,
                        "yes" if change.is_sensitive else "no",
                    ]
                )

    buffer = BytesIO()
    wb.save(buffer)
    buffer.seek(0)
    return buffer


async def render_export(
    logs: Sequence[AuditLog],
    *,
    export_format: ExportFormat,
    filters: Dict[str, Any],
    include_changes: bool = False,
    reveal_sensitive: bool = False,
) -> ExportedFile:
    """Render logs in the requested format."""
    stamp = datetime.now(timezone.utc).strftime("%Y%m%d-%H%M%S")
    filename = f"audit-logs-{stamp}.{export_format}"

    if export_format == "json":
        content = render_json(
            logs, filters=filters, include_changes=include_changes, reveal_sensitive=reveal_sensitive
        )
    elif export_format == "csv":
        content = render_csv(logs, include_changes=include_changes, reveal_sensitive=reveal_sensitive)
    else:
        workbook_io = await asyncio.to_thread(
            _build_workbook,
            logs,
            include_changes=include_changes,
            reveal_sensitive=reveal_sensitive,
        )
        content = workbook_io.getvalue()

    return ExportedFile(content=content, media_type=MEDIA_TYPES[export_format], filename=filename)
