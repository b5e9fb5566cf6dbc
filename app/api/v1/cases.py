"""Cases API endpoints."""
from typing import List, Optional
from uuid import UUID

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.exceptions import ConflictError, NotFoundError
from app.core.security import Permission
from app.crud.case import case as case_crud
from app.crud.case import todo as todo_crud
from app.database import get_db
from app.dependencies import get_locale, require_permission
from app.middleware.audit import AuditedAPIRoute
from app.models.user import User
from app.schemas.case import CaseCreate, CaseResponse, CaseUpdate
from app.schemas.todo import TodoResponse

router = APIRouter(route_class=AuditedAPIRoute)


@router.get("", response_model=List[CaseResponse])
async def list_cases(
    skip: int = 0,
    limit: int = 100,
    status_filter: Optional[str] = Query(None, alias="status"),
    assigned_user_id: Optional[UUID] = None,
    q: Optional[str] = None,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(require_permission(Permission.CASE_VIEW)),
):
    """List cases."""
    return await case_crud.search(
        db,
        status=status_filter,
        assigned_user_id=assigned_user_id,
        query=q,
        skip=skip,
        limit=limit,
    )


@router.post("", response_model=CaseResponse, status_code=status.HTTP_201_CREATED)
async def create_case(
    case_data: CaseCreate,
    db: AsyncSession = Depends(get_db),
    locale: str = Depends(get_locale),
    current_user: User = Depends(require_permission(Permission.CASE_CREATE)),
):
    """Create a case."""
    if await case_crud.get_by_number(db, case_number=case_data.case_number):
        raise ConflictError(locale=locale, key="errors.case_exists")
    return await case_crud.create(db, obj_in=case_data)


@router.get("/{case_id}", response_model=CaseResponse)
async def get_case(
    case_id: UUID,
    db: AsyncSession = Depends(get_db),
    locale: str = Depends(get_locale),
    current_user: User = Depends(require_permission(Permission.CASE_VIEW)),
):
    """Get a case by ID."""
    case_obj = await case_crud.get(db, case_id)
    if not case_obj:
        raise NotFoundError(locale=locale, key="errors.case_not_found")
    return case_obj


@router.get(
    "/{case_id}/summary",
    openapi_extra={"x-audit": {"action": "report", "value_param": "report_type"}},
)
async def get_case_summary(
    case_id: UUID,
    report_type: str = "summary",
    db: AsyncSession = Depends(get_db),
    locale: str = Depends(get_locale),
    current_user: User = Depends(require_permission(Permission.CASE_VIEW)),
):
    """Case summary with its TODO counts; access is recorded in the audit trail."""
    case_obj = await case_crud.get(db, case_id)
    if not case_obj:
        raise NotFoundError(locale=locale, key="errors.case_not_found")
    todos = await todo_crud.for_case(db, case_id=case_id)
    completed = sum(1 for item in todos if item.is_completed)
    return {
        "data": {
            "id": str(case_obj.id),
            "case_number": case_obj.case_number,
            "title": case_obj.title,
            "status": case_obj.status,
            "report_type": report_type,
            "todos_total": len(todos),
            "todos_completed": completed,
        }
    }


@router.get("/{case_id}/todos", response_model=List[TodoResponse])
async def list_case_todos(
    case_id: UUID,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(require_permission(Permission.TODO_VIEW)),
):
    """List the TODOs attached to a case."""
    return await todo_crud.for_case(db, case_id=case_id)


@router.put("/{case_id}", response_model=CaseResponse)
async def update_case(
    case_id: UUID,
    case_data: CaseUpdate,
    db: AsyncSession = Depends(get_db),
    locale: str = Depends(get_locale),
    current_user: User = Depends(require_permission(Permission.CASE_UPDATE)),
):
    """Update a case."""
    case_obj = await case_crud.get(db, case_id)
    if not case_obj:
        raise NotFoundError(locale=locale, key="errors.case_not_found")
    return await case_crud.update(db, db_obj=case_obj, obj_in=case_data)


@router.delete("/{case_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_case(
    case_id: UUID,
    db: AsyncSession = Depends(get_db),
    locale: str = Depends(get_locale),
    current_user: User = Depends(require_permission(Permission.CASE_DELETE)),
):
    """Delete a case and its TODOs."""
    if not await case_crud.remove(db, id=case_id):
        raise NotFoundError(locale=locale, key="errors.case_not_found")
