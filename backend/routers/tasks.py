# routers/tasks.py — Task CRUD, sharing and dependency endpoints
from datetime import datetime
from typing import Optional, List

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from auth import get_current_user, CurrentUser
from database import get_db_session
from dependency_graph import DependencyGraphManager
from task_store import TaskStore
from models import Task, TaskAccess
from schemas import (
    TaskCreate, TaskUpdate, TaskOut, TaskAccessGrant, TaskAccessOut, DependencyAdd,
    DependencyOut, DependedByOut, ObservationCreate, TaskSummary, UserSummary,
)

router = APIRouter(prefix="/api/tasks", tags=["Tasks"])


# ============================================================
# HELPERS
# ============================================================

def _ts(dt) -> Optional[str]:
    if dt is None:
        return None
    return dt.isoformat() if isinstance(dt, datetime) else str(dt)


def _enum(v) -> str:
    return v.value if hasattr(v, "value") else str(v)


def _summary(t: Task) -> TaskSummary:
    return TaskSummary(id=t.id, title=t.title, status=_enum(t.status))


def _access_to_out(a: TaskAccess) -> TaskAccessOut:
    return TaskAccessOut(
        id=a.id,
        task_id=a.task_id,
        user_id=a.user_id,
        access_level=_enum(a.access_level),
        user=UserSummary(id=a.user.id, username=a.user.username),
    )


def _task_to_out(t: Task) -> TaskOut:
    return TaskOut(
        id=t.id,
        title=t.title,
        description=t.description,
        observations=t.observations,
        status=_enum(t.status),
        priority=_enum(t.priority),
        start_date=_ts(t.start_date),
        due_date=_ts(t.due_date),
        creator_id=t.creator_id,
        creator=UserSummary(id=t.creator.id, username=t.creator.username),
        task_access=[_access_to_out(a) for a in t.access_grants],
        dependencies=[DependencyOut(depends_on=_summary(d.depends_on)) for d in t.dependencies],
        depended_by=[DependedByOut(task=_summary(d.task)) for d in t.depended_by],
        created_at=_ts(t.created_at),
        updated_at=_ts(t.updated_at),
    )


# ============================================================
# TASK ENDPOINTS
# ============================================================

@router.post("", response_model=TaskOut, status_code=201)
async def create_task(
    data: TaskCreate,
    user: CurrentUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_db_session),
):
    """Create a task owned by the current user"""
    task = await TaskStore.create(db, user.id, data)
    return _task_to_out(task)


@router.get("", response_model=List[TaskOut])
async def list_tasks(
    user: CurrentUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_db_session),
):
    """List tasks created by or shared with the current user"""
    tasks = await TaskStore.find_all_visible_to(db, user.id)
    return [_task_to_out(t) for t in tasks]


@router.get("/{task_id}", response_model=TaskOut)
async def get_task(
    task_id: str,
    user: CurrentUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_db_session),
):
    task = await TaskStore.find_one(db, task_id, user.id)
    return _task_to_out(task)


@router.api_route("/{task_id}", methods=["PUT", "PATCH"], response_model=TaskOut)
async def update_task(
    task_id: str,
    data: TaskUpdate,
    user: CurrentUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_db_session),
):
    """Partially update a task (edit access required)"""
    task = await TaskStore.update(db, task_id, user.id, data)
    return _task_to_out(task)


@router.delete("/{task_id}", response_model=TaskOut)
async def delete_task(
    task_id: str,
    user: CurrentUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_db_session),
):
    """Delete a task (creator only)"""
    task = await TaskStore.remove(db, task_id, user.id)
    return _task_to_out(task)


@router.post("/{task_id}/observations", response_model=TaskOut)
async def add_observation(
    task_id: str,
    data: ObservationCreate,
    user: CurrentUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_db_session),
):
    """Append an entry to the task's observations"""
    task = await TaskStore.add_observation(db, task_id, user.id, data.content)
    return _task_to_out(task)


# ============================================================
# ACCESS ENDPOINTS
# ============================================================

@router.post("/{task_id}/access", response_model=TaskAccessOut)
async def grant_access(
    task_id: str,
    data: TaskAccessGrant,
    user: CurrentUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_db_session),
):
    """Grant or change a user's access level (creator only)"""
    grant = await TaskStore.grant_access(db, task_id, user.id, data.user_id, data.access_level)
    return _access_to_out(grant)


@router.delete("/{task_id}/access/{target_user_id}")
async def revoke_access(
    task_id: str,
    target_user_id: str,
    user: CurrentUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_db_session),
):
    """Revoke a user's access (creator only)"""
    revoked = await TaskStore.revoke_access(db, task_id, user.id, target_user_id)
    return {"status": "revoked" if revoked else "not_found", "task_id": task_id, "user_id": target_user_id}


# ============================================================
# DEPENDENCY ENDPOINTS
# ============================================================

@router.post("/{task_id}/dependencies", response_model=TaskOut)
async def add_dependencies(
    task_id: str,
    data: DependencyAdd,
    user: CurrentUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_db_session),
):
    """Declare that the task depends on each of the given tasks (all or nothing)"""
    await DependencyGraphManager.add_dependencies(db, task_id, user.id, data.depends_on_task_ids)
    task = await TaskStore.find_one(db, task_id, user.id)
    return _task_to_out(task)


@router.delete("/{task_id}/dependencies/{depends_on_id}", response_model=TaskOut)
async def remove_dependency(
    task_id: str,
    depends_on_id: str,
    user: CurrentUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_db_session),
):
    await DependencyGraphManager.remove_dependency(db, task_id, user.id, depends_on_id)
    task = await TaskStore.find_one(db, task_id, user.id)
    return _task_to_out(task)
