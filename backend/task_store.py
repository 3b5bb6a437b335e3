# task_store.py — Task lifecycle, visibility and access grants
# Every read goes through access_control.require_access (view), every change
# through require_access (edit) or require_creator (delete, grant, revoke).
# Dependency edges are delegated to dependency_graph.DependencyGraphManager.

import logging
from datetime import datetime, timezone
from typing import Optional, List

from sqlalchemy import select, delete, or_, case
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from access_control import find_grant, require_access, require_creator
from dependency_graph import DependencyGraphManager
from errors import NotFoundError, ValidationRejectedError
from identity_store import IdentityStore
from models import (
    AccessLevel, PRIORITY_RANK, Task, TaskAccess, TaskDependency, TaskPriority, TaskStatus,
)
from schemas import TaskCreate, TaskUpdate

logger = logging.getLogger("trackify.tasks")

OBSERVATION_SEPARATOR = "\n"


# ============================================================
# HELPERS
# ============================================================

def _hydration_options():
    """Creator summary, access grants and dependency edges in both directions"""
    return (
        selectinload(Task.creator),
        selectinload(Task.access_grants).selectinload(TaskAccess.user),
        selectinload(Task.dependencies).selectinload(TaskDependency.depends_on),
        selectinload(Task.depended_by).selectinload(TaskDependency.task),
    )


def parse_date(value: Optional[str], field_name: str) -> Optional[datetime]:
    """Parse an ISO-8601 date or datetime; None or "" means no date"""
    if value is None or (isinstance(value, str) and not value.strip()):
        return None
    if isinstance(value, datetime):
        parsed = value
    else:
        try:
            parsed = datetime.fromisoformat(value.strip().replace("Z", "+00:00"))
        except ValueError:
            raise ValidationRejectedError(f"{field_name} must be an ISO-8601 date", details={field_name: value})
    # Stored as UTC: some backends (SQLite) drop the offset on write
    if parsed.tzinfo is None:
        return parsed.replace(tzinfo=timezone.utc)
    return parsed.astimezone(timezone.utc)


def clean_title(title: Optional[str]) -> str:
    title = (title or "").strip()
    if not title:
        raise ValidationRejectedError("Title cannot be empty")
    return title


def append_observation(existing: Optional[str], entry: Optional[str]) -> Optional[str]:
    """Observations are a log: new entries are appended, never replace older ones"""
    entry = (entry or "").strip()
    if not entry:
        return existing
    return f"{existing}{OBSERVATION_SEPARATOR}{entry}" if existing else entry


async def _load(db: AsyncSession, task_id: str) -> Optional[Task]:
    stmt = (
        select(Task)
        .where(Task.id == task_id)
        .options(*_hydration_options())
        .execution_options(populate_existing=True)
    )
    result = await db.execute(stmt)
    return result.scalar_one_or_none()


async def _get_or_404(db: AsyncSession, task_id: str) -> Task:
    task = await _load(db, task_id)
    if not task:
        raise NotFoundError("Task not found")
    return task


# ============================================================
# TASK STORE
# ============================================================

class TaskStore:

    @staticmethod
    async def create(db: AsyncSession, creator_id: str, data: TaskCreate) -> Task:
        """Insert a task (and its initial dependencies) and return it hydrated, in one transaction"""
        task = Task(
            title=clean_title(data.title),
            description=data.description,
            observations=append_observation(None, data.observations),
            status=data.status or TaskStatus.TODO,
            priority=data.priority or TaskPriority.MEDIUM,
            start_date=parse_date(data.start_date, "start_date"),
            due_date=parse_date(data.due_date, "due_date"),
            creator_id=creator_id,
        )
        try:
            db.add(task)
            await db.flush()
            if data.depends_on_task_ids:
                # Nothing can point at a task that is not committed yet, so no cycle can pass through it
                await DependencyGraphManager.add_dependencies(
                    db, task.id, creator_id, data.depends_on_task_ids, commit=False,
                )
            hydrated = await _get_or_404(db, task.id)
            await db.commit()
        except Exception:
            await db.rollback()
            raise

        logger.info("Task created id=%s creator=%s", hydrated.id, creator_id)
        return hydrated

    @staticmethod
    async def find_all_visible_to(db: AsyncSession, user_id: str) -> List[Task]:
        """Tasks the user created or holds a grant on.

        Ordered by start date, priority (most urgent first), due date and most
        recently updated.
        """
        granted = select(TaskAccess.task_id).where(TaskAccess.user_id == user_id)
        priority_rank = case(
            {p.value: rank for p, rank in PRIORITY_RANK.items()},
            value=Task.priority,
            else_=-1,
        )
        stmt = (
            select(Task)
            .where(or_(Task.creator_id == user_id, Task.id.in_(granted)))
            .options(*_hydration_options())
            .order_by(
                Task.start_date.asc().nulls_last(),
                priority_rank.desc(),
                Task.due_date.asc().nulls_last(),
                Task.updated_at.desc(),
                Task.id,
            )
            .execution_options(populate_existing=True)
        )
        result = await db.execute(stmt)
        return list(result.scalars().unique().all())

    @staticmethod
    async def find_one(db: AsyncSession, task_id: str, user_id: str) -> Task:
        task = await _get_or_404(db, task_id)
        require_access(task, user_id, AccessLevel.VIEW)
        return task

    @staticmethod
    async def update(db: AsyncSession, task_id: str, user_id: str, patch: TaskUpdate) -> Task:
        """Apply only the fields present in ``patch``"""
        task = await _get_or_404(db, task_id)
        require_access(task, user_id, AccessLevel.EDIT)

        changes = patch.model_dump(exclude_unset=True)

        # Validate everything before touching the task so a rejection leaves it unchanged
        values = {}
        if "title" in changes:
            values["title"] = clean_title(changes["title"])
        if "description" in changes:
            values["description"] = changes["description"]
        if "observations" in changes:
            appended = append_observation(task.observations, changes["observations"])
            if appended != task.observations:
                values["observations"] = appended
        for field in ("status", "priority"):
            if field in changes:
                if changes[field] is None:
                    raise ValidationRejectedError(f"{field} cannot be null")
                values[field] = changes[field]
        for field in ("start_date", "due_date"):
            if field in changes:
                values[field] = parse_date(changes[field], field)

        for field, value in values.items():
            setattr(task, field, value)

        if values:
            try:
                await db.commit()
            except Exception:
                await db.rollback()
                raise
            logger.info("Task updated id=%s user=%s fields=%s", task_id, user_id, sorted(values))

        return await _get_or_404(db, task_id)

    @staticmethod
    async def add_observation(db: AsyncSession, task_id: str, user_id: str, content: str) -> Task:
        return await TaskStore.update(db, task_id, user_id, TaskUpdate(observations=content))

    @staticmethod
    async def remove(db: AsyncSession, task_id: str, user_id: str) -> Task:
        """Delete a task with its grants and edges (both directions). Creator only."""
        task = await _get_or_404(db, task_id)
        require_creator(task, user_id, "delete")

        try:
            await db.execute(delete(TaskAccess).where(TaskAccess.task_id == task_id))
            await db.execute(
                delete(TaskDependency).where(
                    or_(TaskDependency.task_id == task_id, TaskDependency.depends_on_id == task_id)
                )
            )
            await db.execute(delete(Task).where(Task.id == task_id))
            await db.commit()
        except Exception:
            await db.rollback()
            raise

        logger.info("Task deleted id=%s user=%s", task_id, user_id)
        return task

    # ---- access grants ----

    @staticmethod
    async def grant_access(
        db: AsyncSession, task_id: str, user_id: str, target_user_id: str, access_level: AccessLevel,
    ) -> TaskAccess:
        """Create or overwrite the grant for (task, target user). Creator only."""
        task = await _get_or_404(db, task_id)
        require_creator(task, user_id, "grant access to")

        if not await IdentityStore.find_by_id(target_user_id, db):
            raise NotFoundError("Target user not found")
        if target_user_id == task.creator_id:
            raise ValidationRejectedError("The creator already has full access to this task")

        access_level = AccessLevel(access_level)
        grant = find_grant(task.access_grants, target_user_id)
        if grant is not None:
            grant.access_level = access_level
        else:
            db.add(TaskAccess(task_id=task_id, user_id=target_user_id, access_level=access_level))

        try:
            await db.commit()
        except IntegrityError:
            # A concurrent grant for the same pair landed first: overwrite it
            await db.rollback()
            existing = await TaskStore._get_grant(db, task_id, target_user_id)
            existing.access_level = access_level
            await db.commit()

        logger.info(
            "Access granted task=%s user=%s level=%s by=%s",
            task_id, target_user_id, access_level.value, user_id,
        )
        return await TaskStore._get_grant(db, task_id, target_user_id)

    @staticmethod
    async def revoke_access(db: AsyncSession, task_id: str, user_id: str, target_user_id: str) -> bool:
        """Delete the grant for (task, target user) if any. Creator only."""
        task = await _get_or_404(db, task_id)
        require_creator(task, user_id, "revoke access to")

        result = await db.execute(
            delete(TaskAccess).where(TaskAccess.task_id == task_id, TaskAccess.user_id == target_user_id)
        )
        await db.commit()

        revoked = (result.rowcount or 0) > 0
        if revoked:
            logger.info("Access revoked task=%s user=%s by=%s", task_id, target_user_id, user_id)
        return revoked

    @staticmethod
    async def _get_grant(db: AsyncSession, task_id: str, target_user_id: str) -> TaskAccess:
        stmt = (
            select(TaskAccess)
            .where(TaskAccess.task_id == task_id, TaskAccess.user_id == target_user_id)
            .options(selectinload(TaskAccess.user))
            .execution_options(populate_existing=True)
        )
        return (await db.execute(stmt)).scalar_one()
