# dependency_graph.py — Dependency edges between tasks
# An edge (task_id -> depends_on_id) means depends_on must precede task.
# The edge set must stay acyclic: every batch of new edges is checked against
# the graph as stored, and the batch is written only if every edge passes.
#
# Concurrency: two writers that both check against a stale snapshot could close
# a cycle together. Writers are therefore serialised (a lock per event loop, plus a
# transaction-scoped advisory lock on PostgreSQL) and the edge table is re-read
# inside the transaction that writes the new edges.

import asyncio
import logging
import weakref
from collections import defaultdict
from typing import Dict, Iterable, List, Mapping, Set

from sqlalchemy import select, delete, text
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from access_control import require_access
from errors import NotFoundError, ValidationRejectedError
from models import AccessLevel, Task, TaskDependency

logger = logging.getLogger("trackify.dependencies")

# Arbitrary application-wide key for pg_advisory_xact_lock
GRAPH_ADVISORY_LOCK_KEY = 734_201_118

# asyncio.Lock binds to the loop that first waits on it, so keep one per running loop
_graph_write_locks = weakref.WeakKeyDictionary()


def graph_write_lock() -> asyncio.Lock:
    """In-process lock serialising dependency writers on the running event loop"""
    loop = asyncio.get_running_loop()
    lock = _graph_write_locks.get(loop)
    if lock is None:
        lock = _graph_write_locks[loop] = asyncio.Lock()
    return lock


def would_create_cycle(graph: Mapping[str, Iterable[str]], task_id: str, depends_on_id: str) -> bool:
    """Return True if adding task_id -> depends_on_id closes a loop.

    Iterative depth-first search from ``depends_on_id`` along existing
    "depends on" edges; the edge closes a cycle iff ``task_id`` is reachable.
    """
    if task_id == depends_on_id:
        return True

    visited: Set[str] = set()
    stack = [depends_on_id]
    while stack:
        node = stack.pop()
        if node == task_id:
            return True
        if node in visited:
            continue
        visited.add(node)
        stack.extend(n for n in graph.get(node, ()) if n not in visited)
    return False


async def load_adjacency(db: AsyncSession) -> Dict[str, Set[str]]:
    """Materialise the stored edge set as task_id -> {depends_on_id}"""
    result = await db.execute(select(TaskDependency.task_id, TaskDependency.depends_on_id))
    graph: Dict[str, Set[str]] = defaultdict(set)
    for task_id, depends_on_id in result.all():
        graph[task_id].add(depends_on_id)
    return graph


async def _lock_graph(db: AsyncSession) -> None:
    if db.get_bind().dialect.name == "postgresql":
        await db.execute(text("SELECT pg_advisory_xact_lock(:key)"), {"key": GRAPH_ADVISORY_LOCK_KEY})


async def _get_task(db: AsyncSession, task_id: str) -> Task:
    stmt = (
        select(Task)
        .where(Task.id == task_id)
        .options(selectinload(Task.access_grants))
        .execution_options(populate_existing=True)
    )
    task = (await db.execute(stmt)).scalar_one_or_none()
    if not task:
        raise NotFoundError("Task not found")
    return task


class DependencyGraphManager:
    """Adds and removes dependency edges, rejecting any that would form a cycle"""

    @staticmethod
    async def add_dependencies(
        db: AsyncSession,
        task_id: str,
        user_id: str,
        depends_on_ids: Iterable[str],
        commit: bool = True,
    ) -> List[str]:
        """Add edges task_id -> each of depends_on_ids, all or nothing.

        Requires edit access to ``task_id``. Returns the ids that were newly
        linked; edges that already exist are left as they are. With
        ``commit=False`` the edges are only flushed and the caller owns the
        transaction.
        """
        task = await _get_task(db, task_id)
        require_access(task, user_id, AccessLevel.EDIT)

        targets = list(dict.fromkeys(depends_on_ids))
        if not targets:
            return []

        async with graph_write_lock():
            await _lock_graph(db)

            # Validation reads only; a rejection here has written nothing
            found = await db.execute(select(Task.id).where(Task.id.in_(targets)))
            missing = sorted(set(targets) - set(found.scalars().all()))
            if missing:
                raise ValidationRejectedError(
                    "One or more dependency tasks not found",
                    details={"missing_task_ids": missing},
                )

            if task_id in targets:
                raise ValidationRejectedError(
                    "A task cannot depend on itself",
                    details={"task_id": task_id},
                )

            graph = await load_adjacency(db)
            existing = set(graph.get(task_id, ()))
            for depends_on_id in targets:
                if would_create_cycle(graph, task_id, depends_on_id):
                    logger.warning(
                        "Rejected cyclic dependency task=%s depends_on=%s user=%s",
                        task_id, depends_on_id, user_id,
                    )
                    raise ValidationRejectedError(
                        "Cannot create dependency - would result in circular dependency",
                        details={"task_id": task_id, "depends_on_id": depends_on_id},
                    )
                graph[task_id].add(depends_on_id)

            added = [d for d in targets if d not in existing]
            for depends_on_id in added:
                db.add(TaskDependency(task_id=task_id, depends_on_id=depends_on_id))

            if not commit:
                await db.flush()
            else:
                try:
                    await db.commit()
                except Exception:
                    await db.rollback()
                    raise

        if added:
            logger.info("Dependencies added task=%s depends_on=%s user=%s", task_id, added, user_id)
        return added

    @staticmethod
    async def remove_dependency(db: AsyncSession, task_id: str, user_id: str, depends_on_id: str) -> bool:
        """Delete edge task_id -> depends_on_id. Returns whether an edge was removed."""
        task = await _get_task(db, task_id)
        require_access(task, user_id, AccessLevel.EDIT)

        result = await db.execute(
            delete(TaskDependency).where(
                TaskDependency.task_id == task_id,
                TaskDependency.depends_on_id == depends_on_id,
            )
        )
        await db.commit()

        removed = (result.rowcount or 0) > 0
        if removed:
            logger.info("Dependency removed task=%s depends_on=%s user=%s", task_id, depends_on_id, user_id)
        return removed
