# models.py — Database models for Trackify
# - UUID primary keys everywhere
# - Tasks owned by exactly one creator
# - Per-user access grants (view / edit) on tasks
# - Directed dependency edges between tasks (kept acyclic by dependency_graph.py)

import uuid
from datetime import datetime, timezone
from enum import Enum as PyEnum
from sqlalchemy import (
    Column, String, DateTime, Enum as SQLEnum, ForeignKey, Text, Index, UniqueConstraint,
)
from sqlalchemy.orm import declarative_base, relationship

Base = declarative_base()


def utcnow():
    return datetime.now(timezone.utc)


def new_uuid():
    return str(uuid.uuid4())


# ============================================================
# ENUMS
# ============================================================

class TaskStatus(str, PyEnum):
    TODO = "TODO"
    IN_PROGRESS = "IN_PROGRESS"
    REVIEW = "REVIEW"
    BLOCKED = "BLOCKED"
    DONE = "DONE"
    CANCELLED = "CANCELLED"


class TaskPriority(str, PyEnum):
    LOW = "LOW"
    MEDIUM = "MEDIUM"
    HIGH = "HIGH"
    URGENT = "URGENT"


# Ordering used when listing tasks (higher sorts first)
PRIORITY_RANK = {
    TaskPriority.LOW: 0,
    TaskPriority.MEDIUM: 1,
    TaskPriority.HIGH: 2,
    TaskPriority.URGENT: 3,
}


class AccessLevel(str, PyEnum):
    VIEW = "view"
    EDIT = "edit"


# ============================================================
# USERS
# ============================================================

class User(Base):
    __tablename__ = "users"

    id = Column(String, primary_key=True, default=new_uuid)
    username = Column(String, unique=True, nullable=False, index=True)
    email = Column(String, unique=True, nullable=True, index=True)
    password_hash = Column(String, nullable=False)
    created_at = Column(DateTime(timezone=True), default=utcnow)
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow)

    created_tasks = relationship("Task", back_populates="creator", foreign_keys="Task.creator_id")
    task_access = relationship("TaskAccess", back_populates="user", passive_deletes=True)


# ============================================================
# TASKS
# ============================================================

class Task(Base):
    """A unit of work owned by its creator"""
    __tablename__ = "tasks"

    id = Column(String, primary_key=True, default=new_uuid)
    title = Column(String, nullable=False)
    description = Column(Text, nullable=True)
    observations = Column(Text, nullable=True)  # newline separated, append-only
    status = Column(SQLEnum(TaskStatus), default=TaskStatus.TODO, nullable=False, index=True)
    priority = Column(SQLEnum(TaskPriority), default=TaskPriority.MEDIUM, nullable=False)
    start_date = Column(DateTime(timezone=True), nullable=True)
    due_date = Column(DateTime(timezone=True), nullable=True)

    creator_id = Column(String, ForeignKey("users.id"), nullable=False, index=True)

    created_at = Column(DateTime(timezone=True), default=utcnow)
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow)

    # Relationships
    creator = relationship("User", back_populates="created_tasks", foreign_keys=[creator_id])
    access_grants = relationship(
        "TaskAccess", back_populates="task",
        cascade="all, delete-orphan", passive_deletes=True,
    )
    dependencies = relationship(
        "TaskDependency", back_populates="task", foreign_keys="TaskDependency.task_id",
        cascade="all, delete-orphan", passive_deletes=True,
    )
    depended_by = relationship(
        "TaskDependency", back_populates="depends_on", foreign_keys="TaskDependency.depends_on_id",
        cascade="all, delete-orphan", passive_deletes=True,
    )

    __table_args__ = (
        Index("idx_task_creator_start", "creator_id", "start_date"),
    )


class TaskAccess(Base):
    """Grant of view or edit rights on a task to a user other than its creator"""
    __tablename__ = "task_access"

    id = Column(String, primary_key=True, default=new_uuid)
    task_id = Column(String, ForeignKey("tasks.id", ondelete="CASCADE"), nullable=False, index=True)
    user_id = Column(String, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    access_level = Column(SQLEnum(AccessLevel), nullable=False, default=AccessLevel.VIEW)
    created_at = Column(DateTime(timezone=True), default=utcnow)
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow)

    task = relationship("Task", back_populates="access_grants")
    user = relationship("User", back_populates="task_access")

    __table_args__ = (
        UniqueConstraint("task_id", "user_id", name="uq_task_access_task_user"),
    )


class TaskDependency(Base):
    """Edge task_id -> depends_on_id: depends_on must precede task"""
    __tablename__ = "task_dependencies"

    id = Column(String, primary_key=True, default=new_uuid)
    task_id = Column(String, ForeignKey("tasks.id", ondelete="CASCADE"), nullable=False, index=True)
    depends_on_id = Column(String, ForeignKey("tasks.id", ondelete="CASCADE"), nullable=False, index=True)
    created_at = Column(DateTime(timezone=True), default=utcnow)

    task = relationship("Task", back_populates="dependencies", foreign_keys=[task_id])
    depends_on = relationship("Task", back_populates="depended_by", foreign_keys=[depends_on_id])

    __table_args__ = (
        UniqueConstraint("task_id", "depends_on_id", name="uq_task_dependency_edge"),
    )
