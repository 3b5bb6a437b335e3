# schemas.py — Request / response models shared by the core and the routers
from typing import Optional, List

from pydantic import BaseModel, EmailStr, Field, field_validator

from models import TaskStatus, TaskPriority, AccessLevel

MIN_PASSWORD_LENGTH = 6


def _strip(v):
    return v.strip() if isinstance(v, str) else v


# ============================================================
# USERS & AUTH
# ============================================================

class UserRegister(BaseModel):
    username: str = Field(..., min_length=1, max_length=50)
    password: str
    email: Optional[EmailStr] = None

    @field_validator("username", mode="before")
    @classmethod
    def strip_username(cls, v):
        return _strip(v)

    @field_validator("email", mode="before")
    @classmethod
    def blank_email_is_none(cls, v):
        v = _strip(v)
        return v or None

    @field_validator("password")
    @classmethod
    def validate_password(cls, v: str) -> str:
        if len(v) < MIN_PASSWORD_LENGTH:
            raise ValueError(f"Password must be at least {MIN_PASSWORD_LENGTH} characters")
        return v


class UserLogin(BaseModel):
    username: str
    password: str


class UserOut(BaseModel):
    id: str
    username: str
    email: Optional[str] = None


class TokenResponse(BaseModel):
    access_token: str
    token_type: str = "bearer"
    expires_in: int
    user: UserOut


# ============================================================
# TASKS
# ============================================================

class TaskCreate(BaseModel):
    title: str
    description: Optional[str] = None
    observations: Optional[str] = None
    status: TaskStatus = TaskStatus.TODO
    priority: TaskPriority = TaskPriority.MEDIUM
    start_date: Optional[str] = None
    due_date: Optional[str] = None
    depends_on_task_ids: List[str] = Field(default_factory=list)

    @field_validator("title", "description", "observations", mode="before")
    @classmethod
    def strip_text(cls, v):
        return _strip(v)


class TaskUpdate(BaseModel):
    """Partial update.

    A field missing from the payload is left untouched; a field sent as null
    (or "" for dates) is cleared. ``model_fields_set`` tells the two apart.
    """
    title: Optional[str] = None
    description: Optional[str] = None
    observations: Optional[str] = None
    status: Optional[TaskStatus] = None
    priority: Optional[TaskPriority] = None
    start_date: Optional[str] = None
    due_date: Optional[str] = None

    @field_validator("title", "description", "observations", mode="before")
    @classmethod
    def strip_text(cls, v):
        return _strip(v)


class ObservationCreate(BaseModel):
    content: str = Field(..., min_length=1, max_length=10000)


class TaskAccessGrant(BaseModel):
    user_id: str
    access_level: AccessLevel


class DependencyAdd(BaseModel):
    depends_on_task_ids: List[str]


class UserSummary(BaseModel):
    id: str
    username: str


class TaskSummary(BaseModel):
    id: str
    title: str
    status: str


class TaskAccessOut(BaseModel):
    id: str
    task_id: str
    user_id: str
    access_level: str
    user: UserSummary


class DependencyOut(BaseModel):
    depends_on: TaskSummary


class DependedByOut(BaseModel):
    task: TaskSummary


class TaskOut(BaseModel):
    id: str
    title: str
    description: Optional[str] = None
    observations: Optional[str] = None
    status: str
    priority: str
    start_date: Optional[str] = None
    due_date: Optional[str] = None
    creator_id: str
    creator: UserSummary
    task_access: List[TaskAccessOut] = []
    dependencies: List[DependencyOut] = []
    depended_by: List[DependedByOut] = []
    created_at: str
    updated_at: str
