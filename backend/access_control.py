# access_control.py — Task access control evaluator
# Single place where "may this user see / change this task" is decided.
# The creator always holds full rights; everyone else needs a TaskAccess grant,
# and edit requires an edit-level grant. Managing grants and deleting the task
# are reserved to the creator and cannot be delegated.

import logging
from enum import Enum
from typing import Iterable, Optional

from errors import ForbiddenError
from models import AccessLevel, Task, TaskAccess

logger = logging.getLogger("trackify.access")


class AccessDecision(str, Enum):
    ALLOWED = "allowed"
    DENIED = "denied"


def find_grant(grants: Iterable[TaskAccess], user_id: str) -> Optional[TaskAccess]:
    for grant in grants:
        if grant.user_id == user_id:
            return grant
    return None


def authorize(task: Task, user_id: str, required: AccessLevel) -> AccessDecision:
    """Evaluate whether ``user_id`` holds ``required`` access to ``task``.

    ``task.access_grants`` must already be loaded.
    """
    if task.creator_id == user_id:
        return AccessDecision.ALLOWED

    grant = find_grant(task.access_grants, user_id)
    if grant is None:
        return AccessDecision.DENIED

    if AccessLevel(required) == AccessLevel.VIEW:
        return AccessDecision.ALLOWED
    if AccessLevel(grant.access_level) == AccessLevel.EDIT:
        return AccessDecision.ALLOWED
    return AccessDecision.DENIED


def require_access(task: Task, user_id: str, required: AccessLevel) -> None:
    """Raise ForbiddenError unless the user holds ``required`` access"""
    if authorize(task, user_id, required) is AccessDecision.DENIED:
        level = AccessLevel(required).value
        logger.info("Denied %s access task=%s user=%s", level, task.id, user_id)
        raise ForbiddenError(f"You do not have {level} access to this task")


def require_creator(task: Task, user_id: str, action: str) -> None:
    """Raise ForbiddenError unless the user created the task"""
    if task.creator_id != user_id:
        logger.info("Denied creator-only action=%s task=%s user=%s", action, task.id, user_id)
        raise ForbiddenError(f"You are not allowed to {action} this task")
