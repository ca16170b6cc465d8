"""
Permission guard for workflow operations.

A capability table keyed by (role, operation) decides whether a role may ever
perform an operation, and under which relationship to the task it may do so.
`check_permission` resolves that relationship for a concrete actor and task.
"""

from enum import Enum
from typing import Dict, FrozenSet, Optional

from pydantic import BaseModel, ConfigDict

from models.models import Task, UserRole
from workflow.errors import PermissionDenied


class Actor(BaseModel):
    """Caller identity as supplied by the identity provider."""
    id: str
    role: UserRole
    team_id: Optional[str] = None

    model_config = ConfigDict(frozen=True)


class Operation(str, Enum):
    CREATE_TASK = "create_task"
    UPDATE_TASK = "update_task"
    REASSIGN_TASK = "reassign_task"
    VIEW_TASK = "view_task"
    COMMENT = "comment"

    ACCEPT_TASK = "accept_task"
    REJECT_TASK = "reject_task"
    REQUEST_EXTENSION = "request_extension"
    REQUEST_EDIT = "request_edit"

    APPROVE_EXTENSION = "approve_extension"
    REJECT_EXTENSION = "reject_extension"
    APPROVE_EDIT = "approve_edit"
    REJECT_EDIT = "reject_edit"

    SAVE_TEXT = "save_submission_text"
    ATTACH_FILE = "attach_file"
    DETACH_FILE = "detach_file"
    FINALIZE_SUBMISSION = "finalize_submission"

    REVIEW_SUBMISSION = "review_submission"
    COMPLETE_TASK = "complete_task"


class Relation(str, Enum):
    """Relationship an actor must have with the task for a grant to apply."""
    ANY = "any"              # unconditional
    ASSIGNEE = "assignee"    # actor is the task's assigned user
    TEAM = "team"            # actor leads the task's team and is not its assignee
    VIEWER = "viewer"        # assignee, creator or team approver


ASSIGNEE_OPERATIONS: FrozenSet[Operation] = frozenset({
    Operation.ACCEPT_TASK,
    Operation.REJECT_TASK,
    Operation.REQUEST_EXTENSION,
    Operation.REQUEST_EDIT,
    Operation.SAVE_TEXT,
    Operation.ATTACH_FILE,
    Operation.DETACH_FILE,
    Operation.FINALIZE_SUBMISSION,
})

APPROVER_OPERATIONS: FrozenSet[Operation] = frozenset({
    Operation.UPDATE_TASK,
    Operation.REASSIGN_TASK,
    Operation.APPROVE_EXTENSION,
    Operation.REJECT_EXTENSION,
    Operation.APPROVE_EDIT,
    Operation.REJECT_EDIT,
    Operation.REVIEW_SUBMISSION,
    Operation.COMPLETE_TASK,
})


def _build_capabilities() -> Dict[UserRole, Dict[Operation, FrozenSet[Relation]]]:
    assignee = frozenset({Relation.ASSIGNEE})
    viewer = frozenset({Relation.VIEWER})

    admin = {op: assignee for op in ASSIGNEE_OPERATIONS}
    admin.update({op: frozenset({Relation.ANY}) for op in APPROVER_OPERATIONS})
    admin[Operation.CREATE_TASK] = frozenset({Relation.ANY})
    admin[Operation.VIEW_TASK] = frozenset({Relation.ANY})
    admin[Operation.COMMENT] = frozenset({Relation.ANY})

    team_leader = {op: assignee for op in ASSIGNEE_OPERATIONS}
    team_leader.update({op: frozenset({Relation.TEAM}) for op in APPROVER_OPERATIONS})
    team_leader[Operation.CREATE_TASK] = frozenset({Relation.TEAM})
    team_leader[Operation.VIEW_TASK] = viewer
    team_leader[Operation.COMMENT] = viewer

    user = {op: assignee for op in ASSIGNEE_OPERATIONS}
    user[Operation.VIEW_TASK] = viewer
    user[Operation.COMMENT] = viewer

    return {
        UserRole.ADMIN: admin,
        UserRole.TEAM_LEADER: team_leader,
        UserRole.USER: user,
    }


CAPABILITIES = _build_capabilities()


def leads_team(actor: Actor, team_id: Optional[str]) -> bool:
    return (
        actor.role == UserRole.TEAM_LEADER
        and actor.team_id is not None
        and actor.team_id == team_id
    )


def _has_relation(actor: Actor, relation: Relation, task: Optional[Task]) -> bool:
    if relation == Relation.ANY:
        return True
    if task is None:
        return False
    if relation == Relation.ASSIGNEE:
        return actor.id == task.assigned_user_id
    if relation == Relation.TEAM:
        return leads_team(actor, task.team_id) and actor.id != task.assigned_user_id
    if relation == Relation.VIEWER:
        return (
            actor.id == task.assigned_user_id
            or actor.id == task.created_by_id
            or leads_team(actor, task.team_id)
        )
    return False


def is_allowed(actor: Actor, operation: Operation, task: Optional[Task] = None) -> bool:
    """Pure capability check; `task` is None only for task creation."""
    relations = CAPABILITIES.get(actor.role, {}).get(operation)
    if not relations:
        return False
    return any(_has_relation(actor, relation, task) for relation in relations)


def check_permission(actor: Actor, operation: Operation, task: Optional[Task] = None) -> None:
    """Raise PermissionDenied unless the actor may perform the operation on the task."""
    if not is_allowed(actor, operation, task):
        raise PermissionDenied(
            f"{actor.role.value} '{actor.id}' may not {operation.value.replace('_', ' ')}",
            details={
                "actor_id": actor.id,
                "role": actor.role.value,
                "operation": operation.value,
                "task_id": str(task.id) if task is not None and task.id else None,
            },
        )


def check_create_permission(actor: Actor, team_id: Optional[str]) -> None:
    """Task creation is keyed on the target team rather than an existing task."""
    if actor.role == UserRole.ADMIN:
        return
    if CAPABILITIES[actor.role].get(Operation.CREATE_TASK) and leads_team(actor, team_id):
        return
    raise PermissionDenied(
        f"{actor.role.value} '{actor.id}' may not create tasks for team '{team_id}'",
        details={"actor_id": actor.id, "role": actor.role.value, "operation": Operation.CREATE_TASK.value},
    )
