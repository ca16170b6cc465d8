"""
Task state machine.

Three state axes live on a task: the execution `status`, the negotiation
`acceptance_status` and the `edit_request_status`; submissions carry their own
`status`. Each axis has a forward-only transition table and every mutation of
these fields goes through the functions below.
"""

from typing import Dict, FrozenSet

from models.models import (
    AcceptanceStatus, EditRequestStatus, Submission, SubmissionStatus, Task, TaskStatus
)
from workflow.errors import InvalidTransition


STATUS_TRANSITIONS: Dict[TaskStatus, FrozenSet[TaskStatus]] = {
    TaskStatus.PENDING: frozenset({TaskStatus.IN_PROGRESS}),
    TaskStatus.IN_PROGRESS: frozenset({TaskStatus.SUBMITTED, TaskStatus.COMPLETED}),
    TaskStatus.SUBMITTED: frozenset({TaskStatus.REVIEWED, TaskStatus.COMPLETED}),
    TaskStatus.COMPLETED: frozenset(),
    TaskStatus.REVIEWED: frozenset(),
}

ACCEPTANCE_TRANSITIONS: Dict[AcceptanceStatus, FrozenSet[AcceptanceStatus]] = {
    AcceptanceStatus.PENDING: frozenset({
        AcceptanceStatus.ACCEPTED,
        AcceptanceStatus.REJECTED,
        AcceptanceStatus.EXTENSION_REQUESTED,
    }),
    AcceptanceStatus.EXTENSION_REQUESTED: frozenset({
        AcceptanceStatus.ACCEPTED,
        AcceptanceStatus.REJECTED,
    }),
    AcceptanceStatus.ACCEPTED: frozenset(),
    # Only administrative reassignment leaves this state (see reset_assignment)
    AcceptanceStatus.REJECTED: frozenset(),
}

EDIT_REQUEST_TRANSITIONS: Dict[EditRequestStatus, FrozenSet[EditRequestStatus]] = {
    EditRequestStatus.NONE: frozenset({EditRequestStatus.PENDING}),
    EditRequestStatus.PENDING: frozenset({EditRequestStatus.APPROVED, EditRequestStatus.REJECTED}),
    # Consumed when the owner applies the approved edit
    EditRequestStatus.APPROVED: frozenset({EditRequestStatus.NONE}),
    # A rejected request is closed; the assignee may file a new one
    EditRequestStatus.REJECTED: frozenset({EditRequestStatus.PENDING}),
}

SUBMISSION_TRANSITIONS: Dict[SubmissionStatus, FrozenSet[SubmissionStatus]] = {
    SubmissionStatus.DRAFT: frozenset({SubmissionStatus.SUBMITTED}),
    SubmissionStatus.SUBMITTED: frozenset({SubmissionStatus.REVIEWED}),
    SubmissionStatus.REVIEWED: frozenset(),
}

TERMINAL_STATUSES = frozenset({TaskStatus.COMPLETED, TaskStatus.REVIEWED})


def _reject(axis: str, current, target, task_id) -> InvalidTransition:
    return InvalidTransition(
        f"Cannot move {axis} from '{current.value}' to '{target.value}'",
        details={
            "axis": axis,
            "from": current.value,
            "to": target.value,
            "task_id": str(task_id) if task_id else None,
        },
    )


def can_transition_status(current: TaskStatus, target: TaskStatus) -> bool:
    return target in STATUS_TRANSITIONS[current]


def transition_status(task: Task, target: TaskStatus) -> None:
    current = task.status
    if not can_transition_status(current, target):
        raise _reject("status", current, target, task.id)
    if target == TaskStatus.COMPLETED and task.acceptance_status != AcceptanceStatus.ACCEPTED:
        raise InvalidTransition(
            "A task can only be completed once its assignment is accepted",
            details={"task_id": str(task.id), "acceptance_status": task.acceptance_status.value},
        )
    task.status = target


def transition_acceptance(task: Task, target: AcceptanceStatus) -> None:
    current = task.acceptance_status
    if target not in ACCEPTANCE_TRANSITIONS[current]:
        raise _reject("acceptance_status", current, target, task.id)
    if target == AcceptanceStatus.EXTENSION_REQUESTED:
        if task.requested_deadline is None or task.requested_deadline < task.deadline:
            raise InvalidTransition(
                "An extension request needs a requested deadline on or after the current deadline",
                details={"task_id": str(task.id)},
            )
    task.acceptance_status = target


def transition_edit_request(task: Task, target: EditRequestStatus) -> None:
    current = task.edit_request_status
    if target not in EDIT_REQUEST_TRANSITIONS[current]:
        raise _reject("edit_request_status", current, target, task.id)
    task.edit_request_status = target


def transition_submission(submission: Submission, target: SubmissionStatus) -> None:
    current = submission.status
    if target not in SUBMISSION_TRANSITIONS[current]:
        raise _reject("submission status", current, target, submission.task_id)
    submission.status = target


def reset_assignment(task: Task) -> None:
    """Administrative reassignment: back to an un-negotiated, not-yet-started assignment."""
    if task.status != TaskStatus.PENDING:
        raise InvalidTransition(
            f"Cannot reassign a task whose status is '{task.status.value}'",
            details={"task_id": str(task.id), "status": task.status.value},
        )
    task.acceptance_status = AcceptanceStatus.PENDING
    task.requested_deadline = None
    task.extension_reason = None
    task.estimated_time_to_complete = None
    task.acceptance_timestamp = None
    task.rejection_reason = None
    task.edit_request_status = EditRequestStatus.NONE
    task.edit_request_reason = None
    task.edit_request_details = None


def ensure_not_terminal(task: Task) -> None:
    if task.status in TERMINAL_STATUSES:
        raise InvalidTransition(
            f"Task is already {task.status.value}",
            details={"task_id": str(task.id), "status": task.status.value},
        )
