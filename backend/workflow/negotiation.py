"""
Negotiation protocol between an assignee and the task's approver.

Acceptance, rejection and deadline extensions share the `acceptance_status`
axis; edit requests run on the independent `edit_request_status` axis. Both
allow a single outstanding request at a time.
"""

from datetime import date, datetime
from typing import Iterable, Optional

from models.models import AcceptanceStatus, EditRequestStatus, Task, TaskStatus
from workflow.errors import InvalidTransition, ValidationError
from workflow.state_machine import (
    ensure_not_terminal, transition_acceptance, transition_edit_request, transition_status
)


def _require_acceptance(task: Task, allowed: Iterable[AcceptanceStatus], action: str) -> None:
    allowed = tuple(allowed)
    if task.acceptance_status not in allowed:
        raise InvalidTransition(
            f"Cannot {action} while acceptance status is '{task.acceptance_status.value}'",
            details={
                "task_id": str(task.id),
                "acceptance_status": task.acceptance_status.value,
                "expected": [status.value for status in allowed],
            },
        )


def _require_text(value: Optional[str], field: str) -> str:
    if value is None or not value.strip():
        raise ValidationError(f"{field} is required", details={"field": field})
    return value.strip()


def _start_work(task: Task) -> None:
    if task.status == TaskStatus.PENDING:
        transition_status(task, TaskStatus.IN_PROGRESS)


def _clear_extension(task: Task) -> None:
    task.requested_deadline = None
    task.extension_reason = None


# === Acceptance ===

def accept_task(task: Task, estimated_time_to_complete: str, now: datetime) -> None:
    """Assignee agrees to the task under its current deadline; work starts."""
    _require_acceptance(task, [AcceptanceStatus.PENDING], "accept task")
    estimate = _require_text(estimated_time_to_complete, "estimated_time_to_complete")

    transition_acceptance(task, AcceptanceStatus.ACCEPTED)
    task.estimated_time_to_complete = estimate
    task.acceptance_timestamp = now
    _start_work(task)


def reject_task(task: Task, reason: str) -> None:
    _require_acceptance(task, [AcceptanceStatus.PENDING], "reject task")
    reason = _require_text(reason, "reason")

    transition_acceptance(task, AcceptanceStatus.REJECTED)
    task.rejection_reason = reason


# === Deadline extensions ===

def request_extension(task: Task, reason: str, requested_deadline: Optional[date]) -> None:
    _require_acceptance(task, [AcceptanceStatus.PENDING], "request an extension")
    ensure_not_terminal(task)
    reason = _require_text(reason, "reason")
    if requested_deadline is None:
        raise ValidationError("requested_deadline is required", details={"field": "requested_deadline"})
    if requested_deadline < task.deadline:
        raise ValidationError(
            "requested_deadline must not be earlier than the current deadline",
            details={
                "field": "requested_deadline",
                "deadline": task.deadline.isoformat(),
                "requested_deadline": requested_deadline.isoformat(),
            },
        )

    task.requested_deadline = requested_deadline
    task.extension_reason = reason
    transition_acceptance(task, AcceptanceStatus.EXTENSION_REQUESTED)


def approve_extension(task: Task, now: datetime, deadline: Optional[date] = None) -> None:
    """Approve the outstanding request; `deadline` defaults to the requested one."""
    _require_acceptance(task, [AcceptanceStatus.EXTENSION_REQUESTED], "approve an extension")
    new_deadline = deadline or task.requested_deadline
    if new_deadline < task.deadline:
        raise ValidationError(
            "Approved deadline must not be earlier than the current deadline",
            details={
                "field": "deadline",
                "deadline": task.deadline.isoformat(),
                "approved_deadline": new_deadline.isoformat(),
            },
        )

    transition_acceptance(task, AcceptanceStatus.ACCEPTED)
    task.deadline = new_deadline
    task.acceptance_timestamp = now
    _clear_extension(task)
    _start_work(task)


def reject_extension(task: Task) -> None:
    _require_acceptance(task, [AcceptanceStatus.EXTENSION_REQUESTED], "reject an extension")

    transition_acceptance(task, AcceptanceStatus.REJECTED)
    _clear_extension(task)


# === Edit requests ===

def request_edit(task: Task, reason: str, details: Optional[str] = None) -> None:
    ensure_not_terminal(task)
    if task.acceptance_status == AcceptanceStatus.REJECTED:
        raise InvalidTransition(
            "Cannot request an edit on a rejected assignment",
            details={"task_id": str(task.id)},
        )
    if task.edit_request_status not in (EditRequestStatus.NONE, EditRequestStatus.REJECTED):
        raise InvalidTransition(
            f"An earlier edit request is still '{task.edit_request_status.value}'",
            details={"task_id": str(task.id), "edit_request_status": task.edit_request_status.value},
        )
    reason = _require_text(reason, "reason")

    transition_edit_request(task, EditRequestStatus.PENDING)
    task.edit_request_reason = reason
    task.edit_request_details = details.strip() if details else None


def approve_edit(task: Task) -> None:
    """Signals that the owner will apply the edit; no task field changes here."""
    transition_edit_request(task, EditRequestStatus.APPROVED)


def reject_edit(task: Task) -> None:
    transition_edit_request(task, EditRequestStatus.REJECTED)


def consume_approved_edit(task: Task) -> bool:
    """Close an approved edit request once the owner has applied the change."""
    if task.edit_request_status != EditRequestStatus.APPROVED:
        return False
    transition_edit_request(task, EditRequestStatus.NONE)
    task.edit_request_reason = None
    task.edit_request_details = None
    return True
