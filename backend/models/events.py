"""
Event schema definitions for Taskflow change notifications.
Clients treat their task lists as read replicas and refetch on these events.
"""

from datetime import datetime, timezone
from typing import Any, Dict, Literal, Optional
from uuid import uuid4

from pydantic import BaseModel, Field


class TaskflowEvent(BaseModel):
    """
    Standard event format for Taskflow's notification channel.
    All events published through Redis use this format.
    """
    id: str = Field(default_factory=lambda: str(uuid4()))
    type: Literal[
        "task_updated",
        "submission_updated",
    ]
    timestamp: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    data: Dict[str, Any]
    source: str  # service name that generated the event


class TaskUpdatedEventData(BaseModel):
    """Data structure for task update events."""
    task_id: str
    status: str
    acceptance_status: str
    edit_request_status: str
    action: str  # "created", "accepted", "extension_requested", etc.
    actor_id: str
    assigned_user_id: str
    team_id: Optional[str] = None


class SubmissionUpdatedEventData(BaseModel):
    """Data structure for submission update events."""
    task_id: str
    submission_id: Optional[str] = None
    status: Optional[str] = None
    action: str  # "text_saved", "file_attached", "finalized", ...
    actor_id: str


def create_task_updated_event(
    task_id: str,
    status: str,
    acceptance_status: str,
    edit_request_status: str,
    action: str,
    actor_id: str,
    assigned_user_id: str,
    team_id: Optional[str] = None,
    source: str = "workflow-service"
) -> TaskflowEvent:
    """Create a typed task update event."""
    return TaskflowEvent(
        type="task_updated",
        data=TaskUpdatedEventData(
            task_id=task_id,
            status=status,
            acceptance_status=acceptance_status,
            edit_request_status=edit_request_status,
            action=action,
            actor_id=actor_id,
            assigned_user_id=assigned_user_id,
            team_id=team_id,
        ).model_dump(),
        source=source
    )


def create_submission_updated_event(
    task_id: str,
    action: str,
    actor_id: str,
    submission_id: Optional[str] = None,
    status: Optional[str] = None,
    source: str = "workflow-service"
) -> TaskflowEvent:
    """Create a typed submission update event."""
    return TaskflowEvent(
        type="submission_updated",
        data=SubmissionUpdatedEventData(
            task_id=task_id,
            submission_id=submission_id,
            status=status,
            action=action,
            actor_id=actor_id,
        ).model_dump(),
        source=source
    )
