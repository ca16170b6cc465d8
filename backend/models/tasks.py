"""
Taskflow Tasks Domain Models

Pydantic V2 request and read models for task workflow operations.
"""

from datetime import date, datetime
from typing import Optional
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field

from models.models import (
    AcceptanceStatus, EditRequestStatus, TaskPriority, TaskStatus
)


class TaskCreate(BaseModel):
    """Request model for creating new tasks."""
    title: str = Field(..., description="Task title")
    description: str = Field("", description="Task description")
    assigned_user_id: str = Field(..., description="Assignee user ID")
    team_id: Optional[str] = Field(None, description="Owning team ID")
    start_date: Optional[date] = Field(None, description="Planned start date")
    deadline: date = Field(..., description="Task deadline")
    priority: TaskPriority = Field(TaskPriority.MEDIUM, description="Task priority")
    allows_file_upload: bool = Field(True, description="Whether files may be submitted")
    allows_text_submission: bool = Field(True, description="Whether text may be submitted")
    max_files: Optional[int] = Field(None, description="Maximum number of submitted files")


class TaskUpdate(BaseModel):
    """Request model for owner edits of an existing task."""
    title: Optional[str] = Field(None, description="Updated task title")
    description: Optional[str] = Field(None, description="Updated task description")
    priority: Optional[TaskPriority] = Field(None, description="Updated priority")
    start_date: Optional[date] = Field(None, description="Updated start date")
    deadline: Optional[date] = Field(None, description="Updated deadline")
    allows_file_upload: Optional[bool] = Field(None, description="Updated file channel flag")
    allows_text_submission: Optional[bool] = Field(None, description="Updated text channel flag")
    max_files: Optional[int] = Field(None, description="Updated file quota")


class TaskAcceptRequest(BaseModel):
    estimated_time_to_complete: str = Field(..., description="e.g. '2 hours', '3 days'")


class TaskRejectRequest(BaseModel):
    reason: str = Field(..., description="Why the assignment is rejected")


class ExtensionRequest(BaseModel):
    reason: str = Field(..., description="Why more time is needed")
    requested_deadline: date = Field(..., description="Proposed new deadline")


class ExtensionApproval(BaseModel):
    deadline: Optional[date] = Field(None, description="Approved deadline, defaults to the requested one")


class EditRequest(BaseModel):
    reason: str = Field(..., description="Why the task definition should change")
    details: Optional[str] = Field(None, description="Requested changes")


class TaskReassign(BaseModel):
    assigned_user_id: str = Field(..., description="New assignee user ID")


class TaskResponse(BaseModel):
    """Read model for task data."""
    id: UUID = Field(..., description="Task ID")
    title: str
    description: str
    assigned_user_id: str
    created_by_id: str
    team_id: Optional[str] = None
    priority: TaskPriority
    start_date: Optional[date] = None
    deadline: date
    original_deadline: date
    status: TaskStatus
    acceptance_status: AcceptanceStatus
    requested_deadline: Optional[date] = None
    extension_reason: Optional[str] = None
    estimated_time_to_complete: Optional[str] = None
    acceptance_timestamp: Optional[datetime] = None
    rejection_reason: Optional[str] = None
    edit_request_status: EditRequestStatus
    edit_request_reason: Optional[str] = None
    edit_request_details: Optional[str] = None
    allows_file_upload: bool
    allows_text_submission: bool
    max_files: Optional[int] = None
    created_at: datetime
    updated_at: datetime
    version: int = Field(..., description="Optimistic concurrency counter")

    model_config = ConfigDict(from_attributes=True)


class TaskCommentCreate(BaseModel):
    """Request model for creating task comments."""
    content: str = Field(..., description="Comment content")


class TaskCommentResponse(BaseModel):
    id: UUID
    task_id: UUID
    user_id: str
    content: str
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)
