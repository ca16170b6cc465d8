"""
Taskflow Submission Domain Models

Pydantic V2 models for submission drafts, files and their read views.
"""

from datetime import datetime
from typing import List, Optional
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field

from models.models import Submission, SubmissionFile, SubmissionStatus
from models.tasks import TaskResponse


class SubmissionTextUpdate(BaseModel):
    """Request model for saving draft text."""
    text: Optional[str] = Field(None, description="Submission text; replaces any saved text")


class SubmissionFileResponse(BaseModel):
    id: UUID
    submission_id: UUID
    file_name: str
    file_type: str
    file_size: int
    uploaded_by: str
    uploaded_at: datetime

    model_config = ConfigDict(from_attributes=True)


class SubmissionResponse(BaseModel):
    id: UUID
    task_id: UUID
    user_id: str
    status: SubmissionStatus
    text_content: Optional[str] = None
    submitted_at: Optional[datetime] = None
    created_at: datetime
    updated_at: datetime
    files: List[SubmissionFileResponse] = Field(default_factory=list)

    @classmethod
    def from_records(
        cls, submission: Submission, files: List[SubmissionFile]
    ) -> "SubmissionResponse":
        """Build from ORM rows without touching lazy relationships."""
        return cls(
            id=submission.id,
            task_id=submission.task_id,
            user_id=submission.user_id,
            status=submission.status,
            text_content=submission.text_content,
            submitted_at=submission.submitted_at,
            created_at=submission.created_at,
            updated_at=submission.updated_at,
            files=[SubmissionFileResponse.model_validate(f) for f in files],
        )


class SubmissionTransitionResponse(BaseModel):
    """Finalize and review change both records in one transaction."""
    submission: SubmissionResponse
    task: TaskResponse
