"""
Fixtures for pure workflow tests: transient Task records, no database.
"""

from datetime import date
from uuid import uuid4

import pytest

from models.models import (
    AcceptanceStatus, EditRequestStatus, Submission, SubmissionStatus, Task, TaskPriority, TaskStatus
)


def build_task(**overrides) -> Task:
    """Transient Task with every column set, since ORM defaults only apply on flush."""
    fields = dict(
        id=uuid4(),
        title="Write docs",
        description="",
        assigned_user_id="user-1",
        created_by_id="leader-1",
        team_id="team-a",
        priority=TaskPriority.MEDIUM,
        start_date=None,
        deadline=date(2024, 6, 1),
        original_deadline=date(2024, 6, 1),
        status=TaskStatus.PENDING,
        acceptance_status=AcceptanceStatus.PENDING,
        requested_deadline=None,
        extension_reason=None,
        estimated_time_to_complete=None,
        acceptance_timestamp=None,
        rejection_reason=None,
        edit_request_status=EditRequestStatus.NONE,
        edit_request_reason=None,
        edit_request_details=None,
        allows_file_upload=True,
        allows_text_submission=True,
        max_files=None,
    )
    fields.update(overrides)
    return Task(**fields)


@pytest.fixture
def make_task():
    return build_task


@pytest.fixture
def make_submission():
    def _make(task: Task, status: SubmissionStatus = SubmissionStatus.DRAFT, text=None) -> Submission:
        return Submission(id=uuid4(), task_id=task.id, user_id=task.assigned_user_id, status=status, text_content=text)
    return _make
