"""
Submission pipeline: draft creation, text and file content, finalize and review.

A submission is created lazily as a draft on the assignee's first content
interaction. Content may change while the draft is open, or after submission
while the task carries an approved edit request. File quota checks run with the
submission row locked and bump its version, so concurrent attaches cannot both
pass the count check.
"""

from datetime import datetime
from typing import FrozenSet, List, Optional

from pydantic import BaseModel, ConfigDict
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm.attributes import flag_modified

from models.models import (
    AcceptanceStatus, EditRequestStatus, Submission, SubmissionFile, SubmissionStatus,
    Task, TaskStatus
)
from services.file_storage import FileStorage
from workflow.errors import (
    EmptySubmission, FileConstraintViolation, InvalidTransition, ValidationError
)
from workflow.state_machine import transition_status, transition_submission


class FilePolicy(BaseModel):
    """Type, size and count limits applied to every attached file."""
    allowed_types: FrozenSet[str]
    max_file_size: int
    default_max_files: int

    model_config = ConfigDict(frozen=True)

    @classmethod
    def from_settings(cls, settings) -> "FilePolicy":
        return cls(
            allowed_types=frozenset(settings.ALLOWED_FILE_TYPES),
            max_file_size=settings.max_upload_size_bytes,
            default_max_files=settings.DEFAULT_MAX_FILES,
        )

    def max_files_for(self, task: Task) -> int:
        return task.max_files if task.max_files is not None else self.default_max_files

    def check(self, task: Task, file_type: str, file_size: int, current_count: int) -> None:
        if not task.allows_file_upload:
            raise FileConstraintViolation(
                "This task does not accept file uploads", constraint="channel"
            )
        if file_type not in self.allowed_types:
            raise FileConstraintViolation(
                f"File type '{file_type}' is not allowed",
                constraint="type",
                details={"file_type": file_type},
            )
        if file_size > self.max_file_size:
            raise FileConstraintViolation(
                f"File exceeds the {self.max_file_size} byte limit",
                constraint="size",
                details={"file_size": file_size, "max_file_size": self.max_file_size},
            )
        max_files = self.max_files_for(task)
        if current_count + 1 > max_files:
            raise FileConstraintViolation(
                f"Maximum {max_files} files allowed",
                constraint="count",
                details={"max_files": max_files, "current_count": current_count},
            )


# === Lookups ===

async def find_submission(
    session: AsyncSession, task: Task, user_id: str, lock: bool = False
) -> Optional[Submission]:
    query = select(Submission).where(Submission.task_id == task.id, Submission.user_id == user_id)
    if lock:
        query = query.with_for_update()
    result = await session.execute(query)
    return result.scalar_one_or_none()


async def list_files(session: AsyncSession, submission_id) -> List[SubmissionFile]:
    result = await session.execute(
        select(SubmissionFile)
        .where(SubmissionFile.submission_id == submission_id)
        .order_by(SubmissionFile.uploaded_at)
    )
    return list(result.scalars().all())


async def count_files(session: AsyncSession, submission_id) -> int:
    count = await session.scalar(
        select(func.count(SubmissionFile.id)).where(SubmissionFile.submission_id == submission_id)
    )
    return count or 0


def _touch(submission: Submission, now: datetime) -> None:
    """Force an UPDATE so the version counter moves even if the timestamp is unchanged."""
    submission.updated_at = now
    flag_modified(submission, "updated_at")


# === Editability ===

def ensure_content_editable(task: Task, submission: Optional[Submission]) -> None:
    """Raise InvalidTransition unless the assignee may change submission content now."""
    if task.acceptance_status != AcceptanceStatus.ACCEPTED:
        raise InvalidTransition(
            "No active accepted assignment to submit against",
            details={"task_id": str(task.id), "acceptance_status": task.acceptance_status.value},
        )
    if submission is None or submission.status == SubmissionStatus.DRAFT:
        if task.status != TaskStatus.IN_PROGRESS:
            raise InvalidTransition(
                f"Task is '{task.status.value}', submissions are closed",
                details={"task_id": str(task.id), "status": task.status.value},
            )
        return
    if (
        submission.status == SubmissionStatus.SUBMITTED
        and task.status == TaskStatus.SUBMITTED
        and task.edit_request_status == EditRequestStatus.APPROVED
    ):
        return
    raise InvalidTransition(
        f"Submission is already {submission.status.value}",
        details={"task_id": str(task.id), "submission_status": submission.status.value},
    )


async def lock_editable(session: AsyncSession, task: Task, user_id: str) -> Optional[Submission]:
    """Lock the (task, user) submission, if any, after checking content may change."""
    submission = await find_submission(session, task, user_id, lock=True)
    ensure_content_editable(task, submission)
    return submission


async def open_submission(
    session: AsyncSession, task: Task, user_id: str, submission: Optional[Submission], now: datetime
) -> Submission:
    """Return the submission found by `lock_editable`, creating the draft if there is none.

    Callers bump `updated_at` when they change content so the version check
    catches concurrent writers.
    """
    if submission is None:
        submission = Submission(
            task_id=task.id, user_id=user_id, status=SubmissionStatus.DRAFT,
            created_at=now, updated_at=now,
        )
        session.add(submission)
        # A concurrent creator surfaces here as IntegrityError on the unique pair
        await session.flush()
    return submission


# === Content ===

async def save_text(
    session: AsyncSession, task: Task, user_id: str, text: Optional[str], now: datetime
) -> Submission:
    submission = await lock_editable(session, task, user_id)
    if not task.allows_text_submission:
        raise ValidationError("This task does not accept text submissions", details={"field": "text"})
    submission = await open_submission(session, task, user_id, submission, now)
    submission.text_content = text
    _touch(submission, now)
    await session.flush()
    return submission


async def attach_file(
    session: AsyncSession,
    task: Task,
    user_id: str,
    storage: FileStorage,
    policy: FilePolicy,
    file_name: str,
    file_type: str,
    content: bytes,
    now: datetime,
    stored_keys: Optional[List[str]] = None,
) -> SubmissionFile:
    """Validate, store the bytes, then record the metadata row.

    Keys written to storage are appended to `stored_keys` so the caller can
    remove them if the surrounding transaction does not commit.
    """
    submission = await lock_editable(session, task, user_id)
    if not file_name or not file_name.strip():
        raise ValidationError("file_name is required", details={"field": "file_name"})
    submission = await open_submission(session, task, user_id, submission, now)
    current_count = await count_files(session, submission.id)
    policy.check(task, file_type, len(content), current_count)

    key = await storage.put(content, file_name)
    if stored_keys is not None:
        stored_keys.append(key)

    # Version bump: a concurrent attach that committed since our count fails this flush
    _touch(submission, now)
    record = SubmissionFile(
        submission_id=submission.id,
        file_name=file_name.strip(),
        file_path=key,
        file_type=file_type,
        file_size=len(content),
        uploaded_by=user_id,
        uploaded_at=now,
    )
    session.add(record)
    await session.flush()
    return record


async def detach_file(
    session: AsyncSession,
    task: Task,
    submission: Submission,
    record: SubmissionFile,
    storage: FileStorage,
    now: datetime,
) -> None:
    """Remove stored bytes first, then the metadata row."""
    ensure_content_editable(task, submission)
    _touch(submission, now)
    await storage.delete(record.file_path)
    await session.delete(record)
    await session.flush()


# === Finalize and review ===

async def finalize(session: AsyncSession, task: Task, user_id: str, now: datetime) -> Submission:
    if task.acceptance_status != AcceptanceStatus.ACCEPTED:
        raise InvalidTransition(
            "No active accepted assignment to submit against",
            details={"task_id": str(task.id), "acceptance_status": task.acceptance_status.value},
        )
    submission = await find_submission(session, task, user_id, lock=True)
    if submission is not None and submission.status != SubmissionStatus.DRAFT:
        raise InvalidTransition(
            f"Submission is already {submission.status.value}",
            details={"task_id": str(task.id), "submission_status": submission.status.value},
        )
    if task.status != TaskStatus.IN_PROGRESS:
        raise InvalidTransition(
            f"Task is '{task.status.value}', it cannot be submitted",
            details={"task_id": str(task.id), "status": task.status.value},
        )

    file_count = await count_files(session, submission.id) if submission is not None else 0
    has_text = bool(
        task.allows_text_submission
        and submission is not None
        and submission.text_content
        and submission.text_content.strip()
    )
    has_files = task.allows_file_upload and file_count > 0
    if not (has_text or has_files):
        raise EmptySubmission(
            "Add text content or upload files before submitting",
            details={"task_id": str(task.id)},
        )

    transition_submission(submission, SubmissionStatus.SUBMITTED)
    submission.submitted_at = now
    _touch(submission, now)
    transition_status(task, TaskStatus.SUBMITTED)
    await session.flush()
    return submission


async def review(session: AsyncSession, task: Task, now: datetime) -> Submission:
    submission = await find_submission(session, task, task.assigned_user_id, lock=True)
    if submission is None:
        raise InvalidTransition(
            "There is no submission to review",
            details={"task_id": str(task.id)},
        )
    transition_submission(submission, SubmissionStatus.REVIEWED)
    transition_status(task, TaskStatus.REVIEWED)
    _touch(submission, now)
    await session.flush()
    return submission
