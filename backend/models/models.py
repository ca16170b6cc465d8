"""
Taskflow Database Models

Entities of the task lifecycle workflow:
- Task (lifecycle, negotiation and edit-request state)
- Submission (one per task/assignee pair) and its SubmissionFile rows
- TaskComment
"""

from datetime import date, datetime, timezone
from enum import Enum
from typing import List, Optional
from uuid import UUID, uuid4

from sqlalchemy import (
    Boolean, Date, DateTime, Enum as SQLEnum, ForeignKey, Integer, String, Text,
    UniqueConstraint, Uuid
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Base(DeclarativeBase):
    pass


class UserRole(str, Enum):
    """Roles supplied by the identity provider."""
    ADMIN = "admin"
    TEAM_LEADER = "team_leader"
    USER = "user"


class TaskPriority(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


class TaskStatus(str, Enum):
    """Overall execution state of a task."""
    PENDING = "pending"
    IN_PROGRESS = "in_progress"
    SUBMITTED = "submitted"
    COMPLETED = "completed"
    REVIEWED = "reviewed"


class AcceptanceStatus(str, Enum):
    """Negotiation state, independent of TaskStatus."""
    PENDING = "pending"
    ACCEPTED = "accepted"
    REJECTED = "rejected"
    EXTENSION_REQUESTED = "extension_requested"


class EditRequestStatus(str, Enum):
    NONE = "none"
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"


class SubmissionStatus(str, Enum):
    DRAFT = "draft"
    SUBMITTED = "submitted"
    REVIEWED = "reviewed"


class Task(Base):
    """Task record; state fields are only mutated through workflow.state_machine."""
    __tablename__ = 'tasks'

    id: Mapped[UUID] = mapped_column(Uuid, primary_key=True, default=uuid4)
    title: Mapped[str] = mapped_column(String(255), nullable=False)
    description: Mapped[str] = mapped_column(Text, nullable=False, default="")

    # Weak references resolved by the external user/team directory
    assigned_user_id: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    created_by_id: Mapped[str] = mapped_column(String(64), nullable=False)
    team_id: Mapped[Optional[str]] = mapped_column(String(64), index=True)

    priority: Mapped[TaskPriority] = mapped_column(SQLEnum(TaskPriority), nullable=False, default=TaskPriority.MEDIUM)
    start_date: Mapped[Optional[date]] = mapped_column(Date)
    deadline: Mapped[date] = mapped_column(Date, nullable=False)
    original_deadline: Mapped[date] = mapped_column(Date, nullable=False)

    status: Mapped[TaskStatus] = mapped_column(SQLEnum(TaskStatus), nullable=False, default=TaskStatus.PENDING)
    acceptance_status: Mapped[AcceptanceStatus] = mapped_column(
        SQLEnum(AcceptanceStatus), nullable=False, default=AcceptanceStatus.PENDING
    )

    # Extension negotiation (only while acceptance_status == extension_requested)
    requested_deadline: Mapped[Optional[date]] = mapped_column(Date)
    extension_reason: Mapped[Optional[str]] = mapped_column(Text)

    # Set on acceptance
    estimated_time_to_complete: Mapped[Optional[str]] = mapped_column(String(255))
    acceptance_timestamp: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))
    rejection_reason: Mapped[Optional[str]] = mapped_column(Text)

    edit_request_status: Mapped[EditRequestStatus] = mapped_column(
        SQLEnum(EditRequestStatus), nullable=False, default=EditRequestStatus.NONE
    )
    edit_request_reason: Mapped[Optional[str]] = mapped_column(Text)
    edit_request_details: Mapped[Optional[str]] = mapped_column(Text)

    # Submission channels
    allows_file_upload: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    allows_text_submission: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    max_files: Mapped[Optional[int]] = mapped_column(Integer)

    # Metadata
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, onupdate=utcnow)
    version: Mapped[int] = mapped_column(Integer, nullable=False)

    # Relationships
    submissions: Mapped[List["Submission"]] = relationship("Submission", back_populates="task", cascade="all, delete-orphan")
    comments: Mapped[List["TaskComment"]] = relationship("TaskComment", back_populates="task", cascade="all, delete-orphan")

    __mapper_args__ = {"version_id_col": version}

    def __repr__(self):
        return f"<Task(id='{self.id}', status='{self.status}', acceptance_status='{self.acceptance_status}')>"


class Submission(Base):
    """The assignee's deliverable for one task."""
    __tablename__ = 'task_submissions'

    id: Mapped[UUID] = mapped_column(Uuid, primary_key=True, default=uuid4)
    task_id: Mapped[UUID] = mapped_column(Uuid, ForeignKey('tasks.id'), nullable=False)
    user_id: Mapped[str] = mapped_column(String(64), nullable=False)
    status: Mapped[SubmissionStatus] = mapped_column(
        SQLEnum(SubmissionStatus), nullable=False, default=SubmissionStatus.DRAFT
    )
    text_content: Mapped[Optional[str]] = mapped_column(Text)
    submitted_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, onupdate=utcnow)
    version: Mapped[int] = mapped_column(Integer, nullable=False)

    task: Mapped["Task"] = relationship("Task", back_populates="submissions")
    files: Mapped[List["SubmissionFile"]] = relationship(
        "SubmissionFile", back_populates="submission", cascade="all, delete-orphan",
        order_by="SubmissionFile.uploaded_at"
    )

    # At most one submission per (task, user) pair
    __table_args__ = (
        UniqueConstraint('task_id', 'user_id', name='uq_task_submissions_task_user'),
    )
    __mapper_args__ = {"version_id_col": version}


class SubmissionFile(Base):
    """Metadata of a stored file; the bytes live behind FileStorage."""
    __tablename__ = 'submission_files'

    id: Mapped[UUID] = mapped_column(Uuid, primary_key=True, default=uuid4)
    submission_id: Mapped[UUID] = mapped_column(Uuid, ForeignKey('task_submissions.id'), nullable=False, index=True)
    file_name: Mapped[str] = mapped_column(String(255), nullable=False)
    file_path: Mapped[str] = mapped_column(String(500), nullable=False)  # Opaque storage key
    file_type: Mapped[str] = mapped_column(String(255), nullable=False)
    file_size: Mapped[int] = mapped_column(Integer, nullable=False)
    uploaded_by: Mapped[str] = mapped_column(String(64), nullable=False)
    uploaded_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)

    submission: Mapped["Submission"] = relationship("Submission", back_populates="files")


class TaskComment(Base):
    """Discussion thread on a task."""
    __tablename__ = 'task_comments'

    id: Mapped[UUID] = mapped_column(Uuid, primary_key=True, default=uuid4)
    task_id: Mapped[UUID] = mapped_column(Uuid, ForeignKey('tasks.id'), nullable=False, index=True)
    user_id: Mapped[str] = mapped_column(String(64), nullable=False)
    content: Mapped[str] = mapped_column(Text, nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)

    task: Mapped["Task"] = relationship("Task", back_populates="comments")
