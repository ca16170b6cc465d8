"""
Workflow Service.

Composition root of the task lifecycle: every operation resolves the actor's
permission, applies the state machine or submission pipeline, and commits in a
single transaction. Lost optimistic-concurrency races are retried against
fresh state; committed changes are logged and announced on the event channel.
"""

from datetime import date, datetime
from typing import Awaitable, Callable, Dict, List, Optional, Tuple, TypeVar
from uuid import UUID

from sqlalchemy import or_, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm.exc import StaleDataError

from config import settings
from database.database import DatabaseManager, db_manager
from models.events import TaskflowEvent, create_submission_updated_event, create_task_updated_event
from models.models import (
    Submission, SubmissionFile, Task, TaskComment, TaskStatus, UserRole, utcnow
)
from models.submissions import (
    SubmissionFileResponse, SubmissionResponse, SubmissionTransitionResponse
)
from models.tasks import TaskCommentResponse, TaskCreate, TaskResponse, TaskUpdate
from services.file_storage import FileStorage, LocalFileStorage
from utils.logging import get_logger, log_task_transition
from utils.redis_manager import publish
from workflow import negotiation, submissions
from workflow.errors import Conflict, NotFound, PermissionDenied, ValidationError
from workflow.permissions import Actor, Operation, check_create_permission, check_permission
from workflow.state_machine import ensure_not_terminal, reset_assignment, transition_status
from workflow.submissions import FilePolicy

logger = get_logger(__name__)

T = TypeVar("T")
Publisher = Callable[[TaskflowEvent], Awaitable[bool]]


def _state_of(task: Task) -> Dict[str, str]:
    return {
        "status": task.status.value,
        "acceptance_status": task.acceptance_status.value,
        "edit_request_status": task.edit_request_status.value,
    }


class WorkflowService:
    """Task workflow operations, one transaction per call."""

    def __init__(
        self,
        database: Optional[DatabaseManager] = None,
        storage: Optional[FileStorage] = None,
        file_policy: Optional[FilePolicy] = None,
        publisher: Optional[Publisher] = None,
        max_retries: Optional[int] = None,
        clock: Optional[Callable[[], datetime]] = None,
    ):
        self.database = database or db_manager
        self.storage = storage or LocalFileStorage(settings.UPLOAD_DIR)
        self.file_policy = file_policy or FilePolicy.from_settings(settings)
        self.publisher = publisher or publish
        self.max_retries = max(1, max_retries or settings.WORKFLOW_CONFLICT_RETRIES)
        self.clock = clock or utcnow

    # === Plumbing ===

    async def _run(
        self,
        operation: str,
        work: Callable[[AsyncSession], Awaitable[T]],
        on_failure: Optional[Callable[[], Awaitable[None]]] = None,
    ) -> T:
        """Run `work` in a transaction, retrying when a concurrent writer won."""
        last_error: Optional[Exception] = None
        for attempt in range(1, self.max_retries + 1):
            try:
                async with self.database.get_session() as session:
                    return await work(session)
            except (StaleDataError, IntegrityError) as e:
                last_error = e
                if on_failure:
                    await on_failure()
                logger.warning(
                    "Concurrent modification detected, retrying",
                    extra={
                        "data": {
                            "operation": operation,
                            "attempt": attempt,
                            "max_retries": self.max_retries,
                            "error_type": type(e).__name__,
                        }
                    }
                )
            except Exception:
                if on_failure:
                    await on_failure()
                raise

        raise Conflict(
            f"{operation} kept conflicting with concurrent changes",
            details={"operation": operation, "attempts": self.max_retries},
        ) from last_error

    async def _notify(self, event: TaskflowEvent) -> None:
        try:
            await self.publisher(event)
        except Exception as e:
            logger.warning(f"Failed to publish {event.type} event: {e}")

    async def _notify_task(self, task: TaskResponse, action: str, actor: Actor) -> None:
        await self._notify(create_task_updated_event(
            task_id=str(task.id),
            status=task.status.value,
            acceptance_status=task.acceptance_status.value,
            edit_request_status=task.edit_request_status.value,
            action=action,
            actor_id=actor.id,
            assigned_user_id=task.assigned_user_id,
            team_id=task.team_id,
        ))

    async def _notify_submission(
        self, task_id: UUID, action: str, actor: Actor, submission: Optional[SubmissionResponse] = None
    ) -> None:
        await self._notify(create_submission_updated_event(
            task_id=str(task_id),
            action=action,
            actor_id=actor.id,
            submission_id=str(submission.id) if submission else None,
            status=submission.status.value if submission else None,
        ))

    @staticmethod
    async def _load_task(session: AsyncSession, task_id: UUID) -> Task:
        task = await session.get(Task, task_id)
        if task is None:
            raise NotFound(f"Task {task_id} not found", details={"task_id": str(task_id)})
        return task

    async def _mutate_task(
        self,
        actor: Actor,
        task_id: UUID,
        operation: Operation,
        mutate: Callable[[Task, datetime], None],
        action: Optional[str] = None,
    ) -> TaskResponse:
        """Guard -> state machine -> flush for operations that only touch the task row."""

        async def work(session: AsyncSession) -> Tuple[Dict[str, str], TaskResponse]:
            task = await self._load_task(session, task_id)
            check_permission(actor, operation, task)
            before = _state_of(task)
            now = self.clock()
            mutate(task, now)
            task.updated_at = now
            await session.flush()
            return before, TaskResponse.model_validate(task)

        before, result = await self._run(operation.value, work)
        log_task_transition(
            operation.value,
            str(result.id),
            actor.id,
            {
                "from": before,
                "to": {
                    "status": result.status.value,
                    "acceptance_status": result.acceptance_status.value,
                    "edit_request_status": result.edit_request_status.value,
                },
            },
            logger=logger,
        )
        await self._notify_task(result, action or operation.value, actor)
        return result

    # === Task records ===

    @staticmethod
    def _validate_task_fields(
        title: Optional[str],
        start_date: Optional[date],
        deadline: Optional[date],
        max_files: Optional[int],
    ) -> None:
        if title is not None and not title.strip():
            raise ValidationError("title is required", details={"field": "title"})
        if max_files is not None and max_files < 0:
            raise ValidationError("max_files must be zero or greater", details={"field": "max_files"})
        if start_date and deadline and start_date > deadline:
            raise ValidationError(
                "start_date must not be after the deadline", details={"field": "start_date"}
            )

    async def create_task(self, actor: Actor, data: TaskCreate) -> TaskResponse:
        check_create_permission(actor, data.team_id)
        if not data.assigned_user_id or not data.assigned_user_id.strip():
            raise ValidationError("assigned_user_id is required", details={"field": "assigned_user_id"})
        self._validate_task_fields(data.title, data.start_date, data.deadline, data.max_files)

        async def work(session: AsyncSession) -> TaskResponse:
            now = self.clock()
            task = Task(
                title=data.title.strip(),
                description=data.description or "",
                assigned_user_id=data.assigned_user_id.strip(),
                created_by_id=actor.id,
                team_id=data.team_id,
                priority=data.priority,
                start_date=data.start_date,
                deadline=data.deadline,
                original_deadline=data.deadline,
                allows_file_upload=data.allows_file_upload,
                allows_text_submission=data.allows_text_submission,
                max_files=data.max_files,
                created_at=now,
                updated_at=now,
            )
            session.add(task)
            await session.flush()
            return TaskResponse.model_validate(task)

        result = await self._run(Operation.CREATE_TASK.value, work)
        log_task_transition(
            "created", str(result.id), actor.id,
            {"assigned_user_id": result.assigned_user_id, "team_id": result.team_id},
            logger=logger,
        )
        await self._notify_task(result, "created", actor)
        return result

    async def get_task(self, actor: Actor, task_id: UUID) -> TaskResponse:
        async with self.database.get_session() as session:
            task = await self._load_task(session, task_id)
            check_permission(actor, Operation.VIEW_TASK, task)
            return TaskResponse.model_validate(task)

    async def list_tasks(
        self,
        actor: Actor,
        assigned_user_id: Optional[str] = None,
        status: Optional[TaskStatus] = None,
        team_id: Optional[str] = None,
        limit: int = 100,
        offset: int = 0,
    ) -> List[TaskResponse]:
        """Tasks visible to the actor, newest first."""
        query = select(Task)

        if actor.role != UserRole.ADMIN:
            visible = [Task.assigned_user_id == actor.id, Task.created_by_id == actor.id]
            if actor.role == UserRole.TEAM_LEADER and actor.team_id:
                visible.append(Task.team_id == actor.team_id)
            query = query.where(or_(*visible))

        if assigned_user_id:
            query = query.where(Task.assigned_user_id == assigned_user_id)
        if status:
            query = query.where(Task.status == status)
        if team_id:
            query = query.where(Task.team_id == team_id)

        query = query.order_by(Task.created_at.desc()).limit(limit).offset(offset)

        async with self.database.get_session() as session:
            result = await session.execute(query)
            return [TaskResponse.model_validate(task) for task in result.scalars().all()]

    async def update_task(self, actor: Actor, task_id: UUID, data: TaskUpdate) -> TaskResponse:
        """Owner edit; consumes an approved edit request."""
        changes = data.model_dump(exclude_unset=True)
        self._validate_task_fields(
            changes.get("title"), changes.get("start_date"), changes.get("deadline"), changes.get("max_files")
        )

        async def work(session: AsyncSession) -> TaskResponse:
            task = await self._load_task(session, task_id)
            check_permission(actor, Operation.UPDATE_TASK, task)
            ensure_not_terminal(task)

            start_date = changes.get("start_date", task.start_date)
            deadline = changes.get("deadline", task.deadline)
            self._validate_task_fields(None, start_date, deadline, None)
            if deadline is None:
                raise ValidationError("deadline is required", details={"field": "deadline"})
            if task.requested_deadline is not None and deadline > task.requested_deadline:
                raise ValidationError(
                    "deadline cannot move past an outstanding extension request",
                    details={"field": "deadline"},
                )
            if changes.get("max_files") is not None:
                submission = await submissions.find_submission(session, task, task.assigned_user_id, lock=True)
                if submission is not None:
                    current = await submissions.count_files(session, submission.id)
                    if changes["max_files"] < current:
                        raise ValidationError(
                            f"max_files cannot be lower than the {current} files already attached",
                            details={"field": "max_files"},
                        )

            for field, value in changes.items():
                if field == "title" and value is not None:
                    value = value.strip()
                if value is None and field not in ("start_date", "max_files"):
                    continue
                setattr(task, field, value)

            negotiation.consume_approved_edit(task)
            task.updated_at = self.clock()
            await session.flush()
            return TaskResponse.model_validate(task)

        result = await self._run(Operation.UPDATE_TASK.value, work)
        log_task_transition("updated", str(result.id), actor.id, {"fields": sorted(changes)}, logger=logger)
        await self._notify_task(result, "updated", actor)
        return result

    async def reassign_task(self, actor: Actor, task_id: UUID, assigned_user_id: str) -> TaskResponse:
        if not assigned_user_id or not assigned_user_id.strip():
            raise ValidationError("assigned_user_id is required", details={"field": "assigned_user_id"})

        def mutate(task: Task, now: datetime) -> None:
            reset_assignment(task)
            task.assigned_user_id = assigned_user_id.strip()

        return await self._mutate_task(actor, task_id, Operation.REASSIGN_TASK, mutate, "reassigned")

    async def complete_task(self, actor: Actor, task_id: UUID) -> TaskResponse:
        def mutate(task: Task, now: datetime) -> None:
            transition_status(task, TaskStatus.COMPLETED)

        return await self._mutate_task(actor, task_id, Operation.COMPLETE_TASK, mutate, "completed")

    # === Negotiation ===

    async def accept_task(self, actor: Actor, task_id: UUID, estimated_time_to_complete: str) -> TaskResponse:
        def mutate(task: Task, now: datetime) -> None:
            negotiation.accept_task(task, estimated_time_to_complete, now)

        return await self._mutate_task(actor, task_id, Operation.ACCEPT_TASK, mutate, "accepted")

    async def reject_task(self, actor: Actor, task_id: UUID, reason: str) -> TaskResponse:
        def mutate(task: Task, now: datetime) -> None:
            negotiation.reject_task(task, reason)

        return await self._mutate_task(actor, task_id, Operation.REJECT_TASK, mutate, "rejected")

    async def request_extension(
        self, actor: Actor, task_id: UUID, reason: str, requested_deadline: date
    ) -> TaskResponse:
        def mutate(task: Task, now: datetime) -> None:
            negotiation.request_extension(task, reason, requested_deadline)

        return await self._mutate_task(actor, task_id, Operation.REQUEST_EXTENSION, mutate, "extension_requested")

    async def approve_extension(
        self, actor: Actor, task_id: UUID, deadline: Optional[date] = None
    ) -> TaskResponse:
        def mutate(task: Task, now: datetime) -> None:
            negotiation.approve_extension(task, now, deadline)

        return await self._mutate_task(actor, task_id, Operation.APPROVE_EXTENSION, mutate, "extension_approved")

    async def reject_extension(self, actor: Actor, task_id: UUID) -> TaskResponse:
        def mutate(task: Task, now: datetime) -> None:
            negotiation.reject_extension(task)

        return await self._mutate_task(actor, task_id, Operation.REJECT_EXTENSION, mutate, "extension_rejected")

    async def request_edit(
        self, actor: Actor, task_id: UUID, reason: str, details: Optional[str] = None
    ) -> TaskResponse:
        def mutate(task: Task, now: datetime) -> None:
            negotiation.request_edit(task, reason, details)

        return await self._mutate_task(actor, task_id, Operation.REQUEST_EDIT, mutate, "edit_requested")

    async def approve_edit(self, actor: Actor, task_id: UUID) -> TaskResponse:
        def mutate(task: Task, now: datetime) -> None:
            negotiation.approve_edit(task)

        return await self._mutate_task(actor, task_id, Operation.APPROVE_EDIT, mutate, "edit_approved")

    async def reject_edit(self, actor: Actor, task_id: UUID) -> TaskResponse:
        def mutate(task: Task, now: datetime) -> None:
            negotiation.reject_edit(task)

        return await self._mutate_task(actor, task_id, Operation.REJECT_EDIT, mutate, "edit_rejected")

    # === Submissions ===

    async def get_submission(self, actor: Actor, task_id: UUID) -> SubmissionResponse:
        async with self.database.get_session() as session:
            task = await self._load_task(session, task_id)
            check_permission(actor, Operation.VIEW_TASK, task)
            submission = await submissions.find_submission(session, task, task.assigned_user_id)
            if submission is None:
                raise NotFound(
                    f"Task {task_id} has no submission yet", details={"task_id": str(task_id)}
                )
            files = await submissions.list_files(session, submission.id)
            return SubmissionResponse.from_records(submission, files)

    async def list_submission_files(self, actor: Actor, task_id: UUID) -> List[SubmissionFileResponse]:
        """Files of the assignee's submission; empty before the first upload."""
        async with self.database.get_session() as session:
            task = await self._load_task(session, task_id)
            check_permission(actor, Operation.VIEW_TASK, task)
            submission = await submissions.find_submission(session, task, task.assigned_user_id)
            if submission is None:
                return []
            files = await submissions.list_files(session, submission.id)
            return [SubmissionFileResponse.model_validate(f) for f in files]

    async def save_submission_text(self, actor: Actor, task_id: UUID, text: Optional[str]) -> SubmissionResponse:
        async def work(session: AsyncSession) -> SubmissionResponse:
            task = await self._load_task(session, task_id)
            check_permission(actor, Operation.SAVE_TEXT, task)
            submission = await submissions.save_text(session, task, actor.id, text, self.clock())
            files = await submissions.list_files(session, submission.id)
            return SubmissionResponse.from_records(submission, files)

        result = await self._run(Operation.SAVE_TEXT.value, work)
        await self._notify_submission(task_id, "text_saved", actor, result)
        return result

    async def attach_file(
        self, actor: Actor, task_id: UUID, file_name: str, file_type: str, content: bytes
    ) -> SubmissionFileResponse:
        stored_keys: List[str] = []

        async def discard_stored() -> None:
            while stored_keys:
                key = stored_keys.pop()
                try:
                    await self.storage.delete(key)
                except Exception as e:
                    logger.error(
                        "Failed to remove stored bytes of an aborted upload",
                        extra={"data": {"key": key, "error": str(e)}}
                    )

        async def work(session: AsyncSession) -> SubmissionFileResponse:
            task = await self._load_task(session, task_id)
            check_permission(actor, Operation.ATTACH_FILE, task)
            record = await submissions.attach_file(
                session, task, actor.id, self.storage, self.file_policy,
                file_name, file_type, content, self.clock(), stored_keys=stored_keys,
            )
            return SubmissionFileResponse.model_validate(record)

        result = await self._run(Operation.ATTACH_FILE.value, work, on_failure=discard_stored)
        logger.info(
            "File attached",
            extra={
                "data": {
                    "task_id": str(task_id),
                    "file_id": str(result.id),
                    "file_type": result.file_type,
                    "file_size": result.file_size,
                }
            }
        )
        await self._notify_submission(task_id, "file_attached", actor)
        return result

    async def _load_file(
        self, session: AsyncSession, file_id: UUID, lock: bool = False
    ) -> Tuple[SubmissionFile, Submission, Task]:
        record = await session.get(SubmissionFile, file_id)
        if record is None:
            raise NotFound(f"File {file_id} not found", details={"file_id": str(file_id)})
        submission = await session.get(Submission, record.submission_id, with_for_update=lock)
        task = await self._load_task(session, submission.task_id)
        return record, submission, task

    async def detach_file(self, actor: Actor, file_id: UUID) -> None:
        async def work(session: AsyncSession) -> UUID:
            record, submission, task = await self._load_file(session, file_id, lock=True)
            check_permission(actor, Operation.DETACH_FILE, task)
            if submission.user_id != actor.id:
                raise PermissionDenied(
                    "Only the submitting user may remove this file",
                    details={"file_id": str(file_id), "actor_id": actor.id},
                )
            await submissions.detach_file(session, task, submission, record, self.storage, self.clock())
            return task.id

        task_id = await self._run(Operation.DETACH_FILE.value, work)
        logger.info("File detached", extra={"data": {"task_id": str(task_id), "file_id": str(file_id)}})
        await self._notify_submission(task_id, "file_detached", actor)

    async def read_file(self, actor: Actor, file_id: UUID) -> Tuple[SubmissionFileResponse, bytes]:
        async with self.database.get_session() as session:
            record, _, task = await self._load_file(session, file_id)
            check_permission(actor, Operation.VIEW_TASK, task)
            metadata = SubmissionFileResponse.model_validate(record)
            key = record.file_path
        return metadata, await self.storage.get(key)

    async def _transition_submission(
        self,
        actor: Actor,
        task_id: UUID,
        operation: Operation,
        apply: Callable[[AsyncSession, Task, datetime], Awaitable[Submission]],
        action: str,
    ) -> SubmissionTransitionResponse:
        async def work(session: AsyncSession) -> Tuple[Dict[str, str], SubmissionTransitionResponse]:
            task = await self._load_task(session, task_id)
            check_permission(actor, operation, task)
            before = _state_of(task)
            now = self.clock()
            submission = await apply(session, task, now)
            task.updated_at = now
            await session.flush()
            files = await submissions.list_files(session, submission.id)
            return before, SubmissionTransitionResponse(
                submission=SubmissionResponse.from_records(submission, files),
                task=TaskResponse.model_validate(task),
            )

        before, result = await self._run(operation.value, work)
        log_task_transition(
            operation.value, str(task_id), actor.id,
            {"from": before, "to": {"status": result.task.status.value}, "submission_status": result.submission.status.value},
            logger=logger,
        )
        await self._notify_submission(task_id, action, actor, result.submission)
        await self._notify_task(result.task, action, actor)
        return result

    async def finalize_submission(self, actor: Actor, task_id: UUID) -> SubmissionTransitionResponse:
        async def apply(session: AsyncSession, task: Task, now: datetime) -> Submission:
            return await submissions.finalize(session, task, actor.id, now)

        return await self._transition_submission(actor, task_id, Operation.FINALIZE_SUBMISSION, apply, "submitted")

    async def review_submission(self, actor: Actor, task_id: UUID) -> SubmissionTransitionResponse:
        async def apply(session: AsyncSession, task: Task, now: datetime) -> Submission:
            return await submissions.review(session, task, now)

        return await self._transition_submission(actor, task_id, Operation.REVIEW_SUBMISSION, apply, "reviewed")

    # === Comments ===

    async def add_comment(self, actor: Actor, task_id: UUID, content: str) -> TaskCommentResponse:
        if not content or not content.strip():
            raise ValidationError("content is required", details={"field": "content"})

        async def work(session: AsyncSession) -> TaskCommentResponse:
            task = await self._load_task(session, task_id)
            check_permission(actor, Operation.COMMENT, task)
            comment = TaskComment(task_id=task.id, user_id=actor.id, content=content.strip(), created_at=self.clock())
            session.add(comment)
            await session.flush()
            return TaskCommentResponse.model_validate(comment)

        return await self._run(Operation.COMMENT.value, work)

    async def list_comments(self, actor: Actor, task_id: UUID) -> List[TaskCommentResponse]:
        async with self.database.get_session() as session:
            task = await self._load_task(session, task_id)
            check_permission(actor, Operation.VIEW_TASK, task)
            result = await session.execute(
                select(TaskComment)
                .where(TaskComment.task_id == task.id)
                .order_by(TaskComment.created_at)
            )
            return [TaskCommentResponse.model_validate(c) for c in result.scalars().all()]


# Global workflow service instance
workflow_service = WorkflowService()
