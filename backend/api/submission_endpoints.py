"""
Submission REST endpoints.

Draft text, file attachments, finalize and review for a task's submission.
"""

from typing import List
from uuid import UUID

from fastapi import APIRouter, Depends, File, UploadFile
from fastapi.responses import Response

from api.dependencies import get_current_actor, get_workflow_service, to_http_exception
from config import settings
from models.submissions import (
    SubmissionFileResponse, SubmissionResponse, SubmissionTextUpdate, SubmissionTransitionResponse
)
from services.file_storage import StoredFileMissing
from services.workflow_service import WorkflowService
from utils.logging import get_logger
from workflow.errors import NotFound, WorkflowError
from workflow.permissions import Actor

logger = get_logger("submission-api")
router = APIRouter(prefix="/api", tags=["Submissions"])


@router.get("/tasks/{task_id}/submission", response_model=SubmissionResponse)
async def get_submission(
    task_id: UUID,
    actor: Actor = Depends(get_current_actor),
    service: WorkflowService = Depends(get_workflow_service),
):
    try:
        return await service.get_submission(actor, task_id)
    except WorkflowError as e:
        raise to_http_exception(e)


@router.put("/tasks/{task_id}/submission/text", response_model=SubmissionResponse)
async def save_submission_text(
    task_id: UUID,
    data: SubmissionTextUpdate,
    actor: Actor = Depends(get_current_actor),
    service: WorkflowService = Depends(get_workflow_service),
):
    """Save draft text, creating the draft on first use."""
    try:
        return await service.save_submission_text(actor, task_id, data.text)
    except WorkflowError as e:
        raise to_http_exception(e)


@router.get("/tasks/{task_id}/submission/files", response_model=List[SubmissionFileResponse])
async def list_submission_files(
    task_id: UUID,
    actor: Actor = Depends(get_current_actor),
    service: WorkflowService = Depends(get_workflow_service),
):
    try:
        return await service.list_submission_files(actor, task_id)
    except WorkflowError as e:
        raise to_http_exception(e)


@router.post("/tasks/{task_id}/submission/files", response_model=SubmissionFileResponse, status_code=201)
async def attach_file(
    task_id: UUID,
    file: UploadFile = File(...),
    actor: Actor = Depends(get_current_actor),
    service: WorkflowService = Depends(get_workflow_service),
):
    """
    Upload one file to the caller's submission.

    At most one byte past the size limit is read, so oversized uploads are
    rejected without buffering the whole body.
    """
    content = await file.read(settings.max_upload_size_bytes + 1)
    try:
        return await service.attach_file(
            actor,
            task_id,
            file_name=file.filename or "",
            file_type=file.content_type or "application/octet-stream",
            content=content,
        )
    except WorkflowError as e:
        raise to_http_exception(e)
    finally:
        await file.close()


@router.delete("/submission-files/{file_id}", status_code=204)
async def detach_file(
    file_id: UUID,
    actor: Actor = Depends(get_current_actor),
    service: WorkflowService = Depends(get_workflow_service),
):
    try:
        await service.detach_file(actor, file_id)
    except WorkflowError as e:
        raise to_http_exception(e)
    return Response(status_code=204)


@router.get("/submission-files/{file_id}")
async def download_file(
    file_id: UUID,
    actor: Actor = Depends(get_current_actor),
    service: WorkflowService = Depends(get_workflow_service),
):
    try:
        metadata, content = await service.read_file(actor, file_id)
    except StoredFileMissing:
        logger.error("Stored bytes missing for file record", extra={"data": {"file_id": str(file_id)}})
        raise to_http_exception(NotFound(f"File {file_id} content is unavailable"))
    except WorkflowError as e:
        raise to_http_exception(e)

    return Response(
        content=content,
        media_type=metadata.file_type,
        headers={"Content-Disposition": f'attachment; filename="{metadata.file_name}"'},
    )


@router.post("/tasks/{task_id}/submission/finalize", response_model=SubmissionTransitionResponse)
async def finalize_submission(
    task_id: UUID,
    actor: Actor = Depends(get_current_actor),
    service: WorkflowService = Depends(get_workflow_service),
):
    """Submit the draft and move the task to submitted."""
    try:
        return await service.finalize_submission(actor, task_id)
    except WorkflowError as e:
        raise to_http_exception(e)


@router.post("/tasks/{task_id}/submission/review", response_model=SubmissionTransitionResponse)
async def review_submission(
    task_id: UUID,
    actor: Actor = Depends(get_current_actor),
    service: WorkflowService = Depends(get_workflow_service),
):
    try:
        return await service.review_submission(actor, task_id)
    except WorkflowError as e:
        raise to_http_exception(e)
