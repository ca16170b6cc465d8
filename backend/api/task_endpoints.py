"""
Task workflow REST endpoints.

Task records, assignment negotiation, edit requests, completion and comments.
Workflow errors are translated to HTTP status codes here.
"""

from typing import List, Optional
from uuid import UUID

from fastapi import APIRouter, Depends, Query

from api.dependencies import get_current_actor, get_workflow_service, to_http_exception
from models.models import TaskStatus
from models.tasks import (
    EditRequest, ExtensionApproval, ExtensionRequest, TaskAcceptRequest, TaskCommentCreate,
    TaskCommentResponse, TaskCreate, TaskReassign, TaskRejectRequest, TaskResponse, TaskUpdate
)
from services.workflow_service import WorkflowService
from workflow.errors import WorkflowError
from workflow.permissions import Actor

router = APIRouter(prefix="/api/tasks", tags=["Tasks"])


# === Task records ===

@router.get("", response_model=List[TaskResponse])
async def list_tasks(
    assigned_user_id: Optional[str] = Query(None),
    status: Optional[TaskStatus] = Query(None),
    team_id: Optional[str] = Query(None),
    limit: int = Query(100, ge=1, le=500),
    offset: int = Query(0, ge=0),
    actor: Actor = Depends(get_current_actor),
    service: WorkflowService = Depends(get_workflow_service),
):
    """List tasks visible to the caller."""
    return await service.list_tasks(
        actor, assigned_user_id=assigned_user_id, status=status, team_id=team_id,
        limit=limit, offset=offset,
    )


@router.post("", response_model=TaskResponse, status_code=201)
async def create_task(
    task_data: TaskCreate,
    actor: Actor = Depends(get_current_actor),
    service: WorkflowService = Depends(get_workflow_service),
):
    try:
        return await service.create_task(actor, task_data)
    except WorkflowError as e:
        raise to_http_exception(e)


@router.get("/{task_id}", response_model=TaskResponse)
async def get_task(
    task_id: UUID,
    actor: Actor = Depends(get_current_actor),
    service: WorkflowService = Depends(get_workflow_service),
):
    try:
        return await service.get_task(actor, task_id)
    except WorkflowError as e:
        raise to_http_exception(e)


@router.put("/{task_id}", response_model=TaskResponse)
async def update_task(
    task_id: UUID,
    task_data: TaskUpdate,
    actor: Actor = Depends(get_current_actor),
    service: WorkflowService = Depends(get_workflow_service),
):
    """Owner edit of the task definition; consumes an approved edit request."""
    try:
        return await service.update_task(actor, task_id, task_data)
    except WorkflowError as e:
        raise to_http_exception(e)


@router.post("/{task_id}/reassign", response_model=TaskResponse)
async def reassign_task(
    task_id: UUID,
    data: TaskReassign,
    actor: Actor = Depends(get_current_actor),
    service: WorkflowService = Depends(get_workflow_service),
):
    try:
        return await service.reassign_task(actor, task_id, data.assigned_user_id)
    except WorkflowError as e:
        raise to_http_exception(e)


@router.post("/{task_id}/complete", response_model=TaskResponse)
async def complete_task(
    task_id: UUID,
    actor: Actor = Depends(get_current_actor),
    service: WorkflowService = Depends(get_workflow_service),
):
    try:
        return await service.complete_task(actor, task_id)
    except WorkflowError as e:
        raise to_http_exception(e)


# === Assignment negotiation ===

@router.post("/{task_id}/accept", response_model=TaskResponse)
async def accept_task(
    task_id: UUID,
    data: TaskAcceptRequest,
    actor: Actor = Depends(get_current_actor),
    service: WorkflowService = Depends(get_workflow_service),
):
    try:
        return await service.accept_task(actor, task_id, data.estimated_time_to_complete)
    except WorkflowError as e:
        raise to_http_exception(e)


@router.post("/{task_id}/reject", response_model=TaskResponse)
async def reject_task(
    task_id: UUID,
    data: TaskRejectRequest,
    actor: Actor = Depends(get_current_actor),
    service: WorkflowService = Depends(get_workflow_service),
):
    try:
        return await service.reject_task(actor, task_id, data.reason)
    except WorkflowError as e:
        raise to_http_exception(e)


@router.post("/{task_id}/extension", response_model=TaskResponse)
async def request_extension(
    task_id: UUID,
    data: ExtensionRequest,
    actor: Actor = Depends(get_current_actor),
    service: WorkflowService = Depends(get_workflow_service),
):
    try:
        return await service.request_extension(actor, task_id, data.reason, data.requested_deadline)
    except WorkflowError as e:
        raise to_http_exception(e)


@router.post("/{task_id}/extension/approve", response_model=TaskResponse)
async def approve_extension(
    task_id: UUID,
    data: Optional[ExtensionApproval] = None,
    actor: Actor = Depends(get_current_actor),
    service: WorkflowService = Depends(get_workflow_service),
):
    """Approve the pending extension, optionally with a different deadline."""
    deadline = data.deadline if data else None
    try:
        return await service.approve_extension(actor, task_id, deadline)
    except WorkflowError as e:
        raise to_http_exception(e)


@router.post("/{task_id}/extension/reject", response_model=TaskResponse)
async def reject_extension(
    task_id: UUID,
    actor: Actor = Depends(get_current_actor),
    service: WorkflowService = Depends(get_workflow_service),
):
    try:
        return await service.reject_extension(actor, task_id)
    except WorkflowError as e:
        raise to_http_exception(e)


# === Edit requests ===

@router.post("/{task_id}/edit-request", response_model=TaskResponse)
async def request_edit(
    task_id: UUID,
    data: EditRequest,
    actor: Actor = Depends(get_current_actor),
    service: WorkflowService = Depends(get_workflow_service),
):
    try:
        return await service.request_edit(actor, task_id, data.reason, data.details)
    except WorkflowError as e:
        raise to_http_exception(e)


@router.post("/{task_id}/edit-request/approve", response_model=TaskResponse)
async def approve_edit(
    task_id: UUID,
    actor: Actor = Depends(get_current_actor),
    service: WorkflowService = Depends(get_workflow_service),
):
    try:
        return await service.approve_edit(actor, task_id)
    except WorkflowError as e:
        raise to_http_exception(e)


@router.post("/{task_id}/edit-request/reject", response_model=TaskResponse)
async def reject_edit(
    task_id: UUID,
    actor: Actor = Depends(get_current_actor),
    service: WorkflowService = Depends(get_workflow_service),
):
    try:
        return await service.reject_edit(actor, task_id)
    except WorkflowError as e:
        raise to_http_exception(e)


# === Comments ===

@router.get("/{task_id}/comments", response_model=List[TaskCommentResponse])
async def list_task_comments(
    task_id: UUID,
    actor: Actor = Depends(get_current_actor),
    service: WorkflowService = Depends(get_workflow_service),
):
    try:
        return await service.list_comments(actor, task_id)
    except WorkflowError as e:
        raise to_http_exception(e)


@router.post("/{task_id}/comments", response_model=TaskCommentResponse, status_code=201)
async def add_task_comment(
    task_id: UUID,
    comment_data: TaskCommentCreate,
    actor: Actor = Depends(get_current_actor),
    service: WorkflowService = Depends(get_workflow_service),
):
    try:
        return await service.add_comment(actor, task_id, comment_data.content)
    except WorkflowError as e:
        raise to_http_exception(e)
