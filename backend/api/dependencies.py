"""
Shared FastAPI dependencies: the calling actor and the workflow service.

Identity is asserted by the upstream gateway through request headers; this
service only interprets it.
"""

from typing import Optional

from fastapi import Header, HTTPException

from models.models import UserRole
from services.workflow_service import WorkflowService, workflow_service
from workflow.errors import FileConstraintViolation, WorkflowError
from workflow.permissions import Actor


ERROR_STATUS_CODES = {
    "validation_error": 422,
    "permission_denied": 403,
    "not_found": 404,
    "invalid_transition": 409,
    "conflict": 409,
    "empty_submission": 422,
}

FILE_CONSTRAINT_STATUS_CODES = {
    "size": 413,
    "type": 415,
}


async def get_current_actor(
    x_user_id: Optional[str] = Header(None),
    x_user_role: Optional[str] = Header(None),
    x_team_id: Optional[str] = Header(None),
) -> Actor:
    """Resolve the actor from gateway headers."""
    if not x_user_id or not x_user_role:
        raise HTTPException(status_code=401, detail="Missing X-User-Id or X-User-Role header")
    try:
        role = UserRole(x_user_role)
    except ValueError:
        raise HTTPException(status_code=422, detail=f"Unknown role '{x_user_role}'")
    return Actor(id=x_user_id, role=role, team_id=x_team_id or None)


def get_workflow_service() -> WorkflowService:
    return workflow_service


def to_http_exception(error: WorkflowError) -> HTTPException:
    """Map a workflow error kind to its HTTP status."""
    if isinstance(error, FileConstraintViolation):
        status_code = FILE_CONSTRAINT_STATUS_CODES.get(error.constraint, 422)
    else:
        status_code = ERROR_STATUS_CODES.get(error.code, 400)
    return HTTPException(status_code=status_code, detail=error.to_dict())
