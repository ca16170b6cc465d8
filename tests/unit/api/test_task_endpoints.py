"""
Tests for task workflow endpoints.
Header-based actor resolution and workflow error mapping, with the service mocked.
"""

from datetime import date, datetime, timezone
from unittest.mock import AsyncMock, MagicMock
from uuid import uuid4

import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient

from api.dependencies import get_workflow_service
from api.task_endpoints import router
from models.models import AcceptanceStatus, EditRequestStatus, TaskPriority, TaskStatus, UserRole
from models.tasks import TaskResponse
from workflow.errors import Conflict, InvalidTransition, NotFound, PermissionDenied, ValidationError


USER_HEADERS = {"X-User-Id": "user-1", "X-User-Role": "user", "X-Team-Id": "team-a"}
LEADER_HEADERS = {"X-User-Id": "leader-1", "X-User-Role": "team_leader", "X-Team-Id": "team-a"}


@pytest.fixture
def mock_service():
    return MagicMock()


@pytest.fixture
def app(mock_service):
    """Create test FastAPI app with the task router and a mocked service."""
    test_app = FastAPI()
    test_app.include_router(router)
    test_app.dependency_overrides[get_workflow_service] = lambda: mock_service
    return test_app


@pytest.fixture
def client(app):
    return TestClient(app)


@pytest.fixture
def sample_task():
    now = datetime(2024, 5, 20, 9, 0, tzinfo=timezone.utc)
    return TaskResponse(
        id=uuid4(),
        title="Quarterly report",
        description="",
        assigned_user_id="user-1",
        created_by_id="leader-1",
        team_id="team-a",
        priority=TaskPriority.MEDIUM,
        deadline=date(2024, 6, 1),
        original_deadline=date(2024, 6, 1),
        status=TaskStatus.IN_PROGRESS,
        acceptance_status=AcceptanceStatus.ACCEPTED,
        estimated_time_to_complete="2 days",
        edit_request_status=EditRequestStatus.NONE,
        allows_file_upload=True,
        allows_text_submission=True,
        created_at=now,
        updated_at=now,
        version=2,
    )


class TestActorHeaders:

    def test_missing_headers_is_unauthorized(self, client, mock_service):
        response = client.get(f"/api/tasks/{uuid4()}")

        assert response.status_code == 401
        mock_service.get_task.assert_not_called()

    def test_unknown_role_is_rejected(self, client):
        response = client.get(f"/api/tasks/{uuid4()}", headers={"X-User-Id": "u", "X-User-Role": "root"})

        assert response.status_code == 422

    def test_actor_is_passed_to_service(self, client, mock_service, sample_task):
        mock_service.accept_task = AsyncMock(return_value=sample_task)

        response = client.post(
            f"/api/tasks/{sample_task.id}/accept",
            json={"estimated_time_to_complete": "2 days"},
            headers=USER_HEADERS,
        )

        assert response.status_code == 200
        actor, task_id, estimate = mock_service.accept_task.call_args.args
        assert actor.id == "user-1"
        assert actor.role == UserRole.USER
        assert actor.team_id == "team-a"
        assert task_id == sample_task.id
        assert estimate == "2 days"
        assert response.json()["acceptance_status"] == "accepted"


class TestErrorMapping:

    @pytest.mark.parametrize("error,status_code", [
        (ValidationError("reason is required"), 422),
        (PermissionDenied("nope"), 403),
        (NotFound("missing"), 404),
        (InvalidTransition("wrong state"), 409),
        (Conflict("busy"), 409),
    ])
    def test_workflow_errors(self, client, mock_service, error, status_code):
        mock_service.request_extension = AsyncMock(side_effect=error)

        response = client.post(
            f"/api/tasks/{uuid4()}/extension",
            json={"reason": "Blocked", "requested_deadline": "2024-06-10"},
            headers=USER_HEADERS,
        )

        assert response.status_code == status_code
        detail = response.json()["detail"]
        assert detail["error"] == error.code
        assert detail["message"] == error.message

    def test_malformed_body_is_rejected_before_service(self, client, mock_service):
        mock_service.request_extension = AsyncMock()

        response = client.post(
            f"/api/tasks/{uuid4()}/extension",
            json={"reason": "Blocked"},
            headers=USER_HEADERS,
        )

        assert response.status_code == 422
        mock_service.request_extension.assert_not_called()


class TestTaskRoutes:

    def test_create_task(self, client, mock_service, sample_task):
        mock_service.create_task = AsyncMock(return_value=sample_task)

        response = client.post(
            "/api/tasks",
            json={
                "title": "Quarterly report",
                "assigned_user_id": "user-1",
                "team_id": "team-a",
                "deadline": "2024-06-01",
            },
            headers=LEADER_HEADERS,
        )

        assert response.status_code == 201
        data = mock_service.create_task.call_args.args[1]
        assert data.deadline == date(2024, 6, 1)
        assert data.allows_file_upload is True

    def test_approve_extension_without_body(self, client, mock_service, sample_task):
        mock_service.approve_extension = AsyncMock(return_value=sample_task)

        response = client.post(f"/api/tasks/{sample_task.id}/extension/approve", headers=LEADER_HEADERS)

        assert response.status_code == 200
        assert mock_service.approve_extension.call_args.args[2] is None

    def test_approve_extension_with_counter_deadline(self, client, mock_service, sample_task):
        mock_service.approve_extension = AsyncMock(return_value=sample_task)

        client.post(
            f"/api/tasks/{sample_task.id}/extension/approve",
            json={"deadline": "2024-06-08"},
            headers=LEADER_HEADERS,
        )

        assert mock_service.approve_extension.call_args.args[2] == date(2024, 6, 8)

    def test_list_tasks_passes_filters(self, client, mock_service, sample_task):
        mock_service.list_tasks = AsyncMock(return_value=[sample_task])

        response = client.get("/api/tasks?status=in_progress&limit=10", headers=LEADER_HEADERS)

        assert response.status_code == 200
        assert len(response.json()) == 1
        kwargs = mock_service.list_tasks.call_args.kwargs
        assert kwargs["status"] == TaskStatus.IN_PROGRESS
        assert kwargs["limit"] == 10

    def test_edit_request_routes(self, client, mock_service, sample_task):
        mock_service.request_edit = AsyncMock(return_value=sample_task)
        mock_service.approve_edit = AsyncMock(return_value=sample_task)
        mock_service.reject_edit = AsyncMock(return_value=sample_task)

        assert client.post(
            f"/api/tasks/{sample_task.id}/edit-request",
            json={"reason": "Scope unclear", "details": "Split it"},
            headers=USER_HEADERS,
        ).status_code == 200
        assert client.post(f"/api/tasks/{sample_task.id}/edit-request/approve", headers=LEADER_HEADERS).status_code == 200
        assert client.post(f"/api/tasks/{sample_task.id}/edit-request/reject", headers=LEADER_HEADERS).status_code == 200

        assert mock_service.request_edit.call_args.args[2:] == ("Scope unclear", "Split it")
