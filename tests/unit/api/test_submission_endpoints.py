"""
Tests for submission endpoints: uploads, downloads and file constraint status codes.
"""

from datetime import datetime, timezone
from unittest.mock import AsyncMock, MagicMock
from uuid import uuid4

import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient

from api.dependencies import get_workflow_service
from api.submission_endpoints import router
from models.submissions import SubmissionFileResponse
from services.file_storage import StoredFileMissing
from workflow.errors import EmptySubmission, FileConstraintViolation


HEADERS = {"X-User-Id": "user-1", "X-User-Role": "user", "X-Team-Id": "team-a"}


@pytest.fixture
def mock_service():
    return MagicMock()


@pytest.fixture
def client(mock_service):
    test_app = FastAPI()
    test_app.include_router(router)
    test_app.dependency_overrides[get_workflow_service] = lambda: mock_service
    return TestClient(test_app)


@pytest.fixture
def file_record():
    return SubmissionFileResponse(
        id=uuid4(),
        submission_id=uuid4(),
        file_name="report.pdf",
        file_type="application/pdf",
        file_size=4,
        uploaded_by="user-1",
        uploaded_at=datetime(2024, 5, 20, tzinfo=timezone.utc),
    )


class TestUpload:

    def test_upload_forwards_file_metadata(self, client, mock_service, file_record):
        mock_service.attach_file = AsyncMock(return_value=file_record)
        task_id = uuid4()

        response = client.post(
            f"/api/tasks/{task_id}/submission/files",
            files={"file": ("report.pdf", b"%PDF", "application/pdf")},
            headers=HEADERS,
        )

        assert response.status_code == 201
        kwargs = mock_service.attach_file.call_args.kwargs
        assert kwargs["file_name"] == "report.pdf"
        assert kwargs["file_type"] == "application/pdf"
        assert kwargs["content"] == b"%PDF"
        assert response.json()["file_name"] == "report.pdf"

    @pytest.mark.parametrize("constraint,status_code", [
        ("size", 413),
        ("type", 415),
        ("count", 422),
        ("channel", 422),
    ])
    def test_constraint_status_codes(self, client, mock_service, constraint, status_code):
        mock_service.attach_file = AsyncMock(
            side_effect=FileConstraintViolation("rejected", constraint=constraint)
        )

        response = client.post(
            f"/api/tasks/{uuid4()}/submission/files",
            files={"file": ("x.bin", b"x", "application/octet-stream")},
            headers=HEADERS,
        )

        assert response.status_code == status_code
        assert response.json()["detail"]["details"]["constraint"] == constraint


class TestDownloadAndDetach:

    def test_list_files(self, client, mock_service, file_record):
        mock_service.list_submission_files = AsyncMock(return_value=[file_record])
        task_id = uuid4()

        response = client.get(f"/api/tasks/{task_id}/submission/files", headers=HEADERS)

        assert response.status_code == 200
        assert [f["file_name"] for f in response.json()] == ["report.pdf"]
        assert mock_service.list_submission_files.call_args.args[1] == task_id

    def test_download(self, client, mock_service, file_record):
        mock_service.read_file = AsyncMock(return_value=(file_record, b"%PDF"))

        response = client.get(f"/api/submission-files/{file_record.id}", headers=HEADERS)

        assert response.status_code == 200
        assert response.content == b"%PDF"
        assert response.headers["content-type"] == "application/pdf"
        assert 'filename="report.pdf"' in response.headers["content-disposition"]

    def test_download_with_missing_bytes(self, client, mock_service):
        mock_service.read_file = AsyncMock(side_effect=StoredFileMissing("gone"))

        response = client.get(f"/api/submission-files/{uuid4()}", headers=HEADERS)

        assert response.status_code == 404

    def test_detach(self, client, mock_service):
        mock_service.detach_file = AsyncMock(return_value=None)
        file_id = uuid4()

        response = client.delete(f"/api/submission-files/{file_id}", headers=HEADERS)

        assert response.status_code == 204
        assert mock_service.detach_file.call_args.args[1] == file_id


def test_finalize_empty_submission(client, mock_service):
    mock_service.finalize_submission = AsyncMock(side_effect=EmptySubmission("nothing to submit"))

    response = client.post(f"/api/tasks/{uuid4()}/submission/finalize", headers=HEADERS)

    assert response.status_code == 422
    assert response.json()["detail"]["error"] == "empty_submission"
