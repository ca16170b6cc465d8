"""
Tests for the file policy and content editability rules of the submission pipeline.
"""

from types import SimpleNamespace

import pytest

from models.models import AcceptanceStatus, EditRequestStatus, SubmissionStatus, TaskStatus
from workflow.errors import FileConstraintViolation, InvalidTransition
from workflow.submissions import FilePolicy, ensure_content_editable


@pytest.fixture
def policy():
    return FilePolicy(
        allowed_types=frozenset({"application/pdf", "image/png"}),
        max_file_size=100,
        default_max_files=3,
    )


class TestFilePolicy:

    def test_accepts_file_within_limits(self, policy, make_task):
        policy.check(make_task(), "application/pdf", 100, current_count=2)

    def test_disabled_channel(self, policy, make_task):
        with pytest.raises(FileConstraintViolation) as exc_info:
            policy.check(make_task(allows_file_upload=False), "application/pdf", 10, 0)

        assert exc_info.value.constraint == "channel"

    def test_type_not_whitelisted(self, policy, make_task):
        with pytest.raises(FileConstraintViolation) as exc_info:
            policy.check(make_task(), "application/x-msdownload", 10, 0)

        assert exc_info.value.constraint == "type"
        assert exc_info.value.details["file_type"] == "application/x-msdownload"

    def test_too_large(self, policy, make_task):
        with pytest.raises(FileConstraintViolation) as exc_info:
            policy.check(make_task(), "image/png", 101, 0)

        assert exc_info.value.constraint == "size"

    def test_task_quota(self, policy, make_task):
        task = make_task(max_files=1)

        policy.check(task, "image/png", 10, 0)
        with pytest.raises(FileConstraintViolation) as exc_info:
            policy.check(task, "image/png", 10, 1)

        assert exc_info.value.constraint == "count"
        assert exc_info.value.details["max_files"] == 1

    def test_null_quota_falls_back_to_default(self, policy, make_task):
        task = make_task(max_files=None)

        assert policy.max_files_for(task) == 3
        with pytest.raises(FileConstraintViolation):
            policy.check(task, "image/png", 10, 3)

    def test_zero_quota_allows_no_files(self, policy, make_task):
        with pytest.raises(FileConstraintViolation):
            policy.check(make_task(max_files=0), "image/png", 10, 0)

    def test_from_settings(self):
        settings = SimpleNamespace(
            ALLOWED_FILE_TYPES=["text/plain"], max_upload_size_bytes=50 * 1024 * 1024, DEFAULT_MAX_FILES=10
        )

        policy = FilePolicy.from_settings(settings)

        assert policy.allowed_types == frozenset({"text/plain"})
        assert policy.max_file_size == 52428800
        assert policy.default_max_files == 10


class TestContentEditability:

    def test_open_draft_on_accepted_task(self, make_task, make_submission):
        task = make_task(status=TaskStatus.IN_PROGRESS, acceptance_status=AcceptanceStatus.ACCEPTED)

        ensure_content_editable(task, None)
        ensure_content_editable(task, make_submission(task))

    @pytest.mark.parametrize("acceptance", [
        AcceptanceStatus.PENDING, AcceptanceStatus.REJECTED, AcceptanceStatus.EXTENSION_REQUESTED
    ])
    def test_requires_accepted_assignment(self, make_task, acceptance):
        task = make_task(acceptance_status=acceptance)

        with pytest.raises(InvalidTransition):
            ensure_content_editable(task, None)

    def test_submitted_content_is_frozen(self, make_task, make_submission):
        task = make_task(status=TaskStatus.SUBMITTED, acceptance_status=AcceptanceStatus.ACCEPTED)
        submission = make_submission(task, status=SubmissionStatus.SUBMITTED)

        with pytest.raises(InvalidTransition):
            ensure_content_editable(task, submission)

    def test_approved_edit_reopens_submitted_content(self, make_task, make_submission):
        task = make_task(
            status=TaskStatus.SUBMITTED,
            acceptance_status=AcceptanceStatus.ACCEPTED,
            edit_request_status=EditRequestStatus.APPROVED,
        )
        submission = make_submission(task, status=SubmissionStatus.SUBMITTED)

        ensure_content_editable(task, submission)

    def test_reviewed_content_stays_frozen(self, make_task, make_submission):
        task = make_task(
            status=TaskStatus.REVIEWED,
            acceptance_status=AcceptanceStatus.ACCEPTED,
            edit_request_status=EditRequestStatus.APPROVED,
        )
        submission = make_submission(task, status=SubmissionStatus.REVIEWED)

        with pytest.raises(InvalidTransition):
            ensure_content_editable(task, submission)
