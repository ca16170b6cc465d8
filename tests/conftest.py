"""
Pytest configuration and fixtures for Taskflow backend tests.

Workflow tests run against a throwaway SQLite database per test, so version
counters, the unique submission constraint and transaction rollback are
exercised for real. File bytes go to an in-memory storage and change events
are recorded instead of published to Redis.
"""

import sys
from datetime import date
from pathlib import Path
from typing import Dict, List, Optional

import pytest
import pytest_asyncio

PROJECT_ROOT = Path(__file__).resolve().parent.parent
BACKEND_PATH = PROJECT_ROOT / "backend"
if str(BACKEND_PATH) not in sys.path:
    sys.path.insert(0, str(BACKEND_PATH))

from database.database import DatabaseManager
from models.events import TaskflowEvent
from models.models import UserRole
from models.tasks import TaskCreate
from services.file_storage import StoredFileMissing
from services.workflow_service import WorkflowService
from workflow.permissions import Actor
from workflow.submissions import FilePolicy


TEAM_ID = "team-a"
OTHER_TEAM_ID = "team-b"


class InMemoryFileStorage:
    """FileStorage keeping bytes in a dict."""

    def __init__(self):
        self.blobs: Dict[str, bytes] = {}
        self.deleted: List[str] = []
        self._counter = 0

    async def put(self, content: bytes, file_name: str) -> str:
        self._counter += 1
        key = f"{self._counter:04d}-{file_name}"
        self.blobs[key] = content
        return key

    async def get(self, key: str) -> bytes:
        if key not in self.blobs:
            raise StoredFileMissing(key)
        return self.blobs[key]

    async def delete(self, key: str) -> None:
        self.blobs.pop(key, None)
        self.deleted.append(key)


class RecordingPublisher:
    """Publisher stand-in that keeps every event."""

    def __init__(self):
        self.events: List[TaskflowEvent] = []

    async def __call__(self, event: TaskflowEvent) -> bool:
        self.events.append(event)
        return True

    def actions(self, event_type: Optional[str] = None) -> List[str]:
        return [e.data["action"] for e in self.events if event_type is None or e.type == event_type]


@pytest_asyncio.fixture
async def database(tmp_path):
    """Fresh SQLite database with all tables created."""
    manager = DatabaseManager(f"sqlite+aiosqlite:///{tmp_path / 'taskflow.db'}")
    await manager.create_tables()
    yield manager
    await manager.close()


@pytest.fixture
def storage():
    return InMemoryFileStorage()


@pytest.fixture
def publisher():
    return RecordingPublisher()


@pytest.fixture
def file_policy():
    return FilePolicy(
        allowed_types=frozenset({"application/pdf", "text/plain", "image/png"}),
        max_file_size=1024,
        default_max_files=10,
    )


@pytest.fixture
def service(database, storage, file_policy, publisher):
    return WorkflowService(
        database=database,
        storage=storage,
        file_policy=file_policy,
        publisher=publisher,
        max_retries=3,
    )


# === Actors ===

@pytest.fixture
def leader():
    return Actor(id="leader-1", role=UserRole.TEAM_LEADER, team_id=TEAM_ID)


@pytest.fixture
def other_leader():
    return Actor(id="leader-2", role=UserRole.TEAM_LEADER, team_id=OTHER_TEAM_ID)


@pytest.fixture
def assignee():
    return Actor(id="user-1", role=UserRole.USER, team_id=TEAM_ID)


@pytest.fixture
def outsider():
    return Actor(id="user-2", role=UserRole.USER, team_id=TEAM_ID)


@pytest.fixture
def admin():
    return Actor(id="admin-1", role=UserRole.ADMIN)


@pytest.fixture
def task_data(assignee):
    """Creation payload for a task assigned to `assignee` in TEAM_ID."""
    return TaskCreate(
        title="Quarterly report",
        description="Summarise Q2 numbers",
        assigned_user_id=assignee.id,
        team_id=TEAM_ID,
        deadline=date(2024, 6, 1),
    )
