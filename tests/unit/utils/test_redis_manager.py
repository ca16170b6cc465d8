"""
Tests for change-event publishing through Redis.
"""

import json
from unittest.mock import AsyncMock, patch

import pytest

from models.events import create_task_updated_event
from utils import redis_manager


@pytest.fixture
def event():
    return create_task_updated_event(
        task_id="task-1",
        status="in_progress",
        acceptance_status="accepted",
        edit_request_status="none",
        action="accepted",
        actor_id="user-1",
        assigned_user_id="user-1",
        team_id="team-a",
    )


@pytest.mark.asyncio
async def test_publish_to_default_channel(event):
    client = AsyncMock()
    client.publish.return_value = 2

    with patch.object(redis_manager, "get_redis", AsyncMock(return_value=client)):
        assert await redis_manager.publish(event) is True

    channel, payload = client.publish.call_args.args
    assert channel == "taskflow_events"
    body = json.loads(payload)
    assert body["type"] == "task_updated"
    assert body["data"]["action"] == "accepted"
    assert body["source"] == "workflow-service"


@pytest.mark.asyncio
async def test_publish_without_redis_is_skipped(event):
    with patch.object(redis_manager, "get_redis", AsyncMock(return_value=None)):
        assert await redis_manager.publish(event) is False


@pytest.mark.asyncio
async def test_publish_failure_never_raises(event):
    client = AsyncMock()
    client.publish.side_effect = RuntimeError("boom")

    with patch.object(redis_manager, "get_redis", AsyncMock(return_value=client)):
        assert await redis_manager.publish(event) is False


@pytest.mark.asyncio
async def test_health_check_reports_unavailable(event):
    with patch.object(redis_manager, "get_redis", AsyncMock(return_value=None)):
        assert await redis_manager.check_redis_connection() is False
