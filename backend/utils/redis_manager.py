"""
Redis manager for Taskflow's change notifications.
Publishes workflow events so dashboards can refetch the affected tasks.
"""

from typing import Optional

import redis.asyncio as redis
from redis.asyncio import Redis

from config import settings
from models.events import TaskflowEvent
from utils.logging import get_logger

logger = get_logger("redis_manager")

# Global Redis client instance
_redis_client: Optional[Redis] = None


async def get_redis() -> Optional[Redis]:
    """Get the global Redis client instance, or None if Redis is unreachable."""
    global _redis_client

    if _redis_client is None:
        client = redis.Redis.from_url(
            settings.REDIS_URL,
            decode_responses=True,
            health_check_interval=30,
            socket_keepalive=True,
            retry_on_timeout=True,
        )
        try:
            await client.ping()
        except (redis.ConnectionError, redis.TimeoutError) as e:
            logger.warning(
                "Failed to connect to Redis, events will be logged but not broadcast",
                extra={
                    "data": {
                        "error": str(e),
                        "redis_url": settings.REDIS_URL,
                    }
                }
            )
            await client.aclose()
            return None

        _redis_client = client
        logger.info(
            "Connected to Redis successfully",
            extra={"data": {"redis_url": settings.REDIS_URL}}
        )

    return _redis_client


async def publish(event: TaskflowEvent, channel: Optional[str] = None) -> bool:
    """
    Publish an event to a Redis channel.

    Args:
        event: The TaskflowEvent to publish
        channel: Redis channel name (default: settings.EVENTS_CHANNEL)

    Returns:
        bool: True if published successfully, False otherwise
    """
    channel = channel or settings.EVENTS_CHANNEL
    try:
        redis_client = await get_redis()
        if redis_client is None:
            logger.debug(
                "Redis not available, skipping event publish",
                extra={
                    "data": {
                        "event_id": event.id,
                        "event_type": event.type,
                        "channel": channel
                    }
                }
            )
            return False

        subscribers = await redis_client.publish(channel, event.model_dump_json())

        logger.info(
            "Published event to Redis channel",
            extra={
                "data": {
                    "event_id": event.id,
                    "event_type": event.type,
                    "channel": channel,
                    "subscribers": subscribers,
                    "source": event.source
                }
            }
        )
        return True

    except redis.ConnectionError:
        logger.warning(
            "Redis connection lost, failed to publish event",
            extra={
                "data": {
                    "event_id": event.id,
                    "event_type": event.type,
                    "channel": channel
                }
            }
        )
        return False
    except Exception as e:
        logger.error(
            "Failed to publish event to Redis",
            exc_info=True,
            extra={
                "data": {
                    "event_id": event.id,
                    "event_type": event.type,
                    "channel": channel,
                    "error": str(e)
                }
            }
        )
        return False


async def check_redis_connection() -> bool:
    """Redis health check used by /health."""
    try:
        redis_client = await get_redis()
        if redis_client is None:
            return False
        await redis_client.ping()
        return True
    except Exception as e:
        logger.error(
            "Redis health check failed",
            exc_info=True,
            extra={"data": {"error": str(e)}}
        )
        return False


async def close_redis():
    """Close the Redis connection."""
    global _redis_client

    if _redis_client:
        try:
            await _redis_client.aclose()
            logger.info("Redis connection closed")
        except Exception as e:
            logger.error(f"Error closing Redis connection: {e}")
        finally:
            _redis_client = None
