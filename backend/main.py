"""
Taskflow Backend Server

REST API for the task assignment, negotiation and submission workflow.
"""

import asyncio
from contextlib import asynccontextmanager

import uvicorn
from dotenv import load_dotenv

# Load environment variables FIRST before importing config
load_dotenv()

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from api.submission_endpoints import router as submission_router
from api.system_endpoints import SERVICE_NAME, SERVICE_VERSION, router as system_router
from api.task_endpoints import router as task_router
from config import settings
from database.database import db_manager
from utils.logging import RequestLoggingMiddleware, configure_logging, get_logger, log_system_state_change
from utils.redis_manager import close_redis

configure_logging(
    service_name=SERVICE_NAME,
    log_level=settings.LOG_LEVEL,
    enable_json=settings.LOG_JSON,
)

logger = get_logger("main")


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan events."""
    logger.info("Starting Taskflow Backend Server...")

    # Schema is managed externally; only create tables when explicitly asked
    if settings.CREATE_TABLES:
        try:
            await db_manager.create_tables()
            log_system_state_change("database", "tables_created", {"url": db_manager.engine.url.render_as_string()})
        except Exception as e:
            logger.error(f"Failed to create database tables: {e}")
            raise

    logger.info("Taskflow Backend Server started successfully")

    yield

    logger.info("Shutting down Taskflow Backend Server...")
    await close_redis()
    await db_manager.close()
    logger.info("Taskflow Backend Server shutdown complete")


app = FastAPI(
    title="Taskflow Backend API",
    description="Task lifecycle workflow: assignment negotiation, edit requests and submissions",
    version=SERVICE_VERSION,
    lifespan=lifespan
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.add_middleware(RequestLoggingMiddleware, service_name=SERVICE_NAME)

app.include_router(system_router)
app.include_router(task_router)
app.include_router(submission_router)


async def main():
    """Main entry point."""
    logger.info(f"Starting server on {settings.HOST}:{settings.PORT}")

    config = uvicorn.Config(
        app,
        host=settings.HOST,
        port=settings.PORT,
        log_level=settings.LOG_LEVEL.lower()
    )

    server = uvicorn.Server(config)
    await server.serve()


if __name__ == "__main__":
    asyncio.run(main())
