"""
ExamDesk Backend - Main FastAPI Application

Exams with automatic MCQ grading, teacher-reviewed essays and a
prepaid student wallet.
Version: 1.0
"""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from motor.motor_asyncio import AsyncIOMotorClient, AsyncIOMotorDatabase, AsyncIOMotorGridFSBucket

from examdesk import __version__
from examdesk.config.settings import settings
from examdesk.routes import create_api_router
from examdesk.services import GridFSObjectStorage, NotificationService

# Setup logging
logging.basicConfig(level=settings.LOG_LEVEL)
logger = logging.getLogger(__name__)

# Global database reference
db: AsyncIOMotorDatabase = None


@asynccontextmanager
async def lifespan(app: FastAPI):
    """FastAPI lifespan context manager for startup/shutdown."""
    global db

    logger.info("ExamDesk backend starting up...")

    try:
        settings.validate()

        client = AsyncIOMotorClient(
            settings.MONGODB_URL,
            maxPoolSize=50,
            serverSelectionTimeoutMS=5000
        )

        # Test connection
        await client.server_info()
        db = client[settings.DATABASE_NAME]
        logger.info(f"Connected to MongoDB: {settings.DATABASE_NAME}")

        await _create_indexes(db)
        logger.info("Database indexes created")

        setup_routes(app, db)
        logger.info("Application startup complete")

    except Exception as e:
        logger.error(f"Startup failed: {e}")
        raise

    yield

    logger.info("Shutting down...")
    if db is not None:
        db.client.close()
        logger.info("Database connection closed")


# (collection, keys, options, required)
# Required indexes back the write paths: the attempt counter upsert, submit
# idempotency and enrollment upserts. Startup fails without them.
INDEXES = [
    # Profiles & sessions
    ("profiles", "user_id", {"unique": True}, False),
    ("profiles", "parent_phone", {}, False),
    ("user_sessions", "session_token", {"unique": True}, False),

    # Catalog
    ("exams", "exam_id", {"unique": True}, False),
    ("exams", "course_id", {}, False),
    ("exams", "grade", {}, False),
    ("courses", "course_id", {"unique": True}, False),
    ("student_enrollments", [("student_id", 1), ("course_id", 1)], {"unique": True}, True),

    # Submissions & attempt counters
    ("exam_submissions", "submission_id", {"unique": True}, False),
    ("exam_submissions", [("exam_id", 1), ("student_id", 1)], {}, False),
    ("exam_submissions", [("student_id", 1), ("client_submission_id", 1)], {
        "unique": True,
        "partialFilterExpression": {"client_submission_id": {"$type": "string"}},
    }, True),
    ("exam_attempts", [("exam_id", 1), ("student_id", 1)], {"unique": True}, True),

    # Wallet
    ("payment_requests", "request_id", {"unique": True}, False),
    ("payment_requests", [("student_id", 1), ("created_at", -1)], {}, False),
    ("wallet_transactions", [("student_id", 1), ("created_at", -1)], {}, False),

    # Notifications
    ("notifications", [("user_id", 1), ("created_at", -1)], {}, False),
]


async def _create_indexes(db: AsyncIOMotorDatabase):
    """Create database indexes; a failed required index fails startup."""
    for collection, keys, options, required in INDEXES:
        try:
            await db[collection].create_index(keys, **options)
        except Exception as e:
            if required:
                logger.error(f"Required index on {collection} {keys} failed: {e}")
                raise
            logger.warning(f"Index creation warning on {collection}: {e}")


def setup_routes(app: FastAPI, db: AsyncIOMotorDatabase):
    """Include all API routes once the database is available."""
    storage = GridFSObjectStorage(AsyncIOMotorGridFSBucket(db))
    notifier = NotificationService(db)
    app.include_router(create_api_router(db, storage, notifier))
    logger.info("Routes registered")


# Create FastAPI application
app = FastAPI(
    title="ExamDesk API",
    description="Exams, grading and student wallet",
    version=__version__,
    lifespan=lifespan
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# Health check endpoint
@app.get("/api/health")
async def health_check():
    """Health check endpoint."""
    return {
        "status": "healthy",
        "version": __version__,
        "database": "connected" if db is not None else "disconnected"
    }


# Root endpoint
@app.get("/")
async def root():
    """Root endpoint."""
    return {
        "app": "ExamDesk",
        "version": __version__,
        "docs": "/docs",
        "health": "/api/health"
    }


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "main:app",
        host=settings.HOST,
        port=settings.PORT,
        reload=settings.DEBUG,
        log_level=settings.LOG_LEVEL.lower()
    )
