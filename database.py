"""MongoDB connection management.

The Motor client is owned by a single ``MongoManager`` created at startup
and stored on ``app.state``. Request handlers never touch a module-level
handle; they receive the database through the ``get_db`` dependency.
"""

import asyncio
import logging
from typing import Optional

from fastapi import Request
from motor.motor_asyncio import AsyncIOMotorClient, AsyncIOMotorDatabase
from pymongo import ASCENDING, DESCENDING
import pymongo.errors

import config

logger = logging.getLogger(__name__)


class MongoManager:
    """Opens, verifies and closes the connection to the content store."""

    def __init__(
        self,
        url: str = config.MONGODB_URL,
        database_name: str = config.DATABASE_NAME,
        attempts: int = config.MONGO_CONNECT_ATTEMPTS,
        retry_delay: float = config.MONGO_RETRY_DELAY,
    ):
        self.url = url
        self.database_name = database_name
        self.attempts = max(1, attempts)
        self.retry_delay = retry_delay
        self.client: Optional[AsyncIOMotorClient] = None
        self.db: Optional[AsyncIOMotorDatabase] = None

    async def connect(self) -> AsyncIOMotorDatabase:
        """Connect and ping the server, retrying with a fixed delay.

        Raises the last connection error once every attempt has failed.
        """
        for attempt in range(1, self.attempts + 1):
            client = AsyncIOMotorClient(self.url)
            try:
                await client.admin.command("ping")
            except pymongo.errors.PyMongoError as e:
                client.close()
                logger.error(
                    f"Failed to connect MongoDB (attempt {attempt}/{self.attempts}): {e}"
                )
                if attempt == self.attempts:
                    raise
                await asyncio.sleep(self.retry_delay)
                continue

            self.client = client
            self.db = client[self.database_name]
            logger.info(f"Connected to MongoDB: {self.database_name}")
            return self.db

    async def close(self):
        if self.client is not None:
            self.client.close()
            logger.info("MongoDB connection closed")
        self.client = None
        self.db = None


async def ensure_indexes(db: AsyncIOMotorDatabase):
    """Create the indexes the queries and invariants rely on"""
    # Unique constraints
    await db[config.USERS].create_index("email", unique=True)

    # Lookups by owner and parent
    await db[config.ANSWERS].create_index([("question_id", ASCENDING)])
    await db[config.ANSWERS].create_index([("userId", ASCENDING), ("createdAt", DESCENDING)])
    await db[config.QUESTIONS].create_index([("userId", ASCENDING), ("createdAt", DESCENDING)])
    await db[config.QUESTIONS].create_index([("createdAt", DESCENDING)])


def get_db(request: Request) -> AsyncIOMotorDatabase:
    """Return the database handle owned by the running application."""
    manager: Optional[MongoManager] = getattr(request.app.state, "mongo", None)
    if manager is None or manager.db is None:
        raise pymongo.errors.ConnectionFailure("Database not available")
    return manager.db
