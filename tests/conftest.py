# tests/conftest.py
import logging
import os
import uuid
from typing import Any, AsyncGenerator, Dict, List, Optional

import motor.motor_asyncio
import pytest
import pytest_asyncio
from pymongo import MongoClient
from pymongo.errors import PyMongoError

from async_model_resources.db_implementations.mongodb_repository import \
    MongoDBRepository

# Silence verbose loggers
logging.getLogger("pymongo").setLevel(logging.ERROR)
logging.getLogger("motor").setLevel(logging.ERROR)

# --- Constants ---
TEST_MONGO_DB_NAME = "pytest_async_model_resources_db"
MONGO_URI = os.getenv("TEST_MONGO_URI", "mongodb://localhost:27017")


# --- Availability Checks ---
def is_mongodb_available() -> bool:
    """Check if MongoDB answers a ping."""
    client = MongoClient(MONGO_URI, serverSelectionTimeoutMS=1000)
    try:
        client.admin.command("ping")
        logging.info(f"MongoDB found and responsive at {MONGO_URI}")
        return True
    except PyMongoError as e:
        logging.warning(
            f"MongoDB not found or not responsive at {MONGO_URI}: {e}. "
            "Skipping MongoDB tests."
        )
        return False
    finally:
        client.close()


_MONGODB_AVAILABLE: Optional[bool] = None


def mongodb_available() -> bool:
    global _MONGODB_AVAILABLE
    if _MONGODB_AVAILABLE is None:
        _MONGODB_AVAILABLE = is_mongodb_available()
    return _MONGODB_AVAILABLE


# --- Fixtures ---
@pytest.fixture
def logger():
    """Create a test logger."""
    _logger = logging.getLogger("test_resources_logger")
    if not _logger.handlers:
        handler = logging.StreamHandler()
        formatter = logging.Formatter(
            "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
        )
        handler.setFormatter(formatter)
        handler.setLevel(logging.DEBUG)
        _logger.addHandler(handler)
        _logger.setLevel(logging.DEBUG)
        _logger.propagate = False
    return logging.LoggerAdapter(_logger, {})


@pytest_asyncio.fixture
async def motor_client() -> AsyncGenerator[motor.motor_asyncio.AsyncIOMotorClient, None]:
    """Motor client of the test server; the test is skipped when no server answers."""
    if not mongodb_available():
        pytest.skip(f"MongoDB is not available at {MONGO_URI}")
    client = motor.motor_asyncio.AsyncIOMotorClient(
        MONGO_URI, serverSelectionTimeoutMS=2000
    )
    yield client
    client.close()


@pytest_asyncio.fixture
async def mongo_repository(motor_client):
    """Repository over a clean database, stamping the schema version 'v2'."""
    await motor_client.drop_database(TEST_MONGO_DB_NAME)
    yield MongoDBRepository(motor_client, TEST_MONGO_DB_NAME, "v2")
    await motor_client.drop_database(TEST_MONGO_DB_NAME)


@pytest.fixture
def collection_name() -> str:
    return f"collection_{uuid.uuid4().hex[:8]}"
