import logging
from functools import lru_cache

from bson.errors import InvalidId
from bson.objectid import ObjectId
from pymongo import ASCENDING, MongoClient
from pymongo.database import Database

from .config import settings
from .exceptions import NotFoundError

logger = logging.getLogger(__name__)


@lru_cache(maxsize=1)
def get_client() -> MongoClient:
    logger.info("Connecting to MongoDB database %s", settings.db_name)
    return MongoClient(settings.mongo_uri)


def get_db() -> Database:
    """FastAPI dependency returning the application database."""
    return get_client()[settings.db_name]


def ensure_indexes(db: Database) -> None:
    db.users.create_index([("username", ASCENDING)], unique=True)
    db.users.create_index([("email", ASCENDING)], unique=True)
    db.posts.create_index([("userId", ASCENDING)])


def close_client() -> None:
    if get_client.cache_info().currsize:
        get_client().close()
        get_client.cache_clear()


def to_object_id(value: str, resource: str = "resource") -> ObjectId:
    """Parse a path identifier; anything that is not an ObjectId cannot exist."""
    try:
        return ObjectId(value)
    except (InvalidId, TypeError):
        raise NotFoundError(resource, value)
