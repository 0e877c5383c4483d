"""
MongoDB access for the apartment management collections.

`connect()` opens the shared client and sets the module-level `db` handle.
The helpers below take a collection name and plain dicts (or Pydantic
models) so that the rest of the code never touches the driver directly.
"""
import logging
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Union

from bson import ObjectId
from pydantic import BaseModel
from pymongo import MongoClient
from pymongo.errors import PyMongoError

from config import settings
from errors import DatabaseNotConfigured

logger = logging.getLogger(__name__)

client: Optional[MongoClient] = None
db = None


def connect(uri: Optional[str] = None, database_name: Optional[str] = None):
    """Open the client and select the database. Returns the database handle,
    or None when no connection string is configured."""
    global client, db

    uri = uri or settings.MONGODB_URI
    if not uri:
        logger.warning("MONGODB_URI is not set; running without a database")
        return None

    logger.info("Connecting to MongoDB...")
    client = MongoClient(
        uri,
        maxPoolSize=settings.MONGO_MAX_POOL_SIZE,
        serverSelectionTimeoutMS=settings.MONGO_SERVER_SELECTION_TIMEOUT_MS,
        socketTimeoutMS=settings.MONGO_SOCKET_TIMEOUT_MS,
        tz_aware=True,
    )
    try:
        client.admin.command("ping")
    except PyMongoError as e:
        logger.error("MongoDB connection failed: %s", e)
        logger.error("Check the connection string in your .env file")
        client.close()
        client = None
        raise

    db = client[database_name or settings.DATABASE_NAME]
    host, port = client.address or ("unknown", 0)
    logger.info("MongoDB connected: database=%s host=%s:%s", db.name, host, port)
    return db


def close() -> None:
    global client, db
    if client is not None:
        logger.info("Closing MongoDB connection")
        client.close()
    client = None
    db = None


def connection_status() -> Dict[str, Any]:
    status = {
        "mongodb": "disconnected",
        "database": None,
        "timestamp": datetime.now(timezone.utc).isoformat(),
    }
    if db is None or client is None:
        return status
    try:
        client.admin.command("ping")
        status["mongodb"] = "connected"
        status["database"] = db.name
    except PyMongoError as e:
        logger.warning("MongoDB ping failed: %s", e)
        status["mongodb"] = "error"
    return status


def _require_db():
    if db is None:
        raise DatabaseNotConfigured()
    return db


def object_id(value: Union[str, ObjectId]) -> ObjectId:
    """Coerce a string id; raises bson.errors.InvalidId for malformed input."""
    if isinstance(value, ObjectId):
        return value
    return ObjectId(value)


def _as_dict(data: Union[BaseModel, Dict[str, Any]]) -> Dict[str, Any]:
    if isinstance(data, BaseModel):
        return data.model_dump(exclude_none=True)
    return dict(data)


def create_document(collection_name: str, data: Union[BaseModel, Dict[str, Any]]) -> str:
    """Insert one document, stamping created_at/updated_at when absent."""
    database = _require_db()
    doc = _as_dict(data)
    now = datetime.now(timezone.utc)
    doc.setdefault("created_at", now)
    doc.setdefault("updated_at", now)
    result = database[collection_name].insert_one(doc)
    return str(result.inserted_id)


def insert_documents(collection_name: str, documents: List[Union[BaseModel, Dict[str, Any]]]) -> List[str]:
    database = _require_db()
    if not documents:
        return []
    now = datetime.now(timezone.utc)
    docs = []
    for item in documents:
        doc = _as_dict(item)
        doc.setdefault("created_at", now)
        doc.setdefault("updated_at", now)
        docs.append(doc)
    result = database[collection_name].insert_many(docs)
    return [str(_id) for _id in result.inserted_ids]


def get_documents(
    collection_name: str,
    filter_dict: Optional[Dict[str, Any]] = None,
    limit: Optional[int] = None,
    sort: Optional[List[tuple]] = None,
    projection: Optional[Dict[str, Any]] = None,
) -> List[Dict[str, Any]]:
    database = _require_db()
    cursor = database[collection_name].find(filter_dict or {}, projection)
    if sort:
        cursor = cursor.sort(sort)
    if limit:
        cursor = cursor.limit(int(limit))
    return list(cursor)


def get_document(collection_name: str, document_id: Union[str, ObjectId]) -> Optional[Dict[str, Any]]:
    database = _require_db()
    return database[collection_name].find_one({"_id": object_id(document_id)})


def replace_document(
    collection_name: str,
    document_id: Union[str, ObjectId],
    data: Union[BaseModel, Dict[str, Any]],
) -> bool:
    database = _require_db()
    doc = _as_dict(data)
    doc.pop("_id", None)
    doc["updated_at"] = datetime.now(timezone.utc)
    result = database[collection_name].replace_one({"_id": object_id(document_id)}, doc)
    return result.matched_count > 0


def delete_documents(collection_name: str, filter_dict: Optional[Dict[str, Any]] = None) -> int:
    database = _require_db()
    result = database[collection_name].delete_many(filter_dict or {})
    return result.deleted_count


def aggregate(collection_name: str, pipeline: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
    database = _require_db()
    return list(database[collection_name].aggregate(pipeline))


def ensure_indexes(collection_name: str, indexes: List[tuple]) -> List[str]:
    """Create the (keys, options) index specs declared by a model."""
    database = _require_db()
    names = []
    for keys, options in indexes:
        names.append(database[collection_name].create_index(keys, **options))
    logger.debug("Indexes ensured on %s: %s", collection_name, names)
    return names
