"""
Database utility abstractions for MongoDB operations
"""

import logging
from typing import Optional, Dict, Any, List

from motor.motor_asyncio import AsyncIOMotorClient, AsyncIOMotorDatabase, AsyncIOMotorCollection
from pymongo import ASCENDING, DESCENDING, ReturnDocument
from pymongo.errors import DuplicateKeyError, PyMongoError

from .config import get_database_config, DatabaseConfig
from .exceptions import StorageError

logger = logging.getLogger(__name__)


class DatabaseManager:
    """
    Centralized database connection and operation manager.
    Provides a single point for database connections and index setup.
    """

    def __init__(self, config: Optional[DatabaseConfig] = None):
        self.config = config or get_database_config()
        self._client: Optional[AsyncIOMotorClient] = None
        self._database: Optional[AsyncIOMotorDatabase] = None
        self._collections: Dict[str, AsyncIOMotorCollection] = {}
        self._initialized = False

    async def initialize(self) -> None:
        """Initialize database connection and collections"""
        if self._initialized:
            return

        logger.info(f"Initializing database connection to {self.config.uri}")

        try:
            self._client = AsyncIOMotorClient(
                self.config.uri,
                maxPoolSize=self.config.max_pool_size,
                minPoolSize=self.config.min_pool_size,
                maxIdleTimeMS=self.config.max_idle_time_ms,
                serverSelectionTimeoutMS=self.config.server_selection_timeout_ms,
                tz_aware=True
            )

            # Test connection
            await self._client.admin.command('ping')
            logger.info("Database connection established successfully")

            self._database = self._client[self.config.name]

            # Initialize collections
            await self._setup_collections()

            self._initialized = True
            logger.info("Database manager initialized successfully")

        except PyMongoError as e:
            logger.error(f"Failed to initialize database: {e}")
            raise StorageError(f"Database unavailable: {e}") from e

    async def _setup_collections(self) -> None:
        """Setup database collections with proper indexes"""
        logger.info("Setting up database collections and indexes...")

        self._collections = {
            "donors": self._database[self.config.donors_collection],
            "recipients": self._database[self.config.recipients_collection],
            "matches": self._database[self.config.matches_collection],
            "metadata": self._database[self.config.metadata_collection],
        }

        await self._create_indexes()

    async def _create_indexes(self) -> None:
        """Create all necessary database indexes"""
        # Donor indexes
        donors = self._collections["donors"]
        await donors.create_index([("id", ASCENDING)], unique=True)
        await donors.create_index(
            [("wallet_address", ASCENDING)],
            unique=True,
            partialFilterExpression={"wallet_address": {"$type": "string"}}
        )
        await donors.create_index([("priority", DESCENDING)])
        await donors.create_index([("blood_type", ASCENDING), ("organs", ASCENDING)])

        # Recipient indexes
        recipients = self._collections["recipients"]
        await recipients.create_index([("id", ASCENDING)], unique=True)
        await recipients.create_index(
            [("wallet_address", ASCENDING)],
            unique=True,
            partialFilterExpression={"wallet_address": {"$type": "string"}}
        )
        await recipients.create_index([("priority", DESCENDING)])
        await recipients.create_index([("blood_type", ASCENDING), ("organ", ASCENDING)])

        # Match indexes; the pair index is what makes insert-if-absent atomic
        matches = self._collections["matches"]
        await matches.create_index([("id", ASCENDING)], unique=True)
        await matches.create_index([("donor_id", ASCENDING), ("recipient_id", ASCENDING)], unique=True)
        await matches.create_index([("priority", DESCENDING), ("match_score", DESCENDING)])
        await matches.create_index([("status", ASCENDING)])

        logger.info("Database indexes created successfully")

    async def cleanup(self) -> None:
        """Cleanup database connections"""
        if self._client:
            self._client.close()
            self._initialized = False
            logger.info("Database connections closed")

    @property
    def database(self) -> AsyncIOMotorDatabase:
        """Get the database instance"""
        if not self._initialized:
            raise RuntimeError("Database manager not initialized. Call initialize() first.")
        return self._database

    def get_collection(self, name: str) -> AsyncIOMotorCollection:
        """Get a collection by name"""
        if not self._initialized:
            raise RuntimeError("Database manager not initialized. Call initialize() first.")

        if name in self._collections:
            return self._collections[name]

        return self._database[name]

    async def health_check(self) -> Dict[str, Any]:
        """Perform database health check"""
        try:
            if not self._initialized:
                return {"status": "error", "message": "Database not initialized"}

            await self._client.admin.command('ping')
            stats = await self._database.command("dbStats")

            return {
                "status": "healthy",
                "database": self.config.name,
                "collections": stats.get("collections", 0),
                "objects": stats.get("objects", 0),
                "dataSize": stats.get("dataSize", 0),
            }

        except PyMongoError as e:
            logger.error(f"Database health check failed: {e}")
            return {
                "status": "unhealthy",
                "error": str(e)
            }


class BaseRepository:
    """
    Base repository class providing common MongoDB operations.

    Driver failures are logged and re-raised as StorageError so services see
    one transient error type regardless of backend.
    """

    def __init__(self, db_manager: DatabaseManager, collection_name: str):
        self.db_manager = db_manager
        self.collection_name = collection_name

    @property
    def collection(self) -> AsyncIOMotorCollection:
        """Get the collection for this repository"""
        return self.db_manager.get_collection(self.collection_name)

    def _storage_error(self, operation: str, error: Exception) -> StorageError:
        logger.error(f"Error in {operation} for {self.collection_name}: {error}")
        return StorageError(
            f"{operation} failed on {self.collection_name}",
            detail={"collection": self.collection_name, "error": str(error)}
        )

    async def find_one(
        self,
        filter_dict: Dict[str, Any],
        projection: Optional[Dict[str, Any]] = None
    ) -> Optional[Dict[str, Any]]:
        """Find a single document"""
        try:
            return await self.collection.find_one(filter_dict, projection)
        except PyMongoError as e:
            raise self._storage_error("find_one", e) from e

    async def find_many(
        self,
        filter_dict: Dict[str, Any],
        projection: Optional[Dict[str, Any]] = None,
        sort: Optional[List[tuple]] = None,
        limit: Optional[int] = None,
        skip: Optional[int] = None
    ) -> List[Dict[str, Any]]:
        """Find multiple documents"""
        try:
            cursor = self.collection.find(filter_dict, projection)

            if sort:
                cursor = cursor.sort(sort)
            if skip:
                cursor = cursor.skip(skip)
            if limit:
                cursor = cursor.limit(limit)

            return await cursor.to_list(length=limit)
        except PyMongoError as e:
            raise self._storage_error("find_many", e) from e

    async def insert_one(self, document: Dict[str, Any]) -> bool:
        """
        Insert a single document.

        Returns False when a unique index rejects the document.
        """
        try:
            await self.collection.insert_one(document)
            return True
        except DuplicateKeyError:
            return False
        except PyMongoError as e:
            raise self._storage_error("insert_one", e) from e

    async def update_one(
        self,
        filter_dict: Dict[str, Any],
        update_dict: Dict[str, Any],
        upsert: bool = False
    ) -> bool:
        """Update a single document"""
        try:
            result = await self.collection.update_one(filter_dict, update_dict, upsert=upsert)
            return result.matched_count > 0 or (upsert and result.upserted_id is not None)
        except PyMongoError as e:
            raise self._storage_error("update_one", e) from e

    async def find_one_and_update(
        self,
        filter_dict: Dict[str, Any],
        update_dict: Dict[str, Any],
        upsert: bool = False
    ) -> Optional[Dict[str, Any]]:
        """Atomically update a document and return its new version"""
        try:
            return await self.collection.find_one_and_update(
                filter_dict,
                update_dict,
                upsert=upsert,
                return_document=ReturnDocument.AFTER
            )
        except PyMongoError as e:
            raise self._storage_error("find_one_and_update", e) from e

    async def delete_many(self, filter_dict: Dict[str, Any]) -> int:
        """Delete multiple documents"""
        try:
            result = await self.collection.delete_many(filter_dict)
            return result.deleted_count
        except PyMongoError as e:
            raise self._storage_error("delete_many", e) from e

    async def count_documents(self, filter_dict: Dict[str, Any] = None) -> int:
        """Count documents matching the filter"""
        try:
            return await self.collection.count_documents(filter_dict or {})
        except PyMongoError as e:
            raise self._storage_error("count_documents", e) from e
