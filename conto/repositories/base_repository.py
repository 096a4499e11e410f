"""
Base repository with generic CRUD operations for MongoDB.
All entity-specific repositories should inherit from this.
"""
from typing import Optional, List, Dict, Any, Tuple
from motor.motor_asyncio import AsyncIOMotorCollection
from pymongo.errors import BulkWriteError
from datetime import datetime, timezone
import logging

logger = logging.getLogger(__name__)

# Documents are addressed by their string "id"; Mongo's _id never leaves the repository
NO_OBJECT_ID = {"_id": 0}


class BaseRepository:
    """
    Generic repository for MongoDB CRUD operations.

    Provides standard methods: create, bulk_create, find_one, find_all, count, update_one.
    """

    def __init__(self, collection: AsyncIOMotorCollection):
        """
        Initialize repository with MongoDB collection.

        Args:
            collection: Motor AsyncIOMotorCollection instance
        """
        self.collection = collection

    async def create(self, document: Dict[str, Any]) -> str:
        """
        Create a new document.

        Args:
            document: Document data (must carry its own "id")

        Returns:
            str: Created document ID
        """
        document = dict(document)
        document.setdefault("created_at", datetime.now(timezone.utc).isoformat())
        await self.collection.insert_one(document)
        logger.debug(f"Created document in {self.collection.name}: {document.get('id')}")
        return document.get("id")

    async def bulk_create(self, documents: List[Dict[str, Any]]) -> Tuple[int, List[int]]:
        """
        Insert documents without stopping at the first failure.

        Args:
            documents: Documents to insert

        Returns:
            (number inserted, indexes of the documents that failed)
        """
        if not documents:
            return 0, []

        payload = [dict(doc) for doc in documents]
        try:
            result = await self.collection.insert_many(payload, ordered=False)
            inserted = len(result.inserted_ids)
            failed: List[int] = []
        except BulkWriteError as e:
            write_errors = e.details.get("writeErrors", [])
            failed = sorted({err["index"] for err in write_errors})
            inserted = e.details.get("nInserted", len(payload) - len(failed))
            logger.error(
                f"Bulk insert in {self.collection.name}: {len(failed)} documents rejected",
                extra={"status_code": 500}
            )

        logger.info(f"Created {inserted} documents in {self.collection.name}")
        return inserted, failed

    async def find_one(self, filter_query: Dict[str, Any]) -> Optional[Dict[str, Any]]:
        """
        Find single document matching filter.

        Args:
            filter_query: MongoDB filter query

        Returns:
            Document data or None if not found
        """
        return await self.collection.find_one(filter_query, NO_OBJECT_ID)

    async def find_by_id(self, doc_id: str) -> Optional[Dict[str, Any]]:
        if not doc_id:
            return None
        return await self.find_one({"id": doc_id})

    async def find_all(
        self,
        filter_query: Optional[Dict[str, Any]] = None,
        skip: int = 0,
        limit: int = 0,
        sort: Optional[List[tuple]] = None
    ) -> List[Dict[str, Any]]:
        """
        Find all documents matching filter with pagination.

        Args:
            filter_query: MongoDB filter query (None for all documents)
            skip: Number of documents to skip
            limit: Maximum number of documents to return (0 = no limit)
            sort: List of (field, direction) tuples for sorting

        Returns:
            List of documents
        """
        cursor = self.collection.find(filter_query or {}, NO_OBJECT_ID)
        if sort:
            cursor = cursor.sort(sort)
        if skip:
            cursor = cursor.skip(skip)
        if limit:
            cursor = cursor.limit(limit)
        return await cursor.to_list(length=None)

    async def count(self, filter_query: Optional[Dict[str, Any]] = None) -> int:
        """
        Count documents matching filter.

        Args:
            filter_query: MongoDB filter query

        Returns:
            Number of matching documents
        """
        return await self.collection.count_documents(filter_query or {})

    async def update_one(self, filter_query: Dict[str, Any], fields: Dict[str, Any]) -> bool:
        """
        Set fields on the first document matching filter.

        Returns:
            True if a document was modified
        """
        result = await self.collection.update_one(filter_query, {"$set": fields})
        if result.modified_count > 0:
            logger.info(f"Updated document in {self.collection.name}: {filter_query}")
            return True
        return False
