"""
Document store access by collection name + document id.

The closings ledger only needs two operations:
- get_by_id: fetch a whole document, None when absent
- add_with_id: replace a whole document (upsert, overwrite semantics)
"""

import logging
from typing import Any, Dict, Optional, Protocol

from motor.motor_asyncio import AsyncIOMotorDatabase

logger = logging.getLogger(__name__)


class DocumentStore(Protocol):
    async def get_by_id(self, collection: str, document_id: str) -> Optional[Dict[str, Any]]:
        ...

    async def add_with_id(self, collection: str, document_id: str, document: Dict[str, Any]) -> None:
        ...


class MongoDocumentRepository:
    """MongoDB-backed document store; the document id is stored as `_id`."""

    def __init__(self, db: AsyncIOMotorDatabase):
        self.db = db

    async def get_by_id(self, collection: str, document_id: str) -> Optional[Dict[str, Any]]:
        """Get a document by id without its `_id` field."""
        doc = await self.db[collection].find_one({"_id": document_id})
        if doc is None:
            return None
        doc.pop("_id", None)
        return doc

    async def add_with_id(self, collection: str, document_id: str, document: Dict[str, Any]) -> None:
        """Replace the whole document, creating it when missing."""
        payload = {key: value for key, value in document.items() if key != "_id"}
        await self.db[collection].replace_one(
            {"_id": document_id},
            payload,
            upsert=True
        )
        logger.debug("Replaced %s/%s", collection, document_id)
