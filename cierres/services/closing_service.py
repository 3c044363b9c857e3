"""
DailyClosingsService - Per-company ledger of daily cash closings.

Save algorithm:
1. Validate company id and normalize the record
2. Load the current document (or start empty)
3. Replace any record with the same id in the record's date bucket,
   newest record first
4. Trim the whole map to the retention cap
5. Replace the whole document
6. Read the document back and confirm the record is there

Saves for the same company are serialized within one process. Across
processes the whole-document write is last-write-wins.
"""

import asyncio
import logging
from collections import Counter
from contextlib import asynccontextmanager
from datetime import tzinfo
from typing import Dict, List, Optional, Union

from cierres.core.config import settings
from cierres.core.exceptions import (
    InvalidRecordError,
    InvalidTenantError,
    PersistVerificationError,
)
from cierres.models.closing import DailyClosingRecord, DailyClosingsDocument
from cierres.repositories.document_repo import DocumentStore
from cierres.utils.date_keys import date_key_of
from cierres.utils.normalization import sanitize_document, sanitize_record
from cierres.utils.retention import sort_records_descending, trim_closings_map
from cierres.utils.timeutils import isoformat, resolve_timezone, utc_now

logger = logging.getLogger(__name__)


class DailyClosingsService:
    def __init__(
        self,
        store: DocumentStore,
        collection: Optional[str] = None,
        max_records: Optional[int] = None,
        tz: Union[str, tzinfo, None] = None
    ):
        self.store = store
        self.collection = collection or settings.CLOSINGS_COLLECTION
        self.max_records = max_records if max_records is not None else settings.MAX_CLOSING_RECORDS
        self.tz = resolve_timezone(tz if tz is not None else settings.LEDGER_TIMEZONE)
        self._locks: Dict[str, asyncio.Lock] = {}
        self._lock_users: Counter = Counter()

    @staticmethod
    def build_document_id(company: Optional[str]) -> str:
        if not isinstance(company, str):
            return ""
        return company.strip()

    def date_key_of(self, value) -> str:
        return date_key_of(value, self.tz)

    @asynccontextmanager
    async def _company_lock(self, doc_id: str):
        """Serialize saves of one company. The lock is dropped once nobody holds or awaits it."""
        lock = self._locks.get(doc_id)
        if lock is None:
            lock = self._locks[doc_id] = asyncio.Lock()
        self._lock_users[doc_id] += 1
        try:
            async with lock:
                yield
        finally:
            self._lock_users[doc_id] -= 1
            if not self._lock_users[doc_id]:
                del self._lock_users[doc_id]
                del self._locks[doc_id]

    @staticmethod
    def extract_all_closings(document: DailyClosingsDocument) -> List[DailyClosingRecord]:
        """All records of a document, newest first."""
        return sort_records_descending(
            record
            for records in document.closings_by_date.values()
            for record in records
        )

    async def get_document(self, company: str) -> Optional[DailyClosingsDocument]:
        """Get the normalized closings document, None if the company has none."""
        doc_id = self.build_document_id(company)
        if not doc_id:
            return None
        raw = await self.store.get_by_id(self.collection, doc_id)
        if raw is None:
            return None
        return sanitize_document(raw, doc_id, self.tz, self.max_records)

    async def get_closings_for_date(self, company: str, date_key: str) -> List[DailyClosingRecord]:
        """Get the records of one date bucket, newest first."""
        document = await self.get_document(company)
        if document is None:
            return []
        return list(document.closings_by_date.get(self.date_key_of(date_key), []))

    async def save_closing(self, company: str, record) -> DailyClosingRecord:
        """
        Upsert a closing record by id.

        Returns the normalized record that was persisted.
        Raises InvalidTenantError, InvalidRecordError or PersistVerificationError.
        """
        doc_id = self.build_document_id(company)
        if not doc_id:
            raise InvalidTenantError()

        sanitized = sanitize_record(record, self.tz)
        if sanitized is None or not sanitized.id:
            raise InvalidRecordError()

        async with self._company_lock(doc_id):
            existing = await self.get_document(doc_id)
            current = dict(existing.closings_by_date) if existing else {}

            date_key = self.date_key_of(sanitized.closing_date)
            bucket = [item for item in current.get(date_key, []) if item.id != sanitized.id]
            current[date_key] = [sanitized] + bucket

            payload = DailyClosingsDocument(
                company=existing.company if existing else doc_id,
                updated_at=isoformat(utc_now()),
                closings_by_date=trim_closings_map(current, self.max_records, self.tz),
            )
            await self.store.add_with_id(self.collection, doc_id, payload.to_document())
            logger.info(
                "Saved closing %s for %s under %s (%d records)",
                sanitized.id,
                doc_id,
                date_key,
                payload.record_count()
            )

            await self._verify_saved(doc_id, date_key, sanitized.id)

        return sanitized

    async def _verify_saved(self, doc_id: str, date_key: str, record_id: str) -> None:
        verify_doc = await self.get_document(doc_id)
        if verify_doc is None:
            logger.error("Closings document %s missing after save", doc_id)
            raise PersistVerificationError(record_id, date_key, document_missing=True)
        if verify_doc.find_record(date_key, record_id) is None:
            logger.error("Closing %s not found in %s/%s after save", record_id, doc_id, date_key)
            raise PersistVerificationError(record_id, date_key)
