import copy
import pytest
from typing import Any, Dict, Optional

from cierres.services.closing_service import DailyClosingsService


class InMemoryDocumentStore:
    """Document store double keeping deep copies, like a real round trip."""

    def __init__(self):
        self.collections: Dict[str, Dict[str, Dict[str, Any]]] = {}
        self.writes = 0

    async def get_by_id(self, collection: str, document_id: str) -> Optional[Dict[str, Any]]:
        doc = self.collections.get(collection, {}).get(document_id)
        return copy.deepcopy(doc) if doc is not None else None

    async def add_with_id(self, collection: str, document_id: str, document: Dict[str, Any]) -> None:
        self.writes += 1
        self.collections.setdefault(collection, {})[document_id] = copy.deepcopy(document)

    def put(self, collection: str, document_id: str, document: Dict[str, Any]) -> None:
        self.collections.setdefault(collection, {})[document_id] = copy.deepcopy(document)


class DroppingDocumentStore(InMemoryDocumentStore):
    """Acknowledges writes but never persists them."""

    async def add_with_id(self, collection: str, document_id: str, document: Dict[str, Any]) -> None:
        self.writes += 1


@pytest.fixture
def store():
    return InMemoryDocumentStore()


@pytest.fixture
def dropping_store():
    return DroppingDocumentStore()


@pytest.fixture
def service(store):
    return DailyClosingsService(store, collection="cierres", max_records=50, tz="UTC")


@pytest.fixture
def sample_closing():
    """A closing as the cash-count form submits it."""
    return {
        "id": "dc_1717250000000_abc123",
        "createdAt": "2024-06-01T14:30:00.000Z",
        "closingDate": "2024-06-01T14:00:00.000Z",
        "manager": "  Ana  ",
        "totalCRC": "125000.75",
        "totalUSD": 40,
        "recordedBalanceCRC": 120000,
        "recordedBalanceUSD": 40.9,
        "diffCRC": 5000,
        "diffUSD": 0,
        "notes": " Sobrante por vuelto ",
        "breakdownCRC": {"20000": 5, "10000": 2, "5000": 1, "1000": 0},
        "breakdownUSD": {"20": 2},
    }
