"""Errors raised by the closings ledger to its callers."""
from typing import Optional


class ClosingError(Exception):
    """Base exception for closing ledger failures."""

    status_code: int = 400

    def __init__(self, message: str, status_code: Optional[int] = None):
        self.message = message
        if status_code is not None:
            self.status_code = status_code
        super().__init__(self.message)


class InvalidTenantError(ClosingError):
    """Company identifier is missing or blank."""

    status_code = 400

    def __init__(self, message: str = "Company ID is required for saving closing"):
        super().__init__(message)


class InvalidRecordError(ClosingError):
    """Closing record could not be normalized."""

    status_code = 422

    def __init__(self, message: str = "Invalid closing record data"):
        super().__init__(message)


class PersistVerificationError(ClosingError):
    """The saved record was not found when the document was read back."""

    status_code = 500

    def __init__(self, record_id: str, date_key: str, document_missing: bool = False):
        self.record_id = record_id
        self.date_key = date_key
        self.document_missing = document_missing
        if document_missing:
            message = "Failed to verify closing save: document not found after save"
        else:
            message = f"Failed to verify closing save: record {record_id} not found after save"
        super().__init__(message)
