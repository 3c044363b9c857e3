from typing import Any, Dict, Optional
from fastapi import APIRouter, Body, Depends, HTTPException, status

from cierres.db.mongo import get_db
from cierres.models.closing import DailyClosingRecord, DailyClosingsDocument
from cierres.repositories.document_repo import MongoDocumentRepository
from cierres.schemas.closing import ClosingsResponse
from cierres.services.closing_service import DailyClosingsService

router = APIRouter()

_service: Optional[DailyClosingsService] = None


def get_closings_service() -> DailyClosingsService:
    """Service bound to the active database, reused so per-company locks are shared."""
    global _service
    db = get_db()
    if _service is None or _service.store.db is not db:
        _service = DailyClosingsService(MongoDocumentRepository(db))
    return _service


@router.get("/{company}", response_model=DailyClosingsDocument)
async def get_closings_document(
    company: str,
    service: DailyClosingsService = Depends(get_closings_service)
):
    """Get the whole closings document for a company"""
    document = await service.get_document(company)
    if document is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Closings not found"
        )
    return document


@router.get("/{company}/records", response_model=ClosingsResponse)
async def list_closings(
    company: str,
    service: DailyClosingsService = Depends(get_closings_service)
):
    """List every retained closing for a company, newest first"""
    document = await service.get_document(company)
    closings = service.extract_all_closings(document) if document else []
    return ClosingsResponse(
        company=service.build_document_id(company),
        count=len(closings),
        closings=closings
    )


@router.get("/{company}/dates/{date_key}", response_model=ClosingsResponse)
async def list_closings_for_date(
    company: str,
    date_key: str,
    service: DailyClosingsService = Depends(get_closings_service)
):
    """List the closings filed under one calendar date"""
    closings = await service.get_closings_for_date(company, date_key)
    return ClosingsResponse(
        company=service.build_document_id(company),
        date_key=service.date_key_of(date_key),
        count=len(closings),
        closings=closings
    )


@router.post("/{company}", response_model=DailyClosingRecord, status_code=status.HTTP_201_CREATED)
async def save_closing(
    company: str,
    payload: Dict[str, Any] = Body(...),
    service: DailyClosingsService = Depends(get_closings_service)
):
    """Create or replace (by id) a closing record"""
    return await service.save_closing(company, payload)
