"""
Closing models - Daily cash-count reconciliation records.

Design principles:
- One document per company, records bucketed by calendar date (YYYY-MM-DD)
- Buckets are sorted newest-first
- At most MAX_CLOSING_RECORDS records per company across all buckets
- All amounts are whole currency units (integers)
- Persisted field names are camelCase
"""

from typing import Dict, List, Literal, Optional
from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class ClosingModel(BaseModel):
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        from_attributes=True
    )

    def to_document(self) -> dict:
        """Persistable form: camelCase keys, string map keys, no empty optionals."""
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)


class RemovedAdjustment(ClosingModel):
    """A pending adjustment that was cleared during a close."""
    id: Optional[str] = None
    currency: Optional[Literal["CRC", "USD"]] = None
    amount: Optional[int] = None
    amount_ingreso: Optional[int] = None
    amount_egreso: Optional[int] = None
    manager: Optional[str] = None
    created_at: Optional[str] = None


class AdjustmentResolution(ClosingModel):
    removed_adjustments: Optional[List[RemovedAdjustment]] = None
    note: Optional[str] = None
    post_adjustment_balance_crc: Optional[int] = Field(
        default=None, alias="postAdjustmentBalanceCRC"
    )
    post_adjustment_balance_usd: Optional[int] = Field(
        default=None, alias="postAdjustmentBalanceUSD"
    )


class DailyClosingRecord(ClosingModel):
    """
    One cash-count reconciliation event.

    Invariants:
    - id is non-empty and unique within a company
    - created_at and closing_date are ISO-8601 strings
    - breakdown counts are positive; absent denomination means zero units
    """
    id: str
    created_at: str
    closing_date: str
    manager: str = ""

    # Declared counts vs. balances recorded in the system
    total_crc: int = Field(default=0, alias="totalCRC")
    total_usd: int = Field(default=0, alias="totalUSD")
    recorded_balance_crc: int = Field(default=0, alias="recordedBalanceCRC")
    recorded_balance_usd: int = Field(default=0, alias="recordedBalanceUSD")
    diff_crc: int = Field(default=0, alias="diffCRC")
    diff_usd: int = Field(default=0, alias="diffUSD")

    notes: str = ""

    # denomination -> count
    breakdown_crc: Dict[int, int] = Field(default_factory=dict, alias="breakdownCRC")
    breakdown_usd: Dict[int, int] = Field(default_factory=dict, alias="breakdownUSD")

    adjustment_resolution: Optional[AdjustmentResolution] = None


class DailyClosingsDocument(ClosingModel):
    """Whole-company aggregate stored under the company id."""
    company: str
    updated_at: str
    closings_by_date: Dict[str, List[DailyClosingRecord]] = Field(default_factory=dict)

    def record_count(self) -> int:
        return sum(len(records) for records in self.closings_by_date.values())

    def find_record(self, date_key: str, record_id: str) -> Optional[DailyClosingRecord]:
        for record in self.closings_by_date.get(date_key, []):
            if record.id == record_id:
                return record
        return None
