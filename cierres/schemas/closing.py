from typing import List, Optional
from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel
from cierres.models.closing import DailyClosingRecord


class ClosingsResponse(BaseModel):
    """Records of one company, optionally limited to one date bucket."""
    company: str
    date_key: Optional[str] = None
    count: int
    closings: List[DailyClosingRecord]

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)
