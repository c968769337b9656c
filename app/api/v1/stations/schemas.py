from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel

from app.core.enums import StationStatus
from app.core.schemas import ShortText


class StationCreate(BaseModel):
    name: ShortText
    location: ShortText


class StationUpdate(BaseModel):
    name: Optional[ShortText] = None
    location: Optional[ShortText] = None
    status: Optional[StationStatus] = None


class StationResponse(BaseModel):
    id: int
    name: str
    location: str
    status: str
    last_modified_by: Optional[int] = None
    last_verification_at: Optional[datetime] = None
    created_at: datetime
    updated_at: datetime

    class Config:
        from_attributes = True


class StationListItem(BaseModel):
    id: int
    name: str
    location: str
    status: str
    pump_count: int
    created_at: datetime
    updated_at: datetime


class StationPumpSummary(BaseModel):
    id: int
    pump_number: int
    main_rfid_tag: str
    status: str
    expected_child_tags_count: int


class StationDetailResponse(StationResponse):
    pump_count: int
    pumps: List[StationPumpSummary]
