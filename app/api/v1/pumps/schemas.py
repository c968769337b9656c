from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, Field, model_validator

from app.core.enums import PumpStatus
from app.core.schemas import ShortText


class ExpectedTagInput(BaseModel):
    tag_id: ShortText
    description: Optional[str] = None


class PumpCreate(BaseModel):
    pump_number: int = Field(..., gt=0, description="Unique within the station")
    main_rfid_tag: ShortText
    expected_child_tags: List[ExpectedTagInput] = Field(..., min_length=1)

    @model_validator(mode="after")
    def validate_unique_child_tags(self) -> "PumpCreate":
        tag_ids = [tag.tag_id for tag in self.expected_child_tags]
        if len(set(tag_ids)) != len(tag_ids):
            raise ValueError("expected_child_tags must not repeat a tag_id")
        return self


class PumpUpdate(BaseModel):
    """station_id is not editable after creation. Setting status is how a BROKEN pump is re-locked."""

    pump_number: Optional[int] = Field(None, gt=0)
    main_rfid_tag: Optional[ShortText] = None
    status: Optional[PumpStatus] = None


class ExpectedTagResponse(BaseModel):
    id: int
    tag_id: str
    description: Optional[str] = None
    is_active: bool

    class Config:
        from_attributes = True


class PumpResponse(BaseModel):
    id: int
    station_id: int
    station_name: Optional[str] = None
    pump_number: int
    main_rfid_tag: str
    status: str
    expected_child_tags: List[str]  # Active tag ids, source order
    created_at: datetime
    updated_at: datetime


class LastVerification(BaseModel):
    session_id: int
    result: str
    message: Optional[str] = None
    username: Optional[str] = None
    timestamp: datetime


class PumpDetailResponse(BaseModel):
    id: int
    station_id: int
    station_name: str
    pump_number: int
    main_rfid_tag: str
    status: str
    expected_child_tags: List[ExpectedTagResponse]
    last_verification: Optional[LastVerification] = None
    created_at: datetime
    updated_at: datetime
