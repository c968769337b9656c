from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel

from app.core.schemas import ShortText


class VerifyRequest(BaseModel):
    main_tag_scanned: ShortText
    # As physically read: order and duplicates are kept. May be empty.
    scanned_child_tags: List[ShortText]


class VerificationDetails(BaseModel):
    expected_count: int
    scanned_count: int
    missing_tags: List[str]
    unexpected_tags: List[str]


class VerifyResponse(BaseModel):
    session_id: int
    result: str  # success | failed
    message: str
    details: VerificationDetails
    pump_status: str
    timestamp: datetime


class VerificationHistoryItem(BaseModel):
    session_id: int
    pump_id: int
    user_id: Optional[int] = None
    username: Optional[str] = None
    main_tag_scanned: str
    result: str
    missing_tags_count: int
    unexpected_tags_count: int
    total_scanned: int
    message: Optional[str] = None
    timestamp: datetime


class ScannedTagResponse(BaseModel):
    tag_id: str
    scan_order: int
    is_expected: bool

    class Config:
        from_attributes = True


class VerificationDetailResponse(BaseModel):
    session_id: int
    pump_id: int
    pump_number: int
    station_id: int
    station_name: str
    user_id: Optional[int] = None
    username: Optional[str] = None
    user_full_name: Optional[str] = None
    main_tag_scanned: str
    result: str
    message: Optional[str] = None
    missing_tags_count: int
    unexpected_tags_count: int
    total_scanned: int
    expected_tags: List[str]  # Current active expected tags of the pump
    scanned_tags: List[ScannedTagResponse]
    missing_tags: List[str]
    unexpected_tags: List[str]
    timestamp: datetime
