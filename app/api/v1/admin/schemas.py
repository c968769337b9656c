from datetime import datetime
from typing import Any, Dict, List, Optional

from pydantic import BaseModel

from app.api.v1.verifications.schemas import VerificationDetails


class AnalyticsResponse(BaseModel):
    total_stations: int
    active_stations: int
    total_pumps: int
    broken_pumps: int
    verifications_today_count: int
    verifications_week_count: int
    failed_verifications_week: int
    success_rate: float  # Percent of the last 7 days' verifications that succeeded


class AuditLogItem(BaseModel):
    id: int
    user_id: Optional[int] = None
    user_name: Optional[str] = None
    action: str
    entity_type: str
    entity_id: int
    old_values: Optional[Dict[str, Any]] = None
    new_values: Optional[Dict[str, Any]] = None
    ip_address: Optional[str] = None
    created_at: datetime


class AdminVerificationItem(BaseModel):
    session_id: int
    pump_id: int
    pump_number: int
    station_id: int
    station_name: str
    user_id: Optional[int] = None
    user_name: Optional[str] = None
    result: str
    message: Optional[str] = None
    details: VerificationDetails
    pump_status: str
    timestamp: datetime


class StationLogEntry(BaseModel):
    id: int
    action: str
    old_values: Optional[Dict[str, Any]] = None
    new_values: Optional[Dict[str, Any]] = None
    modified_by: Optional[str] = None
    modified_at: datetime
    ip_address: Optional[str] = None


class StationLogsResponse(BaseModel):
    station_id: int
    station_name: str
    last_modified_at: datetime
    last_modified_by: Optional[str] = None
    last_verification_at: Optional[datetime] = None
    logs: List[StationLogEntry]
