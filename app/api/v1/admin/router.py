from datetime import datetime
from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from app.auth.rbac import require_admin
from app.core.enums import AuditAction, AuditEntityType
from app.core.pagination import pagination_params
from app.core.schemas import Page, PaginationParams
from app.db.session import get_db

from .schemas import AdminVerificationItem, AnalyticsResponse, AuditLogItem, StationLogsResponse
from . import service

router = APIRouter(
    prefix="/api/v1/admin",
    tags=["admin"],
    dependencies=[Depends(require_admin)],
)


@router.get("/analytics", response_model=AnalyticsResponse)
async def get_analytics(db: AsyncSession = Depends(get_db)) -> AnalyticsResponse:
    """Dashboard counters; weekly figures cover the last 7 days."""
    return await service.get_analytics(db)


@router.get("/audit-logs", response_model=Page[AuditLogItem])
async def list_audit_logs(
    params: PaginationParams = Depends(pagination_params(50)),
    action: Optional[AuditAction] = Query(None),
    entity_type: Optional[AuditEntityType] = Query(None),
    user_id: Optional[int] = Query(None, ge=1),
    start_date: Optional[datetime] = Query(None),
    end_date: Optional[datetime] = Query(None),
    db: AsyncSession = Depends(get_db),
) -> Page[AuditLogItem]:
    return await service.list_audit_logs(
        db,
        params,
        action=action.value if action else None,
        entity_type=entity_type.value if entity_type else None,
        user_id=user_id,
        start_date=start_date,
        end_date=end_date,
    )


@router.get("/verifications/all", response_model=Page[AdminVerificationItem])
async def list_all_verifications(
    params: PaginationParams = Depends(pagination_params(50)),
    result: Optional[str] = Query(None, description="SUCCESS, FAILED, ERROR or all (case-insensitive)"),
    station_id: Optional[int] = Query(None, ge=1),
    start_date: Optional[datetime] = Query(None),
    end_date: Optional[datetime] = Query(None),
    db: AsyncSession = Depends(get_db),
) -> Page[AdminVerificationItem]:
    return await service.list_all_verifications(
        db,
        params,
        result=result,
        station_id=station_id,
        start_date=start_date,
        end_date=end_date,
    )


@router.get("/stations/{station_id}/logs", response_model=StationLogsResponse)
async def get_station_logs(
    station_id: int,
    db: AsyncSession = Depends(get_db),
) -> StationLogsResponse:
    return await service.get_station_logs(db, station_id)
