from typing import Optional

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from app.auth.dependencies import get_current_user
from app.core.audit_service import AuditTrail, audit_trail
from app.core.enums import AuditEntityType
from app.core.pagination import pagination_params
from app.core.schemas import Page, PaginationParams
from app.db.session import get_db

from .schemas import StationCreate, StationDetailResponse, StationListItem, StationResponse, StationUpdate
from . import service

router = APIRouter(prefix="/api/v1/stations", tags=["stations"])


@router.get(
    "",
    response_model=Page[StationListItem],
    dependencies=[Depends(get_current_user)],
)
async def list_stations(
    params: PaginationParams = Depends(pagination_params(20)),
    status_filter: Optional[str] = Query(
        None,
        alias="status",
        pattern="^(ACTIVE|INACTIVE|MAINTENANCE|all)$",
        description="Filter by station status; 'all' disables the filter",
    ),
    search: Optional[str] = Query(None, description="Case-insensitive match on name or location"),
    db: AsyncSession = Depends(get_db),
) -> Page[StationListItem]:
    return await service.list_stations(db, params, status=status_filter, search=search)


@router.get(
    "/{station_id}",
    response_model=StationDetailResponse,
    dependencies=[Depends(get_current_user)],
)
async def get_station(
    station_id: int,
    db: AsyncSession = Depends(get_db),
) -> StationDetailResponse:
    return await service.get_station(db, station_id)


@router.post(
    "",
    response_model=StationResponse,
    status_code=status.HTTP_201_CREATED,
)
async def create_station(
    payload: StationCreate,
    db: AsyncSession = Depends(get_db),
    audit: AuditTrail = Depends(audit_trail(AuditEntityType.STATION)),
) -> StationResponse:
    station = await service.create_station(db, payload, audit.user_id)
    audit.record(station.id, station)
    return station


@router.put(
    "/{station_id}",
    response_model=StationResponse,
)
async def update_station(
    station_id: int,
    payload: StationUpdate,
    db: AsyncSession = Depends(get_db),
    audit: AuditTrail = Depends(
        audit_trail(AuditEntityType.STATION, load_old_values=service.station_audit_snapshot)
    ),
) -> StationResponse:
    station = await service.update_station(db, station_id, payload, audit.user_id)
    audit.record(station_id, station)
    return station


@router.delete(
    "/{station_id}",
    status_code=status.HTTP_204_NO_CONTENT,
)
async def delete_station(
    station_id: int,
    db: AsyncSession = Depends(get_db),
    audit: AuditTrail = Depends(
        audit_trail(AuditEntityType.STATION, load_old_values=service.station_audit_snapshot)
    ),
) -> None:
    await service.delete_station(db, station_id)
    audit.record(station_id)
