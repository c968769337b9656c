from typing import List, Optional

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from app.auth.dependencies import get_current_user
from app.core.audit_service import AuditTrail, audit_trail
from app.core.enums import AuditAction, AuditEntityType, PumpStatus
from app.core.pagination import pagination_params
from app.core.schemas import Page, PaginationParams
from app.db.session import get_db

from .schemas import (
    ExpectedTagInput,
    ExpectedTagResponse,
    PumpCreate,
    PumpDetailResponse,
    PumpResponse,
    PumpUpdate,
)
from . import service

router = APIRouter(prefix="/api/v1/pumps", tags=["pumps"])
station_pumps_router = APIRouter(prefix="/api/v1/stations/{station_id}/pumps", tags=["pumps"])

_pump_snapshot = service.pump_audit_snapshot


@router.get(
    "",
    response_model=Page[PumpResponse],
    dependencies=[Depends(get_current_user)],
)
async def list_pumps(
    params: PaginationParams = Depends(pagination_params(20)),
    station_id: Optional[int] = Query(None, ge=1),
    status_filter: Optional[PumpStatus] = Query(None, alias="status"),
    db: AsyncSession = Depends(get_db),
) -> Page[PumpResponse]:
    return await service.list_pumps(
        db,
        params,
        station_id=station_id,
        status=status_filter.value if status_filter else None,
    )


@router.get(
    "/{pump_id}",
    response_model=PumpDetailResponse,
    dependencies=[Depends(get_current_user)],
)
async def get_pump(
    pump_id: int,
    db: AsyncSession = Depends(get_db),
) -> PumpDetailResponse:
    return await service.get_pump(db, pump_id)


@router.put(
    "/{pump_id}",
    response_model=PumpResponse,
)
async def update_pump(
    pump_id: int,
    payload: PumpUpdate,
    db: AsyncSession = Depends(get_db),
    audit: AuditTrail = Depends(audit_trail(AuditEntityType.PUMP, load_old_values=_pump_snapshot)),
) -> PumpResponse:
    pump = await service.update_pump(db, pump_id, payload)
    audit.record(pump_id, pump)
    return pump


@router.delete(
    "/{pump_id}",
    status_code=status.HTTP_204_NO_CONTENT,
)
async def delete_pump(
    pump_id: int,
    db: AsyncSession = Depends(get_db),
    audit: AuditTrail = Depends(audit_trail(AuditEntityType.PUMP, load_old_values=_pump_snapshot)),
) -> None:
    await service.delete_pump(db, pump_id)
    audit.record(pump_id)


@router.post(
    "/{pump_id}/tags",
    response_model=ExpectedTagResponse,
    status_code=status.HTTP_201_CREATED,
)
async def add_expected_tag(
    pump_id: int,
    payload: ExpectedTagInput,
    db: AsyncSession = Depends(get_db),
    audit: AuditTrail = Depends(
        audit_trail(AuditEntityType.PUMP, action=AuditAction.UPDATE, load_old_values=_pump_snapshot)
    ),
) -> ExpectedTagResponse:
    tag = await service.add_expected_tag(db, pump_id, payload)
    audit.record(pump_id, tag)
    return tag


@router.delete(
    "/{pump_id}/tags/{tag_id}",
    response_model=ExpectedTagResponse,
)
async def deactivate_expected_tag(
    pump_id: int,
    tag_id: str,
    db: AsyncSession = Depends(get_db),
    audit: AuditTrail = Depends(
        audit_trail(AuditEntityType.PUMP, action=AuditAction.UPDATE, load_old_values=_pump_snapshot)
    ),
) -> ExpectedTagResponse:
    """Soft removal: the tag stops counting as expected but stays in history."""
    tag = await service.deactivate_expected_tag(db, pump_id, tag_id)
    audit.record(pump_id, tag)
    return tag


@station_pumps_router.get(
    "",
    response_model=List[PumpResponse],
    dependencies=[Depends(get_current_user)],
)
async def list_station_pumps(
    station_id: int,
    db: AsyncSession = Depends(get_db),
) -> List[PumpResponse]:
    return await service.list_station_pumps(db, station_id)


@station_pumps_router.post(
    "",
    response_model=PumpResponse,
    status_code=status.HTTP_201_CREATED,
)
async def create_pump(
    station_id: int,
    payload: PumpCreate,
    db: AsyncSession = Depends(get_db),
    audit: AuditTrail = Depends(audit_trail(AuditEntityType.PUMP)),
) -> PumpResponse:
    pump = await service.create_pump(db, station_id, payload)
    audit.record(pump.id, pump)
    return pump
