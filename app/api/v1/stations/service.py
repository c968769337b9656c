from typing import Any, Dict, Optional

from sqlalchemy import delete, func, or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.exceptions import ResourceInUseError, ResourceNotFoundError
from app.core.models import ExpectedChildTag, GasStation, Pump
from app.core.schemas import Page, PaginationParams

from .schemas import (
    StationCreate,
    StationDetailResponse,
    StationListItem,
    StationPumpSummary,
    StationResponse,
    StationUpdate,
)

STATION_NOT_FOUND = "Gas station not found"


async def _get_station_or_404(db: AsyncSession, station_id: int) -> GasStation:
    station = await db.get(GasStation, station_id)
    if not station:
        raise ResourceNotFoundError(STATION_NOT_FOUND)
    return station


async def list_stations(
    db: AsyncSession,
    params: PaginationParams,
    status: Optional[str] = None,
    search: Optional[str] = None,
) -> Page[StationListItem]:
    pump_count = (
        select(Pump.station_id, func.count(Pump.id).label("pump_count"))
        .group_by(Pump.station_id)
        .subquery()
    )
    filters = []
    if status and status != "all":
        filters.append(GasStation.status == status)
    if search:
        pattern = f"%{search.strip()}%"
        filters.append(or_(GasStation.name.ilike(pattern), GasStation.location.ilike(pattern)))

    total = (await db.execute(select(func.count(GasStation.id)).where(*filters))).scalar_one()

    stmt = (
        select(GasStation, func.coalesce(pump_count.c.pump_count, 0))
        .outerjoin(pump_count, pump_count.c.station_id == GasStation.id)
        .where(*filters)
        .order_by(GasStation.created_at.desc(), GasStation.id.desc())
        .offset(params.offset)
        .limit(params.limit)
    )
    rows = (await db.execute(stmt)).all()
    items = [
        StationListItem(
            id=station.id,
            name=station.name,
            location=station.location,
            status=station.status,
            pump_count=count,
            created_at=station.created_at,
            updated_at=station.updated_at,
        )
        for station, count in rows
    ]
    return Page[StationListItem].build(items, total, params)


async def get_station(db: AsyncSession, station_id: int) -> StationDetailResponse:
    station = await _get_station_or_404(db, station_id)

    active_tags = (
        select(ExpectedChildTag.pump_id, func.count(ExpectedChildTag.id).label("tag_count"))
        .where(ExpectedChildTag.is_active.is_(True))
        .group_by(ExpectedChildTag.pump_id)
        .subquery()
    )
    result = await db.execute(
        select(Pump, func.coalesce(active_tags.c.tag_count, 0))
        .outerjoin(active_tags, active_tags.c.pump_id == Pump.id)
        .where(Pump.station_id == station_id)
        .order_by(Pump.pump_number)
    )
    pumps = [
        StationPumpSummary(
            id=pump.id,
            pump_number=pump.pump_number,
            main_rfid_tag=pump.main_rfid_tag,
            status=pump.status,
            expected_child_tags_count=tag_count,
        )
        for pump, tag_count in result.all()
    ]
    base = StationResponse.model_validate(station)
    return StationDetailResponse(**base.model_dump(), pump_count=len(pumps), pumps=pumps)


async def create_station(
    db: AsyncSession,
    payload: StationCreate,
    user_id: Optional[int],
) -> StationResponse:
    station = GasStation(
        name=payload.name,
        location=payload.location,
        last_modified_by=user_id,
    )
    db.add(station)
    await db.commit()
    await db.refresh(station)
    return StationResponse.model_validate(station)


async def update_station(
    db: AsyncSession,
    station_id: int,
    payload: StationUpdate,
    user_id: Optional[int],
) -> StationResponse:
    station = await _get_station_or_404(db, station_id)
    if payload.name is not None:
        station.name = payload.name
    if payload.location is not None:
        station.location = payload.location
    if payload.status is not None:
        station.status = payload.status.value
    station.last_modified_by = user_id
    await db.commit()
    await db.refresh(station)
    return StationResponse.model_validate(station)


async def delete_station(db: AsyncSession, station_id: int) -> None:
    station = await _get_station_or_404(db, station_id)
    used = await db.execute(select(Pump.id).where(Pump.station_id == station_id).limit(1))
    if used.scalar_one_or_none() is not None:
        raise ResourceInUseError("Cannot delete gas station: it still has pumps")
    await db.execute(delete(GasStation).where(GasStation.id == station.id))
    await db.commit()


async def station_audit_snapshot(db: AsyncSession, path_params: Dict[str, Any]) -> Optional[Dict[str, Any]]:
    """Old values for the audit trail; None when the station does not exist."""
    try:
        station_id = int(path_params["station_id"])
    except (KeyError, ValueError):
        return None
    station = await db.get(GasStation, station_id)
    if not station:
        return None
    return StationResponse.model_validate(station).model_dump(mode="json")
