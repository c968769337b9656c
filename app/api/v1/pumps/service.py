import logging
from typing import Any, Dict, List, Optional

from sqlalchemy import delete, func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from app.core.exceptions import (
    DuplicateResourceError,
    ResourceInUseError,
    ResourceNotFoundError,
)
from app.core.models import ExpectedChildTag, GasStation, Pump, VerificationSession
from app.core.schemas import Page, PaginationParams

from .schemas import (
    ExpectedTagInput,
    ExpectedTagResponse,
    LastVerification,
    PumpCreate,
    PumpDetailResponse,
    PumpResponse,
    PumpUpdate,
)

logger = logging.getLogger(__name__)

PUMP_NOT_FOUND = "Pump not found"


def active_tag_ids(pump: Pump) -> List[str]:
    """Active expected child tag ids in source (creation) order."""
    return [tag.tag_id for tag in pump.expected_child_tags if tag.is_active]


def _to_response(pump: Pump) -> PumpResponse:
    return PumpResponse(
        id=pump.id,
        station_id=pump.station_id,
        station_name=pump.station.name if pump.station else None,
        pump_number=pump.pump_number,
        main_rfid_tag=pump.main_rfid_tag,
        status=pump.status,
        expected_child_tags=active_tag_ids(pump),
        created_at=pump.created_at,
        updated_at=pump.updated_at,
    )


async def load_pump(db: AsyncSession, pump_id: int) -> Optional[Pump]:
    """Pump with its station and all expected tags (active and inactive) loaded."""
    result = await db.execute(
        select(Pump)
        .options(selectinload(Pump.expected_child_tags), selectinload(Pump.station))
        .where(Pump.id == pump_id)
        .execution_options(populate_existing=True)
    )
    return result.scalar_one_or_none()


async def _get_pump_or_404(db: AsyncSession, pump_id: int) -> Pump:
    pump = await load_pump(db, pump_id)
    if not pump:
        raise ResourceNotFoundError(PUMP_NOT_FOUND)
    return pump


async def _ensure_unique(
    db: AsyncSession,
    station_id: int,
    pump_number: Optional[int],
    main_rfid_tag: Optional[str],
    exclude_pump_id: Optional[int] = None,
) -> None:
    if pump_number is not None:
        stmt = select(Pump.id).where(Pump.station_id == station_id, Pump.pump_number == pump_number)
        if exclude_pump_id is not None:
            stmt = stmt.where(Pump.id != exclude_pump_id)
        if (await db.execute(stmt.limit(1))).scalar_one_or_none() is not None:
            raise DuplicateResourceError(f"Pump number {pump_number} already exists for this station")
    if main_rfid_tag is not None:
        stmt = select(Pump.id).where(Pump.main_rfid_tag == main_rfid_tag)
        if exclude_pump_id is not None:
            stmt = stmt.where(Pump.id != exclude_pump_id)
        if (await db.execute(stmt.limit(1))).scalar_one_or_none() is not None:
            raise DuplicateResourceError(f"Main RFID tag '{main_rfid_tag}' is already in use")


async def list_pumps(
    db: AsyncSession,
    params: PaginationParams,
    station_id: Optional[int] = None,
    status: Optional[str] = None,
) -> Page[PumpResponse]:
    filters = []
    if station_id is not None:
        filters.append(Pump.station_id == station_id)
    if status:
        filters.append(Pump.status == status)

    total = (await db.execute(select(func.count(Pump.id)).where(*filters))).scalar_one()
    result = await db.execute(
        select(Pump)
        .options(selectinload(Pump.expected_child_tags), selectinload(Pump.station))
        .where(*filters)
        .order_by(Pump.station_id, Pump.pump_number)
        .offset(params.offset)
        .limit(params.limit)
    )
    items = [_to_response(pump) for pump in result.scalars().all()]
    return Page[PumpResponse].build(items, total, params)


async def list_station_pumps(db: AsyncSession, station_id: int) -> List[PumpResponse]:
    if not await db.get(GasStation, station_id):
        raise ResourceNotFoundError("Gas station not found")
    result = await db.execute(
        select(Pump)
        .options(selectinload(Pump.expected_child_tags), selectinload(Pump.station))
        .where(Pump.station_id == station_id)
        .order_by(Pump.pump_number)
    )
    return [_to_response(pump) for pump in result.scalars().all()]


async def get_pump(db: AsyncSession, pump_id: int) -> PumpDetailResponse:
    pump = await _get_pump_or_404(db, pump_id)

    last_result = await db.execute(
        select(VerificationSession)
        .options(selectinload(VerificationSession.user))
        .where(VerificationSession.pump_id == pump_id)
        .order_by(VerificationSession.timestamp.desc(), VerificationSession.id.desc())
        .limit(1)
    )
    last = last_result.scalar_one_or_none()
    last_verification = None
    if last:
        last_verification = LastVerification(
            session_id=last.id,
            result=last.verification_result.lower(),
            message=last.result_message,
            username=last.user.username if last.user else None,
            timestamp=last.timestamp,
        )

    return PumpDetailResponse(
        id=pump.id,
        station_id=pump.station_id,
        station_name=pump.station.name,
        pump_number=pump.pump_number,
        main_rfid_tag=pump.main_rfid_tag,
        status=pump.status,
        expected_child_tags=[
            ExpectedTagResponse.model_validate(tag) for tag in pump.expected_child_tags if tag.is_active
        ],
        last_verification=last_verification,
        created_at=pump.created_at,
        updated_at=pump.updated_at,
    )


async def create_pump(db: AsyncSession, station_id: int, payload: PumpCreate) -> PumpResponse:
    if not await db.get(GasStation, station_id):
        raise ResourceNotFoundError("Gas station not found")

    await _ensure_unique(db, station_id, payload.pump_number, payload.main_rfid_tag)

    pump = Pump(
        station_id=station_id,
        pump_number=payload.pump_number,
        main_rfid_tag=payload.main_rfid_tag,
        expected_child_tags=[
            ExpectedChildTag(tag_id=tag.tag_id, description=tag.description, is_active=True)
            for tag in payload.expected_child_tags
        ],
    )
    db.add(pump)
    try:
        await db.commit()
    except IntegrityError as e:
        # Lost a race against a concurrent create with the same number or tag
        await db.rollback()
        raise DuplicateResourceError("Pump number or main RFID tag already exists") from e

    logger.info("Created pump %s (number %s) at station %s", pump.id, pump.pump_number, station_id)
    return _to_response(await _get_pump_or_404(db, pump.id))


async def update_pump(db: AsyncSession, pump_id: int, payload: PumpUpdate) -> PumpResponse:
    pump = await _get_pump_or_404(db, pump_id)

    await _ensure_unique(db, pump.station_id, payload.pump_number, payload.main_rfid_tag, exclude_pump_id=pump.id)

    if payload.pump_number is not None:
        pump.pump_number = payload.pump_number
    if payload.main_rfid_tag is not None:
        pump.main_rfid_tag = payload.main_rfid_tag
    if payload.status is not None:
        if pump.status != payload.status.value:
            logger.info("Pump %s status %s -> %s by admin", pump.id, pump.status, payload.status.value)
        pump.status = payload.status.value
    try:
        await db.commit()
    except IntegrityError as e:
        await db.rollback()
        raise DuplicateResourceError("Pump number or main RFID tag already exists") from e

    return _to_response(await _get_pump_or_404(db, pump_id))


async def delete_pump(db: AsyncSession, pump_id: int) -> None:
    pump = await _get_pump_or_404(db, pump_id)
    used = await db.execute(
        select(VerificationSession.id).where(VerificationSession.pump_id == pump_id).limit(1)
    )
    if used.scalar_one_or_none() is not None:
        raise ResourceInUseError("Cannot delete pump: it has verification history")
    await db.execute(delete(ExpectedChildTag).where(ExpectedChildTag.pump_id == pump.id))
    await db.execute(delete(Pump).where(Pump.id == pump.id))
    await db.commit()


async def add_expected_tag(db: AsyncSession, pump_id: int, payload: ExpectedTagInput) -> ExpectedTagResponse:
    """Add an expected child tag, or reactivate a deactivated one with the same tag id."""
    pump = await _get_pump_or_404(db, pump_id)
    tag_id = payload.tag_id

    existing = next((tag for tag in pump.expected_child_tags if tag.tag_id == tag_id), None)
    if existing and existing.is_active:
        raise DuplicateResourceError(f"Tag '{tag_id}' is already expected on this pump")
    if existing:
        existing.is_active = True
        if payload.description is not None:
            existing.description = payload.description
        tag = existing
    else:
        tag = ExpectedChildTag(pump_id=pump.id, tag_id=tag_id, description=payload.description, is_active=True)
        db.add(tag)
    try:
        await db.commit()
    except IntegrityError as e:
        await db.rollback()
        raise DuplicateResourceError(f"Tag '{tag_id}' is already expected on this pump") from e
    await db.refresh(tag)
    return ExpectedTagResponse.model_validate(tag)


async def deactivate_expected_tag(db: AsyncSession, pump_id: int, tag_id: str) -> ExpectedTagResponse:
    pump = await _get_pump_or_404(db, pump_id)
    tag = next((t for t in pump.expected_child_tags if t.tag_id == tag_id and t.is_active), None)
    if not tag:
        raise ResourceNotFoundError(f"Active expected tag '{tag_id}' not found on this pump")
    tag.is_active = False
    await db.commit()
    await db.refresh(tag)
    return ExpectedTagResponse.model_validate(tag)


async def pump_audit_snapshot(db: AsyncSession, path_params: Dict[str, Any]) -> Optional[Dict[str, Any]]:
    """Old values for the audit trail; None when the pump does not exist."""
    try:
        pump_id = int(path_params["pump_id"])
    except (KeyError, ValueError):
        return None
    pump = await load_pump(db, pump_id)
    if not pump:
        return None
    return _to_response(pump).model_dump(mode="json")
