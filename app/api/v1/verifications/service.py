"""
RFID verification of a pump: reconcile a scan, apply the tamper alarm, record
the session, and read sessions back for history and detail views.
"""

import logging
from datetime import datetime
from typing import List, Optional, Tuple

from sqlalchemy import func, select, update
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from app.api.v1.pumps.service import PUMP_NOT_FOUND, active_tag_ids, load_pump
from app.core.enums import PumpStatus, VerificationResult
from app.core.exceptions import MainTagMismatchError, ResourceNotFoundError, ValidationFailedError
from app.core.models import GasStation, Pump, ScannedChildTag, VerificationSession
from app.core.reconciliation import (
    ReconciliationResult,
    build_result_message,
    next_pump_status,
    reconcile_tags,
    replay_session,
)
from app.core.schemas import Page, PaginationParams
from app.core.time_utils import to_naive_utc, utcnow

from .schemas import (
    ScannedTagResponse,
    VerificationDetailResponse,
    VerificationDetails,
    VerificationHistoryItem,
    VerifyRequest,
    VerifyResponse,
)

logger = logging.getLogger(__name__)


def parse_result_filter(value: Optional[str]) -> Optional[str]:
    """'success'/'FAILED'/... -> stored result value; None or 'all' -> no filter."""
    if value is None:
        return None
    normalized = value.strip().upper()
    if normalized in ("", "ALL"):
        return None
    if normalized not in VerificationResult.__members__:
        raise ValidationFailedError(
            "Invalid query parameters",
            details=[{"field": "result", "message": "must be one of SUCCESS, FAILED, ERROR, all"}],
        )
    return normalized


def apply_session_filters(
    stmt,
    result: Optional[str],
    start_date: Optional[datetime],
    end_date: Optional[datetime],
):
    if result:
        stmt = stmt.where(VerificationSession.verification_result == result)
    if start_date:
        stmt = stmt.where(VerificationSession.timestamp >= to_naive_utc(start_date))
    if end_date:
        stmt = stmt.where(VerificationSession.timestamp <= to_naive_utc(end_date))
    return stmt


async def record_verification(
    db: AsyncSession,
    pump: Pump,
    user_id: Optional[int],
    main_tag_scanned: str,
    result: ReconciliationResult,
) -> Tuple[VerificationSession, str]:
    """Persist one verification atomically; returns the session and the pump's resulting status.

    The status change, the session row and every scanned tag row commit together
    or not at all.
    """
    now = utcnow()
    previous_status = pump.status
    new_status = next_pump_status(previous_status, result.outcome)

    session = VerificationSession(
        pump_id=pump.id,
        user_id=user_id,
        main_tag_scanned=main_tag_scanned,
        verification_result=result.outcome.value,
        missing_tags_count=result.missing_count,
        unexpected_tags_count=result.unexpected_count,
        total_scanned=result.total_scanned,
        result_message=build_result_message(result),
        timestamp=now,
        scanned_child_tags=[
            ScannedChildTag(tag_id=tag_id, scan_order=order, is_expected=result.is_expected(tag_id))
            for order, tag_id in enumerate(result.scanned_tags, start=1)
        ],
    )

    status_changed = False
    try:
        if new_status != previous_status:
            # Conditional so concurrent failed scans of the same pump converge on BROKEN
            updated = await db.execute(
                update(Pump)
                .where(Pump.id == pump.id, Pump.status == PumpStatus.LOCKED.value)
                .values(status=new_status)
                .execution_options(synchronize_session=False)
            )
            status_changed = updated.rowcount > 0
            if not status_changed:
                # Someone else moved the pump off LOCKED first; report the stored status
                stored = await db.execute(select(Pump.status).where(Pump.id == pump.id))
                new_status = stored.scalar_one()
        await db.execute(
            update(GasStation)
            .where(GasStation.id == pump.station_id)
            .values(last_verification_at=now, updated_at=GasStation.updated_at)
            .execution_options(synchronize_session=False)
        )
        db.add(session)
        await db.commit()
    except Exception:
        await db.rollback()
        raise

    if status_changed:
        logger.warning(
            "Tamper alarm: pump %s %s -> %s (session %s)", pump.id, previous_status, new_status, session.id
        )
    return session, new_status


async def verify_pump_tags(
    db: AsyncSession,
    pump_id: int,
    payload: VerifyRequest,
    user_id: Optional[int],
) -> VerifyResponse:
    pump = await load_pump(db, pump_id)
    if not pump:
        raise ResourceNotFoundError(PUMP_NOT_FOUND)

    if pump.main_rfid_tag != payload.main_tag_scanned:
        logger.info("Main tag mismatch on pump %s", pump_id)
        raise MainTagMismatchError(f"Main tag '{payload.main_tag_scanned}' does not match this pump's main tag")

    result = reconcile_tags(active_tag_ids(pump), payload.scanned_child_tags)
    session, pump_status = await record_verification(db, pump, user_id, payload.main_tag_scanned, result)

    logger.info(
        "Verification %s on pump %s: %s (missing=%d, unexpected=%d, scanned=%d)",
        session.id,
        pump_id,
        result.outcome.value,
        result.missing_count,
        result.unexpected_count,
        result.total_scanned,
    )
    return VerifyResponse(
        session_id=session.id,
        result=result.outcome.value.lower(),
        message=session.result_message,
        details=VerificationDetails(
            expected_count=result.expected_count,
            scanned_count=result.total_scanned,
            missing_tags=list(result.missing_tags),
            unexpected_tags=list(result.unexpected_tags),
        ),
        pump_status=pump_status,
        timestamp=session.timestamp,
    )


def _history_item(session: VerificationSession) -> VerificationHistoryItem:
    return VerificationHistoryItem(
        session_id=session.id,
        pump_id=session.pump_id,
        user_id=session.user_id,
        username=session.user.username if session.user else None,
        main_tag_scanned=session.main_tag_scanned,
        result=session.verification_result.lower(),
        missing_tags_count=session.missing_tags_count,
        unexpected_tags_count=session.unexpected_tags_count,
        total_scanned=session.total_scanned,
        message=session.result_message,
        timestamp=session.timestamp,
    )


async def list_pump_verifications(
    db: AsyncSession,
    pump_id: int,
    params: PaginationParams,
    result: Optional[str] = None,
    start_date: Optional[datetime] = None,
    end_date: Optional[datetime] = None,
) -> Page[VerificationHistoryItem]:
    if not await db.get(Pump, pump_id):
        raise ResourceNotFoundError(PUMP_NOT_FOUND)
    result_value = parse_result_filter(result)

    count_stmt = apply_session_filters(
        select(func.count(VerificationSession.id)).where(VerificationSession.pump_id == pump_id),
        result_value,
        start_date,
        end_date,
    )
    total = (await db.execute(count_stmt)).scalar_one()

    stmt = apply_session_filters(
        select(VerificationSession)
        .options(selectinload(VerificationSession.user))
        .where(VerificationSession.pump_id == pump_id),
        result_value,
        start_date,
        end_date,
    )
    stmt = (
        stmt.order_by(VerificationSession.timestamp.desc(), VerificationSession.id.desc())
        .offset(params.offset)
        .limit(params.limit)
    )
    sessions = (await db.execute(stmt)).scalars().all()
    return Page[VerificationHistoryItem].build([_history_item(s) for s in sessions], total, params)


def replay_details(session: VerificationSession) -> Tuple[List[str], List[str], List[str]]:
    """(current expected tags, missing, unexpected) for a stored session.

    Needs session.pump.expected_child_tags and session.scanned_child_tags loaded.
    """
    expected = active_tag_ids(session.pump)
    missing, unexpected = replay_session(
        expected,
        [(tag.tag_id, tag.is_expected) for tag in session.scanned_child_tags],
    )
    return expected, missing, unexpected


async def get_verification_session(db: AsyncSession, session_id: int) -> VerificationDetailResponse:
    result = await db.execute(
        select(VerificationSession)
        .options(
            selectinload(VerificationSession.pump).selectinload(Pump.station),
            selectinload(VerificationSession.pump).selectinload(Pump.expected_child_tags),
            selectinload(VerificationSession.user),
            selectinload(VerificationSession.scanned_child_tags),
        )
        .where(VerificationSession.id == session_id)
    )
    session = result.scalar_one_or_none()
    if not session:
        raise ResourceNotFoundError("Verification session not found")

    expected, missing, unexpected = replay_details(session)
    return VerificationDetailResponse(
        session_id=session.id,
        pump_id=session.pump_id,
        pump_number=session.pump.pump_number,
        station_id=session.pump.station_id,
        station_name=session.pump.station.name,
        user_id=session.user_id,
        username=session.user.username if session.user else None,
        user_full_name=session.user.full_name if session.user else None,
        main_tag_scanned=session.main_tag_scanned,
        result=session.verification_result.lower(),
        message=session.result_message,
        missing_tags_count=session.missing_tags_count,
        unexpected_tags_count=session.unexpected_tags_count,
        total_scanned=session.total_scanned,
        expected_tags=expected,
        scanned_tags=[ScannedTagResponse.model_validate(tag) for tag in session.scanned_child_tags],
        missing_tags=missing,
        unexpected_tags=unexpected,
        timestamp=session.timestamp,
    )
