"""
Admin read views: dashboard analytics, the audit log, the cross-station
verification feed and a station's modification history.
"""

from datetime import datetime
from typing import Optional

from sqlalchemy import case, func, select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from app.api.v1.verifications.schemas import VerificationDetails
from app.api.v1.verifications.service import apply_session_filters, parse_result_filter, replay_details
from app.auth.models import User
from app.core.enums import AuditEntityType, PumpStatus, StationStatus, VerificationResult
from app.core.exceptions import ResourceNotFoundError
from app.core.models import AuditLog, GasStation, Pump, VerificationSession
from app.core.schemas import Page, PaginationParams
from app.core.time_utils import days_ago, start_of_day, to_naive_utc, utcnow

from .schemas import (
    AdminVerificationItem,
    AnalyticsResponse,
    AuditLogItem,
    StationLogEntry,
    StationLogsResponse,
)

STATION_LOG_LIMIT = 100


def _user_name(user: Optional[User]) -> Optional[str]:
    if user is None:
        return None
    return user.full_name or user.username


async def get_analytics(db: AsyncSession) -> AnalyticsResponse:
    now = utcnow()
    today = start_of_day(now)
    week_ago = days_ago(now, 7)

    total_stations, active_stations = (
        await db.execute(
            select(
                func.count(GasStation.id),
                func.coalesce(func.sum(case((GasStation.status == StationStatus.ACTIVE.value, 1), else_=0)), 0),
            )
        )
    ).one()
    total_pumps, broken_pumps = (
        await db.execute(
            select(
                func.count(Pump.id),
                func.coalesce(func.sum(case((Pump.status == PumpStatus.BROKEN.value, 1), else_=0)), 0),
            )
        )
    ).one()

    today_count = (
        await db.execute(select(func.count(VerificationSession.id)).where(VerificationSession.timestamp >= today))
    ).scalar_one()
    week_count, week_failed, week_success = (
        await db.execute(
            select(
                func.count(VerificationSession.id),
                func.coalesce(
                    func.sum(
                        case((VerificationSession.verification_result == VerificationResult.FAILED.value, 1), else_=0)
                    ),
                    0,
                ),
                func.coalesce(
                    func.sum(
                        case((VerificationSession.verification_result == VerificationResult.SUCCESS.value, 1), else_=0)
                    ),
                    0,
                ),
            ).where(VerificationSession.timestamp >= week_ago)
        )
    ).one()

    success_rate = round(week_success * 100.0 / week_count, 2) if week_count else 0.0
    return AnalyticsResponse(
        total_stations=total_stations,
        active_stations=active_stations,
        total_pumps=total_pumps,
        broken_pumps=broken_pumps,
        verifications_today_count=today_count,
        verifications_week_count=week_count,
        failed_verifications_week=week_failed,
        success_rate=success_rate,
    )


async def list_audit_logs(
    db: AsyncSession,
    params: PaginationParams,
    action: Optional[str] = None,
    entity_type: Optional[str] = None,
    user_id: Optional[int] = None,
    start_date: Optional[datetime] = None,
    end_date: Optional[datetime] = None,
) -> Page[AuditLogItem]:
    filters = []
    if action:
        filters.append(AuditLog.action == action)
    if entity_type:
        filters.append(AuditLog.entity_type == entity_type)
    if user_id is not None:
        filters.append(AuditLog.user_id == user_id)
    if start_date:
        filters.append(AuditLog.created_at >= to_naive_utc(start_date))
    if end_date:
        filters.append(AuditLog.created_at <= to_naive_utc(end_date))

    total = (await db.execute(select(func.count(AuditLog.id)).where(*filters))).scalar_one()
    result = await db.execute(
        select(AuditLog)
        .options(selectinload(AuditLog.user))
        .where(*filters)
        .order_by(AuditLog.created_at.desc(), AuditLog.id.desc())
        .offset(params.offset)
        .limit(params.limit)
    )
    items = [
        AuditLogItem(
            id=log.id,
            user_id=log.user_id,
            user_name=_user_name(log.user),
            action=log.action,
            entity_type=log.entity_type,
            entity_id=log.entity_id,
            old_values=log.old_values,
            new_values=log.new_values,
            ip_address=log.ip_address,
            created_at=log.created_at,
        )
        for log in result.scalars().all()
    ]
    return Page[AuditLogItem].build(items, total, params)


async def list_all_verifications(
    db: AsyncSession,
    params: PaginationParams,
    result: Optional[str] = None,
    station_id: Optional[int] = None,
    start_date: Optional[datetime] = None,
    end_date: Optional[datetime] = None,
) -> Page[AdminVerificationItem]:
    """Every station's sessions, newest first, with missing/unexpected tags replayed."""
    result_value = parse_result_filter(result)

    def _filtered(stmt):
        stmt = apply_session_filters(stmt, result_value, start_date, end_date)
        if station_id is not None:
            stmt = stmt.where(
                VerificationSession.pump_id.in_(select(Pump.id).where(Pump.station_id == station_id))
            )
        return stmt

    total = (await db.execute(_filtered(select(func.count(VerificationSession.id))))).scalar_one()
    rows = await db.execute(
        _filtered(
            select(VerificationSession).options(
                selectinload(VerificationSession.pump).selectinload(Pump.station),
                selectinload(VerificationSession.pump).selectinload(Pump.expected_child_tags),
                selectinload(VerificationSession.user),
                selectinload(VerificationSession.scanned_child_tags),
            )
        )
        .order_by(VerificationSession.timestamp.desc(), VerificationSession.id.desc())
        .offset(params.offset)
        .limit(params.limit)
    )

    items = []
    for session in rows.scalars().all():
        expected, missing, unexpected = replay_details(session)
        items.append(
            AdminVerificationItem(
                session_id=session.id,
                pump_id=session.pump_id,
                pump_number=session.pump.pump_number,
                station_id=session.pump.station_id,
                station_name=session.pump.station.name,
                user_id=session.user_id,
                user_name=_user_name(session.user),
                result=session.verification_result.lower(),
                message=session.result_message,
                details=VerificationDetails(
                    expected_count=len(expected),
                    scanned_count=session.total_scanned,
                    missing_tags=missing,
                    unexpected_tags=unexpected,
                ),
                pump_status=session.pump.status,
                timestamp=session.timestamp,
            )
        )
    return Page[AdminVerificationItem].build(items, total, params)


async def get_station_logs(db: AsyncSession, station_id: int) -> StationLogsResponse:
    result = await db.execute(
        select(GasStation).options(selectinload(GasStation.last_modifier)).where(GasStation.id == station_id)
    )
    station = result.scalar_one_or_none()
    if not station:
        raise ResourceNotFoundError("Gas station not found")

    logs = await db.execute(
        select(AuditLog)
        .options(selectinload(AuditLog.user))
        .where(AuditLog.entity_type == AuditEntityType.STATION.value, AuditLog.entity_id == station_id)
        .order_by(AuditLog.created_at.desc(), AuditLog.id.desc())
        .limit(STATION_LOG_LIMIT)
    )
    return StationLogsResponse(
        station_id=station.id,
        station_name=station.name,
        last_modified_at=station.updated_at,
        last_modified_by=_user_name(station.last_modifier),
        last_verification_at=station.last_verification_at,
        logs=[
            StationLogEntry(
                id=log.id,
                action=log.action,
                old_values=log.old_values,
                new_values=log.new_values,
                modified_by=_user_name(log.user),
                modified_at=log.created_at,
                ip_address=log.ip_address,
            )
            for log in logs.scalars().all()
        ],
    )
