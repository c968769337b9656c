from datetime import datetime
from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from app.auth.dependencies import get_current_user
from app.auth.schemas import CurrentUser
from app.core.pagination import pagination_params
from app.core.schemas import Page, PaginationParams
from app.db.session import get_db

from .schemas import VerificationDetailResponse, VerificationHistoryItem, VerifyRequest, VerifyResponse
from . import service

router = APIRouter(prefix="/api/v1/verifications", tags=["verifications"])
pump_verifications_router = APIRouter(prefix="/api/v1/pumps/{pump_id}", tags=["verifications"])


@pump_verifications_router.post(
    "/verify",
    response_model=VerifyResponse,
)
async def verify_pump(
    pump_id: int,
    payload: VerifyRequest,
    db: AsyncSession = Depends(get_db),
    current_user: CurrentUser = Depends(get_current_user),
) -> VerifyResponse:
    """
    Compare scanned child tags with the pump's active expected tags.
    A failed scan of a LOCKED pump marks it BROKEN. Not written to the admin audit log;
    the verification session itself is the record.
    """
    return await service.verify_pump_tags(db, pump_id, payload, current_user.id)


@pump_verifications_router.get(
    "/verifications",
    response_model=Page[VerificationHistoryItem],
    dependencies=[Depends(get_current_user)],
)
async def list_pump_verifications(
    pump_id: int,
    params: PaginationParams = Depends(pagination_params(20)),
    result: Optional[str] = Query(None, description="SUCCESS, FAILED, ERROR or all (case-insensitive)"),
    start_date: Optional[datetime] = Query(None, description="ISO-8601, inclusive"),
    end_date: Optional[datetime] = Query(None, description="ISO-8601, inclusive"),
    db: AsyncSession = Depends(get_db),
) -> Page[VerificationHistoryItem]:
    return await service.list_pump_verifications(
        db, pump_id, params, result=result, start_date=start_date, end_date=end_date
    )


@router.get(
    "/{session_id}",
    response_model=VerificationDetailResponse,
    dependencies=[Depends(get_current_user)],
)
async def get_verification_session(
    session_id: int,
    db: AsyncSession = Depends(get_db),
) -> VerificationDetailResponse:
    return await service.get_verification_session(db, session_id)
