import logging
from typing import Optional

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from app.auth.models import AuthToken, User
from app.auth.schemas import LoginRequest, LoginResponse, LogoutResponse, MeResponse, UserInfo
from app.auth.security import create_access_token, verify_password
from app.core.exceptions import InvalidCredentialsError, ResourceNotFoundError
from app.core.time_utils import utcnow

logger = logging.getLogger(__name__)


async def login_user(db: AsyncSession, payload: LoginRequest) -> LoginResponse:
    # 1. Find user by username
    result = await db.execute(select(User).where(User.username == payload.username))
    user: Optional[User] = result.scalar_one_or_none()

    # 2. Unknown, inactive and wrong password all look the same to the caller
    if not user or not user.is_active:
        logger.info("Rejected login for username=%s", payload.username)
        raise InvalidCredentialsError()
    if not verify_password(payload.password, user.password_hash):
        logger.info("Rejected login for username=%s", payload.username)
        raise InvalidCredentialsError()

    # 3. Issue access token (JWT)
    now = utcnow()
    access_token, expires_at = create_access_token(
        subject={"sub": str(user.id), "username": user.username, "role": user.role}
    )

    # 4. Record token and last login together
    user.last_login = now
    db.add(
        AuthToken(
            user_id=user.id,
            token=access_token,
            expires_at=expires_at.replace(tzinfo=None),
        )
    )
    try:
        await db.commit()
    except Exception:
        await db.rollback()
        raise

    logger.info("User %s logged in", user.username)
    return LoginResponse(
        access_token=access_token,
        expires_in=int((expires_at.replace(tzinfo=None) - now).total_seconds()),
        user=UserInfo(
            id=user.id,
            username=user.username,
            full_name=user.full_name,
            role=user.role,
        ),
    )


async def logout_user(db: AsyncSession, user_id: int, token: str) -> LogoutResponse:
    await db.execute(
        update(AuthToken)
        .where(AuthToken.user_id == user_id, AuthToken.token == token)
        .values(revoked=True)
    )
    await db.commit()
    return LogoutResponse(message="Successfully logged out")


async def get_me(db: AsyncSession, user_id: int) -> MeResponse:
    user = await db.get(User, user_id)
    if not user:
        raise ResourceNotFoundError("User not found")
    return MeResponse.model_validate(user)
