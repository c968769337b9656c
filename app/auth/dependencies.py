from typing import Optional

from fastapi import Depends
from fastapi.security import OAuth2PasswordBearer
from jose import JWTError
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.auth.models import AuthToken, User
from app.auth.schemas import CurrentUser
from app.auth.security import decode_access_token
from app.core.exceptions import InvalidTokenError
from app.core.time_utils import to_naive_utc, utcnow
from app.db.session import get_db


# auto_error=False so a missing header is reported as INVALID_TOKEN like any other bad token
oauth2_scheme = OAuth2PasswordBearer(tokenUrl="/api/v1/auth/login-oauth", auto_error=False)


async def get_current_user(
    token: Optional[str] = Depends(oauth2_scheme),
    db: AsyncSession = Depends(get_db),
) -> CurrentUser:
    """Resolve the authenticated user from the bearer token.

    The JWT must verify, its issued-token row must exist and not be revoked,
    and the user must still be active.
    """
    if not token:
        raise InvalidTokenError("Missing authentication token")

    try:
        payload = decode_access_token(token)
    except JWTError:
        raise InvalidTokenError()

    try:
        user_id = int(payload.get("sub"))
    except (TypeError, ValueError):
        raise InvalidTokenError()

    token_result = await db.execute(
        select(AuthToken).where(AuthToken.token == token, AuthToken.user_id == user_id)
    )
    stored = token_result.scalar_one_or_none()
    if not stored or stored.revoked or to_naive_utc(stored.expires_at) <= utcnow():
        raise InvalidTokenError()

    user = await db.get(User, user_id)
    if not user or not user.is_active:
        raise InvalidTokenError()

    return CurrentUser(id=user.id, username=user.username, role=user.role, token=token)
