from fastapi import APIRouter, Depends
from fastapi import status as http_status
from fastapi.security import OAuth2PasswordRequestForm
from sqlalchemy.ext.asyncio import AsyncSession

from app.auth.dependencies import get_current_user
from app.auth.schemas import CurrentUser, LoginRequest, LoginResponse, LogoutResponse, MeResponse
from app.auth.services import get_me, login_user, logout_user
from app.core.exceptions import InvalidCredentialsError
from app.db.session import get_db

router = APIRouter(prefix="/api/v1/auth", tags=["auth"])


@router.post(
    "/login",
    response_model=LoginResponse,
    status_code=http_status.HTTP_200_OK,
)
async def login(
    payload: LoginRequest,
    db: AsyncSession = Depends(get_db),
) -> LoginResponse:
    return await login_user(db, payload)


@router.post("/login-oauth")
async def login_oauth(
    form_data: OAuth2PasswordRequestForm = Depends(),
    db: AsyncSession = Depends(get_db),
):
    username = form_data.username.strip()
    if not username or not form_data.password:
        raise InvalidCredentialsError()
    payload = LoginRequest(
        username=username,
        password=form_data.password,
    )
    result = await login_user(db, payload)
    return {
        "access_token": result.access_token,
        "token_type": "bearer",
    }


@router.post("/logout", response_model=LogoutResponse)
async def logout(
    current_user: CurrentUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
) -> LogoutResponse:
    """Revoke the bearer token used for this request."""
    return await logout_user(db, current_user.id, current_user.token)


@router.get("/me", response_model=MeResponse)
async def me(
    current_user: CurrentUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
) -> MeResponse:
    return await get_me(db, current_user.id)
