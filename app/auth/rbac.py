from fastapi import Depends

from app.auth.dependencies import get_current_user
from app.auth.schemas import CurrentUser
from app.core.enums import ADMIN_ROLES
from app.core.exceptions import InsufficientPermissionsError


async def require_admin(
    current_user: CurrentUser = Depends(get_current_user),
) -> CurrentUser:
    """Require ADMIN or SUPER_ADMIN. Used for station/pump mutations and admin views."""
    if current_user.role not in ADMIN_ROLES:
        raise InsufficientPermissionsError()
    return current_user
