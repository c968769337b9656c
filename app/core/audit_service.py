"""
Audit logging for admin mutations of stations and pumps.

Routes opt in with ``Depends(audit_trail(AuditEntityType.X))``. The dependency
captures the entity's old values before the handler runs; the handler calls
``AuditTrail.record`` with its response, which schedules the write as a
background task that runs after the response has been sent. A failed write is
logged and dropped.
"""

import logging
from typing import Any, Awaitable, Callable, Dict, Optional

from fastapi import BackgroundTasks, Depends, Request
from pydantic import BaseModel
from sqlalchemy.ext.asyncio import AsyncSession

from app.auth.rbac import require_admin
from app.auth.schemas import CurrentUser
from app.core.enums import AuditAction, AuditEntityType
from app.core.models import AuditLog
from app.db.session import Database, get_database, get_db

logger = logging.getLogger(__name__)

OldValuesLoader = Callable[[AsyncSession, Dict[str, Any]], Awaitable[Optional[Dict[str, Any]]]]

_METHOD_ACTIONS = {
    "POST": AuditAction.CREATE,
    "PUT": AuditAction.UPDATE,
    "PATCH": AuditAction.UPDATE,
    "DELETE": AuditAction.DELETE,
}


async def log_audit(
    db: AsyncSession,
    *,
    user_id: Optional[int],
    action: str,
    entity_type: str,
    entity_id: int,
    old_values: Optional[Dict[str, Any]] = None,
    new_values: Optional[Dict[str, Any]] = None,
    ip_address: Optional[str] = None,
) -> None:
    """Append one audit log entry. Caller must commit."""
    db.add(
        AuditLog(
            user_id=user_id,
            action=action,
            entity_type=entity_type,
            entity_id=entity_id,
            old_values=old_values,
            new_values=new_values,
            ip_address=ip_address,
        )
    )


async def write_audit_log(database: Database, **fields: Any) -> None:
    """Background task body: own session, own transaction, never raises."""
    try:
        async with database.session() as db:
            await log_audit(db, **fields)
            await db.commit()
    except Exception:
        logger.exception(
            "Audit logging failed for %s %s/%s",
            fields.get("action"),
            fields.get("entity_type"),
            fields.get("entity_id"),
        )


class AuditTrail:
    """Per-request audit recorder handed to a route handler."""

    def __init__(
        self,
        *,
        database: Database,
        background_tasks: BackgroundTasks,
        entity_type: AuditEntityType,
        action: AuditAction,
        user_id: int,
        ip_address: Optional[str],
        old_values: Optional[Dict[str, Any]],
    ) -> None:
        self.database = database
        self.background_tasks = background_tasks
        self.entity_type = entity_type
        self.action = action
        self.user_id = user_id
        self.ip_address = ip_address
        self.old_values = old_values

    def record(self, entity_id: int, response: Optional[BaseModel] = None) -> None:
        # Snapshot now: the response object must not be read after it is sent
        new_values = response.model_dump(mode="json") if response is not None else None
        self.background_tasks.add_task(
            write_audit_log,
            self.database,
            user_id=self.user_id,
            action=self.action.value,
            entity_type=self.entity_type.value,
            entity_id=entity_id,
            old_values=self.old_values,
            new_values=new_values,
            ip_address=self.ip_address,
        )


def audit_trail(
    entity_type: AuditEntityType,
    *,
    action: Optional[AuditAction] = None,
    load_old_values: Optional[OldValuesLoader] = None,
):
    """
    Dependency factory for audited admin routes.

    Example:
        audit: AuditTrail = Depends(audit_trail(AuditEntityType.STATION, load_old_values=...))
    """

    async def _dependency(
        request: Request,
        background_tasks: BackgroundTasks,
        current_user: CurrentUser = Depends(require_admin),
        db: AsyncSession = Depends(get_db),
    ) -> AuditTrail:
        resolved_action = action or _METHOD_ACTIONS.get(request.method, AuditAction.UPDATE)
        old_values = None
        if load_old_values is not None and resolved_action != AuditAction.CREATE:
            old_values = await load_old_values(db, dict(request.path_params))
        return AuditTrail(
            database=get_database(request),
            background_tasks=background_tasks,
            entity_type=entity_type,
            action=resolved_action,
            user_id=current_user.id,
            ip_address=request.client.host if request.client else None,
            old_values=old_values,
        )

    return _dependency
