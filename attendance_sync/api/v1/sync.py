"""
Batch sync trigger endpoint.
"""

import logging
import re
from typing import Optional

from fastapi import APIRouter, Depends, Header, HTTPException, Query, Request, status
from fastapi.responses import JSONResponse
from sqlalchemy.exc import SQLAlchemyError

from attendance_sync.api.dependencies import get_sync_manager
from attendance_sync.core.config import ConfigurationError, settings
from attendance_sync.core.security import decode_session_token, redact, verify_cron_secret
from attendance_sync.schemas.sync import SyncStatsResponse
from attendance_sync.services.sync import AttendanceSyncManager

logger = logging.getLogger(__name__)
router = APIRouter()

USERNAME_RE = re.compile(r"^[a-zA-Z0-9_.-]{3,50}$")


def _authenticate(request: Request, authorization: Optional[str]) -> Optional[str]:
    """
    Resolve the caller.

    Returns None for the cron caller, or the auth id of a signed-in user.
    A present but invalid bearer header is rejected outright.
    """
    if authorization is not None:
        if not authorization.startswith("Bearer ") or not verify_cron_secret(authorization[len("Bearer "):]):
            raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Unauthorized")
        return None

    auth_id = decode_session_token(request.cookies.get(settings.SESSION_COOKIE_NAME, ""))
    if not auth_id:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Unauthorized")
    return auth_id


@router.get(
    "/cron/sync",
    response_model=SyncStatsResponse,
    responses={207: {"model": SyncStatsResponse}, 500: {"model": SyncStatsResponse}},
)
async def run_sync(
    request: Request,
    username: Optional[str] = Query(None),
    authorization: Optional[str] = Header(None),
    sync_manager: AttendanceSyncManager = Depends(get_sync_manager),
):
    """
    Reconcile tracked attendance with the official record.

    Cron callers (``Authorization: Bearer <CRON_SECRET>``) sync one user by
    ``username`` or the oldest-synced batch; signed-in users sync themselves.
    Responds 200 when every user synced, 207 when some failed and 500 when
    all failed.
    """
    try:
        settings.validate_required()
    except ConfigurationError as e:
        logger.error(f"Sync aborted: {e}")
        raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail="Server configuration error")

    auth_id = _authenticate(request, authorization)
    is_cron = auth_id is None

    # The username filter is only honoured for the cron caller
    target_username = username if is_cron else None
    if target_username and not USERNAME_RE.match(target_username):
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Invalid username")

    try:
        users = await sync_manager.select_users(target_username=target_username, auth_id=auth_id)
    except SQLAlchemyError as e:
        logger.error(f"Failed to fetch users for sync: {e}")
        raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail="Failed to fetch users for sync")

    if not users:
        return JSONResponse(content={"success": True, "processed": 0})

    if is_cron:
        logger.info(
            f"Starting cron sync batch of {len(users)} users: "
            f"{', '.join(redact('id', user.auth_id) for user in users)}"
        )

    result = await sync_manager.run_batch(users)
    if result.stats.errors:
        logger.error(
            f"Sync batch had errors: {result.stats.errors}/{result.total_users} users failed"
        )

    body = SyncStatsResponse(success=result.success, **result.stats.as_dict())
    return JSONResponse(status_code=result.status.http_status, content=body.model_dump())
