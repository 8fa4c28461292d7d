"""Shared endpoint dependencies and result-to-HTTP error mapping."""

import logging
from typing import NoReturn

from fastapi import HTTPException, Request

from ..core import CoreServices, ErrorKind, Result, get_core

logger = logging.getLogger(__name__)

ERROR_STATUS: dict[ErrorKind, int] = {
    ErrorKind.USER_NOT_FOUND: 404,
    ErrorKind.NOT_FOUND: 404,
    ErrorKind.INSUFFICIENT_FUNDS: 400,
    ErrorKind.INVALID_AMOUNT: 400,
    ErrorKind.INVALID_REQUEST: 400,
    ErrorKind.ACCOUNT_DEACTIVATED: 403,
    ErrorKind.ALREADY_HAS_SESSION: 409,
    ErrorKind.NOT_CANCELLABLE: 409,
    ErrorKind.AGENT_UNAVAILABLE: 503,
}


def get_user_id(request: Request) -> str:
    """Caller id set by AuthMiddleware."""
    user_id = getattr(request.state, "user_id", None)
    if not user_id:
        raise HTTPException(status_code=401, detail="Not authenticated")
    return user_id


def get_services() -> CoreServices:
    """Dependency to get the core services."""
    try:
        return get_core()
    except RuntimeError as e:
        logger.error(f"Core services unavailable: {e}")
        raise HTTPException(status_code=503, detail="Booking service not ready") from None


def raise_for_error(result: Result) -> NoReturn:
    """Turn a failed core result into an HTTPException."""
    status_code = ERROR_STATUS.get(result.error, 500)
    raise HTTPException(
        status_code=status_code,
        detail={"error": result.error.value if result.error else "error", "message": result.detail},
    )
