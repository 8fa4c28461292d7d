"""Points balance and ledger endpoints."""

import logging

from fastapi import APIRouter, Depends, Query

from ..core import CoreServices
from ..models import (
    PointsBalanceResponse,
    SpendPointsRequest,
    SpendPointsResponse,
    Transaction,
    TransactionInfo,
    TransactionListResponse,
)
from .deps import get_services, get_user_id, raise_for_error

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/points", tags=["points"])


def _to_info(transaction: Transaction) -> TransactionInfo:
    return TransactionInfo(**transaction.model_dump(exclude={"user_id"}))


@router.get("", response_model=PointsBalanceResponse)
async def get_points(
    user_id: str = Depends(get_user_id),
    core: CoreServices = Depends(get_services),
) -> PointsBalanceResponse:
    """Get the caller's balance and regeneration schedule."""
    result = await core.balance.get_balance(user_id)
    if not result.ok:
        raise_for_error(result)

    user = result.value
    return PointsBalanceResponse(
        user_id=user.user_id,
        points=user.points,
        max_points=core.settings.max_points,
        daily_regen_amount=core.settings.daily_regen_amount,
        next_regen_at=user.next_regen_at,
    )


@router.post("/spend", response_model=SpendPointsResponse)
async def spend_points(
    body: SpendPointsRequest,
    user_id: str = Depends(get_user_id),
    core: CoreServices = Depends(get_services),
) -> SpendPointsResponse:
    """Spend points outside of a booking."""
    result = await core.balance.spend(user_id, body.amount, body.reason or "Points spent")
    if not result.ok:
        raise_for_error(result)

    change = result.value
    return SpendPointsResponse(
        new_balance=change.new_balance,
        transaction=_to_info(change.transaction),
    )


@router.get("/transactions", response_model=TransactionListResponse)
async def list_transactions(
    limit: int = Query(default=50, ge=1, le=200),
    offset: int = Query(default=0, ge=0),
    user_id: str = Depends(get_user_id),
    core: CoreServices = Depends(get_services),
) -> TransactionListResponse:
    """List the caller's ledger, newest first."""
    transactions, total = await core.ledger.history(user_id, limit=limit, offset=offset)
    return TransactionListResponse(
        transactions=[_to_info(t) for t in transactions],
        total=total,
        limit=limit,
        offset=offset,
        has_more=offset + len(transactions) < total,
    )
