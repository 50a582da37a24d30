"""
Token Purchase Router - SocialSense Client Core
socialsense/routers/tokens.py

Endpoints:
  GET    /success?session_id=...        - Mount/re-render the checkout success page
  POST   /success/retry?session_id=...  - "Try Again" on the failure screen
  DELETE /success?session_id=...        - Tear the success page down
  GET    /tokens/balance                - Re-sync and read the shared token balance
"""

from typing import Any, Dict, Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from pydantic import BaseModel

from socialsense.config import settings
from socialsense.core.dependencies import ServiceContainer, get_services

router = APIRouter(tags=["Tokens"])

# settle within the verifier's own safety window plus a little slack
SETTLE_WAIT_SECONDS = settings.VERIFY_SAFETY_TIMEOUT_SECONDS + 1.0


class BalanceResponse(BaseModel):
    token_balance: int
    stale: bool = False
    error: Optional[str] = None


@router.get("/success", summary="Checkout success page")
async def token_success(
    session_id: Optional[str] = Query(default=None),
    services: ServiceContainer = Depends(get_services),
) -> Dict[str, Any]:
    if not session_id:
        # nothing to verify, so nothing worth keeping alive
        view = services.new_success_view()
        model = view.render({})
        view.dispose()
        return model

    view = services.success_views.get_or_create(session_id, services.new_success_view)
    view.render({"session_id": session_id})
    return await view.settle(timeout=SETTLE_WAIT_SECONDS)


@router.post("/success/retry", summary="Retry payment verification")
async def retry_verification(
    session_id: str = Query(..., min_length=1),
    services: ServiceContainer = Depends(get_services),
) -> Dict[str, Any]:
    view = services.success_views.get(session_id)
    if view is None or view.disposed:
        raise HTTPException(status_code=404, detail=f"No success page open for session {session_id}")
    view.try_again()
    return await view.settle(timeout=SETTLE_WAIT_SECONDS)


@router.delete("/success", summary="Close the checkout success page")
async def close_success(
    session_id: str = Query(..., min_length=1),
    services: ServiceContainer = Depends(get_services),
) -> Dict[str, Any]:
    return {"session_id": session_id, "disposed": services.success_views.dispose(session_id)}


@router.get("/tokens/balance", response_model=BalanceResponse, summary="Current token balance")
async def token_balance(services: ServiceContainer = Depends(get_services)) -> BalanceResponse:
    store = services.balance_store
    value = await store.refresh()
    return BalanceResponse(
        token_balance=value,
        stale=store.last_error is not None,
        error=store.last_error,
    )
