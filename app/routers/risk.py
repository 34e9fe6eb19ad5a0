# app/routers/risk.py
from typing import List

from fastapi import APIRouter, Depends, HTTPException, Query, status

from app.dependencies import get_agent
from app.models.order_model import ActionResult, AutoSellLog, PendingSellOrder
from app.models.risk_model import (
    RiskProfileUpdate,
    StopLossConfig,
    StopLossRequest,
    UserRiskProfile,
)
from app.services.auto_sell_agent import RiskAutoSellAgent
from app.services.risk_assessment import PortfolioRiskReport, assess_portfolio
from app.utils.auth import get_current_user_id
from app.utils.errors import ErrorCode
from app.utils.logger import logger

router = APIRouter()

ERROR_STATUS = {
    ErrorCode.ORDER_NOT_FOUND: status.HTTP_404_NOT_FOUND,
    ErrorCode.CONFIG_NOT_FOUND: status.HTTP_404_NOT_FOUND,
    ErrorCode.INVALID_STATE: status.HTTP_409_CONFLICT,
    ErrorCode.VALIDATION_ERROR: status.HTTP_422_UNPROCESSABLE_ENTITY,
    ErrorCode.MARKET_CLOSED: status.HTTP_503_SERVICE_UNAVAILABLE,
    ErrorCode.TRADE_FAILED: status.HTTP_502_BAD_GATEWAY,
}


def ensure_success(result: ActionResult) -> ActionResult:
    """Raise the HTTP error matching a failed agent result."""
    if result.success:
        return result
    code = ERROR_STATUS.get(result.error, status.HTTP_500_INTERNAL_SERVER_ERROR)
    raise HTTPException(status_code=code, detail=result.message)


# ==================== MONITORING ====================


@router.post("/monitoring/start", response_model=ActionResult)
async def start_monitoring(
    user_id: str = Depends(get_current_user_id),
    agent: RiskAutoSellAgent = Depends(get_agent),
):
    return ensure_success(await agent.start_monitoring(user_id))


@router.post("/monitoring/stop", response_model=ActionResult)
async def stop_monitoring(
    user_id: str = Depends(get_current_user_id),
    agent: RiskAutoSellAgent = Depends(get_agent),
):
    return ensure_success(await agent.stop_monitoring(user_id))


@router.get("/monitoring/status")
async def monitoring_status(
    user_id: str = Depends(get_current_user_id),
    agent: RiskAutoSellAgent = Depends(get_agent),
):
    return {"user_id": user_id, "monitoring": agent.is_monitoring(user_id)}


@router.post("/monitoring/scan", response_model=List[PendingSellOrder])
async def run_scan(
    user_id: str = Depends(get_current_user_id),
    agent: RiskAutoSellAgent = Depends(get_agent),
):
    """Run one stop-loss scan now and return the orders it created."""
    return await agent.check_all_holdings(user_id)


# ==================== STOP-LOSS ====================


@router.get("/stop-loss", response_model=List[StopLossConfig])
async def list_stop_losses(
    user_id: str = Depends(get_current_user_id),
    agent: RiskAutoSellAgent = Depends(get_agent),
):
    return await agent.get_stop_loss_configs(user_id)


@router.put("/stop-loss/{ticker}", response_model=ActionResult)
async def set_stop_loss(
    ticker: str,
    body: StopLossRequest,
    user_id: str = Depends(get_current_user_id),
    agent: RiskAutoSellAgent = Depends(get_agent),
):
    result = await agent.set_stop_loss(
        user_id, ticker, body.stop_loss_price, body.stop_loss_percent
    )
    return ensure_success(result)


@router.delete("/stop-loss/{ticker}", response_model=ActionResult)
async def remove_stop_loss(
    ticker: str,
    user_id: str = Depends(get_current_user_id),
    agent: RiskAutoSellAgent = Depends(get_agent),
):
    return ensure_success(await agent.remove_stop_loss(user_id, ticker))


# ==================== PROFILE ====================


@router.get("/profile", response_model=UserRiskProfile)
async def get_profile(
    user_id: str = Depends(get_current_user_id),
    agent: RiskAutoSellAgent = Depends(get_agent),
):
    return await agent.get_risk_profile(user_id)


@router.patch("/profile", response_model=UserRiskProfile)
async def update_profile(
    updates: RiskProfileUpdate,
    user_id: str = Depends(get_current_user_id),
    agent: RiskAutoSellAgent = Depends(get_agent),
):
    ensure_success(await agent.update_risk_profile(user_id, updates))
    return await agent.get_risk_profile(user_id)


# ==================== ORDERS ====================


@router.get("/orders/pending", response_model=List[PendingSellOrder])
async def pending_orders(
    user_id: str = Depends(get_current_user_id),
    agent: RiskAutoSellAgent = Depends(get_agent),
):
    return await agent.get_pending_sell_orders(user_id)


@router.get("/orders/{order_id}", response_model=PendingSellOrder)
async def get_order(
    order_id: str,
    user_id: str = Depends(get_current_user_id),
    agent: RiskAutoSellAgent = Depends(get_agent),
):
    return ensure_success(await agent.get_order(order_id, user_id)).order


@router.post("/orders/{order_id}/confirm", response_model=ActionResult)
async def confirm_order(
    order_id: str,
    user_id: str = Depends(get_current_user_id),
    agent: RiskAutoSellAgent = Depends(get_agent),
):
    logger.info(f"User {user_id} confirming order {order_id}")
    return ensure_success(await agent.confirm_sell_order(order_id, user_id))


@router.post("/orders/{order_id}/cancel", response_model=ActionResult)
async def cancel_order(
    order_id: str,
    user_id: str = Depends(get_current_user_id),
    agent: RiskAutoSellAgent = Depends(get_agent),
):
    logger.info(f"User {user_id} cancelling order {order_id}")
    return ensure_success(await agent.cancel_sell_order(order_id, user_id))


# ==================== LOGS & NOTIFICATIONS ====================


@router.get("/logs", response_model=List[AutoSellLog])
async def auto_sell_logs(
    limit: int = Query(50, ge=1, le=500),
    user_id: str = Depends(get_current_user_id),
    agent: RiskAutoSellAgent = Depends(get_agent),
):
    return await agent.get_auto_sell_logs(user_id, limit)


@router.get("/notifications")
async def notifications(
    limit: int = Query(20, ge=1, le=200),
    user_id: str = Depends(get_current_user_id),
    agent: RiskAutoSellAgent = Depends(get_agent),
):
    return await agent.notifier.in_app.list_for_user(user_id, limit)


# ==================== ASSESSMENT ====================


@router.get("/assessment", response_model=PortfolioRiskReport)
async def risk_assessment(
    user_id: str = Depends(get_current_user_id),
    agent: RiskAutoSellAgent = Depends(get_agent),
):
    holdings = await agent.holdings.list_holdings(user_id)
    profile = await agent.get_risk_profile(user_id)
    return assess_portfolio(holdings, profile)
