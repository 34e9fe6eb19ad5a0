# app/routers/holdings.py
from typing import List

from fastapi import APIRouter, Depends, HTTPException, status

from app.dependencies import get_agent
from app.models.holding_model import HoldingUpsert, holding_snapshot
from app.services.auto_sell_agent import RiskAutoSellAgent
from app.utils.auth import get_current_user_id
from app.utils.logger import logger

router = APIRouter()


@router.get("/", response_model=List[dict])
async def list_holdings(
    user_id: str = Depends(get_current_user_id),
    agent: RiskAutoSellAgent = Depends(get_agent),
):
    """Holdings with market value and profit/loss."""
    return [holding_snapshot(h) for h in await agent.holdings.list_holdings(user_id)]


@router.put("/", status_code=status.HTTP_200_OK)
async def upsert_holding(
    body: HoldingUpsert,
    user_id: str = Depends(get_current_user_id),
    agent: RiskAutoSellAgent = Depends(get_agent),
):
    """Add a holding or refresh its quantity and latest price."""
    holding = body.to_holding()
    await agent.holdings.upsert_holding(user_id, holding)
    logger.info(f"Holding {holding.ticker} saved for user {user_id}")
    return holding_snapshot(holding)


@router.delete("/{ticker}")
async def remove_holding(
    ticker: str,
    user_id: str = Depends(get_current_user_id),
    agent: RiskAutoSellAgent = Depends(get_agent),
):
    if not await agent.holdings.remove_holding(user_id, ticker.upper()):
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND, detail=f"Holding {ticker} not found"
        )
    return {"message": f"Holding {ticker.upper()} removed"}
