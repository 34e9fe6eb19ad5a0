from fastapi import APIRouter, Depends, HTTPException

from app.dependencies import get_agent
from app.models.order_model import MarketStatus
from app.services.auto_sell_agent import RiskAutoSellAgent
from app.services.market_data import EXCHANGE_HOURS
from app.utils.logger import logger


router = APIRouter()


@router.get("/status/{exchange}", response_model=MarketStatus)
async def get_market_status(
    exchange: str, agent: RiskAutoSellAgent = Depends(get_agent)
):
    """
    Open/closed state of an exchange by its regular session hours.
    Holidays are not modelled.
    """
    exchange = exchange.upper()
    if exchange not in EXCHANGE_HOURS:
        raise HTTPException(status_code=404, detail=f"Unknown exchange {exchange}")
    try:
        return await agent.market_data.check_market_status(exchange)
    except Exception as e:
        logger.error(f"Error in /market/status endpoint: {e}")
        raise HTTPException(status_code=502, detail="Failed to fetch market status")
