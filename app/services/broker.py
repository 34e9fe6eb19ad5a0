# app/services/broker.py
import random
from abc import ABC, abstractmethod
from typing import Optional

from app.config import settings
from app.models.order_model import TradeExecution
from app.utils.errors import ErrorCode
from app.utils.helpers import generate_id, utcnow
from app.utils.logger import logger


class BrokerPort(ABC):
    @abstractmethod
    async def submit_market_sell(
        self, ticker: str, quantity: float, reference_price: float
    ) -> TradeExecution:
        ...


class SimulatedBroker(BrokerPort):
    """
    Paper broker for market sells.

    Fills at the reference price moved by up to `max_slippage_pct` either way,
    fills 80% of the quantity with probability `partial_fill_rate`, and rejects
    the order outright with probability `failure_rate`.
    """

    def __init__(
        self,
        failure_rate: float = settings.BROKER_FAILURE_RATE,
        partial_fill_rate: float = settings.BROKER_PARTIAL_FILL_RATE,
        max_slippage_pct: float = settings.BROKER_MAX_SLIPPAGE_PCT,
        rng: Optional[random.Random] = None,
    ):
        self.failure_rate = failure_rate
        self.partial_fill_rate = partial_fill_rate
        self.max_slippage_pct = max_slippage_pct
        self.rng = rng or random.Random()

    async def submit_market_sell(
        self, ticker: str, quantity: float, reference_price: float
    ) -> TradeExecution:
        logger.info(f"Submitting market sell: {ticker} x{quantity} @ ~{reference_price:.2f}")

        if self.rng.random() < self.failure_rate:
            logger.warning(f"Simulated broker rejected sell for {ticker}")
            return TradeExecution(
                success=False,
                error="Order rejected by broker",
                error_code=ErrorCode.TRADE_FAILED,
                retryable=False,
            )

        drift = self.rng.uniform(-self.max_slippage_pct, self.max_slippage_pct) / 100
        executed_price = round(reference_price * (1 + drift), 2)
        partial_fill = self.rng.random() < self.partial_fill_rate
        executed_quantity = int(quantity * 0.8) if partial_fill else quantity
        if executed_quantity <= 0:
            # A fractional or single unit position cannot be partially filled
            executed_quantity, partial_fill = quantity, False

        trade_id = generate_id("TRD")
        logger.info(
            f"Trade {trade_id} filled: {ticker} x{executed_quantity} @ {executed_price:.2f}"
            + (" (partial)" if partial_fill else "")
        )
        return TradeExecution(
            success=True,
            trade_id=trade_id,
            executed_price=executed_price,
            executed_quantity=executed_quantity,
            executed_at=utcnow(),
            partial_fill=partial_fill,
            slippage=round(abs(executed_price - reference_price), 4),
        )
