# app/models/order_model.py
from datetime import datetime
from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, Field

from app.utils.errors import ErrorCode
from app.utils.helpers import generate_id, utcnow


class OrderStatus(str, Enum):
    PENDING = "pending"
    CONFIRMED = "confirmed"
    CANCELLED = "cancelled"
    EXECUTED = "executed"
    FAILED = "failed"
    EXPIRED = "expired"


# Orders in these states block a new order for the same ticker
OPEN_STATUSES = (OrderStatus.PENDING, OrderStatus.CONFIRMED)
TERMINAL_STATUSES = (
    OrderStatus.CANCELLED,
    OrderStatus.EXECUTED,
    OrderStatus.FAILED,
    OrderStatus.EXPIRED,
)


class LogAction(str, Enum):
    TRIGGERED = "triggered"
    CONFIRMED = "confirmed"
    CANCELLED = "cancelled"
    EXECUTED = "executed"
    FAILED = "failed"
    EXPIRED = "expired"


class UserAction(str, Enum):
    MANUAL_CONFIRM = "manual_confirm"
    MANUAL_CANCEL = "manual_cancel"
    AUTO_EXECUTE = "auto_execute"
    TIMEOUT = "timeout"


class NotificationStatus(BaseModel):
    email_sent: bool = False
    in_app_pushed: bool = False


class PreSellState(BaseModel):
    holdings: List[dict] = Field(default_factory=list)
    portfolio_value: float = 0.0
    timestamp: datetime = Field(default_factory=utcnow)


class PendingSellOrder(BaseModel):
    id: str = Field(default_factory=lambda: generate_id("SELL"))
    user_id: str
    ticker: str
    company_name: str
    exchange: str = "NSE"
    quantity: float
    trigger_price: float
    current_price: float
    stop_loss_price: float
    percent_change: float
    portfolio_value_percent: float
    requires_two_step_confirmation: bool
    status: OrderStatus = OrderStatus.PENDING
    created_at: datetime = Field(default_factory=utcnow)
    expires_at: datetime
    confirmed_at: Optional[datetime] = None
    executed_at: Optional[datetime] = None
    cancelled_at: Optional[datetime] = None
    expired_at: Optional[datetime] = None
    executed_trade_id: Optional[str] = None
    executed_price: Optional[float] = None
    executed_quantity: Optional[float] = None
    partial_fill: Optional[bool] = None
    slippage: Optional[float] = None
    failure_reason: Optional[str] = None
    notification: NotificationStatus = Field(default_factory=NotificationStatus)
    pre_sell_state: PreSellState = Field(default_factory=PreSellState)

    @property
    def is_open(self) -> bool:
        return self.status in OPEN_STATUSES


class LogDetails(BaseModel):
    trigger_price: Optional[float] = None
    execution_price: Optional[float] = None
    quantity: Optional[float] = None
    trade_id: Optional[str] = None
    reason: Optional[str] = None
    user_action: Optional[UserAction] = None
    retryable: Optional[bool] = None
    slippage: Optional[float] = None
    partial_fill: Optional[bool] = None


class AutoSellLog(BaseModel):
    id: str = Field(default_factory=lambda: generate_id("LOG"))
    user_id: str
    ticker: str
    order_id: str
    action: LogAction
    timestamp: datetime = Field(default_factory=utcnow)
    details: LogDetails = Field(default_factory=LogDetails)


class TradeExecution(BaseModel):
    success: bool
    trade_id: Optional[str] = None
    executed_price: Optional[float] = None
    executed_quantity: Optional[float] = None
    executed_at: Optional[datetime] = None
    partial_fill: bool = False
    slippage: Optional[float] = None
    error: Optional[str] = None
    error_code: Optional[ErrorCode] = None
    retryable: bool = False


class MarketStatus(BaseModel):
    is_open: bool
    exchange: str
    next_open_time: Optional[datetime] = None
    message: str


class ActionResult(BaseModel):
    success: bool
    message: str
    error: Optional[ErrorCode] = None
    order: Optional[PendingSellOrder] = None
