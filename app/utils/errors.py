# app/utils/errors.py
from enum import Enum


class ErrorCode(str, Enum):
    ORDER_NOT_FOUND = "order_not_found"
    CONFIG_NOT_FOUND = "config_not_found"
    INVALID_STATE = "invalid_state"
    VALIDATION_ERROR = "validation_error"
    MARKET_CLOSED = "market_closed"
    TRADE_FAILED = "trade_failed"


class AutoSellError(Exception):
    """Base error for the auto-sell agent. Carries a machine readable code."""

    code: ErrorCode = ErrorCode.VALIDATION_ERROR
    retryable: bool = False

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class OrderNotFound(AutoSellError):
    code = ErrorCode.ORDER_NOT_FOUND


class ConfigNotFound(AutoSellError):
    code = ErrorCode.CONFIG_NOT_FOUND


class InvalidOrderState(AutoSellError):
    code = ErrorCode.INVALID_STATE


class InvalidInput(AutoSellError):
    code = ErrorCode.VALIDATION_ERROR


class MarketClosedError(AutoSellError):
    code = ErrorCode.MARKET_CLOSED
    retryable = True


class TradeFailedError(AutoSellError):
    code = ErrorCode.TRADE_FAILED

