# app/services/risk_rules.py
"""
Stop-loss rules evaluated on every scan.

All functions here are pure: they take already-loaded holdings, configs and
profiles and return a decision. I/O lives in the agent.
"""
from enum import Enum
from typing import Iterable, Optional, Sequence

from app.models.holding_model import HoldingBase, current_price_of
from app.models.risk_model import StopLossConfig, UserRiskProfile


class ExecutionPath(str, Enum):
    TWO_STEP = "two_step"  # wait for a manual confirm/cancel, no timer
    TIMED = "timed"  # auto-execute when the confirmation window elapses
    IMMEDIATE = "immediate"  # execute at creation
    MANUAL = "manual"  # no window and not whitelisted, wait for the user


def find_active_config(
    configs: Iterable[StopLossConfig], ticker: str
) -> Optional[StopLossConfig]:
    for config in configs:
        if config.ticker == ticker and config.is_active:
            return config
    return None


def effective_stop_price(
    config: StopLossConfig, purchase_price: float
) -> Optional[float]:
    """
    Literal stop price if one is set, otherwise the percent resolved against
    the purchase price. None when the config defines neither.
    """
    if config.stop_loss_price:
        return config.stop_loss_price
    if config.stop_loss_percent:
        return purchase_price * (1 - config.stop_loss_percent / 100)
    return None


def is_breach(current_price: float, stop_price: float) -> bool:
    return current_price <= stop_price


def percent_change(current_price: float, stop_price: float) -> float:
    """How far the price is from the stop, in percent of the stop."""
    return (current_price - stop_price) / stop_price * 100


def is_sustained_drop(prices: Sequence[float], stop_price: float) -> bool:
    """Every sample in the window sits at or below the stop price."""
    return all(price <= stop_price for price in prices)


def portfolio_value(holdings: Iterable[HoldingBase]) -> float:
    return sum(h.market_value for h in holdings)


def portfolio_value_percent(market_value: float, total_value: float) -> float:
    if total_value <= 0:
        return 0.0
    return market_value / total_value * 100


def requires_two_step(
    market_value: float, value_percent: float, profile: UserRiskProfile
) -> bool:
    return (
        value_percent > profile.high_value_threshold_percent
        or market_value > profile.high_value_threshold_amount
    )


def execution_path(
    two_step: bool, profile: UserRiskProfile, ticker: str
) -> ExecutionPath:
    if two_step:
        return ExecutionPath.TWO_STEP
    if profile.confirmation_window_minutes > 0:
        return ExecutionPath.TIMED
    if profile.is_whitelisted(ticker):
        return ExecutionPath.IMMEDIATE
    return ExecutionPath.MANUAL


class Breach:
    """A holding whose current price sits at or below its effective stop."""

    def __init__(self, holding: HoldingBase, stop_price: float):
        self.holding = holding
        self.stop_price = stop_price
        self.current_price = current_price_of(holding)

    @property
    def ticker(self) -> str:
        return self.holding.ticker

    def __repr__(self):
        return f"Breach({self.ticker} @ {self.current_price:.2f} <= {self.stop_price:.2f})"


def evaluate_holding(
    holding: HoldingBase,
    configs: Sequence[StopLossConfig],
    profile: UserRiskProfile,
) -> Optional[Breach]:
    """
    Evaluate one holding against its active stop-loss.

    Blacklisted tickers and holdings without an active config are skipped
    (None). The caller short-circuits the whole scan when auto-sell is off.
    """
    if profile.is_blacklisted(holding.ticker):
        return None
    config = find_active_config(configs, holding.ticker)
    if config is None:
        return None
    stop_price = effective_stop_price(config, holding.purchase_price)
    if stop_price is None:
        return None
    if is_breach(current_price_of(holding), stop_price):
        return Breach(holding, stop_price)
    return None
