"""Shared fixtures: an agent wired to in-memory fakes."""

import pytest

from app.models.risk_model import StopLossConfig, UserRiskProfile
from app.services.auto_sell_agent import RiskAutoSellAgent
from app.services.notifier import NotificationDispatcher
from tests.helpers.factories import USER, make_fund, make_stock
from tests.helpers.fakes import (
    FakeBroker,
    FakeClock,
    FakeMarketData,
    FakeTimers,
    InMemoryConfigStore,
    InMemoryHoldingStore,
    InMemoryLogStore,
    InMemoryNotificationStore,
    InMemoryOrderStore,
    RecordingEmailSender,
)


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def holdings():
    return InMemoryHoldingStore()


@pytest.fixture
def configs():
    return InMemoryConfigStore()


@pytest.fixture
def orders():
    return InMemoryOrderStore()


@pytest.fixture
def logs():
    return InMemoryLogStore()


@pytest.fixture
def in_app():
    return InMemoryNotificationStore()


@pytest.fixture
def email():
    return RecordingEmailSender()


@pytest.fixture
def market():
    return FakeMarketData()


@pytest.fixture
def broker():
    return FakeBroker()


@pytest.fixture
def timers():
    return FakeTimers()


@pytest.fixture
def agent(holdings, configs, orders, logs, market, broker, email, in_app, timers, clock):
    return RiskAutoSellAgent(
        holdings=holdings,
        configs=configs,
        orders=orders,
        logs=logs,
        market_data=market,
        broker=broker,
        notifier=NotificationDispatcher(email, in_app),
        timers=timers,
        clock=clock,
        monitoring_interval_seconds=60,
        two_step_ttl_hours=0,
    )


@pytest.fixture
def profile(configs):
    """Auto-sell on, 5 minute window, no sustained-drop wait."""
    p = UserRiskProfile(
        user_id=USER,
        auto_sell_enabled=True,
        confirmation_window_minutes=5,
        sustained_drop_minutes=0,
    )
    configs.profiles[USER] = p
    return p


@pytest.fixture
def aapl_breach(holdings, configs, profile):
    """AAPL bought at 200 with a 5% stop (190), now at 188, ~9% of the portfolio."""
    holdings.data[USER] = {"AAPL": make_stock(), "PPFAS": make_fund(nav=19.0, quantity=1000)}
    configs.stop_losses[(USER, "AAPL")] = StopLossConfig(
        user_id=USER, ticker="AAPL", stop_loss_percent=5
    )
