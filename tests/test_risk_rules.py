"""Tests for the pure stop-loss rules."""

import pytest

from app.models.risk_model import StopLossConfig, UserRiskProfile
from app.services.risk_rules import (
    ExecutionPath,
    effective_stop_price,
    evaluate_holding,
    execution_path,
    find_active_config,
    is_breach,
    is_sustained_drop,
    percent_change,
    portfolio_value,
    portfolio_value_percent,
    requires_two_step,
)
from tests.helpers.factories import make_fund, make_stock


def config(**kwargs) -> StopLossConfig:
    return StopLossConfig(user_id="USR1", ticker=kwargs.pop("ticker", "AAPL"), **kwargs)


class TestEffectiveStopPrice:
    def test_percent_resolves_against_purchase_price(self) -> None:
        assert effective_stop_price(config(stop_loss_percent=5), 200.0) == pytest.approx(190.0)

    def test_price_wins_over_percent(self) -> None:
        assert effective_stop_price(config(stop_loss_price=185.0, stop_loss_percent=5), 200.0) == 185.0

    def test_neither_set(self) -> None:
        assert effective_stop_price(config(), 200.0) is None


class TestBreachAndDrop:
    @pytest.mark.parametrize(
        "price, stop, expected",
        [(188.0, 190.0, True), (190.0, 190.0, True), (190.01, 190.0, False)],
    )
    def test_is_breach(self, price, stop, expected) -> None:
        assert is_breach(price, stop) is expected

    def test_percent_change_is_relative_to_stop(self) -> None:
        assert percent_change(188.0, 190.0) == pytest.approx(-1.0526, abs=1e-4)

    def test_sustained_drop(self) -> None:
        assert is_sustained_drop([189.0, 188.5, 190.0], 190.0) is True
        assert is_sustained_drop([189.0, 190.5, 188.0], 190.0) is False

    def test_empty_history_counts_as_sustained(self) -> None:
        assert is_sustained_drop([], 190.0) is True


class TestPortfolioShare:
    def test_portfolio_value_mixes_stocks_and_funds(self) -> None:
        holdings = [make_stock(price=100.0, quantity=10), make_fund(nav=20.0, quantity=50)]

        assert portfolio_value(holdings) == 2000.0

    def test_share_is_in_percent(self) -> None:
        assert portfolio_value_percent(200.0, 1000.0) == 20.0

    def test_empty_portfolio_share_is_zero(self) -> None:
        assert portfolio_value_percent(200.0, 0.0) == 0.0


class TestConfirmationPolicy:
    @pytest.fixture
    def profile(self) -> UserRiskProfile:
        return UserRiskProfile(user_id="USR1", auto_sell_enabled=True)

    def test_share_threshold_is_strict(self, profile) -> None:
        assert requires_two_step(1000.0, 15.0, profile) is False
        assert requires_two_step(1000.0, 15.01, profile) is True

    def test_amount_threshold(self, profile) -> None:
        assert requires_two_step(100000.0, 1.0, profile) is False
        assert requires_two_step(100000.01, 1.0, profile) is True

    def test_paths(self, profile) -> None:
        assert execution_path(True, profile, "AAPL") == ExecutionPath.TWO_STEP
        assert execution_path(False, profile, "AAPL") == ExecutionPath.TIMED

        profile.confirmation_window_minutes = 0
        assert execution_path(False, profile, "AAPL") == ExecutionPath.MANUAL

        profile.whitelist = ["AAPL"]
        assert execution_path(False, profile, "aapl") == ExecutionPath.IMMEDIATE
        assert execution_path(True, profile, "AAPL") == ExecutionPath.TWO_STEP


class TestEvaluateHolding:
    @pytest.fixture
    def profile(self) -> UserRiskProfile:
        return UserRiskProfile(user_id="USR1", auto_sell_enabled=True, blacklist=["tsla"])

    def test_breach(self, profile) -> None:
        breach = evaluate_holding(make_stock(), [config(stop_loss_percent=5)], profile)

        assert breach is not None
        assert breach.ticker == "AAPL"
        assert breach.current_price == 188.0
        assert breach.stop_price == pytest.approx(190.0)

    def test_blacklisted(self, profile) -> None:
        holding = make_stock(ticker="TSLA")

        assert evaluate_holding(holding, [config(ticker="TSLA", stop_loss_price=500.0)], profile) is None

    def test_no_config_for_ticker(self, profile) -> None:
        assert evaluate_holding(make_stock(), [config(ticker="MSFT", stop_loss_price=500.0)], profile) is None

    def test_find_active_config_ignores_inactive(self) -> None:
        configs = [config(stop_loss_price=1.0, is_active=False), config(stop_loss_price=2.0)]

        assert find_active_config(configs, "AAPL").stop_loss_price == 2.0
