"""Tests for the Mongo-backed stores, run against mongomock."""

from datetime import datetime, timedelta, timezone

import mongomock
import pytest
import pytest_asyncio

from app.database import create_sell_order_indexes
from app.models.order_model import AutoSellLog, LogAction, OrderStatus, PendingSellOrder
from app.models.risk_model import UserRiskProfile
from app.repositories.mongo import MongoConfigStore, MongoLogStore, MongoOrderStore
from tests.helpers.factories import USER
from tests.helpers.mongo import AsyncCollection

T0 = datetime(2026, 3, 2, 15, 0, tzinfo=timezone.utc)


def make_order(ticker="AAPL", user_id=USER, created_at=T0):
    return PendingSellOrder(
        user_id=user_id,
        ticker=ticker,
        company_name=f"{ticker} Inc.",
        exchange="NASDAQ",
        quantity=10,
        trigger_price=188.0,
        current_price=188.0,
        stop_loss_price=190.0,
        percent_change=-1.05,
        portfolio_value_percent=9.0,
        requires_two_step_confirmation=False,
        created_at=created_at,
        expires_at=created_at + timedelta(minutes=5),
    )


@pytest.fixture
def db():
    return mongomock.MongoClient(tz_aware=True)["auto_sell_test"]


@pytest_asyncio.fixture
async def order_store(db):
    collection = AsyncCollection(db["pending_sell_orders"])
    await create_sell_order_indexes(collection)
    return MongoOrderStore(collection)


class TestMongoOrderStore:
    @pytest.mark.asyncio
    async def test_second_pending_order_is_rejected(self, order_store, db) -> None:
        first, second = make_order(), make_order()

        assert await order_store.create_if_absent(first) is True
        assert await order_store.create_if_absent(second) is False

        assert db["pending_sell_orders"].count_documents({}) == 1
        assert await order_store.get(second.id) is None

    @pytest.mark.asyncio
    async def test_confirmed_order_still_blocks(self, order_store) -> None:
        first = make_order()
        await order_store.create_if_absent(first)
        await order_store.transition(first.id, [OrderStatus.PENDING], OrderStatus.CONFIRMED)

        assert await order_store.create_if_absent(make_order()) is False

    @pytest.mark.parametrize(
        "terminal",
        [OrderStatus.CANCELLED, OrderStatus.EXPIRED, OrderStatus.FAILED, OrderStatus.EXECUTED],
    )
    @pytest.mark.asyncio
    async def test_terminal_order_frees_the_ticker(self, order_store, db, terminal) -> None:
        first = make_order()
        await order_store.create_if_absent(first)
        await order_store.transition(first.id, [OrderStatus.PENDING], terminal)

        assert db["pending_sell_orders"].find_one({"id": first.id})["is_open"] is False
        assert await order_store.create_if_absent(make_order()) is True
        assert db["pending_sell_orders"].count_documents({"is_open": True}) == 1

    @pytest.mark.asyncio
    async def test_other_ticker_and_user_are_independent(self, order_store) -> None:
        await order_store.create_if_absent(make_order())

        assert await order_store.create_if_absent(make_order(ticker="MSFT")) is True
        assert await order_store.create_if_absent(make_order(user_id="USR2")) is True

    @pytest.mark.asyncio
    async def test_transition_rejects_unexpected_status(self, order_store) -> None:
        order = make_order()
        await order_store.create_if_absent(order)

        assert (
            await order_store.transition(order.id, [OrderStatus.CONFIRMED], OrderStatus.EXECUTED)
            is None
        )
        assert (await order_store.get(order.id)).status == OrderStatus.PENDING

        cancelled = await order_store.transition(
            order.id, [OrderStatus.PENDING], OrderStatus.CANCELLED, {"cancelled_at": T0}
        )
        assert cancelled.status == OrderStatus.CANCELLED
        assert cancelled.cancelled_at is not None
        assert (
            await order_store.transition(order.id, [OrderStatus.PENDING], OrderStatus.CONFIRMED)
            is None
        )
        assert (await order_store.get(order.id)).status == OrderStatus.CANCELLED

    @pytest.mark.asyncio
    async def test_list_pending_newest_first(self, order_store) -> None:
        older = make_order(ticker="MSFT")
        newer = make_order(created_at=T0 + timedelta(minutes=1))
        done = make_order(ticker="INFY")
        for order in (older, newer, done):
            await order_store.create_if_absent(order)
        await order_store.transition(done.id, [OrderStatus.PENDING], OrderStatus.CANCELLED)

        pending = await order_store.list_pending(USER)

        assert [o.id for o in pending] == [newer.id, older.id]
        assert len(await order_store.list_by_status(OrderStatus.CANCELLED)) == 1


class TestMongoLogStore:
    @pytest.fixture
    def log_store(self, db):
        return MongoLogStore(AsyncCollection(db["auto_sell_logs"]))

    @pytest.mark.asyncio
    async def test_list_recent_order_and_limit(self, log_store) -> None:
        actions = [LogAction.TRIGGERED, LogAction.CONFIRMED, LogAction.EXECUTED]
        for minute, action in enumerate(actions):
            await log_store.append(
                AutoSellLog(
                    user_id=USER,
                    ticker="AAPL",
                    order_id="SELL1",
                    action=action,
                    timestamp=T0 + timedelta(minutes=minute),
                )
            )
        await log_store.append(
            AutoSellLog(user_id="USR2", ticker="MSFT", order_id="SELL2", action=LogAction.TRIGGERED)
        )

        recent = await log_store.list_recent(USER, 2)

        assert [e.action for e in recent] == [LogAction.EXECUTED, LogAction.CONFIRMED]
        assert len(await log_store.list_recent(USER, 50)) == 3
        assert await log_store.list_recent(USER, 0) == []

    @pytest.mark.asyncio
    async def test_same_timestamp_keeps_insertion_order(self, log_store) -> None:
        for action in (LogAction.TRIGGERED, LogAction.CANCELLED):
            await log_store.append(
                AutoSellLog(user_id=USER, ticker="AAPL", order_id="SELL1", action=action, timestamp=T0)
            )

        recent = await log_store.list_recent(USER, 10)

        assert [e.action for e in recent] == [LogAction.CANCELLED, LogAction.TRIGGERED]
        assert [e.action for e in await log_store.list_for_order("SELL1")] == [
            LogAction.TRIGGERED,
            LogAction.CANCELLED,
        ]


class TestMongoConfigStore:
    @pytest.mark.asyncio
    async def test_profile_round_trip_and_monitored_users(self, db) -> None:
        store = MongoConfigStore(
            AsyncCollection(db["stop_loss_configs"]), AsyncCollection(db["user_risk_profiles"])
        )
        assert await store.get_risk_profile(USER) is None

        await store.save_risk_profile(
            UserRiskProfile(user_id=USER, auto_sell_enabled=True, whitelist=["aapl"], monitoring_active=True)
        )
        await store.save_risk_profile(UserRiskProfile(user_id="USR2"))

        profile = await store.get_risk_profile(USER)
        assert profile.auto_sell_enabled is True
        assert profile.whitelist == ["AAPL"]
        assert await store.list_monitored_users() == [USER]
