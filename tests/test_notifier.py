"""Tests for notification rendering and dispatch."""

from datetime import timedelta
from unittest.mock import AsyncMock, MagicMock

import pytest

from app.models.order_model import PendingSellOrder
from app.services.notifier import (
    NotificationDispatcher,
    OutboxEmailSender,
    SmtpEmailSender,
    action_links,
    build_email_sender,
    currency_symbol,
    render_order_email,
)
from app.utils.helpers import utcnow
from tests.helpers.fakes import InMemoryNotificationStore, RecordingEmailSender


def make_order(two_step=False, window=5, exchange="NASDAQ") -> PendingSellOrder:
    now = utcnow()
    return PendingSellOrder(
        id="SELLTEST01",
        user_id="USR1",
        ticker="AAPL",
        company_name="Apple Inc.",
        exchange=exchange,
        quantity=10,
        trigger_price=188.0,
        current_price=188.0,
        stop_loss_price=190.0,
        percent_change=-1.05,
        portfolio_value_percent=9.0,
        requires_two_step_confirmation=two_step,
        created_at=now,
        expires_at=now + timedelta(minutes=window),
    )


def test_currency_symbol() -> None:
    assert currency_symbol("NSE") == "₹"
    assert currency_symbol("NYSE") == "$"


def test_action_links_point_at_order() -> None:
    links = action_links("SELL1")

    assert links["confirm"].endswith("/confirm-sell/SELL1")
    assert links["cancel"].endswith("/cancel-sell/SELL1")


class TestRenderOrderEmail:
    def test_timed_order_mentions_window(self) -> None:
        body = render_order_email(make_order())

        assert "executed automatically in <strong>5 minutes" in body
        assert "$188.00" in body
        assert "SELLTEST01" in body

    def test_two_step_order(self) -> None:
        body = render_order_email(make_order(two_step=True))

        assert "Two-step confirmation required" in body
        assert "automatically" not in body

    def test_manual_order(self) -> None:
        body = render_order_email(make_order(window=0, exchange="NSE"))

        assert "waiting for your decision" in body
        assert "₹188.00" in body


class TestNotificationDispatcher:
    @pytest.fixture
    def email(self) -> RecordingEmailSender:
        return RecordingEmailSender()

    @pytest.fixture
    def in_app(self) -> InMemoryNotificationStore:
        return InMemoryNotificationStore()

    @pytest.mark.asyncio
    async def test_order_created_uses_both_channels(self, email, in_app) -> None:
        dispatcher = NotificationDispatcher(email, in_app)

        status = await dispatcher.notify_order_created(make_order())

        assert status.email_sent is True
        assert status.in_app_pushed is True
        assert email.sent[0]["subject"] == "STOP-LOSS TRIGGERED: AAPL"
        actions = [a["action"] for a in in_app.items[0]["actions"]]
        assert actions == ["confirm", "cancel"]
        assert in_app.items[0]["message"].endswith("Auto-sell pending.")

    @pytest.mark.asyncio
    async def test_channel_failures_become_flags(self, email, in_app) -> None:
        email.fail = True
        dispatcher = NotificationDispatcher(email, in_app)

        status = await dispatcher.notify_order_created(make_order(two_step=True))

        assert status.email_sent is False
        assert status.in_app_pushed is True
        assert in_app.items[0]["message"].endswith("Confirmation required.")

    @pytest.mark.asyncio
    async def test_outcome(self, email, in_app) -> None:
        in_app.fail = True
        dispatcher = NotificationDispatcher(email, in_app)

        status = await dispatcher.notify_outcome("USR1", "Sell Order Failed: AAPL", "boom", priority="medium")

        assert status.in_app_pushed is False
        assert status.email_sent is True
        assert email.sent[0]["body"] == "<p>boom</p>"


class TestEmailSenders:
    @pytest.mark.asyncio
    async def test_outbox_queues_document(self) -> None:
        collection = MagicMock()
        collection.insert_one = AsyncMock()
        sender = OutboxEmailSender(collection=collection)

        await sender.send("USR1", "Subject", "<p>Body</p>", {"confirm": "http://x"})

        doc = collection.insert_one.await_args.args[0]
        assert doc["user_id"] == "USR1"
        assert doc["subject"] == "Subject"
        assert doc["links"] == {"confirm": "http://x"}
        assert doc["id"].startswith("MAIL")

    @pytest.mark.asyncio
    async def test_smtp_without_address_raises(self) -> None:
        users = MagicMock()
        users.find_one = AsyncMock(return_value=None)
        sender = SmtpEmailSender(users=users)

        with pytest.raises(LookupError):
            await sender.send("USR1", "Subject", "Body")

    def test_build_email_sender(self) -> None:
        assert isinstance(build_email_sender("smtp"), SmtpEmailSender)
        assert isinstance(build_email_sender("outbox"), OutboxEmailSender)
