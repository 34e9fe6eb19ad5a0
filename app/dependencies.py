# app/dependencies.py
from functools import lru_cache

from app.repositories.mongo import (
    MongoConfigStore,
    MongoHoldingStore,
    MongoLogStore,
    MongoNotificationStore,
    MongoOrderStore,
)
from app.scheduler import agent_scheduler
from app.services.auto_sell_agent import RiskAutoSellAgent
from app.services.broker import SimulatedBroker
from app.services.market_data import build_market_data
from app.services.notifier import NotificationDispatcher, build_email_sender


@lru_cache
def get_agent() -> RiskAutoSellAgent:
    """The process-wide agent wired to MongoDB and the shared scheduler."""
    return RiskAutoSellAgent(
        holdings=MongoHoldingStore(),
        configs=MongoConfigStore(),
        orders=MongoOrderStore(),
        logs=MongoLogStore(),
        market_data=build_market_data(),
        broker=SimulatedBroker(),
        notifier=NotificationDispatcher(build_email_sender(), MongoNotificationStore()),
        timers=agent_scheduler,
    )
