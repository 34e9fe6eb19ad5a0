# app/database.py
from motor.motor_asyncio import AsyncIOMotorClient
from pymongo import ASCENDING, DESCENDING

from app.config import settings
from app.utils.logger import logger

client = AsyncIOMotorClient(settings.MONGO_URI, tz_aware=True)
db = client[settings.MONGO_DB]
users_collection = db["users"]
holdings_collection = db["holdings"]
stop_loss_collection = db["stop_loss_configs"]
risk_profiles_collection = db["user_risk_profiles"]
sell_orders_collection = db["pending_sell_orders"]
auto_sell_logs_collection = db["auto_sell_logs"]
notifications_collection = db["notifications"]
email_outbox_collection = db["email_outbox"]


async def create_sell_order_indexes(collection):
    await collection.create_index("id", unique=True)
    await collection.create_index([("user_id", ASCENDING), ("status", ASCENDING)])
    # At most one open order per (user, ticker); the check-then-create relies on it
    await collection.create_index(
        [("user_id", ASCENDING), ("ticker", ASCENDING)],
        unique=True,
        partialFilterExpression={"is_open": True},
        name="one_open_order_per_ticker",
    )


async def init_db():
    """Initialize database indexes"""
    await users_collection.create_index("email", unique=True)
    await users_collection.create_index("username", unique=True)
    await users_collection.create_index("id", unique=True)

    await holdings_collection.create_index(
        [("user_id", ASCENDING), ("ticker", ASCENDING)], unique=True
    )
    await stop_loss_collection.create_index(
        [("user_id", ASCENDING), ("ticker", ASCENDING)], unique=True
    )
    await risk_profiles_collection.create_index("user_id", unique=True)

    await create_sell_order_indexes(sell_orders_collection)

    await auto_sell_logs_collection.create_index(
        [("user_id", ASCENDING), ("timestamp", DESCENDING)]
    )
    await auto_sell_logs_collection.create_index("order_id")
    await notifications_collection.create_index(
        [("user_id", ASCENDING), ("timestamp", DESCENDING)]
    )

    logger.info("Database indexes created successfully")
