# app/repositories/mongo.py
from typing import Iterable, List, Optional

from pydantic import TypeAdapter
from pymongo import DESCENDING, ReturnDocument
from pymongo.errors import DuplicateKeyError

from app.database import (
    auto_sell_logs_collection,
    holdings_collection,
    notifications_collection,
    risk_profiles_collection,
    sell_orders_collection,
    stop_loss_collection,
)
from app.models.holding_model import Investable
from app.models.order_model import (
    OPEN_STATUSES,
    AutoSellLog,
    NotificationStatus,
    OrderStatus,
    PendingSellOrder,
)
from app.models.risk_model import StopLossConfig, UserRiskProfile
from app.repositories.base import (
    ConfigStore,
    HoldingStore,
    LogStore,
    NotificationStore,
    OrderStore,
)
from app.utils.helpers import strip_mongo_id

_holding_adapter = TypeAdapter(Investable)


class MongoHoldingStore(HoldingStore):
    def __init__(self, collection=holdings_collection):
        self.collection = collection

    async def list_holdings(self, user_id: str) -> List[Investable]:
        docs = await self.collection.find({"user_id": user_id}).to_list(length=None)
        holdings = []
        for doc in docs:
            strip_mongo_id(doc)
            doc.pop("user_id", None)
            holdings.append(_holding_adapter.validate_python(doc))
        return holdings

    async def upsert_holding(self, user_id: str, holding: Investable) -> None:
        await self.collection.replace_one(
            {"user_id": user_id, "ticker": holding.ticker},
            {**holding.model_dump(), "user_id": user_id},
            upsert=True,
        )

    async def remove_holding(self, user_id: str, ticker: str) -> bool:
        result = await self.collection.delete_one({"user_id": user_id, "ticker": ticker})
        return result.deleted_count > 0

    async def reduce_quantity(self, user_id: str, ticker: str, quantity: float) -> None:
        doc = await self.collection.find_one_and_update(
            {"user_id": user_id, "ticker": ticker},
            {"$inc": {"quantity": -quantity}},
            return_document=ReturnDocument.AFTER,
        )
        if doc is not None and doc.get("quantity", 0) <= 0:
            await self.collection.delete_one({"_id": doc["_id"]})


class MongoConfigStore(ConfigStore):
    def __init__(
        self, stop_loss=stop_loss_collection, profiles=risk_profiles_collection
    ):
        self.stop_loss = stop_loss
        self.profiles = profiles

    async def get_stop_loss_configs(self, user_id: str) -> List[StopLossConfig]:
        docs = await self.stop_loss.find({"user_id": user_id}).to_list(length=None)
        return [StopLossConfig(**strip_mongo_id(d)) for d in docs]

    async def upsert_stop_loss(self, config: StopLossConfig) -> None:
        await self.stop_loss.replace_one(
            {"user_id": config.user_id, "ticker": config.ticker},
            config.model_dump(),
            upsert=True,
        )

    async def remove_stop_loss(self, user_id: str, ticker: str) -> bool:
        result = await self.stop_loss.delete_one({"user_id": user_id, "ticker": ticker})
        return result.deleted_count > 0

    async def get_risk_profile(self, user_id: str) -> Optional[UserRiskProfile]:
        doc = await self.profiles.find_one({"user_id": user_id})
        if doc is None:
            return None
        return UserRiskProfile(**strip_mongo_id(doc))

    async def save_risk_profile(self, profile: UserRiskProfile) -> None:
        await self.profiles.replace_one(
            {"user_id": profile.user_id}, profile.model_dump(), upsert=True
        )

    async def list_monitored_users(self) -> List[str]:
        docs = await self.profiles.find(
            {"monitoring_active": True}, {"user_id": 1}
        ).to_list(length=None)
        return [d["user_id"] for d in docs]


def _order_doc(order: PendingSellOrder) -> dict:
    doc = order.model_dump()
    doc["is_open"] = order.is_open
    return doc


def _to_order(doc) -> PendingSellOrder:
    strip_mongo_id(doc)
    doc.pop("is_open", None)
    return PendingSellOrder(**doc)


class MongoOrderStore(OrderStore):
    def __init__(self, collection=sell_orders_collection):
        self.collection = collection

    async def create_if_absent(self, order: PendingSellOrder) -> bool:
        try:
            await self.collection.insert_one(_order_doc(order))
            return True
        except DuplicateKeyError:
            return False

    async def get(self, order_id: str) -> Optional[PendingSellOrder]:
        doc = await self.collection.find_one({"id": order_id})
        return _to_order(doc) if doc else None

    async def transition(
        self,
        order_id: str,
        expected: Iterable[OrderStatus],
        status: OrderStatus,
        fields: Optional[dict] = None,
    ) -> Optional[PendingSellOrder]:
        update = dict(fields or {})
        update["status"] = status
        update["is_open"] = status in OPEN_STATUSES
        doc = await self.collection.find_one_and_update(
            {"id": order_id, "status": {"$in": [s.value for s in expected]}},
            {"$set": update},
            return_document=ReturnDocument.AFTER,
        )
        return _to_order(doc) if doc else None

    async def update_notification(
        self, order_id: str, notification: NotificationStatus
    ) -> None:
        await self.collection.update_one(
            {"id": order_id}, {"$set": {"notification": notification.model_dump()}}
        )

    async def list_pending(self, user_id: str) -> List[PendingSellOrder]:
        cursor = self.collection.find(
            {"user_id": user_id, "status": OrderStatus.PENDING.value}
        ).sort("created_at", DESCENDING)
        return [_to_order(d) for d in await cursor.to_list(length=None)]

    async def list_by_status(self, status: OrderStatus) -> List[PendingSellOrder]:
        docs = await self.collection.find({"status": status.value}).to_list(length=None)
        return [_to_order(d) for d in docs]


def _to_log(doc) -> AutoSellLog:
    return AutoSellLog(**strip_mongo_id(doc))


class MongoLogStore(LogStore):
    def __init__(self, collection=auto_sell_logs_collection):
        self.collection = collection

    async def append(self, entry: AutoSellLog) -> None:
        await self.collection.insert_one(entry.model_dump())

    async def list_recent(self, user_id: str, limit: int) -> List[AutoSellLog]:
        if limit <= 0:
            # Mongo treats limit(0) as no limit
            return []
        # _id breaks ties between entries written within the same millisecond
        cursor = (
            self.collection.find({"user_id": user_id})
            .sort([("timestamp", DESCENDING), ("_id", DESCENDING)])
            .limit(limit)
        )
        return [_to_log(d) for d in await cursor.to_list(length=limit)]

    async def list_for_order(self, order_id: str) -> List[AutoSellLog]:
        cursor = self.collection.find({"order_id": order_id}).sort("_id", 1)
        return [_to_log(d) for d in await cursor.to_list(length=None)]


class MongoNotificationStore(NotificationStore):
    def __init__(self, collection=notifications_collection):
        self.collection = collection

    async def push(self, user_id: str, notification: dict) -> None:
        await self.collection.insert_one({**notification, "user_id": user_id})

    async def list_for_user(self, user_id: str, limit: int) -> List[dict]:
        cursor = (
            self.collection.find({"user_id": user_id})
            .sort("timestamp", DESCENDING)
            .limit(limit)
        )
        return [strip_mongo_id(d) for d in await cursor.to_list(length=limit)]
