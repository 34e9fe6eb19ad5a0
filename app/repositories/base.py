# app/repositories/base.py
"""
Storage interfaces the agent depends on.

The agent only talks to these abstract stores; `app.repositories.mongo`
provides the MongoDB implementation used by the application.
"""
from abc import ABC, abstractmethod
from typing import Iterable, List, Optional

from app.models.holding_model import Investable
from app.models.order_model import (
    AutoSellLog,
    NotificationStatus,
    OrderStatus,
    PendingSellOrder,
)
from app.models.risk_model import StopLossConfig, UserRiskProfile


class HoldingStore(ABC):
    @abstractmethod
    async def list_holdings(self, user_id: str) -> List[Investable]:
        ...

    @abstractmethod
    async def upsert_holding(self, user_id: str, holding: Investable) -> None:
        ...

    @abstractmethod
    async def remove_holding(self, user_id: str, ticker: str) -> bool:
        ...

    @abstractmethod
    async def reduce_quantity(self, user_id: str, ticker: str, quantity: float) -> None:
        """Reduce a holding by `quantity`; the holding is removed at zero or below."""


class ConfigStore(ABC):
    @abstractmethod
    async def get_stop_loss_configs(self, user_id: str) -> List[StopLossConfig]:
        ...

    @abstractmethod
    async def upsert_stop_loss(self, config: StopLossConfig) -> None:
        """Store a config, replacing any existing one for the same (user, ticker)."""

    @abstractmethod
    async def remove_stop_loss(self, user_id: str, ticker: str) -> bool:
        ...

    @abstractmethod
    async def get_risk_profile(self, user_id: str) -> Optional[UserRiskProfile]:
        ...

    @abstractmethod
    async def save_risk_profile(self, profile: UserRiskProfile) -> None:
        ...

    @abstractmethod
    async def list_monitored_users(self) -> List[str]:
        ...


class OrderStore(ABC):
    @abstractmethod
    async def create_if_absent(self, order: PendingSellOrder) -> bool:
        """
        Persist `order` unless an open (pending/confirmed) order already exists
        for the same user and ticker. Must be atomic. Returns True if created.
        """

    @abstractmethod
    async def get(self, order_id: str) -> Optional[PendingSellOrder]:
        ...

    @abstractmethod
    async def transition(
        self,
        order_id: str,
        expected: Iterable[OrderStatus],
        status: OrderStatus,
        fields: Optional[dict] = None,
    ) -> Optional[PendingSellOrder]:
        """
        Compare-and-set the order status. Applies only if the current status is
        one of `expected`; returns the updated order, or None if it did not apply.
        """

    @abstractmethod
    async def update_notification(
        self, order_id: str, notification: NotificationStatus
    ) -> None:
        ...

    @abstractmethod
    async def list_pending(self, user_id: str) -> List[PendingSellOrder]:
        ...

    @abstractmethod
    async def list_by_status(self, status: OrderStatus) -> List[PendingSellOrder]:
        """All orders in `status` across users, used by recovery and sweeps."""


class LogStore(ABC):
    @abstractmethod
    async def append(self, entry: AutoSellLog) -> None:
        ...

    @abstractmethod
    async def list_recent(self, user_id: str, limit: int) -> List[AutoSellLog]:
        """Most recent `limit` entries for the user, newest first."""

    @abstractmethod
    async def list_for_order(self, order_id: str) -> List[AutoSellLog]:
        """All entries for an order in the order they were written."""


class NotificationStore(ABC):
    @abstractmethod
    async def push(self, user_id: str, notification: dict) -> None:
        ...

    @abstractmethod
    async def list_for_user(self, user_id: str, limit: int) -> List[dict]:
        ...
