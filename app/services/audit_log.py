# app/services/audit_log.py
from datetime import datetime
from typing import Callable, List

from app.models.order_model import AutoSellLog, LogAction, LogDetails
from app.repositories.base import LogStore
from app.utils.helpers import utcnow
from app.utils.logger import logger


class AuditLogger:
    """Append-only trail of order lifecycle transitions."""

    def __init__(self, store: LogStore, clock: Callable[[], datetime] = utcnow):
        self.store = store
        self.clock = clock

    async def record(
        self, user_id: str, ticker: str, order_id: str, action: LogAction, **details
    ) -> None:
        """Write one entry; a failed write is logged and never raised."""
        entry = AutoSellLog(
            user_id=user_id,
            ticker=ticker,
            order_id=order_id,
            action=action,
            timestamp=self.clock(),
            details=LogDetails(**details),
        )
        try:
            await self.store.append(entry)
            logger.info(f"Logged action: {entry.action.value} for {ticker} (order {order_id})")
        except Exception as e:
            logger.error(f"Failed to write audit log {action.value} for order {order_id}: {e}")

    async def recent(self, user_id: str, limit: int = 50) -> List[AutoSellLog]:
        return await self.store.list_recent(user_id, max(limit, 0))
