# app/services/auto_sell_agent.py
"""
Risk & auto-sell agent.

Watches a user's holdings on a fixed interval, turns stop-loss breaches into
pending sell orders and drives each order to a terminal state:

    pending   -> confirmed | cancelled | expired | failed | executed
    confirmed -> executed | failed

Every transition writes one audit log entry. Order state is only ever changed
through `OrderStore.transition`, a compare-and-set on the current status, and
all work on a single order is serialised by a per-order lock.
"""
import asyncio
import weakref
from datetime import datetime, timedelta
from typing import Callable, List, Optional, Union

from pydantic import ValidationError

from app.config import settings
from app.models.holding_model import Investable, current_price_of, holding_snapshot
from app.models.order_model import (
    OPEN_STATUSES,
    ActionResult,
    AutoSellLog,
    LogAction,
    MarketStatus,
    OrderStatus,
    PendingSellOrder,
    PreSellState,
    TradeExecution,
    UserAction,
)
from app.models.risk_model import RiskProfileUpdate, StopLossConfig, UserRiskProfile
from app.repositories.base import ConfigStore, HoldingStore, LogStore, OrderStore
from app.services.audit_log import AuditLogger
from app.services.broker import BrokerPort
from app.services.market_data import MarketDataPort
from app.services.notifier import NotificationDispatcher, currency_symbol
from app.services.risk_rules import (
    Breach,
    ExecutionPath,
    evaluate_holding,
    execution_path,
    is_sustained_drop,
    percent_change,
    portfolio_value,
    portfolio_value_percent,
    requires_two_step,
)
from app.utils.decorators import returns_result
from app.utils.errors import (
    AutoSellError,
    ConfigNotFound,
    InvalidInput,
    InvalidOrderState,
    MarketClosedError,
    OrderNotFound,
    TradeFailedError,
)
from app.utils.helpers import as_utc, utcnow
from app.utils.logger import logger


class RiskAutoSellAgent:
    def __init__(
        self,
        holdings: HoldingStore,
        configs: ConfigStore,
        orders: OrderStore,
        logs: LogStore,
        market_data: MarketDataPort,
        broker: BrokerPort,
        notifier: NotificationDispatcher,
        timers,
        clock: Callable[[], datetime] = utcnow,
        monitoring_interval_seconds: int = settings.MONITORING_INTERVAL_SECONDS,
        two_step_ttl_hours: int = settings.TWO_STEP_ORDER_TTL_HOURS,
    ):
        self.holdings = holdings
        self.configs = configs
        self.orders = orders
        self.audit = AuditLogger(logs, clock)
        self.market_data = market_data
        self.broker = broker
        self.notifier = notifier
        self.timers = timers
        self.clock = clock
        self.monitoring_interval_seconds = monitoring_interval_seconds
        self.two_step_ttl_hours = two_step_ttl_hours
        # A lock lives only while some coroutine holds or waits on it
        self._order_locks = weakref.WeakValueDictionary()

    def _lock_for(self, order_id: str) -> asyncio.Lock:
        lock = self._order_locks.get(order_id)
        if lock is None:
            lock = self._order_locks[order_id] = asyncio.Lock()
        return lock

    # ==================== MONITORING ====================

    @returns_result
    async def start_monitoring(self, user_id: str) -> ActionResult:
        """Register the periodic scan for a user and run one scan right away."""
        await self._set_monitoring_flag(user_id, True)
        if not self.timers.start_monitoring(
            user_id, self.check_all_holdings, self.monitoring_interval_seconds
        ):
            return ActionResult(success=True, message="Monitoring already active")

        logger.info(f"Starting risk monitoring for user: {user_id}")
        await self.check_all_holdings(user_id)
        return ActionResult(success=True, message="Monitoring started")

    @returns_result
    async def stop_monitoring(self, user_id: str) -> ActionResult:
        """
        Halt future scans for the user. Auto-execute timers of orders that are
        already pending are left in place and still fire.
        """
        stopped = self.timers.stop_monitoring(user_id)
        await self._set_monitoring_flag(user_id, False)
        if not stopped:
            return ActionResult(success=True, message="Monitoring was not active")
        return ActionResult(success=True, message="Monitoring stopped")

    def is_monitoring(self, user_id: str) -> bool:
        return self.timers.is_monitoring(user_id)

    async def _set_monitoring_flag(self, user_id: str, active: bool):
        profile = await self._stored_profile(user_id)
        if profile.monitoring_active != active:
            profile.monitoring_active = active
            profile.updated_at = self.clock()
            await self.configs.save_risk_profile(profile)

    async def check_all_holdings(self, user_id: str) -> List[PendingSellOrder]:
        """
        One stop-loss scan. Returns the orders created by this scan.

        Never raises: a failure on one holding is logged and the scan moves on.
        """
        try:
            holdings, configs, profile = await asyncio.gather(
                self.holdings.list_holdings(user_id),
                self.configs.get_stop_loss_configs(user_id),
                self.get_risk_profile(user_id),
            )
        except Exception as e:
            logger.error(f"Error loading data for stop-loss scan of user {user_id}: {e}")
            return []

        if not profile.auto_sell_enabled:
            logger.info(f"Auto-sell disabled for user: {user_id}")
            return []

        logger.info(f"Checking {len(holdings)} holdings for stop-loss triggers (user {user_id})")
        total_value = portfolio_value(holdings)
        created = []
        for holding in holdings:
            try:
                order = await self._evaluate(user_id, holding, configs, profile, holdings, total_value)
                if order is not None:
                    created.append(order)
            except Exception as e:
                logger.error(
                    f"Error evaluating {holding.ticker} for user {user_id}: {e}", exc_info=True
                )
        return created

    async def _evaluate(
        self,
        user_id: str,
        holding: Investable,
        configs: List[StopLossConfig],
        profile: UserRiskProfile,
        all_holdings: List[Investable],
        total_value: float,
    ) -> Optional[PendingSellOrder]:
        self.market_data.record_quote(holding.ticker, current_price_of(holding))
        breach = evaluate_holding(holding, configs, profile)
        if breach is None:
            return None

        logger.warning(
            f"STOP-LOSS TRIGGERED: {holding.ticker} at {breach.current_price:.2f} "
            f"(stop: {breach.stop_price:.2f})"
        )
        minutes = profile.sustained_drop_minutes
        if minutes > 0 and not await self._is_sustained(breach, minutes):
            logger.info(f"Waiting for sustained drop ({minutes} min) for {holding.ticker}")
            return None

        return await self.create_pending_sell_order(
            user_id, breach, profile, all_holdings, total_value
        )

    async def _is_sustained(self, breach: Breach, minutes: int) -> bool:
        try:
            prices = await self.market_data.get_historical_prices(
                breach.ticker, minutes, breach.holding.exchange
            )
        except Exception as e:
            # Fail open: a broken price history must not block protection
            logger.warning(
                f"Historical prices unavailable for {breach.ticker}, treating drop as sustained: {e}"
            )
            return True
        return is_sustained_drop(prices, breach.stop_price)

    # ==================== ORDER LIFECYCLE ====================

    async def create_pending_sell_order(
        self,
        user_id: str,
        breach: Breach,
        profile: UserRiskProfile,
        all_holdings: List[Investable],
        total_value: float,
    ) -> Optional[PendingSellOrder]:
        """
        Create the order for a breach unless one is already open for the ticker.
        Returns the new order, or None when an open order already existed.
        """
        holding = breach.holding
        value_percent = portfolio_value_percent(holding.market_value, total_value)
        two_step = requires_two_step(holding.market_value, value_percent, profile)
        now = self.clock()

        order = PendingSellOrder(
            user_id=user_id,
            ticker=holding.ticker,
            company_name=holding.company_name,
            exchange=holding.exchange,
            quantity=holding.quantity,
            trigger_price=breach.current_price,
            current_price=breach.current_price,
            stop_loss_price=breach.stop_price,
            percent_change=percent_change(breach.current_price, breach.stop_price),
            portfolio_value_percent=value_percent,
            requires_two_step_confirmation=two_step,
            created_at=now,
            expires_at=now + timedelta(minutes=profile.confirmation_window_minutes),
            pre_sell_state=PreSellState(
                holdings=[holding_snapshot(h) for h in all_holdings],
                portfolio_value=total_value,
                timestamp=now,
            ),
        )

        if not await self.orders.create_if_absent(order):
            logger.info(f"Pending sell order already exists for {holding.ticker}")
            return None
        logger.info(f"Created pending sell order: {order.id} ({holding.ticker})")

        await self.audit.record(
            user_id,
            order.ticker,
            order.id,
            LogAction.TRIGGERED,
            trigger_price=order.trigger_price,
            quantity=order.quantity,
        )

        order.notification = await self.notifier.notify_order_created(order)
        try:
            await self.orders.update_notification(order.id, order.notification)
        except Exception as e:
            logger.error(f"Could not record notification status for order {order.id}: {e}")

        path = execution_path(two_step, profile, order.ticker)
        if path == ExecutionPath.TIMED:
            self.timers.schedule_auto_execute(
                order.id, order.expires_at, self.auto_execute_if_pending, order.id, user_id
            )
        elif path == ExecutionPath.IMMEDIATE:
            await self.execute_sell_order(order.id, user_id, UserAction.AUTO_EXECUTE)
            return await self.orders.get(order.id) or order
        else:
            logger.info(f"Order {order.id} waiting for user action ({path.value})")
        return order

    @returns_result
    async def confirm_sell_order(self, order_id: str, user_id: str) -> ActionResult:
        async with self._lock_for(order_id):
            order = await self._load_order(order_id, user_id)
            if order.status != OrderStatus.PENDING:
                raise InvalidOrderState(f"Order already {order.status.value}")

            confirmed = await self.orders.transition(
                order_id,
                [OrderStatus.PENDING],
                OrderStatus.CONFIRMED,
                {"confirmed_at": self.clock()},
            )
            if confirmed is None:
                raise InvalidOrderState("Order is no longer pending")
            self.timers.cancel_auto_execute(order_id)

            await self.audit.record(
                user_id,
                order.ticker,
                order_id,
                LogAction.CONFIRMED,
                user_action=UserAction.MANUAL_CONFIRM,
            )
            trade = await self._execute_locked(order_id, user_id, UserAction.MANUAL_CONFIRM)

        final = await self.orders.get(order_id)
        if trade.success:
            return ActionResult(
                success=True,
                message=f"Sell order confirmed and executed. Trade ID: {trade.trade_id}",
                order=final,
            )
        return ActionResult(
            success=False,
            message=f"Confirmed but execution failed: {trade.error}",
            error=trade.error_code,
            order=final,
        )

    @returns_result
    async def cancel_sell_order(self, order_id: str, user_id: str) -> ActionResult:
        async with self._lock_for(order_id):
            order = await self._load_order(order_id, user_id)
            if order.status != OrderStatus.PENDING:
                raise InvalidOrderState(f"Order already {order.status.value}")

            cancelled = await self.orders.transition(
                order_id,
                [OrderStatus.PENDING],
                OrderStatus.CANCELLED,
                {"cancelled_at": self.clock()},
            )
            if cancelled is None:
                raise InvalidOrderState("Order is no longer pending")
            self.timers.cancel_auto_execute(order_id)

        await self.audit.record(
            user_id,
            order.ticker,
            order_id,
            LogAction.CANCELLED,
            user_action=UserAction.MANUAL_CANCEL,
        )
        await self.notifier.notify_outcome(
            user_id,
            f"Sell Order Cancelled: {order.ticker}",
            f"Auto-sell order for {order.company_name} has been cancelled.",
            priority="medium",
        )
        logger.info(f"Order {order_id} cancelled by user")
        return ActionResult(
            success=True, message="Sell order cancelled successfully", order=cancelled
        )

    async def auto_execute_if_pending(
        self, order_id: str, user_id: str
    ) -> Optional[TradeExecution]:
        """
        Timer callback. Re-reads the order and executes only if it is still
        pending and its confirmation window has elapsed.
        """
        async with self._lock_for(order_id):
            order = await self.orders.get(order_id)
            if order is None:
                logger.info(f"Order {order_id} not found")
                return None
            if order.status != OrderStatus.PENDING:
                logger.info(f"Order {order_id} already {order.status.value}, skipping auto-execute")
                return None
            if order.requires_two_step_confirmation:
                logger.info(f"Order {order_id} requires manual confirmation, skipping auto-execute")
                return None
            if self.clock() < as_utc(order.expires_at):
                # Fired early; re-arm for the real deadline
                self.timers.schedule_auto_execute(
                    order_id, order.expires_at, self.auto_execute_if_pending, order_id, user_id
                )
                return None

            logger.info(f"Auto-executing order {order_id} (confirmation window expired)")
            return await self._execute_locked(order_id, user_id, UserAction.AUTO_EXECUTE)

    async def expire_stale_orders(self) -> int:
        """
        Expire orders that wait on the user (two-step or no timer) for longer
        than the configured TTL. Disabled when the TTL is 0.
        """
        if self.two_step_ttl_hours <= 0:
            return 0

        now = self.clock()
        cutoff = now - timedelta(hours=self.two_step_ttl_hours)
        expired = 0
        for order in await self.orders.list_by_status(OrderStatus.PENDING):
            if not _awaits_user(order) or as_utc(order.created_at) > cutoff:
                continue
            async with self._lock_for(order.id):
                updated = await self.orders.transition(
                    order.id, [OrderStatus.PENDING], OrderStatus.EXPIRED, {"expired_at": now}
                )
            if updated is None:
                continue
            expired += 1
            reason = f"No confirmation within {self.two_step_ttl_hours}h"
            await self.audit.record(
                order.user_id,
                order.ticker,
                order.id,
                LogAction.EXPIRED,
                reason=reason,
                user_action=UserAction.TIMEOUT,
            )
            await self.notifier.notify_outcome(
                order.user_id,
                f"Sell Order Expired: {order.ticker}",
                f"The stop-loss sell order for {order.company_name} expired. {reason}.",
                priority="medium",
            )
        if expired:
            logger.info(f"Expired {expired} stale sell orders")
        return expired

    async def recover(self) -> None:
        """Resume persisted monitoring sessions and re-arm auto-execute timers."""
        for user_id in await self.configs.list_monitored_users():
            await self.start_monitoring(user_id)

        now = self.clock()
        for order in await self.orders.list_by_status(OrderStatus.PENDING):
            if _awaits_user(order):
                continue
            self.timers.schedule_auto_execute(
                order.id,
                max(as_utc(order.expires_at), now),
                self.auto_execute_if_pending,
                order.id,
                order.user_id,
            )

    # ==================== EXECUTION ====================

    async def execute_sell_order(
        self,
        order_id: str,
        user_id: str,
        user_action: UserAction = UserAction.AUTO_EXECUTE,
    ) -> TradeExecution:
        async with self._lock_for(order_id):
            return await self._execute_locked(order_id, user_id, user_action)

    async def _execute_locked(
        self, order_id: str, user_id: str, user_action: UserAction
    ) -> TradeExecution:
        try:
            order = await self._load_order(order_id, user_id)
            if order.status not in OPEN_STATUSES:
                raise InvalidOrderState(f"Order already {order.status.value}")
            expected = [order.status]

            market = await self._market_status(order.exchange)
            if not market.is_open:
                logger.info(f"Market closed for {order.ticker}. Order {order_id} not executed")
                await self._fail(
                    order, expected, f"Market closed. {market.message}", user_action, retryable=True
                )
                raise MarketClosedError(market.message)

            try:
                trade = await self.broker.submit_market_sell(
                    order.ticker, order.quantity, order.current_price
                )
            except Exception as e:
                logger.error(f"Broker error selling {order.ticker}: {e}", exc_info=True)
                trade = TradeExecution(success=False, error=str(e))

            if not trade.success:
                reason = trade.error or "Trade execution failed"
                await self._fail(order, expected, reason, user_action, retryable=False)
                raise TradeFailedError(reason)
        except AutoSellError as e:
            return TradeExecution(
                success=False, error=e.message, error_code=e.code, retryable=e.retryable
            )

        await self._complete(order, expected, trade, user_action)
        return trade

    async def _market_status(self, exchange: str) -> MarketStatus:
        try:
            return await self.market_data.check_market_status(exchange)
        except Exception as e:
            # Unknown status must not block a protective sell
            logger.warning(f"Could not determine market status for {exchange}: {e}")
            return MarketStatus(
                is_open=True, exchange=exchange, message="Unable to determine market status"
            )

    async def _fail(
        self,
        order: PendingSellOrder,
        expected: List[OrderStatus],
        reason: str,
        user_action: UserAction,
        retryable: bool,
    ):
        updated = await self.orders.transition(
            order.id, expected, OrderStatus.FAILED, {"failure_reason": reason}
        )
        if updated is None:
            logger.warning(f"Order {order.id} changed state before it could be marked failed")
            return
        await self.audit.record(
            order.user_id,
            order.ticker,
            order.id,
            LogAction.FAILED,
            reason=reason,
            user_action=user_action,
            retryable=retryable,
        )
        await self.notifier.notify_outcome(
            order.user_id,
            f"Sell Order Failed: {order.ticker}",
            f"Failed to execute sell order. Reason: {reason}",
        )

    async def _complete(
        self,
        order: PendingSellOrder,
        expected: List[OrderStatus],
        trade: TradeExecution,
        user_action: UserAction,
    ):
        updated = await self.orders.transition(
            order.id,
            expected,
            OrderStatus.EXECUTED,
            {
                "executed_at": trade.executed_at or self.clock(),
                "executed_trade_id": trade.trade_id,
                "executed_price": trade.executed_price,
                "executed_quantity": trade.executed_quantity,
                "partial_fill": trade.partial_fill,
                "slippage": trade.slippage,
            },
        )
        if updated is None:
            logger.error(
                f"Trade {trade.trade_id} filled but order {order.id} changed state concurrently"
            )

        await self.audit.record(
            order.user_id,
            order.ticker,
            order.id,
            LogAction.EXECUTED,
            execution_price=trade.executed_price,
            quantity=trade.executed_quantity,
            trade_id=trade.trade_id,
            user_action=user_action,
            slippage=trade.slippage,
            partial_fill=trade.partial_fill,
        )

        try:
            await self.holdings.reduce_quantity(
                order.user_id, order.ticker, trade.executed_quantity
            )
        except Exception as e:
            logger.error(f"Error updating holdings for {order.ticker} after trade {trade.trade_id}: {e}")

        cur = currency_symbol(order.exchange)
        message = (
            f"Successfully sold {trade.executed_quantity:g} shares at "
            f"{cur}{trade.executed_price:,.2f}. Trade ID: {trade.trade_id}"
        )
        if trade.partial_fill:
            message += f" (partial fill of {order.quantity:g})"
        await self.notifier.notify_outcome(
            order.user_id, f"Sell Order Executed: {order.ticker}", message
        )
        logger.info(f"Order {order.id} executed successfully. Trade ID: {trade.trade_id}")

    async def _load_order(self, order_id: str, user_id: str) -> PendingSellOrder:
        order = await self.orders.get(order_id)
        if order is None or order.user_id != user_id:
            raise OrderNotFound(f"Order {order_id} not found")
        return order

    # ==================== SETTINGS & QUERIES ====================

    @returns_result
    async def set_stop_loss(
        self,
        user_id: str,
        ticker: str,
        stop_loss_price: Optional[float] = None,
        stop_loss_percent: Optional[float] = None,
    ) -> ActionResult:
        if stop_loss_price is None and stop_loss_percent is None:
            raise InvalidInput("Either stop-loss price or percentage must be provided")
        if stop_loss_price is not None and stop_loss_price <= 0:
            raise InvalidInput("Stop-loss price must be positive")
        if stop_loss_percent is not None and not 0 < stop_loss_percent < 100:
            raise InvalidInput("Stop-loss percentage must be between 0 and 100")

        ticker = ticker.strip().upper()
        now = self.clock()
        await self.configs.upsert_stop_loss(
            StopLossConfig(
                user_id=user_id,
                ticker=ticker,
                stop_loss_price=stop_loss_price,
                stop_loss_percent=stop_loss_percent,
                is_active=True,
                created_at=now,
                updated_at=now,
            )
        )
        logger.info(f"Stop-loss set for {ticker} (user {user_id})")
        return ActionResult(success=True, message=f"Stop-loss set for {ticker}")

    @returns_result
    async def remove_stop_loss(self, user_id: str, ticker: str) -> ActionResult:
        ticker = ticker.strip().upper()
        if not await self.configs.remove_stop_loss(user_id, ticker):
            raise ConfigNotFound(f"No stop-loss configured for {ticker}")
        logger.info(f"Stop-loss removed for {ticker} (user {user_id})")
        return ActionResult(success=True, message=f"Stop-loss removed for {ticker}")

    async def get_stop_loss_configs(self, user_id: str) -> List[StopLossConfig]:
        return await self.configs.get_stop_loss_configs(user_id)

    async def get_risk_profile(self, user_id: str) -> UserRiskProfile:
        """
        Stored profile, or the default one (auto-sell disabled). A failed read
        is logged and also yields the default, so use only for read-only paths.
        """
        try:
            profile = await self.configs.get_risk_profile(user_id)
        except Exception as e:
            logger.error(f"Error fetching risk profile for {user_id}: {e}")
            profile = None
        return profile or UserRiskProfile(user_id=user_id)

    async def _stored_profile(self, user_id: str) -> UserRiskProfile:
        """Profile to modify and save back. Store errors propagate."""
        profile = await self.configs.get_risk_profile(user_id)
        return profile or UserRiskProfile(user_id=user_id)

    @returns_result
    async def update_risk_profile(
        self, user_id: str, updates: Union[RiskProfileUpdate, dict]
    ) -> ActionResult:
        current = await self._stored_profile(user_id)
        try:
            if isinstance(updates, dict):
                updates = RiskProfileUpdate(**updates)
            profile = UserRiskProfile(
                **{
                    **current.model_dump(),
                    **updates.model_dump(exclude_unset=True, exclude_none=True),
                    "user_id": user_id,
                    "updated_at": self.clock(),
                }
            )
        except ValidationError as e:
            raise InvalidInput(f"Invalid risk profile: {e.errors()[0]['msg']}")

        await self.configs.save_risk_profile(profile)
        logger.info(f"Risk profile updated for {user_id}")
        return ActionResult(success=True, message="Risk profile updated successfully")

    async def get_pending_sell_orders(self, user_id: str) -> List[PendingSellOrder]:
        return await self.orders.list_pending(user_id)

    @returns_result
    async def get_order(self, order_id: str, user_id: str) -> ActionResult:
        order = await self._load_order(order_id, user_id)
        return ActionResult(success=True, message=order.status.value, order=order)

    async def get_auto_sell_logs(self, user_id: str, limit: int = 50) -> List[AutoSellLog]:
        """Most recent `limit` entries, newest first."""
        return await self.audit.recent(user_id, limit)


def _awaits_user(order: PendingSellOrder) -> bool:
    """True for orders with no auto-execute timer (two-step or zero window)."""
    return order.requires_two_step_confirmation or order.expires_at <= order.created_at
