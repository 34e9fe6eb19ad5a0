# app/scheduler.py
"""
Process-wide scheduler for the auto-sell agent.

Two kinds of jobs live here:
  * `monitor:{user_id}`        interval job running one stop-loss scan per tick
  * `auto-execute:{order_id}`  one-shot job firing when an order's window ends

Stopping a user's monitoring removes only the interval job. Auto-execute jobs
for orders created earlier stay scheduled and resolve on their own.
"""
from datetime import datetime

from apscheduler.jobstores.base import JobLookupError
from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.cron import CronTrigger
from apscheduler.triggers.date import DateTrigger
from apscheduler.triggers.interval import IntervalTrigger
from pytz import utc

from app.config import settings
from app.utils.decorators import job_runner
from app.utils.logger import logger


def monitor_job_id(user_id: str) -> str:
    return f"monitor:{user_id}"


def auto_execute_job_id(order_id: str) -> str:
    return f"auto-execute:{order_id}"


EXPIRY_SWEEP_JOB_ID = "expire-stale-orders"


class AgentScheduler:
    def __init__(self, scheduler: AsyncIOScheduler = None):
        self._scheduler = scheduler or AsyncIOScheduler(timezone=utc)

    @property
    def running(self) -> bool:
        return self._scheduler.running

    def start(self):
        if not self._scheduler.running:
            self._scheduler.start()
            logger.info("Scheduler started successfully!")

    def shutdown(self):
        if self._scheduler.running:
            self._scheduler.shutdown(wait=False)
            logger.info("Scheduler stopped")

    def is_monitoring(self, user_id: str) -> bool:
        return self._scheduler.get_job(monitor_job_id(user_id)) is not None

    def start_monitoring(self, user_id: str, scan, interval_seconds: int) -> bool:
        """Register the periodic scan for a user. Returns False if already registered."""
        if self.is_monitoring(user_id):
            return False
        self._scheduler.add_job(
            job_runner("Stop-loss scan", quiet=True)(scan),
            IntervalTrigger(seconds=interval_seconds, timezone=utc),
            args=[user_id],
            id=monitor_job_id(user_id),
            name=monitor_job_id(user_id),
            max_instances=1,
            coalesce=True,
            replace_existing=True,
        )
        logger.info(f"Scheduled monitoring for user {user_id} every {interval_seconds}s")
        return True

    def stop_monitoring(self, user_id: str) -> bool:
        try:
            self._scheduler.remove_job(monitor_job_id(user_id))
        except JobLookupError:
            return False
        logger.info(f"Monitoring stopped for user {user_id}")
        return True

    def schedule_auto_execute(self, order_id: str, run_at: datetime, callback, *args):
        self._scheduler.add_job(
            job_runner("Auto-execute sell order")(callback),
            DateTrigger(run_date=run_at, timezone=utc),
            args=list(args),
            id=auto_execute_job_id(order_id),
            name=auto_execute_job_id(order_id),
            misfire_grace_time=None,
            replace_existing=True,
        )
        logger.info(f"Auto-execute for order {order_id} scheduled at {run_at.isoformat()}")

    def cancel_auto_execute(self, order_id: str) -> bool:
        try:
            self._scheduler.remove_job(auto_execute_job_id(order_id))
        except JobLookupError:
            return False
        return True

    def schedule_expiry_sweep(self, callback, cron: str = settings.EXPIRY_SWEEP_CRON):
        minute, hour, day_of_week = cron.split()
        self._scheduler.add_job(
            job_runner("Expire stale sell orders")(callback),
            CronTrigger(minute=minute, hour=hour, day_of_week=day_of_week, timezone=utc),
            id=EXPIRY_SWEEP_JOB_ID,
            name=EXPIRY_SWEEP_JOB_ID,
            replace_existing=True,
        )
        logger.info(f"Scheduled job '{EXPIRY_SWEEP_JOB_ID}' with trigger: {cron}")


agent_scheduler = AgentScheduler()
