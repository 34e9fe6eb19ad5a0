# app/services/notifier.py
import asyncio
import smtplib
from abc import ABC, abstractmethod
from email.message import EmailMessage
from typing import Dict, List, Optional

from app.config import settings
from app.database import email_outbox_collection, users_collection
from app.models.order_model import NotificationStatus, PendingSellOrder
from app.repositories.base import NotificationStore
from app.utils.helpers import generate_id, utcnow
from app.utils.logger import logger


def currency_symbol(exchange: str) -> str:
    return "₹" if exchange in ("NSE", "BSE") else "$"


def action_links(order_id: str) -> Dict[str, str]:
    base = settings.APP_BASE_URL.rstrip("/")
    return {
        "confirm": f"{base}/confirm-sell/{order_id}",
        "cancel": f"{base}/cancel-sell/{order_id}",
    }


class EmailSender(ABC):
    @abstractmethod
    async def send(
        self, user_id: str, subject: str, body: str, links: Optional[Dict[str, str]] = None
    ) -> None:
        """Deliver one email; raise on failure."""


class OutboxEmailSender(EmailSender):
    """Queues emails in the `email_outbox` collection for a mail relay to drain."""

    def __init__(self, collection=email_outbox_collection):
        self.collection = collection

    async def send(self, user_id, subject, body, links=None):
        await self.collection.insert_one(
            {
                "id": generate_id("MAIL"),
                "user_id": user_id,
                "subject": subject,
                "body": body,
                "links": links or {},
                "queued_at": utcnow(),
            }
        )


class SmtpEmailSender(EmailSender):
    """Sends directly over SMTP-over-SSL to the address on the user's account."""

    def __init__(self, users=users_collection):
        self.users = users

    async def send(self, user_id, subject, body, links=None):
        user = await self.users.find_one({"id": user_id}, {"email": 1})
        if not user or not user.get("email"):
            raise LookupError(f"No email address on file for user {user_id}")

        msg = EmailMessage()
        msg["Subject"] = subject
        msg["From"] = settings.EMAIL_FROM
        msg["To"] = user["email"]
        msg.set_content(subject)
        msg.add_alternative(body, subtype="html")
        await asyncio.to_thread(self._deliver, msg)

    @staticmethod
    def _deliver(msg: EmailMessage) -> None:
        with smtplib.SMTP_SSL(settings.SMTP_HOST, settings.SMTP_PORT) as smtp:
            if settings.SMTP_USER:
                smtp.login(settings.SMTP_USER, settings.SMTP_PASSWORD)
            smtp.send_message(msg)


def build_email_sender(backend: Optional[str] = None) -> EmailSender:
    backend = (backend or settings.EMAIL_BACKEND).lower()
    if backend == "smtp":
        return SmtpEmailSender()
    return OutboxEmailSender()


def render_order_email(order: PendingSellOrder) -> str:
    cur = currency_symbol(order.exchange)
    links = action_links(order.id)
    window = round((order.expires_at - order.created_at).total_seconds() / 60)

    if order.requires_two_step_confirmation:
        next_step = (
            '<p style="background: #fff3cd; padding: 10px; border-left: 4px solid #ffc107;">'
            "<strong>Two-step confirmation required</strong><br>"
            "This position is a large share of your portfolio, so it will only be sold "
            "after you confirm.</p>"
        )
    elif window > 0:
        next_step = (
            f"<p>This order will be executed automatically in <strong>{window} minutes"
            "</strong> unless you cancel it.</p>"
        )
    else:
        next_step = "<p>This order is waiting for your decision.</p>"

    rows = [
        ("Ticker", order.ticker),
        ("Company", order.company_name),
        ("Quantity", f"{order.quantity:g}"),
        ("Current price", f"{cur}{order.current_price:,.2f}"),
        ("Stop-loss price", f"{cur}{order.stop_loss_price:,.2f}"),
        ("Change vs stop", f"{order.percent_change:.2f}%"),
        ("Portfolio share", f"{order.portfolio_value_percent:.2f}%"),
    ]
    table = "\n".join(
        f"  <tr><td><strong>{label}:</strong></td><td>{value}</td></tr>"
        for label, value in rows
    )

    return f"""
<h2>Stop-loss triggered for {order.company_name} ({order.ticker})</h2>
<table style="border-collapse: collapse; margin: 20px 0;">
{table}
</table>
{next_step}
<p>
  <a href="{links['confirm']}">Confirm sell</a> |
  <a href="{links['cancel']}">Cancel auto-sell</a>
</p>
<p style="color: #666; font-size: 12px;">
  Order ID: {order.id}<br>
  Created: {order.created_at.strftime('%Y-%m-%d %H:%M:%S %Z')}<br>
  Expires: {order.expires_at.strftime('%Y-%m-%d %H:%M:%S %Z')}
</p>
"""


class NotificationDispatcher:
    """
    Best-effort email + in-app delivery. Nothing here raises: each channel's
    failure is logged and reported back as a False flag.
    """

    def __init__(self, email_sender: EmailSender, in_app: NotificationStore):
        self.email_sender = email_sender
        self.in_app = in_app

    async def _send_email(self, user_id, subject, body, links=None) -> bool:
        try:
            await self.email_sender.send(user_id, subject, body, links)
            return True
        except Exception as e:
            logger.error(f"Email to user {user_id} failed ({subject}): {e}")
            return False

    async def _push_in_app(
        self,
        user_id: str,
        title: str,
        message: str,
        priority: str = "high",
        actions: Optional[List[dict]] = None,
    ) -> bool:
        try:
            await self.in_app.push(
                user_id,
                {
                    "id": generate_id("NOTIF"),
                    "title": title,
                    "message": message,
                    "priority": priority,
                    "actions": actions or [],
                    "read": False,
                    "timestamp": utcnow(),
                },
            )
            return True
        except Exception as e:
            logger.error(f"In-app notification to user {user_id} failed ({title}): {e}")
            return False

    async def notify_order_created(self, order: PendingSellOrder) -> NotificationStatus:
        cur = currency_symbol(order.exchange)
        links = action_links(order.id)
        email_sent = await self._send_email(
            order.user_id,
            f"STOP-LOSS TRIGGERED: {order.ticker}",
            render_order_email(order),
            links,
        )

        if order.requires_two_step_confirmation:
            tail = "Confirmation required."
        else:
            tail = "Auto-sell pending."
        in_app_pushed = await self._push_in_app(
            order.user_id,
            f"Stop-Loss Alert: {order.ticker}",
            f"{order.company_name} is at {cur}{order.current_price:,.2f} "
            f"({order.percent_change:.2f}% vs stop {cur}{order.stop_loss_price:,.2f}). {tail}",
            actions=[
                {"label": "Confirm Sell", "action": "confirm", "order_id": order.id, "url": links["confirm"]},
                {"label": "Cancel", "action": "cancel", "order_id": order.id, "url": links["cancel"]},
            ],
        )
        logger.info(
            f"Notifications for order {order.id}: email={email_sent} in_app={in_app_pushed}"
        )
        return NotificationStatus(email_sent=email_sent, in_app_pushed=in_app_pushed)

    async def notify_outcome(
        self, user_id: str, title: str, message: str, priority: str = "high"
    ) -> NotificationStatus:
        in_app_pushed = await self._push_in_app(user_id, title, message, priority)
        email_sent = await self._send_email(user_id, title, f"<p>{message}</p>")
        return NotificationStatus(email_sent=email_sent, in_app_pushed=in_app_pushed)
