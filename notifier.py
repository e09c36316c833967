import enum
import logging
import smtplib
from email.message import EmailMessage
from typing import NamedTuple, Optional

from flask import render_template

from exceptions import NotificationError

logger = logging.getLogger(__name__)

ALERT_THRESHOLDS = (80, 100)


class DeliveryResult(enum.Enum):
    DELIVERED = "delivered"
    DEGRADED = "degraded"
    FAILED = "failed"


class Message(NamedTuple):
    recipient: Optional[str]
    subject: str
    body: str
    html: bool = False


class LogTransport:
    def __call__(self, message):
        logger.info("Notification to %s: %s", message.recipient or "<no address>", message.subject)


class SMTPTransport:
    def __init__(self, host, port=25, sender="noreply@localhost", timeout=10):
        self.host = host
        self.port = port
        self.sender = sender
        self.timeout = timeout

    def __call__(self, message):
        if not message.recipient:
            raise NotificationError("Recipient has no email address")
        email = EmailMessage()
        email["From"] = self.sender
        email["To"] = message.recipient
        email["Subject"] = message.subject
        if message.html:
            email.set_content("This message requires an HTML capable mail client.")
            email.add_alternative(message.body, subtype="html")
        else:
            email.set_content(message.body)
        try:
            with smtplib.SMTP(self.host, self.port, timeout=self.timeout) as smtp:
                smtp.send_message(email)
        except (smtplib.SMTPException, OSError) as e:
            raise NotificationError(str(e)) from e


class Notifier:
    def __init__(self, transport=None, app_name="ExpenseMate", currency_symbol="₹",
                 dashboard_url="http://localhost:5000/dashboard"):
        self.transport = transport or LogTransport()
        self.app_name = app_name
        self.currency_symbol = currency_symbol
        self.dashboard_url = dashboard_url

    @classmethod
    def from_config(cls, config):
        if config.get("MAIL_SERVER"):
            transport = SMTPTransport(config["MAIL_SERVER"], config.get("MAIL_PORT", 25),
                                      config.get("MAIL_SENDER", "noreply@localhost"))
        else:
            transport = LogTransport()
        return cls(transport,
                   app_name=config.get("APP_NAME", "ExpenseMate"),
                   currency_symbol=config.get("CURRENCY_SYMBOL", "₹"),
                   dashboard_url=config.get("DASHBOARD_URL", "http://localhost:5000/dashboard"))

    def money(self, amount):
        return f"{self.currency_symbol}{amount:.2f}"

    def send_budget_threshold_alert(self, budget, threshold):
        if threshold not in ALERT_THRESHOLDS:
            raise ValueError(f"Unsupported alert threshold: {threshold}")
        user = budget.user
        percentage = float(budget.spent_percentage)
        if threshold == 100:
            subject = f"Budget Alert: Limit Exceeded - {self.app_name}"
        else:
            subject = f"Budget Alert: 80% Limit Reached - {self.app_name}"

        def rich():
            body = render_template(
                "email/budget_alert.html",
                app_name=self.app_name, user=user, budget=budget, threshold=threshold,
                percentage=percentage, budget_amount=self.money(budget.amount),
                spent_amount=self.money(budget.spent_amount),
                remaining_amount=self.money(abs(budget.remaining_amount)),
                dashboard_url=self.dashboard_url,
            )
            return Message(user.email, subject, body, html=True)

        def plain():
            if threshold == 100:
                headline = f"Your spending for {budget.month_name} {budget.year} has exceeded your budget ({percentage:.1f}%)."
                remaining = f"Over Budget: {self.money(abs(budget.remaining_amount))}"
            else:
                headline = f"Your spending for {budget.month_name} {budget.year} has reached {percentage:.1f}% of your budget."
                remaining = f"Remaining: {self.money(budget.remaining_amount)}"
            body = (
                f"Hello {user.display_name},\n\n{headline}\n\n"
                f"Budget: {self.money(budget.amount)}\n"
                f"Spent: {self.money(budget.spent_amount)}\n"
                f"{remaining}\n\n"
                f"Best regards,\n{self.app_name} Team"
            )
            return Message(user.email, subject, body)

        return self._deliver(rich, plain, f"budget {budget.id} {threshold}% alert")

    def send_badge_awarded(self, user, badge):
        info = badge.info
        subject = f"Congratulations! New Badge Earned - {self.app_name}"

        def rich():
            body = render_template(
                "email/badge_awarded.html",
                app_name=self.app_name, user=user, info=info, dashboard_url=self.dashboard_url,
            )
            return Message(user.email, subject, body, html=True)

        def plain():
            body = (
                f"Hello {user.display_name},\n\n"
                f"Congratulations! You've earned a new badge:\n\n"
                f"{info.icon} {info.name}\n"
                f"Level: {info.level.value}\n"
                f"Points: {info.points}\n"
                f"Description: {info.description}\n\n"
                f"Best regards,\n{self.app_name} Team"
            )
            return Message(user.email, subject, body)

        return self._deliver(rich, plain, f"{badge.badge_type.name} badge for user {user.id}")

    def _deliver(self, rich, plain, what):
        try:
            self.transport(rich())
            return DeliveryResult.DELIVERED
        except Exception as e:
            logger.warning("Rich notification for %s failed (%s), falling back to plain text", what, e)
        try:
            self.transport(plain())
            return DeliveryResult.DEGRADED
        except Exception:
            logger.exception("Notification for %s could not be delivered", what)
            return DeliveryResult.FAILED
