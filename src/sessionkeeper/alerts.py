"""Rate-limited alerting when login retries are exhausted.

Alerting is best-effort. A transport failure is logged and reported as "not
dispatched"; it never raises into the keep-alive loop.
"""

from __future__ import annotations

import smtplib
from collections.abc import Callable
from dataclasses import dataclass
from datetime import UTC, datetime
from email.message import EmailMessage
from typing import TYPE_CHECKING, Any, Protocol, runtime_checkable

from sessionkeeper.exceptions import AlertError
from sessionkeeper.logging import get_logger

if TYPE_CHECKING:
    from sessionkeeper.config import KeepAliveSettings

LOG = get_logger(__name__)


def utc_now() -> datetime:
    return datetime.now(UTC)


@dataclass(frozen=True)
class Alert:
    """A single notification to deliver."""

    subject: str
    body: str


@runtime_checkable
class AlertTransport(Protocol):
    """Delivers an alert somewhere a human will see it."""

    def send(self, alert: Alert) -> None:
        """Deliver ``alert``.

        Raises:
            AlertError: If delivery failed.
        """
        ...


class LogAlertTransport:
    """Writes alerts to the log. Used when no mail transport is configured."""

    def send(self, alert: Alert) -> None:
        LOG.critical("alert", subject=alert.subject, body=alert.body)


class SMTPAlertTransport:
    """Sends alerts by email over SMTP."""

    def __init__(
        self,
        host: str,
        recipients: list[str],
        *,
        port: int = 587,
        sender: str | None = None,
        username: str | None = None,
        password: str | None = None,
        use_tls: bool = True,
        timeout: float = 10.0,
    ) -> None:
        if not recipients:
            raise ValueError("at least one alert recipient is required")
        self.host = host
        self.port = port
        self.recipients = recipients
        self.sender = sender or username or recipients[0]
        self.username = username
        self.password = password
        self.use_tls = use_tls
        self.timeout = timeout

    def build_message(self, alert: Alert) -> EmailMessage:
        msg = EmailMessage()
        msg["From"] = self.sender
        msg["To"] = ", ".join(self.recipients)
        msg["Subject"] = alert.subject
        msg.set_content(alert.body)
        return msg

    def send(self, alert: Alert) -> None:
        try:
            with smtplib.SMTP(self.host, self.port, timeout=self.timeout) as server:
                if self.use_tls:
                    server.starttls()
                if self.username and self.password:
                    server.login(self.username, self.password)
                server.send_message(self.build_message(alert))
        except (smtplib.SMTPException, OSError) as exc:
            raise AlertError(f"SMTP delivery to {self.host}:{self.port} failed: {exc}") from exc


def build_transport(settings: KeepAliveSettings) -> AlertTransport:
    """Pick the SMTP transport when mail is configured, the log transport otherwise."""
    if settings.smtp_configured:
        assert settings.smtp_host is not None
        return SMTPAlertTransport(
            settings.smtp_host,
            settings.alert_recipients,
            port=settings.smtp_port,
            sender=settings.alert_from,
            username=settings.smtp_username,
            password=(
                settings.smtp_password.get_secret_value() if settings.smtp_password else None
            ),
            use_tls=settings.smtp_use_tls,
        )
    LOG.info("alert_transport_log_only", reason="ALERT_EMAIL or SMTP_HOST not set")
    return LogAlertTransport()


@dataclass
class AlertState:
    """Suppression state for exhaustion alerts.

    Attributes:
        suppressed: True once an alert went out; cleared by the next successful login.
        last_sent_at: When the last alert was dispatched.
    """

    suppressed: bool = False
    last_sent_at: datetime | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "suppressed": self.suppressed,
            "lastSentAt": self.last_sent_at.isoformat() if self.last_sent_at else None,
        }


class AlertNotifier:
    """Sends at most one exhaustion alert until the next successful login.

    Suppression is the primary rule: once an alert goes out, further exhaustions
    stay silent until ``clear`` is called, and ``clear`` resets the whole state.
    The cooldown therefore only bites when the notifier starts from a state
    that carries ``last_sent_at`` without ``suppressed``, such as one restored
    from a previous process through ``state``.

    Args:
        transport: Where alerts go.
        cooldown: Minimum seconds between two dispatched alerts.
        clock: Returns the current time (UTC); injectable for tests.
        state: Initial suppression state; a fresh one when omitted.
    """

    def __init__(
        self,
        transport: AlertTransport,
        cooldown: float = 60.0,
        clock: Callable[[], datetime] = utc_now,
        state: AlertState | None = None,
    ) -> None:
        self.transport = transport
        self.cooldown = cooldown
        self.clock = clock
        self.state = state if state is not None else AlertState()

    def notify_exhausted(self, context: dict[str, Any]) -> bool:
        """Dispatch an exhaustion alert unless suppressed.

        Args:
            context: Details included in the alert body (error, attempts, ...).

        Returns:
            True if an alert was actually delivered.
        """
        now = self.clock()
        if self.state.suppressed:
            LOG.info("alert_suppressed", reason="awaiting_successful_login")
            return False
        if (
            self.state.last_sent_at is not None
            and (now - self.state.last_sent_at).total_seconds() < self.cooldown
        ):
            LOG.info("alert_suppressed", reason="cooldown", cooldown=self.cooldown)
            return False

        alert = Alert(
            subject="[keep-alive] login retries exhausted",
            body="\n".join(
                [f"Login retries were exhausted at {now.isoformat()}.", ""]
                + [f"{key}: {value}" for key, value in context.items()]
            ),
        )
        try:
            self.transport.send(alert)
        except AlertError as exc:
            LOG.error("alert_delivery_failed", error=str(exc))
            return False
        except Exception:
            LOG.exception("alert_transport_crashed")
            return False

        self.state.suppressed = True
        self.state.last_sent_at = now
        LOG.warning("alert_dispatched", **context)
        return True

    def clear(self) -> None:
        """Reset suppression after a successful login."""
        if self.state.suppressed or self.state.last_sent_at is not None:
            LOG.info("alert_suppression_cleared")
        self.state = AlertState()
