"""
passport.services.notifications — Outbound Progression Notifications
=====================================================================

Level-ups and earned badges are delivered out-of-band (email by default).
The progression engine never talks to a sink directly: after its
transaction commits it puts :class:`NotificationMessage` objects on a
:class:`NotificationOutbox`, and a background worker drains the outbox into
the configured :class:`NotificationSink`.

Delivery is best-effort: a failing sink is logged and the message dropped.
Nothing here can fail or slow down a points award.
"""

from __future__ import annotations

import asyncio
import logging
import os
import queue
import ssl
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText

import aiosmtplib

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class NotificationMessage:
    """One outbound notice.

    ``kind`` is ``"badge_earned"`` (``badge`` set) or ``"level_up"``
    (``level`` / ``level_name`` / ``message`` set).
    """

    kind: str
    user_id: int
    user_email: str | None
    badge: dict = field(default_factory=dict)
    level: int | None = None
    level_name: str | None = None
    message: str | None = None


# ---------------------------------------------------------------------------
# Sinks
# ---------------------------------------------------------------------------
class NotificationSink(ABC):
    """Delivery channel for notifications. Raise on failure."""

    @abstractmethod
    async def send(self, message: NotificationMessage) -> None:
        ...


class LoggingSink(NotificationSink):
    """Stub sink that logs instead of delivering."""

    async def send(self, message: NotificationMessage) -> None:
        logger.info(
            "[NOTIFY STUB] %s → user=%d email=%s badge=%s level=%s",
            message.kind, message.user_id, message.user_email,
            message.badge.get("name"), message.level,
        )


class SmtpSink(NotificationSink):
    """Email badge and level-up notices via SMTP using aiosmtplib."""

    def __init__(
        self,
        host: str,
        port: int,
        username: str,
        password: str,
        from_address: str,
        frontend_url: str = "",
        use_tls: bool = True,
    ) -> None:
        self.host = host
        self.port = port
        self.username = username
        self.password = password
        self.from_address = from_address
        self.frontend_url = frontend_url.rstrip("/")
        self.use_tls = use_tls

    def build_email(self, message: NotificationMessage) -> MIMEMultipart:
        if message.kind == "badge_earned":
            name = message.badge.get("name", "")
            description = message.badge.get("description") or ""
            subject = f'¡Felicidades! Has ganado la insignia "{name}"'
            text_body = f"Has ganado una nueva insignia: {name}\n{description}\n"
            html_body = (
                "<h1>¡Felicidades! 🎉</h1>"
                f"<p>Has ganado una nueva insignia:</p><h2>{name}</h2><p>{description}</p>"
            )
        else:
            subject = f"¡Subiste al nivel {message.level}: {message.level_name}!"
            text_body = f"{message.message or subject}\n"
            html_body = f"<h1>¡Felicidades! 🎉</h1><p>{message.message or subject}</p>"

        if self.frontend_url:
            text_body += f"\nVer mi perfil: {self.frontend_url}/profile\n"
            html_body += f'<p><a href="{self.frontend_url}/profile">Ver mi perfil</a></p>'

        msg = MIMEMultipart("alternative")
        msg["From"] = self.from_address
        msg["To"] = message.user_email or ""
        msg["Subject"] = subject
        msg.attach(MIMEText(text_body, "plain", "utf-8"))
        msg.attach(MIMEText(html_body, "html", "utf-8"))
        return msg

    async def send(self, message: NotificationMessage) -> None:
        if not message.user_email:
            logger.info("No email on file for user %d — skipping %s", message.user_id, message.kind)
            return

        tls_context = ssl.create_default_context() if self.use_tls else None
        await aiosmtplib.send(
            self.build_email(message),
            hostname=self.host,
            port=self.port,
            username=self.username or None,
            password=self.password or None,
            start_tls=self.use_tls,
            tls_context=tls_context,
        )
        logger.info("Sent %s email to user %d", message.kind, message.user_id)


def build_sink_from_env(from_address: str = "") -> NotificationSink:
    """Return an :class:`SmtpSink` when ``SMTP_HOST`` is set, else a :class:`LoggingSink`."""
    host = os.getenv("SMTP_HOST", "").strip()
    if not host:
        logger.info("SMTP_HOST not set — notifications will be logged only")
        return LoggingSink()
    return SmtpSink(
        host=host,
        port=int(os.getenv("SMTP_PORT", "587")),
        username=os.getenv("SMTP_USER", ""),
        password=os.getenv("SMTP_PASSWORD", ""),
        from_address=from_address or os.getenv("SMTP_FROM", "no-reply@localhost"),
        frontend_url=os.getenv("FRONTEND_URL", ""),
        use_tls=os.getenv("SMTP_USE_TLS", "true").lower() in ("1", "true", "yes"),
    )


# ---------------------------------------------------------------------------
# Outbox
# ---------------------------------------------------------------------------
class NotificationOutbox:
    """Thread-safe queue between the engine and the delivery worker.

    ``enqueue`` is called from request threads after commit; ``drain_once``
    runs on the worker's event loop.  Overflow beyond ``maxsize`` is
    dropped with a warning.
    """

    def __init__(self, sink: NotificationSink, maxsize: int = 10_000) -> None:
        self.sink = sink
        self._queue: queue.Queue[NotificationMessage] = queue.Queue(maxsize=maxsize)
        self._drain_task: asyncio.Task | None = None

    def enqueue(self, message: NotificationMessage) -> bool:
        """Queue *message* for delivery. Never raises."""
        try:
            self._queue.put_nowait(message)
        except queue.Full:
            logger.warning(
                "Notification outbox full — dropping %s for user %d",
                message.kind, message.user_id,
            )
            return False
        return True

    def pending(self) -> int:
        return self._queue.qsize()

    async def drain_once(self) -> int:
        """Deliver everything currently queued. Returns the number sent."""
        sent = 0
        while True:
            try:
                message = self._queue.get_nowait()
            except queue.Empty:
                break
            try:
                await self.sink.send(message)
                sent += 1
            except Exception:
                logger.exception(
                    "Failed to deliver %s notification to user %d",
                    message.kind, message.user_id,
                )
        return sent

    def start(self, loop: asyncio.AbstractEventLoop, interval: float = 5.0) -> None:
        """Start the background drain task."""
        if self._drain_task is not None:
            return

        async def _drain_loop() -> None:
            while True:
                await asyncio.sleep(interval)
                try:
                    await self.drain_once()
                except Exception:
                    logger.exception("Notification drain error")

        self._drain_task = loop.create_task(_drain_loop(), name="notification-drain")

    def stop(self) -> None:
        """Cancel the drain task."""
        if self._drain_task:
            self._drain_task.cancel()
            self._drain_task = None
