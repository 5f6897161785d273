"""Outbound e-mail and SMS delivery.

The complaint workflow talks to delivery through the :class:`Notifier`
protocol: ``send_email`` and ``send_sms`` each return a
:class:`~src.models.notification.DeliveryOutcome` and never raise, so a
fanout batch can always continue past a failed recipient.

Channels:

1. **E-mail** -- SMTP via :mod:`smtplib`, run in a worker thread.  When
   SMTP is not configured the send is logged and reported as
   ``skipped``.
2. **SMS** -- Configurable gateway (MSG91, Textlocal) over httpx, or a
   mock provider that only logs.  Messages are compressed to a single
   160-character segment.
"""

from __future__ import annotations

import asyncio
import re
import smtplib
import ssl
from datetime import UTC, datetime
from email.message import EmailMessage
from typing import Any, Final, Protocol, runtime_checkable
from uuid import uuid4

import httpx
import structlog

from src.middleware.privacy import sanitize_pii
from src.models.enums import DeliveryChannel, DeliveryState
from src.models.notification import DeliveryOutcome

logger = structlog.get_logger(__name__)

# ---------------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------------

_SMS_GSM7_MAX: Final[int] = 160
_HTTP_TIMEOUT_SECONDS: Final[float] = 10.0

_INDIAN_MOBILE_RE: Final[re.Pattern[str]] = re.compile(
    r"^(?:\+?91)?([6-9]\d{9})$",
)
_EMAIL_RE: Final[re.Pattern[str]] = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")
_TAG_RE: Final[re.Pattern[str]] = re.compile(r"<[^>]+>")


# ---------------------------------------------------------------------------
# Notifier protocol
# ---------------------------------------------------------------------------


@runtime_checkable
class Notifier(Protocol):
    """Outbound delivery capability consumed by notification fanout."""

    async def send_email(self, address: str, subject: str, html_body: str) -> DeliveryOutcome: ...

    async def send_sms(self, phone: str, text: str) -> DeliveryOutcome: ...


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def normalize_phone(number: str) -> str:
    """Normalise an Indian mobile number to E.164 format (``+91XXXXXXXXXX``).

    Accepts ``+91XXXXXXXXXX``, ``91XXXXXXXXXX``, or plain 10-digit
    formats.  Strips spaces, dashes, and parentheses before matching.

    Raises
    ------
    ValueError
        If the number cannot be parsed as a valid Indian mobile.
    """
    cleaned = re.sub(r"[\s\-\(\)]+", "", number.strip())
    match = _INDIAN_MOBILE_RE.match(cleaned)
    if not match:
        raise ValueError(
            f"Invalid Indian mobile number: {sanitize_pii(number)!r}. "
            "Expected +91XXXXXXXXXX, 91XXXXXXXXXX, or 10-digit format."
        )
    return f"+91{match.group(1)}"


def format_for_sms(text: str, max_length: int = _SMS_GSM7_MAX) -> str:
    """Collapse whitespace and truncate *text* to one SMS segment."""
    compact = " ".join(text.split())
    if len(compact) <= max_length:
        return compact
    return compact[: max_length - 3].rstrip() + "..."


def html_to_text(html_body: str) -> str:
    """Plain-text fallback for an HTML e-mail body."""
    lines = (line.strip() for line in _TAG_RE.sub("", html_body).splitlines())
    return "\n".join(line for line in lines if line)


# ---------------------------------------------------------------------------
# SMS provider implementations
# ---------------------------------------------------------------------------


class _SMSProviderBase:
    """Abstract base for SMS gateway providers."""

    name: str = ""

    async def send(
        self,
        to: str,
        message: str,
        *,
        api_key: str,
        sender_id: str,
    ) -> dict[str, Any]:
        raise NotImplementedError


class _MSG91Provider(_SMSProviderBase):
    """MSG91 transactional SMS gateway."""

    name = "msg91"
    _BASE_URL: Final[str] = "https://api.msg91.com/api/v5/flow/"

    async def send(
        self,
        to: str,
        message: str,
        *,
        api_key: str,
        sender_id: str,
    ) -> dict[str, Any]:
        headers = {"authkey": api_key, "Content-Type": "application/json"}
        payload = {
            "flow_id": "campus_complaints",
            "sender": sender_id,
            "recipients": [
                {
                    "mobiles": to.lstrip("+"),
                    "message": message,
                },
            ],
        }
        async with httpx.AsyncClient(timeout=_HTTP_TIMEOUT_SECONDS) as client:
            response = await client.post(self._BASE_URL, json=payload, headers=headers)
            response.raise_for_status()
            return response.json()


class _TextlocalProvider(_SMSProviderBase):
    """Textlocal SMS gateway."""

    name = "textlocal"
    _BASE_URL: Final[str] = "https://api.textlocal.in/send/"

    async def send(
        self,
        to: str,
        message: str,
        *,
        api_key: str,
        sender_id: str,
    ) -> dict[str, Any]:
        payload = {
            "apikey": api_key,
            "numbers": to.lstrip("+"),
            "message": message,
            "sender": sender_id,
        }
        async with httpx.AsyncClient(timeout=_HTTP_TIMEOUT_SECONDS) as client:
            response = await client.post(self._BASE_URL, data=payload)
            response.raise_for_status()
            return response.json()


class _MockProvider(_SMSProviderBase):
    """Logs instead of sending; used in development and tests."""

    name = "mock"

    async def send(
        self,
        to: str,
        message: str,
        *,
        api_key: str,
        sender_id: str,
    ) -> dict[str, Any]:
        logger.info(
            "mock_sms.sent",
            to=sanitize_pii(to),
            message_preview=message[:80],
            length=len(message),
        )
        return {
            "status": "mock",
            "message_id": f"mock_{uuid4().hex[:12]}",
        }


_SMS_PROVIDERS: Final[dict[str, type[_SMSProviderBase]]] = {
    "msg91": _MSG91Provider,
    "textlocal": _TextlocalProvider,
    "mock": _MockProvider,
}


# ---------------------------------------------------------------------------
# E-mail sender
# ---------------------------------------------------------------------------


class SMTPEmailSender:
    """Send HTML e-mail over SMTP without blocking the event loop."""

    __slots__ = ("_from_email", "_host", "_password", "_port", "_timeout", "_use_tls", "_user")

    def __init__(
        self,
        host: str = "",
        port: int = 587,
        user: str = "",
        password: str = "",
        *,
        from_email: str = "no-reply@campus.example.edu",
        use_tls: bool = True,
        timeout: float = 10.0,
    ) -> None:
        self._host = host
        self._port = port
        self._user = user
        self._password = password
        self._from_email = from_email
        self._use_tls = use_tls
        self._timeout = timeout

    @property
    def configured(self) -> bool:
        return bool(self._host and self._user and self._password)

    def build_message(self, address: str, subject: str, html_body: str) -> EmailMessage:
        message = EmailMessage()
        message["From"] = self._from_email
        message["To"] = address
        message["Subject"] = subject
        message.set_content(html_to_text(html_body))
        message.add_alternative(html_body, subtype="html")
        return message

    async def send(self, address: str, subject: str, html_body: str) -> None:
        message = self.build_message(address, subject, html_body)
        await asyncio.to_thread(self._send_blocking, message)

    def _send_blocking(self, message: EmailMessage) -> None:
        with smtplib.SMTP(self._host, self._port, timeout=self._timeout) as server:
            if self._use_tls:
                server.starttls(context=ssl.create_default_context())
            server.login(self._user, self._password)
            server.send_message(message)


# ---------------------------------------------------------------------------
# Campus notifier
# ---------------------------------------------------------------------------


class CampusNotifier:
    """:class:`Notifier` backed by SMTP e-mail and an SMS gateway.

    Usage::

        notifier = CampusNotifier(
            email_sender=SMTPEmailSender(host="smtp.gmail.com", user="...", password="..."),
            sms_provider="msg91",
            sms_api_key="your_msg91_key",
        )
        outcome = await notifier.send_sms("9876543210", "Your complaint was resolved.")
    """

    __slots__ = ("_email", "_sms_api_key", "_sms_provider", "_sms_sender_id")

    def __init__(
        self,
        email_sender: SMTPEmailSender | None = None,
        sms_provider: str = "mock",
        sms_api_key: str = "",
        sms_sender_id: str = "CAMPUS",
    ) -> None:
        if sms_provider not in _SMS_PROVIDERS:
            raise ValueError(
                f"Unknown SMS provider {sms_provider!r}. "
                f"Supported: {', '.join(sorted(_SMS_PROVIDERS))}."
            )
        self._email = email_sender or SMTPEmailSender()
        self._sms_provider: _SMSProviderBase = _SMS_PROVIDERS[sms_provider]()
        self._sms_api_key = sms_api_key
        self._sms_sender_id = sms_sender_id

        logger.info(
            "notifier.initialised",
            email_configured=self._email.configured,
            sms_provider=sms_provider,
        )

    # ------------------------------------------------------------------
    # E-mail
    # ------------------------------------------------------------------

    async def send_email(self, address: str, subject: str, html_body: str) -> DeliveryOutcome:
        masked = sanitize_pii(address)
        log = logger.bind(channel="email", to=masked)

        if not _EMAIL_RE.match(address.strip()):
            log.warning("email.invalid_address")
            return DeliveryOutcome(
                channel=DeliveryChannel.EMAIL,
                to=masked,
                status=DeliveryState.FAILED,
                provider="smtp",
                error_message="Invalid e-mail address",
            )

        if not self._email.configured:
            log.info("email.skipped_unconfigured", subject=subject)
            return DeliveryOutcome(
                channel=DeliveryChannel.EMAIL,
                to=masked,
                status=DeliveryState.SKIPPED,
                provider="smtp",
                error_message="SMTP is not configured",
            )

        try:
            await self._email.send(address.strip(), subject, html_body)
        except Exception as exc:
            log.error("email.send_failed", error=str(exc))
            return DeliveryOutcome(
                channel=DeliveryChannel.EMAIL,
                to=masked,
                status=DeliveryState.FAILED,
                provider="smtp",
                error_message=str(exc),
            )

        log.info("email.sent", subject=subject)
        return DeliveryOutcome(
            channel=DeliveryChannel.EMAIL,
            to=masked,
            status=DeliveryState.SENT,
            provider="smtp",
            sent_at=datetime.now(UTC),
        )

    # ------------------------------------------------------------------
    # SMS
    # ------------------------------------------------------------------

    async def send_sms(self, phone: str, text: str) -> DeliveryOutcome:
        provider_name = self._sms_provider.name
        try:
            to = normalize_phone(phone)
        except ValueError as exc:
            return DeliveryOutcome(
                channel=DeliveryChannel.SMS,
                to=sanitize_pii(phone),
                status=DeliveryState.FAILED,
                provider=provider_name,
                error_message=str(exc),
            )

        masked = sanitize_pii(to)
        log = logger.bind(channel="sms", to=masked, provider=provider_name)

        try:
            result = await self._sms_provider.send(
                to,
                format_for_sms(text),
                api_key=self._sms_api_key,
                sender_id=self._sms_sender_id,
            )
        except Exception as exc:
            log.error("sms.send_failed", error=str(exc))
            return DeliveryOutcome(
                channel=DeliveryChannel.SMS,
                to=masked,
                status=DeliveryState.FAILED,
                provider=provider_name,
                error_message=str(exc),
            )

        provider_status = str(result.get("status", "sent"))
        status = DeliveryState.MOCK if provider_status == "mock" else DeliveryState.SENT
        provider_msg_id = result.get("message_id", result.get("request_id", result.get("id")))

        log.info("sms.sent", provider_id=provider_msg_id)
        return DeliveryOutcome(
            channel=DeliveryChannel.SMS,
            to=masked,
            status=status,
            provider=provider_name,
            provider_message_id=str(provider_msg_id) if provider_msg_id is not None else None,
            sent_at=datetime.now(UTC),
        )
