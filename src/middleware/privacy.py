"""PII masking and request logging middleware.

Student and staff contact details (phone numbers, e-mail addresses)
pass through notification delivery; they are masked before they reach
structured logs or delivery outcomes.  The middleware also logs every
request and adds security headers to every response.
"""

from __future__ import annotations

import re
import time
from typing import Final

import structlog
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import Response

logger: structlog.stdlib.BoundLogger = structlog.get_logger(__name__)

# ---------------------------------------------------------------------------
# PII sanitisation patterns
# ---------------------------------------------------------------------------

# Indian mobile numbers: +91 followed by 10 digits, or a bare 10-digit
# number starting with 6-9.  We preserve only the last 4 digits.
_PHONE_PATTERN: Final[re.Pattern[str]] = re.compile(
    r"(?:\+91[\s-]?)?([6-9]\d{5})(\d{4})\b"
)

# E-mail addresses: keep the first character of the local part and the domain.
_EMAIL_PATTERN: Final[re.Pattern[str]] = re.compile(
    r"\b([A-Za-z0-9])[A-Za-z0-9._%+-]*@([A-Za-z0-9.-]+\.[A-Za-z]{2,})\b"
)


def sanitize_phone(text: str) -> str:
    """Mask phone numbers in *text*, preserving only the last 4 digits.

    ``+91 9876543210`` becomes ``XXXXXX3210``.
    """

    def _mask(match: re.Match[str]) -> str:
        last_four = match.group(2)
        return f"XXXXXX{last_four}"

    return _PHONE_PATTERN.sub(_mask, text)


def sanitize_email(text: str) -> str:
    """Mask e-mail addresses in *text*: ``asha.rao@gmail.com`` -> ``a***@gmail.com``."""
    return _EMAIL_PATTERN.sub(lambda m: f"{m.group(1)}***@{m.group(2)}", text)


def sanitize_pii(text: str) -> str:
    """Apply all PII sanitisation routines to *text*.

    Phone first: the e-mail pattern would otherwise swallow digits that
    appear in a local part.
    """
    text = sanitize_phone(text)
    text = sanitize_email(text)
    return text


# ---------------------------------------------------------------------------
# Middleware
# ---------------------------------------------------------------------------


class RequestLoggingMiddleware(BaseHTTPMiddleware):
    """Log each request with latency and attach security headers."""

    async def dispatch(self, request: Request, call_next: RequestResponseEndpoint) -> Response:
        start = time.perf_counter()
        client_ip = request.client.host if request.client else "unknown"

        response = await call_next(request)

        logger.info(
            "request.completed",
            method=request.method,
            path=request.url.path,
            status=response.status_code,
            client_ip=client_ip,
            latency_ms=round((time.perf_counter() - start) * 1000, 2),
        )

        response.headers["X-Content-Type-Options"] = "nosniff"
        response.headers["X-Frame-Options"] = "DENY"
        response.headers["Referrer-Policy"] = "strict-origin-when-cross-origin"
        response.headers["Strict-Transport-Security"] = "max-age=63072000; includeSubDomains"
        response.headers["Cross-Origin-Opener-Policy"] = "same-origin"
        response.headers["Cross-Origin-Resource-Policy"] = "same-origin"
        # API responses carry personal data and must never be cached.
        response.headers["Cache-Control"] = "no-store, no-cache, must-revalidate, private"
        response.headers["Pragma"] = "no-cache"

        return response
