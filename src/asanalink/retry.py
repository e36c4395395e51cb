"""Centralized retry / backoff helpers for HTTP calls.

``run_with_retries`` wraps a thunk returning a ``requests.Response``. It
retries when the response status is transient (429 or 5xx) or when the
request raises a connection error or timeout, sleeping with exponential
backoff plus jitter. An explicit ``Retry-After`` header (Asana sends one
with every 429) wins over the computed backoff.

Calls marked ``idempotent=False`` (POSTs that create something) are only
retried when the server cannot have acted on them: a 429, or a connect
timeout raised before the request went out.

Environment overrides:
  ASANALINK_RETRY_ATTEMPTS (default 3)
  ASANALINK_RETRY_BASE (seconds base, default 0.5)
  ASANALINK_RETRY_MAX_SLEEP (cap in seconds, unset by default)
"""

from __future__ import annotations

import os
import random
import re
import time
from collections.abc import Callable
from dataclasses import dataclass, field

import requests

from .logging import get_logger

TRANSIENT_TOKENS = (
    "rate limit",
    "too many requests",
    "temporarily unavailable",
)
TRANSIENT_STATUSES = frozenset({429, 500, 502, 503, 504})

_RE_RETRY_AFTER = re.compile(r"retry[-\s]after:?\s*(\d+)", re.IGNORECASE)
_JITTER = random.SystemRandom()


def _extract_explicit_backoff(text: str | None) -> float | None:
    """Extract an explicit backoff (seconds) from a header value or error text.

    Supports a bare number (header value) or ``Retry-After: 12`` in text.
    Returns None if no valid positive value found.
    """
    if not text:
        return None
    text = text.strip()
    if text.isdigit():
        val = float(text)
        return val if val > 0 else None
    m = _RE_RETRY_AFTER.search(text)
    if m:
        val = float(m.group(1))
        return val if val > 0 else None
    return None


@dataclass
class RetryConfig:
    attempts: int = field(default_factory=lambda: int(os.environ.get("ASANALINK_RETRY_ATTEMPTS", "3")))
    base_sleep: float = field(
        default_factory=lambda: float(os.environ.get("ASANALINK_RETRY_BASE", "0.5"))
    )


def is_transient(output: str) -> bool:
    out_lower = output.lower()
    return any(tok in out_lower for tok in TRANSIENT_TOKENS)


def _compute_sleep(attempt: int, cfg: RetryConfig, hint: str | None) -> float:
    explicit = _extract_explicit_backoff(hint)
    backoff = cfg.base_sleep * (2 ** (attempt - 1)) + _JITTER.uniform(0, 0.25)
    sleep_for: float = explicit if explicit is not None else backoff
    max_cap_env = os.environ.get("ASANALINK_RETRY_MAX_SLEEP")
    if max_cap_env:
        try:
            cap = float(max_cap_env)
        except ValueError:
            return sleep_for
        if cap >= 0:
            sleep_for = min(sleep_for, cap)
    return sleep_for


def _sleep(attempt: int, attempts: int, cfg: RetryConfig, hint: str | None) -> None:
    sleep_for = _compute_sleep(attempt, cfg, hint)
    get_logger().debug(
        f"[retry] transient error, attempt {attempt}/{attempts}, sleeping {sleep_for:.2f}s"
    )
    time.sleep(sleep_for)


def _retryable_error(exc: Exception, idempotent: bool) -> bool:
    if idempotent:
        return True
    return isinstance(exc, requests.ConnectTimeout)


def _retryable_status(response: requests.Response, idempotent: bool) -> bool:
    if not idempotent:
        return response.status_code == 429
    return response.status_code in TRANSIENT_STATUSES or (
        response.status_code >= 400 and is_transient(response.text or "")
    )


def run_with_retries(
    fn: Callable[[], requests.Response],
    *,
    cfg: RetryConfig | None = None,
    idempotent: bool = True,
) -> requests.Response:
    cfg = cfg or RetryConfig()
    attempts = max(1, cfg.attempts)
    for attempt in range(1, attempts + 1):  # noqa: PLR2004
        try:
            response = fn()
        except (requests.ConnectionError, requests.Timeout) as exc:
            if attempt >= attempts or not _retryable_error(exc, idempotent):
                raise
            _sleep(attempt, attempts, cfg, str(exc))
            continue
        if not _retryable_status(response, idempotent) or attempt >= attempts:
            return response
        _sleep(attempt, attempts, cfg, response.headers.get("Retry-After"))
    raise RuntimeError("retry logic exited unexpectedly")  # pragma: no cover


__all__ = ["RetryConfig", "run_with_retries", "is_transient"]
