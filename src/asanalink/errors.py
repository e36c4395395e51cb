"""Error taxonomy & redaction helpers.

Every failure the bot can hit falls in one of two buckets:

- fatal: :class:`ConfigurationError` and :class:`AuthenticationError`. These
  stop the run before any mutation and are reported through the host's
  failure call.
- recoverable: everything raised while handling a single task reference
  (:class:`TransportError` and subclasses, :class:`EnumResolutionError`).
  Handlers catch these, log them, and move on to the next reference.

Public helpers:
- classify_error(exc) -> ErrorInfo
- redact(text) -> str
"""
from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Any

_SENSITIVE_PATTERNS: list[re.Pattern[str]] = [
    re.compile(r"\b[0-9]/[0-9]{6,}[:/][0-9A-Za-z]{20,}"),  # Asana personal access tokens
    re.compile(r"ghp_[A-Za-z0-9]{20,40}"),  # GitHub classic tokens
    re.compile(r"ghs_[A-Za-z0-9]{20,40}"),  # GitHub Actions installation tokens
    re.compile(r"github_pat_\w{20,}"),  # GitHub fine-grained tokens
    re.compile(r"(?i)(authorization:\s*bearer\s+)\S+"),
]

_REDACTION_PLACEHOLDER = "<redacted>"


class ConfigurationError(RuntimeError):
    """Missing or malformed action input. Fatal to the run."""


class TransportError(RuntimeError):
    """A remote call (Asana or GitHub) failed."""

    def __init__(
        self,
        message: str,
        *,
        status: int | None = None,
        response_text: str | None = None,
    ):
        super().__init__(message)
        self.status = status
        self.response_text = response_text


class AuthenticationError(TransportError):
    """The tracker rejected the credentials while building the client."""


class EnumResolutionError(ValueError):
    """Desired content has no matching option on a single-select field."""

    def __init__(self, field_name: str, content: str):
        super().__init__(f"Enum option {content!r} not found on custom field {field_name!r}")
        self.field_name = field_name
        self.content = content


class ReferenceParseWarning(UserWarning):
    """A trigger-phrase match that carried no usable task id."""


@dataclass
class ErrorInfo:
    category: str
    message: str
    original_type: str
    transient: bool = False
    details: dict[str, Any] | None = None


def redact(text: str) -> str:
    """Replace credentials in arbitrary text with a placeholder."""
    if not text:
        return text
    redacted = text
    for pat in _SENSITIVE_PATTERNS:
        if pat.groups:
            redacted = pat.sub(lambda m: m.group(1) + _REDACTION_PLACEHOLDER, redacted)
        else:
            redacted = pat.sub(_REDACTION_PLACEHOLDER, redacted)
    return redacted


def classify_error(exc: BaseException) -> ErrorInfo:
    """Best-effort classification of an exception.

    - ConfigurationError -> 'configuration'
    - 401/403 or AuthenticationError -> 'auth'
    - 429 or rate limit wording -> 'asana.rate_limit', transient
    - 5xx or network-y keywords -> 'network', transient
    - EnumResolutionError -> 'lookup'
    - Fallback -> 'generic'
    """
    msg = str(exc) if exc else ""
    low = msg.lower()
    name = exc.__class__.__name__
    status = getattr(exc, "status", None)

    if isinstance(exc, ConfigurationError):
        return ErrorInfo("configuration", redact(msg), name)
    if isinstance(exc, AuthenticationError) or status in (401, 403):
        return ErrorInfo("auth", redact(msg), name, details={"status": status})
    if status == 429 or "rate limit" in low:
        return ErrorInfo("asana.rate_limit", redact(msg), name, transient=True)
    if (isinstance(status, int) and status >= 500) or any(
        k in low for k in ("timeout", "timed out", "connection reset", "temporarily unavailable")
    ):
        return ErrorInfo("network", redact(msg), name, transient=True)
    if isinstance(exc, EnumResolutionError):
        return ErrorInfo("lookup", redact(msg), name)
    return ErrorInfo("generic", redact(msg), name)


__all__ = [
    "AuthenticationError",
    "ConfigurationError",
    "EnumResolutionError",
    "ErrorInfo",
    "ReferenceParseWarning",
    "TransportError",
    "classify_error",
    "redact",
]
