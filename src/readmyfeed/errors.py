"""Error taxonomy for the timeline pipeline.

Every failure carries a stable ``code`` and a ``context`` dict so callers can
scope retries (re-login vs. re-request) without string matching. The CLI
turns any of them into a one-line message via ``describe_error``.
"""

from enum import Enum

import httpx


class TimelineError(Exception):
    code = "X_TIMELINE_ERROR"

    def __init__(self, message: str, context: dict | None = None):
        super().__init__(message)
        self.context = context or {}


class CookieInvalid(TimelineError):
    code = "X_TIMELINE_COOKIE_INVALID"


class SessionMissing(CookieInvalid):
    """No stored session and no cookie jar to build one from."""

    code = "X_TIMELINE_SESSION_MISSING"


class CookieMissingRequired(TimelineError):
    code = "X_AUTH_COOKIE_MISSING_REQUIRED"

    def __init__(
        self,
        missing_required: list[str],
        missing_optional: list[str] | None = None,
    ):
        self.missing_required = list(missing_required)
        self.missing_optional = list(missing_optional or [])
        super().__init__(
            "Missing required cookies: " + ", ".join(self.missing_required),
            {
                "missing_required": self.missing_required,
                "missing_optional": self.missing_optional,
            },
        )


class CookieReadFailed(TimelineError):
    code = "X_AUTH_COOKIE_READ_FAILED"


class SigningFailed(TimelineError):
    code = "X_TIMELINE_SIGNING_FAILED"


class RequestFailed(TimelineError):
    code = "X_TIMELINE_REQUEST_FAILED"

    def __init__(self, message: str, status: int | None = None, body: str = ""):
        self.status = status
        self.body = body
        super().__init__(message, {"status": status, "body": body})


class ResponseInvalid(TimelineError):
    code = "X_TIMELINE_RESPONSE_INVALID"

    def __init__(self, message: str, cause: str = "", body: str = ""):
        self.cause = cause
        self.body = body
        super().__init__(message, {"cause": cause, "body": body})


class ErrorCategory(str, Enum):
    SESSION = "session"
    CONNECTIVITY = "connectivity"
    UNEXPECTED_RESPONSE = "unexpected_response"


_MESSAGES = {
    ErrorCategory.SESSION: (
        "Your X session is missing or has expired. "
        "Run `readmyfeed login` to connect your account again."
    ),
    ErrorCategory.CONNECTIVITY: (
        "Could not reach X. Check your connection and try again."
    ),
    ErrorCategory.UNEXPECTED_RESPONSE: (
        "X returned a response we could not understand. "
        "The API may have changed; try again later."
    ),
}


def categorize_error(exc: BaseException) -> ErrorCategory:
    """Map a failure to the category shown to the user."""
    if isinstance(exc, (CookieInvalid, CookieMissingRequired, CookieReadFailed)):
        return ErrorCategory.SESSION
    if isinstance(exc, RequestFailed):
        if exc.status in (401, 403):
            return ErrorCategory.SESSION
        if exc.status is None or exc.status == 429 or exc.status >= 500:
            return ErrorCategory.CONNECTIVITY
        return ErrorCategory.UNEXPECTED_RESPONSE
    if isinstance(exc, (SigningFailed, httpx.TransportError)):
        return ErrorCategory.CONNECTIVITY
    return ErrorCategory.UNEXPECTED_RESPONSE


def describe_error(exc: BaseException) -> str:
    """Return a human-readable message for ``exc``; never a traceback."""
    category = categorize_error(exc)
    detail = str(exc).strip()
    if detail:
        return f"{_MESSAGES[category]}\n  ({detail})"
    return _MESSAGES[category]
