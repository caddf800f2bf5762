"""Resolve X credentials from captured cookie jars or stored session tokens.

A session token is the canonical cookie string
(``auth_token=...; ct0=...; kdt=...; twid=...;``) base64-encoded so it can be
stored as a single opaque value. Only ``auth_token`` and ``ct0`` are required;
``kdt`` and ``twid`` ride along when present.
"""

import asyncio
import base64
import binascii
import logging
from collections.abc import Awaitable, Callable, Mapping
from dataclasses import dataclass, field
from typing import Protocol, TypeVar

import browser_cookie3

from .errors import (
    CookieInvalid,
    CookieMissingRequired,
    CookieReadFailed,
    SessionMissing,
    TimelineError,
)
from .models import COOKIE_ORDER, OPTIONAL_COOKIES, REQUIRED_COOKIES, Credentials

logger = logging.getLogger(__name__)

X_COOKIE_DOMAINS = ("x.com", "twitter.com")

T = TypeVar("T")


@dataclass
class CookieReadResult:
    cookies: dict[str, str]
    missing_required: list[str] = field(default_factory=list)
    missing_optional: list[str] = field(default_factory=list)

    @property
    def has_required(self) -> bool:
        return not self.missing_required


@dataclass
class AuthSession:
    cookie_string: str
    encoded: str
    cookie_names: list[str]


# ── Pure helpers ─────────────────────────────────────────────────


def normalize_cookie_record(jar: Mapping) -> dict[str, str]:
    """Flatten a jar into ``name -> trimmed value``.

    Values may be plain strings or ``{"value": "..."}`` wrappers (the shape
    native cookie managers return). Anything else is dropped.
    """
    out: dict[str, str] = {}
    for name, value in jar.items():
        if isinstance(value, Mapping):
            value = value.get("value")
        if isinstance(value, str):
            out[name] = value.strip()
    return out


def evaluate_cookies(cookies: Mapping[str, str]) -> CookieReadResult:
    return CookieReadResult(
        cookies=dict(cookies),
        missing_required=[n for n in REQUIRED_COOKIES if not cookies.get(n)],
        missing_optional=[n for n in OPTIONAL_COOKIES if not cookies.get(n)],
    )


def parse_cookie_string(cookie_string: str) -> dict[str, str]:
    """Split ``a=1; b=2;`` into a dict; malformed segments are skipped."""
    cookies: dict[str, str] = {}
    for segment in cookie_string.split(";"):
        segment = segment.strip()
        if not segment:
            continue
        name, sep, value = segment.partition("=")
        name = name.strip()
        value = value.strip()
        if sep and name and value:
            cookies[name] = value
    return cookies


def build_cookie_string(cookies: Mapping[str, str]) -> str:
    result = evaluate_cookies(cookies)
    if not result.has_required:
        raise CookieMissingRequired(result.missing_required, result.missing_optional)
    parts = [f"{name}={cookies[name]}" for name in COOKIE_ORDER if cookies.get(name)]
    return "; ".join(parts) + ";"


def encode_session(cookie_string: str) -> str:
    return base64.b64encode(cookie_string.encode("utf-8")).decode("ascii")


def decode_session(token: str) -> str:
    try:
        return base64.b64decode(token.strip(), validate=True).decode("utf-8")
    except (binascii.Error, UnicodeDecodeError, ValueError) as e:
        raise CookieInvalid(
            "Stored X session is invalid. Please reconnect your account.",
            {"cause": str(e)},
        ) from e


def create_session(cookies: Mapping[str, str]) -> AuthSession:
    cookie_string = build_cookie_string(cookies)
    return AuthSession(
        cookie_string=cookie_string,
        encoded=encode_session(cookie_string),
        cookie_names=list(cookies.keys()),
    )


def credentials_from_cookies(cookies: Mapping[str, str]) -> Credentials:
    result = evaluate_cookies(cookies)
    if not result.has_required:
        raise CookieMissingRequired(result.missing_required, result.missing_optional)
    return Credentials(
        auth_token=cookies["auth_token"],
        ct0=cookies["ct0"],
        kdt=cookies.get("kdt") or None,
        twid=cookies.get("twid") or None,
    )


def resolve_credentials(source: Mapping | str | None) -> Credentials:
    """Turn a cookie jar or an encoded session token into complete credentials.

    Raises:
        SessionMissing: neither a token nor a jar was supplied.
        CookieInvalid: the token does not decode.
        CookieMissingRequired: ``auth_token`` or ``ct0`` is absent.
    """
    if source is None or (isinstance(source, str) and not source.strip()):
        raise SessionMissing("No X session found. Please connect your account again.")
    if isinstance(source, str):
        cookies = parse_cookie_string(decode_session(source))
    else:
        cookies = normalize_cookie_record(source)
    return credentials_from_cookies(cookies)


# ── Cookie stores ────────────────────────────────────────────────


class CookieStore(Protocol):
    async def read(self) -> Mapping: ...


class MappingCookieStore:
    """A jar that was already captured, e.g. exported from a WebView."""

    def __init__(self, jar: Mapping):
        self._jar = jar

    async def read(self) -> Mapping:
        return self._jar


class BrowserCookieStore:
    """Read x.com cookies from the default profile of a desktop browser."""

    def __init__(self, browser: str = "chrome"):
        self.browser = browser

    async def read(self) -> Mapping:
        return await asyncio.to_thread(self._read_sync)

    def _load_jar(self, domain: str):
        if self.browser == "chrome":
            return browser_cookie3.chrome(domain_name=domain)
        if self.browser == "firefox":
            return browser_cookie3.firefox(domain_name=domain)
        if self.browser == "safari":
            return browser_cookie3.safari(domain_name=domain)
        raise ValueError(f"Unknown browser: {self.browser}")

    def _read_sync(self) -> dict[str, str]:
        found: list[tuple[str, str, str]] = []
        for domain in X_COOKIE_DOMAINS:
            for cookie in self._load_jar(domain):
                if cookie.name in COOKIE_ORDER and cookie.value:
                    found.append((cookie.name, cookie.value, cookie.domain or ""))

        # x.com values win over twitter.com ones
        cookies: dict[str, str] = {}
        for name, value, domain in sorted(
            found, key=lambda c: c[2].endswith("x.com")
        ):
            cookies[name] = value
        return cookies


async def read_cookies(
    store: CookieStore, fallback: CookieStore | None = None
) -> CookieReadResult:
    """Read ``store``; if incomplete, merge in ``fallback`` (store wins)."""
    try:
        narrow = normalize_cookie_record(await store.read())
        result = evaluate_cookies(narrow)
        logger.info(
            "X cookies read: available=%s missing_required=%s",
            sorted(narrow),
            result.missing_required,
        )

        if result.has_required or fallback is None:
            return result

        logger.warning(
            "Missing required cookies %s in primary store. Trying shared store.",
            result.missing_required,
        )
        shared = normalize_cookie_record(await fallback.read())
    except TimelineError:
        raise
    except Exception as e:
        logger.error("Failed to read X cookies: %s", e)
        raise CookieReadFailed("Failed to read cookies", {"cause": str(e)}) from e

    merged = {**shared, **narrow}
    result = evaluate_cookies(merged)
    logger.info(
        "Merged cookies from shared store: available=%s missing_required=%s",
        sorted(merged),
        result.missing_required,
    )
    return result


# ── Retry ────────────────────────────────────────────────────────


def _is_retryable_capture_error(exc: BaseException) -> bool:
    # Cookies may not be flushed to the readable store right after login.
    return isinstance(exc, CookieMissingRequired)


async def capture_with_retry(
    capture: Callable[[], Awaitable[T]],
    attempts: int = 3,
    delay: float = 0.8,
    sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    is_retryable: Callable[[BaseException], bool] = _is_retryable_capture_error,
) -> T:
    """Call ``capture`` up to ``attempts`` times, sleeping between failures."""
    for attempt in range(1, attempts + 1):
        try:
            return await capture()
        except Exception as e:
            if attempt >= attempts or not is_retryable(e):
                raise
            logger.debug(
                "Cookie capture retry %d/%d in %.1fs: %s", attempt, attempts, delay, e
            )
            await sleep(delay)
    raise ValueError("attempts must be at least 1")


# ── Auth collaborator ────────────────────────────────────────────


class SessionStore(Protocol):
    async def get(self) -> str | None: ...

    async def set(self, encoded: str) -> None: ...

    async def clear(self) -> None: ...


class AuthService:
    """Capture cookies into a stored session token and load it back."""

    def __init__(
        self,
        store: SessionStore,
        cookie_store: CookieStore | None = None,
        fallback_store: CookieStore | None = None,
    ):
        self.store = store
        self.cookie_store = cookie_store
        self.fallback_store = fallback_store

    async def capture_session(self) -> tuple[AuthSession | None, CookieReadResult]:
        if self.cookie_store is None:
            raise SessionMissing("No cookie source configured for login.")

        logger.info("Attempting to capture X session")
        result = await read_cookies(self.cookie_store, self.fallback_store)
        if not result.has_required:
            logger.warning(
                "Missing required X cookies: %s (optional missing: %s)",
                result.missing_required,
                result.missing_optional,
            )
            return None, result

        session = create_session(result.cookies)
        logger.info("X session created with cookies %s", session.cookie_names)
        return session, result

    async def capture_and_store_session(self) -> Credentials:
        session, result = await self.capture_session()
        if session is None:
            raise CookieMissingRequired(result.missing_required, result.missing_optional)
        await self.store.set(session.encoded)
        return credentials_from_cookies(result.cookies)

    async def load_stored_session(self) -> str | None:
        return await self.store.get()

    async def clear_stored_session(self) -> None:
        await self.store.clear()
