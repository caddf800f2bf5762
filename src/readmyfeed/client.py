"""Twitter GraphQL API client for the home "Following" timeline.

Authentication uses the browser session cookies (auth_token + ct0, plus kdt
and twid when available) sent as a raw Cookie header, matching the web
client. The bearer token is a static, public token embedded in X's web
client JS; all web clients share the same one. Each request also needs a
fresh x-client-transaction-id (see signer.py).

The query ID and feature flags are hardcoded and must match the deployed
endpoint exactly. Override with environment variables if needed:
    X_HOME_TIMELINE_QUERY_ID
    X_BEARER_TOKEN
"""

import json
import logging
import os
import re
import time
from collections.abc import Awaitable, Callable

import httpx

from .errors import RequestFailed, ResponseInvalid, SessionMissing
from .models import Credentials, TimelineBatch
from .parser import parse_timeline
from .session import (
    AuthService,
    credentials_from_cookies,
    decode_session,
    parse_cookie_string,
)
from .signer import sign_request

logger = logging.getLogger(__name__)

# Static bearer token used by X's web client (public, not a user secret)
BEARER_TOKEN = os.environ.get(
    "X_BEARER_TOKEN",
    "AAAAAAAAAAAAAAAAAAAAANRILgAAAAAAnNwIzUejRCOuH5E6I8xnZz4puTs"
    "%3D1Zv7ttfk8LF81IUq16cHjhLTvJu4FA33AGWWjCpTnA",
)

# GraphQL query ID for HomeLatestTimeline, rotates every few weeks
HOME_TIMELINE_QUERY_ID = os.environ.get(
    "X_HOME_TIMELINE_QUERY_ID",
    "_qO7FJzShSKYWi9gtboE6A",
)

DEFAULT_BATCH_SIZE = 40
BODY_PREFIX_LIMIT = 800

USER_AGENT = (
    "Mozilla/5.0 (X11; Linux x86_64; rv:144.0) Gecko/20100101 Firefox/144.0"
)

# Feature flags sent with each request, captured from the live web client.
# Missing or extra flags make the endpoint reject the request.
TIMELINE_FEATURES = {
    "rweb_video_screen_enabled": False,
    "profile_label_improvements_pcf_label_in_post_enabled": True,
    "responsive_web_profile_redirect_enabled": False,
    "rweb_tipjar_consumption_enabled": True,
    "verified_phone_label_enabled": True,
    "creator_subscriptions_tweet_preview_api_enabled": True,
    "responsive_web_graphql_timeline_navigation_enabled": True,
    "responsive_web_graphql_skip_user_profile_image_extensions_enabled": False,
    "premium_content_api_read_enabled": False,
    "communities_web_enable_tweet_community_results_fetch": True,
    "c9s_tweet_anatomy_moderator_badge_enabled": True,
    "responsive_web_grok_analyze_button_fetch_trends_enabled": False,
    "responsive_web_grok_analyze_post_followups_enabled": True,
    "responsive_web_jetfuel_frame": True,
    "responsive_web_grok_share_attachment_enabled": True,
    "articles_preview_enabled": True,
    "responsive_web_edit_tweet_api_enabled": True,
    "graphql_is_translatable_rweb_tweet_is_translatable_enabled": True,
    "view_counts_everywhere_api_enabled": True,
    "longform_notetweets_consumption_enabled": True,
    "responsive_web_twitter_article_tweet_consumption_enabled": True,
    "tweet_awards_web_tipping_enabled": False,
    "responsive_web_grok_show_grok_translated_post": False,
    "responsive_web_grok_analysis_button_from_backend": True,
    "creator_subscriptions_quote_tweet_preview_enabled": False,
    "freedom_of_speech_not_reach_fetch_enabled": True,
    "standardized_nudges_misinfo": True,
    "tweet_with_visibility_results_prefer_gql_limited_actions_policy_enabled": True,
    "longform_notetweets_rich_text_read_enabled": True,
    "longform_notetweets_inline_media_enabled": True,
    "responsive_web_grok_image_annotation_enabled": True,
    "responsive_web_grok_imagine_annotation_enabled": True,
    "responsive_web_grok_community_note_auto_translation_is_enabled": False,
    "responsive_web_enhance_cards_enabled": False,
}

Signer = Callable[[httpx.AsyncClient, str, str, dict[str, str]], Awaitable[str]]


def timeline_path(query_id: str = HOME_TIMELINE_QUERY_ID) -> str:
    return f"/i/api/graphql/{query_id}/HomeLatestTimeline"


def build_timeline_params(count: int, cursor: str | None = None) -> dict[str, str]:
    variables: dict = {
        "count": count,
        "includePromotedContent": False,
        "latestControlAvailable": True,
        "withCommunity": False,
    }
    if cursor:
        variables["cursor"] = cursor

    return {
        "variables": json.dumps(variables),
        "features": json.dumps(TIMELINE_FEATURES),
    }


def safe_body_prefix(text: str, limit: int = BODY_PREFIX_LIMIT) -> str:
    """Collapse whitespace and cut ``text`` to at most ``limit`` characters."""
    return re.sub(r"\s+", " ", text).strip()[:limit]


class TimelineClient:
    """Async client for X's internal HomeLatestTimeline GraphQL endpoint."""

    def __init__(
        self,
        credentials: Credentials,
        query_id: str | None = None,
        capture_raw: bool = False,
        signer: Signer = sign_request,
    ):
        self.credentials = credentials
        self._path = timeline_path(query_id or HOME_TIMELINE_QUERY_ID)
        self._graphql_url = f"https://x.com{self._path}"
        self._signer = signer
        self._capture_raw = capture_raw
        self.raw_responses: list[dict] = []
        self._client = httpx.AsyncClient(
            headers={
                "accept-language": "en-US,en;q=0.9",
                "cache-control": "no-cache",
                "User-Agent": USER_AGENT,
            },
            timeout=30.0,
            follow_redirects=True,
        )

    def _api_headers(self, transaction_id: str) -> dict[str, str]:
        return {
            "accept": "*/*",
            "authorization": f"Bearer {BEARER_TOKEN}",
            "cookie": self.credentials.cookie_header(),
            "referer": "https://x.com/home",
            "x-csrf-token": self.credentials.ct0,
            "x-client-transaction-id": transaction_id,
            "x-twitter-active-user": "yes",
            "x-twitter-auth-type": "OAuth2Session",
            "x-twitter-client-language": "en",
        }

    async def sign(self) -> str:
        """Derive a transaction id from a freshly fetched landing page."""
        headers = dict(self._client.headers)
        headers["cookie"] = self.credentials.cookie_header()
        return await self._signer(self._client, "GET", self._path, headers)

    async def fetch_page(
        self,
        transaction_id: str,
        count: int = DEFAULT_BATCH_SIZE,
        cursor: str | None = None,
    ) -> dict:
        """Fetch one raw timeline payload.

        Raises:
            RequestFailed: transport error or non-2xx status.
            ResponseInvalid: 2xx with a body that is not JSON.
        """
        params = build_timeline_params(count, cursor)

        try:
            response = await self._client.get(
                self._graphql_url,
                params=params,
                headers=self._api_headers(transaction_id),
            )
        except httpx.HTTPError as e:
            raise RequestFailed(f"Timeline request failed: {e}") from e

        body = response.text
        if not response.is_success:
            raise RequestFailed(
                _failure_message(response),
                status=response.status_code,
                body=safe_body_prefix(body),
            )

        try:
            data = json.loads(body)
        except ValueError as e:
            raise ResponseInvalid(
                "Timeline response was not valid JSON.",
                cause=str(e),
                body=safe_body_prefix(body),
            ) from e

        if self._capture_raw:
            self.raw_responses.append(data)
        return data

    async def fetch_timeline(
        self, count: int = DEFAULT_BATCH_SIZE, cursor: str | None = None
    ) -> TimelineBatch:
        """Sign, fetch and normalize a single page."""
        transaction_id = await self.sign()
        logger.info(
            "Fetching X following timeline (count=%d, cursor=%s)", count, bool(cursor)
        )
        data = await self.fetch_page(transaction_id, count=count, cursor=cursor)
        batch = parse_timeline(data)
        logger.info(
            "Fetched %d tweets (next cursor: %s)",
            len(batch.items),
            bool(batch.next_cursor),
        )
        return batch

    async def aclose(self) -> None:
        await self._client.aclose()

    async def __aenter__(self):
        return self

    async def __aexit__(self, *args):
        await self.aclose()


def _failure_message(response: httpx.Response) -> str:
    status = response.status_code

    if status == 429:
        reset_time = response.headers.get("x-rate-limit-reset")
        wait_msg = ""
        if reset_time and reset_time.isdigit():
            wait_seconds = int(reset_time) - int(time.time())
            if wait_seconds > 0:
                wait_msg = f" Retry in {wait_seconds}s."
        return f"Rate limited by X.{wait_msg}"

    if status == 400:
        return (
            "Bad request (400). The feature flags or query parameters "
            "may be outdated."
        )

    if status == 404:
        return (
            "GraphQL query ID is stale (404). Open x.com/home in your browser, "
            "filter DevTools Network for 'HomeLatestTimeline' and set "
            "X_HOME_TIMELINE_QUERY_ID to the ID in the request URL."
        )

    if status in (401, 403):
        return (
            f"Authentication failed ({status}). Your session may be expired. "
            "Run `readmyfeed login` again."
        )

    return f"Failed to fetch following timeline (status {status})"


async def resolve_cookie_string(
    cookie_string: str | None = None, auth_service: AuthService | None = None
) -> str:
    """Use ``cookie_string`` if given, else decode the stored session."""
    if cookie_string:
        return cookie_string
    encoded = await auth_service.load_stored_session() if auth_service else None
    if not encoded:
        raise SessionMissing("No X session found. Please connect your account again.")
    return decode_session(encoded)


async def fetch_following_timeline(
    count: int | None = None,
    cursor: str | None = None,
    cookie_string: str | None = None,
    auth_service: AuthService | None = None,
    **client_options,
) -> TimelineBatch:
    """Fetch one page of the home Following timeline."""
    cookies = parse_cookie_string(await resolve_cookie_string(cookie_string, auth_service))
    credentials = credentials_from_cookies(cookies)
    async with TimelineClient(credentials, **client_options) as client:
        return await client.fetch_timeline(count or DEFAULT_BATCH_SIZE, cursor)
