"""Normalize HomeLatestTimeline GraphQL responses into TimelineBatch objects.

The response wraps tweets in alternating instruction/entry/content layers
whose shape shifts between deployments, so nothing here follows a fixed path.
Tweets and cursors are found by scanning the whole tree for their
``__typename`` / ``cursorType`` tags:

    ... -> itemContent {__typename: "TimelineTweet"} -> tweet_results -> result
    ... -> content {cursorType: "Bottom", value: "..."}

Each result may be wrapped in a TweetWithVisibilityResults container, and a
retweet carries the original under legacy.retweeted_status_result.

Nothing in this module raises on bad input; missing pieces become defaults.
"""

import logging
import math
from collections.abc import Callable, Iterator
from datetime import datetime, timezone
from email.utils import parsedate_to_datetime

from .models import MediaItem, TimelineBatch, TimelineItem

logger = logging.getLogger(__name__)

# Twitter's date format: "Thu May 14 18:01:35 +0000 2020"
TWITTER_DATE_FORMAT = "%a %b %d %H:%M:%S %z %Y"

MEDIA_TYPES = {"photo", "video", "animated_gif"}


def parse_timeline(payload: object) -> TimelineBatch:
    """Extract unique tweets and the bottom cursor from a raw payload."""
    items: dict[str, TimelineItem] = {}

    for node in find_nodes(payload, _has_tag("__typename", "TimelineTweet")):
        item = extract_tweet(node)
        if item is None or item.id in items:
            continue
        items[item.id] = item

    next_cursor = None
    for node in find_nodes(payload, _has_tag("cursorType", "Bottom")):
        next_cursor = _as_str(node.get("value")) or None
        break

    logger.debug(
        "Normalized %d tweets (next cursor: %s)", len(items), bool(next_cursor)
    )
    return TimelineBatch(items=list(items.values()), next_cursor=next_cursor)


# ── Tree scan ────────────────────────────────────────────────────


def find_nodes(data: object, predicate: Callable[[dict], bool]) -> list[dict]:
    """Collect every dict in ``data`` matching ``predicate``, pre-order."""
    return list(_walk(data, predicate))


def _walk(data: object, predicate: Callable[[dict], bool]) -> Iterator[dict]:
    if isinstance(data, list):
        for value in data:
            yield from _walk(value, predicate)
    elif isinstance(data, dict):
        if predicate(data):
            yield data
        for value in data.values():
            yield from _walk(value, predicate)


def _has_tag(key: str, value: str) -> Callable[[dict], bool]:
    return lambda node: node.get(key) == value


# ── Coercion helpers ─────────────────────────────────────────────


def _as_dict(value: object) -> dict:
    return value if isinstance(value, dict) else {}


def _as_str(value: object) -> str:
    return value if isinstance(value, str) else ""


def _as_number(value: object) -> int | None:
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    if isinstance(value, float):
        return int(value) if math.isfinite(value) else None
    if isinstance(value, str):
        text = value.strip()
        try:
            return int(text)
        except ValueError:
            pass
        try:
            parsed = float(text)
        except ValueError:
            return None
        return int(parsed) if math.isfinite(parsed) else None
    return None


def _as_count(value: object) -> int:
    number = _as_number(value)
    return number if number is not None else 0


def to_iso_date(raw: object) -> str:
    """Convert a Twitter timestamp to ISO-8601 UTC, or "" if unparseable."""
    if not isinstance(raw, str) or not raw.strip():
        return ""
    try:
        parsed = datetime.strptime(raw.strip(), TWITTER_DATE_FORMAT)
    except ValueError:
        try:
            parsed = parsedate_to_datetime(raw)
        except (TypeError, ValueError, IndexError):
            return ""
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    try:
        utc = parsed.astimezone(timezone.utc)
    except OverflowError:
        # e.g. year 1 with a positive offset falls before datetime.min in UTC
        return ""
    return utc.isoformat(timespec="milliseconds").replace("+00:00", "Z")


# ── Tweet projection ─────────────────────────────────────────────


def _unwrap_result(result: object) -> dict:
    """Strip the TweetWithVisibilityResults container if present."""
    result = _as_dict(result)
    if result.get("__typename") == "TweetWithVisibilityResults":
        return _as_dict(result.get("tweet"))
    return result


def _resolve_author(tweet: dict) -> tuple[str, str]:
    """Return ``(name, screen_name)`` trying each known user layout."""
    user = _as_dict(_as_dict(_as_dict(tweet.get("core")).get("user_results")).get("result"))
    for source in (
        _as_dict(user.get("legacy")),
        _as_dict(user.get("core")),
        user,
    ):
        handle = _as_str(source.get("screen_name"))
        if handle:
            return _as_str(source.get("name")), handle
    return "", ""


def _resolve_text(tweet: dict) -> str:
    note = _as_dict(
        _as_dict(_as_dict(tweet.get("note_tweet")).get("note_tweet_results")).get("result")
    )
    legacy = _as_dict(tweet.get("legacy"))
    return (
        _as_str(note.get("text"))
        or _as_str(legacy.get("full_text"))
        or _as_str(legacy.get("text"))
    )


def extract_tweet(timeline_tweet: object) -> TimelineItem | None:
    """Project one TimelineTweet node; None when it carries no usable tweet."""
    result = _unwrap_result(
        _as_dict(_as_dict(timeline_tweet).get("tweet_results")).get("result")
    )
    if not result or result.get("__typename") == "TweetTombstone":
        return None

    tweet_id = _as_str(result.get("rest_id"))
    legacy = result.get("legacy")
    if not tweet_id or not isinstance(legacy, dict):
        return None

    retweeted = _unwrap_result(
        _as_dict(legacy.get("retweeted_status_result")).get("result")
    )
    is_retweet = bool(_as_str(retweeted.get("rest_id")))

    # Retweets keep the outer id; author, text and counts come from the original.
    original = retweeted if is_retweet else result
    original_legacy = _as_dict(original.get("legacy")) or legacy

    outer_name, outer_handle = _resolve_author(result)
    author_name, author_handle = _resolve_author(original)
    if not author_handle:
        author_name, author_handle = outer_name, outer_handle

    text = _resolve_text(original) or _resolve_text(result)

    quoted = _as_dict(_as_dict(result.get("quoted_status_result")).get("result"))
    is_quote = bool(legacy.get("is_quote_status") or _as_str(_unwrap_result(quoted).get("rest_id")))

    views = _as_dict(original.get("views")) or _as_dict(result.get("views"))
    link_handle = outer_handle or author_handle

    return TimelineItem(
        id=tweet_id,
        text=text,
        created_at=to_iso_date(legacy.get("created_at")),
        author_name=author_name,
        author_handle=author_handle,
        url=f"https://x.com/{link_handle}/status/{tweet_id}" if link_handle else "",
        lang=_as_str(original_legacy.get("lang")) or _as_str(legacy.get("lang")),
        reply_to=_as_str(legacy.get("in_reply_to_status_id_str")),
        quote_count=_as_count(original_legacy.get("quote_count")),
        reply_count=_as_count(original_legacy.get("reply_count")),
        retweet_count=_as_count(original_legacy.get("retweet_count")),
        like_count=_as_count(original_legacy.get("favorite_count")),
        view_count=_as_number(views.get("count")),
        is_retweet=is_retweet,
        is_quote=is_quote,
        retweeted_by=outer_handle if is_retweet else "",
        media=extract_media(legacy),
    )


# ── Media ────────────────────────────────────────────────────────


def _media_type(value: object) -> str:
    return value if isinstance(value, str) and value in MEDIA_TYPES else "unknown"


def _best_media_url(media: dict) -> tuple[str, str | None]:
    """Return ``(url, thumbnail)``; video picks the highest-bitrate mp4."""
    if _media_type(media.get("type")) == "photo":
        return _as_str(media.get("media_url_https")), None

    variants = _as_dict(media.get("video_info")).get("variants")
    best_url = ""
    best_bitrate = -1
    first_url = ""
    for variant in variants if isinstance(variants, list) else []:
        variant = _as_dict(variant)
        url = _as_str(variant.get("url"))
        if not url:
            continue
        if not first_url:
            first_url = url
        if "mp4" in _as_str(variant.get("content_type")):
            bitrate = _as_count(variant.get("bitrate"))
            if bitrate > best_bitrate:
                best_url, best_bitrate = url, bitrate

    return best_url or first_url, _as_str(media.get("media_url_https")) or None


def extract_media(legacy: dict) -> list[MediaItem]:
    """Build media entries from ``legacy.extended_entities.media``."""
    entries = _as_dict(legacy.get("extended_entities")).get("media")
    media: list[MediaItem] = []
    for entry in entries if isinstance(entries, list) else []:
        if not isinstance(entry, dict):
            continue
        url, thumbnail = _best_media_url(entry)
        expanded_url = _as_str(entry.get("expanded_url"))
        if not url and not expanded_url:
            continue
        media.append(
            MediaItem(
                type=_media_type(entry.get("type")),
                url=url,
                expanded_url=expanded_url,
                thumbnail_url=thumbnail,
            )
        )
    return media
