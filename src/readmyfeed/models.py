"""Data models for credentials and normalized timeline data."""

from dataclasses import dataclass, field
from enum import Enum

REQUIRED_COOKIES = ("auth_token", "ct0")
OPTIONAL_COOKIES = ("kdt", "twid")
COOKIE_ORDER = ("auth_token", "ct0", "kdt", "twid")


@dataclass(frozen=True)
class Credentials:
    auth_token: str
    ct0: str  # CSRF token, mirrored into the x-csrf-token header
    kdt: str | None = None
    twid: str | None = None

    def cookie_header(self) -> str:
        """Serialize as ``name=value; name=value;`` in canonical order."""
        parts = []
        for name in COOKIE_ORDER:
            value = getattr(self, name)
            if value:
                parts.append(f"{name}={value}")
        return "; ".join(parts) + ";"


@dataclass
class MediaItem:
    type: str  # "photo", "video", "animated_gif", "unknown"
    url: str  # playable URL (best mp4 variant for video)
    expanded_url: str
    thumbnail_url: str | None = None

    def to_dict(self) -> dict:
        data = {
            "type": self.type,
            "url": self.url,
            "expandedUrl": self.expanded_url,
        }
        if self.thumbnail_url:
            data["thumbnailUrl"] = self.thumbnail_url
        return data


@dataclass
class TimelineItem:
    id: str
    text: str
    created_at: str  # ISO-8601, "" when the source date is unparseable
    author_name: str
    author_handle: str
    url: str
    lang: str = ""
    reply_to: str = ""
    quote_count: int = 0
    reply_count: int = 0
    retweet_count: int = 0
    like_count: int = 0
    view_count: int | None = None
    is_retweet: bool = False
    is_quote: bool = False
    retweeted_by: str = ""
    media: list[MediaItem] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "text": self.text,
            "createdAt": self.created_at,
            "authorName": self.author_name,
            "authorHandle": self.author_handle,
            "lang": self.lang,
            "replyTo": self.reply_to,
            "quoteCount": self.quote_count,
            "replyCount": self.reply_count,
            "retweetCount": self.retweet_count,
            "likeCount": self.like_count,
            "viewCount": self.view_count,
            "isRetweet": self.is_retweet,
            "isQuote": self.is_quote,
            "retweetedBy": self.retweeted_by,
            "url": self.url,
            "media": [m.to_dict() for m in self.media],
        }


@dataclass
class TimelineBatch:
    """One fetched page: unique items plus the cursor for the next page."""

    items: list[TimelineItem] = field(default_factory=list)
    next_cursor: str | None = None

    def to_dict(self) -> dict:
        return {
            "items": [item.to_dict() for item in self.items],
            "nextCursor": self.next_cursor,
        }


class PaginationStatus(str, Enum):
    EMPTY = "empty"
    FETCHING = "fetching"
    HAS_MORE = "has_more"
    EXHAUSTED = "exhausted"
    STALLED = "stalled"
    MAX_PAGES_REACHED = "max_pages_reached"


@dataclass
class FeedPage:
    """Accumulated paginator state handed back to callers."""

    items: list[TimelineItem]
    cursor: str | None
    status: PaginationStatus
    pages: int = 0
