"""Render TimelineItems to a markdown file.

Entries keep timeline order and are separated by ---. No file header.
"""

from urllib.parse import urlparse

from .models import TimelineItem


def render_timeline(items: list[TimelineItem]) -> str:
    """Render a complete timeline.md file."""
    if not items:
        return ""

    lines: list[str] = []
    for item in items:
        lines.append(_render_single_item(item))
        lines.append("")

    return "\n".join(lines)


def _render_single_item(item: TimelineItem) -> str:
    lines: list[str] = []

    # Header with author
    lines.append(f"### @{item.author_handle or 'unknown'}")
    if item.author_name and item.author_name != item.author_handle:
        lines.append(f"*{item.author_name}*")
    if item.is_retweet and item.retweeted_by:
        lines.append(f"*Reposted by @{item.retweeted_by}*")
    lines.append("")

    # Tweet text as blockquote
    for text_line in item.text.strip().split("\n"):
        lines.append(f"> {text_line}")
    lines.append("")

    # Metadata
    if item.url:
        lines.append(f"- **Tweet:** [{shorten_url(item.url)}]({item.url})")
    if item.created_at:
        lines.append(f"- **Date:** {item.created_at}")
    lines.append(f"- **ID:** {item.id}")

    stats = (
        f"{item.reply_count} replies, {item.retweet_count} reposts, "
        f"{item.quote_count} quotes, {item.like_count} likes"
    )
    if item.view_count is not None:
        stats += f", {item.view_count} views"
    lines.append(f"- **Stats:** {stats}")

    if item.media:
        media_desc = ", ".join(
            f"[{m.type}]({m.url or m.expanded_url})" for m in item.media
        )
        lines.append(f"- **Media:** {media_desc}")

    if item.reply_to:
        lines.append(f"- **Reply to:** {item.reply_to}")

    if item.is_quote:
        lines.append("- **Quote tweet**")

    lines.append("")
    lines.append("---")

    return "\n".join(lines)


def shorten_url(url: str) -> str:
    """Shorten a URL for display (domain + truncated path)."""
    parsed = urlparse(url)
    display = parsed.netloc + parsed.path
    if len(display) > 60:
        display = display[:57] + "..."
    return display
