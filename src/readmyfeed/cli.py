"""CLI interface for readmyfeed.

Commands:
    login   - Capture X session cookies and store them
    logout  - Forget the stored session
    fetch   - Fetch the Following timeline and print a preview
    read    - Fetch the Following timeline and read it aloud
    status  - Show current configuration status
"""

import asyncio
import json
import sys
from pathlib import Path

import click

from .config import (
    CONFIG_FILE,
    AppConfig,
    ConfigSessionStore,
    config_exists,
    load_config,
)
from .errors import CookieMissingRequired, TimelineError, describe_error
from .logging_config import setup_logging

PREVIEW_LENGTH = 160


@click.group()
@click.option("--verbose", "-v", is_flag=True, help="Enable debug logging")
@click.option("--config", type=click.Path(), default=None, help="Config file path")
@click.pass_context
def main(ctx, verbose, config):
    """ReadMyFeed - Fetch your X Following timeline and read it aloud."""
    setup_logging(debug=verbose)
    ctx.ensure_object(dict)
    ctx.obj["config_path"] = Path(config) if config else CONFIG_FILE


def _load_or_default(config_path: Path) -> AppConfig:
    return load_config(config_path) if config_exists(config_path) else AppConfig()


@main.command()
@click.option(
    "--browser",
    type=click.Choice(["chrome", "firefox", "safari"]),
    default=None,
    help="Read cookies from a local browser profile",
)
@click.option(
    "--cookie-file",
    type=click.Path(exists=True),
    default=None,
    help="JSON cookie jar exported from a browser or WebView",
)
@click.pass_context
def login(ctx, browser, cookie_file):
    """Capture X session cookies and store the encoded session."""
    from .session import (
        AuthService,
        BrowserCookieStore,
        MappingCookieStore,
        capture_with_retry,
    )

    config_path = ctx.obj["config_path"]
    fallback = BrowserCookieStore(browser) if browser else None

    if cookie_file:
        jar = json.loads(Path(cookie_file).read_text(encoding="utf-8"))
        cookie_store = MappingCookieStore(jar)
    elif fallback is not None:
        cookie_store, fallback = fallback, None
    else:
        click.echo("ReadMyFeed - Login")
        click.echo("=" * 40)
        click.echo()
        click.echo("You need your X session cookies.")
        click.echo("To get them:")
        click.echo("  1. Open x.com in your browser and log in")
        click.echo("  2. Open DevTools (F12) -> Application -> Cookies -> https://x.com")
        click.echo("  3. Copy the values of 'auth_token' and 'ct0' (and 'kdt', 'twid' if present)")
        click.echo()
        jar = {
            "auth_token": click.prompt("auth_token", hide_input=True),
            "ct0": click.prompt("ct0", hide_input=True),
            "kdt": click.prompt("kdt (optional)", default="", show_default=False),
            "twid": click.prompt("twid (optional)", default="", show_default=False),
        }
        cookie_store = MappingCookieStore(jar)

    auth = AuthService(ConfigSessionStore(config_path), cookie_store, fallback)
    try:
        asyncio.run(capture_with_retry(auth.capture_and_store_session))
    except CookieMissingRequired as e:
        click.echo(
            f"Error: missing required cookies: {', '.join(e.missing_required)}",
            err=True,
        )
        sys.exit(1)
    except TimelineError as e:
        click.echo(f"Error: {describe_error(e)}", err=True)
        sys.exit(1)

    click.echo(f"\nSession saved to {config_path}")
    click.echo("Run 'readmyfeed fetch' to load your timeline.")


@main.command()
@click.pass_context
def logout(ctx):
    """Forget the stored X session."""
    config_path = ctx.obj["config_path"]
    asyncio.run(ConfigSessionStore(config_path).clear())
    click.echo("Session cleared.")


async def _collect_timeline(
    config_path: Path,
    config: AppConfig,
    api_key: str | None,
    count: int,
    max_pages: int,
    delay: float,
    capture_raw: bool = False,
):
    """Resolve credentials and page through the timeline."""
    from .client import TimelineClient
    from .paginator import FeedPaginator
    from .session import AuthService, resolve_credentials

    source = api_key
    if not source:
        source = await AuthService(ConfigSessionStore(config_path)).load_stored_session()
    credentials = resolve_credentials(source)

    async with TimelineClient(
        credentials, query_id=config.query_id, capture_raw=capture_raw
    ) as client:
        paginator = FeedPaginator(
            lambda cursor: client.fetch_timeline(count, cursor),
            max_pages=max_pages,
        )
        page = await paginator.load_all(delay=delay)
        return page, client.raw_responses


@main.command()
@click.option("--api-key", envvar="API_KEY", default=None, help="Encoded session to use instead of the stored login")
@click.option("-n", "--count", type=int, default=None, help="Tweets to request per page")
@click.option("--max-pages", type=int, default=None, help="Maximum pages to fetch")
@click.option("--delay", type=float, default=None, help="Delay in seconds between API requests")
@click.option("-o", "--output", type=click.Path(), default=None, help="Write the timeline as markdown")
@click.option(
    "--dump-raw",
    type=click.Path(),
    default=None,
    help="Save raw API JSON responses to file for debugging",
)
@click.pass_context
def fetch(ctx, api_key, count, max_pages, delay, output, dump_raw):
    """Fetch the Following timeline and print a preview."""
    from .models import PaginationStatus

    config_path = ctx.obj["config_path"]
    config = _load_or_default(config_path)

    count = count if count is not None else config.fetch_count
    max_pages = max_pages if max_pages is not None else config.max_pages
    effective_delay = delay if delay is not None else config.fetch_delay
    if count <= 0 or max_pages <= 0:
        click.echo("Error: --count and --max-pages must be positive.", err=True)
        sys.exit(1)

    try:
        page, raw_responses = asyncio.run(
            _collect_timeline(
                config_path,
                config,
                api_key,
                count,
                max_pages,
                effective_delay,
                capture_raw=bool(dump_raw),
            )
        )
    except TimelineError as e:
        click.echo(f"Fetch failed: {describe_error(e)}", err=True)
        sys.exit(1)

    if dump_raw:
        dump_path = Path(dump_raw)
        dump_path.write_text(
            json.dumps(raw_responses, indent=2, ensure_ascii=False),
            encoding="utf-8",
        )
        click.echo(f"Raw API responses saved to {dump_path}")

    click.echo(f"Fetched pages={page.pages} tweets={len(page.items)}")
    if page.status is PaginationStatus.STALLED:
        click.echo("Warning: X repeated a cursor; stopped paginating.", err=True)

    for index, item in enumerate(page.items, start=1):
        click.echo(f"{index}. @{item.author_handle or 'unknown'} - {item.id}")
        click.echo(" ".join(item.text.split())[:PREVIEW_LENGTH])
        click.echo()

    if output:
        from .markdown import render_timeline

        output_path = Path(output)
        output_path.write_text(render_timeline(page.items), encoding="utf-8")
        click.echo(f"Wrote {len(page.items)} tweets to {output_path}")


@main.command()
@click.option("--api-key", envvar="API_KEY", default=None, help="Encoded session to use instead of the stored login")
@click.option("-n", "--count", type=int, default=None, help="Tweets to read")
@click.pass_context
def read(ctx, api_key, count):
    """Fetch the Following timeline and read it aloud."""
    from .speech import Pyttsx3SpeechEngine, SpeechQueueController

    config_path = ctx.obj["config_path"]
    config = _load_or_default(config_path)
    count = count if count is not None else config.fetch_count

    try:
        page, _ = asyncio.run(
            _collect_timeline(config_path, config, api_key, count, 1, 0)
        )
    except TimelineError as e:
        click.echo(f"Fetch failed: {describe_error(e)}", err=True)
        sys.exit(1)

    if not page.items:
        click.echo("Nothing to read.")
        return

    try:
        engine = Pyttsx3SpeechEngine(rate=config.speech_rate)
    except (ImportError, OSError, RuntimeError) as e:
        click.echo(f"Error: no text-to-speech engine available ({e}).", err=True)
        sys.exit(1)

    errors: list[Exception] = []
    controller = SpeechQueueController(
        engine,
        on_index_change=lambda i, item: click.echo(
            f"[{i + 1}/{len(page.items)}] @{item.author_handle or 'unknown'}"
        ),
        on_error=errors.append,
    )
    controller.play(page.items)

    if errors:
        click.echo(f"Speech failed: {errors[0]}", err=True)
        sys.exit(1)


@main.command()
@click.pass_context
def status(ctx):
    """Show current configuration status."""
    config_path = ctx.obj["config_path"]
    has_config = config_exists(config_path)

    click.echo("ReadMyFeed - Status")
    click.echo("=" * 40)
    click.echo(f"Config: {'Found' if has_config else 'Not configured'} ({config_path})")

    if not has_config:
        click.echo("\nRun 'readmyfeed login' to get started.")
        return

    config = load_config(config_path)
    click.echo(f"Session: {'Stored' if config.session else 'Not logged in'}")
    click.echo(f"Tweets per page: {config.fetch_count}")
    click.echo(f"Max pages: {config.max_pages}")
