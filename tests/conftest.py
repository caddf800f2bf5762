"""Shared test fixtures."""

import json
import logging
from pathlib import Path

import pytest

from readmyfeed.models import Credentials, MediaItem, TimelineItem

FIXTURES_DIR = Path(__file__).parent / "fixtures"


@pytest.fixture(autouse=True)
def reset_app_logger():
    """Drop handlers bound to a previous CliRunner's stderr."""
    yield
    logging.getLogger("readmyfeed").handlers.clear()


@pytest.fixture
def timeline_response() -> dict:
    """Load the sample HomeLatestTimeline GraphQL response."""
    with open(FIXTURES_DIR / "home_timeline_response.json", encoding="utf-8") as f:
        return json.load(f)


@pytest.fixture
def credentials() -> Credentials:
    return Credentials(auth_token="fake_auth", ct0="fake_ct0", twid="u%3D42")


@pytest.fixture
def sample_items() -> list[TimelineItem]:
    """A list of sample TimelineItem objects for testing."""
    return [
        TimelineItem(
            id="1234567890",
            text="This is a test tweet with a link https://example.com/article",
            created_at="2025-02-10T18:30:00.000Z",
            author_name="Test User",
            author_handle="testuser",
            url="https://x.com/testuser/status/1234567890",
            like_count=10,
            view_count=250,
        ),
        TimelineItem(
            id="9876543210",
            text="Check out this image",
            created_at="2025-02-09T12:00:00.000Z",
            author_name="Photo User",
            author_handle="photouser",
            url="https://x.com/photouser/status/9876543210",
            media=[
                MediaItem(
                    type="photo",
                    url="https://pbs.twimg.com/media/test123.jpg",
                    expanded_url="https://x.com/photouser/status/9876543210/photo/1",
                )
            ],
        ),
        TimelineItem(
            id="5555555555",
            text="Original words",
            created_at="",
            author_name="The Author",
            author_handle="author",
            url="https://x.com/reposter/status/5555555555",
            is_retweet=True,
            retweeted_by="reposter",
        ),
    ]
