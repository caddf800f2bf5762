"""Tests for the GraphQL response normalizer."""

import json

from readmyfeed.parser import extract_media, find_nodes, parse_timeline, to_iso_date


def _timeline_tweet(result: dict) -> dict:
    return {"__typename": "TimelineTweet", "tweet_results": {"result": result}}


class TestParseTimeline:
    def test_parses_unique_items_in_scan_order(self, timeline_response):
        batch = parse_timeline(timeline_response)
        assert [item.id for item in batch.items] == ["111", "222", "444", "555"]

    def test_first_occurrence_wins_on_duplicate_ids(self, timeline_response):
        batch = parse_timeline(timeline_response)
        item = batch.items[0]
        assert item.text == "hello from x https://t.co/img111"

    def test_extracts_bottom_cursor(self, timeline_response):
        batch = parse_timeline(timeline_response)
        assert batch.next_cursor == "cursor-bottom-xyz"

    def test_parses_basic_tweet(self, timeline_response):
        item = parse_timeline(timeline_response).items[0]
        assert item.author_handle == "alice"
        assert item.author_name == "Alice"
        assert item.url == "https://x.com/alice/status/111"
        assert item.created_at == "2025-02-20T12:34:56.000Z"
        assert item.lang == "en"
        assert (item.quote_count, item.reply_count) == (1, 2)
        assert (item.retweet_count, item.like_count) == (3, 4)
        assert item.view_count == 99
        assert item.is_retweet is False
        assert item.is_quote is False

    def test_parses_photo_media(self, timeline_response):
        item = parse_timeline(timeline_response).items[0]
        assert len(item.media) == 1
        assert item.media[0].type == "photo"
        assert item.media[0].url == "https://pbs.twimg.com/media/alice1.jpg"
        assert item.media[0].thumbnail_url is None

    def test_retweet_keeps_outer_id_and_original_author(self, timeline_response):
        item = parse_timeline(timeline_response).items[1]
        assert item.id == "222"
        assert item.is_retweet is True
        assert item.author_handle == "carol"
        assert item.author_name == "Carol"
        assert item.text == "Retweeted message"
        assert item.retweeted_by == "bob"
        assert item.url == "https://x.com/bob/status/222"

    def test_retweet_counts_come_from_original(self, timeline_response):
        item = parse_timeline(timeline_response).items[1]
        assert item.retweet_count == 12
        assert item.like_count == 40
        assert item.view_count == 5000
        # created_at reflects when the repost landed in the timeline
        assert item.created_at == "2025-02-20T11:00:00.000Z"

    def test_quote_tweet_with_video(self, timeline_response):
        item = parse_timeline(timeline_response).items[2]
        assert item.is_quote is True
        assert item.view_count is None
        video = item.media[0]
        assert video.type == "video"
        assert video.url == "https://video.twimg.com/444/high.mp4"
        assert video.thumbnail_url == "https://pbs.twimg.com/ext_tw_video_thumb/444/thumb.jpg"

    def test_note_text_and_string_counters(self, timeline_response):
        item = parse_timeline(timeline_response).items[3]
        assert item.text == "This is the full long-form note text."
        assert item.created_at == ""
        assert item.reply_to == "111"
        assert item.quote_count == 7
        assert item.reply_count == 0
        assert item.retweet_count == 0
        assert item.like_count == 15

    def test_normalization_is_idempotent(self, timeline_response):
        first = json.dumps(parse_timeline(timeline_response).to_dict())
        second = json.dumps(parse_timeline(timeline_response).to_dict())
        assert first == second

    def test_no_duplicate_ids(self, timeline_response):
        ids = [item.id for item in parse_timeline(timeline_response).items]
        assert len(ids) == len(set(ids))


class TestScenarios:
    def test_single_tweet_with_cursor(self):
        payload = {
            "data": {
                "home": {
                    "home_timeline_urt": {
                        "instructions": [
                            {
                                "entries": [
                                    {
                                        "content": {
                                            "__typename": "TimelineTimelineItem",
                                            "itemContent": _timeline_tweet(
                                                {
                                                    "__typename": "Tweet",
                                                    "rest_id": "111",
                                                    "legacy": {
                                                        "full_text": "hello from x",
                                                        "created_at": "Thu Feb 20 12:34:56 +0000 2025",
                                                    },
                                                    "core": {
                                                        "user_results": {
                                                            "result": {
                                                                "legacy": {
                                                                    "name": "Alice",
                                                                    "screen_name": "alice",
                                                                }
                                                            }
                                                        }
                                                    },
                                                    "views": {"count": "99"},
                                                }
                                            ),
                                        }
                                    },
                                    {
                                        "content": {
                                            "__typename": "TimelineTimelineCursor",
                                            "cursorType": "Bottom",
                                            "value": "cursor-abc",
                                        }
                                    },
                                ]
                            }
                        ]
                    }
                }
            }
        }
        batch = parse_timeline(payload)
        assert len(batch.items) == 1
        assert batch.items[0].id == "111"
        assert batch.items[0].author_handle == "alice"
        assert batch.items[0].view_count == 99
        assert batch.next_cursor == "cursor-abc"

    def test_retweet_inside_visibility_wrapper(self):
        node = _timeline_tweet(
            {
                "__typename": "TweetWithVisibilityResults",
                "tweet": {
                    "rest_id": "222",
                    "core": {"user_results": {"result": {"core": {"screen_name": "bob"}}}},
                    "legacy": {
                        "retweeted_status_result": {
                            "result": {
                                "rest_id": "333",
                                "core": {
                                    "user_results": {
                                        "result": {"core": {"screen_name": "carol"}}
                                    }
                                },
                                "legacy": {"full_text": "Retweeted message"},
                            }
                        }
                    },
                },
            }
        )
        batch = parse_timeline({"entries": [node]})
        item = batch.items[0]
        assert item.id == "222"
        assert item.author_handle == "carol"
        assert item.retweeted_by == "bob"
        assert item.text == "Retweeted message"

    def test_missing_instructions(self):
        batch = parse_timeline({"data": {"home": {}}})
        assert batch.items == []
        assert batch.next_cursor is None

    def test_non_object_payloads(self):
        for payload in (None, "oops", 42, [], [1, "two", None]):
            batch = parse_timeline(payload)
            assert batch.items == []
            assert batch.next_cursor is None

    def test_skips_tombstones_and_incomplete_results(self):
        payload = [
            _timeline_tweet({"__typename": "TweetTombstone"}),
            _timeline_tweet({"rest_id": "1"}),  # no legacy
            _timeline_tweet({"legacy": {"full_text": "no id"}}),
            _timeline_tweet("not a dict"),
            {"__typename": "TimelineTweet"},
        ]
        assert parse_timeline(payload).items == []

    def test_malformed_fields_degrade_to_defaults(self):
        node = _timeline_tweet(
            {
                "rest_id": "9",
                "core": ["unexpected"],
                "views": {"count": "lots"},
                "legacy": {
                    "full_text": 123,
                    "created_at": 5,
                    "favorite_count": {"nested": True},
                    "extended_entities": {"media": "nope"},
                },
            }
        )
        item = parse_timeline([node]).items[0]
        assert item.text == ""
        assert item.created_at == ""
        assert item.author_handle == ""
        assert item.url == ""
        assert item.like_count == 0
        assert item.view_count is None
        assert item.media == []

    def test_first_bottom_cursor_is_used(self):
        payload = [
            {"cursorType": "Top", "value": "top"},
            {"cursorType": "Bottom", "value": "first"},
            {"cursorType": "Bottom", "value": "second"},
        ]
        assert parse_timeline(payload).next_cursor == "first"


class TestExtractMedia:
    def test_mp4_tie_keeps_first_seen(self):
        legacy = {
            "extended_entities": {
                "media": [
                    {
                        "type": "video",
                        "video_info": {
                            "variants": [
                                {"content_type": "video/mp4", "bitrate": 800, "url": "https://v/a.mp4"},
                                {"content_type": "video/mp4", "bitrate": 800, "url": "https://v/b.mp4"},
                            ]
                        },
                    }
                ]
            }
        }
        assert extract_media(legacy)[0].url == "https://v/a.mp4"

    def test_falls_back_to_first_variant_without_mp4(self):
        legacy = {
            "extended_entities": {
                "media": [
                    {
                        "type": "animated_gif",
                        "video_info": {
                            "variants": [
                                {"content_type": "application/x-mpegURL", "url": ""},
                                {"content_type": "application/x-mpegURL", "url": "https://v/pl.m3u8"},
                            ]
                        },
                    }
                ]
            }
        }
        media = extract_media(legacy)[0]
        assert media.type == "animated_gif"
        assert media.url == "https://v/pl.m3u8"

    def test_unknown_type_and_empty_entries(self):
        legacy = {
            "extended_entities": {
                "media": [
                    {"type": "hologram", "expanded_url": "https://x.com/a/status/1/holo/1"},
                    {"type": "photo"},
                    "junk",
                ]
            }
        }
        media = extract_media(legacy)
        assert len(media) == 1
        assert media[0].type == "unknown"
        assert media[0].url == ""
        assert media[0].expanded_url == "https://x.com/a/status/1/holo/1"


class TestHelpers:
    def test_find_nodes_matches_at_any_depth(self):
        data = {"a": [{"b": {"kind": "x", "n": 1}}, {"kind": "x", "n": 2}], "kind": "y"}
        found = find_nodes(data, lambda node: node.get("kind") == "x")
        assert [node["n"] for node in found] == [1, 2]

    def test_to_iso_date(self):
        assert to_iso_date("Thu Feb 20 12:34:56 +0000 2025") == "2025-02-20T12:34:56.000Z"
        assert to_iso_date("Thu, 20 Feb 2025 14:34:56 +0200") == "2025-02-20T12:34:56.000Z"
        assert to_iso_date("garbage") == ""
        assert to_iso_date(None) == ""

    def test_to_iso_date_out_of_range_after_utc_shift(self):
        assert to_iso_date("Mon Jan 01 00:00:00 +0100 0001") == ""
        assert to_iso_date("Fri Dec 31 23:59:59 -0100 9999") == ""

    def test_out_of_range_date_does_not_break_batch(self):
        node = _timeline_tweet(
            {
                "rest_id": "1",
                "legacy": {"full_text": "hi", "created_at": "Mon Jan 01 00:00:00 +0100 0001"},
            }
        )
        batch = parse_timeline({"x": node})
        assert [item.id for item in batch.items] == ["1"]
        assert batch.items[0].created_at == ""
