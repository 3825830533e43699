"""Tests for the extraction strategies and the merge chain."""

from __future__ import annotations

import json

import pytest

from note_parser.config import ParserConfig
from note_parser.content import extract_note, merge_partials, run_strategies
from note_parser.models import MediaRef, PartialRecord

NOTE_URL = "https://www.xiaohongshu.com/explore/64f0c0ffee"


def _page(head: str = "", body: str = "") -> str:
    return f"<html><head>{head}</head><body>{body}</body></html>"


def _json_ld(payload) -> str:
    return f'<script type="application/ld+json">{json.dumps(payload)}</script>'


def _state(payload) -> str:
    return f"<script>window.__INITIAL_STATE__ = {json.dumps(payload)};</script>"


STATE = {
    "note": {
        "noteDetailMap": {
            "other01": {"note": {"noteId": "other01", "title": "Wrong note", "desc": "no"}},
            "64f0c0ffee": {
                "note": {
                    "noteId": "64f0c0ffee",
                    "title": "Latte art weekend",
                    "desc": "Tried three cafes downtown.",
                    "user": {"nickname": "beanlover"},
                    "imageList": [
                        {
                            "fileId": "img1",
                            "infoList": [
                                {"imageScene": "WB_PRV", "url": "https://sns-img.xhscdn.com/1-prv"},
                                {"imageScene": "WB_DFT", "url": "https://sns-img.xhscdn.com/1-dft"},
                            ],
                            "width": 1080,
                            "height": 1440,
                        },
                        {"fileId": "img1", "urlDefault": "https://sns-img.xhscdn.com/1-copy"},
                        {"fileId": "img2", "urlDefault": "https://sns-img.xhscdn.com/2"},
                    ],
                    "tagList": [{"name": "coffee"}, {"name": "weekend"}],
                    "interactInfo": {
                        "likedCount": "1.2万",
                        "collectedCount": "350",
                        "commentCount": "10+",
                        "shareCount": 4,
                    },
                    "time": 1700000000000,
                }
            },
        }
    }
}


# ── JSON-LD layer ───────────────────────────────────────────────────────

class TestJsonLdLayer:
    def test_example_record(self):
        html = _page(
            _json_ld(
                {
                    "@type": "Article",
                    "headline": "Coffee shop review",
                    "image": ["https://x.com/a.jpg", "https://x.com/a.jpg"],
                }
            )
        )
        record = extract_note(html, NOTE_URL)
        assert record.title == "Coffee shop review"
        assert record.image_urls == ["https://x.com/a.jpg"]
        assert record.cover_image == "https://x.com/a.jpg"

    @pytest.mark.parametrize("article_type", ["Article", "NewsArticle", "BlogPosting", "SocialMediaPosting", "CreativeWork"])
    def test_title_and_body_match_json_ld(self, article_type):
        html = _page(
            _json_ld(
                {
                    "@type": article_type,
                    "headline": "  Spaced   headline ",
                    "articleBody": "\nBody text\n",
                }
            )
        )
        record = extract_note(html, NOTE_URL)
        assert record.title == "Spaced   headline"
        assert record.body == "Body text"

    def test_author_stats_and_keywords(self):
        html = _page(
            _json_ld(
                {
                    "@type": "SocialMediaPosting",
                    "headline": "h",
                    "author": {"@type": "Person", "name": "Jo"},
                    "keywords": "coffee, latte",
                    "datePublished": "2024-05-01T10:00:00Z",
                    "interactionStatistic": [
                        {"interactionType": "https://schema.org/LikeAction", "userInteractionCount": 12},
                        {"interactionType": {"@type": "CommentAction"}, "userInteractionCount": "3"},
                        {"interactionType": "SaveAction", "userInteractionCount": 5},
                    ],
                    "video": {"@type": "VideoObject", "contentUrl": "https://v.com/a.mp4", "duration": "PT15S"},
                }
            )
        )
        record = extract_note(html, NOTE_URL)
        assert record.author == "Jo"
        assert record.tags == ("coffee", "latte")
        assert (record.stats.likes, record.stats.comments, record.stats.collects) == (12, 3, 5)
        assert record.published_at.year == 2024
        assert record.video_urls == ["https://v.com/a.mp4"]
        assert record.videos[0].duration_seconds == 15.0


# ── Inline-state layer ──────────────────────────────────────────────────

class TestInlineStateLayer:
    def test_reads_target_note(self):
        record = extract_note(_page(body=_state(STATE)), NOTE_URL)
        assert record.title == "Latte art weekend"
        assert record.body == "Tried three cafes downtown."
        assert record.author == "beanlover"
        assert record.image_urls == [
            "https://sns-img.xhscdn.com/1-dft",
            "https://sns-img.xhscdn.com/2",
        ]
        assert record.images[0].width == 1080
        assert record.tags == ("coffee", "weekend")
        assert record.stats.likes == 12_000
        assert record.stats.collects == 350
        assert record.stats.comments == 10
        assert record.stats.shares == 4
        assert record.published_at is not None

    def test_video_note(self):
        state = {
            "note": {
                "noteId": "64f0c0ffee",
                "title": "clip",
                "video": {
                    "media": {
                        "stream": {
                            "h264": [{"masterUrl": "http://sns-video-bd.xhscdn.com/stream/110/abc.mp4?sign=1"}]
                        }
                    }
                },
            }
        }
        record = extract_note(_page(body=_state(state)), NOTE_URL)
        assert record.video_urls == ["https://sns-video-bd.xhscdn.com/stream/110/abc.mp4?sign=1"]

    def test_json_ld_takes_precedence_but_state_fills_gaps(self):
        html = _page(_json_ld({"@type": "Article", "headline": "From JSON-LD"}), _state(STATE))
        record = extract_note(html, NOTE_URL)
        assert record.title == "From JSON-LD"
        assert record.body == "Tried three cafes downtown."
        assert record.author == "beanlover"


# ── Meta layer and degraded records ─────────────────────────────────────

class TestMetaLayer:
    def test_meta_only_page(self):
        head = (
            '<meta property="og:title" content="Meta title - 小红书">'
            '<meta name="description" content="Meta description">'
            '<meta property="og:image" content="https://img.com/cover.jpg">'
            '<meta property="og:xhs:note_like" content="7">'
            '<meta property="og:xhs:note_author" content="metauser">'
            '<meta name="keywords" content="a,b">'
        )
        record = extract_note(_page(head), NOTE_URL)
        assert record.title == "Meta title"
        assert record.body == "Meta description"
        assert record.cover_image == "https://img.com/cover.jpg"
        assert record.image_urls == ["https://img.com/cover.jpg"]
        assert record.stats.likes == 7
        assert record.author == "metauser"
        assert record.tags == ("a", "b")

    def test_title_tag_fallback(self):
        record = extract_note(_page("<title>Plain title</title>"), NOTE_URL)
        assert record.title == "Plain title"

    def test_meta_cover_used_when_no_images_elsewhere(self):
        html = _page(
            '<meta property="og:image" content="https://img.com/cover.jpg">',
            _state({"note": {"noteId": "64f0c0ffee", "desc": "text only"}}),
        )
        record = extract_note(html, NOTE_URL)
        assert record.body == "text only"
        assert record.cover_image == "https://img.com/cover.jpg"

    def test_empty_document_gives_fallback_literals(self):
        record = extract_note("", NOTE_URL)
        assert record.title == "untitled"
        assert record.author == "unknown"
        assert record.body == ""
        assert record.images == ()
        assert record.videos == ()
        assert record.stats.likes == 0
        assert record.source_url == NOTE_URL

    def test_garbage_scripts_do_not_raise(self):
        html = _page(
            '<script type="application/ld+json">{{{{</script>',
            "<script>window.__INITIAL_STATE__ = {\"a\": [1, 2</script><title>T</title>",
        )
        record = extract_note(html, NOTE_URL)
        assert record.title in ("T", "untitled")


# ── Merge helpers ───────────────────────────────────────────────────────

class TestMergePartials:
    def test_first_non_empty_wins(self):
        first = PartialRecord(title="A", body="  ")
        second = PartialRecord(title="B", body="body", likes=3)
        merged = merge_partials([first, None, second])
        assert merged.title == "A"
        assert merged.body == "body"
        assert merged.likes == 3

    def test_lists_fill_only_when_empty(self):
        image_a = MediaRef(kind="image", url="https://a.com/1")
        image_b = MediaRef(kind="image", url="https://b.com/1")
        merged = merge_partials([PartialRecord(images=[image_a]), PartialRecord(images=[image_b])])
        assert merged.images == [image_a]

    def test_zero_counter_is_kept(self):
        merged = merge_partials([PartialRecord(likes=0), PartialRecord(likes=9)])
        assert merged.likes == 0


class TestRunStrategies:
    def test_failing_strategy_is_skipped(self):
        def broken(doc):
            raise KeyError("boom")

        def working(doc):
            return PartialRecord(title="ok")

        record = extract_note("<html></html>", NOTE_URL, ParserConfig(), strategies=[broken, working])
        assert record.title == "ok"

    def test_none_results_are_dropped(self):
        from bs4 import BeautifulSoup

        from note_parser.content import NoteDocument

        doc = NoteDocument(html="", url=NOTE_URL, soup=BeautifulSoup("", "html.parser"), note_id=None)
        assert run_strategies(doc, [lambda d: None]) == []
