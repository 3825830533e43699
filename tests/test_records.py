"""Tests for note-id extraction and the note-record resolver."""

from __future__ import annotations

from bs4 import BeautifulSoup

from note_parser.records import (
    find_note_record,
    note_id_from_document,
    note_id_from_url,
    resolve_note_id,
)


class TestNoteIdFromUrl:
    def test_explore_path(self):
        assert note_id_from_url("https://www.xiaohongshu.com/explore/64a1b2c3d4") == "64a1b2c3d4"

    def test_discovery_item_path(self):
        url = "https://www.xiaohongshu.com/discovery/item/abc123def?source=web"
        assert note_id_from_url(url) == "abc123def"

    def test_post_path(self):
        assert note_id_from_url("https://example.com/post/9f8e7d6c") == "9f8e7d6c"

    def test_query_parameter(self):
        assert note_id_from_url("https://example.com/share?noteId=66ffaa11") == "66ffaa11"

    def test_no_id(self):
        assert note_id_from_url("https://www.xiaohongshu.com/user/profile/abc") is None

    def test_garbage(self):
        assert note_id_from_url("") is None


class TestNoteIdFromDocument:
    def test_meta_tag(self):
        soup = BeautifulSoup('<meta name="note-id" content="deadbeef01">', "html.parser")
        assert note_id_from_document(soup) == "deadbeef01"

    def test_data_attribute(self):
        soup = BeautifulSoup('<div data-note-id="cafe1234"></div>', "html.parser")
        assert note_id_from_document(soup) == "cafe1234"

    def test_url_takes_precedence(self):
        soup = BeautifulSoup('<div data-note-id="cafe1234"></div>', "html.parser")
        assert resolve_note_id("https://x.com/explore/abcd1234", soup) == "abcd1234"

    def test_document_fallback(self):
        soup = BeautifulSoup('<div data-note-id="cafe1234"></div>', "html.parser")
        assert resolve_note_id("https://xhslink.com/AbC", soup) == "cafe1234"


class TestFindNoteRecord:
    def test_matches_identifier(self):
        target = {"noteId": "n2", "title": "second"}
        graph = {
            "feed": [{"noteId": "n1", "desc": "first"}],
            "detail": {"map": {"n2": target}},
        }
        assert find_note_record(graph, "n2") is target

    def test_matches_nested_note_field(self):
        graph = {"noteDetailMap": {"n9": {"note": {"noteId": "n9", "title": "T"}}}}
        assert find_note_record(graph, "n9") == {"noteId": "n9", "title": "T"}

    def test_falls_back_to_shape_when_id_missing(self):
        graph = {"user": {"name": "x"}, "data": {"imageList": [], "title": "shape"}}
        assert find_note_record(graph, "unknown")["title"] == "shape"

    def test_shape_without_identifier(self):
        graph = {"a": {"b": {"desc": "hello"}}}
        assert find_note_record(graph)["desc"] == "hello"

    def test_unwraps_note_card(self):
        graph = {"items": [{"noteCard": {"displayTitle": "card"}}]}
        assert find_note_record(graph) == {"displayTitle": "card"}

    def test_breadth_first_order(self):
        shallow = {"desc": "shallow"}
        graph = {"deep": {"deeper": {"desc": "deep"}}, "shallow": shallow}
        assert find_note_record(graph) is shallow

    def test_cycles_terminate(self):
        node = {"name": "loop"}
        node["self"] = node
        other = {"child": node}
        node["other"] = other
        assert find_note_record({"root": node}, "missing") is None

    def test_diamond_shape_visits_once(self):
        shared = {"value": 1}
        graph = {"left": {"x": shared}, "right": {"y": shared}}
        assert find_note_record(graph) is None

    def test_node_cap(self):
        graph = {"level": [{"filler": i} for i in range(100)] + [{"desc": "late"}]}
        assert find_note_record(graph, max_nodes=10) is None

    def test_non_container(self):
        assert find_note_record("text") is None
        assert find_note_record(None) is None
