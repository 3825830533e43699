"""HTML extraction: independent strategies merged into one note record."""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, fields
from itertools import chain
from typing import Any, Callable, Dict, Iterable, List, Optional, Sequence

from bs4 import BeautifulSoup
from readability import Document

from .config import DEFAULT_CDN_DOMAINS, DEFAULT_STREAM_MARKER, ParserConfig
from .errors import ParseError
from .media import as_list, collect_images, collect_videos, dedupe_videos, image_url_from
from .models import (
    UNKNOWN_AUTHOR,
    UNTITLED,
    MediaRef,
    NoteRecord,
    NoteStats,
    PartialRecord,
)
from .records import find_note_record, resolve_note_id
from .scripts import find_inline_state, find_json_ld
from .utils import clean_text, first_string, parse_count, parse_timestamp

logger = logging.getLogger("note_parser.content")

_TITLE_SUFFIX = re.compile(r"\s*[-|｜]\s*小红书\s*$")
_STAT_FIELDS = ("likes", "collects", "comments", "shares")
_INTERACTION_PATTERNS = (
    (re.compile(r"LikeAction", re.IGNORECASE), "likes"),
    (re.compile(r"CommentAction", re.IGNORECASE), "comments"),
    (re.compile(r"ShareAction", re.IGNORECASE), "shares"),
    (re.compile(r"CollectAction|SaveAction", re.IGNORECASE), "collects"),
)
_STATE_COUNTERS = {
    "likes": ("likedCount", "liked_count", "likeCount"),
    "collects": ("collectedCount", "collected_count", "collectCount"),
    "comments": ("commentCount", "comment_count"),
    "shares": ("shareCount", "share_count"),
}
_META_COUNTERS = {
    "likes": "og:xhs:note_like",
    "collects": "og:xhs:note_collect",
    "comments": "og:xhs:note_comment",
    "shares": "og:xhs:note_share",
}


@dataclass
class NoteDocument:
    """Parsed page plus the context every strategy needs."""

    html: str
    url: str
    soup: BeautifulSoup
    note_id: Optional[str]
    cdn_domains: Sequence[str] = DEFAULT_CDN_DOMAINS
    stream_marker: str = DEFAULT_STREAM_MARKER

    def videos_from(self, value: Any) -> List[MediaRef]:
        nested = (
            collect_videos(item, self.cdn_domains, self.stream_marker)
            for item in as_list(value)
        )
        return dedupe_videos(chain.from_iterable(nested), self.cdn_domains, self.stream_marker)


Strategy = Callable[[NoteDocument], Optional[PartialRecord]]


def _split_keywords(value: Any) -> List[str]:
    if isinstance(value, str):
        return [part.strip() for part in re.split(r"[,，]", value) if part.strip()]
    if isinstance(value, list):
        return [item.strip() for item in value if isinstance(item, str) and item.strip()]
    return []


def _author_name(value: Any) -> Optional[str]:
    if isinstance(value, list):
        value = value[0] if value else None
    if isinstance(value, dict):
        return first_string(
            value.get("nickname"), value.get("nickName"), value.get("name")
        )
    return first_string(value)


# JSON-LD --------------------------------------------------------------------


def json_ld_strategy(doc: NoteDocument) -> Optional[PartialRecord]:
    node = find_json_ld(doc.soup)
    if node is None:
        raise ParseError("no article-family JSON-LD block")

    partial = PartialRecord(
        title=first_string(node.get("headline"), node.get("name")),
        body=first_string(node.get("articleBody"), node.get("description"), node.get("text")),
        author=_author_name(node.get("author")),
        images=collect_images(as_list(node.get("image"))),
        videos=doc.videos_from(node.get("video") or node.get("videoObject")),
        tags=_split_keywords(node.get("keywords")),
        published_at=parse_timestamp(node.get("datePublished")),
    )
    for stat in as_list(node.get("interactionStatistic")):
        if not isinstance(stat, dict):
            continue
        kind = stat.get("interactionType")
        if isinstance(kind, dict):
            kind = kind.get("@type")
        if not isinstance(kind, str):
            continue
        count = parse_count(stat.get("userInteractionCount")) or 0
        for pattern, name in _INTERACTION_PATTERNS:
            if pattern.search(kind):
                setattr(partial, name, max(getattr(partial, name) or 0, count))
    return partial


# Inline state ---------------------------------------------------------------


def _state_counter(interact: Dict[str, Any], keys: Sequence[str]) -> Optional[int]:
    for key in keys:
        if key in interact:
            count = parse_count(interact[key])
            if count is not None:
                return count
    return None


def inline_state_strategy(doc: NoteDocument) -> Optional[PartialRecord]:
    state = find_inline_state(doc.soup)
    if state is None:
        raise ParseError("no inline hydration state")
    note = find_note_record(state, doc.note_id)
    if note is None:
        raise ParseError("hydration state holds no recognizable note")

    image_list = note.get("imageList") or note.get("image_list") or note.get("images")
    tags = [
        tag.get("name").strip()
        for tag in as_list(note.get("tagList") or note.get("tag_list"))
        if isinstance(tag, dict) and isinstance(tag.get("name"), str) and tag["name"].strip()
    ]
    partial = PartialRecord(
        title=first_string(
            note.get("title"), note.get("displayTitle"), note.get("display_title")
        ),
        body=first_string(note.get("desc"), note.get("content"), note.get("description")),
        author=_author_name(note.get("user") or note.get("author")),
        images=collect_images(as_list(image_list)),
        videos=doc.videos_from(note.get("video")) if note.get("video") else [],
        cover_image=image_url_from(note.get("cover")),
        tags=tags,
        published_at=parse_timestamp(note.get("time") or note.get("publishTime")),
    )
    interact = note.get("interactInfo") or note.get("interact_info")
    if isinstance(interact, dict):
        for name, keys in _STATE_COUNTERS.items():
            setattr(partial, name, _state_counter(interact, keys))
    return partial


# Meta tags ------------------------------------------------------------------


def _meta_content(soup: BeautifulSoup, key: str) -> Optional[str]:
    tag = soup.find("meta", attrs={"property": key}) or soup.find(
        "meta", attrs={"name": key}
    )
    if tag and tag.get("content"):
        return tag["content"].strip() or None
    return None


def _meta_all(soup: BeautifulSoup, key: str) -> List[str]:
    return [
        tag["content"].strip()
        for tag in soup.find_all("meta", attrs={"property": key})
        if tag.get("content")
    ]


def _document_title(doc: NoteDocument) -> Optional[str]:
    title: Optional[str] = None
    try:
        title = Document(doc.html).short_title()
    except Exception:  # pylint: disable=broad-except
        logger.debug("readability could not read the page title", exc_info=True)
    if not title and doc.soup.title and doc.soup.title.string:
        title = doc.soup.title.string
    return title


def meta_strategy(doc: NoteDocument) -> Optional[PartialRecord]:
    soup = doc.soup
    title = _meta_content(soup, "og:title") or _document_title(doc)
    if title:
        title = _TITLE_SUFFIX.sub("", title.strip())
    images = collect_images(_meta_all(soup, "og:image"))
    partial = PartialRecord(
        title=title,
        body=_meta_content(soup, "og:description") or _meta_content(soup, "description"),
        author=_meta_content(soup, "og:xhs:note_author") or _meta_content(soup, "author"),
        images=images,
        videos=doc.videos_from(_meta_all(soup, "og:video")),
        cover_image=images[0].url if images else None,
        tags=_split_keywords(
            _meta_content(soup, "keywords") or _meta_content(soup, "og:keywords")
        ),
    )
    for name, key in _META_COUNTERS.items():
        setattr(partial, name, parse_count(_meta_content(soup, key)))
    return partial


DEFAULT_STRATEGIES: Sequence[Strategy] = (
    json_ld_strategy,
    inline_state_strategy,
    meta_strategy,
)


# Merge ----------------------------------------------------------------------


def _is_empty(value: Any) -> bool:
    if value is None:
        return True
    if isinstance(value, str):
        return not value.strip()
    if isinstance(value, (list, tuple)):
        return not value
    return False


def merge_partials(partials: Iterable[Optional[PartialRecord]]) -> PartialRecord:
    """Fill each field from the first partial that supplies it."""
    merged = PartialRecord()
    for partial in partials:
        if partial is None:
            continue
        for item in fields(PartialRecord):
            if _is_empty(getattr(merged, item.name)):
                value = getattr(partial, item.name)
                if not _is_empty(value):
                    setattr(merged, item.name, value)
    return merged


def run_strategies(doc: NoteDocument, strategies: Sequence[Strategy]) -> List[PartialRecord]:
    """Run every strategy, treating any failure as an empty layer."""
    partials: List[PartialRecord] = []
    for strategy in strategies:
        name = getattr(strategy, "__name__", repr(strategy))
        try:
            partial = strategy(doc)
        except ParseError as exc:
            logger.debug("%s yielded nothing for %s: %s", name, doc.url, exc)
            continue
        except Exception:  # pylint: disable=broad-except
            logger.debug("%s failed on %s", name, doc.url, exc_info=True)
            continue
        if partial is not None:
            partials.append(partial)
    return partials


def _trimmed(value: Optional[str]) -> str:
    return value.strip() if isinstance(value, str) else ""


def finalize_record(
    partial: PartialRecord,
    source_url: str,
    cdn_domains: Sequence[str] = DEFAULT_CDN_DOMAINS,
    stream_marker: str = DEFAULT_STREAM_MARKER,
) -> NoteRecord:
    """Trim strings, apply fallback literals and freeze the merged fields."""
    images = collect_images(partial.images)
    videos = dedupe_videos(partial.videos, cdn_domains, stream_marker)
    tags: List[str] = []
    for tag in partial.tags:
        cleaned = clean_text(tag).lstrip("#")
        if cleaned and cleaned not in tags:
            tags.append(cleaned)
    stats = NoteStats(
        **{name: max(getattr(partial, name) or 0, 0) for name in _STAT_FIELDS}
    )
    return NoteRecord(
        title=_trimmed(partial.title) or UNTITLED,
        body=_trimmed(partial.body),
        author=_trimmed(partial.author) or UNKNOWN_AUTHOR,
        images=tuple(images),
        videos=tuple(videos),
        stats=stats,
        source_url=source_url.strip(),
        cover_image=images[0].url if images else (partial.cover_image or None),
        tags=tuple(tags),
        published_at=partial.published_at,
    )


def extract_note(
    html: str,
    final_url: str,
    config: Optional[ParserConfig] = None,
    strategies: Sequence[Strategy] = DEFAULT_STRATEGIES,
) -> NoteRecord:
    """Extract a normalized note record from raw page HTML. Never raises on bad markup."""
    config = config or ParserConfig()
    soup = BeautifulSoup(html or "", "html.parser")
    doc = NoteDocument(
        html=html or "",
        url=final_url,
        soup=soup,
        note_id=resolve_note_id(final_url, soup),
        cdn_domains=config.cdn_domains,
        stream_marker=config.stream_marker,
    )
    partials = run_strategies(doc, strategies)
    if not partials:
        logger.info("No extraction strategy matched %s; returning a minimal record", final_url)
    return finalize_record(
        merge_partials(partials), final_url, config.cdn_domains, config.stream_marker
    )
