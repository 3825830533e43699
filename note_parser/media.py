"""Image and video reference normalization."""

from __future__ import annotations

import html
import logging
import re
from collections import deque
from dataclasses import replace
from typing import Any, Deque, Iterable, List, Optional, Sequence, Set, Tuple
from urllib.parse import urlparse

from .config import DEFAULT_CDN_DOMAINS, DEFAULT_STREAM_MARKER
from .models import MediaRef

logger = logging.getLogger("note_parser.media")

VARIANT_LIST_FIELDS = ("infoList", "info_list", "variants")
IMAGE_URL_FIELDS = (
    "originUrl",
    "url",
    "urlDefault",
    "imageUrl",
    "contentUrl",
    "cover",
    "src",
    "thumbnail",
    "thumbnailUrl",
    "urlPre",
    "previewUrl",
)
IMAGE_ID_FIELDS = ("fileId", "file_id", "traceId", "trace_id", "imageId", "image_id")
VIDEO_URL_FIELDS = (
    "masterUrl",
    "master_url",
    "contentUrl",
    "url",
    "mainUrl",
    "backupUrls",
    "backup_urls",
    "embedUrl",
    "src",
)
VIDEO_CONTAINER_KEYS = ("media", "stream", "h264", "h265", "h266", "av1")
VIDEO_SCAN_LIMIT = 10
_VIDEO_EXTENSION = re.compile(r"\.(mp4|m3u8|flv|m4s)(?:[?#/]|$)", re.IGNORECASE)
_FORMAT_EXTENSION = re.compile(
    r"\.(jpe?g|png|gif|webp|heic|avif|mp4|m3u8|flv|m4s)$", re.IGNORECASE
)
_ISO_DURATION = re.compile(r"^P(?:T(?:(\d+)H)?(?:(\d+)M)?(?:(\d+(?:\.\d+)?)S)?)$")
_MAX_DEPTH = 8

# Substring -> score; checked in order, first hit wins.
_SCENE_SCORES: Sequence[Tuple[Tuple[str, ...], int]] = (
    (("orig", "origin", "raw"), 5),
    (("dft", "default"), 4),
    (("hd", "high"), 3),
    (("md", "medium", "mid"), 2),
    (("prv", "preview", "low", "thumb"), 1),
)


def normalize_media_url(raw: Any) -> Optional[str]:
    """Return an absolute http(s) URL, or ``None`` when ``raw`` is unusable."""
    if isinstance(raw, MediaRef):
        raw = raw.url
    if not isinstance(raw, str):
        return None
    url = html.unescape(raw).strip()
    if url.startswith("//"):
        url = "https:" + url
    lowered = url.lower()
    if not (lowered.startswith("http://") or lowered.startswith("https://")):
        return None
    try:
        if not urlparse(url).netloc:
            return None
    except ValueError:
        return None
    return url


def _guess_format(url: str) -> Optional[str]:
    try:
        path = urlparse(url).path
    except ValueError:
        return None
    match = _FORMAT_EXTENSION.search(path)
    if not match:
        return None
    ext = match.group(1).lower()
    return "jpg" if ext == "jpeg" else ext


def _int_or_none(value: Any) -> Optional[int]:
    if isinstance(value, bool):
        return None
    if isinstance(value, (int, float)) and value > 0:
        return int(value)
    return None


def as_list(value: Any) -> List[Any]:
    if value is None:
        return []
    if isinstance(value, (list, tuple)):
        return list(value)
    return [value]


# Images ---------------------------------------------------------------------


def scene_score(scene: Any) -> int:
    """Rank a scene tag: original > default > HD > medium > preview > unlabeled."""
    if not isinstance(scene, str) or not scene:
        return 0
    lowered = scene.lower()
    for needles, score in _SCENE_SCORES:
        if any(needle in lowered for needle in needles):
            return score
    return 0


def _variant_list(candidate: dict) -> List[Any]:
    for field in VARIANT_LIST_FIELDS:
        variants = candidate.get(field)
        if isinstance(variants, list) and variants:
            return variants
    return []


def pick_best_variant(variants: Iterable[Any]) -> Optional[str]:
    """Return the URL of the highest scoring variant; ties keep the first seen."""
    best_url: Optional[str] = None
    best_score = -1
    for variant in variants:
        if not isinstance(variant, dict):
            continue
        url = normalize_media_url(variant.get("url"))
        if url is None:
            continue
        score = scene_score(variant.get("imageScene") or variant.get("scene"))
        if score > best_score:
            best_url, best_score = url, score
    return best_url


def image_url_from(candidate: Any) -> Optional[str]:
    """Pick a URL for one image candidate (string, variant container or object)."""
    if isinstance(candidate, (str, MediaRef)):
        return normalize_media_url(candidate)
    if not isinstance(candidate, dict):
        return None
    variants = _variant_list(candidate)
    if variants:
        best = pick_best_variant(variants)
        if best:
            return best
    for field in IMAGE_URL_FIELDS:
        value = candidate.get(field)
        if isinstance(value, dict):
            value = value.get("url")
        url = normalize_media_url(value)
        if url:
            return url
    return None


def image_identity(candidate: Any) -> Optional[str]:
    """Stable id-like key of an image object, if it carries one."""
    if not isinstance(candidate, dict):
        return None
    sources = [candidate]
    variants = _variant_list(candidate)
    if variants and isinstance(variants[0], dict):
        sources.append(variants[0])
    for source in sources:
        for field in IMAGE_ID_FIELDS:
            value = source.get(field)
            if isinstance(value, (str, int)) and not isinstance(value, bool) and str(value):
                return f"{field}:{value}"
    return None


def collect_images(candidates: Iterable[Any]) -> List[MediaRef]:
    """Normalize image candidates, dropping repeats by identity and by URL."""
    seen_ids: Set[str] = set()
    seen_urls: Set[str] = set()
    images: List[MediaRef] = []
    for candidate in candidates:
        identity = image_identity(candidate)
        if identity is not None:
            if identity in seen_ids:
                continue
            seen_ids.add(identity)
        url = image_url_from(candidate)
        if url is None or url in seen_urls:
            continue
        seen_urls.add(url)
        width = height = None
        if isinstance(candidate, MediaRef):
            width, height = candidate.width, candidate.height
        elif isinstance(candidate, dict):
            width = _int_or_none(candidate.get("width"))
            height = _int_or_none(candidate.get("height"))
        images.append(
            MediaRef(
                kind="image",
                url=url,
                width=width,
                height=height,
                format=_guess_format(url),
            )
        )
    return images


# Videos ---------------------------------------------------------------------


def _host_on_cdn(host: str, cdn_domains: Sequence[str]) -> bool:
    host = host.lower()
    return any(host == domain or host.endswith("." + domain) for domain in cdn_domains)


def canonical_video(
    raw: Any,
    cdn_domains: Sequence[str] = DEFAULT_CDN_DOMAINS,
    stream_marker: str = DEFAULT_STREAM_MARKER,
) -> Optional[Tuple[str, str]]:
    """Return ``(url, key)`` for a video URL, or ``None`` to drop it.

    CDN URLs are upgraded to https; when their path holds the streaming
    marker the key is the path alone, so mirrors and signed queries collapse.
    """
    if isinstance(raw, MediaRef):
        raw = raw.url
    if not isinstance(raw, str):
        return None
    url = html.unescape(raw).strip()
    if url.startswith("//"):
        url = "https:" + url
    if not url.lower().startswith("http"):
        return None
    try:
        parsed = urlparse(url)
    except ValueError:
        return url, url
    if not parsed.netloc or not _host_on_cdn(parsed.hostname or "", cdn_domains):
        return url, url
    if parsed.scheme.lower() == "http":
        parsed = parsed._replace(scheme="https")
        url = parsed.geturl()
    if stream_marker and stream_marker in parsed.path:
        return url, parsed.path
    return url, url


def _direct_video_urls(value: Any, out: List[str], depth: int = 0) -> None:
    if depth > _MAX_DEPTH:
        return
    if isinstance(value, (str, MediaRef)):
        out.append(value.url if isinstance(value, MediaRef) else value)
    elif isinstance(value, list):
        for item in value:
            _direct_video_urls(item, out, depth + 1)
    elif isinstance(value, dict):
        for field in VIDEO_URL_FIELDS:
            if field in value:
                _direct_video_urls(value[field], out, depth + 1)
        for key in VIDEO_CONTAINER_KEYS:
            if key in value:
                _direct_video_urls(value[key], out, depth + 1)


def _scan_video_urls(value: Any, limit: int = VIDEO_SCAN_LIMIT) -> List[str]:
    """Breadth-first search for any http string that looks like a video file."""
    found: List[str] = []
    queue: Deque[Any] = deque([value])
    visited: Set[int] = set()
    while queue and len(found) < limit:
        node = queue.popleft()
        if isinstance(node, str):
            if node.startswith("http") and _VIDEO_EXTENSION.search(node):
                found.append(node)
            continue
        if not isinstance(node, (dict, list)) or id(node) in visited:
            continue
        visited.add(id(node))
        queue.extend(node.values() if isinstance(node, dict) else node)
    return found


def parse_duration(value: Any) -> Optional[float]:
    """Seconds from a number or an ISO-8601 ``PT#H#M#S`` string."""
    if isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return float(value) if value > 0 else None
    if isinstance(value, str):
        match = _ISO_DURATION.match(value.strip().upper())
        if match and any(match.groups()):
            hours, minutes, seconds = match.groups()
            return int(hours or 0) * 3600 + int(minutes or 0) * 60 + float(seconds or 0)
    return None


def collect_videos(
    value: Any,
    cdn_domains: Sequence[str] = DEFAULT_CDN_DOMAINS,
    stream_marker: str = DEFAULT_STREAM_MARKER,
) -> List[MediaRef]:
    """Flatten a video container into canonical, de-duplicated references."""
    raw_urls: List[str] = []
    _direct_video_urls(value, raw_urls)
    if not any(canonical_video(raw, cdn_domains, stream_marker) for raw in raw_urls):
        raw_urls = _scan_video_urls(value)

    duration = None
    width = height = None
    if isinstance(value, dict):
        capa = value.get("capa")
        duration = parse_duration(value.get("duration"))
        if duration is None and isinstance(capa, dict):
            duration = parse_duration(capa.get("duration"))
        width = _int_or_none(value.get("width"))
        height = _int_or_none(value.get("height"))

    seen: Set[str] = set()
    videos: List[MediaRef] = []
    for raw in raw_urls:
        canonical = canonical_video(raw, cdn_domains, stream_marker)
        if canonical is None:
            continue
        url, key = canonical
        if key in seen:
            continue
        seen.add(key)
        videos.append(
            MediaRef(
                kind="video",
                url=url,
                width=width,
                height=height,
                duration_seconds=duration,
                format=_guess_format(url),
            )
        )
    return videos


def dedupe_videos(
    videos: Iterable[MediaRef],
    cdn_domains: Sequence[str] = DEFAULT_CDN_DOMAINS,
    stream_marker: str = DEFAULT_STREAM_MARKER,
) -> List[MediaRef]:
    """Drop videos whose canonical key was already seen, preserving order."""
    seen: Set[str] = set()
    out: List[MediaRef] = []
    for video in videos:
        canonical = canonical_video(video, cdn_domains, stream_marker)
        if canonical is None or canonical[1] in seen:
            continue
        seen.add(canonical[1])
        out.append(replace(video, url=canonical[0]))
    return out
