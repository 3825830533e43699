"""Link discovery, normalization and the host security gate."""

from __future__ import annotations

import ipaddress
import logging
import re
from typing import Iterable, List, Optional, Sequence
from urllib.parse import urlparse, urlunparse

from .config import CANONICAL_NOTE_URL, DEFAULT_ALLOWED_DOMAINS, MAX_URL_CHARS
from .errors import ValidationError

logger = logging.getLogger("note_parser.links")

# Paths stop at the first character outside URL-safe ASCII, so share text
# glued to a link ("...AbCd12，复制本条信息") is not swallowed.
_URL_PATH_CHARS = r"[A-Za-z0-9\-._~:/?#\[\]@!$&()*+,;=%]"
LINK_PATTERN = re.compile(
    rf"https?://(?:www\.)?xiaohongshu\.com/{_URL_PATH_CHARS}{{1,400}}"
    rf"|https?://xhslink\.com/{_URL_PATH_CHARS}{{1,400}}",
    re.IGNORECASE,
)
NOTE_PATH_PATTERNS = (
    re.compile(r"^/explore/([0-9A-Za-z]+)"),
    re.compile(r"^/discovery/item/([0-9A-Za-z]+)"),
    re.compile(r"^/search_result/([0-9A-Za-z]+)"),
)
_UNSAFE_CHARS = re.compile(r"[<>\"'\\\s]")
_TRAILING_CHARS = ".,;:!?)]}>\"'，。；：！？）】》"
_LOCAL_HOSTNAMES = frozenset({"localhost", "localhost.localdomain", "ip6-localhost"})


def is_unsafe_host(host: str) -> bool:
    """True for loopback, private, link-local, reserved or unspecified hosts."""
    host = (host or "").strip().strip("[]").lower().rstrip(".")
    if not host:
        return True
    if host in _LOCAL_HOSTNAMES or host.endswith(".localhost"):
        return True
    try:
        address = ipaddress.ip_address(host)
    except ValueError:
        return False
    return (
        address.is_private
        or address.is_loopback
        or address.is_link_local
        or address.is_reserved
        or address.is_unspecified
        or address.is_multicast
    )


def host_allowed(host: str, allowed_domains: Sequence[str]) -> bool:
    host = (host or "").lower().rstrip(".")
    for domain in allowed_domains:
        domain = domain.strip().lower()
        if domain and (host == domain or host.endswith("." + domain)):
            return True
    return False


def validate_url(url: str, allowed_domains: Sequence[str] = DEFAULT_ALLOWED_DOMAINS) -> str:
    """Return the trimmed URL or raise :class:`ValidationError`.

    Only http(s) URLs on an allowed domain pass; private and loopback hosts
    are rejected even when they appear on the allow-list.
    """
    candidate = (url or "").strip()
    if not candidate:
        raise ValidationError("empty URL")
    if len(candidate) > MAX_URL_CHARS:
        raise ValidationError("URL too long")
    if _UNSAFE_CHARS.search(candidate):
        raise ValidationError("URL contains forbidden characters")
    try:
        parsed = urlparse(candidate)
        host = parsed.hostname or ""
    except ValueError as exc:
        raise ValidationError("malformed URL") from exc
    if parsed.scheme.lower() not in ("http", "https"):
        raise ValidationError("unsupported scheme")
    if is_unsafe_host(host):
        raise ValidationError("unsafe host")
    if not host_allowed(host, allowed_domains):
        raise ValidationError("domain not allowed")
    return candidate


def is_safe_redirect(url: str) -> bool:
    """Redirect targets must be http(s) and must not point at internal hosts."""
    try:
        parsed = urlparse(url)
        host = parsed.hostname or ""
    except ValueError:
        return False
    return parsed.scheme.lower() in ("http", "https") and not is_unsafe_host(host)


def normalize_note_url(
    url: str, allowed_domains: Sequence[str] = DEFAULT_ALLOWED_DOMAINS
) -> str:
    """Validate ``url`` and map note links onto their canonical explore URL."""
    candidate = validate_url(url, allowed_domains)
    parsed = urlparse(candidate)
    host = (parsed.hostname or "").lower()
    if host.endswith("xiaohongshu.com"):
        for pattern in NOTE_PATH_PATTERNS:
            match = pattern.match(parsed.path)
            if match:
                return CANONICAL_NOTE_URL.format(note_id=match.group(1))
    return urlunparse(parsed._replace(fragment=""))


def try_normalize(
    url: str, allowed_domains: Sequence[str] = DEFAULT_ALLOWED_DOMAINS
) -> Optional[str]:
    try:
        return normalize_note_url(url, allowed_domains)
    except ValidationError as exc:
        logger.debug("Rejected candidate link: %s", exc)
        return None


def _strip_trailing(url: str) -> str:
    while url and url[-1] in _TRAILING_CHARS:
        url = url[:-1]
    return url


def extract_links(
    text: str,
    max_link_length: int = 500,
    max_scan_chars: int = 50_000,
) -> List[str]:
    """Find note-platform links in free text, in order, without exact duplicates."""
    if not text:
        return []
    safe_text = text[:max_scan_chars]
    seen = set()
    links: List[str] = []
    for raw in LINK_PATTERN.findall(safe_text):
        url = _strip_trailing(raw.strip())
        if not url or len(url) > max_link_length or url in seen:
            continue
        seen.add(url)
        links.append(url)
    return links


def dedupe_normalized(
    candidates: Iterable[str],
    allowed_domains: Sequence[str] = DEFAULT_ALLOWED_DOMAINS,
) -> List[str]:
    """Normalize candidates, dropping invalid ones and repeats, keeping order."""
    seen = set()
    urls: List[str] = []
    for candidate in candidates:
        normalized = try_normalize(candidate, allowed_domains)
        if normalized is None or normalized in seen:
            continue
        seen.add(normalized)
        urls.append(normalized)
    return urls
