"""Configuration objects and constants for the note parser."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Dict, Tuple

DEFAULT_ALLOWED_DOMAINS: Tuple[str, ...] = (
    "xiaohongshu.com",
    "www.xiaohongshu.com",
    "xhslink.com",
)
DEFAULT_USER_AGENT = (
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36"
)
DEFAULT_CDN_DOMAINS: Tuple[str, ...] = ("xhscdn.com", "xhscdn.net")
DEFAULT_STREAM_MARKER = "/stream/"
CANONICAL_NOTE_URL = "https://www.xiaohongshu.com/explore/{note_id}"

MAX_URL_CHARS = 2048
MAX_REDIRECTS = 5


@dataclass(frozen=True)
class ParserConfig:
    """Settings that control fetching, caching and batch resolution."""

    allowed_domains: Tuple[str, ...] = DEFAULT_ALLOWED_DOMAINS
    user_agent: str = DEFAULT_USER_AGENT
    request_timeout: float = 10.0
    max_retries: int = 3
    retry_base_delay: float = 1.0
    custom_headers: Dict[str, str] = field(default_factory=dict)
    enable_render: bool = False
    render_timeout: float = 30.0
    wait_after_load: float = 1.0
    enable_cache: bool = True
    cache_ttl: float = 3600.0
    cache_capacity: int = 256
    cache_sweep_interval: float = 300.0
    max_concurrency: int = 3
    max_link_length: int = 500
    max_scan_chars: int = 50_000
    cdn_domains: Tuple[str, ...] = DEFAULT_CDN_DOMAINS
    stream_marker: str = DEFAULT_STREAM_MARKER
    include_metadata: bool = True
    max_content_length: int = 500
    max_images_per_message: int = 9
    blocked_keywords: Tuple[str, ...] = ()
    min_content_length: int = 0

    def __post_init__(self) -> None:
        if self.max_concurrency < 1:
            raise ValueError("max_concurrency must be at least 1")
        if self.max_retries < 1:
            raise ValueError("max_retries must be at least 1")
        if self.cache_capacity < 1:
            raise ValueError("cache_capacity must be at least 1")
        if self.cache_ttl <= 0:
            raise ValueError("cache_ttl must be positive")
