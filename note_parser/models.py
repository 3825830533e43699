"""Data models used throughout the extraction pipeline."""

from __future__ import annotations

from dataclasses import asdict, dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Optional, Tuple

UNTITLED = "untitled"
UNKNOWN_AUTHOR = "unknown"


@dataclass(frozen=True)
class MediaRef:
    """Absolute reference to an image or video attached to a note."""

    kind: str
    url: str
    width: Optional[int] = None
    height: Optional[int] = None
    duration_seconds: Optional[float] = None
    format: Optional[str] = None


@dataclass(frozen=True)
class NoteStats:
    """Engagement counters; all values are non-negative."""

    likes: int = 0
    collects: int = 0
    comments: int = 0
    shares: int = 0


@dataclass(frozen=True)
class NoteRecord:
    """Normalized note produced by the merge chain."""

    title: str
    body: str
    author: str
    images: Tuple[MediaRef, ...]
    videos: Tuple[MediaRef, ...]
    stats: NoteStats
    source_url: str
    cover_image: Optional[str] = None
    tags: Tuple[str, ...] = ()
    published_at: Optional[datetime] = None

    @property
    def image_urls(self) -> List[str]:
        return [image.url for image in self.images]

    @property
    def video_urls(self) -> List[str]:
        return [video.url for video in self.videos]

    def to_dict(self) -> Dict[str, Any]:
        """Return a JSON-serialisable representation."""
        payload = asdict(self)
        payload["images"] = [asdict(image) for image in self.images]
        payload["videos"] = [asdict(video) for video in self.videos]
        payload["tags"] = list(self.tags)
        payload["published_at"] = (
            self.published_at.isoformat() if self.published_at else None
        )
        return payload


@dataclass
class PartialRecord:
    """Fields one extraction strategy managed to read; ``None`` means unknown."""

    title: Optional[str] = None
    body: Optional[str] = None
    author: Optional[str] = None
    images: List[MediaRef] = field(default_factory=list)
    videos: List[MediaRef] = field(default_factory=list)
    cover_image: Optional[str] = None
    tags: List[str] = field(default_factory=list)
    published_at: Optional[datetime] = None
    likes: Optional[int] = None
    collects: Optional[int] = None
    comments: Optional[int] = None
    shares: Optional[int] = None
