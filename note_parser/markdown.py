"""Render note records as chat-style text or Markdown with front matter."""

from __future__ import annotations

import datetime as dt
from typing import List

from .config import ParserConfig
from .models import NoteRecord


def format_number(value: int) -> str:
    """Compact counters: 12345 -> ``1.2w``, 1234 -> ``1.2k``."""
    if value >= 10_000:
        return f"{value / 10_000:.1f}w"
    if value >= 1_000:
        return f"{value / 1_000:.1f}k"
    return str(value)


def truncate(text: str, limit: int) -> str:
    if limit <= 0 or len(text) <= limit:
        return text
    return text[:limit] + "..."


def format_stats(record: NoteRecord) -> str:
    parts: List[str] = []
    stats = record.stats
    if stats.likes > 0:
        parts.append(f"likes {format_number(stats.likes)}")
    if stats.collects > 0:
        parts.append(f"collects {format_number(stats.collects)}")
    if stats.comments > 0:
        parts.append(f"comments {format_number(stats.comments)}")
    if stats.shares > 0:
        parts.append(f"shares {format_number(stats.shares)}")
    return " | ".join(parts)


def is_publishable(record: NoteRecord, config: ParserConfig) -> bool:
    """Apply the minimum-length and blocked-keyword filters."""
    text = f"{record.title}\n{record.body}"
    if config.min_content_length > 0 and len(text) < config.min_content_length:
        return False
    lowered = text.lower()
    return not any(
        keyword.strip() and keyword.strip().lower() in lowered
        for keyword in config.blocked_keywords
    )


def format_summary(record: NoteRecord, config: ParserConfig) -> str:
    """Plain-text summary suitable for a chat message."""
    lines = [record.title, f"by {record.author}"]
    if record.body:
        lines.append(truncate(record.body, config.max_content_length))
    if record.tags:
        lines.append(" ".join(f"#{tag}" for tag in record.tags[:5]))
    if config.include_metadata:
        stats = format_stats(record)
        if stats:
            lines.append(stats)
    lines.extend(record.image_urls[: config.max_images_per_message])
    lines.extend(record.video_urls)
    return "\n\n".join(lines)


def compose_markdown(record: NoteRecord, config: ParserConfig) -> str:
    """Generate Markdown including front matter."""
    timestamp = (
        dt.datetime.now(dt.timezone.utc)
        .replace(microsecond=0)
        .isoformat()
        .replace("+00:00", "Z")
    )
    front_matter_lines = ["---"]
    front_matter_lines.append(f"title: {record.title}")
    front_matter_lines.append(f"source_url: {record.source_url}")
    front_matter_lines.append(f"retrieved_at: {timestamp}")
    front_matter_lines.append(f"author: {record.author}")
    if record.published_at:
        front_matter_lines.append(f"published_at: {record.published_at.isoformat()}")
    if record.tags:
        front_matter_lines.append("tags: [" + ", ".join(record.tags) + "]")
    if config.include_metadata:
        stats = record.stats
        front_matter_lines.append(
            f"stats: {{likes: {stats.likes}, collects: {stats.collects}, "
            f"comments: {stats.comments}, shares: {stats.shares}}}"
        )
    if record.cover_image:
        front_matter_lines.append(f"cover: {record.cover_image}")
    front_matter_lines.append("---\n")

    body_parts = [f"# {record.title}"]
    if record.body:
        body_parts.append(truncate(record.body, config.max_content_length))
    for index, url in enumerate(record.image_urls[: config.max_images_per_message], start=1):
        body_parts.append(f"![image {index}]({url})")
    for index, url in enumerate(record.video_urls, start=1):
        body_parts.append(f"[video {index}]({url})")
    return "\n".join(front_matter_lines) + "\n\n".join(body_parts) + "\n"
