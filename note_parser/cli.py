"""Command-line entry point for the note parser."""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
import sys
import time
from typing import Dict, Iterable, List, Sequence

from .batch import BatchResolver
from .client import NoteClient
from .config import DEFAULT_ALLOWED_DOMAINS, DEFAULT_USER_AGENT, ParserConfig
from .errors import ValidationError
from .markdown import compose_markdown, format_summary, is_publishable
from .models import NoteRecord

logger = logging.getLogger("note_parser.cli")

OUTPUT_FORMATS = ("summary", "markdown", "json")


def _ensure_command_prefix(argv: Sequence[str], commands: Iterable[str]) -> Sequence[str]:
    if not argv:
        return argv
    first = argv[0]
    if first in commands or first.startswith("-"):
        return argv
    return ("resolve", *argv)


def _parse_header(value: str) -> tuple:
    name, sep, content = value.partition("=")
    if not sep or not name.strip():
        raise argparse.ArgumentTypeError(f"expected NAME=VALUE, got {value!r}")
    return name.strip(), content.strip()


def _add_common_arguments(parser: argparse.ArgumentParser) -> None:
    parser.add_argument(
        "--format",
        choices=OUTPUT_FORMATS,
        default="summary",
        help="How to print each resolved note",
    )
    parser.add_argument(
        "--render",
        action="store_true",
        help="Render pages with headless Chromium instead of plain HTTP",
    )
    parser.add_argument(
        "--timeout",
        type=float,
        default=10.0,
        help="HTTP request timeout in seconds",
    )
    parser.add_argument(
        "--render-timeout",
        type=float,
        default=30.0,
        help="Browser navigation timeout in seconds",
    )
    parser.add_argument(
        "--retries",
        type=int,
        default=3,
        help="Maximum fetch attempts per URL",
    )
    parser.add_argument(
        "--concurrency",
        type=int,
        default=3,
        help="Number of URLs resolved at the same time",
    )
    parser.add_argument(
        "--user-agent",
        default=DEFAULT_USER_AGENT,
        help="User-Agent header sent with every request",
    )
    parser.add_argument(
        "--header",
        dest="headers",
        action="append",
        type=_parse_header,
        default=[],
        metavar="NAME=VALUE",
        help="Extra request header (repeatable)",
    )
    parser.add_argument(
        "--allowed-domain",
        dest="allowed_domains",
        action="append",
        default=[],
        help="Domain accepted for parsing (repeatable, replaces the defaults)",
    )
    parser.add_argument(
        "--blocked-keyword",
        dest="blocked_keywords",
        action="append",
        default=[],
        help="Skip notes whose title or body contains this keyword (repeatable)",
    )
    parser.add_argument(
        "--min-length",
        type=int,
        default=0,
        help="Skip notes whose title and body are shorter than this",
    )
    parser.add_argument(
        "--max-content-length",
        type=int,
        default=500,
        help="Truncate the note body to this many characters when printing",
    )
    parser.add_argument(
        "--max-images",
        type=int,
        default=9,
        help="Print at most this many image URLs per note",
    )
    parser.add_argument(
        "--no-metadata",
        action="store_true",
        help="Omit likes, collects and comment counters",
    )
    parser.add_argument(
        "--no-cache",
        action="store_true",
        help="Disable the in-memory result cache",
    )
    parser.add_argument(
        "--verbose",
        action="store_true",
        help="Enable verbose logging",
    )


def parse_args(argv: Sequence[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        description="Extract title, text, media and counters from social-media note pages.",
    )
    subparsers = parser.add_subparsers(dest="command", required=True)

    resolve_parser = subparsers.add_parser("resolve", help="Resolve one or more note URLs")
    resolve_parser.add_argument("urls", nargs="+", help="Note URLs to resolve")
    resolve_parser.add_argument(
        "--refresh",
        action="store_true",
        help="Bypass cached results",
    )
    _add_common_arguments(resolve_parser)

    scan_parser = subparsers.add_parser(
        "scan", help="Find note links in a message and resolve them all"
    )
    scan_parser.add_argument(
        "text",
        help="Message text to scan, or '-' to read it from standard input",
    )
    _add_common_arguments(scan_parser)

    argv = list(sys.argv[1:] if argv is None else argv)
    argv = list(_ensure_command_prefix(argv, subparsers.choices.keys()))
    return parser.parse_args(argv)


def build_config(args: argparse.Namespace) -> ParserConfig:
    headers: Dict[str, str] = dict(args.headers)
    return ParserConfig(
        allowed_domains=tuple(args.allowed_domains) or DEFAULT_ALLOWED_DOMAINS,
        user_agent=args.user_agent,
        request_timeout=args.timeout,
        max_retries=args.retries,
        custom_headers=headers,
        enable_render=args.render,
        render_timeout=args.render_timeout,
        enable_cache=not args.no_cache,
        max_concurrency=args.concurrency,
        include_metadata=not args.no_metadata,
        max_content_length=args.max_content_length,
        max_images_per_message=args.max_images,
        blocked_keywords=tuple(args.blocked_keywords),
        min_content_length=args.min_length,
    )


def render_record(record: NoteRecord, config: ParserConfig, output_format: str) -> str:
    if output_format == "json":
        return json.dumps(record.to_dict(), ensure_ascii=False, indent=2)
    if output_format == "markdown":
        return compose_markdown(record, config)
    return format_summary(record, config)


def _emit(text: str) -> None:
    sys.stdout.write(text if text.endswith("\n") else text + "\n")
    sys.stdout.flush()


async def _resolve_urls(args: argparse.Namespace, config: ParserConfig) -> List[bool]:
    outcomes: List[bool] = []
    async with NoteClient(config) as client:
        for url in args.urls:
            try:
                record = await client.resolve(url, force_refresh=args.refresh)
            except ValidationError as exc:
                logger.error("Rejected %s: %s", url, exc)
                outcomes.append(False)
                continue
            if record is None:
                logger.error("%s: content unavailable", url)
                outcomes.append(False)
                continue
            if not is_publishable(record, config):
                logger.info("Skipping %s: filtered by content rules", url)
                outcomes.append(True)
                continue
            _emit(render_record(record, config, args.format))
            outcomes.append(True)
    return outcomes


async def _scan_message(args: argparse.Namespace, config: ParserConfig) -> List[bool]:
    text = sys.stdin.read() if args.text == "-" else args.text
    outcomes: List[bool] = []
    async with NoteClient(config) as client:
        resolver = BatchResolver(client)
        async for url, outcome in resolver.resolve_message(text):
            if not isinstance(outcome, NoteRecord):
                logger.error("%s: %s", url, outcome)
                outcomes.append(False)
                continue
            outcomes.append(True)
            if is_publishable(outcome, config):
                _emit(render_record(outcome, config, args.format))
            else:
                logger.info("Skipping %s: filtered by content rules", url)
    if not outcomes:
        logger.info("No note links found")
    return outcomes


def main(argv: Sequence[str] | None = None) -> int:
    args = parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s [%(levelname)s] %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
        stream=sys.stderr,
        force=True,
    )
    try:
        config = build_config(args)
    except ValueError as exc:
        logger.error("Invalid options: %s", exc)
        return 2

    overall_start = time.perf_counter()
    if args.command == "resolve":
        outcomes = asyncio.run(_resolve_urls(args, config))
    else:
        outcomes = asyncio.run(_scan_message(args, config))
    total_elapsed = time.perf_counter() - overall_start

    successes = sum(1 for ok in outcomes if ok)
    logger.info(
        "Finished in %.2fs (%d/%d succeeded, %d failed)",
        total_elapsed,
        successes,
        len(outcomes),
        len(outcomes) - successes,
    )
    return 0 if successes == len(outcomes) else 1


if __name__ == "__main__":
    sys.exit(main())
