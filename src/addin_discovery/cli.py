#!/usr/bin/env python3
"""Command line entry point: discover, crawl and audit Cake addins."""

from __future__ import annotations

import argparse
import logging
from pathlib import Path

from addin_discovery.__version__ import __version__ as VERSION
from addin_discovery.config import DiscoveryConfig, load_config, resolve_github_token
from addin_discovery.context import DiscoveryContext, DiscoveryOptions
from addin_discovery.exceptions import DiscoveryError
from addin_discovery.github import GitHubClient
from addin_discovery.logging_config import add_logging_args, configure_logging
from addin_discovery.pipeline import Pipeline
from addin_discovery.steps import build_default_stages
from addin_discovery.url_normalizer import NuGetUrlResolver

logger = logging.getLogger(__name__)

DEFAULT_WORK_DIR = "addin-discovery-work"


def _parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Discover Cake addins and audit their build metadata.")
    parser.add_argument("--version", action="version", version=f"%(prog)s {VERSION}")
    parser.add_argument("--config", type=Path, default=None, help="YAML configuration file.")
    parser.add_argument(
        "--work-dir",
        type=Path,
        default=Path(DEFAULT_WORK_DIR),
        help=f"Dedicated folder for the snapshot, downloaded descriptors and reports (default: {DEFAULT_WORK_DIR}).",
    )
    parser.add_argument(
        "--clear-cache",
        action="store_true",
        help="Delete the work directory first instead of resuming from its snapshot.",
    )
    parser.add_argument("--max-workers", type=int, default=None, help="Concurrent tasks per stage.")
    parser.add_argument(
        "--unbounded",
        action="store_true",
        help="Run one task per record at once (ignores --max-workers).",
    )
    parser.add_argument("--record-timeout", type=float, default=None, help="Seconds allowed per record and stage.")
    parser.add_argument("--recommended-cake-version", default=None, help="Cake version addins are audited against.")
    parser.add_argument("--create-issues", action="store_true", help="Open an issue on non-compliant addins.")
    parser.add_argument(
        "--submit-pull-requests",
        action="store_true",
        help="Also open a pull request fixing the icon (requires --create-issues).",
    )
    parser.add_argument("--markdown-report", action="store_true", help="Write the markdown audit report.")
    add_logging_args(parser)
    return parser.parse_args(argv)


def build_options(args: argparse.Namespace, config: DiscoveryConfig) -> DiscoveryOptions:
    max_workers = args.max_workers if args.max_workers is not None else config.max_workers
    return DiscoveryOptions(
        work_dir=args.work_dir.expanduser().resolve(),
        clear_cache=args.clear_cache,
        github_token=resolve_github_token(),
        max_workers=None if args.unbounded else max_workers,
        record_timeout=args.record_timeout if args.record_timeout is not None else config.record_timeout,
        create_issues=args.create_issues,
        submit_pull_requests=args.submit_pull_requests,
        markdown_report=args.markdown_report,
        recommended_cake_version=args.recommended_cake_version,
    )


def _log_progress(completed: int, total: int, stage_name: str) -> None:
    logger.debug("Progress %d/%d (%s)", completed, total, stage_name)


def main(argv: list[str] | None = None) -> int:
    args = _parse_args(argv)
    configure_logging(level=args.log_level, fmt=args.log_format)

    try:
        config = load_config(args.config)
        options = build_options(args, config)
        # validates --recommended-cake-version against the configured versions
        config.cake_version(options.recommended_cake_version)
    except DiscoveryError as exc:
        logger.error("%s", exc, extra=exc.as_log_fields())
        return 1

    if options.submit_pull_requests and not options.create_issues:
        logger.warning("--submit-pull-requests has no effect without --create-issues")
    if not options.github_token:
        logger.warning("GITHUB_TOKEN is not set; using the anonymous GitHub rate limit")

    provider = GitHubClient(
        options.github_token,
        rate_limit=config.rate_limit if options.github_token else None,
        max_attempts=config.github_max_attempts,
    )
    context = DiscoveryContext(
        provider=provider,
        normalizer=NuGetUrlResolver(),
        options=options,
        config=config,
    )
    result = Pipeline(build_default_stages(), on_progress=_log_progress).run(context)
    if not result.ok:
        return 1

    audited = sum(1 for record in result.records if not record.analysis.has_notes)
    logger.info(
        "Audited %d of %d packages (%d with notes)",
        audited,
        len(result.records),
        len(result.records) - audited,
    )
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
