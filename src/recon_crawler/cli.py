"""Command line interface: ``recon-crawler crawl|resume|list-checkpoints|delete-checkpoint``.

Exit codes: 0 success, 1 failure, 2 invalid usage or configuration,
3 interrupted with a checkpoint saved.
"""

from __future__ import annotations

import argparse
import asyncio
from collections.abc import Sequence
import logging
import sys
from typing import Any

import orjson
from rich.console import Console
from rich.table import Table

from . import __version__
from .config import Settings, load_settings
from .crawler import EXIT_FAILURE, EXIT_INTERRUPTED, EXIT_OK, EXIT_USAGE, CrawlRun, ReconCrawler
from .domain.crawl_state import CrawlState
from .errors import CheckpointError, CheckpointNotFoundError, ConfigError
from .observability.logging import configure_logging
from .observability.metrics import init_metrics, write_metrics_file
from .observability.tracing import init_tracing
from .output.checkpoint import CheckpointStore
from .runtime.signals import install_shutdown_signals, restore_default_signals


logger = logging.getLogger(__name__)

console = Console()

_observability: dict[str, bool] = {"ready": False}


def _add_crawl_options(parser: argparse.ArgumentParser) -> None:
    """Flags shared by ``crawl`` and ``resume``; unset flags fall through to RECON_* env."""
    limits = parser.add_argument_group("limits")
    limits.add_argument("--max-depth", type=int, dest="max_depth", help="Maximum link depth from the seed")
    limits.add_argument("--max-urls", type=int, dest="max_urls", help="Global cap on URLs ever enqueued")
    limits.add_argument("--workers", type=int, help="Concurrent workers (default 20, 30 when max depth > 2)")
    limits.add_argument("--rate", type=float, dest="rate_per_second", help="Requests per second")
    limits.add_argument("--burst", type=int, help="Token bucket burst size")
    limits.add_argument("--timeout", type=float, dest="request_timeout", help="Base request timeout in seconds")
    limits.add_argument("--deadline", type=float, dest="deadline_seconds", help="Stop and checkpoint after N seconds")

    scope = parser.add_argument_group("scope")
    scope.add_argument("--scope", choices=("strict", "sub", "rdn", "all"), dest="scope_mode", help="Host scope mode")
    scope.add_argument("--blacklist", dest="blacklist_hosts", help="Comma-separated hosts to skip")
    scope.add_argument("--blacklist-regex", dest="blacklist_regex", help="Comma-separated URL regexes to skip")
    scope.add_argument("--include-paths", dest="include_paths", help="Comma-separated path globs to keep")
    scope.add_argument("--exclude-paths", dest="exclude_paths", help="Comma-separated path globs to skip")
    scope.add_argument(
        "--no-query", dest="allow_query", action="store_false", default=None, help="Skip URLs with a query string"
    )

    auth = parser.add_argument_group("requests").add_mutually_exclusive_group()
    auth.add_argument("--cookie", help="Cookie header value, e.g. 'session=abc; theme=dark'")
    auth.add_argument("--cookie-file", dest="cookie_file", help="JSON, Netscape cookies.txt or name=value file")
    parser.add_argument("--user-agent", dest="user_agent", help="User-Agent header (random browser UA by default)")

    sources = parser.add_argument_group("sources")
    sources.add_argument("--no-robots", dest="passive_robots", action="store_false", default=None)
    sources.add_argument("--no-sitemap", dest="passive_sitemap", action="store_false", default=None)
    sources.add_argument("--wayback", dest="passive_wayback", action="store_true", default=None)
    sources.add_argument("--commoncrawl", dest="passive_commoncrawl", action="store_true", default=None)
    sources.add_argument("--common-paths", dest="passive_common_paths", action="store_true", default=None)
    sources.add_argument("--virustotal-key", dest="virustotal_api_key", help="Enable the VirusTotal source")
    sources.add_argument("--burp", dest="burp_file", help="Burp Suite XML export to import")
    sources.add_argument("--har", dest="har_file", help="HAR capture to import")
    sources.add_argument("--fuzz", dest="fuzz_enabled", action="store_true", default=None, help="Fuzz ?param=value")
    sources.add_argument(
        "--fuzz-validate",
        dest="fuzz_validate",
        action="store_true",
        default=None,
        help="Probe fuzzed parameters and drop the ones the page ignores",
    )
    sources.add_argument(
        "--no-dom-dedup", dest="dom_dedup_enabled", action="store_false", default=None, help="Disable DOM dedup"
    )

    output = parser.add_argument_group("output")
    output.add_argument("--out-dir", dest="out_dir", help="Directory for result files")
    output.add_argument("--checkpoint-dir", dest="checkpoint_dir", help="Directory for checkpoint files")
    output.add_argument("--checkpoint-interval", type=float, dest="checkpoint_interval", help="Seconds between saves")
    output.add_argument("--metrics-file", dest="metrics_file", help="Write Prometheus metrics here at the end")
    output.add_argument("--log-level", dest="log_level", help="Logging level (debug, info, warning, error)")
    output.add_argument("--json-logs", dest="log_json", action="store_true", default=None, help="JSON log lines")


def build_argument_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="recon-crawler",
        description="Single-target web reconnaissance crawler",
    )
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    subcommands = parser.add_subparsers(dest="command", required=True, metavar="COMMAND")

    crawl = subcommands.add_parser("crawl", help="Start a new crawl")
    crawl.add_argument("--url", dest="target_url", required=True, help="Seed URL; its host defines the target")
    crawl.add_argument("--task-id", dest="task_id", help="Task id for checkpoint files (generated by default)")
    _add_crawl_options(crawl)
    crawl.set_defaults(handler=_cmd_crawl)

    resume = subcommands.add_parser("resume", help="Resume a crawl from its checkpoint")
    resume.add_argument("task_id", help="Task id of the checkpoint")
    _add_crawl_options(resume)
    resume.set_defaults(handler=_cmd_resume)

    listing = subcommands.add_parser("list-checkpoints", help="List saved checkpoints")
    listing.add_argument("--checkpoint-dir", dest="checkpoint_dir", help="Directory for checkpoint files")
    listing.add_argument("--json", dest="as_json", action="store_true", help="Print one JSON object per line")
    listing.set_defaults(handler=_cmd_list_checkpoints)

    delete = subcommands.add_parser("delete-checkpoint", help="Delete a saved checkpoint")
    delete.add_argument("task_id", help="Task id of the checkpoint")
    delete.add_argument("--checkpoint-dir", dest="checkpoint_dir", help="Directory for checkpoint files")
    delete.set_defaults(handler=_cmd_delete_checkpoint)
    return parser


_NON_SETTINGS = {"command", "handler", "as_json"}


def _overrides(args: argparse.Namespace) -> dict[str, Any]:
    return {key: value for key, value in vars(args).items() if key not in _NON_SETTINGS and value is not None}


def _setup_observability(settings: Settings) -> None:
    configure_logging(settings.log_level, settings.log_json)
    if not _observability["ready"]:
        init_tracing("recon-crawler")
        init_metrics("recon-crawler")
        _observability["ready"] = True


def _checkpoint_store(args: argparse.Namespace) -> CheckpointStore:
    if args.checkpoint_dir:
        return CheckpointStore(args.checkpoint_dir)
    return CheckpointStore(load_settings().checkpoint_path)


def _cmd_crawl(args: argparse.Namespace) -> int:
    try:
        settings = load_settings(**_overrides(args))
    except ConfigError as exc:
        logger.error(f"Invalid configuration: {exc}")
        return EXIT_USAGE
    _setup_observability(settings)
    return asyncio.run(_run_crawl(settings))


def _cmd_resume(args: argparse.Namespace) -> int:
    overrides = _overrides(args)
    task_id = overrides.pop("task_id")
    try:
        store = _checkpoint_store(args)
        state = asyncio.run(store.load(task_id))
        # Stored settings first, then anything given on this command line
        settings = load_settings(
            **{**state.config, **overrides, "task_id": state.task_id, "target_url": state.target_url}
        )
    except CheckpointNotFoundError as exc:
        logger.error(str(exc))
        return EXIT_USAGE
    except CheckpointError as exc:
        logger.error(f"Checkpoint is unreadable: {exc}")
        return EXIT_FAILURE
    except ConfigError as exc:
        logger.error(f"Invalid configuration: {exc}")
        return EXIT_USAGE
    _setup_observability(settings)
    return asyncio.run(_run_crawl(settings, state=state))


async def _run_crawl(settings: Settings, state: CrawlState | None = None) -> int:
    try:
        crawler = ReconCrawler(settings, state=state)
    except ConfigError as exc:
        logger.error(str(exc))
        return EXIT_USAGE

    install_shutdown_signals(event=crawler.stop_event)
    try:
        async with crawler:
            run = await crawler.run()
    except ConfigError as exc:
        logger.error(str(exc))
        return EXIT_USAGE
    finally:
        restore_default_signals()

    if settings.metrics_file:
        try:
            write_metrics_file(settings.metrics_file)
        except OSError as exc:
            logger.warning(f"Cannot write metrics file {settings.metrics_file}: {exc}")
    _print_run(run, settings)
    return run.exit_code


def _print_run(run: CrawlRun, settings: Settings) -> None:
    summary = run.summary
    table = Table(title=f"Crawl {summary.task_id}")
    table.add_column("Property", style="cyan")
    table.add_column("Value", style="magenta")
    table.add_row("Target", summary.target_url)
    table.add_row("Status", summary.status)
    table.add_row("Crawled", str(summary.total_crawled))
    table.add_row("Failed", str(summary.total_failed))
    table.add_row("Discovered URLs", str(summary.discovered_urls))
    table.add_row("Forms", str(summary.forms))
    table.add_row("APIs", str(len(summary.apis)))
    table.add_row("Subdomains", str(len(summary.subdomains)))
    table.add_row("External links", str(len(summary.external_links)))
    table.add_row("Cross-domain JS", str(len(summary.cross_domain_js)))
    table.add_row("Hidden paths", str(len(summary.hidden_paths)))
    table.add_row("Duration", f"{summary.duration_seconds:.1f}s")
    table.add_row("Results", str(settings.out_path))
    if run.checkpoint_path is not None:
        table.add_row("Checkpoint", str(run.checkpoint_path))
    console.print(table)

    if run.exit_code == EXIT_INTERRUPTED:
        console.print(f"Interrupted; resume with: recon-crawler resume {summary.task_id}", style="bold yellow")


def _cmd_list_checkpoints(args: argparse.Namespace) -> int:
    try:
        store = _checkpoint_store(args)
    except ConfigError as exc:
        logger.error(f"Invalid configuration: {exc}")
        return EXIT_USAGE
    infos = store.list_checkpoints()

    if args.as_json:
        for info in infos:
            sys.stdout.write(orjson.dumps(info.to_dict()).decode() + "\n")
        return EXIT_OK
    if not infos:
        console.print(f"No checkpoints in {store.directory}")
        return EXIT_OK

    table = Table(title=f"Checkpoints in {store.directory}")
    table.add_column("Task ID", style="cyan")
    table.add_column("Target")
    table.add_column("Status", style="magenta")
    table.add_column("Progress", justify="right")
    table.add_column("Crawled", justify="right")
    table.add_column("Pending", justify="right")
    table.add_column("Last update")
    for info in infos:
        table.add_row(
            info.task_id,
            info.target_url,
            info.status,
            f"{info.progress_percent:.1f}%",
            str(info.total_crawled),
            str(info.pending),
            info.last_update.strftime("%Y-%m-%d %H:%M:%S"),
        )
    console.print(table)
    return EXIT_OK


def _cmd_delete_checkpoint(args: argparse.Namespace) -> int:
    try:
        store = _checkpoint_store(args)
        store.delete(args.task_id)
    except ConfigError as exc:
        logger.error(f"Invalid configuration: {exc}")
        return EXIT_USAGE
    except CheckpointNotFoundError as exc:
        logger.error(str(exc))
        return EXIT_USAGE
    except OSError as exc:
        logger.error(f"Cannot delete checkpoint {args.task_id}: {exc}")
        return EXIT_FAILURE
    console.print(f"Deleted checkpoint {args.task_id}")
    return EXIT_OK


def main(argv: Sequence[str] | None = None) -> int:
    parser = build_argument_parser()
    args = parser.parse_args(argv)
    return args.handler(args)


if __name__ == "__main__":
    sys.exit(main())
