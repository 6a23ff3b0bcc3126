#!/usr/bin/env python3
"""
Mirror git repositories between GitHub, GitLab, Gitea, plain git remotes,
local directories and archives
"""

import argparse
import inspect
import logging
import os
import signal
import sys
import threading
from dataclasses import replace
from pathlib import Path
from typing import List, Optional

from dotenv import load_dotenv
from loguru import logger
from rich.console import Console
from rich.table import Table
from rich_argparse import ArgumentDefaultsRichHelpFormatter

from .config import SyncConfig, load_config
from .exceptions import ConfigurationError, ListingError
from .metainfo import FAILED, render_summary
from .orchestrator import SyncOrchestrator

# Load environment variables from .env file
load_dotenv()


class InterceptHandler(logging.Handler):
    """Route standard library log records into loguru"""

    def emit(self, record: logging.LogRecord):
        try:
            level = logger.level(record.levelname).name
        except ValueError:
            level = record.levelno

        # Find the caller that issued the logging call
        frame, depth = inspect.currentframe(), 0
        while frame and (depth == 0 or frame.f_code.co_filename == logging.__file__):
            frame = frame.f_back
            depth += 1

        logger.opt(depth=depth, exception=record.exc_info).log(level, record.getMessage())


def setup_logging(verbose: bool = False, log_file: str = "git-provider-sync.log"):
    """Setup console and file logging with loguru"""

    # Remove default loguru handler
    logger.remove()

    log_dir = Path("logs")
    log_dir.mkdir(exist_ok=True)
    log_file_path = log_dir / log_file

    log_level = "DEBUG" if verbose else "INFO"

    console_format = (
        "<green>{time:YYYY-MM-DD HH:mm:ss}</green> | "
        "<level>{level: <8}</level> | "
        "<level>{message}</level>"
    )
    logger.add(sys.stdout, format=console_format, level=log_level, colorize=True)

    file_format = "{time:YYYY-MM-DD HH:mm:ss} | {level: <8} | {name}:{function}:{line} | {message}"
    logger.add(
        log_file_path,
        format=file_format,
        level=log_level,
        rotation="10 MB",
        retention="30 days",
        compression="zip",
        encoding="utf-8",
    )

    # Provider bindings and libraries log through the standard library
    logging.basicConfig(handlers=[InterceptHandler()], level=0, force=True)
    for noisy in ("urllib3", "github", "gitlab"):
        logging.getLogger(noisy).setLevel(logging.DEBUG if verbose else logging.WARNING)

    logger.info("[CONFIG] Logging configured")
    logger.debug(f"Log file: {log_file_path}")

    return logger


# Configure basic loguru logging (will be reconfigured in main())
logger.remove()
logger.add(sys.stdout, level="INFO", colorize=True)


def get_env_default(env_var: str, fallback=None):
    """Get value from environment or .env file"""
    return os.getenv(env_var, fallback)


def split_patterns(value: Optional[str]) -> List[str]:
    if not value:
        return []
    return [p.strip() for p in value.split(",") if p.strip()]


def apply_cli_overrides(config: SyncConfig, args: argparse.Namespace) -> SyncConfig:
    """Command line options win over the configuration file"""
    if args.dry_run:
        config.dry_run = True
    if args.workers is not None:
        if args.workers < 1:
            raise ConfigurationError("--workers must be at least 1")
        config.workers = args.workers
    if args.work_dir:
        config.work_dir = args.work_dir

    include = split_patterns(args.repos)
    exclude = split_patterns(args.exclude)
    if include or exclude:
        filters = config.source.filters
        config.source.filters = replace(
            filters,
            included_repositories=tuple(include) or filters.included_repositories,
            excluded_repositories=filters.excluded_repositories + tuple(exclude),
        )
    return config


def validate_configuration(config: SyncConfig) -> bool:
    """Report the loaded configuration and anything that will stop a run"""
    logger.info("[CONFIG] Validating configuration...")
    issues = []
    warnings = []

    logger.info(f"[CONFIG] Source: {config.source.describe()}")
    if config.source.provider_type.is_hosting and not config.source.token:
        warnings.append(f"No token for source {config.source.describe()}")

    for target in config.targets:
        logger.info(f"[CONFIG] Target: {target.describe()}")
        if target.provider_type.is_hosting and not target.token:
            issues.append(f"No token for target {target.describe()}")
        if target.directory and Path(target.directory).is_file():
            issues.append(f"Target directory is a file: {target.directory}")

    if config.work_dir and not Path(config.work_dir).exists():
        issues.append(f"Working directory does not exist: {config.work_dir}")

    logger.info("=" * 50)
    for warning in warnings:
        logger.warning(f"[CONFIG] {warning}")
    for issue in issues:
        logger.error(f"[CONFIG] {issue}")

    if issues:
        logger.error("[CONFIG] Configuration validation failed")
        return False
    if warnings:
        logger.info("[CONFIG] Configuration valid with warnings")
    else:
        logger.info("[CONFIG] All configuration checks passed")
    return True


def list_repositories(orchestrator: SyncOrchestrator, console: Optional[Console] = None):
    """Print the source repositories that are in scope for a sync"""
    console = console or Console()
    projects = orchestrator.list_repositories()

    table = Table(title=f"Repositories on {orchestrator.config.source.describe()}")
    table.add_column("Name")
    table.add_column("Default branch")
    table.add_column("Visibility")
    table.add_column("Last activity")
    for project in projects:
        table.add_row(
            project.name,
            project.default_branch,
            project.visibility.value,
            project.last_activity_at.isoformat() if project.last_activity_at else "",
        )
    console.print(table)
    return projects


def install_signal_handler(cancel_event: threading.Event):
    """First Ctrl-C stops starting new repositories, the second one aborts"""

    def handler(signum, frame):
        if cancel_event.is_set():
            raise KeyboardInterrupt
        logger.warning(
            "[CANCEL] Interrupt received, finishing in-flight repositories. "
            "Press Ctrl-C again to abort"
        )
        cancel_event.set()

    signal.signal(signal.SIGINT, handler)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="git-provider-sync",
        description="[bold blue]Git Provider Sync[/bold blue] - Mirror repositories from GitHub, GitLab, Gitea or a git server to other providers, directories or archives",
        epilog="""
[bold green]Examples:[/bold green]
  [dim]# Sync everything described in a configuration file[/dim]
  [yellow]%(prog)s[/yellow] [magenta]sync.yaml[/magenta]

  [dim]# Show what would happen without writing anything[/dim]
  [yellow]%(prog)s[/yellow] [magenta]sync.yaml[/magenta] [cyan]--dry-run[/cyan]

  [dim]# Only repositories matching a pattern[/dim]
  [yellow]%(prog)s[/yellow] [magenta]sync.yaml[/magenta] [cyan]--repos[/cyan] 'service-*' [cyan]--exclude[/cyan] '*-archive'

  [dim]# List in-scope repositories[/dim]
  [yellow]%(prog)s[/yellow] [magenta]sync.yaml[/magenta] [cyan]--list[/cyan]
        """,
        formatter_class=ArgumentDefaultsRichHelpFormatter,
        add_help=False,
    )

    parser.add_argument(
        "-h", "--help", action="help", help="Show this help message and exit"
    )
    parser.add_argument(
        "config",
        nargs="?",
        default=get_env_default("GPS_CONFIG"),
        help="Path to the YAML sync configuration (env: GPS_CONFIG)",
    )

    ops_group = parser.add_argument_group("Sync Operations")
    ops_group.add_argument(
        "--dry-run",
        action="store_true",
        help="Log the actions a sync would take without writing anything (env: GPS_DRY_RUN)",
    )
    ops_group.add_argument(
        "--repos",
        metavar="PATTERNS",
        help="Comma-separated glob patterns of repositories to include",
    )
    ops_group.add_argument(
        "--exclude",
        metavar="PATTERNS",
        help="Comma-separated glob patterns of repositories to exclude",
    )
    ops_group.add_argument(
        "--list", action="store_true", help="List the repositories in scope and exit"
    )

    diag_group = parser.add_argument_group("Diagnostic Commands")
    diag_group.add_argument(
        "--validate-config",
        action="store_true",
        help="Validate the configuration and exit",
    )

    perf_group = parser.add_argument_group("Performance Options")
    perf_group.add_argument(
        "--workers",
        type=int,
        default=None,
        metavar="N",
        help="Number of repositories synced in parallel (env: PARALLEL_WORKERS, default: 1)",
    )
    perf_group.add_argument(
        "--work-dir",
        type=str,
        default=None,
        metavar="DIR",
        help="Working directory for temporary clones (env: WORK_DIR, default: system temp)",
    )

    log_group = parser.add_argument_group("Logging Options")
    log_group.add_argument(
        "--verbose",
        "-v",
        action="store_true",
        help="Enable verbose logging (DEBUG level)",
    )
    log_group.add_argument(
        "--log-file",
        default=get_env_default("LOG_FILE", "git-provider-sync.log"),
        metavar="FILE",
        help="Log file name (env: LOG_FILE)",
    )
    return parser


def main(argv: Optional[List[str]] = None):
    # Load environment variables first (before parsing args)
    load_dotenv()

    parser = build_parser()
    args = parser.parse_args(argv)

    setup_logging(verbose=args.verbose, log_file=args.log_file)

    if not args.config:
        logger.error(
            "[ERROR] No configuration file given. Pass it as argument or set GPS_CONFIG."
        )
        sys.exit(1)

    try:
        config = apply_cli_overrides(load_config(args.config), args)
    except ConfigurationError as e:
        logger.error(f"[CONFIG] {e}")
        sys.exit(1)

    if args.validate_config:
        if not validate_configuration(config):
            sys.exit(1)
        return

    try:
        orchestrator = SyncOrchestrator(config)
    except ConfigurationError as e:
        logger.error(f"[CONFIG] {e}")
        sys.exit(1)

    try:
        if args.list:
            list_repositories(orchestrator)
            return

        if config.dry_run:
            logger.info("[DRY-RUN] Dry run enabled, nothing will be written")

        cancel_event = threading.Event()
        install_signal_handler(cancel_event)
        summary = orchestrator.run(cancel_event=cancel_event)
    except ListingError as e:
        logger.error(f"[ERROR] {e}")
        sys.exit(1)

    render_summary(summary)

    if summary.has_failures:
        logger.error(
            f"[WARN] {len(summary.failures[FAILED])} repositories failed to sync - check logs for details"
        )
        sys.exit(1)
    logger.info("[COMPLETE] Sync finished successfully!")


if __name__ == "__main__":
    main()
