"""
Per-run bookkeeping and summary reporting

Copyright 2025 HyperSec

Licensed under the Apache License, Version 2.0 (the "License");
you may not use this file except in compliance with the License.
You may obtain a copy of the License at

    http://www.apache.org/licenses/LICENSE-2.0

Unless required by applicable law or agreed to in writing, software
distributed under the License is distributed on an "AS IS" BASIS,
WITHOUT WARRANTIES OR CONDITIONS OF ANY KIND, either express or implied.
See the License for the specific language governing permissions and
limitations under the License.
"""

import threading
from dataclasses import dataclass, field
from typing import Dict, List, Optional

from loguru import logger
from rich.console import Console
from rich.table import Table

INVALID = "invalid"
FORK = "fork"
UNMATCHED = "unmatched"
EXCLUDED = "excluded"
INACTIVE = "inactive"
UPTODATE = "uptodate"
EMPTY = "empty"
FAILED = "failed"
CANCELLED = "cancelled"
SYNCED = "synced"

CATEGORY_DESCRIPTIONS = {
    INVALID: "skipped repositories due to invalid naming",
    FORK: "skipped forked repositories",
    UNMATCHED: "skipped repositories not matching include patterns",
    EXCLUDED: "skipped repositories matching exclude patterns",
    INACTIVE: "skipped repositories outside the activity interval",
    UPTODATE: "ignored up-to-date repositories",
    EMPTY: "skipped empty repositories",
    FAILED: "repositories that failed to sync",
    CANCELLED: "repositories not attempted because the run was cancelled",
}


@dataclass
class TargetOutcome:
    repository: str
    target: str
    status: str
    error: Optional[str] = None


@dataclass
class RunSummary:
    """Externally observable outcome of one run"""

    source_domain: str
    namespace: str
    targets: List[str]
    total: int
    failures: Dict[str, List[str]]
    synced: List[str]
    dry_run: bool = False

    @property
    def counts(self) -> Dict[str, int]:
        return {category: len(names) for category, names in self.failures.items()}

    @property
    def has_failures(self) -> bool:
        return bool(self.failures.get(FAILED))


class SyncRunMetainfo:
    """
    Record of what a single run attempted.

    Created once per run by the orchestrator and passed explicitly to the
    code that needs it. Writes are serialized with a lock so repositories
    transferred in parallel can record their outcomes. After close() the
    record is read-only.
    """

    def __init__(self, source_domain: str = "", namespace: str = "", total: int = 0):
        self.source_domain = source_domain
        self.namespace = namespace
        self.total = total
        self.fail: Dict[str, List[str]] = {}
        self.synced: List[str] = []
        self.outcomes: List[TargetOutcome] = []
        self._lock = threading.Lock()
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    def _check_writable(self):
        if self._closed:
            raise RuntimeError("sync run metainfo is read-only after the summary")

    def set_total(self, total: int):
        with self._lock:
            self._check_writable()
            self.total = total

    def record(self, category: str, repository: str):
        with self._lock:
            self._check_writable()
            self.fail.setdefault(category, []).append(repository)

    def record_outcome(
        self,
        repository: str,
        target: str,
        status: str,
        error: Optional[str] = None,
    ):
        """Record the result of one repository against one target"""
        with self._lock:
            self._check_writable()
            self.outcomes.append(TargetOutcome(repository, target, status, error))
            names = self.synced if status == SYNCED else self.fail.setdefault(status, [])
            # One entry per repository even when several targets report the same status
            if repository not in names:
                names.append(repository)

    def names(self, category: str) -> List[str]:
        return list(self.fail.get(category, []))

    def close(self):
        with self._lock:
            self._closed = True

    def summary(self, targets: List[str], dry_run: bool = False) -> RunSummary:
        with self._lock:
            return RunSummary(
                source_domain=self.source_domain,
                namespace=self.namespace,
                targets=list(targets),
                total=self.total,
                failures={k: list(v) for k, v in self.fail.items()},
                synced=list(self.synced),
                dry_run=dry_run,
            )


def log_sync_start(source_label: str, target_labels: List[str]):
    logger.info(f"[SYNC] Syncing from {source_label}")
    for label in target_labels:
        logger.info(f"[SYNC] Targeting {label}")


def log_summary(summary: RunSummary):
    """Write the run summary to the log"""
    logger.info("=" * 60)
    logger.info("[SUMMARY] SYNC SUMMARY")
    logger.info("=" * 60)
    logger.info(
        f"[SUMMARY] Completed sync run for {summary.source_domain} ({summary.namespace})"
    )
    logger.info(f"[SUMMARY] Sync request: {summary.total} repositories")
    if summary.dry_run:
        logger.info("[SUMMARY] Dry run: no repositories were transferred")
    else:
        logger.info(f"[SUMMARY] Synced: {len(summary.synced)} repositories")

    for category, names in summary.failures.items():
        if not names:
            continue
        description = CATEGORY_DESCRIPTIONS.get(category, category)
        message = f"[SUMMARY] {description} ({len(names)}): {', '.join(names)}"
        if category == FAILED:
            logger.error(message)
        else:
            logger.info(message)


def render_summary(summary: RunSummary, console: Optional[Console] = None):
    """Print the run summary as a table"""
    console = console or Console()
    table = Table(title="Sync summary", show_lines=False)
    table.add_column("Category")
    table.add_column("Count", justify="right")
    table.add_column("Repositories")

    table.add_row("total", str(summary.total), "")
    table.add_row("synced", str(len(summary.synced)), ", ".join(summary.synced))
    for category, names in summary.failures.items():
        style = "red" if category == FAILED else None
        table.add_row(category, str(len(names)), ", ".join(names), style=style)

    console.print(table)
