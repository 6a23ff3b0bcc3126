"""
Synchronization run orchestration

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

import tempfile
import threading
import uuid
from concurrent.futures import ThreadPoolExecutor, as_completed
from enum import Enum
from pathlib import Path
from typing import Callable, List, Optional

from loguru import logger
from tqdm import tqdm

from .base import ProjectInfo, ProviderType, PullOption, PushOption, RepositoryManager, redact_url
from .config import ProviderConfig, SyncConfig
from .exceptions import RepositoryError
from .filtering import filter_project_infos
from .generic_manager import GenericGitManager
from .git_transfer import GitTransfer, robust_rmtree
from .gitea_manager import GiteaManager
from .github_manager import GitHubManager
from .gitlab_manager import GitLabManager
from .metainfo import (
    CANCELLED,
    EMPTY,
    FAILED,
    SYNCED,
    UPTODATE,
    RunSummary,
    SyncRunMetainfo,
    log_summary,
    log_sync_start,
)
from .naming import validator_for
from .targets import DefaultBranchHeadComparison, Target, UpToDateStrategy, build_target

MANAGERS = {
    ProviderType.GITHUB: GitHubManager,
    ProviderType.GITLAB: GitLabManager,
    ProviderType.GITEA: GiteaManager,
    ProviderType.GENERIC_GIT: GenericGitManager,
}


def build_manager(config: ProviderConfig) -> RepositoryManager:
    """Instantiate the binding for a hosting provider or generic git endpoint"""
    try:
        manager_class = MANAGERS[config.provider_type]
    except KeyError:
        raise ValueError(
            f"{config.provider_type.value} has no repository manager"
        ) from None
    return manager_class(config)


class SyncState(str, Enum):
    INITIALIZED = "initialized"
    LISTING = "listing"
    FILTERING = "filtering"
    TRANSFERRING = "transferring"
    SUMMARIZING = "summarizing"
    COMPLETE = "complete"


class SyncOrchestrator:
    """
    Drives one run: list the source, filter, transfer each repository to
    every target and summarize.

    A failure while listing aborts the run. Failures while transferring are
    recorded per repository and target, and the run carries on with the
    next one.
    """

    def __init__(
        self,
        config: SyncConfig,
        source_manager: Optional[RepositoryManager] = None,
        targets: Optional[List[Target]] = None,
        git: Optional[GitTransfer] = None,
        strategy: Optional[UpToDateStrategy] = None,
        manager_factory: Callable[[ProviderConfig], RepositoryManager] = build_manager,
        show_progress: bool = True,
    ):
        self.config = config
        self.git = git or GitTransfer()
        self.source_manager = source_manager or manager_factory(config.source)
        if targets is None:
            targets = [
                build_target(
                    t,
                    self.git,
                    None if t.provider_type.is_local else manager_factory(t),
                )
                for t in config.targets
            ]
        self.targets = targets
        self.strategy = strategy or DefaultBranchHeadComparison()
        self.show_progress = show_progress
        self.state = SyncState.INITIALIZED
        self.metainfo: Optional[SyncRunMetainfo] = None

        if config.work_dir:
            self.work_dir = Path(config.work_dir) / "git-provider-sync"
        else:
            self.work_dir = Path(tempfile.gettempdir()) / "git-provider-sync"

    def _transition(self, state: SyncState):
        logger.debug(f"[STATE] {self.state.value} -> {state.value}")
        self.state = state

    def is_valid_name(self, name: str) -> bool:
        """A repository must be nameable on the source and on every target"""
        if not self.source_manager.is_valid_repository_name(name):
            return False
        return all(
            validator_for(target.config.provider_type).is_valid(name)
            for target in self.targets
        )

    def list_repositories(
        self, metainfo: Optional[SyncRunMetainfo] = None
    ) -> List[ProjectInfo]:
        """Fetch and filter the source listing"""
        source = self.config.source
        self._transition(SyncState.LISTING)
        projects = self.source_manager.project_infos(source)
        logger.info(f"[DISCOVER] Found {len(projects)} repositories on {source.describe()}")

        self._transition(SyncState.FILTERING)
        return filter_project_infos(
            source, projects, is_valid_name=self.is_valid_name, metainfo=metainfo
        )

    def run(self, cancel_event: Optional[threading.Event] = None) -> RunSummary:
        if self.state != SyncState.INITIALIZED:
            raise RuntimeError("a SyncOrchestrator can only run once")

        source = self.config.source
        cancel_event = cancel_event or threading.Event()
        metainfo = SyncRunMetainfo(source_domain=source.get_domain(), namespace=source.owner)
        self.metainfo = metainfo
        labels = [target.label for target in self.targets]

        log_sync_start(source.describe(), labels)
        projects = self.list_repositories(metainfo)
        metainfo.set_total(len(projects))

        self._transition(SyncState.TRANSFERRING)
        if not projects:
            logger.warning("[WARN] No repositories in scope to sync")
        elif self.config.dry_run:
            self._dry_run(projects)
        else:
            self._transfer_all(projects, metainfo, cancel_event)

        self._transition(SyncState.SUMMARIZING)
        summary = metainfo.summary(labels, dry_run=self.config.dry_run)
        metainfo.close()
        log_summary(summary)

        self._transition(SyncState.COMPLETE)
        return summary

    def _dry_run(self, projects: List[ProjectInfo]):
        for project in projects:
            for target in self.targets:
                logger.info(
                    f"[DRY-RUN] Would sync {project.name} ({project.default_branch}) "
                    f"to {target.label}"
                )

    def cleanup_stale_clones(self):
        """Remove clone directories left behind by interrupted runs"""
        if not self.work_dir.exists():
            return
        stale_count = 0
        for item in self.work_dir.iterdir():
            if item.is_dir() and item.name.endswith("_clone"):
                if robust_rmtree(item, logger):
                    stale_count += 1
        if stale_count > 0:
            logger.info(
                f"[CLEANUP] Removed {stale_count} stale clone directories from previous runs"
            )

    def _transfer_all(
        self,
        projects: List[ProjectInfo],
        metainfo: SyncRunMetainfo,
        cancel_event: threading.Event,
    ):
        self.work_dir.mkdir(parents=True, exist_ok=True)
        self.cleanup_stale_clones()

        workers = min(self.config.workers, len(projects))
        logger.info(
            f"[PROCESS] Using {'parallel' if workers > 1 else 'sequential'} processing"
            f"{' with ' + str(workers) + ' workers' if workers > 1 else ''}..."
        )

        successful = 0
        failed = 0
        with tqdm(
            total=len(projects), desc="Syncing", unit="repo", disable=not self.show_progress
        ) as pbar:
            if workers > 1:
                with ThreadPoolExecutor(max_workers=workers) as executor:
                    futures = [
                        executor.submit(self.sync_repository, project, metainfo, cancel_event)
                        for project in projects
                    ]
                    for future in as_completed(futures):
                        if future.result():
                            successful += 1
                        else:
                            failed += 1
                        pbar.update(1)
                        pbar.set_postfix({"OK": successful, "FAIL": failed})
            else:
                for project in projects:
                    pbar.set_description(f"[SYNC] {project.name}")
                    if self.sync_repository(project, metainfo, cancel_event):
                        successful += 1
                    else:
                        failed += 1
                    pbar.update(1)
                    pbar.set_postfix({"OK": successful, "FAIL": failed})

    def pending_targets(
        self, project: ProjectInfo, metainfo: SyncRunMetainfo
    ) -> List[Target]:
        """Targets that do not hold the current state of the repository yet"""
        if not self.strategy.requires_heads:
            return list(self.targets)

        source = self.config.source
        source_head = None
        source_checked = False
        pending = []
        for target in self.targets:
            try:
                target_head = target.head(project)
                if target_head is not None and not source_checked:
                    source_head = self.git.remote_head(
                        source.credentials().apply(project.clone_url(source.git.transport)),
                        project.default_branch,
                        project.name,
                    )
                    source_checked = True
                current = self.strategy.is_up_to_date(project, source_head, target_head)
            except RepositoryError as e:
                logger.warning(
                    f"[CHECK] Could not compare {project.name} on {target.label}, syncing anyway: {e}"
                )
                current = False
            except Exception as e:
                logger.warning(
                    f"[CHECK] Unexpected error comparing {project.name} on {target.label}, "
                    f"syncing anyway: {e!r}"
                )
                current = False

            if current:
                logger.info(f"[SKIP] {project.name} is up to date on {target.label}")
                metainfo.record_outcome(project.name, target.label, UPTODATE)
            else:
                pending.append(target)
        return pending

    def sync_repository(
        self,
        project: ProjectInfo,
        metainfo: SyncRunMetainfo,
        cancel_event: Optional[threading.Event] = None,
    ) -> bool:
        """Transfer one repository to every target that needs it"""
        name = project.name
        if cancel_event is not None and cancel_event.is_set():
            metainfo.record(CANCELLED, name)
            return False

        pending = self.pending_targets(project, metainfo)
        if not pending:
            return True

        source = self.config.source
        clone_dir = self.work_dir / f"{name}_{uuid.uuid4().hex[:8]}_clone"
        logger.info(f"[SYNC] Syncing {name} to {len(pending)} target(s)")

        try:
            self.git.pull(
                PullOption(
                    name=name,
                    url=project.clone_url(source.git.transport),
                    mirror=True,
                    credentials=source.credentials(),
                ),
                clone_dir,
            )
            if not self.git.has_commits(clone_dir, name):
                logger.info(f"[SKIP] Skipping {name} - repository is empty (no commits)")
                metainfo.record(EMPTY, name)
                return True

            ok = True
            for target in pending:
                ok = self._push_to_target(project, clone_dir, target, metainfo) and ok
            return ok

        except Exception as e:
            logger.error(f"[ERROR] Failed to fetch {name} from {source.describe()}: {e}")
            for target in pending:
                metainfo.record_outcome(name, target.label, FAILED, str(e))
            return False

        finally:
            robust_rmtree(clone_dir, logger)

    def _push_to_target(
        self,
        project: ProjectInfo,
        clone_dir: Path,
        target: Target,
        metainfo: SyncRunMetainfo,
    ) -> bool:
        try:
            location = target.push(
                project,
                clone_dir,
                PushOption(target="", force=target.config.force_push),
                target.config.git,
            )
        except Exception as e:
            logger.error(f"[ERROR] Failed to sync {project.name} to {target.label}: {e}")
            metainfo.record_outcome(project.name, target.label, FAILED, str(e))
            return False

        logger.info(f"[SUCCESS] Synced {project.name} to {redact_url(location)}")
        metainfo.record_outcome(project.name, target.label, SYNCED)
        return True
