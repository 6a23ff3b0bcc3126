"""
Target materialization: provider, directory and archive targets

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

import logging
from abc import ABC, abstractmethod
from dataclasses import replace
from enum import Enum
from pathlib import Path
from typing import Optional

from .archive import archive_name, working_dir_for, write_archive
from .base import (
    CreateOption,
    Credentials,
    GitOption,
    ProjectInfo,
    ProviderType,
    PushOption,
    RepositoryManager,
)
from .config import ProviderConfig
from .exceptions import RepositoryError, TargetDirectoryError
from .git_transfer import GitTransfer, robust_rmtree


class TargetKind(str, Enum):
    PROVIDER = "provider"
    DIRECTORY = "directory"
    ARCHIVE = "archive"


class UpToDateStrategy(ABC):
    """Decides whether a target already holds the current state of a repository"""

    # Strategies that never look at heads let the orchestrator skip the lookups
    requires_heads = True

    @abstractmethod
    def is_up_to_date(
        self,
        project: ProjectInfo,
        source_head: Optional[str],
        target_head: Optional[str],
    ) -> bool:
        pass


class DefaultBranchHeadComparison(UpToDateStrategy):
    """Current means the target's default branch points at the source's commit"""

    def is_up_to_date(self, project, source_head, target_head) -> bool:
        return source_head is not None and source_head == target_head


class NeverUpToDate(UpToDateStrategy):
    """Always transfer"""

    requires_heads = False

    def is_up_to_date(self, project, source_head, target_head) -> bool:
        return False


class Target(ABC):
    """One configured destination; every kind is pushed through the same call"""

    kind: TargetKind

    def __init__(self, config: ProviderConfig, git: GitTransfer):
        self.config = config
        self.git = git
        self.logger = logging.getLogger(self.__class__.__name__)

    @property
    def label(self) -> str:
        return self.config.describe()

    @abstractmethod
    def head(self, project: ProjectInfo) -> Optional[str]:
        """Commit the target holds for the project's default branch, if any"""

    @abstractmethod
    def push(
        self,
        project: ProjectInfo,
        repo_dir: Path,
        option: Optional[PushOption] = None,
        git_option: Optional[GitOption] = None,
    ) -> str:
        """Materialize the repository cloned at repo_dir; returns its location"""

    def _push_option(self, option: Optional[PushOption], target: str, credentials: Credentials) -> PushOption:
        option = option or PushOption(target="", force=self.config.force_push)
        return replace(option, target=target, credentials=credentials)


class ProviderTarget(Target):
    kind = TargetKind.PROVIDER

    def __init__(self, config: ProviderConfig, git: GitTransfer, manager: RepositoryManager):
        super().__init__(config, git)
        self.manager = manager

    def _remote_url(self, info: ProjectInfo) -> str:
        return info.clone_url(self.config.git.transport)

    def head(self, project: ProjectInfo) -> Optional[str]:
        info = self.manager.project_info(self.config, project.name)
        if info is None:
            return None
        url = self.config.credentials().apply(self._remote_url(info))
        return self.git.remote_head(url, project.default_branch, project.name)

    def _ensure_exists(self, project: ProjectInfo) -> ProjectInfo:
        info = self.manager.project_info(self.config, project.name)
        if info is not None:
            return info

        visibility = self.config.visibility or project.visibility
        self.logger.info(
            f"[CREATE] Creating {project.name} on {self.label} ({visibility.value})"
        )
        self.manager.create(
            self.config,
            CreateOption(
                repository_name=project.name,
                description=project.description,
                default_branch=project.default_branch,
                visibility=visibility,
                disabled=self.config.disable_features,
                ci_enabled=self.config.ci_enabled,
            ),
        )
        info = self.manager.project_info(self.config, project.name)
        if info is None:
            raise RepositoryError(
                "create", project.name, f"not found on {self.label} after creation"
            )
        return info

    def push(self, project, repo_dir, option=None, git_option=None) -> str:
        info = self._ensure_exists(project)
        owner = self.config.owner
        branch = project.default_branch
        option = self._push_option(option, self._remote_url(info), self.config.credentials())

        if option.force and self.config.protect_default_branch:
            self.manager.unprotect(owner, project.name, branch)

        self.git.push(repo_dir, option, git_option or self.config.git, project.name)
        self.manager.set_default_branch(owner, project.name, branch)

        if self.config.protect_default_branch:
            self.manager.protect(owner, project.name, branch)

        return option.target


class DirectoryTarget(Target):
    kind = TargetKind.DIRECTORY

    def path_for(self, project: ProjectInfo) -> Path:
        return Path(self.config.directory) / project.name

    def head(self, project: ProjectInfo) -> Optional[str]:
        return self.git.local_head(self.path_for(project), project.default_branch)

    def _check_path(self, project: ProjectInfo, path: Path):
        if not path.exists():
            return
        if not path.is_dir():
            raise TargetDirectoryError("push", project.name, f"{path} is not a directory")
        if any(path.iterdir()) and not self.git.is_repository(path):
            raise TargetDirectoryError(
                "push", project.name, f"{path} exists and is not a git repository"
            )

    def materialize(self, project: ProjectInfo, repo_dir: Path, path: Path, option, git_option):
        """Initialize path, push into it and check out the default branch"""
        git_option = git_option or self.config.git
        branch = project.default_branch

        self.git.init(path, branch, project.name)
        # Local copies always follow the source, including rewritten history
        push_option = replace(self._push_option(option, str(path), Credentials()), force=True)
        self.git.push(repo_dir, push_option, git_option, project.name)
        self.git.set_remote_and_branch(project, path, git_option.transport)
        self.git.set_default_branch(path, branch, project.name)
        if (path / ".git").is_dir():
            self.git.checkout_head(path, project.name)

    def push(self, project, repo_dir, option=None, git_option=None) -> str:
        path = self.path_for(project)
        self._check_path(project, path)
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise TargetDirectoryError("push", project.name, e) from e

        self.logger.info(f"[DIRECTORY] Writing {project.name} to {path}")
        self.materialize(project, repo_dir, path, option, git_option)
        return str(path)


class ArchiveTarget(DirectoryTarget):
    kind = TargetKind.ARCHIVE

    def head(self, project: ProjectInfo) -> Optional[str]:
        # Archives are write-once snapshots, there is nothing to compare against
        return None

    def push(self, project, repo_dir, option=None, git_option=None) -> str:
        archive_path = Path(self.config.archive_dir) / archive_name(project.name)
        work_dir = working_dir_for(archive_path)

        try:
            archive_path.parent.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise TargetDirectoryError("archive", project.name, e) from e

        try:
            self.materialize(project, repo_dir, work_dir, option, git_option)
            write_archive(work_dir, archive_path, project.name)
        finally:
            robust_rmtree(work_dir, self.logger)

        return str(archive_path)


def build_target(
    config: ProviderConfig,
    git: GitTransfer,
    manager: Optional[RepositoryManager] = None,
) -> Target:
    """Create the target variant for a configured destination"""
    if config.provider_type == ProviderType.DIRECTORY:
        return DirectoryTarget(config, git)
    if config.provider_type == ProviderType.ARCHIVE:
        return ArchiveTarget(config, git)
    if manager is None:
        raise ValueError(f"{config.provider_type.value} target needs a repository manager")
    return ProviderTarget(config, git, manager)
