"""
Plain git remotes without a management API

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

from typing import List, Optional

from .base import CreateOption, ProjectInfo, RepositoryManager
from .config import ProviderConfig
from .exceptions import GitCommandError, ListingError
from .git_transfer import GitTransfer


class GenericGitManager(RepositoryManager):
    """
    Repositories on a git server reachable only through git itself.

    There is no listing API, so the configured repository names are the
    listing. Creation, default branch and protection cannot be managed
    remotely and are no-ops; repositories must already exist on the server.
    """

    def __init__(self, config: ProviderConfig, git: Optional[GitTransfer] = None):
        super().__init__(config)
        self.git = git or GitTransfer()

    def https_url(self, config: ProviderConfig, name: str) -> str:
        return f"{config.base_url()}/{config.owner}/{name}.git"

    def ssh_url(self, config: ProviderConfig, name: str) -> str:
        return f"git@{config.get_domain()}:{config.owner}/{name}.git"

    def _remote(self, config: ProviderConfig, name: str) -> str:
        if config.git.transport == "ssh":
            return self.ssh_url(config, name)
        return config.credentials().apply(self.https_url(config, name))

    def _project(self, config: ProviderConfig, name: str, branch: Optional[str]) -> ProjectInfo:
        return ProjectInfo(
            original_name=name,
            https_url=self.https_url(config, name),
            ssh_url=self.ssh_url(config, name),
            default_branch=branch,
            project_id=f"{config.owner}/{name}",
            owner=config.owner,
        )

    def get_repositories(self, config: ProviderConfig) -> List[ProjectInfo]:
        if not config.repositories:
            self.logger.warning(
                f"[CONFIG] No repositories configured for {config.describe()}"
            )
        projects = []
        for name in config.repositories:
            try:
                branch = self.git.remote_default_branch(self._remote(config, name), name)
            except GitCommandError as e:
                raise ListingError("generic-git", config.owner, e) from e
            projects.append(self._project(config, name, branch))
        return projects

    def project_info(self, config: ProviderConfig, name: str) -> Optional[ProjectInfo]:
        remote = self._remote(config, name)
        if not self.git.remote_exists(remote, name):
            return None
        try:
            branch = self.git.remote_default_branch(remote, name)
        except GitCommandError:
            branch = None
        return self._project(config, name, branch)

    def create(self, config: ProviderConfig, option: CreateOption) -> str:
        self.logger.warning(
            f"[CREATE] Cannot create {option.repository_name} on {config.get_domain()}, "
            "it must already exist"
        )
        return f"{config.owner}/{option.repository_name}"

    def set_default_branch(self, owner: str, name: str, branch: str) -> None:
        self.logger.debug(f"Default branch cannot be changed on {self.name}, skipping")
