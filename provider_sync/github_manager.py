"""
GitHub repository management

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

from github import Auth, Github, GithubException, UnknownObjectException

from .base import CreateOption, ProjectInfo, RepositoryManager, Visibility
from .config import ProviderConfig
from .exceptions import ListingError, RepositoryError
from .pagination import numbered_pages

PER_PAGE = 100


class GitHubManager(RepositoryManager):
    def __init__(self, config: ProviderConfig, client: Optional[Github] = None):
        super().__init__(config)
        if client is None:
            kwargs = {"per_page": PER_PAGE}
            if config.token:
                kwargs["auth"] = Auth.Token(config.token)
            if config.get_domain() != "github.com":
                # GitHub Enterprise Server
                kwargs["base_url"] = f"{config.base_url()}/api/v3"
            client = Github(**kwargs)
        self.client = client

    def _log_auth_failure(self, error: Exception):
        error_msg = str(error)
        if "401" in error_msg or "Bad credentials" in error_msg:
            self.logger.error("GitHub authentication failed: Invalid or expired token")
            self.logger.error("Please check your GITHUB_TOKEN in the .env file")

    def _is_authenticated_user(self, login: str) -> bool:
        if not self.config.token:
            return False
        return self.client.get_user().login.lower() == login.lower()

    def _listing(self, config: ProviderConfig):
        if config.is_group():
            self.logger.info(
                f"[CONFIG] Fetching repositories from GitHub organization: {config.group}"
            )
            org = self.client.get_organization(config.group)
            return org.get_repos(type="all", sort="full_name")

        self.logger.info(f"[CONFIG] Fetching GitHub repositories of user: {config.user}")
        if self._is_authenticated_user(config.user):
            return self.client.get_user().get_repos(
                affiliation="owner", visibility="all", sort="full_name"
            )
        return self.client.get_user(config.user).get_repos(type="owner", sort="full_name")

    def get_repositories(self, config: ProviderConfig) -> List[ProjectInfo]:
        try:
            listing = self._listing(config)
            # PaginatedList pages are zero-based
            pages = numbered_pages(listing.get_page, PER_PAGE, first_page=0)
            repos = pages.collect()
        except GithubException as e:
            self._log_auth_failure(e)
            raise ListingError("github", config.owner, e) from e

        projects = []
        for repo in repos:
            try:
                projects.append(self._to_project_info(repo))
            except ValueError as e:
                self.logger.warning(f"[SKIP] Ignoring malformed GitHub repository: {e}")
        return projects

    @staticmethod
    def _to_project_info(repo) -> ProjectInfo:
        visibility = getattr(repo, "visibility", None) or (
            "private" if repo.private else "public"
        )
        return ProjectInfo(
            original_name=repo.name,
            https_url=repo.clone_url or "",
            ssh_url=repo.ssh_url or "",
            description=repo.description or "",
            default_branch=repo.default_branch,
            last_activity_at=repo.updated_at,
            visibility=visibility,
            project_id=repo.full_name,
            fork=bool(repo.fork),
            owner=repo.owner.login,
        )

    def _get_repo(self, owner: str, name: str):
        return self.client.get_repo(f"{owner}/{name}")

    def project_info(self, config: ProviderConfig, name: str) -> Optional[ProjectInfo]:
        try:
            return self._to_project_info(self._get_repo(config.owner, name))
        except UnknownObjectException:
            return None
        except GithubException as e:
            raise RepositoryError("lookup", name, e) from e

    def create(self, config: ProviderConfig, option: CreateOption) -> str:
        # GitHub has no internal visibility outside enterprise organizations
        private = option.visibility != Visibility.PUBLIC
        enabled = not option.disabled
        try:
            if config.is_group():
                owner = self.client.get_organization(config.group)
            else:
                owner = self.client.get_user()
            repo = owner.create_repo(
                option.repository_name,
                description=option.description,
                private=private,
                has_issues=enabled,
                has_wiki=enabled,
                has_projects=enabled,
                auto_init=False,
            )
        except GithubException as e:
            raise RepositoryError("create", option.repository_name, e) from e

        self.logger.info(f"[CREATE] Created GitHub repository {repo.full_name}")
        return repo.full_name

    def set_default_branch(self, owner: str, name: str, branch: str) -> None:
        try:
            repo = self._get_repo(owner, name)
            if repo.default_branch != branch:
                repo.edit(default_branch=branch)
        except GithubException as e:
            raise RepositoryError("set default branch", name, e) from e

    def protect(self, owner: str, name: str, branch: str) -> None:
        try:
            self._get_repo(owner, name).get_branch(branch).edit_protection(
                allow_force_pushes=False, allow_deletions=False
            )
            self.logger.debug(f"[PROTECT] Protected {owner}/{name}:{branch}")
        except GithubException as e:
            raise RepositoryError("protect", name, e) from e

    def unprotect(self, owner: str, name: str, branch: str) -> None:
        try:
            self._get_repo(owner, name).get_branch(branch).remove_protection()
            self.logger.debug(f"[PROTECT] Removed protection from {owner}/{name}:{branch}")
        except UnknownObjectException:
            # Branch missing or not protected
            pass
        except GithubException as e:
            raise RepositoryError("unprotect", name, e) from e
