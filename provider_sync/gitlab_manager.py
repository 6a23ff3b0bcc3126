"""
GitLab repository management

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

import gitlab
from gitlab.const import AccessLevel
from gitlab.exceptions import (
    GitlabCreateError,
    GitlabDeleteError,
    GitlabError,
    GitlabGetError,
)

from .base import CreateOption, ProjectInfo, RepositoryManager
from .config import ProviderConfig, parse_datetime
from .exceptions import ConfigurationError, ListingError, RepositoryError
from .pagination import numbered_pages

PER_PAGE = 100


class GitLabManager(RepositoryManager):
    def __init__(self, config: ProviderConfig, client: Optional[gitlab.Gitlab] = None):
        super().__init__(config)
        if client is None:
            client = gitlab.Gitlab(config.base_url(), private_token=config.token or None)
        self.client = client

    def _namespace_projects(self, config: ProviderConfig):
        if config.is_group():
            self.logger.info(f"[CONFIG] Fetching projects from GitLab group: {config.group}")
            return self.client.groups.get(config.group, lazy=True).projects

        self.logger.info(f"[CONFIG] Fetching GitLab projects of user: {config.user}")
        users = self.client.users.list(username=config.user)
        if not users:
            raise ConfigurationError(f"GitLab user not found: {config.user}")
        return users[0].projects

    def get_repositories(self, config: ProviderConfig) -> List[ProjectInfo]:
        try:
            manager = self._namespace_projects(config)
            pages = numbered_pages(
                lambda page: manager.list(
                    page=page, per_page=PER_PAGE, order_by="name", sort="asc"
                ),
                PER_PAGE,
            )
            listed = pages.collect()
        except (GitlabError, ConfigurationError) as e:
            raise ListingError("gitlab", config.owner, e) from e

        projects = []
        for project in listed:
            try:
                projects.append(self._to_project_info(project))
            except (ValueError, ConfigurationError) as e:
                self.logger.warning(f"[SKIP] Ignoring malformed GitLab project: {e}")
        return projects

    @staticmethod
    def _to_project_info(project) -> ProjectInfo:
        namespace = getattr(project, "namespace", None) or {}
        return ProjectInfo(
            original_name=project.path,
            https_url=getattr(project, "http_url_to_repo", "") or "",
            ssh_url=getattr(project, "ssh_url_to_repo", "") or "",
            description=getattr(project, "description", "") or "",
            default_branch=getattr(project, "default_branch", None),
            last_activity_at=parse_datetime(getattr(project, "last_activity_at", None)),
            visibility=getattr(project, "visibility", None),
            project_id=str(project.id),
            fork=getattr(project, "forked_from_project", None) is not None,
            owner=namespace.get("full_path", ""),
        )

    def _get_project(self, owner: str, name: str):
        return self.client.projects.get(f"{owner}/{name}")

    def project_info(self, config: ProviderConfig, name: str) -> Optional[ProjectInfo]:
        try:
            return self._to_project_info(self._get_project(config.owner, name))
        except GitlabGetError as e:
            if e.response_code == 404:
                return None
            raise RepositoryError("lookup", name, e) from e

    def _namespace_id(self, config: ProviderConfig) -> Optional[int]:
        if not config.is_group():
            # Projects created without a namespace land in the token owner's namespace
            return None
        return self.client.groups.get(config.group).id

    def create(self, config: ProviderConfig, option: CreateOption) -> str:
        feature_level = "disabled" if option.disabled else "enabled"
        data = {
            "name": option.repository_name,
            "path": option.repository_name,
            "description": option.description,
            "visibility": option.visibility.value,
            "builds_access_level": "enabled" if option.ci_enabled else "disabled",
            "issues_access_level": feature_level,
            "wiki_access_level": feature_level,
            "snippets_access_level": feature_level,
        }
        try:
            namespace_id = self._namespace_id(config)
            if namespace_id is not None:
                data["namespace_id"] = namespace_id
            project = self.client.projects.create(data)
        except GitlabError as e:
            raise RepositoryError("create", option.repository_name, e) from e

        self.logger.info(
            f"[CREATE] Created GitLab project {project.path_with_namespace}"
        )
        return str(project.id)

    def set_default_branch(self, owner: str, name: str, branch: str) -> None:
        try:
            project = self._get_project(owner, name)
            if project.default_branch != branch:
                project.default_branch = branch
                project.save()
        except GitlabError as e:
            raise RepositoryError("set default branch", name, e) from e

    def protect(self, owner: str, name: str, branch: str) -> None:
        try:
            self._get_project(owner, name).protectedbranches.create(
                {
                    "name": branch,
                    "push_access_level": AccessLevel.MAINTAINER,
                    "merge_access_level": AccessLevel.MAINTAINER,
                }
            )
            self.logger.debug(f"[PROTECT] Protected {owner}/{name}:{branch}")
        except GitlabCreateError as e:
            if e.response_code == 409:
                # Already protected
                return
            raise RepositoryError("protect", name, e) from e
        except GitlabError as e:
            raise RepositoryError("protect", name, e) from e

    def unprotect(self, owner: str, name: str, branch: str) -> None:
        try:
            self._get_project(owner, name).protectedbranches.delete(branch)
            self.logger.debug(f"[PROTECT] Removed protection from {owner}/{name}:{branch}")
        except GitlabDeleteError as e:
            if e.response_code == 404:
                return
            raise RepositoryError("unprotect", name, e) from e
        except GitlabError as e:
            raise RepositoryError("unprotect", name, e) from e
