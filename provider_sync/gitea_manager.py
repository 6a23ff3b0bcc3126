"""
Gitea repository management over the REST API

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

from typing import Any, Dict, List, Optional, Tuple

import requests

from .base import CreateOption, ProjectInfo, RepositoryManager, Visibility
from .config import ProviderConfig, parse_datetime
from .exceptions import ConfigurationError, ListingError, RepositoryError
from .pagination import Paginator

PER_PAGE = 50
REQUEST_TIMEOUT = 30


class GiteaManager(RepositoryManager):
    def __init__(self, config: ProviderConfig, session: Optional[requests.Session] = None):
        super().__init__(config)
        self.api_url = f"{config.base_url()}/api/v1"
        self.session = session or requests.Session()
        self.session.headers.update({"Accept": "application/json"})
        if config.token:
            self.session.headers.update({"Authorization": f"token {config.token}"})

    def _request(self, method: str, path: str, **kwargs) -> requests.Response:
        response = self.session.request(
            method, f"{self.api_url}{path}", timeout=REQUEST_TIMEOUT, **kwargs
        )
        if response.status_code == 401:
            self.logger.error("[ERROR] Gitea authentication failed.")
            self.logger.error("[ERROR] Please check your GITEA_TOKEN in the .env file")
        return response

    def _listing_path(self, config: ProviderConfig) -> str:
        if config.is_group():
            return f"/orgs/{config.group}/repos"
        return f"/users/{config.user}/repos"

    def get_repositories(self, config: ProviderConfig) -> List[ProjectInfo]:
        path = self._listing_path(config)
        self.logger.info(f"[CONFIG] Fetching Gitea repositories from {path}")

        def fetch_page(cursor: Tuple[int, int]):
            page, seen = cursor
            response = self._request("GET", path, params={"page": page, "limit": PER_PAGE})
            response.raise_for_status()
            items = response.json() or []
            return items, self._next_cursor(response, page, seen + len(items), len(items))

        try:
            listed = Paginator(fetch_page, first_cursor=(1, 0)).collect()
        except (requests.RequestException, ValueError) as e:
            raise ListingError("gitea", config.owner, e) from e

        projects = []
        for data in listed:
            try:
                projects.append(self._to_project_info(data))
            except (ValueError, ConfigurationError) as e:
                self.logger.warning(f"[SKIP] Ignoring malformed Gitea repository: {e}")
        return projects

    @staticmethod
    def _next_cursor(
        response: requests.Response, page: int, seen: int, count: int
    ) -> Optional[Tuple[int, int]]:
        """
        Gitea may cap the page size below the requested limit (MAX_RESPONSE_ITEMS),
        so a short page is only trusted when the server sends no paging headers.
        """
        if count == 0:
            return None
        if response.links:
            has_next = "next" in response.links
        elif response.headers.get("X-Total-Count") is not None:
            has_next = seen < int(response.headers["X-Total-Count"])
        else:
            has_next = count >= PER_PAGE
        return (page + 1, seen) if has_next else None

    @staticmethod
    def _to_project_info(data: Dict[str, Any]) -> ProjectInfo:
        if data.get("internal"):
            visibility = Visibility.INTERNAL
        elif data.get("private"):
            visibility = Visibility.PRIVATE
        else:
            visibility = Visibility.PUBLIC
        owner = data.get("owner") or {}
        return ProjectInfo(
            original_name=data.get("name", ""),
            https_url=data.get("clone_url", ""),
            ssh_url=data.get("ssh_url", ""),
            description=data.get("description", ""),
            default_branch=data.get("default_branch"),
            last_activity_at=parse_datetime(data.get("updated_at")),
            visibility=visibility,
            project_id=str(data.get("id", "")),
            fork=bool(data.get("fork")),
            owner=owner.get("login", ""),
        )

    def project_info(self, config: ProviderConfig, name: str) -> Optional[ProjectInfo]:
        try:
            response = self._request("GET", f"/repos/{config.owner}/{name}")
            if response.status_code == 404:
                return None
            response.raise_for_status()
            return self._to_project_info(response.json())
        except (requests.RequestException, ValueError) as e:
            raise RepositoryError("lookup", name, e) from e

    def create(self, config: ProviderConfig, option: CreateOption) -> str:
        path = f"/orgs/{config.group}/repos" if config.is_group() else "/user/repos"
        payload = {
            "name": option.repository_name,
            "description": option.description,
            "private": option.visibility != Visibility.PUBLIC,
            "default_branch": option.default_branch,
            "auto_init": False,
        }
        try:
            response = self._request("POST", path, json=payload)
            response.raise_for_status()
            created = response.json()
            if option.disabled:
                self._request(
                    "PATCH",
                    f"/repos/{config.owner}/{option.repository_name}",
                    json={"has_issues": False, "has_wiki": False, "has_projects": False},
                ).raise_for_status()
        except (requests.RequestException, ValueError) as e:
            raise RepositoryError("create", option.repository_name, e) from e

        self.logger.info(f"[CREATE] Created Gitea repository {created.get('full_name')}")
        return str(created.get("id", option.repository_name))

    def set_default_branch(self, owner: str, name: str, branch: str) -> None:
        try:
            self._request(
                "PATCH", f"/repos/{owner}/{name}", json={"default_branch": branch}
            ).raise_for_status()
        except requests.RequestException as e:
            raise RepositoryError("set default branch", name, e) from e
