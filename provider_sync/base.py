"""
Base classes for repository synchronization

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
from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from typing import TYPE_CHECKING, List, Optional
from urllib.parse import urlsplit, urlunsplit

from .filtering import filter_project_infos
from .naming import validator_for

if TYPE_CHECKING:
    from .config import ProviderConfig

DEFAULT_BRANCH = "main"


class ProviderType(str, Enum):
    GITHUB = "github"
    GITLAB = "gitlab"
    GITEA = "gitea"
    DIRECTORY = "directory"
    ARCHIVE = "archive"
    GENERIC_GIT = "generic-git"

    @property
    def is_hosting(self) -> bool:
        return self in (ProviderType.GITHUB, ProviderType.GITLAB, ProviderType.GITEA)

    @property
    def is_local(self) -> bool:
        return self in (ProviderType.DIRECTORY, ProviderType.ARCHIVE)


class Visibility(str, Enum):
    PUBLIC = "public"
    PRIVATE = "private"
    INTERNAL = "internal"

    @classmethod
    def parse(cls, value) -> "Visibility":
        """Map a provider visibility value, falling back to public."""
        if isinstance(value, Visibility):
            return value
        try:
            return cls(str(value).strip().lower())
        except ValueError:
            return cls.PUBLIC


@dataclass
class ProjectInfo:
    """Provider-independent repository metadata."""

    original_name: str
    https_url: str = ""
    ssh_url: str = ""
    description: str = ""
    default_branch: str = DEFAULT_BRANCH
    last_activity_at: Optional[datetime] = None
    visibility: Visibility = Visibility.PUBLIC
    project_id: str = ""
    fork: bool = False
    owner: str = ""

    def __post_init__(self):
        if not self.original_name:
            raise ValueError("repository name must not be empty")
        if not self.https_url and not self.ssh_url:
            raise ValueError(f"repository {self.original_name} has no clone URL")
        if not self.default_branch:
            self.default_branch = DEFAULT_BRANCH
        self.description = self.description or ""
        self.visibility = Visibility.parse(self.visibility)
        if self.last_activity_at is not None and self.last_activity_at.tzinfo is None:
            self.last_activity_at = self.last_activity_at.replace(tzinfo=timezone.utc)

    @property
    def name(self) -> str:
        return self.original_name

    def clone_url(self, transport: str = "https") -> str:
        if transport == "ssh" and self.ssh_url:
            return self.ssh_url
        return self.https_url or self.ssh_url


@dataclass(frozen=True)
class Credentials:
    """HTTP credentials embedded into HTTPS remote URLs."""

    token: str = ""
    username: str = "oauth2"

    def apply(self, url: str) -> str:
        if not self.token or not url.startswith(("http://", "https://")):
            return url
        parts = urlsplit(url)
        host = parts.netloc.rsplit("@", 1)[-1]
        netloc = f"{self.username}:{self.token}@{host}"
        return urlunsplit((parts.scheme, netloc, parts.path, parts.query, parts.fragment))


def strip_credentials(url: str) -> str:
    """Remove any userinfo from an HTTP(S) URL."""
    if not url.startswith(("http://", "https://")) or "@" not in url:
        return url
    parts = urlsplit(url)
    host = parts.netloc.rsplit("@", 1)[-1]
    return urlunsplit((parts.scheme, host, parts.path, parts.query, parts.fragment))


def redact_url(url: str) -> str:
    """Mask credentials in a URL so it can be logged."""
    if not url.startswith(("http://", "https://")) or "@" not in url:
        return url
    parts = urlsplit(url)
    host = parts.netloc.rsplit("@", 1)[-1]
    return urlunsplit((parts.scheme, f"***@{host}", parts.path, parts.query, parts.fragment))


@dataclass(frozen=True)
class GitOption:
    transport: str = "https"


@dataclass(frozen=True)
class PullOption:
    name: str
    url: str
    mirror: bool = True
    credentials: Credentials = Credentials()

    @property
    def authenticated_url(self) -> str:
        return self.credentials.apply(self.url)


@dataclass(frozen=True)
class PushOption:
    target: str
    force: bool = False
    mirror: bool = True
    credentials: Credentials = Credentials()

    @property
    def authenticated_target(self) -> str:
        return self.credentials.apply(self.target)


@dataclass(frozen=True)
class CreateOption:
    repository_name: str
    description: str = ""
    default_branch: str = DEFAULT_BRANCH
    visibility: Visibility = Visibility.PRIVATE
    disabled: bool = False
    ci_enabled: bool = False


class RepositoryManager(ABC):
    """Capability contract every provider binding satisfies."""

    def __init__(self, config: "ProviderConfig"):
        self.config = config
        self.logger = logging.getLogger(self.__class__.__name__)

    @property
    def name(self) -> str:
        return self.config.provider_type.value

    @abstractmethod
    def get_repositories(self, config: "ProviderConfig") -> List[ProjectInfo]:
        """List every repository in the configured namespace, forks flagged."""

    def project_infos(
        self, config: "ProviderConfig", apply_filtering: bool = False
    ) -> List[ProjectInfo]:
        projects = self.get_repositories(config)
        self.logger.debug(
            f"Listed {len(projects)} repositories from {config.describe()}"
        )
        if apply_filtering:
            return filter_project_infos(
                config, projects, is_valid_name=self.is_valid_repository_name
            )
        return projects

    @abstractmethod
    def project_info(self, config: "ProviderConfig", name: str) -> Optional[ProjectInfo]:
        """Return metadata for one repository, or None when it does not exist."""

    @abstractmethod
    def create(self, config: "ProviderConfig", option: CreateOption) -> str:
        pass

    def is_valid_repository_name(self, name: str) -> bool:
        return validator_for(self.config.provider_type).is_valid(name)

    @abstractmethod
    def set_default_branch(self, owner: str, name: str, branch: str) -> None:
        pass

    def protect(self, owner: str, name: str, branch: str) -> None:
        self.logger.debug(f"Branch protection not supported on {self.name}, skipping")

    def unprotect(self, owner: str, name: str, branch: str) -> None:
        self.logger.debug(f"Branch protection not supported on {self.name}, skipping")
