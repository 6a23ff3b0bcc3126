"""
Sync configuration model and loading

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

import os
import re
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple

import yaml

from .base import Credentials, GitOption, ProviderType, Visibility
from .exceptions import ConfigurationError
from .token_discovery import discover_token

DEFAULT_DOMAINS = {
    ProviderType.GITHUB: "github.com",
    ProviderType.GITLAB: "gitlab.com",
    ProviderType.GITEA: "gitea.com",
}

# Username paired with a token when it is embedded in an HTTPS remote
TOKEN_USERNAMES = {
    ProviderType.GITHUB: "x-access-token",
    ProviderType.GITLAB: "oauth2",
    ProviderType.GITEA: "oauth2",
}

DURATION_PATTERN = re.compile(r"^\s*(\d+)\s*([smhdw])\s*$")
DURATION_UNITS = {
    "s": "seconds",
    "m": "minutes",
    "h": "hours",
    "d": "days",
    "w": "weeks",
}


def parse_duration(value: str) -> timedelta:
    """Parse durations such as '90m', '12h' or '30d'"""
    match = DURATION_PATTERN.match(str(value))
    if not match:
        raise ConfigurationError(
            f"Invalid duration '{value}'. Use a number followed by s, m, h, d or w"
        )
    amount, unit = match.groups()
    return timedelta(**{DURATION_UNITS[unit]: int(amount)})


def parse_datetime(value: Any) -> Optional[datetime]:
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        parsed = value
    else:
        text = str(value).strip()
        if text.endswith("Z"):
            text = text[:-1] + "+00:00"
        try:
            parsed = datetime.fromisoformat(text)
        except ValueError as e:
            raise ConfigurationError(f"Invalid timestamp '{value}': {e}") from e
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


@dataclass(frozen=True)
class ActivityInterval:
    """Half-open time window [start, end); either bound may be open."""

    start: Optional[datetime] = None
    end: Optional[datetime] = None

    def __post_init__(self):
        if self.start and self.end and self.start >= self.end:
            raise ConfigurationError("Activity interval start must be before its end")

    @classmethod
    def since(cls, duration: str, now: Optional[datetime] = None) -> "ActivityInterval":
        now = now or datetime.now(timezone.utc)
        return cls(start=now - parse_duration(duration))

    def contains(self, moment: datetime) -> bool:
        if moment.tzinfo is None:
            moment = moment.replace(tzinfo=timezone.utc)
        if self.start is not None and moment < self.start:
            return False
        if self.end is not None and moment >= self.end:
            return False
        return True


@dataclass(frozen=True)
class FilterOptions:
    included_repositories: Tuple[str, ...] = ()
    excluded_repositories: Tuple[str, ...] = ()
    activity_interval: Optional[ActivityInterval] = None


@dataclass
class ProviderConfig:
    """One endpoint of a sync run, either the source or a target."""

    provider_type: ProviderType
    domain: str = ""
    user: str = ""
    group: str = ""
    include_forks: bool = False
    filters: FilterOptions = field(default_factory=FilterOptions)
    directory: str = ""
    archive_dir: str = ""
    token: str = ""
    username: str = ""
    scheme: str = "https"
    git: GitOption = field(default_factory=GitOption)
    force_push: bool = False
    protect_default_branch: bool = False
    visibility: Optional[Visibility] = None
    disable_features: bool = False
    ci_enabled: bool = False
    repositories: Tuple[str, ...] = ()

    def __post_init__(self):
        raw_type = getattr(self.provider_type, "value", self.provider_type)
        try:
            self.provider_type = ProviderType(str(raw_type).lower())
        except ValueError:
            valid = ", ".join(p.value for p in ProviderType)
            raise ConfigurationError(
                f"Unknown provider type '{self.provider_type}'. Valid types: {valid}"
            ) from None
        if self.visibility is not None:
            self.visibility = Visibility.parse(self.visibility)
        self.validate()

    def validate(self):
        if self.user and self.group:
            raise ConfigurationError(
                f"{self.provider_type.value}: set either user or group, not both"
            )
        if self.git.transport not in ("https", "ssh"):
            raise ConfigurationError(
                f"{self.provider_type.value}: git transport must be https or ssh"
            )
        if self.provider_type == ProviderType.DIRECTORY:
            if not self.directory:
                raise ConfigurationError("directory target requires a directory path")
        elif self.provider_type == ProviderType.ARCHIVE:
            if not self.archive_dir:
                raise ConfigurationError("archive target requires an archive_dir path")
        elif not self.user and not self.group:
            raise ConfigurationError(
                f"{self.provider_type.value}: a user or a group namespace is required"
            )
        if self.provider_type == ProviderType.GENERIC_GIT and not self.domain:
            raise ConfigurationError("generic-git requires a domain")

    def is_group(self) -> bool:
        return bool(self.group)

    @property
    def owner(self) -> str:
        return self.group if self.is_group() else self.user

    def get_domain(self) -> str:
        return self.domain or DEFAULT_DOMAINS.get(self.provider_type, "")

    def base_url(self) -> str:
        return f"{self.scheme}://{self.get_domain()}"

    def credentials(self) -> Credentials:
        username = self.username or TOKEN_USERNAMES.get(self.provider_type, "git")
        return Credentials(token=self.token, username=username)

    def describe(self) -> str:
        if self.provider_type == ProviderType.DIRECTORY:
            return f"directory {self.directory}"
        if self.provider_type == ProviderType.ARCHIVE:
            return f"archive directory {self.archive_dir}"
        return f"{self.provider_type.value} {self.get_domain()} {self.owner}"


@dataclass
class SyncConfig:
    source: ProviderConfig
    targets: List[ProviderConfig]
    dry_run: bool = False
    workers: int = 1
    work_dir: Optional[str] = None

    def __post_init__(self):
        if not self.targets:
            raise ConfigurationError("At least one target is required")
        if self.source.provider_type.is_local:
            raise ConfigurationError(
                f"{self.source.provider_type.value} cannot be used as a source"
            )
        if self.workers < 1:
            raise ConfigurationError("workers must be at least 1")


def _as_tuple(value) -> Tuple[str, ...]:
    if value is None:
        return ()
    if isinstance(value, str):
        return tuple(v.strip() for v in value.split(",") if v.strip())
    return tuple(str(v) for v in value)


def _as_bool(value) -> bool:
    if isinstance(value, str):
        return value.strip().lower() in ("1", "true", "yes", "on")
    return bool(value)


def filters_from_dict(data: Optional[Dict[str, Any]]) -> FilterOptions:
    data = data or {}
    interval = None
    if data.get("active_since"):
        interval = ActivityInterval.since(data["active_since"])
    elif data.get("activity_interval"):
        window = data["activity_interval"]
        interval = ActivityInterval(
            start=parse_datetime(window.get("start")),
            end=parse_datetime(window.get("end")),
        )
    return FilterOptions(
        included_repositories=_as_tuple(data.get("include")),
        excluded_repositories=_as_tuple(data.get("exclude")),
        activity_interval=interval,
    )


def provider_config_from_dict(data: Dict[str, Any], role: str = "source") -> ProviderConfig:
    """Build a ProviderConfig from one YAML mapping"""
    if not isinstance(data, dict):
        raise ConfigurationError(f"{role} must be a mapping")
    if "provider_type" not in data:
        raise ConfigurationError(f"{role} is missing provider_type")

    known = {
        "provider_type",
        "domain",
        "user",
        "group",
        "include_forks",
        "filters",
        "directory",
        "archive_dir",
        "token",
        "username",
        "scheme",
        "transport",
        "force_push",
        "protect_default_branch",
        "visibility",
        "disable_features",
        "ci_enabled",
        "repositories",
    }
    unknown = sorted(set(data) - known)
    if unknown:
        raise ConfigurationError(f"{role} has unknown keys: {', '.join(unknown)}")

    return ProviderConfig(
        provider_type=data["provider_type"],
        domain=str(data.get("domain") or ""),
        user=str(data.get("user") or ""),
        group=str(data.get("group") or ""),
        include_forks=_as_bool(data.get("include_forks", False)),
        filters=filters_from_dict(data.get("filters")),
        directory=os.path.expanduser(str(data.get("directory") or "")),
        archive_dir=os.path.expanduser(str(data.get("archive_dir") or "")),
        token=os.path.expandvars(str(data.get("token") or "")),
        username=str(data.get("username") or ""),
        scheme=str(data.get("scheme") or "https"),
        git=GitOption(transport=str(data.get("transport") or "https")),
        force_push=_as_bool(data.get("force_push", False)),
        protect_default_branch=_as_bool(data.get("protect_default_branch", False)),
        visibility=data.get("visibility"),
        disable_features=_as_bool(data.get("disable_features", False)),
        ci_enabled=_as_bool(data.get("ci_enabled", False)),
        repositories=_as_tuple(data.get("repositories")),
    )


def resolve_token(config: ProviderConfig) -> ProviderConfig:
    """Fill a missing token from the standard credential locations"""
    if not config.token and config.provider_type.is_hosting:
        token = discover_token(config.provider_type, config.base_url())
        if token:
            config.token = token
    return config


def sync_config_from_dict(data: Dict[str, Any]) -> SyncConfig:
    if not isinstance(data, dict):
        raise ConfigurationError("Configuration must be a mapping")
    if "source" not in data:
        raise ConfigurationError("Configuration is missing a source")

    targets = data.get("targets") or []
    if isinstance(targets, dict):
        targets = [targets]

    source = resolve_token(provider_config_from_dict(data["source"], "source"))
    target_configs = [
        resolve_token(provider_config_from_dict(t, f"target {i + 1}"))
        for i, t in enumerate(targets)
    ]

    dry_run = _as_bool(os.getenv("GPS_DRY_RUN", data.get("dry_run", False)))
    try:
        workers = int(os.getenv("PARALLEL_WORKERS", data.get("workers", 1)))
    except (TypeError, ValueError) as e:
        raise ConfigurationError(f"workers must be an integer: {e}") from e
    work_dir = os.getenv("WORK_DIR", data.get("work_dir"))

    return SyncConfig(
        source=source,
        targets=target_configs,
        dry_run=dry_run,
        workers=workers,
        work_dir=work_dir,
    )


def load_config(path: str) -> SyncConfig:
    """Load and validate a YAML sync configuration"""
    config_path = Path(path)
    if not config_path.exists():
        raise ConfigurationError(f"Configuration file not found: {path}")
    try:
        with open(config_path, "r") as f:
            data = yaml.safe_load(f)
    except yaml.YAMLError as e:
        raise ConfigurationError(f"Invalid YAML in {path}: {e}") from e
    return sync_config_from_dict(data or {})
