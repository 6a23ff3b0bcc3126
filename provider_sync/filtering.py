"""
Filtering of listed repositories before synchronization

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

from fnmatch import fnmatchcase
from typing import TYPE_CHECKING, Callable, Iterable, List, Optional

from loguru import logger

from .metainfo import EXCLUDED, FORK, INACTIVE, INVALID, UNMATCHED

if TYPE_CHECKING:
    from .base import ProjectInfo
    from .config import ProviderConfig
    from .metainfo import SyncRunMetainfo


def matches_any(name: str, patterns: Iterable[str]) -> bool:
    """Case-sensitive glob match of a repository name against patterns"""
    return any(fnmatchcase(name, pattern) for pattern in patterns)


def drop_reason(
    config: "ProviderConfig",
    project: "ProjectInfo",
    is_valid_name: Optional[Callable[[str], bool]] = None,
) -> Optional[str]:
    """
    Return the category that drops a repository, or None to keep it.

    Stages run in a fixed order and the first one that matches wins:
    naming validity, forks, include patterns, exclude patterns and finally
    the activity interval.
    """
    filters = config.filters
    name = project.original_name

    if is_valid_name is not None and not is_valid_name(name):
        return INVALID

    if not config.include_forks and project.fork:
        return FORK

    if filters.included_repositories and not matches_any(
        name, filters.included_repositories
    ):
        return UNMATCHED

    if matches_any(name, filters.excluded_repositories):
        return EXCLUDED

    interval = filters.activity_interval
    if (
        interval is not None
        and project.last_activity_at is not None
        and not interval.contains(project.last_activity_at)
    ):
        return INACTIVE

    return None


def filter_project_infos(
    config: "ProviderConfig",
    projects: List["ProjectInfo"],
    is_valid_name: Optional[Callable[[str], bool]] = None,
    metainfo: Optional["SyncRunMetainfo"] = None,
) -> List["ProjectInfo"]:
    """
    Apply the filter pipeline to a listing.

    The input list is left untouched; surviving repositories keep their
    relative order. Dropped repositories are recorded in the run metainfo
    under their category when one is given.
    """
    kept = []
    for project in projects:
        reason = drop_reason(config, project, is_valid_name)
        if reason is None:
            kept.append(project)
            continue

        logger.debug(f"[FILTER] Skipping {project.original_name}: {reason}")
        if metainfo is not None:
            metainfo.record(reason, project.original_name)

    if len(kept) != len(projects):
        logger.info(
            f"[FILTER] {len(kept)} of {len(projects)} repositories in scope "
            f"after filtering"
        )
    return kept
