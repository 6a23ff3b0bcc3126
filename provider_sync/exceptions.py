"""
Exception classes for git-provider-sync

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

from typing import Optional


class SyncError(Exception):
    """Base exception for all sync errors."""


class ConfigurationError(SyncError):
    """Raised when the sync configuration is invalid. Fatal before a run starts."""


class ListingError(SyncError):
    """Raised when a provider cannot list the configured namespace."""

    def __init__(self, provider: str, namespace: str, cause: Optional[BaseException] = None):
        self.provider = provider
        self.namespace = namespace
        self.cause = cause
        message = f"failed to list repositories on {provider} for {namespace}"
        if cause is not None:
            message = f"{message}: {cause}"
        super().__init__(message)


class RepositoryError(SyncError):
    """Raised when an operation on a single repository fails.

    Carries the operation and repository name so the orchestrator can
    attribute the failure without re-deriving context.
    """

    def __init__(self, operation: str, repository: str, cause: object = None):
        self.operation = operation
        self.repository = repository
        self.cause = cause
        message = f"{operation} failed for {repository}"
        if cause is not None and str(cause):
            message = f"{message}: {cause}"
        super().__init__(message)


class GitCommandError(RepositoryError):
    """Raised when a git subprocess exits non-zero."""


class TargetDirectoryError(RepositoryError):
    """Raised when a directory target cannot be used safely."""


class ArchiveError(RepositoryError):
    """Raised when an archive cannot be created."""


class NoFilesToArchiveError(ArchiveError):
    """Raised when the directory to archive contains no files."""

    def __init__(self, repository: str, source_dir: str):
        self.source_dir = source_dir
        super().__init__("archive", repository, f"no files to archive in {source_dir}")
