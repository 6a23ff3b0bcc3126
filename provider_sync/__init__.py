"""
git-provider-sync - Git repository mirroring tool

Mirrors repositories from one GitHub, GitLab, Gitea or plain git account
to other hosting providers, local directories or compressed archives.

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

__version__ = "1.0.0"
__license__ = "Apache-2.0"
__description__ = "Mirror git repositories between hosting providers, directories and archives"

from .base import ProjectInfo, RepositoryManager
from .config import ProviderConfig, SyncConfig, load_config
from .generic_manager import GenericGitManager
from .gitea_manager import GiteaManager
from .github_manager import GitHubManager
from .gitlab_manager import GitLabManager
from .main import main
from .orchestrator import SyncOrchestrator

__all__ = [
    "ProjectInfo",
    "RepositoryManager",
    "ProviderConfig",
    "SyncConfig",
    "load_config",
    "GitHubManager",
    "GitLabManager",
    "GiteaManager",
    "GenericGitManager",
    "SyncOrchestrator",
    "main",
]
