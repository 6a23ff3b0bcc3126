"""
Test helpers: local git repositories and an in-memory provider binding

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

import subprocess
from pathlib import Path
from typing import Dict, List, Optional

from provider_sync.base import CreateOption, ProjectInfo, RepositoryManager
from provider_sync.config import ProviderConfig


def run_git(args, cwd):
    subprocess.run(
        ["git", *args], cwd=str(cwd), capture_output=True, check=True, text=True
    )


def make_git_repo(path: Path, files: Optional[Dict[str, str]] = None, branch: str = "main") -> Path:
    """Create a non-bare repository with one commit on branch"""
    path.mkdir(parents=True, exist_ok=True)
    run_git(["init", "--quiet"], path)
    run_git(["symbolic-ref", "HEAD", f"refs/heads/{branch}"], path)
    run_git(["config", "user.email", "test@test.com"], path)
    run_git(["config", "user.name", "Test User"], path)
    run_git(["config", "commit.gpgsign", "false"], path)
    for name, content in (files or {"README.md": "# Test Repository\n"}).items():
        (path / name).write_text(content)
    run_git(["add", "."], path)
    run_git(["commit", "--quiet", "-m", "Initial commit"], path)
    return path


def head_of(path: Path, ref: str = "HEAD") -> str:
    return subprocess.run(
        ["git", "rev-parse", ref], cwd=str(path), capture_output=True, check=True, text=True
    ).stdout.strip()


def project(name: str, **kwargs) -> ProjectInfo:
    kwargs.setdefault("https_url", f"https://example.com/acme/{name}.git")
    return ProjectInfo(original_name=name, **kwargs)


class FakeManager(RepositoryManager):
    """In-memory provider binding that records every call"""

    def __init__(self, config: ProviderConfig, projects: Optional[List[ProjectInfo]] = None):
        super().__init__(config)
        self.projects = {p.name: p for p in (projects or [])}
        self.calls = []

    def get_repositories(self, config):
        self.calls.append(("list", config.owner))
        return list(self.projects.values())

    def project_info(self, config, name):
        self.calls.append(("lookup", name))
        return self.projects.get(name)

    def create(self, config, option: CreateOption) -> str:
        self.calls.append(("create", option.repository_name))
        self.projects[option.repository_name] = project(option.repository_name)
        return option.repository_name

    def set_default_branch(self, owner, name, branch):
        self.calls.append(("default_branch", name, branch))

    def protect(self, owner, name, branch):
        self.calls.append(("protect", name, branch))

    def unprotect(self, owner, name, branch):
        self.calls.append(("unprotect", name, branch))
