"""
Git transfer operations backed by the git command line

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
import os
import re
import shutil
import subprocess
import time
from pathlib import Path
from typing import List, Optional

from .base import GitOption, ProjectInfo, PullOption, PushOption, redact_url, strip_credentials
from .exceptions import GitCommandError

CREDENTIALS_IN_TEXT = re.compile(r"(https?://)[^/@\s]+@")


def robust_rmtree(path: Path, logger: logging.Logger, max_retries: int = 3) -> bool:
    """
    Robustly remove a directory tree with retries.
    Handles race conditions where files may still be written during removal.

    Args:
        path: Path to remove
        logger: Logger for messages
        max_retries: Maximum number of retry attempts

    Returns:
        True if successfully removed, False otherwise
    """
    if not path.exists():
        return True

    for attempt in range(max_retries):
        try:
            shutil.rmtree(path)
            return True
        except OSError as e:
            if attempt < max_retries - 1:
                time.sleep(0.5 * (attempt + 1))
                logger.debug(
                    f"[CLEANUP] Retry {attempt + 1}/{max_retries} removing {path}: {e}"
                )
            else:
                logger.warning(
                    f"[CLEANUP] Failed to remove {path} after {max_retries} attempts: {e}"
                )
                return False
    return False


def redact_text(text: str) -> str:
    return CREDENTIALS_IN_TEXT.sub(r"\1***@", text or "")


class GitTransfer:
    """Clone, fetch and push repositories with the git binary"""

    def __init__(self, git_binary: str = "git"):
        self.git_binary = git_binary
        self.logger = logging.getLogger(self.__class__.__name__)

    def _run(
        self,
        args: List[str],
        repository: str,
        operation: str,
        cwd: Optional[Path] = None,
        check: bool = True,
    ) -> subprocess.CompletedProcess:
        env = dict(os.environ)
        # Never block on an interactive credential prompt
        env["GIT_TERMINAL_PROMPT"] = "0"

        result = subprocess.run(
            [self.git_binary, *args],
            stdout=subprocess.PIPE,
            stderr=subprocess.PIPE,
            text=True,
            cwd=str(cwd) if cwd else None,
            env=env,
        )

        if check and result.returncode != 0:
            stderr_truncated = redact_text(result.stderr[:500] if result.stderr else "")
            raise GitCommandError(operation, repository, stderr_truncated.strip())
        return result

    @staticmethod
    def is_repository(path: Path) -> bool:
        path = Path(path)
        if (path / ".git").exists():
            return True
        return (path / "HEAD").is_file() and (path / "objects").is_dir()

    def pull(self, option: PullOption, target_dir: Path) -> None:
        """Clone the source into target_dir, or fetch when it is already there"""
        target_dir = Path(target_dir)

        if self.is_repository(target_dir):
            self.logger.info(f"[FETCH] Updating {option.name} from {redact_url(option.url)}")
            self._run(
                ["remote", "set-url", "origin", option.authenticated_url],
                option.name,
                "fetch",
                cwd=target_dir,
            )
            self._run(["remote", "update", "--prune"], option.name, "fetch", cwd=target_dir)
            return

        target_dir.parent.mkdir(parents=True, exist_ok=True)
        self.logger.info(f"[CLONE] Cloning {option.name} from {redact_url(option.url)}")
        mode = "--mirror" if option.mirror else "--bare"
        self._run(
            ["clone", mode, option.authenticated_url, str(target_dir)],
            option.name,
            "clone",
        )

    def push(
        self,
        repo_dir: Path,
        option: PushOption,
        git_option: Optional[GitOption] = None,
        repository: str = "",
    ) -> None:
        """Push branches (and tags for mirror pushes) from repo_dir to option.target"""
        repository = repository or Path(repo_dir).name
        prefix = "+" if option.force else ""
        refspecs = [f"{prefix}refs/heads/*:refs/heads/*"]
        if option.mirror:
            refspecs.append(f"{prefix}refs/tags/*:refs/tags/*")

        self.logger.info(f"[PUSH] Pushing {repository} to {redact_url(option.target)}")
        args = ["push", "--porcelain"]
        if option.force:
            args.append("--force")
        self._run(
            [*args, option.authenticated_target, *refspecs],
            repository,
            "push",
            cwd=Path(repo_dir),
        )

    def init(self, target_dir: Path, branch: str, repository: str = "") -> None:
        """Initialize a non-bare repository that accepts pushes to its checked-out branch"""
        repository = repository or Path(target_dir).name
        Path(target_dir).mkdir(parents=True, exist_ok=True)
        self._run(["init", "--quiet", str(target_dir)], repository, "init")
        self._run(
            ["symbolic-ref", "HEAD", f"refs/heads/{branch}"],
            repository,
            "init",
            cwd=Path(target_dir),
        )
        self._run(
            ["config", "receive.denyCurrentBranch", "ignore"],
            repository,
            "init",
            cwd=Path(target_dir),
        )

    def set_remote_and_branch(self, project: ProjectInfo, repo_dir: Path, transport: str = "https") -> None:
        """Point origin at the source repository and track its default branch"""
        repo_dir = Path(repo_dir)
        url = strip_credentials(project.clone_url(transport))
        name = project.original_name

        existing = self._run(
            ["remote", "get-url", "origin"], name, "set remote", cwd=repo_dir, check=False
        )
        if existing.returncode == 0:
            self._run(["remote", "set-url", "origin", url], name, "set remote", cwd=repo_dir)
        else:
            self._run(["remote", "add", "origin", url], name, "set remote", cwd=repo_dir)

        branch = project.default_branch
        self._run(
            ["config", f"branch.{branch}.remote", "origin"], name, "set branch", cwd=repo_dir
        )
        self._run(
            ["config", f"branch.{branch}.merge", f"refs/heads/{branch}"],
            name,
            "set branch",
            cwd=repo_dir,
        )

    def set_default_branch(self, repo_dir: Path, branch: str, repository: str = "") -> None:
        repository = repository or Path(repo_dir).name
        self._run(
            ["symbolic-ref", "HEAD", f"refs/heads/{branch}"],
            repository,
            "set default branch",
            cwd=Path(repo_dir),
        )

    def checkout_head(self, repo_dir: Path, repository: str = "") -> None:
        """Bring the working tree of a non-bare repository in line with HEAD"""
        repository = repository or Path(repo_dir).name
        head = self._run(
            ["rev-parse", "--verify", "--quiet", "HEAD"],
            repository,
            "checkout",
            cwd=Path(repo_dir),
            check=False,
        )
        if head.returncode != 0:
            self.logger.debug(f"[CHECKOUT] {repository} has no commit on HEAD, skipping")
            return
        self._run(["reset", "--quiet", "--hard", "HEAD"], repository, "checkout", cwd=Path(repo_dir))

    def has_commits(self, repo_dir: Path, repository: str = "") -> bool:
        result = self._run(
            ["rev-list", "-n", "1", "--all"],
            repository or Path(repo_dir).name,
            "inspect",
            cwd=Path(repo_dir),
            check=False,
        )
        return result.returncode == 0 and bool(result.stdout.strip())

    def local_head(self, repo_dir: Path, branch: str) -> Optional[str]:
        repo_dir = Path(repo_dir)
        if not repo_dir.is_dir() or not self.is_repository(repo_dir):
            return None
        result = self._run(
            ["rev-parse", "--verify", "--quiet", f"refs/heads/{branch}"],
            repo_dir.name,
            "inspect",
            cwd=repo_dir,
            check=False,
        )
        if result.returncode != 0:
            return None
        return result.stdout.strip() or None

    def remote_head(self, url: str, branch: str, repository: str = "") -> Optional[str]:
        """Commit id of a branch on a remote, or None when the branch is absent"""
        result = self._run(
            ["ls-remote", url, f"refs/heads/{branch}"],
            repository or branch,
            "ls-remote",
        )
        for line in result.stdout.splitlines():
            sha, _, ref = line.partition("\t")
            if ref.strip() == f"refs/heads/{branch}":
                return sha.strip()
        return None

    def remote_default_branch(self, url: str, repository: str = "") -> Optional[str]:
        """Branch the remote HEAD points at"""
        result = self._run(
            ["ls-remote", "--symref", url, "HEAD"], repository or url, "ls-remote"
        )
        for line in result.stdout.splitlines():
            if line.startswith("ref:"):
                ref = line[len("ref:"):].split("\t")[0].strip()
                return ref[len("refs/heads/"):] if ref.startswith("refs/heads/") else ref
        return None

    def remote_exists(self, url: str, repository: str = "") -> bool:
        result = self._run(
            ["ls-remote", "--heads", url], repository or url, "ls-remote", check=False
        )
        return result.returncode == 0
