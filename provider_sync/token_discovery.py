"""
Auto-discovery of authentication tokens from standard locations

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
import subprocess
from pathlib import Path
from typing import Any, Dict, Optional, Sequence
from urllib.parse import urlparse

import yaml

logger = logging.getLogger(__name__)

GITHUB_HOST = "github.com"
GITLAB_HOST = "gitlab.com"
GITEA_HOST = "gitea.com"

# gh reads different variables for github.com and for Enterprise Server hosts
GITHUB_ENV = ("GITHUB_TOKEN", "GH_TOKEN")
GITHUB_ENTERPRISE_ENV = ("GH_ENTERPRISE_TOKEN", "GITHUB_ENTERPRISE_TOKEN")

CLI_TIMEOUT = 5


def _config_home() -> Path:
    return Path(os.getenv("XDG_CONFIG_HOME", Path.home() / ".config"))


def _hostname(url: str, default: str) -> str:
    return urlparse(url).netloc or default


def _from_env(names: Sequence[str]) -> Optional[str]:
    for name in names:
        token = os.getenv(name)
        if token:
            logger.debug(f"[TOKEN] Token found in {name} env var")
            return token
    return None


def _load_cli_config(path: Path) -> Dict[str, Any]:
    """Parsed YAML config of a provider CLI; empty when missing or unreadable"""
    if not path.is_file():
        return {}
    try:
        with open(path) as f:
            data = yaml.safe_load(f)
    except (OSError, yaml.YAMLError) as e:
        logger.debug(f"[TOKEN] Failed to read {path}: {e}")
        return {}
    return data if isinstance(data, dict) else {}


def _gh_cli_token(hostname: str) -> Optional[str]:
    try:
        result = subprocess.run(
            ["gh", "auth", "token", "--hostname", hostname],
            capture_output=True,
            text=True,
            timeout=CLI_TIMEOUT,
        )
    except (subprocess.TimeoutExpired, OSError) as e:
        logger.debug(f"[TOKEN] gh CLI unavailable: {e}")
        return None

    token = result.stdout.strip() if result.returncode == 0 else ""
    if token:
        logger.info(f"[TOKEN] GitHub token for {hostname} discovered from gh CLI")
    return token or None


def get_github_token(hostname: str = GITHUB_HOST) -> Optional[str]:
    """
    Token for github.com or a GitHub Enterprise Server host.

    Environment variables come first (GITHUB_TOKEN, GH_TOKEN for github.com;
    GH_ENTERPRISE_TOKEN, GITHUB_ENTERPRISE_TOKEN otherwise), then the gh CLI
    login stored for that host.
    """
    names = GITHUB_ENV if hostname == GITHUB_HOST else GITHUB_ENTERPRISE_ENV
    return _from_env(names) or _gh_cli_token(hostname)


def get_gitlab_token(gitlab_url: str = f"https://{GITLAB_HOST}") -> Optional[str]:
    """GITLAB_TOKEN, then the glab CLI entry for the instance host"""
    token = _from_env(("GITLAB_TOKEN",))
    if token:
        return token

    config_path = _config_home() / "glab-cli" / "config.yml"
    hosts = _load_cli_config(config_path).get("hosts")
    host = hosts.get(_hostname(gitlab_url, GITLAB_HOST)) if isinstance(hosts, dict) else None
    token = host.get("token") if isinstance(host, dict) else None
    if token:
        logger.info(f"[TOKEN] GitLab token discovered from {config_path}")
    return token or None


def get_gitea_token(gitea_url: str = f"https://{GITEA_HOST}") -> Optional[str]:
    """GITEA_TOKEN, then the tea CLI login whose URL matches the instance host"""
    token = _from_env(("GITEA_TOKEN",))
    if token:
        return token

    config_path = _config_home() / "tea" / "config.yml"
    logins = _load_cli_config(config_path).get("logins")
    hostname = _hostname(gitea_url, GITEA_HOST)
    for login in logins if isinstance(logins, list) else []:
        if not isinstance(login, dict):
            continue
        if _hostname(str(login.get("url", "")), "") == hostname and login.get("token"):
            logger.info(f"[TOKEN] Gitea token discovered from {config_path}")
            return login["token"]
    return None


def discover_token(provider_type, base_url: str) -> Optional[str]:
    """Look up a token for the host in base_url; None for non-hosting provider types"""
    kind = str(getattr(provider_type, "value", provider_type)).lower()
    if kind == "github":
        return get_github_token(_hostname(base_url, GITHUB_HOST))
    if kind == "gitlab":
        return get_gitlab_token(base_url)
    if kind == "gitea":
        return get_gitea_token(base_url)
    return None
