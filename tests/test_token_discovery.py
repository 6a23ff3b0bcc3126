"""
Tests for token_discovery module

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

import pytest

from provider_sync.base import ProviderType
from provider_sync.token_discovery import (
    discover_token,
    get_gitea_token,
    get_github_token,
    get_gitlab_token,
)


@pytest.fixture
def isolated_home(tmp_path, monkeypatch):
    """Point HOME and XDG_CONFIG_HOME at an empty directory"""
    monkeypatch.setenv("HOME", str(tmp_path))
    monkeypatch.setenv("XDG_CONFIG_HOME", str(tmp_path / ".config"))
    return tmp_path


class TestGetGitHubToken:
    """Tests for GitHub token discovery"""

    def test_github_token_from_env(self, monkeypatch):
        """Test GitHub token is read from GITHUB_TOKEN env var"""
        monkeypatch.setenv("GITHUB_TOKEN", "ghp_test_token_12345")
        monkeypatch.delenv("GH_TOKEN", raising=False)

        assert get_github_token() == "ghp_test_token_12345"

    def test_gh_token_fallback(self, monkeypatch):
        """Test GH_TOKEN is used when GITHUB_TOKEN is not set"""
        monkeypatch.delenv("GITHUB_TOKEN", raising=False)
        monkeypatch.setenv("GH_TOKEN", "ghp_fallback_token")

        assert get_github_token() == "ghp_fallback_token"

    def test_github_token_priority(self, monkeypatch):
        """Test GITHUB_TOKEN takes priority over GH_TOKEN"""
        monkeypatch.setenv("GITHUB_TOKEN", "ghp_primary")
        monkeypatch.setenv("GH_TOKEN", "ghp_secondary")

        assert get_github_token() == "ghp_primary"

    def test_no_gh_cli(self, monkeypatch):
        """Test returns None when the gh CLI is missing"""
        monkeypatch.delenv("GITHUB_TOKEN", raising=False)
        monkeypatch.delenv("GH_TOKEN", raising=False)
        monkeypatch.setenv("PATH", "")

        assert get_github_token() is None


@pytest.fixture
def gh_calls(monkeypatch):
    """Replace the gh CLI with one that answers per --hostname"""
    tokens = {"github.com": "gho_public", "github.example.com": "gho_enterprise"}
    calls = []

    def fake_run(args, **kwargs):
        calls.append(args)
        host = args[args.index("--hostname") + 1]
        token = tokens.get(host, "")
        return subprocess.CompletedProcess(args, 0 if token else 1, stdout=f"{token}\n", stderr="")

    monkeypatch.setattr("provider_sync.token_discovery.subprocess.run", fake_run)
    for var in ("GITHUB_TOKEN", "GH_TOKEN", "GH_ENTERPRISE_TOKEN", "GITHUB_ENTERPRISE_TOKEN"):
        monkeypatch.delenv(var, raising=False)
    return calls


class TestGitHubEnterpriseToken:
    """Tests for host specific GitHub token discovery"""

    def test_enterprise_env_token(self, monkeypatch, gh_calls):
        monkeypatch.setenv("GITHUB_TOKEN", "ghp_public")
        monkeypatch.setenv("GH_ENTERPRISE_TOKEN", "ghp_enterprise")

        assert get_github_token("github.example.com") == "ghp_enterprise"
        assert get_github_token() == "ghp_public"
        assert gh_calls == []

    def test_enterprise_env_alias(self, monkeypatch, gh_calls):
        monkeypatch.setenv("GITHUB_ENTERPRISE_TOKEN", "ghp_alias")

        assert get_github_token("github.example.com") == "ghp_alias"

    def test_public_token_not_sent_to_enterprise_host(self, monkeypatch, gh_calls):
        monkeypatch.setenv("GITHUB_TOKEN", "ghp_public")

        assert get_github_token("github.example.com") == "gho_enterprise"
        assert gh_calls == [["gh", "auth", "token", "--hostname", "github.example.com"]]

    def test_gh_cli_per_host(self, gh_calls):
        assert get_github_token() == "gho_public"
        assert get_github_token("unknown.example.com") is None
        assert [call[-1] for call in gh_calls] == ["github.com", "unknown.example.com"]

    def test_discover_uses_base_url_host(self, gh_calls):
        assert discover_token(ProviderType.GITHUB, "https://github.example.com") == "gho_enterprise"
        assert discover_token(ProviderType.GITHUB, "https://github.com") == "gho_public"
        assert [call[-1] for call in gh_calls] == ["github.example.com", "github.com"]


class TestGetGitLabToken:
    """Tests for GitLab token discovery"""

    def test_gitlab_token_from_env(self, monkeypatch):
        """Test GitLab token is read from GITLAB_TOKEN env var"""
        monkeypatch.setenv("GITLAB_TOKEN", "glpat-test_token_12345")

        assert get_gitlab_token() == "glpat-test_token_12345"

    def test_gitlab_token_from_glab_config(self, monkeypatch, isolated_home):
        """Test the glab CLI config is read for the matching host"""
        monkeypatch.delenv("GITLAB_TOKEN", raising=False)
        config_dir = isolated_home / ".config" / "glab-cli"
        config_dir.mkdir(parents=True)
        (config_dir / "config.yml").write_text(
            "hosts:\n"
            "  gitlab.com:\n"
            "    token: glpat-public\n"
            "  git.example.com:\n"
            "    token: glpat-internal\n"
        )

        assert get_gitlab_token("https://git.example.com") == "glpat-internal"
        assert get_gitlab_token() == "glpat-public"

    def test_glab_config_follows_xdg_config_home(self, monkeypatch, isolated_home, tmp_path):
        monkeypatch.delenv("GITLAB_TOKEN", raising=False)
        xdg = tmp_path / "xdg"
        (xdg / "glab-cli").mkdir(parents=True)
        (xdg / "glab-cli" / "config.yml").write_text("hosts:\n  gitlab.com:\n    token: glpat-xdg\n")
        monkeypatch.setenv("XDG_CONFIG_HOME", str(xdg))

        assert get_gitlab_token() == "glpat-xdg"

    def test_malformed_glab_config(self, monkeypatch, isolated_home):
        monkeypatch.delenv("GITLAB_TOKEN", raising=False)
        config_dir = isolated_home / ".config" / "glab-cli"
        config_dir.mkdir(parents=True)
        (config_dir / "config.yml").write_text("hosts: [gitlab.com]\n")

        assert get_gitlab_token() is None

    def test_no_gitlab_token(self, monkeypatch, isolated_home):
        """Test returns None when nothing is configured"""
        monkeypatch.delenv("GITLAB_TOKEN", raising=False)

        assert get_gitlab_token() is None


class TestGetGiteaToken:
    """Tests for Gitea token discovery"""

    def test_gitea_token_from_env(self, monkeypatch):
        monkeypatch.setenv("GITEA_TOKEN", "gitea-env")

        assert get_gitea_token() == "gitea-env"

    def test_gitea_token_from_tea_config(self, monkeypatch, isolated_home):
        """Test the tea CLI login matching the instance host is used"""
        monkeypatch.delenv("GITEA_TOKEN", raising=False)
        config_dir = isolated_home / ".config" / "tea"
        config_dir.mkdir(parents=True)
        (config_dir / "config.yml").write_text(
            "logins:\n"
            "  - name: public\n"
            "    url: https://gitea.com\n"
            "    token: tea-public\n"
            "  - name: work\n"
            "    url: https://code.example.com\n"
            "    token: tea-work\n"
        )

        assert get_gitea_token("https://code.example.com") == "tea-work"
        assert get_gitea_token("https://unknown.example.com") is None

    def test_broken_tea_config(self, monkeypatch, isolated_home):
        monkeypatch.delenv("GITEA_TOKEN", raising=False)
        config_dir = isolated_home / ".config" / "tea"
        config_dir.mkdir(parents=True)
        (config_dir / "config.yml").write_text("logins: [unclosed\n")

        assert get_gitea_token() is None


class TestDiscoverToken:
    """Tests for discover_token dispatch"""

    def test_dispatch(self, monkeypatch):
        monkeypatch.setenv("GITHUB_TOKEN", "gh")
        monkeypatch.setenv("GITLAB_TOKEN", "gl")
        monkeypatch.setenv("GITEA_TOKEN", "gt")

        assert discover_token(ProviderType.GITHUB, "https://github.com") == "gh"
        assert discover_token("gitlab", "https://gitlab.com") == "gl"
        assert discover_token(ProviderType.GITEA, "https://gitea.com") == "gt"

    def test_non_hosting_types(self):
        assert discover_token(ProviderType.DIRECTORY, "") is None
        assert discover_token(ProviderType.GENERIC_GIT, "https://git.example.com") is None
