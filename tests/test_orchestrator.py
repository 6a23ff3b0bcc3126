"""
Tests for SyncOrchestrator

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

import threading

import pytest
from loguru import logger

from provider_sync.config import FilterOptions, ProviderConfig, SyncConfig
from provider_sync.exceptions import ListingError, RepositoryError
from provider_sync.git_transfer import GitTransfer
from provider_sync.github_manager import GitHubManager
from provider_sync.metainfo import (
    CANCELLED,
    EMPTY,
    FAILED,
    FORK,
    INVALID,
    UPTODATE,
    SyncRunMetainfo,
)
from provider_sync.orchestrator import SyncOrchestrator, SyncState, build_manager
from provider_sync.targets import DirectoryTarget, NeverUpToDate, Target

from helpers import FakeManager, head_of, make_git_repo, project, run_git


class RecordingTarget(Target):
    """Target that remembers what was pushed to it"""

    kind = "recording"

    def __init__(self, config, git=None, head=None, error=None):
        super().__init__(config, git or GitTransfer())
        self._head = head
        self.error = error
        self.pushed = []

    def head(self, project):
        return self._head

    def push(self, project, repo_dir, option=None, git_option=None):
        if self.error is not None:
            raise self.error
        self.pushed.append(project.name)
        return f"memory://{project.name}"


class FailingListing(FakeManager):
    def get_repositories(self, config):
        raise ListingError("github", config.owner, RuntimeError("boom"))


@pytest.fixture
def directory_config(tmp_path):
    return ProviderConfig(provider_type="directory", directory=str(tmp_path / "mirrors"))


@pytest.fixture
def sources(tmp_path):
    """Two local source repositories and their listing"""
    alpha = make_git_repo(tmp_path / "remote" / "alpha")
    beta = make_git_repo(tmp_path / "remote" / "beta", {"beta.txt": "beta\n"})
    return [
        project("alpha", https_url=str(alpha)),
        project("beta", https_url=str(beta)),
    ]


def make_orchestrator(source_config, target_configs, projects, tmp_path, **kwargs):
    config = SyncConfig(
        source=source_config,
        targets=target_configs,
        work_dir=str(tmp_path / "work"),
        dry_run=kwargs.pop("dry_run", False),
        workers=kwargs.pop("workers", 1),
    )
    kwargs.setdefault("source_manager", FakeManager(source_config, projects))
    return SyncOrchestrator(config, show_progress=False, **kwargs)


class TestRun:
    """Tests for complete runs against local directory targets"""

    def test_syncs_all_repositories(self, tmp_path, source_config, directory_config, sources):
        orchestrator = make_orchestrator(source_config, [directory_config], sources, tmp_path)

        summary = orchestrator.run()

        assert orchestrator.state == SyncState.COMPLETE
        assert summary.total == 2
        assert sorted(summary.synced) == ["alpha", "beta"]
        assert not summary.has_failures
        assert (tmp_path / "mirrors" / "alpha" / "README.md").exists()
        assert (tmp_path / "mirrors" / "beta" / "beta.txt").exists()
        # Clones are removed after each repository
        assert list((tmp_path / "work" / "git-provider-sync").iterdir()) == []

    def test_second_run_is_up_to_date(self, tmp_path, source_config, directory_config, sources):
        make_orchestrator(source_config, [directory_config], sources, tmp_path).run()

        summary = make_orchestrator(source_config, [directory_config], sources, tmp_path).run()

        assert summary.synced == []
        assert sorted(summary.failures[UPTODATE]) == ["alpha", "beta"]

    def test_new_commit_is_transferred(self, tmp_path, source_config, directory_config, sources):
        make_orchestrator(source_config, [directory_config], sources, tmp_path).run()
        alpha = tmp_path / "remote" / "alpha"
        (alpha / "new.txt").write_text("new\n")
        run_git(["add", "."], alpha)
        run_git(["commit", "--quiet", "-m", "Second commit"], alpha)

        summary = make_orchestrator(source_config, [directory_config], sources, tmp_path).run()

        assert summary.synced == ["alpha"]
        assert summary.failures[UPTODATE] == ["beta"]
        assert head_of(tmp_path / "mirrors" / "alpha") == head_of(alpha)

    def test_rewritten_history_is_transferred(self, tmp_path, source_config, directory_config, sources):
        make_orchestrator(source_config, [directory_config], sources, tmp_path).run()
        alpha = tmp_path / "remote" / "alpha"
        (alpha / "README.md").write_text("# Rewritten\n")
        run_git(["commit", "--amend", "--quiet", "--all", "-m", "Rewritten"], alpha)

        summary = make_orchestrator(source_config, [directory_config], sources, tmp_path).run()

        assert summary.synced == ["alpha"]
        assert not summary.has_failures
        assert head_of(tmp_path / "mirrors" / "alpha") == head_of(alpha)

    def test_parallel_workers(self, tmp_path, source_config, directory_config, sources):
        orchestrator = make_orchestrator(
            source_config, [directory_config], sources, tmp_path, workers=2
        )

        summary = orchestrator.run()

        assert sorted(summary.synced) == ["alpha", "beta"]

    def test_runs_only_once(self, tmp_path, source_config, directory_config):
        orchestrator = make_orchestrator(source_config, [directory_config], [], tmp_path)
        orchestrator.run()

        with pytest.raises(RuntimeError):
            orchestrator.run()

    def test_metainfo_is_closed(self, tmp_path, source_config, directory_config):
        orchestrator = make_orchestrator(source_config, [directory_config], [], tmp_path)
        orchestrator.run()

        assert orchestrator.metainfo.closed
        with pytest.raises(RuntimeError):
            orchestrator.metainfo.record(FAILED, "late")

    def test_empty_repository(self, tmp_path, source_config, directory_config):
        empty = tmp_path / "remote" / "empty.git"
        run_git(["init", "--bare", "--quiet", str(empty)], tmp_path)
        projects = [project("empty", https_url=str(empty))]
        orchestrator = make_orchestrator(source_config, [directory_config], projects, tmp_path)

        summary = orchestrator.run()

        assert summary.failures[EMPTY] == ["empty"]
        assert not (tmp_path / "mirrors" / "empty").exists()


class TestDryRun:
    """Tests for dry runs"""

    def test_nothing_transferred(self, tmp_path, source_config, directory_config, sources):
        target = RecordingTarget(directory_config)
        listing = sources + [project("forked", fork=True)]
        orchestrator = make_orchestrator(
            source_config, [directory_config], listing, tmp_path, targets=[target], dry_run=True
        )

        summary = orchestrator.run()

        assert summary.dry_run
        assert summary.total == 2
        assert summary.failures[FORK] == ["forked"]
        assert summary.synced == []
        assert target.pushed == []
        assert not (tmp_path / "work").exists()


class TestFailureIsolation:
    """Tests that one failure does not stop the run"""

    def test_target_failure_is_recorded(self, tmp_path, source_config, directory_config, sources):
        broken = RecordingTarget(
            ProviderConfig(provider_type="gitea", group="mirror"),
            error=RepositoryError("push", "alpha", "denied"),
        )
        good = RecordingTarget(directory_config)
        orchestrator = make_orchestrator(
            source_config, [directory_config], sources, tmp_path, targets=[broken, good]
        )

        summary = orchestrator.run()

        assert summary.has_failures
        assert sorted(summary.failures[FAILED]) == ["alpha", "beta"]
        assert sorted(good.pushed) == ["alpha", "beta"]
        errors = [o for o in orchestrator.metainfo.outcomes if o.status == FAILED]
        assert all("denied" in o.error for o in errors)

    def test_clone_failure_marks_every_target(self, tmp_path, source_config, directory_config, sources):
        listing = [project("missing", https_url=str(tmp_path / "nope"))] + sources
        first = RecordingTarget(directory_config)
        second = RecordingTarget(ProviderConfig(provider_type="gitea", group="mirror"))
        orchestrator = make_orchestrator(
            source_config, [directory_config], listing, tmp_path, targets=[first, second]
        )

        summary = orchestrator.run()

        assert summary.failures[FAILED] == ["missing"]
        failed = [o for o in orchestrator.metainfo.outcomes if o.status == FAILED]
        assert {o.target for o in failed} == {first.label, second.label}
        assert sorted(first.pushed) == ["alpha", "beta"]

    def test_listing_error_aborts(self, tmp_path, source_config, directory_config):
        orchestrator = make_orchestrator(
            source_config,
            [directory_config],
            [],
            tmp_path,
            source_manager=FailingListing(source_config),
        )

        with pytest.raises(ListingError):
            orchestrator.run()


class TestCancellation:
    """Tests for cooperative cancellation"""

    def test_cancelled_before_start(self, tmp_path, source_config, directory_config, sources):
        target = RecordingTarget(directory_config)
        orchestrator = make_orchestrator(
            source_config, [directory_config], sources, tmp_path, targets=[target]
        )
        cancel_event = threading.Event()
        cancel_event.set()

        summary = orchestrator.run(cancel_event)

        assert summary.failures[CANCELLED] == ["alpha", "beta"]
        assert target.pushed == []


class TestPendingTargets:
    """Tests for up-to-date detection"""

    def test_up_to_date_target_skipped(self, tmp_path, source_config, directory_config, sources):
        alpha_head = head_of(tmp_path / "remote" / "alpha")
        current = RecordingTarget(directory_config, head=alpha_head)
        stale = RecordingTarget(ProviderConfig(provider_type="gitea", group="mirror"), head="0" * 40)
        orchestrator = make_orchestrator(
            source_config, [directory_config], sources[:1], tmp_path, targets=[current, stale]
        )

        summary = orchestrator.run()

        assert current.pushed == []
        assert stale.pushed == ["alpha"]
        assert summary.failures[UPTODATE] == ["alpha"]
        assert summary.synced == ["alpha"]

    def test_no_source_lookup_without_target_head(self, tmp_path, source_config, directory_config):
        class CountingGit(GitTransfer):
            lookups = 0

            def remote_head(self, url, branch, repository=""):
                CountingGit.lookups += 1
                return None

        orchestrator = make_orchestrator(
            source_config,
            [directory_config],
            [],
            tmp_path,
            targets=[RecordingTarget(directory_config)],
            git=CountingGit(),
        )

        pending = orchestrator.pending_targets(project("alpha"), SyncRunMetainfo())

        assert len(pending) == 1
        assert CountingGit.lookups == 0

    def test_never_up_to_date_strategy(self, tmp_path, source_config, directory_config):
        target = RecordingTarget(directory_config, head="abc")
        orchestrator = make_orchestrator(
            source_config,
            [directory_config],
            [],
            tmp_path,
            targets=[target],
            strategy=NeverUpToDate(),
        )

        assert orchestrator.pending_targets(project("alpha"), SyncRunMetainfo()) == [target]

    def test_lookup_failure_warns_and_syncs(self, tmp_path, source_config, directory_config):
        class BrokenLookup(RecordingTarget):
            def head(self, project):
                raise RepositoryError("lookup", project.name, "connection refused")

        target = BrokenLookup(directory_config)
        orchestrator = make_orchestrator(
            source_config, [directory_config], [], tmp_path, targets=[target]
        )
        messages = []
        handler_id = logger.add(messages.append, level="WARNING", format="{level} {message}")
        try:
            pending = orchestrator.pending_targets(project("alpha"), SyncRunMetainfo())
        finally:
            logger.remove(handler_id)

        assert pending == [target]
        assert len(messages) == 1
        assert messages[0].startswith("WARNING [CHECK] Could not compare alpha")
        assert "connection refused" in messages[0]


class TestNaming:
    """Tests for the combined name check"""

    def test_name_must_be_valid_everywhere(self, tmp_path, source_config, directory_config):
        gitlab_target = ProviderConfig(provider_type="gitlab", group="mirror")
        listing = [project("good-name"), project("double--dash"), project("create")]
        orchestrator = make_orchestrator(
            source_config,
            [directory_config, gitlab_target],
            listing,
            tmp_path,
            targets=[RecordingTarget(directory_config), RecordingTarget(gitlab_target)],
            dry_run=True,
        )

        summary = orchestrator.run()

        assert summary.total == 1
        assert sorted(summary.failures[INVALID]) == ["create", "double--dash"]


class TestFiltering:
    def test_include_and_exclude(self, tmp_path, directory_config):
        source = ProviderConfig(
            provider_type="github",
            group="acme",
            filters=FilterOptions(
                included_repositories=("svc-*",), excluded_repositories=("svc-legacy",)
            ),
        )
        listing = [project("svc-api"), project("svc-legacy"), project("docs")]
        orchestrator = make_orchestrator(
            source,
            [directory_config],
            listing,
            tmp_path,
            targets=[RecordingTarget(directory_config)],
        )

        kept = orchestrator.list_repositories()

        assert [p.name for p in kept] == ["svc-api"]


class TestBuildManager:
    """Tests for the manager factory"""

    def test_hosting_provider(self, source_config):
        assert isinstance(build_manager(source_config), GitHubManager)

    def test_local_type_rejected(self, directory_config):
        with pytest.raises(ValueError):
            build_manager(directory_config)

    def test_targets_built_from_config(self, tmp_path, source_config, directory_config):
        config = SyncConfig(source=source_config, targets=[directory_config])
        orchestrator = SyncOrchestrator(
            config,
            source_manager=FakeManager(source_config),
            show_progress=False,
        )

        assert len(orchestrator.targets) == 1
        assert isinstance(orchestrator.targets[0], DirectoryTarget)


class TestCleanup:
    def test_stale_clones_removed(self, tmp_path, source_config, directory_config):
        orchestrator = make_orchestrator(source_config, [directory_config], [], tmp_path)
        stale = orchestrator.work_dir / "alpha_1234abcd_clone"
        keep = orchestrator.work_dir / "notes"
        stale.mkdir(parents=True)
        keep.mkdir()

        orchestrator.cleanup_stale_clones()

        assert not stale.exists()
        assert keep.exists()


