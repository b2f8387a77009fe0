"""Tests for workspace lifecycle, checkpoints and copy-back."""

import json
import os
import shutil
import subprocess
from unittest.mock import MagicMock, patch

import pytest

from fakes import ManifestInstaller, MemoryVcs
from analysis.models import DependencyUpdate, RankRef, ReasoningEntry, Suggestion
from common.errors import ErrorKind, ResolutionError
from workspace.install import NpmInstallRunner
from workspace.manager import WorkspaceManager
from workspace.models import CopyBackStatus
from workspace.vcs import GitRepository, VcsError

MANIFEST = {"name": "demo", "dependencies": {"pkgA": "^1.0.0", "pkgB": "^2.0.0"}}


@pytest.fixture
def repo(tmp_path):
    path = tmp_path / "repo"
    path.mkdir()
    (path / "package.json").write_text(json.dumps(MANIFEST, indent=2) + "\n")
    (path / "package-lock.json").write_text(json.dumps({"lockfileVersion": 3, "packages": {}}))
    return path


def read_json(path):
    return json.loads(path.read_text())


def read_json_file(directory, name):
    with open(os.path.join(directory, name), encoding="utf-8") as f:
        return json.load(f)


def make_manager(**kwargs):
    kwargs.setdefault("baseline_install", False)
    return WorkspaceManager(ManifestInstaller(), vcs_factory=MemoryVcs, **kwargs)


class TestOpen:
    """Workspace creation and checkpoint 0."""

    def test_copies_manifest_and_lockfile(self, repo):
        manager = make_manager()

        ws = manager.open(str(repo))
        try:
            assert read_json_file(ws.path, "package.json") == MANIFEST
            assert ws.has_lockfile
            assert os.path.isfile(os.path.join(ws.path, ".gitignore"))
            assert ws.vcs.initialized
            assert [c.subject for c in ws.checkpoints] == ["Checkpoint 0: integrity baseline"]
            assert manager.lockfile_path(ws) is not None
        finally:
            manager.finalize(ws, False)

    def test_missing_manifest(self, tmp_path):
        with pytest.raises(ResolutionError) as exc:
            make_manager().open(str(tmp_path))
        assert exc.value.kind is ErrorKind.WORKSPACE

    def test_baseline_install_runs_on_original_manifest(self, repo):
        installer = ManifestInstaller(lambda manifest: "npm ERR! boom")
        manager = WorkspaceManager(installer, vcs_factory=MemoryVcs, baseline_install=True)

        ws = manager.open(str(repo))
        manager.finalize(ws, False)

        assert installer.runs == [MANIFEST]

    def test_directory_removed_when_open_fails(self, repo, tmp_path):
        scratch = tmp_path / "scratch"
        scratch.mkdir()

        def broken_vcs(path):
            vcs = MagicMock()
            vcs.init.side_effect = VcsError("git init failed")
            return vcs

        manager = WorkspaceManager(vcs_factory=broken_vcs, baseline_install=False)
        with patch("workspace.manager.tempfile.mkdtemp", return_value=str(scratch)):
            with pytest.raises(ResolutionError) as exc:
                manager.open(str(repo))

        assert exc.value.kind is ErrorKind.WORKSPACE
        assert isinstance(exc.value.__cause__, VcsError)
        assert not scratch.exists()

    def test_unusable_temp_dir_is_workspace_error(self, repo):
        with patch("workspace.manager.tempfile.mkdtemp", side_effect=OSError("no space left")):
            with pytest.raises(ResolutionError) as exc:
                make_manager().open(str(repo))

        assert exc.value.kind is ErrorKind.WORKSPACE
        assert "no space left" in exc.value.message


class TestCheckpoints:
    """Target application and suggestion checkpoints."""

    def test_apply_targets_commits_checkpoint_1(self, repo):
        manager = make_manager()
        ws = manager.open(str(repo))

        checkpoint = manager.apply_targets(ws, [DependencyUpdate("pkgA", "2.0.0", reason="upgrade")])

        assert checkpoint.index == 1
        assert checkpoint.subject == "Checkpoint 1: apply target updates"
        assert "- pkgA@2.0.0 (prod): upgrade" in checkpoint.message
        assert manager.read_manifest(ws)["dependencies"]["pkgA"] == "2.0.0"
        assert read_json(repo / "package.json") == MANIFEST
        manager.finalize(ws, False)

    def test_suggestion_checkpoint_carries_rationale(self, repo):
        manager = make_manager()
        ws = manager.open(str(repo))
        manager.apply_targets(ws, [DependencyUpdate("pkgA", "2.0.0")])
        entry = ReasoningEntry(RankRef("pkgB", 300), "2.0.0", "3.0.0", RankRef("pkgA", 800))

        checkpoint = manager.apply_suggestion(
            ws,
            [Suggestion("pkgB", "3.0.0", False, "peer of pkgA")],
            [entry],
            "npm ERR! code ERESOLVE",
            1,
        )

        assert checkpoint.subject == "Checkpoint 2: attempt 1 suggestions"
        assert "pkgB(300) 2.0.0 -> 3.0.0 because of pkgA(800)" in checkpoint.message
        assert "npm ERR! code ERESOLVE" in checkpoint.message
        assert manager.read_manifest(ws)["dependencies"]["pkgB"] == "3.0.0"
        assert [sha for sha, _ in ws.vcs.log()][0] == checkpoint.sha
        manager.finalize(ws, True)

    def test_commit_failure_is_workspace_error(self, repo):
        manager = make_manager()
        ws = manager.open(str(repo))
        ws.vcs.commit = MagicMock(side_effect=VcsError("disk full"))

        with pytest.raises(ResolutionError) as exc:
            manager.apply_targets(ws, [DependencyUpdate("pkgA", "2.0.0")])
        assert exc.value.kind is ErrorKind.WORKSPACE
        manager.finalize(ws, False)


class TestFinalize:
    """Copy-back and cleanup."""

    def test_success_copies_back_and_cleans_up(self, repo):
        manager = make_manager()
        ws = manager.open(str(repo))
        manager.apply_targets(ws, [DependencyUpdate("pkgA", "2.0.0")])

        status = manager.finalize(ws, True)

        assert status is CopyBackStatus.OK
        assert read_json(repo / "package.json")["dependencies"]["pkgA"] == "2.0.0"
        assert (repo / ".peerfix" / "history" / "COMMITS").read_text().splitlines() == [
            "Checkpoint 0: integrity baseline",
            "Checkpoint 1: apply target updates",
        ]
        assert not os.path.exists(ws.path)

    def test_finalize_runs_once(self, repo):
        manager = make_manager()
        ws = manager.open(str(repo))
        assert manager.finalize(ws, True) is CopyBackStatus.OK

        (repo / "package.json").write_text("{}")

        assert manager.finalize(ws, True) is CopyBackStatus.OK
        assert read_json(repo / "package.json") == {}

    def test_failure_without_copy_back(self, repo):
        manager = make_manager(copy_back_on_failure=False)
        ws = manager.open(str(repo))
        manager.apply_targets(ws, [DependencyUpdate("pkgA", "2.0.0")])

        status = manager.finalize(ws, False)

        assert status is CopyBackStatus.SKIPPED
        assert read_json(repo / "package.json") == MANIFEST
        assert not os.path.exists(ws.path)

    def test_history_failure_is_partial(self, repo):
        manager = make_manager()
        ws = manager.open(str(repo))
        ws.vcs.fail_export = True

        assert manager.finalize(ws, True) is CopyBackStatus.PARTIAL

    def test_manifest_copy_failure_is_failed(self, repo):
        manager = make_manager()
        ws = manager.open(str(repo))
        shutil.rmtree(repo)

        assert manager.finalize(ws, True) is CopyBackStatus.FAILED
        assert not os.path.exists(ws.path)

    def test_session_finalizes_on_error(self, repo):
        manager = make_manager(copy_back_on_failure=False)
        opened = []

        with pytest.raises(RuntimeError):
            with manager.session(str(repo)) as ws:
                opened.append(ws)
                raise RuntimeError("boom")

        ws = opened[0]
        assert ws.finalized
        assert ws.copy_back_status is CopyBackStatus.SKIPPED
        assert not os.path.exists(ws.path)


class TestInstallRunner:
    """Subprocess handling for the install command."""

    @patch("workspace.install.subprocess.run")
    def test_failure_result(self, mock_run, tmp_path):
        mock_run.return_value = MagicMock(returncode=1, stdout="out", stderr="npm ERR! code ERESOLVE")

        result = NpmInstallRunner(["npm", "install"]).run(str(tmp_path))

        assert not result.success
        assert result.error_text == "npm ERR! code ERESOLVE\nout"
        assert mock_run.call_args.kwargs["cwd"] == str(tmp_path)

    @patch("workspace.install.subprocess.run")
    def test_timeout(self, mock_run, tmp_path):
        mock_run.side_effect = subprocess.TimeoutExpired(["npm", "install"], 5)

        with pytest.raises(ResolutionError) as exc:
            NpmInstallRunner(timeout=5).run(str(tmp_path))
        assert exc.value.kind is ErrorKind.TIMEOUT
        assert exc.value.details["timeout"] == 5

    @patch("workspace.install.subprocess.run")
    def test_missing_command(self, mock_run, tmp_path):
        mock_run.side_effect = FileNotFoundError("npm")

        with pytest.raises(ResolutionError) as exc:
            NpmInstallRunner().run(str(tmp_path))
        assert exc.value.kind is ErrorKind.WORKSPACE


@pytest.mark.skipif(shutil.which("git") is None, reason="git not installed")
class TestGitRepository:
    """The real git-backed checkpoint store."""

    def test_commit_log_and_export(self, tmp_path):
        work = tmp_path / "ws"
        work.mkdir()
        (work / "package.json").write_text("{}")
        git = GitRepository(str(work))
        git.init()
        git.add_all()
        assert git.status().splitlines() == ["A  package.json"]

        sha = git.commit("Checkpoint 0: integrity baseline\n\nbody")

        assert len(sha) == 40
        assert git.log() == [(sha, "Checkpoint 0: integrity baseline")]
        git.export(str(tmp_path / "history"))
        assert (tmp_path / "history" / "HEAD").is_file()
