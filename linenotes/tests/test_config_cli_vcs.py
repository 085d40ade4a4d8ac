"""
Tests for configuration loading, the command line and the git adapter.
"""

import subprocess
import threading
import time
from pathlib import Path
from types import SimpleNamespace

import pytest
from pydantic import ValidationError

from linenotes.cli import main
from linenotes.config import LineNotesConfig
from linenotes.errors import VcsError
from linenotes.hashing import line_identifier
from linenotes.store import AnnotationStore
from linenotes.vcs import BranchPoller, GitWorkingTree


class TestConfig:
    def test_defaults(self, tmp_path: Path):
        config = LineNotesConfig(workspace_root=str(tmp_path))

        assert config.target_branch == "notes"
        assert config.storage_root == tmp_path / ".linenotes"
        assert config.log_level == "INFO"

    def test_from_env_overrides(self, tmp_path: Path, monkeypatch):
        monkeypatch.setenv("LINENOTES_WORKSPACE", str(tmp_path))
        monkeypatch.setenv("LINENOTES_TARGET_BRANCH", "docs")
        monkeypatch.setenv("LINENOTES_STORAGE_DIR", ".notes")
        monkeypatch.setenv("LINENOTES_POLL_SECONDS", "0.25")
        monkeypatch.setenv("LINENOTES_LOG_LEVEL", "debug")

        config = LineNotesConfig.from_env()

        assert config.workspace_root == str(tmp_path.resolve())
        assert config.target_branch == "docs"
        assert config.storage_dir_name == ".notes"
        assert config.poll_interval_seconds == 0.25
        assert config.log_level == "DEBUG"

    def test_explicit_workspace_wins_over_env(self, tmp_path: Path, monkeypatch):
        monkeypatch.setenv("LINENOTES_WORKSPACE", "/somewhere/else")

        config = LineNotesConfig.from_env(str(tmp_path))

        assert config.workspace_root == str(tmp_path.resolve())

    def test_relative_workspace_rejected(self):
        with pytest.raises(ValidationError):
            LineNotesConfig(workspace_root="relative/path")

    @pytest.mark.parametrize("name", ["a/b", "..", "."])
    def test_storage_dir_must_be_single_component(self, tmp_path: Path, name: str):
        with pytest.raises(ValidationError):
            LineNotesConfig(workspace_root=str(tmp_path), storage_dir_name=name)

    def test_non_positive_poll_interval_rejected(self, tmp_path: Path):
        with pytest.raises(ValidationError):
            LineNotesConfig(workspace_root=str(tmp_path), poll_interval_seconds=0)

    def test_unknown_log_level_rejected(self, tmp_path: Path):
        with pytest.raises(ValidationError):
            LineNotesConfig(workspace_root=str(tmp_path), log_level="LOUD")


class TestCli:
    def test_hash_prints_identifier(self, capsys):
        assert main(["hash", "    return total"]) == 0

        assert capsys.readouterr().out.strip() == line_identifier("    return total")

    def test_list_without_storage(self, tmp_path: Path, capsys):
        assert main(["list", "--workspace", str(tmp_path)]) == 0

        assert "No storage directory" in capsys.readouterr().out

    def test_list_shows_summaries(self, tmp_path: Path, capsys):
        store = AnnotationStore(tmp_path / ".linenotes")
        store.ensure_root()
        store.write("abc", "first line\nsecond line")

        assert main(["list", "--workspace", str(tmp_path)]) == 0

        out = capsys.readouterr().out
        assert "abc  first line" in out
        assert "1 annotation(s)" in out

    def test_invalid_config_exits_2(self, tmp_path: Path, monkeypatch):
        monkeypatch.setenv("LINENOTES_STORAGE_DIR", "a/b")

        with pytest.raises(SystemExit) as exc_info:
            main(["list", "--workspace", str(tmp_path)])

        assert exc_info.value.code == 2


def _completed(stdout: str = "", returncode: int = 0, stderr: str = ""):
    return SimpleNamespace(stdout=stdout, returncode=returncode, stderr=stderr)


class TestGitWorkingTree:
    def test_current_branch(self, tmp_path: Path, monkeypatch):
        monkeypatch.setattr(subprocess, "run", lambda *a, **kw: _completed("feature-x\n"))

        assert GitWorkingTree(tmp_path).current_branch() == "feature-x"

    def test_detached_head_is_unnamed(self, tmp_path: Path, monkeypatch):
        monkeypatch.setattr(subprocess, "run", lambda *a, **kw: _completed("HEAD\n"))

        assert GitWorkingTree(tmp_path).current_branch() is None

    def test_uncommitted_changes_counts_porcelain_lines(self, tmp_path: Path, monkeypatch):
        porcelain = " M src/app.py\n?? notes.txt\n\n"
        monkeypatch.setattr(subprocess, "run", lambda *a, **kw: _completed(porcelain))

        assert GitWorkingTree(tmp_path).uncommitted_changes() == 2

    def test_git_failure_raises_vcs_error(self, tmp_path: Path, monkeypatch):
        monkeypatch.setattr(
            subprocess, "run", lambda *a, **kw: _completed(returncode=128, stderr="not a repo")
        )

        with pytest.raises(VcsError):
            GitWorkingTree(tmp_path).current_branch()

    def test_missing_git_raises_vcs_error(self, tmp_path: Path):
        tree = GitWorkingTree(tmp_path, git_executable=str(tmp_path / "no-such-git"))

        with pytest.raises(VcsError):
            tree.current_branch()

    def test_poll_notifies_only_on_change(self, tmp_path: Path, monkeypatch):
        branches = iter(["main\n", "main\n", "feature-x\n"])
        monkeypatch.setattr(subprocess, "run", lambda *a, **kw: _completed(next(branches)))
        tree = GitWorkingTree(tmp_path)
        seen = []
        tree.subscribe(seen.append)

        tree.poll()
        tree.poll()
        tree.poll()

        assert seen == ["main", "feature-x"]


class TestBranchPoller:
    def test_polls_until_stopped(self):
        calls = []
        done = threading.Event()

        def poll():
            calls.append(1)
            if len(calls) >= 3:
                done.set()

        poller = BranchPoller(poll, interval=0.01)
        poller.start()
        assert done.wait(5)
        poller.stop()
        seen = len(calls)
        time.sleep(0.05)

        assert not poller.is_running
        assert len(calls) == seen

    def test_vcs_errors_do_not_stop_polling(self):
        calls = []
        done = threading.Event()

        def poll():
            calls.append(1)
            if len(calls) >= 2:
                done.set()
            raise VcsError("git status exited 128: not a repo")

        poller = BranchPoller(poll, interval=0.01)
        poller.start()
        try:
            assert done.wait(5)
        finally:
            poller.stop()

    def test_drives_git_poll(self, tmp_path: Path, monkeypatch):
        monkeypatch.setattr(subprocess, "run", lambda *a, **kw: _completed("feature-x\n"))
        tree = GitWorkingTree(tmp_path)
        seen = threading.Event()
        tree.subscribe(lambda branch: seen.set())

        poller = BranchPoller(tree.poll, interval=0.01)
        poller.start()
        try:
            assert seen.wait(5)
        finally:
            poller.stop()
