"""Minimal git CLI wrapper used for workspace checkpoints."""

from __future__ import annotations

import logging
import os
import shutil
import subprocess
from typing import List, Optional, Sequence, Tuple

from constants import Constants

logger = logging.getLogger(__name__)


class VcsError(Exception):
    """A version-control command failed."""


class GitRepository:
    """Checkpoint repository living in a workspace directory."""

    def __init__(self, path: str, git: str = "git", timeout: float = 60):
        self.path = path
        self._git = git
        self._timeout = timeout

    def _run(self, args: Sequence[str], stdin: Optional[str] = None) -> str:
        try:
            proc = subprocess.run(
                [self._git, *args],
                cwd=self.path,
                input=stdin,
                capture_output=True,
                text=True,
                timeout=self._timeout,
                check=False,
            )
        except (OSError, subprocess.TimeoutExpired) as e:
            raise VcsError(f"git {args[0]} failed: {e}") from e
        if proc.returncode != 0:
            raise VcsError(f"git {args[0]} failed: {proc.stderr.strip() or proc.stdout.strip()}")
        return proc.stdout

    def init(self) -> None:
        self._run(["init", "-q"])
        self._run(["config", "user.name", Constants.GIT_AUTHOR_NAME])
        self._run(["config", "user.email", Constants.GIT_AUTHOR_EMAIL])
        self._run(["config", "commit.gpgsign", "false"])

    def add_all(self) -> None:
        self._run(["add", "-A"])

    def commit(self, message: str) -> str:
        """Commit staged changes (empty commits allowed); returns the new sha."""
        self._run(["commit", "-q", "--allow-empty", "--no-verify", "-F", "-"], stdin=message)
        return self._run(["rev-parse", "HEAD"]).strip()

    def log(self, max_count: int = 20) -> List[Tuple[str, str]]:
        """Newest-first ``(sha, subject)`` pairs."""
        out = self._run(["log", f"--max-count={max_count}", "--format=%H%x09%s"])
        entries = []
        for line in out.splitlines():
            sha, _, subject = line.partition("\t")
            entries.append((sha, subject))
        return entries

    def status(self) -> str:
        return self._run(["status", "--porcelain"])

    def export(self, destination: str) -> None:
        """Copy the repository metadata to ``destination`` (replacing it)."""
        source = os.path.join(self.path, ".git")
        if os.path.isdir(destination):
            shutil.rmtree(destination)
        shutil.copytree(source, destination)
