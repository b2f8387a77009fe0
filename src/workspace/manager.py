"""Ephemeral workspace lifecycle with version-controlled checkpoints.

The caller's repository is only written in ``finalize``; every mutation in
between happens in a temporary directory and is committed as a checkpoint.
"""

from __future__ import annotations

import logging
import os
import shutil
import tempfile
from contextlib import contextmanager
from typing import Callable, Iterator, Optional, Sequence

from constants import Constants
from common.errors import ErrorKind, ResolutionError
from common.logging_utils import extra_context, is_debug_enabled, truncate
from workspace import manifest as manifest_io
from workspace.models import Checkpoint, CopyBackStatus, Workspace
from workspace.vcs import GitRepository, VcsError

logger = logging.getLogger(__name__)


def _format_updates(updates) -> str:
    return "\n".join(
        f"- {u.name}@{u.target_version} ({'dev' if u.is_dev else 'prod'})"
        + (f": {u.reason}" if u.reason else "")
        for u in updates
    )


class WorkspaceManager:
    """Creates, mutates, checkpoints and finalizes workspaces."""

    def __init__(
        self,
        installer=None,
        *,
        vcs_factory: Callable[[str], object] = GitRepository,
        baseline_install: bool = True,
        copy_back_on_failure: bool = True,
        error_excerpt_chars: int = Constants.ERROR_EXCERPT_CHARS,
    ):
        self._installer = installer
        self._vcs_factory = vcs_factory
        self._baseline_install = baseline_install
        self._copy_back_on_failure = copy_back_on_failure
        self._error_excerpt_chars = error_excerpt_chars

    @contextmanager
    def session(self, repo_path: str) -> Iterator[Workspace]:
        """Open a workspace and guarantee ``finalize`` on every exit path.

        Set ``ws.succeeded`` before leaving the block; the copy-back status is
        available on ``ws.copy_back_status`` afterwards.
        """
        ws = self.open(repo_path)
        try:
            yield ws
        finally:
            self.finalize(ws, ws.succeeded)

    def open(self, repo_path: str) -> Workspace:
        """Copy the manifest (and lockfile) into a fresh directory and commit checkpoint 0."""
        source_manifest = os.path.join(repo_path, Constants.PACKAGE_JSON_FILE)
        if not os.path.isfile(source_manifest):
            raise ResolutionError(
                ErrorKind.WORKSPACE, f"{Constants.PACKAGE_JSON_FILE} not found in {repo_path}"
            )

        try:
            path = tempfile.mkdtemp(prefix=Constants.WORKSPACE_PREFIX)
        except OSError as e:
            raise ResolutionError(ErrorKind.WORKSPACE, f"Cannot create workspace: {e}") from e
        try:
            shutil.copy2(source_manifest, os.path.join(path, Constants.PACKAGE_JSON_FILE))
            source_lock = os.path.join(repo_path, Constants.PACKAGE_LOCK_FILE)
            has_lockfile = os.path.isfile(source_lock)
            if has_lockfile:
                shutil.copy2(source_lock, os.path.join(path, Constants.PACKAGE_LOCK_FILE))
            with open(os.path.join(path, ".gitignore"), "w", encoding="utf-8") as f:
                f.write("\n".join(Constants.GITIGNORE_ENTRIES) + "\n")

            vcs = self._vcs_factory(path)
            vcs.init()
            ws = Workspace(path=path, repo_path=repo_path, vcs=vcs, has_lockfile=has_lockfile)

            if self._baseline_install and self._installer is not None:
                baseline = self._installer.run(path)
                if baseline.success:
                    logger.info("Baseline install succeeded")
                else:
                    logger.warning("Baseline install failed; continuing with the original manifest")
                ws.has_lockfile = os.path.isfile(os.path.join(path, Constants.PACKAGE_LOCK_FILE))

            self._checkpoint(ws, "Checkpoint 0: integrity baseline\n\nOriginal manifest copied from "
                             f"{repo_path}")
        except (VcsError, OSError) as e:
            shutil.rmtree(path, ignore_errors=True)
            raise ResolutionError(ErrorKind.WORKSPACE, f"Workspace setup failed: {e}") from e
        except BaseException:
            shutil.rmtree(path, ignore_errors=True)
            raise
        logger.info("Workspace ready at %s", path)
        return ws

    def apply_targets(self, ws: Workspace, updates: Sequence) -> Checkpoint:
        """Write the requested target versions and commit checkpoint 1."""
        data = manifest_io.read_manifest(ws.path)
        for update in updates:
            manifest_io.update_dependency(data, update.name, update.target_version, update.is_dev)
        manifest_io.write_manifest(ws.path, data)
        return self._checkpoint(
            ws, f"Checkpoint {len(ws.checkpoints)}: apply target updates\n\n{_format_updates(updates)}"
        )

    def apply_suggestion(
        self,
        ws: Workspace,
        suggestions: Sequence,
        reasoning: Sequence,
        error_context: str,
        attempt: int,
    ) -> Checkpoint:
        """Write suggested versions and commit a checkpoint carrying the rationale."""
        data = manifest_io.read_manifest(ws.path)
        for s in suggestions:
            manifest_io.update_dependency(data, s.name, s.version, s.is_dev)
        manifest_io.write_manifest(ws.path, data)

        summary = "\n".join(
            f"- {s.name}@{s.version} ({'dev' if s.is_dev else 'prod'}): {s.reason}" for s in suggestions
        )
        chain = "\n".join(f"- {entry.summary()}" for entry in reasoning) or "- none"
        message = (
            f"Checkpoint {len(ws.checkpoints)}: attempt {attempt} suggestions\n\n"
            f"Suggestions:\n{summary}\n\n"
            f"Reasoning:\n{chain}\n\n"
            f"Error excerpt:\n{truncate(error_context, self._error_excerpt_chars, tail=True)}"
        )
        return self._checkpoint(ws, message)

    def finalize(self, ws: Workspace, succeeded: bool) -> CopyBackStatus:
        """Copy results back, then always remove the workspace. Runs once per workspace."""
        if ws.finalized:
            return ws.copy_back_status or CopyBackStatus.SKIPPED
        ws.finalized = True
        ws.succeeded = succeeded
        try:
            if succeeded or self._copy_back_on_failure:
                status = self._copy_back(ws)
            else:
                logger.info("Resolution failed; leaving %s untouched", ws.repo_path)
                status = CopyBackStatus.SKIPPED
        finally:
            shutil.rmtree(ws.path, ignore_errors=True)
            logger.info("Removed workspace %s", ws.path)
        ws.copy_back_status = status
        return status

    def _copy_back(self, ws: Workspace) -> CopyBackStatus:
        manifest_ok = self._copy_file(ws, Constants.PACKAGE_JSON_FILE)
        results = [manifest_ok]
        if os.path.isfile(os.path.join(ws.path, Constants.PACKAGE_LOCK_FILE)):
            results.append(self._copy_file(ws, Constants.PACKAGE_LOCK_FILE))
        results.append(self._copy_history(ws))

        if not manifest_ok:
            status = CopyBackStatus.FAILED
        elif all(results):
            status = CopyBackStatus.OK
        else:
            status = CopyBackStatus.PARTIAL
        logger.info("Copy-back to %s finished: %s", ws.repo_path, status.value)
        return status

    @staticmethod
    def _copy_file(ws: Workspace, filename: str) -> bool:
        try:
            shutil.copy2(os.path.join(ws.path, filename), os.path.join(ws.repo_path, filename))
        except OSError as e:
            logger.error("Failed to copy %s back to %s: %s", filename, ws.repo_path, e)
            return False
        logger.info("Copied %s back to %s", filename, ws.repo_path)
        return True

    @staticmethod
    def _copy_history(ws: Workspace) -> bool:
        destination = os.path.join(ws.repo_path, Constants.HISTORY_DIR, "history")
        try:
            os.makedirs(os.path.dirname(destination), exist_ok=True)
            ws.vcs.export(destination)
        except (OSError, VcsError) as e:
            logger.warning("Failed to copy checkpoint history to %s: %s", destination, e)
            return False
        logger.info("Checkpoint history saved to %s", destination)
        return True

    def _checkpoint(self, ws: Workspace, message: str) -> Checkpoint:
        try:
            ws.vcs.add_all()
            changed = ws.vcs.status().splitlines()
            sha = ws.vcs.commit(message)
        except VcsError as e:
            raise ResolutionError(ErrorKind.WORKSPACE, f"Checkpoint commit failed: {e}") from e
        checkpoint = Checkpoint(index=len(ws.checkpoints), sha=sha, message=message)
        ws.checkpoints.append(checkpoint)
        if is_debug_enabled(logger):
            logger.debug(
                "Checkpoint committed",
                extra=extra_context(
                    event="checkpoint",
                    component="workspace",
                    action="commit",
                    index=checkpoint.index,
                    sha=sha,
                    changed_files=len(changed),
                )
            )
        return checkpoint

    @staticmethod
    def read_manifest(ws: Workspace) -> dict:
        return manifest_io.read_manifest(ws.path)

    @staticmethod
    def lockfile_path(ws: Workspace) -> Optional[str]:
        path = os.path.join(ws.path, Constants.PACKAGE_LOCK_FILE)
        return path if os.path.isfile(path) else None
