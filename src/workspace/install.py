"""Runs the package-manager install inside a workspace."""

from __future__ import annotations

import logging
import subprocess
from dataclasses import dataclass
from typing import List, Optional, Sequence

from constants import Constants
from common.errors import ErrorKind, ResolutionError
from common.logging_utils import extra_context, is_debug_enabled, Timer

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class InstallResult:
    stdout: str
    stderr: str
    success: bool
    returncode: Optional[int] = None

    @property
    def error_text(self) -> str:
        """Text to analyse on failure; npm writes ERESOLVE details to stderr."""
        return "\n".join(part for part in (self.stderr, self.stdout) if part)


class NpmInstallRunner:
    """Synchronous wrapper around ``npm install``.

    Raises ``ResolutionError(TIMEOUT)`` when the command exceeds ``timeout``.
    """

    def __init__(
        self,
        command: Optional[Sequence[str]] = None,
        timeout: float = Constants.INSTALL_TIMEOUT_SEC,
    ):
        self.command: List[str] = list(command or Constants.INSTALL_COMMAND)
        self.timeout = timeout

    def run(self, directory: str) -> InstallResult:
        logger.info("Running %s in %s", " ".join(self.command), directory)
        with Timer() as timer:
            try:
                proc = subprocess.run(
                    self.command,
                    cwd=directory,
                    capture_output=True,
                    text=True,
                    timeout=self.timeout,
                    check=False,
                )
            except subprocess.TimeoutExpired as e:
                raise ResolutionError(
                    ErrorKind.TIMEOUT,
                    f"Install did not finish within {self.timeout}s",
                    {"component": "install", "timeout": self.timeout},
                ) from e
            except FileNotFoundError as e:
                raise ResolutionError(
                    ErrorKind.WORKSPACE,
                    f"Install command not found: {self.command[0]}",
                ) from e

        result = InstallResult(
            stdout=proc.stdout or "",
            stderr=proc.stderr or "",
            success=proc.returncode == 0,
            returncode=proc.returncode,
        )
        if is_debug_enabled(logger):
            logger.debug(
                "Install finished",
                extra=extra_context(
                    event="install",
                    component="install",
                    action="run",
                    outcome="success" if result.success else "failure",
                    returncode=proc.returncode,
                    duration_ms=timer.duration_ms(),
                )
            )
        return result
