"""Workspace state and checkpoint records."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, List, Optional


class CopyBackStatus(Enum):
    """Outcome of copying workspace files back to the caller's repository."""

    OK = "ok"
    PARTIAL = "partial"
    FAILED = "failed"
    SKIPPED = "skipped"


@dataclass(frozen=True)
class Checkpoint:
    """A committed snapshot of the workspace with its rationale."""

    index: int
    sha: str
    message: str

    @property
    def subject(self) -> str:
        return self.message.splitlines()[0] if self.message else ""


@dataclass
class Workspace:
    """An ephemeral copy of a project; owned by ``WorkspaceManager``."""

    path: str
    repo_path: str
    vcs: Any
    has_lockfile: bool = False
    checkpoints: List[Checkpoint] = field(default_factory=list)
    succeeded: bool = False
    copy_back_status: Optional[CopyBackStatus] = None
    finalized: bool = False
