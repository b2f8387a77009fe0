"""Request, state and result types for a resolution run."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple

from constants import Constants
from common.errors import ErrorKind
from analysis.models import DependencyUpdate, ReasoningEntry
from workspace.models import Checkpoint, CopyBackStatus


@dataclass(frozen=True)
class ResolutionRequest:
    """One invocation: where to work, what to change, and the attempt budget."""

    repo_path: str
    updates: Tuple[DependencyUpdate, ...]
    max_attempts: int = Constants.DEFAULT_MAX_ATTEMPTS

    def __post_init__(self):
        if self.max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")
        object.__setattr__(self, "updates", tuple(self.updates))


class ResolutionState(Enum):
    INIT = "init"
    VALIDATE_TARGETS = "validate_targets"
    PREPARE_WORKSPACE = "prepare_workspace"
    APPLY_TARGET_UPDATES = "apply_target_updates"
    ATTEMPT_INSTALL = "attempt_install"
    ANALYZE_AND_SUGGEST = "analyze_and_suggest"
    SUCCESS = "success"
    EXHAUSTED = "exhausted"
    FATAL = "fatal"
    CANCELLED = "cancelled"
    FINALIZE = "finalize"
    DONE = "done"


class Outcome(Enum):
    """How the attempt loop terminated."""

    SUCCESS = "success"
    EXHAUSTED = "exhausted"
    FATAL = "fatal"
    CANCELLED = "cancelled"


class UserOutcome(Enum):
    """The three outcomes reported to users."""

    SUCCESS = "success"
    SUCCESS_WITH_COPY_WARNING = "success-with-copy-warning"
    FAILURE = "failure"


@dataclass
class ResolutionResult:
    """Produced exactly once per run, after finalization."""

    success: bool
    outcome: Outcome
    attempts_used: int
    copy_back_status: CopyBackStatus = CopyBackStatus.SKIPPED
    last_error: Optional[str] = None
    error_kind: Optional[ErrorKind] = None
    applied_updates: List[DependencyUpdate] = field(default_factory=list)
    checkpoints: List[Checkpoint] = field(default_factory=list)
    reasoning: List[ReasoningEntry] = field(default_factory=list)
    install_log: str = ""
    invalid_targets: List[Dict[str, Any]] = field(default_factory=list)

    @property
    def user_outcome(self) -> UserOutcome:
        if not self.success:
            return UserOutcome.FAILURE
        if self.copy_back_status is CopyBackStatus.OK:
            return UserOutcome.SUCCESS
        return UserOutcome.SUCCESS_WITH_COPY_WARNING

    def to_dict(self) -> Dict[str, Any]:
        return {
            "success": self.success,
            "outcome": self.outcome.value,
            "userOutcome": self.user_outcome.value,
            "attemptsUsed": self.attempts_used,
            "lastError": self.last_error,
            "errorKind": self.error_kind.value if self.error_kind else None,
            "copyBackStatus": self.copy_back_status.value,
            "appliedUpdates": [u.to_dict() for u in self.applied_updates],
            "checkpoints": [{"index": c.index, "sha": c.sha, "subject": c.subject} for c in self.checkpoints],
            "reasoning": [r.to_dict() for r in self.reasoning],
            "invalidTargets": list(self.invalid_targets),
        }
