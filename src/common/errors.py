"""Error taxonomy for a resolution run.

A single exception type carries an ``ErrorKind`` discriminant. Whether a kind
is retried, and the corrective instruction sent back to the reasoning engine,
are decided by plain functions over the kind rather than by subclasses.
"""

from __future__ import annotations

import textwrap
from enum import Enum
from typing import Any, Dict, List, Optional


class ErrorKind(Enum):
    """Categories of failure a resolution run distinguishes."""

    TARGET_VALIDATION = "target-validation"
    AI_RESPONSE_FORMAT = "ai-response-format"
    PACKAGE_VERSION_VALIDATION = "package-version-validation"
    NO_NEW_SUGGESTION = "no-new-suggestion"
    NO_SUITABLE_VERSION = "no-suitable-version"
    TIMEOUT = "timeout"
    CANCELLED = "cancelled"
    WORKSPACE = "workspace"

    @property
    def is_retryable(self) -> bool:
        """Suggestion-protocol errors recovered inside the inner retry budget."""
        return self in _RETRYABLE

    @property
    def is_fatal(self) -> bool:
        """Errors that end the whole resolution run."""
        return not self.is_retryable


_RETRYABLE = frozenset({
    ErrorKind.AI_RESPONSE_FORMAT,
    ErrorKind.PACKAGE_VERSION_VALIDATION,
    ErrorKind.NO_NEW_SUGGESTION,
})


class ResolutionError(Exception):
    """Failure raised anywhere in a resolution run.

    Attributes:
        kind: Discriminant used for retry and reporting decisions.
        details: Structured context (offending entries, timeouts, ...).
    """

    def __init__(self, kind: ErrorKind, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.kind = kind
        self.message = message
        self.details = dict(details or {})

    def __str__(self) -> str:
        return f"[{self.kind.value}] {self.message}"


_RESPONSE_SHAPE = textwrap.dedent("""\
    {
      "suggestions": [
        {
          "name": "package-name",
          "version": "suggested-version",
          "isDev": true/false,
          "reason": "explanation for this version"
        }
      ],
      "reasoning": {
        "updateMade": [
          {
            "package": {"name": "package-name", "rank": 0},
            "fromVersion": "old-version",
            "toVersion": "new-version",
            "reason": {"name": "package-that-required-it", "rank": 0}
          }
        ]
      },
      "analysis": "brief analysis of the conflict"
    }""")


def _format_entries(entries: List[Dict[str, Any]]) -> str:
    lines = []
    for entry in entries:
        line = f"- {entry.get('name')}@{entry.get('version')}"
        if entry.get("problem"):
            line += f": {entry['problem']}"
        if entry.get("available"):
            line += f" (newest available: {', '.join(entry['available'])})"
        lines.append(line)
    return "\n".join(lines)


def render_retry_guidance(kind: ErrorKind, details: Optional[Dict[str, Any]] = None) -> str:
    """Corrective instruction appended to the transcript after a rejected response.

    Raises:
        ValueError: ``kind`` is not a retryable suggestion-protocol error.
    """
    details = details or {}
    if kind is ErrorKind.AI_RESPONSE_FORMAT:
        problem = details.get("problem", "the response could not be parsed")
        return (
            "IMPORTANT: Previous response was invalid "
            f"({problem}). Please ensure your response is valid JSON with this exact structure:\n"
            f"{_RESPONSE_SHAPE}\n\n"
            "The suggestions array must not be empty. For each suggestion, set isDev to true "
            "if it's a development dependency (like typescript, @types/*, testing tools, build "
            "tools, linters) or false if it's a production dependency."
        )
    if kind is ErrorKind.PACKAGE_VERSION_VALIDATION:
        entries = details.get("invalid", [])
        return (
            "IMPORTANT: The following suggested packages or versions do not exist in the npm "
            f"registry:\n{_format_entries(entries)}\n\n"
            "Only suggest versions listed in the availableVersions of the analysis, or other "
            "published versions. Respond again with the full JSON structure:\n"
            f"{_RESPONSE_SHAPE}"
        )
    if kind is ErrorKind.NO_NEW_SUGGESTION:
        current = details.get("current", {})
        pinned = "\n".join(f"- {k}@{v}" for k, v in sorted(current.items()))
        return (
            "IMPORTANT: Your suggestions would not change package.json at all; every suggested "
            "version is already present. Propose a different change that addresses the "
            "conflict, for example upgrading the blocking package named in the analysis."
            + (f"\nCurrently declared versions of the suggested packages:\n{pinned}" if pinned else "")
        )
    raise ValueError(f"No retry guidance for non-retryable error kind {kind.value}")
