"""Coarse categorisation of install failures for logs and reports."""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Tuple


@dataclass(frozen=True)
class ErrorCategory:
    category: str
    severity: str
    actionable: bool
    suggestions: Tuple[str, ...]


_RULES = (
    (
        re.compile(r"peer.*dependency|EBOX_UNMET_PEER_DEP|ERESOLVE", re.IGNORECASE),
        ErrorCategory(
            "peer-dependency", "high", True,
            (
                "Analyze blocking packages and upgrade them",
                "Check for newer versions that resolve peer conflicts",
            ),
        ),
    ),
    (
        re.compile(r"Could not resolve dependency|version conflict", re.IGNORECASE),
        ErrorCategory(
            "version-conflict", "high", True,
            (
                "Find compatible version ranges",
                "Upgrade conflicting packages to compatible versions",
            ),
        ),
    ),
    (
        re.compile(r"404.*not found|E404|ETARGET", re.IGNORECASE),
        ErrorCategory(
            "package-not-found", "high", True,
            (
                "Verify package name spelling",
                "Check if package has been renamed or deprecated",
            ),
        ),
    ),
    (
        re.compile(r"network|timed? ?out|ENOTFOUND|ECONNRESET|EAI_AGAIN", re.IGNORECASE),
        ErrorCategory(
            "network-error", "medium", False,
            ("Check internet connection", "Retry installation after delay"),
        ),
    ),
    (
        re.compile(r"EACCES|EPERM|permission denied", re.IGNORECASE),
        ErrorCategory(
            "permission-error", "medium", False,
            ("Check file system permissions of the project and npm cache",),
        ),
    ),
)

UNKNOWN = ErrorCategory("unknown", "medium", False, ("Review error output for specific issues",))


def categorize_error(error_text: str) -> ErrorCategory:
    """First matching category wins; rules are ordered by specificity."""
    for pattern, category in _RULES:
        if pattern.search(error_text or ""):
            return category
    return UNKNOWN
