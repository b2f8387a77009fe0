"""Human-readable report for a finished resolution run."""

from __future__ import annotations

from typing import List

from constants import Constants
from common.logging_utils import truncate
from resolution.models import ResolutionResult, UserOutcome


def _attempts(n: int) -> str:
    return f"{n} attempt" if n == 1 else f"{n} attempts"


def _updates_block(result: ResolutionResult) -> List[str]:
    lines = ["Updated packages:"]
    for u in result.applied_updates:
        kind = "dev" if u.is_dev else "prod"
        origin = f" (from {u.from_version})" if u.from_version else ""
        lines.append(f"- {u.name}@{u.target_version} [{kind}]{origin}")
    if len(lines) == 1:
        lines.append("- none")
    return lines


def render_report(result: ResolutionResult, *, tail_chars: int = Constants.REPORT_TAIL_CHARS) -> str:
    """Outcome, attempts used, applied packages and a truncated install-log tail."""
    outcome = result.user_outcome
    lines: List[str] = []

    if outcome is UserOutcome.FAILURE:
        if result.invalid_targets:
            lines.append("❌ Invalid target versions; no files were modified")
            for entry in result.invalid_targets:
                lines.append(f"- {entry['name']}@{entry['version']}: {entry['problem']}")
            return "\n".join(lines)
        lines.append(
            f"❌ Failed to resolve dependencies after {_attempts(result.attempts_used)} "
            f"({result.outcome.value})"
        )
        if result.error_kind is not None:
            lines.append(f"Error kind: {result.error_kind.value}")
        lines.append("")
        lines.append("Final error:")
        lines.append(truncate(result.last_error or "unknown error", tail_chars, tail=True))
        if result.install_log:
            lines.append("")
            lines.append("Install log (tail):")
            lines.append(truncate(result.install_log, tail_chars, tail=True))
        lines.append("")
        lines.extend(_updates_block(result))
        lines.append(f"Copy-back: {result.copy_back_status.value}")
        return "\n".join(lines)

    lines.append(f"✅ Successfully updated dependencies after {_attempts(result.attempts_used)}")
    if outcome is UserOutcome.SUCCESS_WITH_COPY_WARNING:
        lines.append(
            f"⚠️ Copying results back finished with status '{result.copy_back_status.value}'; "
            "check package.json and package-lock.json in the repository"
        )
    lines.append("")
    lines.extend(_updates_block(result))
    if result.reasoning:
        lines.append("")
        lines.append("Reasoning:")
        lines.extend(f"- {entry.summary()}" for entry in result.reasoning)
    if result.install_log:
        lines.append("")
        lines.append("Install log (tail):")
        lines.append(truncate(result.install_log, tail_chars, tail=True))
    return "\n".join(lines)
