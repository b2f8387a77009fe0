"""Validation gates applied to every reasoning-engine suggestion response.

Order matters: structure, rectification, registry existence, then the no-op
guard. Each gate raises ``ResolutionError`` with the kind the generator uses
to decide between a corrective retry and aborting the run.
"""

from __future__ import annotations

import copy
import logging
from typing import Any, Dict, List, Optional, Sequence, Tuple

from common.errors import ErrorKind, ResolutionError
from common.schema import SchemaError, validate
from analysis.models import ConflictAnalysis, RankRef, ReasoningEntry, Suggestion
from registry.npm.client import RegistryError
from workspace import manifest as manifest_io

logger = logging.getLogger(__name__)

_RANK = {"type": ["integer", "number", "string", "null"]}
_REF = {
    "type": "object",
    "required": ["name"],
    "properties": {"name": {"type": "string", "minLength": 1}, "rank": _RANK},
}

RESPONSE_SCHEMA: Dict[str, Any] = {
    "type": "object",
    "required": ["suggestions"],
    "properties": {
        "suggestions": {
            "type": "array",
            "minItems": 1,
            "items": {
                "type": "object",
                "required": ["name", "version", "isDev"],
                "properties": {
                    "name": {"type": "string", "minLength": 1},
                    "version": {"type": "string"},
                    "isDev": {"type": "boolean"},
                    "reason": {"type": ["string", "null"]},
                    "fromVersion": {"type": ["string", "null"]},
                },
            },
        },
        "reasoning": {
            "type": ["object", "null"],
            "properties": {
                "updateMade": {
                    "type": "array",
                    "items": {
                        "type": "object",
                        "required": ["package", "toVersion"],
                        "properties": {
                            "package": _REF,
                            "fromVersion": {"type": ["string", "null"]},
                            "toVersion": {"type": "string"},
                            "reason": _REF,
                        },
                    },
                },
            },
        },
    },
}


def check_structure(payload: Any) -> None:
    """Raise ``AI_RESPONSE_FORMAT`` unless ``payload`` has the response shape."""
    try:
        validate(RESPONSE_SCHEMA, payload, label="response")
    except SchemaError as e:
        raise ResolutionError(ErrorKind.AI_RESPONSE_FORMAT, str(e), {"problem": str(e)}) from e


def parse_suggestions(payload: Dict[str, Any]) -> List[Suggestion]:
    return [
        Suggestion(
            name=item["name"].strip(),
            version=(item.get("version") or "").strip(),
            is_dev=bool(item["isDev"]),
            reason=(item.get("reason") or "").strip(),
            from_version=item.get("fromVersion"),
        )
        for item in payload["suggestions"]
    ]


def rectify_reasoning(payload: Dict[str, Any], analysis: ConflictAnalysis) -> List[ReasoningEntry]:
    """Build reasoning entries with ranks replaced by the computed values."""
    entries = []
    for item in ((payload.get("reasoning") or {}).get("updateMade") or []):
        package = item["package"]["name"]
        reason = (item.get("reason") or {}).get("name") or package
        package_rank = analysis.rank_of(package)
        reason_rank = analysis.rank_of(reason)
        claimed = (item["package"].get("rank"), (item.get("reason") or {}).get("rank"))
        if claimed != (package_rank, reason_rank):
            logger.info(
                "Rectified ranks for %s/%s: claimed %s, computed %s",
                package, reason, claimed, (package_rank, reason_rank),
            )
        entries.append(ReasoningEntry(
            package=RankRef(package, package_rank),
            from_version=item.get("fromVersion"),
            to_version=item["toVersion"],
            reason=RankRef(reason, reason_rank),
        ))
    return entries


def correct_dev_flags(suggestions: Sequence[Suggestion], manifest: Dict[str, Any]) -> List[Suggestion]:
    """Keep packages already declared in the manifest in their current section."""
    corrected = []
    for s in suggestions:
        section = manifest_io.declared_section(manifest, s.name)
        if section is not None:
            is_dev = section == manifest_io.DEV_DEPENDENCIES
            if is_dev != s.is_dev:
                logger.info("Corrected isDev for %s to %s", s.name, is_dev)
                s = Suggestion(s.name, s.version, is_dev, s.reason, s.from_version)
        corrected.append(s)
    return corrected


def apply_to_copy(manifest: Dict[str, Any], suggestions: Sequence[Suggestion]) -> Dict[str, Any]:
    candidate = copy.deepcopy(manifest)
    for s in suggestions:
        manifest_io.update_dependency(candidate, s.name, s.version, s.is_dev)
    return candidate


class SuggestionValidator:
    """Runs every gate over a decoded response."""

    def __init__(self, registry):
        self._registry = registry

    def validate(
        self,
        payload: Any,
        analysis: ConflictAnalysis,
        manifest: Dict[str, Any],
        dependents=None,
    ) -> Tuple[List[Suggestion], List[ReasoningEntry]]:
        """Return validated suggestions and rectified reasoning or raise."""
        check_structure(payload)
        suggestions = correct_dev_flags(parse_suggestions(payload), manifest)
        reasoning = rectify_reasoning(payload, analysis)
        reasoning = self.rectify_dependents(reasoning, analysis, dependents)
        self.check_registry(suggestions, analysis)
        self.check_effective(suggestions, manifest)
        return suggestions, reasoning

    @staticmethod
    def rectify_dependents(
        reasoning: Sequence[ReasoningEntry], analysis: ConflictAnalysis, dependents
    ) -> List[ReasoningEntry]:
        """Replace cited reasons the lockfile does not back with a real dependent.

        The replacement is the highest-ranked package from the analysis that
        the lockfile records as depending on the updated package. Entries with
        no such dependent are kept as cited.
        """
        if dependents is None or not len(dependents):
            return list(reasoning)
        rectified = []
        for entry in reasoning:
            package, reason = entry.package.name, entry.reason.name
            if reason == package or dependents.is_dependent(package, reason) \
                    or dependents.is_dependent(reason, package):
                rectified.append(entry)
                continue
            candidates = sorted(
                {d.name for d in dependents.get_dependents(package)
                 if d.name in analysis.all_packages_mentioned},
                key=lambda n: (-analysis.rank_of(n), n),
            )
            if not candidates:
                logger.info(
                    "Reasoning cites %s for %s but the lockfile records no dependency between them",
                    reason, package,
                )
                rectified.append(entry)
                continue
            replacement = RankRef(candidates[0], analysis.rank_of(candidates[0]))
            logger.info(
                "Rectified reason for %s from %s to dependent %s(%d)",
                package, reason, replacement.name, replacement.rank,
            )
            rectified.append(ReasoningEntry(
                package=entry.package,
                from_version=entry.from_version,
                to_version=entry.to_version,
                reason=replacement,
            ))
        return rectified

    def check_registry(self, suggestions: Sequence[Suggestion], analysis: ConflictAnalysis) -> None:
        """Blank versions are fatal; unpublished ones are reported together."""
        blank = [s.name for s in suggestions if not s.version]
        if blank:
            raise ResolutionError(
                ErrorKind.NO_SUITABLE_VERSION,
                f"No suitable version found for: {', '.join(blank)}",
                {"packages": blank},
            )

        invalid = []
        for s in suggestions:
            problem = self._lookup_problem(s)
            if problem is None:
                continue
            info = analysis.all_packages_mentioned.get(s.name)
            invalid.append({
                "name": s.name,
                "version": s.version,
                "problem": problem,
                "available": list(info.available_versions[-5:]) if info else [],
            })
        if invalid:
            listing = ", ".join(f"{i['name']}@{i['version']}" for i in invalid)
            raise ResolutionError(
                ErrorKind.PACKAGE_VERSION_VALIDATION,
                f"Suggested versions not found in registry: {listing}",
                {"invalid": invalid},
            )

    def _lookup_problem(self, s: Suggestion) -> Optional[str]:
        try:
            if self._registry.version_exists(s.name, s.version):
                return None
        except RegistryError as e:
            return f"registry lookup failed ({e})"
        return "version does not exist"

    @staticmethod
    def check_effective(suggestions: Sequence[Suggestion], manifest: Dict[str, Any]) -> None:
        """No-op guard over a deep copy of the manifest."""
        if apply_to_copy(manifest, suggestions) == manifest:
            raise ResolutionError(
                ErrorKind.NO_NEW_SUGGESTION,
                "Suggestions do not change the manifest",
                {"current": {s.name: manifest_io.declared_version(manifest, s.name) for s in suggestions}},
            )
