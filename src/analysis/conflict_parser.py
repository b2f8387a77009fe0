"""Turn raw npm install output into a structured ``ConflictAnalysis``.

Pattern extraction is the default path. It recognises four shapes of npm
output, tried in this order:

1. conflict blocks (``Found: X@v ... Could not resolve dependency: peer Y@r from Z@v``)
2. version-mismatch statements (``X@v requires Y@r``)
3. unmet-peer notices (``X@v requires a peer of Y@r``)
4. bare peer statements (``peer Y@r from Z@v``)

Assisted extraction through the reasoning engine is only used when none of
the patterns match and an engine is configured.
"""

from __future__ import annotations

import logging
import re
from collections import OrderedDict
from typing import Dict, List, Optional, Tuple

from common.schema import SchemaError, validate

from constants import Constants
from common.errors import ErrorKind, ResolutionError
from common.logging_utils import extra_context, is_debug_enabled
from analysis.models import (
    AnalysisSource,
    ConflictAnalysis,
    ConflictRecord,
    ConstraintKind,
    RequiredBy,
    Severity,
)
from reasoning import prompts
from reasoning.engine import extract_json
from versioning.npm_semver import clean_version, satisfies

logger = logging.getLogger(__name__)

_PKG = r"(?:@[\w.\-~]+/)?[\w.\-~]+"
_RANGE = r"(?:\"[^\"]*\"|'[^']*'|[^\s\"']+)"
_FROM = rf"(?:the root project|{_PKG}(?:@[^\s]+)?)"

_NPM_PREFIX_RE = re.compile(r"^[ \t]*npm (?:ERR!|error|warn|WARN)[ \t]?", re.MULTILINE)

_CONFLICT_BLOCK_RE = re.compile(
    rf"Found:\s+(?P<found>{_PKG})@(?P<found_ver>\S+)(?P<found_body>.*?)"
    rf"Could not resolve dependency:\s*(?:(?P<prefix>peer|dev|optional|peerOptional)\s+)?"
    rf"(?P<pkg>{_PKG})@(?P<range>{_RANGE})\s+from\s+(?P<src>{_FROM})"
    rf"(?P<tail>.*?)(?=\n\s*\n|Found:|Fix the upstream|\Z)",
    re.DOTALL | re.IGNORECASE,
)
_REQUIREMENT_LINE_RE = re.compile(
    rf"^\s*(?:(?P<prefix>dev|peer|optional|peerOptional|overridden)\s+)?"
    rf"(?P<pkg>{_PKG})@(?P<range>{_RANGE})\s+from\s+(?P<src>{_FROM})\s*$",
    re.MULTILINE,
)
_VERSION_MISMATCH_RE = re.compile(
    rf"(?P<dep>{_PKG})@(?P<dep_ver>\S+)\s+[^\n]*?requires\s+(?!a\s+peer\s+of)"
    rf"(?P<pkg>{_PKG})\s*@(?P<range>[^\s,]+)",
    re.IGNORECASE,
)
_UNMET_PEER_RE = re.compile(
    rf"(?:EBOX_UNMET_PEER_DEP\s+)?(?P<dep>{_PKG})@(?P<dep_ver>\S+)\s+requires\s+a\s+peer\s+of\s+"
    rf"(?P<pkg>{_PKG})@(?P<range>{_RANGE})",
    re.IGNORECASE,
)
_BARE_PEER_RE = re.compile(
    rf"peer\s+(?P<pkg>{_PKG})@?(?P<range>{_RANGE})?\s*from\s+(?P<src>{_FROM})",
    re.IGNORECASE,
)

ASSISTED_SCHEMA = {
    "type": "object",
    "required": ["conflicts"],
    "properties": {
        "conflicts": {
            "type": "array",
            "items": {
                "type": "object",
                "required": ["packageName", "requiredBy"],
                "properties": {
                    "packageName": {"type": "string", "minLength": 1},
                    "currentVersion": {"type": ["string", "null"]},
                    "requiredBy": {
                        "type": "array",
                        "items": {
                            "type": "object",
                            "required": ["dependentName", "requiredRange"],
                            "properties": {
                                "dependentName": {"type": "string", "minLength": 1},
                                "dependentVersion": {"type": ["string", "null"]},
                                "requiredRange": {"type": "string"},
                                "kind": {"enum": [k.value for k in ConstraintKind]},
                            },
                        },
                    },
                },
            },
        },
    },
}


def assess_severity(required_range: Optional[str]) -> Severity:
    """Fixed rule: upper bound without ``>=`` or an exact pin is blocking."""
    constraint = (required_range or "").strip()
    if not constraint:
        return Severity.INFO
    if "<" in constraint and ">=" not in constraint:
        return Severity.BLOCKING
    if not any(op in constraint for op in ("^", "~", ">=")):
        return Severity.BLOCKING
    return Severity.WARNING


def _unquote(value: Optional[str]) -> str:
    value = (value or "").strip()
    if len(value) >= 2 and value[0] == value[-1] and value[0] in "\"'":
        value = value[1:-1]
    return value.strip().rstrip(".,;:")


def _split_source(source: str) -> Tuple[str, Optional[str]]:
    """``the root project`` or ``name@version`` -> (name, version)."""
    source = source.strip()
    if source.lower() == "the root project":
        return Constants.ROOT_PROJECT, None
    at = source.rfind("@")
    if at > 0:
        return source[:at], _unquote(source[at + 1:]) or None
    return source, None


def strip_npm_prefixes(text: str) -> str:
    """Drop ``npm error`` / ``npm ERR!`` line prefixes so patterns see bare lines."""
    return _NPM_PREFIX_RE.sub("", text or "")


class _Collector:
    """Accumulates requirements per package, deduplicated by (range, dependent)."""

    def __init__(self, current_versions: Dict[str, Optional[str]]):
        self._current = current_versions
        self._records: "OrderedDict[str, OrderedDict[Tuple[str, str], RequiredBy]]" = OrderedDict()

    def add(
        self,
        package: str,
        dependent: str,
        dependent_version: Optional[str],
        required_range: str,
        kind: ConstraintKind,
        unmet: bool = False,
    ) -> None:
        if package == dependent:
            return
        current = self._current.get(package)
        ok = satisfies(current, required_range) if required_range else True
        satisfied = bool(ok) and not unmet
        entry = RequiredBy(
            dependent_name=dependent,
            dependent_version=dependent_version,
            required_range=required_range,
            kind=kind,
            satisfied=satisfied,
            severity=assess_severity(required_range),
        )
        bucket = self._records.setdefault(package, OrderedDict())
        bucket.setdefault(entry.dedupe_key, entry)

    def records(self) -> List[ConflictRecord]:
        return [
            ConflictRecord(
                package_name=name,
                current_version=self._current.get(name),
                required_by=tuple(entries.values()),
            )
            for name, entries in self._records.items()
        ]


class ConflictParser:
    """Parses installer error text; optionally falls back to assisted extraction."""

    def __init__(self, engine=None, *, error_limit: int = Constants.ERROR_EXCERPT_CHARS):
        self._engine = engine
        self._error_limit = error_limit

    def parse(
        self,
        raw_error_text: str,
        manifest_versions: Optional[Dict[str, str]] = None,
    ) -> ConflictAnalysis:
        """Build a fresh analysis for one failed install.

        Args:
            raw_error_text: Combined installer stderr/stdout.
            manifest_versions: Declared ranges by package name, used to infer
                current versions npm did not print.
        """
        text = strip_npm_prefixes(raw_error_text)
        current = self._current_versions(text, manifest_versions or {})
        records = self.extract_patterns(text, current)
        source = AnalysisSource.PATTERN

        if not records and self._engine is not None and text.strip():
            records = self._extract_assisted(raw_error_text, current)
            source = AnalysisSource.ASSISTED if records else AnalysisSource.NONE
        elif not records:
            source = AnalysisSource.NONE

        analysis = ConflictAnalysis.build(records, source, current)
        logger.info(
            "Conflict analysis: %d conflicted package(s), %d package(s) mentioned",
            len(analysis.conflicts),
            len(analysis.all_packages_mentioned),
        )
        if is_debug_enabled(logger):
            logger.debug(
                "Parsed install error",
                extra=extra_context(
                    event="parse",
                    component="conflict_parser",
                    action="parse",
                    outcome=source.value,
                    conflicts=len(analysis.conflicts),
                )
            )
        return analysis

    @staticmethod
    def _current_versions(text: str, manifest_versions: Dict[str, str]) -> Dict[str, Optional[str]]:
        current: Dict[str, Optional[str]] = {
            name: clean_version(spec) for name, spec in manifest_versions.items()
        }
        # npm's "Found:" lines reflect what is actually installed and win
        for match in re.finditer(rf"Found:\s+(?P<pkg>{_PKG})@(?P<ver>\S+)", text):
            current[match.group("pkg")] = clean_version(_unquote(match.group("ver"))) or _unquote(
                match.group("ver")
            )
        return current

    def extract_patterns(self, text: str, current: Dict[str, Optional[str]]) -> List[ConflictRecord]:
        """Deterministic extraction over already prefix-stripped text."""
        collector = _Collector(current)

        for block in _CONFLICT_BLOCK_RE.finditer(text):
            dependent, dependent_version = _split_source(block.group("src"))
            collector.add(
                block.group("pkg"), dependent, dependent_version,
                _unquote(block.group("range")), ConstraintKind.CONFLICT,
            )
            for section in (block.group("found_body"), block.group("tail")):
                self._collect_requirement_lines(section, collector)

        for match in _VERSION_MISMATCH_RE.finditer(text):
            collector.add(
                match.group("pkg"), match.group("dep"), _unquote(match.group("dep_ver")),
                _unquote(match.group("range")), ConstraintKind.VERSION_MISMATCH,
            )

        for match in _UNMET_PEER_RE.finditer(text):
            collector.add(
                match.group("pkg"), match.group("dep"), _unquote(match.group("dep_ver")),
                _unquote(match.group("range")), ConstraintKind.PEER, unmet=True,
            )

        for match in _BARE_PEER_RE.finditer(text):
            dependent, dependent_version = _split_source(match.group("src"))
            collector.add(
                match.group("pkg"), dependent, dependent_version,
                _unquote(match.group("range")), ConstraintKind.PEER,
            )

        return collector.records()

    @staticmethod
    def _collect_requirement_lines(section: str, collector: _Collector) -> None:
        for line in _REQUIREMENT_LINE_RE.finditer(section or ""):
            prefix = (line.group("prefix") or "").lower()
            kind = ConstraintKind.PEER if prefix.startswith("peer") else ConstraintKind.DIRECT
            dependent, dependent_version = _split_source(line.group("src"))
            collector.add(
                line.group("pkg"), dependent, dependent_version,
                _unquote(line.group("range")), kind,
            )

    def _extract_assisted(
        self, raw_error_text: str, current: Dict[str, Optional[str]]
    ) -> List[ConflictRecord]:
        prompt = prompts.parsing_prompt(raw_error_text, error_limit=self._error_limit)
        try:
            payload = extract_json(self._engine.generate(prompt))
            validate(ASSISTED_SCHEMA, payload, label="assisted extraction")
        except SchemaError as e:
            logger.warning("Assisted extraction rejected: %s", e)
            return []
        except ResolutionError as e:
            if e.kind is not ErrorKind.AI_RESPONSE_FORMAT:
                raise
            logger.warning("Assisted extraction failed: %s", e.message)
            return []

        for item in payload["conflicts"]:
            if item.get("currentVersion") and not current.get(item["packageName"]):
                current[item["packageName"]] = clean_version(item["currentVersion"])
        collector = _Collector(current)
        for item in payload["conflicts"]:
            for req in item["requiredBy"]:
                collector.add(
                    item["packageName"],
                    req["dependentName"],
                    req.get("dependentVersion"),
                    _unquote(req["requiredRange"]),
                    ConstraintKind(req.get("kind") or ConstraintKind.PEER.value),
                )
        records = collector.records()
        logger.info("Assisted extraction produced %d conflict record(s)", len(records))
        return records
