"""Data model shared by conflict analysis, suggestion and resolution."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Iterable, Optional, Tuple

from constants import Constants, Tier


class ConstraintKind(Enum):
    """How a requirement was expressed in the installer output."""

    PEER = "peer"
    DIRECT = "direct"
    CONFLICT = "conflict"
    VERSION_MISMATCH = "version-mismatch"


class Severity(Enum):
    """Fixed-rule assessment of how restrictive a requirement is."""

    BLOCKING = "blocking"
    WARNING = "warning"
    INFO = "info"


class AnalysisSource(Enum):
    """Which extraction strategy produced an analysis."""

    PATTERN = "pattern"
    ASSISTED = "assisted"
    NONE = "none"


@dataclass(frozen=True)
class DependencyUpdate:
    """A requested or suggested manifest change."""

    name: str
    target_version: str
    is_dev: bool = False
    reason: Optional[str] = None
    from_version: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "version": self.target_version,
            "isDev": self.is_dev,
            "reason": self.reason,
            "fromVersion": self.from_version,
        }


@dataclass(frozen=True)
class RequiredBy:
    """One requirement placed on a package by a dependent."""

    dependent_name: str
    dependent_version: Optional[str]
    required_range: str
    kind: ConstraintKind
    satisfied: bool
    severity: Severity

    @property
    def dedupe_key(self) -> Tuple[str, str]:
        return self.required_range, self.dependent_name

    def to_dict(self) -> Dict[str, Any]:
        return {
            "dependentName": self.dependent_name,
            "dependentVersion": self.dependent_version,
            "requiredRange": self.required_range,
            "kind": self.kind.value,
            "satisfied": self.satisfied,
            "severity": self.severity.value,
        }


@dataclass(frozen=True)
class ConflictRecord:
    """All requirements found for one package in a single install failure."""

    package_name: str
    current_version: Optional[str]
    required_by: Tuple[RequiredBy, ...] = ()

    def to_dict(self) -> Dict[str, Any]:
        return {
            "packageName": self.package_name,
            "currentVersion": self.current_version,
            "requiredBy": [r.to_dict() for r in self.required_by],
        }


@dataclass(frozen=True)
class PackageRankInfo:
    """Rank, tier and upgrade candidates for a package mentioned in a failure."""

    name: str
    current_version: Optional[str] = None
    rank: int = Constants.UNRANKED_RANK
    tier: Tier = Tier.UNRANKED
    available_versions: Tuple[str, ...] = ()

    @classmethod
    def root(cls) -> "PackageRankInfo":
        """The fixed entry for the enclosing project."""
        return cls(name=Constants.ROOT_PROJECT, rank=Constants.ROOT_RANK, tier=Tier.ROOT)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "currentVersion": self.current_version,
            "rank": self.rank,
            "tier": self.tier.value,
            "availableVersions": list(self.available_versions),
        }


@dataclass(frozen=True)
class ConflictAnalysis:
    """Structured model of one failed install.

    Every package and dependent referenced by ``conflicts`` has an entry in
    ``all_packages_mentioned``; use :meth:`build` to keep that true.
    """

    conflicts: Tuple[ConflictRecord, ...] = ()
    all_packages_mentioned: Dict[str, PackageRankInfo] = field(default_factory=dict)
    source: AnalysisSource = AnalysisSource.NONE

    @classmethod
    def empty(cls) -> "ConflictAnalysis":
        return cls()

    @classmethod
    def build(
        cls,
        conflicts: Iterable[ConflictRecord],
        source: AnalysisSource,
        versions: Optional[Dict[str, Optional[str]]] = None,
    ) -> "ConflictAnalysis":
        """Create an analysis and derive ``all_packages_mentioned`` from the conflicts."""
        conflicts = tuple(sorted(conflicts, key=lambda c: c.package_name))
        versions = versions or {}
        mentioned: Dict[str, PackageRankInfo] = {}

        def _mention(name: str, version: Optional[str]) -> None:
            if name == Constants.ROOT_PROJECT:
                mentioned[name] = PackageRankInfo.root()
                return
            existing = mentioned.get(name)
            if existing is None or (existing.current_version is None and version):
                mentioned[name] = PackageRankInfo(name=name, current_version=version)

        for record in conflicts:
            _mention(record.package_name, record.current_version or versions.get(record.package_name))
            for req in record.required_by:
                _mention(req.dependent_name, req.dependent_version or versions.get(req.dependent_name))
        return cls(conflicts=conflicts, all_packages_mentioned=mentioned, source=source)

    @property
    def is_empty(self) -> bool:
        return not self.conflicts

    def rank_of(self, name: str) -> int:
        """Computed rank for ``name``; unknown names rank as unranked."""
        if name == Constants.ROOT_PROJECT:
            return Constants.ROOT_RANK
        info = self.all_packages_mentioned.get(name)
        return info.rank if info is not None else Constants.UNRANKED_RANK

    def blocking(self) -> Tuple[Tuple[ConflictRecord, RequiredBy], ...]:
        """Unsatisfied or blocking requirements, in record order."""
        return tuple(
            (record, req)
            for record in self.conflicts
            for req in record.required_by
            if req.severity is Severity.BLOCKING or not req.satisfied
        )

    def blockers(self, targets: Iterable[str]) -> Tuple[str, ...]:
        """Dependents whose requirements stand in the way of target packages."""
        targets = set(targets)
        found = []
        for record, req in self.blocking():
            if record.package_name in targets and req.dependent_name not in targets:
                name = req.dependent_name
            elif req.dependent_name in targets and record.package_name not in targets:
                name = record.package_name
            else:
                continue
            if name != Constants.ROOT_PROJECT and name not in found:
                found.append(name)
        return tuple(found)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "conflicts": [c.to_dict() for c in self.conflicts],
            "allPackagesMentioned": [
                info.to_dict()
                for info in sorted(self.all_packages_mentioned.values(), key=lambda i: -i.rank)
            ],
        }


@dataclass(frozen=True)
class Suggestion:
    """A manifest edit proposed by the reasoning engine."""

    name: str
    version: str
    is_dev: bool
    reason: str
    from_version: Optional[str] = None

    def to_update(self) -> DependencyUpdate:
        return DependencyUpdate(
            name=self.name,
            target_version=self.version,
            is_dev=self.is_dev,
            reason=self.reason,
            from_version=self.from_version,
        )


@dataclass(frozen=True)
class RankRef:
    name: str
    rank: int


@dataclass(frozen=True)
class ReasoningEntry:
    """One upgrade decision and the rank comparison that justified it."""

    package: RankRef
    from_version: Optional[str]
    to_version: str
    reason: RankRef
    comment: str = ""

    def to_dict(self) -> Dict[str, Any]:
        return {
            "package": {"name": self.package.name, "rank": self.package.rank},
            "fromVersion": self.from_version,
            "toVersion": self.to_version,
            "reason": {"name": self.reason.name, "rank": self.reason.rank},
            "comment": self.comment,
        }

    def summary(self) -> str:
        return (
            f"{self.package.name}({self.package.rank}) "
            f"{self.from_version or '?'} -> {self.to_version} "
            f"because of {self.reason.name}({self.reason.rank})"
        )
