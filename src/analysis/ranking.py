"""Package importance ranking.

The reasoning engine classifies a package from its README into a tier, a
base score and a set of named modifiers. ``RankingPolicy`` turns that into a
final rank; its tier ranges and modifier bounds are data, so a deployment can
swap in a different policy without touching the service.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from typing import Any, Dict, Mapping, Optional, Tuple

from constants import Constants, Tier
from common.errors import ErrorKind, ResolutionError
from common.logging_utils import extra_context, is_debug_enabled
from reasoning import prompts
from reasoning.engine import extract_json

logger = logging.getLogger(__name__)

TIER_BASES: Dict[Tier, Tuple[int, int]] = {
    Tier.CRITICAL_INFRASTRUCTURE: (1000, 1200),
    Tier.OFFICIAL_ECOSYSTEM: (700, 900),
    Tier.POPULAR_UTILITIES: (500, 650),
    Tier.SPECIALIZED: (300, 450),
    Tier.LIGHTWEIGHT_NICHE: (150, 250),
    Tier.PROBLEMATIC: (50, 100),
}

DEFAULT_MODIFIER_BOUNDS: Dict[str, Tuple[int, int]] = {
    "ecosystemCoherence": (0, 100),
    "organizationalPriority": (0, 100),
    "popularity": (0, 100),
    "maintenanceRecency": (-50, 50),
    "security": (-200, 0),
    "deprecation": (-300, 0),
    "dependentsCount": (0, 100),
    "documentationQuality": (0, 50),
}


@dataclass(frozen=True)
class Ranking:
    rank: int
    tier: Tier

    @classmethod
    def unranked(cls) -> "Ranking":
        return cls(Constants.UNRANKED_RANK, Tier.UNRANKED)


def parse_tier(value: Any) -> Optional[Tier]:
    """Accept ``LIGHTWEIGHT/NICHE``, ``lightweight niche`` and similar spellings."""
    if not isinstance(value, str):
        return None
    key = re.sub(r"[^A-Za-z]+", "_", value).strip("_").upper()
    try:
        tier = Tier(key)
    except ValueError:
        return None
    return tier if tier in TIER_BASES else None


def _as_int(value: Any) -> Optional[int]:
    try:
        return int(float(value))
    except (TypeError, ValueError):
        return None


@dataclass
class RankingPolicy:
    """Additive scoring: clamped tier base plus clamped modifiers."""

    tier_bases: Dict[Tier, Tuple[int, int]] = field(default_factory=lambda: dict(TIER_BASES))
    modifier_bounds: Dict[str, Tuple[int, int]] = field(
        default_factory=lambda: dict(DEFAULT_MODIFIER_BOUNDS)
    )

    def score(self, tier: Tier, base: Any = None, modifiers: Optional[Mapping[str, Any]] = None) -> int:
        low, high = self.tier_bases[tier]
        base_value = _as_int(base)
        if base_value is None:
            base_value = (low + high) // 2
        total = min(max(base_value, low), high)
        for name, raw in (modifiers or {}).items():
            bounds = self.modifier_bounds.get(name)
            value = _as_int(raw)
            if bounds is None or value is None:
                continue
            total += min(max(value, bounds[0]), bounds[1])
        return max(total, 0)

    @classmethod
    def from_config(cls, data: Optional[Mapping[str, Any]]) -> "RankingPolicy":
        """Overlay ``{modifiers: {name: [lo, hi]}}`` on the default bounds."""
        policy = cls()
        for name, bounds in ((data or {}).get("modifiers") or {}).items():
            if isinstance(bounds, (list, tuple)) and len(bounds) == 2:
                policy.modifier_bounds[name] = (int(bounds[0]), int(bounds[1]))
            else:
                logger.warning("Ignoring malformed ranking modifier bounds for %s", name)
        return policy


class RankingService:
    """Read-through ranking lookups keyed ``ranking:<name>``."""

    def __init__(
        self,
        cache,
        registry,
        engine=None,
        *,
        policy: Optional[RankingPolicy] = None,
        ttl: float = Constants.RANKING_TTL_SEC,
    ):
        self._cache = cache
        self._registry = registry
        self._engine = engine
        self._policy = policy or RankingPolicy()
        self._ttl = ttl

    def get_ranking(self, name: str) -> Ranking:
        """Rank and tier for ``name``; failures degrade to unranked and are not cached."""
        if name == Constants.ROOT_PROJECT:
            return Ranking(Constants.ROOT_RANK, Tier.ROOT)

        cache_key = f"{Constants.CACHE_KEY_RANKING}{name}"
        cached = self._cache.get(cache_key) if self._cache is not None else None
        if isinstance(cached, dict):
            tier = parse_tier(cached.get("tier"))
            rank = _as_int(cached.get("rank"))
            if tier is not None and rank is not None:
                return Ranking(rank, tier)

        try:
            ranking = self._compute(name)
        except ResolutionError as e:
            if e.kind is ErrorKind.CANCELLED:
                raise
            logger.warning("Ranking for %s unavailable: %s", name, e.message)
            return Ranking.unranked()
        except Exception as e:  # pylint: disable=broad-exception-caught
            logger.warning("Ranking for %s unavailable: %s", name, e)
            return Ranking.unranked()

        if self._cache is not None:
            self._cache.set(cache_key, {"rank": ranking.rank, "tier": ranking.tier.value}, self._ttl)
        if is_debug_enabled(logger):
            logger.debug(
                "Computed package ranking",
                extra=extra_context(
                    event="ranking",
                    component="ranking",
                    outcome="computed",
                    package=name,
                    rank=ranking.rank,
                    tier=ranking.tier.value,
                )
            )
        return ranking

    def _compute(self, name: str) -> Ranking:
        if self._engine is None:
            raise ResolutionError(ErrorKind.AI_RESPONSE_FORMAT, "no reasoning engine configured")
        readme = self._registry.get_readme(name) if self._registry is not None else ""
        prompt = prompts.ranking_prompt(name, readme, readme_limit=Constants.README_MAX_CHARS)
        payload = extract_json(self._engine.generate(prompt, temperature=0.0))
        if not isinstance(payload, dict):
            raise ResolutionError(ErrorKind.AI_RESPONSE_FORMAT, "ranking response is not an object")
        tier = parse_tier(payload.get("tier"))
        if tier is None:
            raise ResolutionError(
                ErrorKind.AI_RESPONSE_FORMAT, f"unknown tier {payload.get('tier')!r}"
            )
        modifiers = payload.get("modifiers")
        if not isinstance(modifiers, dict):
            modifiers = {}
        return Ranking(self._policy.score(tier, payload.get("base"), modifiers), tier)
