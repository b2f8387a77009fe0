"""Enrich a ``ConflictAnalysis`` with registry versions and rankings.

Lookups for distinct packages are independent reads, so each step fans out
over a thread pool and joins before returning a new analysis. A failure for
one package degrades only that entry.
"""

from __future__ import annotations

import dataclasses
import logging
from concurrent.futures import ThreadPoolExecutor, as_completed
from typing import Callable, Dict, TypeVar

from constants import Constants
from common.errors import ErrorKind, ResolutionError
from common.logging_utils import extra_context, is_debug_enabled, Timer
from analysis.models import ConflictAnalysis, PackageRankInfo
from analysis.ranking import Ranking
from versioning.npm_semver import newer_versions

logger = logging.getLogger(__name__)

T = TypeVar("T")


def _fan_out(
    names, lookup: Callable[[str], T], fallback: Callable[[str, Exception], T], max_workers: int
) -> Dict[str, T]:
    results: Dict[str, T] = {}
    if not names:
        return results
    with ThreadPoolExecutor(max_workers=max(1, min(len(names), max_workers))) as executor:
        futures = {executor.submit(lookup, name): name for name in names}
        for future in as_completed(futures):
            name = futures[future]
            try:
                results[name] = future.result()
            except ResolutionError as e:
                if e.kind is ErrorKind.CANCELLED:
                    raise
                results[name] = fallback(name, e)
            except Exception as e:  # pylint: disable=broad-exception-caught
                results[name] = fallback(name, e)
    return results


def hydrate_with_registry(
    analysis: ConflictAnalysis,
    registry,
    max_workers: int = Constants.HYDRATION_MAX_WORKERS,
) -> ConflictAnalysis:
    """Attach versions strictly newer than each package's current version."""
    names = [n for n in analysis.all_packages_mentioned if n != Constants.ROOT_PROJECT]

    def _degrade(name, exc):
        logger.warning("Could not fetch versions for %s: %s", name, exc)
        return ()

    with Timer() as timer:
        fetched = _fan_out(names, registry.get_versions, _degrade, max_workers)

    mentioned: Dict[str, PackageRankInfo] = {}
    for name, info in analysis.all_packages_mentioned.items():
        if name in fetched:
            available = tuple(newer_versions(fetched[name], info.current_version))
            info = dataclasses.replace(info, available_versions=available)
        mentioned[name] = info

    if is_debug_enabled(logger):
        logger.debug(
            "Registry hydration complete",
            extra=extra_context(
                event="hydrate",
                component="hydration",
                action="registry",
                count=len(names),
                duration_ms=timer.duration_ms(),
            )
        )
    return dataclasses.replace(analysis, all_packages_mentioned=mentioned)


def hydrate_with_ranking(
    analysis: ConflictAnalysis,
    ranking_service,
    max_workers: int = Constants.HYDRATION_MAX_WORKERS,
) -> ConflictAnalysis:
    """Attach rank and tier to every mentioned package."""
    names = list(analysis.all_packages_mentioned)

    def _degrade(name, exc):
        logger.warning("Could not rank %s: %s", name, exc)
        return Ranking.unranked()

    with Timer() as timer:
        ranks = _fan_out(names, ranking_service.get_ranking, _degrade, max_workers)

    mentioned = {
        name: dataclasses.replace(info, rank=ranks[name].rank, tier=ranks[name].tier)
        for name, info in analysis.all_packages_mentioned.items()
    }
    if is_debug_enabled(logger):
        logger.debug(
            "Ranking hydration complete",
            extra=extra_context(
                event="hydrate",
                component="hydration",
                action="ranking",
                count=len(names),
                duration_ms=timer.duration_ms(),
            )
        )
    return dataclasses.replace(analysis, all_packages_mentioned=mentioned)
