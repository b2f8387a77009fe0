"""Prompt templates for suggestion, assisted parsing and package ranking."""

from __future__ import annotations

import json
import textwrap
from typing import Iterable, Sequence

from common.logging_utils import truncate

SYSTEM_PROMPT = textwrap.dedent("""\
    You are an expert npm dependency resolver with STRATEGIC ANALYSIS capabilities and a PRIMARY GOAL of upgrading packages to newer versions.

    CORE MISSION: Modernize dependency trees by intelligently resolving conflicts through strategic blocker upgrades.

    STRATEGIC PRINCIPLES:
    1. IDENTIFY BLOCKING PACKAGES: Analyze dependency constraints to find packages that prevent target upgrades
    2. UPGRADE BLOCKERS FIRST: Prioritize upgrading blocking packages to versions that support target upgrades
    3. NEWEST COMPATIBLE VERSIONS: Always choose the newest versions that resolve conflicts
    4. RESPECT RANKS: When two packages disagree, the higher ranked package wins and the lower ranked one moves
    5. PROGRESSIVE MODERNIZATION: Never downgrade target packages unless absolutely no alternative exists

    RESPONSE REQUIREMENTS:
    - Always respond with valid JSON only
    - Only suggest versions that are published in the npm registry
    - Include a rationale for each suggestion
    - Copy rank values exactly as given in the analysis; never invent ranks""")

INITIAL_CONTEXT_TEMPLATE = textwrap.dedent("""\
    ORIGINAL PACKAGE.JSON DEPENDENCIES CONTEXT:
    {manifest}

    TARGET UPGRADE GOALS:
    {targets}

    This is the current state before any updates. Focus on achieving these target upgrades through strategic blocker resolution.""")

STRATEGIC_TEMPLATE = textwrap.dedent("""\
    STRATEGIC DEPENDENCY RESOLUTION - ATTEMPT {attempt}/{max_attempts}

    TARGET UPGRADES: {targets}
    {blockers}

    PREVIOUS DECISIONS:
    {reasoning}

    CONFLICT ANALYSIS (packages ordered by rank, with newer published versions):
    {analysis}

    INSTALLATION ERROR:
    {error}

    STRATEGIC INSTRUCTIONS:
    1. If blockers are identified, upgrade them to newer versions that support the target packages
    2. Pick versions from availableVersions whenever possible
    3. Do not repeat a change listed under PREVIOUS DECISIONS unless it is part of a new combination
    4. Only suggest target package downgrades as LAST RESORT

    Respond with JSON containing strategic upgrade suggestions:
    {{
      "suggestions": [
        {{"name": "package-name", "version": "suggested-version", "isDev": true, "reason": "strategic rationale"}}
      ],
      "reasoning": {{
        "updateMade": [
          {{
            "package": {{"name": "package-name", "rank": 0}},
            "fromVersion": "old-version",
            "toVersion": "new-version",
            "reason": {{"name": "package-that-required-it", "rank": 0}}
          }}
        ]
      }},
      "analysis": "strategic analysis of the conflict and resolution approach"
    }}""")

PARSING_TEMPLATE = textwrap.dedent("""\
    Extract every dependency constraint from the npm install error below.

    Respond with JSON only, using exactly this structure:
    {{
      "conflicts": [
        {{
          "packageName": "package that is constrained",
          "currentVersion": "installed or declared version, or null",
          "requiredBy": [
            {{
              "dependentName": "package imposing the constraint (use \\"root project\\" for the project itself)",
              "dependentVersion": "version or null",
              "requiredRange": "semver range",
              "kind": "peer | direct | conflict | version-mismatch"
            }}
          ]
        }}
      ]
    }}

    INSTALL ERROR:
    {error}""")

RANKING_TEMPLATE = textwrap.dedent("""\
    Classify the npm package "{package}" by its importance in a dependency tree.

    Tiers, highest first:
    - CRITICAL_INFRASTRUCTURE: core framework, build-essential or runtime-core packages
    - OFFICIAL_ECOSYSTEM: first-party libraries, official tooling, community standards
    - POPULAR_UTILITIES: heavyweight or standard utilities, testing frameworks, dev tools
    - SPECIALIZED: focused libraries for a specific domain
    - LIGHTWEIGHT_NICHE: small or niche helpers
    - PROBLEMATIC: deprecated, abandoned or insecure packages

    Respond with JSON only:
    {{
      "tier": "one of the tier names above",
      "base": "integer score inside the tier's base range",
      "modifiers": {{
        "ecosystemCoherence": 0,
        "organizationalPriority": 0,
        "popularity": 0,
        "maintenanceRecency": 0,
        "security": 0,
        "deprecation": 0,
        "dependentsCount": 0,
        "documentationQuality": 0
      }}
    }}

    README:
    {readme}""")


def initial_context(manifest: dict, targets: Iterable) -> str:
    """First user message: the untouched manifest dependencies and the goals."""
    deps = {
        key: manifest.get(key, {})
        for key in ("dependencies", "devDependencies", "peerDependencies")
        if manifest.get(key)
    }
    target_lines = "\n".join(
        f"- {t.name}@{t.target_version} ({'dev' if t.is_dev else 'prod'})" for t in targets
    )
    return INITIAL_CONTEXT_TEMPLATE.format(manifest=json.dumps(deps, indent=2), targets=target_lines)


def strategic_prompt(
    reasoning: Sequence,
    error_output: str,
    analysis,
    targets: Sequence[str],
    attempt: int,
    max_attempts: int,
    *,
    error_limit: int,
) -> str:
    """Per-attempt prompt embedding the chain, the error and the hydrated analysis."""
    blockers = analysis.blockers(targets)
    blocker_line = (
        f"IDENTIFIED BLOCKERS: {', '.join(blockers)}"
        if blockers else "No specific blockers identified from error analysis."
    )
    chain = "\n".join(f"- {entry.summary()}" for entry in reasoning) or "- none yet"
    return STRATEGIC_TEMPLATE.format(
        attempt=attempt,
        max_attempts=max_attempts,
        targets=", ".join(targets),
        blockers=blocker_line,
        reasoning=chain,
        analysis=json.dumps(analysis.to_dict(), indent=2),
        error=truncate(error_output, error_limit, tail=True),
    )


def applied_note(suggestions: Iterable) -> str:
    """Transcript note recorded after a round is accepted."""
    changes = ", ".join(f"{s.name}@{s.version}" for s in suggestions)
    return f"Applied suggestions: {changes}. Will now attempt installation with these changes."


def parsing_prompt(error_output: str, *, error_limit: int) -> str:
    return PARSING_TEMPLATE.format(error=truncate(error_output, error_limit, tail=True))


def ranking_prompt(package: str, readme: str, *, readme_limit: int) -> str:
    return RANKING_TEMPLATE.format(
        package=package, readme=truncate(readme, readme_limit) or "(no README published)"
    )
