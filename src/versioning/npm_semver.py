"""npm-flavoured semantic version helpers built on ``semantic_version``.

Ranges are parsed with ``NpmSpec`` which understands ``^``, ``~``, hyphen
ranges and x-ranges natively; anything it rejects is normalized into a
``SimpleSpec`` before giving up.
"""

from __future__ import annotations

import re
from typing import Iterable, List, Optional, Union

import semantic_version

_LEADING_OPERATORS = re.compile(r"^[\s=v^~<>]+")
_EXACT_RE = re.compile(r"^=?v?\d+\.\d+\.\d+(?:-[0-9A-Za-z.\-]+)?(?:\+[0-9A-Za-z.\-]+)?$")

Spec = Union[semantic_version.NpmSpec, semantic_version.SimpleSpec]


def parse_version(value: str) -> Optional[semantic_version.Version]:
    """Parse a strict semantic version, returning None when invalid."""
    try:
        return semantic_version.Version(value.strip().lstrip("v="))
    except (ValueError, AttributeError):
        return None


def clean_version(value: Optional[str]) -> Optional[str]:
    """Coerce a manifest entry such as ``^1.2`` or ``~2.0.1`` to a plain version.

    Only the first comparator of a range is considered. Returns None for
    values that carry no version (``*``, ``latest``, urls, ...).
    """
    if not value:
        return None
    token = _LEADING_OPERATORS.sub("", value.strip()).split(" ", 1)[0].strip()
    if not token or not token[0].isdigit():
        return None
    token = token.replace("x", "0").replace("X", "0").replace("*", "0")
    try:
        return str(semantic_version.Version.coerce(token))
    except ValueError:
        return None


def is_exact_version(value: str) -> bool:
    """True when ``value`` pins a single version rather than a range."""
    return bool(_EXACT_RE.match(value.strip()))


def _normalize_spec(spec_str: str) -> str:
    """Normalize npm range syntax (hyphen, x-ranges) into SimpleSpec-compatible form."""
    s = spec_str.strip()

    m = re.match(r'^\s*([0-9A-Za-z\.\-\+]+)\s*-\s*([0-9A-Za-z\.\-\+]+)\s*$', s)
    if m:
        return f">={m.group(1)},<={m.group(2)}"

    s2 = s.replace('*', 'x').lower()
    m = re.match(r'^\s*(\d+)\.(\d+)\.x\s*$', s2)
    if m:
        major, minor = int(m.group(1)), int(m.group(2))
        return f">={major}.{minor}.0,<{major}.{minor + 1}.0"

    m = re.match(r'^\s*(\d+)(?:\.x)?\s*$', s2)
    if m:
        major = int(m.group(1))
        return f">={major}.0.0,<{major + 1}.0.0"

    # space separated comparators become comma separated
    return ",".join(s.split())


def parse_range(spec_str: str) -> Optional[Spec]:
    """Parse an npm range, returning None when it cannot be understood."""
    if spec_str is None:
        return None
    raw = spec_str.strip().strip("\"'")
    if raw in ("", "*", "latest", "x"):
        raw = "*"
    try:
        return semantic_version.NpmSpec(raw)
    except ValueError:
        pass
    try:
        return semantic_version.SimpleSpec(_normalize_spec(raw))
    except ValueError:
        return None


def satisfies(version: Optional[str], spec_str: Optional[str]) -> Optional[bool]:
    """Return whether ``version`` satisfies ``spec_str``; None when unknowable."""
    if not version or not spec_str:
        return None
    parsed = parse_version(version) or _coerce(version)
    spec = parse_range(spec_str)
    if parsed is None or spec is None:
        return None
    return spec.match(parsed)


def sort_versions(versions: Iterable[str]) -> List[str]:
    """Sort valid versions ascending, dropping anything unparsable."""
    parsed = [v for v in (parse_version(s) for s in versions) if v is not None]
    return [str(v) for v in sorted(parsed)]


def newer_versions(
    versions: Iterable[str],
    current: Optional[str],
    *,
    include_prerelease: bool = False,
) -> List[str]:
    """Versions strictly greater than ``current``, ascending.

    Prereleases are skipped unless requested or the current version is
    itself a prerelease. An unknown current version keeps every version.
    """
    base = parse_version(current) if current else None
    if current and base is None:
        base = _coerce(current)
    allow_pre = include_prerelease or bool(base and base.prerelease)
    result = []
    for text in versions:
        ver = parse_version(text)
        if ver is None:
            continue
        if ver.prerelease and not allow_pre:
            continue
        if base is not None and not ver > base:
            continue
        result.append(ver)
    return [str(v) for v in sorted(result)]


def max_satisfying(versions: Iterable[str], spec_str: str) -> Optional[str]:
    """Highest non-prerelease version matching ``spec_str``."""
    spec = parse_range(spec_str)
    if spec is None:
        return None
    matching = []
    for text in versions:
        ver = parse_version(text)
        if ver is None or ver.prerelease:
            continue
        if spec.match(ver):
            matching.append(ver)
    if not matching:
        return None
    return str(max(matching))


def _coerce(value: str) -> Optional[semantic_version.Version]:
    cleaned = clean_version(value)
    return semantic_version.Version(cleaned) if cleaned else None
