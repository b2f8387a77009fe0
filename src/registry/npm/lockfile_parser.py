"""Reverse-dependency index built from npm's package-lock.json.

Supports lockfileVersion 1, 2 and 3. The index answers "who depends on X",
which the suggestion validator uses to replace a cited reason with a real
dependent of the package being changed.
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from typing import Dict, List, Optional, Set, Tuple

from constants import Constants

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Dependent:
    """A package that declares a dependency on another."""

    name: str
    version: str


def _name_from_path(pkg_path: str) -> str:
    """``node_modules/a/node_modules/@s/b`` -> ``@s/b``."""
    path_parts = pkg_path.split("/")
    if len(path_parts) >= 2 and path_parts[-2].startswith("@"):
        return f"{path_parts[-2]}/{path_parts[-1]}"
    return path_parts[-1]


class DependentsIndex:
    """Maps a package name to the packages that depend on it."""

    def __init__(self, edges: Optional[Dict[str, Set[Tuple[str, str]]]] = None):
        self._edges: Dict[str, Set[Tuple[str, str]]] = edges or {}

    def _add(self, dependency: str, dependent: str, version: str) -> None:
        self._edges.setdefault(dependency, set()).add((dependent, version))

    def get_dependents(self, name: str) -> List[Dependent]:
        """Dependents of ``name`` sorted by name then version."""
        return [Dependent(n, v) for n, v in sorted(self._edges.get(name, ()))]

    def is_dependent(self, dependency: str, dependent: str) -> bool:
        """True when ``dependent`` declares ``dependency``."""
        return any(n == dependent for n, _ in self._edges.get(dependency, ()))

    def __len__(self) -> int:
        return len(self._edges)

    @classmethod
    def from_data(cls, data: dict, root_name: Optional[str] = None) -> "DependentsIndex":
        """Build the index from a parsed lockfile document.

        The project itself is recorded as ``Constants.ROOT_PROJECT`` (the
        name npm uses in its error output) and, when known, under its own
        package name as well.
        """
        index = cls()
        lockfile_version = data.get("lockfileVersion", 1)

        if lockfile_version in (2, 3) and isinstance(data.get("packages"), dict):
            for pkg_path, pkg_info in data["packages"].items():
                if not isinstance(pkg_info, dict):
                    continue
                if pkg_path:
                    names = [pkg_info.get("name") or _name_from_path(pkg_path)]
                else:
                    names = [Constants.ROOT_PROJECT]
                    if root_name:
                        names.append(root_name)
                version = pkg_info.get("version", "")
                for section in ("dependencies", "devDependencies", "peerDependencies",
                                "optionalDependencies"):
                    for dep_name in (pkg_info.get(section) or {}):
                        for name in names:
                            index._add(dep_name, name, version)
            return index

        def _walk(deps: dict) -> None:
            for pkg_name, pkg_info in deps.items():
                if not isinstance(pkg_info, dict):
                    continue
                for dep_name in (pkg_info.get("requires") or {}):
                    index._add(dep_name, pkg_name, pkg_info.get("version", ""))
                if "dependencies" in pkg_info:
                    _walk(pkg_info["dependencies"])

        # v1 does not record the root's own requirements
        top = data.get("dependencies") or {}
        if isinstance(top, dict):
            _walk(top)
        return index

    @classmethod
    def from_lockfile(cls, lockfile_path: str, root_name: Optional[str] = None) -> "DependentsIndex":
        """Parse ``package-lock.json``; an unreadable file yields an empty index."""
        try:
            with open(lockfile_path, "r", encoding="utf-8") as f:
                data = json.load(f)
        except (FileNotFoundError, IOError, json.JSONDecodeError) as e:
            logger.warning("Failed to parse package-lock.json: %s", e)
            return cls()
        if not isinstance(data, dict):
            return cls()
        return cls.from_data(data, root_name or data.get("name"))
