"""package.json accessor."""

from __future__ import annotations

import json
import logging
import os
from typing import Any, Dict, Optional

from constants import Constants

logger = logging.getLogger(__name__)

DEPENDENCIES = "dependencies"
DEV_DEPENDENCIES = "devDependencies"


class ManifestError(Exception):
    """package.json is missing or cannot be parsed."""


def read_manifest(directory: str) -> Dict[str, Any]:
    """Load ``package.json`` from ``directory`` preserving key order."""
    path = os.path.join(directory, Constants.PACKAGE_JSON_FILE)
    try:
        with open(path, "r", encoding="utf-8") as f:
            data = json.load(f)
    except FileNotFoundError as e:
        raise ManifestError(f"{Constants.PACKAGE_JSON_FILE} not found in {directory}") from e
    except (IOError, json.JSONDecodeError) as e:
        raise ManifestError(f"Cannot read {path}: {e}") from e
    if not isinstance(data, dict):
        raise ManifestError(f"{path} does not contain a JSON object")
    return data


def write_manifest(directory: str, manifest: Dict[str, Any]) -> None:
    """Write ``package.json`` the way npm does (2-space indent, trailing newline)."""
    path = os.path.join(directory, Constants.PACKAGE_JSON_FILE)
    with open(path, "w", encoding="utf-8") as f:
        f.write(json.dumps(manifest, indent=2, ensure_ascii=False) + "\n")


def declared_section(manifest: Dict[str, Any], name: str) -> Optional[str]:
    """``dependencies``/``devDependencies`` holding ``name``, or None."""
    for section in (DEPENDENCIES, DEV_DEPENDENCIES):
        if name in (manifest.get(section) or {}):
            return section
    return None


def declared_version(manifest: Dict[str, Any], name: str) -> Optional[str]:
    section = declared_section(manifest, name)
    return manifest[section][name] if section else None


def update_dependency(manifest: Dict[str, Any], name: str, version: str, is_dev: bool) -> None:
    """Set ``name`` to ``version`` in the dev or prod section, in place.

    An entry in the other section is removed so a package is declared once.
    """
    target = DEV_DEPENDENCIES if is_dev else DEPENDENCIES
    other = DEPENDENCIES if is_dev else DEV_DEPENDENCIES
    if name in (manifest.get(other) or {}):
        del manifest[other][name]
        logger.info("Moved %s from %s to %s", name, other, target)
    manifest.setdefault(target, {})[name] = version


def all_dependencies(manifest: Dict[str, Any]) -> Dict[str, str]:
    """Declared ranges across prod, dev and peer sections; prod wins on clashes."""
    versions: Dict[str, str] = {}
    for section in ("peerDependencies", DEV_DEPENDENCIES, DEPENDENCIES):
        versions.update(manifest.get(section) or {})
    return versions
