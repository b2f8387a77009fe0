"""NPM registry client: packument metadata, version data and existence checks."""

from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional
from urllib.parse import quote

from constants import Constants
from common.http_client import get_json
from common.logging_utils import extra_context, is_debug_enabled, safe_url, Timer
from versioning.npm_semver import is_exact_version, max_satisfying, sort_versions

logger = logging.getLogger(__name__)


class RegistryError(Exception):
    """Raised when package metadata cannot be obtained from the registry."""

    def __init__(self, package: str, message: str, status_code: int = 0):
        super().__init__(f"{package}: {message}")
        self.package = package
        self.status_code = status_code


class PackageNotFoundError(RegistryError):
    """The registry answered 404 for the package."""


def _reduce_packument(name: str, packument: Dict[str, Any], readme_limit: int) -> Dict[str, Any]:
    """Keep only the fields the resolver needs so cache entries stay small."""
    versions = packument.get("versions") or {}
    version_data = {}
    for version, info in versions.items():
        if not isinstance(info, dict):
            continue
        version_data[version] = {
            "dependencies": dict(info.get("dependencies") or {}),
            "peerDependencies": dict(info.get("peerDependencies") or {}),
            "deprecated": info.get("deprecated"),
        }
    readme = packument.get("readme") or ""
    return {
        "name": packument.get("name", name),
        "versions": sort_versions(versions.keys()),
        "dist_tags": dict(packument.get("dist-tags") or {}),
        "readme": readme[:readme_limit],
        "version_data": version_data,
    }


class NpmRegistryClient:
    """Read-through client for the npm registry.

    Metadata is cached under ``meta:<name>`` in the injected cache service
    with a short TTL.
    """

    def __init__(
        self,
        cache=None,
        *,
        base_url: str = Constants.REGISTRY_URL_NPM,
        timeout: float = Constants.REQUEST_TIMEOUT,
        metadata_ttl: float = Constants.METADATA_TTL_SEC,
    ):
        self._cache = cache
        self._base_url = base_url if base_url.endswith("/") else base_url + "/"
        self._timeout = timeout
        self._metadata_ttl = metadata_ttl

    def _package_url(self, name: str) -> str:
        # scoped names keep the leading "@" but encode the slash
        return self._base_url + quote(name, safe="@")

    def get_metadata(self, name: str) -> Dict[str, Any]:
        """Return ``{name, versions, dist_tags, readme, version_data}`` for a package.

        Raises:
            PackageNotFoundError: The registry does not know the package.
            RegistryError: Transport failure or undecodable response.
        """
        cache_key = f"{Constants.CACHE_KEY_METADATA}{name}"
        if self._cache is not None:
            cached = self._cache.get(cache_key)
            if cached is not None:
                return cached

        url = self._package_url(name)
        with Timer() as timer:
            status_code, _, data = get_json(
                url, headers={"Accept": "application/json"}, timeout=self._timeout
            )

        if status_code == 404:
            logger.warning(
                "Package not found in registry",
                extra=extra_context(
                    event="http_response",
                    component="registry",
                    outcome="not_found",
                    status_code=404,
                    target=safe_url(url),
                    package=name,
                )
            )
            raise PackageNotFoundError(name, "package not found", status_code)
        if status_code != 200 or not isinstance(data, dict):
            raise RegistryError(name, f"registry returned status {status_code}", status_code)

        if is_debug_enabled(logger):
            logger.debug(
                "Fetched packument",
                extra=extra_context(
                    event="http_response",
                    component="registry",
                    outcome="success",
                    duration_ms=timer.duration_ms(),
                    package=name,
                    version_count=len(data.get("versions") or {}),
                )
            )

        metadata = _reduce_packument(name, data, Constants.README_MAX_CHARS)
        if self._cache is not None:
            self._cache.set(cache_key, metadata, self._metadata_ttl)
        return metadata

    def get_versions(self, name: str) -> List[str]:
        """All published versions, ascending."""
        return list(self.get_metadata(name).get("versions", []))

    def get_readme(self, name: str) -> str:
        """README text (truncated) or an empty string."""
        return self.get_metadata(name).get("readme") or ""

    def get_version_data(self, name: str, version: str) -> Dict[str, Dict[str, str]]:
        """Return ``{dependencies, peerDependencies}`` for one published version."""
        metadata = self.get_metadata(name)
        data = metadata.get("version_data", {}).get(version)
        if data is None:
            raise RegistryError(name, f"version {version} not published")
        return {
            "dependencies": dict(data.get("dependencies") or {}),
            "peerDependencies": dict(data.get("peerDependencies") or {}),
        }

    def resolve_version(self, name: str, spec: str) -> Optional[str]:
        """Resolve an exact version, dist-tag or range to a published version.

        Returns None when nothing matches or the package does not exist.
        """
        if spec is None or not str(spec).strip():
            return None
        spec = str(spec).strip()
        try:
            metadata = self.get_metadata(name)
        except PackageNotFoundError:
            return None
        versions = metadata.get("versions", [])
        tags = metadata.get("dist_tags", {})
        if spec in tags:
            return tags[spec]
        if is_exact_version(spec):
            exact = spec.lstrip("=v")
            return exact if exact in versions else None
        return max_satisfying(versions, spec)

    def version_exists(self, name: str, spec: str) -> bool:
        """True when ``spec`` resolves to at least one published version."""
        return self.resolve_version(name, spec) is not None
