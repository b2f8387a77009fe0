"""Runtime configuration for a resolver run.

Values are layered with precedence CLI > environment > config file >
``Constants`` defaults.
"""

from __future__ import annotations

import logging
import shlex
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Mapping, Optional

from constants import Constants

logger = logging.getLogger(__name__)


def _as_bool(value: Any) -> bool:
    if isinstance(value, bool):
        return value
    return str(value).strip().lower() in ("1", "true", "yes", "on")


def _as_command(value: Any) -> List[str]:
    if isinstance(value, (list, tuple)):
        return [str(v) for v in value]
    return shlex.split(str(value))


def _as_optional_str(value: Any) -> Optional[str]:
    text = str(value).strip()
    return text or None


# (field, converter, CLI dest, environment variable)
_SOURCES = (
    ("max_attempts", int, "MAX_ATTEMPTS", "PEERFIX_MAX_ATTEMPTS"),
    ("max_suggestion_retries", int, "MAX_SUGGESTION_RETRIES", "PEERFIX_MAX_SUGGESTION_RETRIES"),
    ("install_command", _as_command, "INSTALL_COMMAND", "PEERFIX_INSTALL_COMMAND"),
    ("install_timeout", float, "INSTALL_TIMEOUT", "PEERFIX_INSTALL_TIMEOUT"),
    ("reasoning_timeout", float, "REASONING_TIMEOUT", "PEERFIX_REASONING_TIMEOUT"),
    ("registry_url", str, "REGISTRY_URL", "PEERFIX_REGISTRY_URL"),
    ("registry_timeout", float, "REGISTRY_TIMEOUT", "PEERFIX_REGISTRY_TIMEOUT"),
    ("cache_path", _as_optional_str, "CACHE_PATH", "PEERFIX_CACHE_PATH"),
    ("ranking_ttl", float, "RANKING_TTL", "PEERFIX_RANKING_TTL"),
    ("metadata_ttl", float, "METADATA_TTL", "PEERFIX_METADATA_TTL"),
    ("max_workers", int, "MAX_WORKERS", "PEERFIX_MAX_WORKERS"),
    ("baseline_install", _as_bool, "BASELINE_INSTALL", "PEERFIX_BASELINE_INSTALL"),
    ("copy_back_on_failure", _as_bool, "COPY_BACK_ON_FAILURE", "PEERFIX_COPY_BACK_ON_FAILURE"),
    ("openai_model", str, "MODEL", Constants.ENV_OPENAI_MODEL),
    ("openai_base_url", _as_optional_str, "BASE_URL", Constants.ENV_OPENAI_BASE_URL),
    ("openai_api_key", _as_optional_str, None, Constants.ENV_OPENAI_API_KEY),
    ("temperature", float, "TEMPERATURE", "PEERFIX_TEMPERATURE"),
    ("max_tokens", int, "MAX_TOKENS", "PEERFIX_MAX_TOKENS"),
)


@dataclass
class ResolverConfig:
    """Tunables for one resolver instance."""

    max_attempts: int = Constants.DEFAULT_MAX_ATTEMPTS
    max_suggestion_retries: int = Constants.MAX_SUGGESTION_RETRIES
    install_command: List[str] = field(default_factory=lambda: list(Constants.INSTALL_COMMAND))
    install_timeout: float = Constants.INSTALL_TIMEOUT_SEC
    reasoning_timeout: float = Constants.REASONING_TIMEOUT_SEC
    registry_url: str = Constants.REGISTRY_URL_NPM
    registry_timeout: float = Constants.REQUEST_TIMEOUT
    cache_path: Optional[str] = None
    ranking_ttl: float = Constants.RANKING_TTL_SEC
    metadata_ttl: float = Constants.METADATA_TTL_SEC
    max_workers: int = Constants.HYDRATION_MAX_WORKERS
    baseline_install: bool = True
    copy_back_on_failure: bool = True
    openai_model: str = Constants.OPENAI_MODEL
    openai_base_url: Optional[str] = None
    openai_api_key: Optional[str] = None
    temperature: float = Constants.OPENAI_TEMPERATURE
    max_tokens: int = Constants.OPENAI_MAX_TOKENS
    ranking_policy: Dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_sources(
        cls,
        args: Any = None,
        file_data: Optional[Mapping[str, Any]] = None,
        environ: Optional[Mapping[str, str]] = None,
    ) -> "ResolverConfig":
        """Build a config from parsed CLI args, a config-file mapping and the environment.

        Unparseable values are logged and ignored so the next layer down wins.
        """
        file_data = file_data or {}
        environ = environ or {}
        config = cls()
        for name, convert, dest, env in _SOURCES:
            if name in file_data and file_data[name] is not None:
                _assign(config, name, convert, file_data[name], "config file")
            if env and environ.get(env):
                _assign(config, name, convert, environ[env], env)
            if dest and args is not None and getattr(args, dest, None) is not None:
                _assign(config, name, convert, getattr(args, dest), f"--{name.replace('_', '-')}")
        ranking = file_data.get("ranking")
        if isinstance(ranking, Mapping):
            config.ranking_policy = dict(ranking)
        if config.max_attempts < 1:
            logger.warning("max_attempts must be at least 1; using 1")
            config.max_attempts = 1
        return config


def _assign(config: ResolverConfig, name: str, convert: Callable[[Any], Any], raw: Any, origin: str) -> None:
    try:
        setattr(config, name, convert(raw))
    except (TypeError, ValueError) as e:
        logger.warning("Ignoring invalid %s from %s: %s", name, origin, e)
