"""Configuration file loading for the CLI.

YAML is read with PyYAML's ``safe_load``; files ending in ``.json`` are read
as JSON. The ``resolver:`` section is returned when present, otherwise the
whole document.
"""

from __future__ import annotations

import json
import logging
import os
from typing import Any, Dict, Optional

import yaml

logger = logging.getLogger(__name__)


class ConfigError(Exception):
    """The configuration file exists but cannot be used."""


def load_config_file(path: Optional[str]) -> Dict[str, Any]:
    """Load resolver settings from ``path``; a missing path yields ``{}``.

    Raises:
        ConfigError: The file cannot be read or does not hold a mapping.
    """
    if not path:
        return {}
    if not os.path.isfile(path):
        raise ConfigError(f"Config file not found: {path}")

    try:
        with open(path, "r", encoding="utf-8") as f:
            if path.lower().endswith(".json"):
                data = json.load(f)
            else:
                data = yaml.safe_load(f)
    except (OSError, json.JSONDecodeError, yaml.YAMLError) as e:
        raise ConfigError(f"Failed to load config {path}: {e}") from e

    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ConfigError(f"Config {path} must contain a mapping")
    section = data.get("resolver", data)
    if not isinstance(section, dict):
        raise ConfigError(f"'resolver' section in {path} must be a mapping")
    logger.info("Loaded configuration from %s", path)
    return section
