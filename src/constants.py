"""Constants used in the project."""

from enum import Enum


class ExitCodes(Enum):
    """Exit codes for the program.

    Args:
        Enum (int): Exit codes for the program.
    """

    SUCCESS = 0
    FILE_ERROR = 1
    EXIT_WARNINGS = 3
    RESOLUTION_FAILED = 4
    INTERRUPTED = 130


class Tier(Enum):
    """Importance tiers used to rank packages, highest first."""

    ROOT = "ROOT"
    CRITICAL_INFRASTRUCTURE = "CRITICAL_INFRASTRUCTURE"
    OFFICIAL_ECOSYSTEM = "OFFICIAL_ECOSYSTEM"
    POPULAR_UTILITIES = "POPULAR_UTILITIES"
    SPECIALIZED = "SPECIALIZED"
    LIGHTWEIGHT_NICHE = "LIGHTWEIGHT_NICHE"
    PROBLEMATIC = "PROBLEMATIC"
    UNRANKED = "UNRANKED"


class Constants:  # pylint: disable=too-few-public-methods
    """General constants used in the project.
    Data holder for configuration constants; not intended to provide behavior.
    """

    REGISTRY_URL_NPM = "https://registry.npmjs.org/"
    PACKAGE_JSON_FILE = "package.json"
    PACKAGE_LOCK_FILE = "package-lock.json"
    LOG_FORMAT = "[%(levelname)s] %(message)s"
    LOG_LEVEL_ENV = "PEERFIX_LOG_LEVEL"
    REQUEST_TIMEOUT = 30  # Timeout in seconds for all HTTP requests
    HTTP_RETRY_MAX = 3
    HTTP_RETRY_BASE_DELAY_SEC = 0.3

    # Resolution loop
    DEFAULT_MAX_ATTEMPTS = 200
    MAX_SUGGESTION_RETRIES = 5
    INSTALL_COMMAND = ["npm", "install", "--no-audit", "--no-fund"]
    INSTALL_TIMEOUT_SEC = 600
    REASONING_TIMEOUT_SEC = 300
    HYDRATION_MAX_WORKERS = 8
    ERROR_EXCERPT_CHARS = 2000
    REPORT_TAIL_CHARS = 500

    # Cache
    RANKING_TTL_SEC = 24 * 60 * 60
    METADATA_TTL_SEC = 10 * 60
    CACHE_KEY_RANKING = "ranking:"
    CACHE_KEY_METADATA = "meta:"
    CACHE_MAX_ENTRIES = 10000
    CACHE_CLEANUP_INTERVAL_SEC = 60

    # Ranking
    ROOT_PROJECT = "root project"
    ROOT_RANK = 999999
    UNRANKED_RANK = -1
    README_MAX_CHARS = 6000

    # Workspace
    WORKSPACE_PREFIX = "peerfix-"
    HISTORY_DIR = ".peerfix"
    GITIGNORE_ENTRIES = ["node_modules/", "logs/", "*.log"]
    GIT_AUTHOR_NAME = "peerfix"
    GIT_AUTHOR_EMAIL = "peerfix@localhost"

    # Reasoning engine
    OPENAI_MODEL = "gpt-4o-mini"
    OPENAI_TEMPERATURE = 0.3
    OPENAI_MAX_TOKENS = 1000
    ENV_OPENAI_API_KEY = "OPENAI_API_KEY"
    ENV_OPENAI_BASE_URL = "OPENAI_BASE_URL"
    ENV_OPENAI_MODEL = "OPENAI_MODEL"
