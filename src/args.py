"""Argument parsing functionality for peerfix."""

import argparse
from typing import Iterable, List, Optional, Sequence

from analysis.models import DependencyUpdate


def parse_update_token(token: str, dev_names: Iterable[str] = ()) -> DependencyUpdate:
    """Parse ``name@version`` using the rightmost ``@`` so scoped names work.

    Raises:
        ValueError: The token has no version part.
    """
    token = (token or "").strip()
    at = token.rfind("@")
    if at <= 0 or at == len(token) - 1:
        raise ValueError(f"Expected name@version, got '{token}'")
    name, version = token[:at], token[at + 1:]
    return DependencyUpdate(name=name, target_version=version, is_dev=name in set(dev_names))


def build_updates(tokens: Sequence[str], dev_names: Iterable[str] = ()) -> List[DependencyUpdate]:
    dev = list(dev_names or [])
    return [parse_update_token(t, dev) for t in tokens]


def parse_args(argv: Optional[Sequence[str]] = None):
    """Parses the arguments passed to the program."""
    parser = argparse.ArgumentParser(
        prog="peerfix",
        description=(
            "peerfix - Iteratively resolve npm dependency conflicts with a reasoning model"
        ),
        add_help=True,
    )

    parser.add_argument("-r", "--repo",
                        dest="REPO_PATH",
                        help="Path to the npm project (directory containing package.json)",
                        action="store", type=str,
                        required=True)
    parser.add_argument("-u", "--update",
                        dest="UPDATES",
                        help="Target update as name@version (can be used multiple times)",
                        action="append", type=str,
                        required=True)
    parser.add_argument("--dev",
                        dest="DEV_PACKAGES",
                        help="Treat the named target as a devDependency (can be used multiple times)",
                        action="append", type=str,
                        default=[])
    parser.add_argument("--max-attempts",
                        dest="MAX_ATTEMPTS",
                        help="Maximum install attempts (default: 200)",
                        action="store", type=int)
    parser.add_argument("--max-suggestion-retries",
                        dest="MAX_SUGGESTION_RETRIES",
                        help="Corrective retries per suggestion round (default: 5)",
                        action="store", type=int)

    parser.add_argument("-c", "--config",
                        dest="CONFIG",
                        help="Path to configuration file (YAML, YML, or JSON)",
                        action="store",
                        type=str)
    parser.add_argument("--loglevel",
                        dest="LOG_LEVEL",
                        help="Set the logging level",
                        action="store",
                        type=str,
                        choices=['DEBUG', 'INFO', 'WARNING', 'ERROR', 'CRITICAL'],
                        default='INFO')
    parser.add_argument("--logfile",
                        dest="LOG_FILE",
                        help="Log output file",
                        action="store",
                        type=str)
    parser.add_argument("--json",
                        dest="JSON_OUTPUT",
                        help="Print the result as JSON instead of the text report",
                        action="store_true")

    # Collaborator tunables
    parser.add_argument("--install-timeout",
                        dest="INSTALL_TIMEOUT",
                        help="Seconds before an install attempt is aborted",
                        action="store", type=float)
    parser.add_argument("--reasoning-timeout",
                        dest="REASONING_TIMEOUT",
                        help="Seconds before a reasoning-engine call is aborted",
                        action="store", type=float)
    parser.add_argument("--registry-url",
                        dest="REGISTRY_URL",
                        help="npm registry base URL",
                        action="store", type=str)
    parser.add_argument("--cache-path",
                        dest="CACHE_PATH",
                        help="SQLite file for the persistent registry/ranking cache (default: in-memory)",
                        action="store", type=str)
    parser.add_argument("--max-workers",
                        dest="MAX_WORKERS",
                        help="Concurrent registry/ranking lookups per hydration step",
                        action="store", type=int)
    parser.add_argument("--model",
                        dest="MODEL",
                        help="Reasoning model name",
                        action="store", type=str)
    parser.add_argument("--base-url",
                        dest="BASE_URL",
                        help="OpenAI-compatible API base URL",
                        action="store", type=str)
    parser.add_argument("--no-baseline-install",
                        dest="BASELINE_INSTALL",
                        help="Skip the baseline install before checkpoint 0",
                        action="store_const", const=False)
    parser.add_argument("--no-copy-back-on-failure",
                        dest="COPY_BACK_ON_FAILURE",
                        help="Leave the repository untouched when resolution fails",
                        action="store_const", const=False)

    return parser.parse_args(argv)
