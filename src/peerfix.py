"""peerfix - iterative npm dependency conflict resolver

Copies an npm project into a scratch workspace, installs it, feeds install
failures to a reasoning model for version suggestions, validates them, and
repeats until the install succeeds or the attempt budget runs out.

    Returns:
        int: Exit code
"""
import json
import logging
import os
import sys
import threading

import openai

from constants import ExitCodes
from common.logging_utils import configure_logging, extra_context, is_debug_enabled
from args import build_updates, parse_args
from cache import CacheService, SqliteStore
from cli_config import ConfigError, load_config_file
from config import ResolverConfig
from analysis.conflict_parser import ConflictParser
from analysis.ranking import RankingPolicy, RankingService
from reasoning.engine import OpenAIReasoningEngine
from registry.npm.client import NpmRegistryClient
from resolution.models import Outcome, ResolutionRequest, UserOutcome
from resolution.orchestrator import Resolver
from resolution.report import render_report
from suggestion.generator import SuggestionGenerator
from suggestion.validation import SuggestionValidator
from workspace.install import NpmInstallRunner
from workspace.manager import WorkspaceManager

logger = logging.getLogger(__name__)


def _setup_logging(args) -> None:
    """Configure logging based on CLI arguments."""
    if getattr(args, "LOG_LEVEL", None):
        os.environ["PEERFIX_LOG_LEVEL"] = str(args.LOG_LEVEL).upper()

    configure_logging()

    log_file = getattr(args, "LOG_FILE", None)
    if log_file:
        file_handler = logging.FileHandler(log_file)
        formatter = logging.Formatter(
            "%(asctime)s %(levelname)s %(name)s %(message)s"
        )
        file_handler.setFormatter(formatter)
        logging.getLogger().addHandler(file_handler)
        logger.info("Logging to file: %s", log_file)


def build_resolver(config: ResolverConfig, engine=None) -> Resolver:
    """Wire the concrete collaborators described by ``config``."""
    store = SqliteStore(config.cache_path) if config.cache_path else None
    cache = CacheService(store)
    registry = NpmRegistryClient(
        cache,
        base_url=config.registry_url,
        timeout=config.registry_timeout,
        metadata_ttl=config.metadata_ttl,
    )
    if engine is None:
        engine = OpenAIReasoningEngine(
            model=config.openai_model,
            api_key=config.openai_api_key,
            base_url=config.openai_base_url,
            timeout=config.reasoning_timeout,
            temperature=config.temperature,
            max_tokens=config.max_tokens,
        )
    installer = NpmInstallRunner(config.install_command, timeout=config.install_timeout)
    workspaces = WorkspaceManager(
        installer,
        baseline_install=config.baseline_install,
        copy_back_on_failure=config.copy_back_on_failure,
    )
    ranking = RankingService(
        cache,
        registry,
        engine,
        policy=RankingPolicy.from_config(config.ranking_policy),
        ttl=config.ranking_ttl,
    )
    generator = SuggestionGenerator(
        engine,
        SuggestionValidator(registry),
        max_retries=config.max_suggestion_retries,
    )
    return Resolver(
        registry,
        workspaces,
        installer,
        ConflictParser(engine),
        ranking,
        generator,
        max_workers=config.max_workers,
    )


def exit_code_for(result) -> ExitCodes:
    """Map a resolution result to the process exit code."""
    if result.outcome is Outcome.CANCELLED:
        return ExitCodes.INTERRUPTED
    outcome = result.user_outcome
    if outcome is UserOutcome.SUCCESS:
        return ExitCodes.SUCCESS
    if outcome is UserOutcome.SUCCESS_WITH_COPY_WARNING:
        return ExitCodes.EXIT_WARNINGS
    return ExitCodes.RESOLUTION_FAILED


def main(argv=None):
    """Main function of the program."""
    args = parse_args(argv)
    _setup_logging(args)

    try:
        file_data = load_config_file(getattr(args, "CONFIG", None))
    except ConfigError as e:
        logger.error("%s, aborting", e)
        sys.exit(ExitCodes.FILE_ERROR.value)
    config = ResolverConfig.from_sources(args, file_data, os.environ)

    try:
        updates = build_updates(args.UPDATES, args.DEV_PACKAGES)
    except ValueError as e:
        logger.error("%s, aborting", e)
        sys.exit(ExitCodes.FILE_ERROR.value)
    request = ResolutionRequest(os.path.abspath(args.REPO_PATH), tuple(updates), config.max_attempts)

    try:
        resolver = build_resolver(config)
    except openai.OpenAIError as e:
        logger.error("Reasoning engine unavailable: %s", e)
        sys.exit(ExitCodes.FILE_ERROR.value)

    if is_debug_enabled(logger):
        logger.debug(
            "Starting resolution",
            extra=extra_context(
                event="function_entry",
                component="cli",
                action="resolve",
                target=request.repo_path,
                outcome="starting"
            )
        )

    cancel_event = threading.Event()
    try:
        result = resolver.resolve(request, cancel_event)
    except KeyboardInterrupt:
        cancel_event.set()
        logger.warning("Interrupted")
        sys.exit(ExitCodes.INTERRUPTED.value)

    if getattr(args, "JSON_OUTPUT", False):
        print(json.dumps(result.to_dict(), indent=2))
    else:
        print(render_report(result))

    code = exit_code_for(result)
    if code is ExitCodes.EXIT_WARNINGS:
        logger.warning("Resolution succeeded but copying results back was incomplete.")
    sys.exit(code.value)


if __name__ == "__main__":
    main()
