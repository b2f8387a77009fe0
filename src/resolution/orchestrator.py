"""Attempt orchestrator: the bounded install / analyse / suggest loop.

The caller's repository is only touched by ``WorkspaceManager.finalize``,
which runs exactly once on every exit path through ``WorkspaceManager.session``.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Sequence

from constants import Constants
from common.errors import ErrorKind, ResolutionError
from common.logging_utils import extra_context, is_debug_enabled, Timer
from analysis.error_category import categorize_error
from analysis.hydration import hydrate_with_ranking, hydrate_with_registry
from analysis.models import DependencyUpdate, ReasoningEntry
from reasoning import prompts
from reasoning.transcript import Transcript
from registry.npm.client import RegistryError
from registry.npm.lockfile_parser import DependentsIndex
from resolution.models import (
    Outcome,
    ResolutionRequest,
    ResolutionResult,
    ResolutionState,
)
from workspace import manifest as manifest_io
from workspace.models import CopyBackStatus, Workspace

logger = logging.getLogger(__name__)


@dataclass
class _Run:
    """Mutable bookkeeping for one ``resolve`` call."""

    request: ResolutionRequest
    state: ResolutionState = ResolutionState.INIT
    attempts: int = 0
    outcome: Optional[Outcome] = None
    last_error: Optional[str] = None
    error_kind: Optional[ErrorKind] = None
    applied_updates: List[DependencyUpdate] = field(default_factory=list)
    reasoning: List[ReasoningEntry] = field(default_factory=list)
    install_log: str = ""
    invalid_targets: List[Dict[str, Any]] = field(default_factory=list)

    def record_update(self, update: DependencyUpdate) -> None:
        for i, existing in enumerate(self.applied_updates):
            if existing.name == update.name:
                self.applied_updates[i] = update
                return
        self.applied_updates.append(update)

    def fail(self, outcome: Outcome, error: ResolutionError) -> None:
        self.outcome = outcome
        self.error_kind = error.kind
        self.last_error = error.message


class Resolver:
    """Runs resolution requests against injected collaborators."""

    def __init__(
        self,
        registry,
        workspace_manager,
        installer,
        parser,
        ranking_service,
        generator,
        *,
        max_workers: int = Constants.HYDRATION_MAX_WORKERS,
    ):
        self._registry = registry
        self._workspaces = workspace_manager
        self._installer = installer
        self._parser = parser
        self._ranking = ranking_service
        self._generator = generator
        self._max_workers = max_workers

    def resolve(self, request: ResolutionRequest, cancel_event=None) -> ResolutionResult:
        """Run the state machine to completion and return the single result."""
        run = _Run(request)
        logger.info(
            "Resolving %d target update(s) in %s (max %d attempts)",
            len(request.updates), request.repo_path, request.max_attempts,
        )
        self._transition(run, ResolutionState.VALIDATE_TARGETS)
        invalid = self.validate_targets(request.updates)
        if invalid:
            listing = ", ".join(f"{i['name']}@{i['version']}" for i in invalid)
            run.invalid_targets = invalid
            run.fail(Outcome.FATAL, ResolutionError(
                ErrorKind.TARGET_VALIDATION,
                f"Invalid target version(s): {listing}",
                {"invalid": invalid},
            ))
            self._transition(run, ResolutionState.FATAL)
            return self._finish(run, CopyBackStatus.SKIPPED, [])

        self._transition(run, ResolutionState.PREPARE_WORKSPACE)
        workspace: Optional[Workspace] = None
        try:
            with self._workspaces.session(request.repo_path) as ws:
                workspace = ws
                self._run_loop(run, ws, cancel_event)
                ws.succeeded = run.outcome is Outcome.SUCCESS
                self._transition(run, ResolutionState.FINALIZE)
        except ResolutionError as e:
            logger.error("Resolution aborted: %s", e)
            run.fail(Outcome.CANCELLED if e.kind is ErrorKind.CANCELLED else Outcome.FATAL, e)
        except KeyboardInterrupt:
            logger.warning("Resolution interrupted")
            run.fail(Outcome.CANCELLED, ResolutionError(ErrorKind.CANCELLED, "Interrupted"))
        except Exception as e:  # pylint: disable=broad-exception-caught
            logger.exception("Unexpected error while preparing the workspace")
            run.fail(Outcome.FATAL, ResolutionError(ErrorKind.WORKSPACE, f"Unexpected error: {e}"))

        status = CopyBackStatus.SKIPPED
        checkpoints = []
        if workspace is not None:
            status = workspace.copy_back_status or CopyBackStatus.SKIPPED
            checkpoints = list(workspace.checkpoints)
        return self._finish(run, status, checkpoints)

    def validate_targets(self, updates: Sequence[DependencyUpdate]) -> List[Dict[str, Any]]:
        """Collect every target whose version does not resolve in the registry."""
        invalid = []
        for update in updates:
            try:
                resolved = self._registry.resolve_version(update.name, update.target_version)
            except RegistryError as e:
                problem = f"registry lookup failed ({e})"
            else:
                if resolved is not None:
                    continue
                problem = "version does not exist"
            logger.error("Invalid target %s@%s: %s", update.name, update.target_version, problem)
            invalid.append({"name": update.name, "version": update.target_version, "problem": problem})
        return invalid

    def _run_loop(self, run: _Run, ws: Workspace, cancel_event) -> None:
        request = run.request
        try:
            self._transition(run, ResolutionState.APPLY_TARGET_UPDATES)
            original = self._workspaces.read_manifest(ws)
            self._workspaces.apply_targets(ws, request.updates)
            for update in request.updates:
                run.record_update(update)
            transcript = Transcript.start(
                prompts.SYSTEM_PROMPT, prompts.initial_context(original, request.updates)
            )

            while run.attempts < request.max_attempts:
                self._check_cancelled(cancel_event)
                self._transition(run, ResolutionState.ATTEMPT_INSTALL)
                run.attempts += 1
                logger.info("Attempt %d/%d", run.attempts, request.max_attempts)
                result = self._installer.run(ws.path)
                run.install_log = "\n".join(p for p in (result.stdout, result.stderr) if p)
                if result.success:
                    logger.info("Install succeeded on attempt %d", run.attempts)
                    run.outcome = Outcome.SUCCESS
                    self._transition(run, ResolutionState.SUCCESS)
                    return

                error_text = result.error_text
                run.last_error = error_text
                category = categorize_error(error_text)
                logger.warning(
                    "Attempt %d failed (%s): %s",
                    run.attempts, category.category, "; ".join(category.suggestions),
                )
                if run.attempts >= request.max_attempts:
                    break

                self._check_cancelled(cancel_event)
                self._transition(run, ResolutionState.ANALYZE_AND_SUGGEST)
                transcript = self._analyze_and_suggest(run, ws, error_text, transcript, cancel_event)

            run.outcome = Outcome.EXHAUSTED
            run.error_kind = None
            logger.error("Exhausted %d attempt(s) without a clean install", run.attempts)
            self._transition(run, ResolutionState.EXHAUSTED)
        except ResolutionError as e:
            if e.kind is ErrorKind.CANCELLED:
                logger.warning("Resolution cancelled after %d attempt(s)", run.attempts)
                run.fail(Outcome.CANCELLED, e)
                self._transition(run, ResolutionState.CANCELLED)
            else:
                logger.error("Fatal error on attempt %d: %s", run.attempts, e)
                run.fail(Outcome.FATAL, e)
                self._transition(run, ResolutionState.FATAL)
        except KeyboardInterrupt:
            logger.warning("Resolution interrupted after %d attempt(s)", run.attempts)
            run.fail(Outcome.CANCELLED, ResolutionError(ErrorKind.CANCELLED, "Interrupted"))
            self._transition(run, ResolutionState.CANCELLED)
        except Exception as e:  # pylint: disable=broad-exception-caught
            logger.exception("Unexpected error during resolution")
            run.fail(Outcome.FATAL, ResolutionError(ErrorKind.WORKSPACE, f"Unexpected error: {e}"))
            self._transition(run, ResolutionState.FATAL)

    def _analyze_and_suggest(
        self, run: _Run, ws: Workspace, error_text: str, transcript: Transcript, cancel_event
    ) -> Transcript:
        manifest = self._workspaces.read_manifest(ws)
        with Timer() as timer:
            analysis = self._parser.parse(error_text, manifest_io.all_dependencies(manifest))
            analysis = hydrate_with_registry(analysis, self._registry, self._max_workers)
            analysis = hydrate_with_ranking(analysis, self._ranking, self._max_workers)
        if is_debug_enabled(logger):
            logger.debug(
                "Analysis hydrated",
                extra=extra_context(
                    event="analysis",
                    component="orchestrator",
                    action="hydrate",
                    attempt=run.attempts,
                    conflicts=len(analysis.conflicts),
                    duration_ms=timer.duration_ms(),
                )
            )

        round_ = self._generator.suggest(
            analysis,
            run.reasoning,
            run.attempts,
            run.request.max_attempts,
            run.request.updates,
            error_text=error_text,
            manifest=manifest,
            transcript=transcript,
            cancel_event=cancel_event,
            dependents=self._dependents(ws, manifest),
        )
        if not round_.accepted:
            logger.warning(
                "Attempt %d: no valid suggestion within the retry budget (%s)",
                run.attempts, round_.last_error,
            )
            return round_.transcript

        self._workspaces.apply_suggestion(
            ws, round_.suggestions, round_.reasoning, error_text, run.attempts
        )
        run.reasoning.extend(round_.reasoning)
        for suggestion in round_.suggestions:
            run.record_update(suggestion.to_update())
        return round_.transcript

    def _dependents(self, ws: Workspace, manifest: dict) -> Optional[DependentsIndex]:
        path = self._workspaces.lockfile_path(ws)
        if path is None:
            return None
        return DependentsIndex.from_lockfile(path, manifest.get("name"))

    @staticmethod
    def _check_cancelled(cancel_event) -> None:
        if cancel_event is not None and cancel_event.is_set():
            raise ResolutionError(ErrorKind.CANCELLED, "Resolution cancelled")

    @staticmethod
    def _transition(run: _Run, state: ResolutionState) -> None:
        previous, run.state = run.state, state
        logger.info("State %s -> %s", previous.name, state.name)
        if is_debug_enabled(logger):
            logger.debug(
                "State transition",
                extra=extra_context(
                    event="transition",
                    component="orchestrator",
                    action=state.value,
                    attempt=run.attempts,
                )
            )

    def _finish(self, run: _Run, copy_back_status: CopyBackStatus, checkpoints) -> ResolutionResult:
        self._transition(run, ResolutionState.DONE)
        result = ResolutionResult(
            success=run.outcome is Outcome.SUCCESS,
            outcome=run.outcome or Outcome.FATAL,
            attempts_used=run.attempts,
            copy_back_status=copy_back_status,
            last_error=run.last_error,
            error_kind=run.error_kind,
            applied_updates=list(run.applied_updates),
            checkpoints=checkpoints,
            reasoning=list(run.reasoning),
            install_log=run.install_log,
            invalid_targets=list(run.invalid_targets),
        )
        logger.info(
            "Resolution finished: %s after %d attempt(s), copy-back %s",
            result.outcome.value, result.attempts_used, copy_back_status.value,
        )
        return result
