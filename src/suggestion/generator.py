"""Strategic suggestion generation with an inner validation/retry loop."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Dict, Optional, Sequence, Tuple

from constants import Constants
from common.errors import ErrorKind, ResolutionError, render_retry_guidance
from common.logging_utils import extra_context, is_debug_enabled
from analysis.models import ConflictAnalysis, ReasoningEntry, Suggestion
from reasoning import prompts
from reasoning.engine import extract_json
from reasoning.transcript import Transcript
from suggestion.validation import SuggestionValidator

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SuggestionRound:
    """Result of one suggestion round.

    ``accepted`` is False when the inner retry budget ran out; the transcript
    still carries every exchange so the next attempt sees them.
    """

    suggestions: Tuple[Suggestion, ...]
    reasoning: Tuple[ReasoningEntry, ...]
    transcript: Transcript
    accepted: bool
    retries_used: int
    last_error: Optional[ResolutionError] = None


class SuggestionGenerator:
    """Builds the strategic prompt, queries the engine and validates replies."""

    def __init__(
        self,
        engine,
        validator: SuggestionValidator,
        *,
        max_retries: int = Constants.MAX_SUGGESTION_RETRIES,
        error_limit: int = Constants.ERROR_EXCERPT_CHARS,
    ):
        self._engine = engine
        self._validator = validator
        self._max_retries = max_retries
        self._error_limit = error_limit

    def suggest(
        self,
        analysis: ConflictAnalysis,
        history: Sequence[ReasoningEntry],
        attempt: int,
        max_attempts: int,
        targets: Sequence,
        *,
        error_text: str,
        manifest: Dict[str, Any],
        transcript: Transcript,
        cancel_event=None,
        dependents=None,
    ) -> SuggestionRound:
        """Run one round; raises only for non-retryable error kinds."""
        target_names = [t.name for t in targets]
        transcript = transcript.user(prompts.strategic_prompt(
            history, error_text, analysis, target_names, attempt, max_attempts,
            error_limit=self._error_limit,
        ))

        last_error: Optional[ResolutionError] = None
        for retry in range(1, self._max_retries + 1):
            if cancel_event is not None and cancel_event.is_set():
                raise ResolutionError(ErrorKind.CANCELLED, "Resolution cancelled")
            try:
                response = self._engine.generate_with_history(transcript)
                transcript = transcript.assistant(response)
                suggestions, reasoning = self._validator.validate(
                    extract_json(response), analysis, manifest, dependents
                )
            except ResolutionError as e:
                if not e.kind.is_retryable:
                    raise
                last_error = e
                logger.warning(
                    "Suggestion attempt %d/%d rejected: %s", retry, self._max_retries, e
                )
                if retry < self._max_retries:
                    transcript = transcript.user(render_retry_guidance(e.kind, e.details))
                continue

            transcript = transcript.user(prompts.applied_note(suggestions))
            logger.info(
                "Accepted %d suggestion(s): %s",
                len(suggestions),
                ", ".join(f"{s.name}@{s.version}" for s in suggestions),
            )
            if is_debug_enabled(logger):
                logger.debug(
                    "Suggestion round accepted",
                    extra=extra_context(
                        event="suggestion",
                        component="generator",
                        outcome="accepted",
                        attempt=attempt,
                        retries=retry,
                    )
                )
            return SuggestionRound(
                suggestions=tuple(suggestions),
                reasoning=tuple(reasoning),
                transcript=transcript,
                accepted=True,
                retries_used=retry,
            )

        logger.error(
            "Failed to get valid suggestions after %d retries: %s", self._max_retries, last_error
        )
        return SuggestionRound(
            suggestions=(),
            reasoning=(),
            transcript=transcript,
            accepted=False,
            retries_used=self._max_retries,
            last_error=last_error,
        )
