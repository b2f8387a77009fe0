"""Reasoning engine interface and its OpenAI chat-completions implementation."""

from __future__ import annotations

import json
import logging
import re
from abc import ABC, abstractmethod
from typing import Any, Optional

import openai
from openai import OpenAI

from constants import Constants
from common.errors import ErrorKind, ResolutionError
from common.logging_utils import extra_context, is_debug_enabled, Timer
from reasoning.transcript import Transcript

logger = logging.getLogger(__name__)

_FENCED_JSON_RE = re.compile(r"```(?:json)?\s*\n?([\s\S]*?)\n?```")


class ReasoningEngine(ABC):
    """Opaque text-completion service used for suggestions, parsing and ranking."""

    @abstractmethod
    def generate(
        self,
        prompt: str,
        *,
        temperature: Optional[float] = None,
        max_tokens: Optional[int] = None,
    ) -> str:
        """Complete a single prompt and return the response text."""

    @abstractmethod
    def generate_with_history(
        self,
        transcript: Transcript,
        *,
        temperature: Optional[float] = None,
        max_tokens: Optional[int] = None,
    ) -> str:
        """Complete the conversation in ``transcript`` and return the reply text."""


class OpenAIReasoningEngine(ReasoningEngine):
    """Chat-completions backed engine; works with any OpenAI compatible endpoint."""

    def __init__(
        self,
        *,
        model: str = Constants.OPENAI_MODEL,
        api_key: Optional[str] = None,
        base_url: Optional[str] = None,
        timeout: float = Constants.REASONING_TIMEOUT_SEC,
        temperature: float = Constants.OPENAI_TEMPERATURE,
        max_tokens: int = Constants.OPENAI_MAX_TOKENS,
        client: Optional[Any] = None,
    ):
        self.model = model
        self.timeout = timeout
        self.temperature = temperature
        self.max_tokens = max_tokens
        self._client = client or OpenAI(api_key=api_key, base_url=base_url, timeout=timeout)

    def generate(self, prompt, *, temperature=None, max_tokens=None) -> str:
        return self._complete([{"role": "user", "content": prompt}], temperature, max_tokens)

    def generate_with_history(self, transcript, *, temperature=None, max_tokens=None) -> str:
        return self._complete(transcript.to_messages(), temperature, max_tokens)

    def _complete(self, messages, temperature, max_tokens) -> str:
        with Timer() as timer:
            try:
                response = self._client.chat.completions.create(
                    model=self.model,
                    messages=messages,
                    temperature=self.temperature if temperature is None else temperature,
                    max_tokens=self.max_tokens if max_tokens is None else max_tokens,
                    timeout=self.timeout,
                )
            except openai.APITimeoutError as exc:
                raise ResolutionError(
                    ErrorKind.TIMEOUT,
                    f"Reasoning engine did not answer within {self.timeout}s",
                    {"component": "reasoning", "timeout": self.timeout},
                ) from exc
            except openai.APIError as exc:
                # handled like a malformed reply
                logger.warning("Reasoning engine request failed: %s", exc)
                raise ResolutionError(
                    ErrorKind.AI_RESPONSE_FORMAT,
                    f"Reasoning engine request failed: {exc}",
                    {"problem": "the request to the model failed"},
                ) from exc

        content = ""
        if response.choices:
            content = response.choices[0].message.content or ""
        if is_debug_enabled(logger):
            logger.debug(
                "Reasoning engine response",
                extra=extra_context(
                    event="llm_response",
                    component="reasoning",
                    action="chat_completion",
                    outcome="success",
                    duration_ms=timer.duration_ms(),
                    message_count=len(messages),
                    response_chars=len(content),
                )
            )
        return content


def extract_json(text: str) -> Any:
    """Parse JSON from a model reply, unwrapping a fenced code block if present.

    Raises:
        ResolutionError: ``AI_RESPONSE_FORMAT`` when no JSON can be decoded.
    """
    candidate = (text or "").strip()
    match = _FENCED_JSON_RE.search(candidate)
    if match:
        candidate = match.group(1).strip()
    try:
        return json.loads(candidate)
    except json.JSONDecodeError:
        pass
    # tolerate prose around a bare object
    start, end = candidate.find("{"), candidate.rfind("}")
    if start != -1 and end > start:
        try:
            return json.loads(candidate[start:end + 1])
        except json.JSONDecodeError:
            pass
    raise ResolutionError(
        ErrorKind.AI_RESPONSE_FORMAT,
        "Response is not valid JSON",
        {"problem": "the response was not valid JSON"},
    )
