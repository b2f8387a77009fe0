"""Conversation transcript passed to and returned from the reasoning engine."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Dict, List, Tuple

SYSTEM = "system"
USER = "user"
ASSISTANT = "assistant"


@dataclass(frozen=True)
class Message:
    role: str
    content: str


@dataclass(frozen=True)
class Transcript:
    """Immutable message history; ``append`` returns a new transcript."""

    messages: Tuple[Message, ...] = ()

    @classmethod
    def start(cls, system_prompt: str, *user_messages: str) -> "Transcript":
        transcript = cls((Message(SYSTEM, system_prompt),))
        for content in user_messages:
            transcript = transcript.append(USER, content)
        return transcript

    def append(self, role: str, content: str) -> "Transcript":
        if role not in (SYSTEM, USER, ASSISTANT):
            raise ValueError(f"Unknown transcript role: {role}")
        return Transcript(self.messages + (Message(role, content),))

    def user(self, content: str) -> "Transcript":
        return self.append(USER, content)

    def assistant(self, content: str) -> "Transcript":
        return self.append(ASSISTANT, content)

    @property
    def last(self) -> Message:
        return self.messages[-1]

    def to_messages(self) -> List[Dict[str, str]]:
        """Chat-completion payload form."""
        return [{"role": m.role, "content": m.content} for m in self.messages]

    def __len__(self) -> int:
        return len(self.messages)
