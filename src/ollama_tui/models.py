"""Plain data types shared by the streaming pipeline and the presentation layer."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Literal


class Provider(str, Enum):
    """Text-generation backends the client knows how to talk to."""

    LOCAL_GENERATOR = "ollama"
    HOSTED_CHAT = "openai"

    @property
    def label(self) -> str:
        return "Ollama" if self is Provider.LOCAL_GENERATOR else "OpenAI"

    @property
    def description(self) -> str:
        if self is Provider.LOCAL_GENERATOR:
            return "Local models served by Ollama"
        return "Hosted chat models (API key required)"

    @property
    def requires_credential(self) -> bool:
        return self is Provider.HOSTED_CHAT

    @classmethod
    def from_name(cls, name: str) -> Provider:
        """Resolve a provider from its value or label, case-insensitively."""
        normalized = name.strip().lower()
        for provider in cls:
            if normalized in {provider.value, provider.label.lower()}:
                return provider
        raise ValueError(f"Unknown provider {name!r}.")


@dataclass(frozen=True)
class ModelDescriptor:
    """Display data for one entry of a model listing."""

    name: str
    family: str = ""
    context_window: int = 0

    @property
    def details(self) -> str:
        return f"Family: {self.family}, Context: {self.context_window}"


@dataclass(frozen=True)
class ModelListing:
    """Result of a model-listing call; ``fallback`` marks the built-in list."""

    models: tuple[ModelDescriptor, ...]
    fallback: bool = False


@dataclass(frozen=True)
class Fragment:
    """One incremental unit of generated text plus a completion flag."""

    text: str = ""
    is_final: bool = False

    @property
    def is_noop(self) -> bool:
        return not self.text and not self.is_final


FINAL_FRAGMENT = Fragment(text="", is_final=True)


@dataclass(frozen=True)
class ChatMessage:
    """A single ``{role, content}`` entry of a hosted-chat message history."""

    role: Literal["user", "assistant"]
    content: str

    def to_payload(self) -> dict[str, str]:
        return {"role": self.role, "content": self.content}


@dataclass
class TranscriptEntry:
    """A prompt and the response text received for it so far."""

    prompt: str
    response_so_far: str = ""
    closed: bool = False
    error: str = ""

    def append(self, text: str) -> None:
        if self.closed:
            raise ValueError("Cannot append to a closed transcript entry.")
        self.response_so_far += text

    def close(self) -> None:
        self.closed = True


@dataclass(frozen=True)
class DecodedFrame:
    """Decoder output: a fragment plus an optional provider context update."""

    fragment: Fragment
    context: tuple[int, ...] = field(default_factory=tuple)
