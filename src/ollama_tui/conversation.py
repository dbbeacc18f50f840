"""Cross-turn conversation state for the two provider representations."""

from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import Sequence
from typing import Any

from .models import ChatMessage, Provider


class ConversationState(ABC):
    """Accumulated conversation memory replayed into the next request.

    Exactly one concrete representation is used per client: an opaque
    context vector for the local generator, or an explicit message history
    for the hosted chat provider.
    """

    @abstractmethod
    def apply_turn(
        self,
        prompt: str,
        response_text: str,
        provider_context: Sequence[int] | None = None,
    ) -> None:
        """Record a naturally completed turn."""

    @abstractmethod
    def has_context(self) -> bool:
        """Report whether any accumulated state exists."""

    @abstractmethod
    def clear(self) -> None:
        """Reset to the empty state of this representation."""

    @abstractmethod
    def request_fields(self, prompt: str) -> dict[str, Any]:
        """Return the request-body fields carrying this state plus ``prompt``."""

    @staticmethod
    def for_provider(provider: Provider) -> ConversationState:
        if provider is Provider.LOCAL_GENERATOR:
            return OpaqueContext()
        return MessageHistory()


class OpaqueContext(ConversationState):
    """Provider-defined integer vector, stored and forwarded verbatim."""

    def __init__(self, vector: Sequence[int] | None = None) -> None:
        self._vector: tuple[int, ...] = tuple(vector or ())

    @property
    def vector(self) -> tuple[int, ...]:
        return self._vector

    def apply_turn(
        self,
        prompt: str,
        response_text: str,
        provider_context: Sequence[int] | None = None,
    ) -> None:
        # Absence of a new vector leaves the stored one untouched.
        if provider_context:
            self._vector = tuple(provider_context)

    def has_context(self) -> bool:
        return bool(self._vector)

    def clear(self) -> None:
        self._vector = ()

    def request_fields(self, prompt: str) -> dict[str, Any]:
        fields: dict[str, Any] = {"prompt": prompt}
        if self._vector:
            fields["context"] = list(self._vector)
        return fields


class MessageHistory(ConversationState):
    """Chronological list of user/assistant turns replayed on every request."""

    def __init__(self, messages: Sequence[ChatMessage] | None = None) -> None:
        self._messages: list[ChatMessage] = list(messages or ())

    @property
    def messages(self) -> list[ChatMessage]:
        """Return a shallow copy of the stored history."""
        return list(self._messages)

    def __len__(self) -> int:
        return len(self._messages)

    def apply_turn(
        self,
        prompt: str,
        response_text: str,
        provider_context: Sequence[int] | None = None,
    ) -> None:
        self._messages.append(ChatMessage(role="user", content=prompt))
        self._messages.append(ChatMessage(role="assistant", content=response_text))

    def has_context(self) -> bool:
        return bool(self._messages)

    def clear(self) -> None:
        self._messages = []

    def request_fields(self, prompt: str) -> dict[str, Any]:
        # The new user turn is only appended to the outgoing payload; it is
        # committed to the history once the turn completes.
        payload = [message.to_payload() for message in self._messages]
        payload.append(ChatMessage(role="user", content=prompt).to_payload())
        return {"messages": payload}
