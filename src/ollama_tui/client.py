"""Provider client: endpoints, request encoding, model listing, and error mapping."""

from __future__ import annotations

from collections.abc import Iterator
from contextlib import contextmanager
from dataclasses import dataclass, field
import json
import logging
import threading
from typing import Any

import httpx

from .conversation import ConversationState
from .decoder import DEFAULT_MAX_LINE_BYTES, Decoder, decoder_for, iter_lines
from .exceptions import (
    CredentialMissingError,
    DecodeError,
    OllamaTuiError,
    RequestBuildError,
    TransportError,
)
from .models import ModelDescriptor, ModelListing, Provider

LOGGER = logging.getLogger(__name__)

DEFAULT_OLLAMA_URL = "http://localhost:11434"
DEFAULT_OPENAI_URL = "https://api.openai.com/v1"
DEFAULT_OPENAI_CONTEXT_WINDOW = 4096

FALLBACK_OPENAI_MODELS: tuple[ModelDescriptor, ...] = (
    ModelDescriptor(name="gpt-3.5-turbo", family="GPT-3.5", context_window=4096),
    ModelDescriptor(name="gpt-4", family="GPT-4", context_window=8192),
    ModelDescriptor(name="gpt-4-turbo", family="GPT-4", context_window=128000),
)


@dataclass(frozen=True)
class GenerationRequest:
    """A fully encoded generation call, ready to send."""

    url: str
    body: bytes
    headers: dict[str, str] = field(default_factory=dict)


class ProviderClient:
    """Per-provider client owning the conversation state for one chat session.

    The provider is fixed at construction and selects the endpoint, the wire
    format, and the conversation-state representation.
    """

    def __init__(
        self,
        provider: Provider,
        *,
        base_url: str | None = None,
        api_key: str = "",
        timeout: float = 120,
        temperature: float = 0.7,
        max_line_bytes: int = DEFAULT_MAX_LINE_BYTES,
        http_client: httpx.Client | None = None,
    ) -> None:
        if provider.requires_credential and not api_key.strip():
            raise CredentialMissingError(
                f"{provider.label} requires an API key before it can be used."
            )
        self.provider = provider
        default_url = (
            DEFAULT_OLLAMA_URL
            if provider is Provider.LOCAL_GENERATOR
            else DEFAULT_OPENAI_URL
        )
        self.base_url = (base_url or default_url).rstrip("/")
        self.api_key = api_key.strip()
        self.temperature = temperature
        self.max_line_bytes = max_line_bytes
        self.conversation = ConversationState.for_provider(provider)
        self._decoder: Decoder = decoder_for(provider)
        self._http = http_client or httpx.Client(timeout=httpx.Timeout(timeout))
        # Serializes conversation snapshots against commits from session threads.
        self._state_lock = threading.Lock()

    @property
    def decoder(self) -> Decoder:
        return self._decoder

    def close(self) -> None:
        self._http.close()

    def _auth_headers(self) -> dict[str, str]:
        if self.provider is Provider.HOSTED_CHAT:
            return {"Authorization": f"Bearer {self.api_key}"}
        return {}

    def has_context(self) -> bool:
        with self._state_lock:
            return self.conversation.has_context()

    def clear_context(self) -> None:
        with self._state_lock:
            self.conversation.clear()

    def list_models(self) -> ModelListing:
        """Return the provider's models.

        Local-generator failures propagate as domain errors. Hosted-chat
        listing is not authoritative, so any failure yields the built-in list
        flagged as a fallback.
        """
        if self.provider is Provider.LOCAL_GENERATOR:
            try:
                return ModelListing(models=self._fetch_ollama_models())
            except Exception as exc:
                raise self.map_exception(exc) from exc

        try:
            models = self._fetch_openai_models()
        except Exception as exc:  # noqa: BLE001 - degraded mode by contract.
            LOGGER.warning(
                "client.models.fallback",
                extra={
                    "event": "client.models.fallback",
                    "provider": self.provider.value,
                    "error_type": type(self.map_exception(exc)).__name__,
                },
            )
            return ModelListing(models=FALLBACK_OPENAI_MODELS, fallback=True)
        if not models:
            LOGGER.warning(
                "client.models.fallback",
                extra={
                    "event": "client.models.fallback",
                    "provider": self.provider.value,
                    "reason": "empty listing",
                },
            )
            return ModelListing(models=FALLBACK_OPENAI_MODELS, fallback=True)
        return ModelListing(models=models)

    def _fetch_ollama_models(self) -> tuple[ModelDescriptor, ...]:
        response = self._http.get(f"{self.base_url}/api/tags")
        response.raise_for_status()
        payload = response.json()
        rows = payload.get("models") if isinstance(payload, dict) else None
        descriptors: list[ModelDescriptor] = []
        for row in rows if isinstance(rows, list) else []:
            if not isinstance(row, dict):
                continue
            name = row.get("name") or row.get("model")
            if not isinstance(name, str) or not name.strip():
                continue
            details = row.get("details")
            details = details if isinstance(details, dict) else {}
            family = details.get("family")
            context = details.get("context")
            descriptors.append(
                ModelDescriptor(
                    name=name.strip(),
                    family=family if isinstance(family, str) else "",
                    context_window=context if isinstance(context, int) else 0,
                )
            )
        return tuple(descriptors)

    def _fetch_openai_models(self) -> tuple[ModelDescriptor, ...]:
        response = self._http.get(
            f"{self.base_url}/models",
            headers={**self._auth_headers(), "Content-Type": "application/json"},
        )
        response.raise_for_status()
        payload = response.json()
        rows = payload.get("data") if isinstance(payload, dict) else None
        descriptors: list[ModelDescriptor] = []
        for row in rows if isinstance(rows, list) else []:
            model_id = row.get("id") if isinstance(row, dict) else None
            if isinstance(model_id, str) and model_id.strip():
                descriptors.append(
                    ModelDescriptor(
                        name=model_id.strip(),
                        family="OpenAI",
                        context_window=DEFAULT_OPENAI_CONTEXT_WINDOW,
                    )
                )
        return tuple(descriptors)

    def build_request(self, model: str, prompt: str) -> GenerationRequest:
        """Encode a generation call from the current conversation snapshot."""
        with self._state_lock:
            state_fields = self.conversation.request_fields(prompt)

        payload: dict[str, Any] = {"model": model, "stream": True}
        payload.update(state_fields)
        if self.provider is Provider.LOCAL_GENERATOR:
            url = f"{self.base_url}/api/generate"
        else:
            url = f"{self.base_url}/chat/completions"
            payload["temperature"] = self.temperature

        try:
            body = json.dumps(payload, ensure_ascii=False).encode("utf-8")
        except (TypeError, ValueError) as exc:
            raise RequestBuildError(f"Unable to encode request: {exc}") from exc
        headers = {"Content-Type": "application/json", **self._auth_headers()}
        return GenerationRequest(url=url, body=body, headers=headers)

    @contextmanager
    def open_stream(self, request: GenerationRequest) -> Iterator[httpx.Response]:
        """Open the streaming call and yield the live response.

        ``response.close()`` may be called from another thread to abort a
        read that is blocked on a stalled provider.
        """
        with self._http.stream(
            "POST", request.url, content=request.body, headers=request.headers
        ) as response:
            if response.status_code >= 400:
                detail = response.read().decode("utf-8", errors="replace").strip()
                raise TransportError(
                    f"{self.provider.label} returned status code "
                    f"{response.status_code}: {detail}",
                    status_code=response.status_code,
                )
            yield response

    def response_lines(self, response: httpx.Response) -> Iterator[bytes]:
        return iter_lines(response.iter_bytes(), self.max_line_bytes)

    def stream_lines(self, request: GenerationRequest) -> Iterator[bytes]:
        """Open the streaming call and yield raw body lines."""
        with self.open_stream(request) as response:
            yield from self.response_lines(response)

    def commit_turn(
        self,
        prompt: str,
        response_text: str,
        provider_context: tuple[int, ...],
        cancelled: threading.Event,
    ) -> bool:
        """Apply a completed turn unless the session was cancelled meanwhile."""
        with self._state_lock:
            if cancelled.is_set():
                return False
            self.conversation.apply_turn(prompt, response_text, provider_context)
            return True

    def map_exception(self, exc: BaseException) -> OllamaTuiError:
        if isinstance(exc, OllamaTuiError):
            return exc
        if isinstance(exc, httpx.HTTPStatusError):
            return TransportError(
                f"{self.provider.label} returned status code "
                f"{exc.response.status_code}.",
                status_code=exc.response.status_code,
            )
        if isinstance(exc, (httpx.ConnectError, httpx.ConnectTimeout)):
            return TransportError(f"Unable to connect to {self.base_url}.")
        if isinstance(exc, httpx.HTTPError):
            return TransportError(
                f"Connection to {self.base_url} failed: {exc}"
            )
        if isinstance(exc, ValueError):
            return DecodeError(f"Malformed response from {self.base_url}: {exc}")
        if isinstance(exc, OSError):
            return TransportError(f"I/O failure talking to {self.base_url}: {exc}")
        return TransportError(f"Request to {self.base_url} failed: {exc}")
