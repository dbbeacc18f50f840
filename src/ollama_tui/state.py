"""Presentation-side state machine driven by user actions and relay events.

The machine is owned by the single-threaded presentation loop. It never
touches the network itself: clients and sessions are created through injected
factories, and sessions report back exclusively through relay events.
"""

from __future__ import annotations

from collections.abc import Callable
from enum import Enum
from itertools import count
import logging
from typing import Protocol

from .client import ProviderClient
from .exceptions import OllamaTuiError
from .models import ModelListing, Provider, TranscriptEntry
from .relay import RelayEvent
from .session import SessionHandle

LOGGER = logging.getLogger(__name__)


class AppState(str, Enum):
    """Which screen is active."""

    PROVIDER_SELECT = "PROVIDER_SELECT"
    CREDENTIAL_INPUT = "CREDENTIAL_INPUT"
    MODEL_SELECT = "MODEL_SELECT"
    PROMPTING = "PROMPTING"
    LOADING = "LOADING"


class FocusState(str, Enum):
    """Where keystrokes go on the chat screen."""

    INPUT = "INPUT"
    TRANSCRIPT = "TRANSCRIPT"


class CredentialSource(Protocol):
    def get(self, name: str) -> str | None: ...

    def set(self, name: str, value: str) -> None: ...


ClientFactory = Callable[[Provider, str], ProviderClient]
SessionStarter = Callable[[ProviderClient, str, str, int], SessionHandle]


class SessionStateMachine:
    """Track the active screen, the transcript, focus, and the live session."""

    def __init__(
        self,
        *,
        client_factory: ClientFactory,
        start_session: SessionStarter,
        credentials: CredentialSource,
        credential_names: dict[Provider, str] | None = None,
    ) -> None:
        self._client_factory = client_factory
        self._start_session = start_session
        self._credentials = credentials
        self._credential_names = credential_names or {
            Provider.HOSTED_CHAT: "OPENAI_API_KEY"
        }
        self._session_ids = count(1)

        self.state = AppState.PROVIDER_SELECT
        self.focus = FocusState.INPUT
        self.provider: Provider | None = None
        self.client: ProviderClient | None = None
        self.model = ""
        self.listing: ModelListing | None = None
        self.listing_error = ""
        self.transcript: list[TranscriptEntry] = []
        self.last_error = ""
        self.handle: SessionHandle | None = None

    # -- helpers ---------------------------------------------------------

    def _transition(self, new_state: AppState) -> None:
        if new_state == self.state:
            return
        LOGGER.info(
            "app.state.transition",
            extra={
                "event": "app.state.transition",
                "from_state": self.state.value,
                "to_state": new_state.value,
            },
        )
        self.state = new_state

    @property
    def generating(self) -> bool:
        return self.handle is not None

    @property
    def active_session_id(self) -> int | None:
        return self.handle.session_id if self.handle is not None else None

    @property
    def open_entry(self) -> TranscriptEntry | None:
        if self.transcript and not self.transcript[-1].closed:
            return self.transcript[-1]
        return None

    def has_context(self) -> bool:
        return self.client is not None and self.client.has_context()

    def credential_name(self, provider: Provider) -> str:
        return self._credential_names.get(provider, "")

    def _cancel_live_session(self) -> None:
        handle = self.handle
        self.handle = None
        if handle is None:
            return
        handle.cancel()
        LOGGER.info(
            "app.session.cancelled",
            extra={"event": "app.session.cancelled", "session_id": handle.session_id},
        )
        entry = self.open_entry
        if entry is not None:
            entry.close()

    def _open_client(self, provider: Provider, secret: str) -> bool:
        try:
            self.client = self._client_factory(provider, secret)
        except OllamaTuiError as exc:
            self.last_error = str(exc)
            return False
        self.provider = provider
        self.listing = None
        self.listing_error = ""
        self._transition(AppState.MODEL_SELECT)
        return True

    def _discard_client(self) -> None:
        self._cancel_live_session()
        if self.client is not None:
            self.client.close()
        self.client = None
        self.listing = None
        self.listing_error = ""
        self.model = ""

    # -- provider, credential and model selection ------------------------

    def select_provider(self, provider: Provider) -> bool:
        if self.state != AppState.PROVIDER_SELECT:
            return False
        self.last_error = ""
        self.provider = provider
        secret = ""
        if provider.requires_credential:
            secret = self._credentials.get(self.credential_name(provider)) or ""
            if not secret:
                self._transition(AppState.CREDENTIAL_INPUT)
                return True
        return self._open_client(provider, secret)

    def submit_credential(self, value: str) -> bool:
        if self.state != AppState.CREDENTIAL_INPUT or self.provider is None:
            return False
        secret = value.strip()
        if not secret:
            self.last_error = "API key must not be empty."
            return False
        self.last_error = ""
        try:
            self._credentials.set(self.credential_name(self.provider), secret)
        except (OSError, ValueError) as exc:
            # The key still works for this run; only persistence failed.
            LOGGER.warning(
                "credentials.save_failed",
                extra={"event": "credentials.save_failed", "error": str(exc)},
            )
            self.last_error = f"API key could not be saved: {exc}"
        return self._open_client(self.provider, secret)

    def models_loaded(self, listing: ModelListing) -> None:
        if self.state != AppState.MODEL_SELECT:
            return
        self.listing = listing
        self.listing_error = ""

    def models_failed(self, error: OllamaTuiError) -> None:
        if self.state != AppState.MODEL_SELECT:
            return
        self.listing = None
        self.listing_error = str(error)

    def select_model(self, name: str) -> bool:
        if self.state != AppState.MODEL_SELECT or not name.strip():
            return False
        self.model = name.strip()
        self.focus = FocusState.INPUT
        self._transition(AppState.PROMPTING)
        return True

    # -- prompting and generation ----------------------------------------

    def submit_prompt(self, text: str) -> bool:
        """Start a generation for ``text``; a live session is cancelled first."""
        if self.state not in {AppState.PROMPTING, AppState.LOADING}:
            return False
        if self.client is None or not text.strip():
            return False
        self._cancel_live_session()

        session_id = next(self._session_ids)
        self.transcript.append(TranscriptEntry(prompt=text))
        self.last_error = ""
        self.handle = self._start_session(self.client, self.model, text, session_id)
        self._transition(AppState.LOADING)
        return True

    def handle_event(self, event: RelayEvent) -> bool:
        """Apply one relay event; return whether to keep waiting for more."""
        if event.session_id != self.active_session_id:
            # Leftovers from a replaced session.
            return self.generating
        entry = self.open_entry

        if event.error is not None:
            self.last_error = str(event.error)
            if entry is not None:
                entry.error = self.last_error
            return True

        fragment = event.fragment
        if fragment is None or fragment.is_noop:
            return True
        if entry is not None and fragment.text:
            entry.append(fragment.text)
        if not fragment.is_final:
            return True

        if entry is not None:
            entry.close()
        self.handle = None
        self._transition(AppState.PROMPTING)
        return False

    def interrupt(self) -> bool:
        """Cancel the live session; the machine leaves LOADING on its terminal event."""
        handle = self.handle
        if handle is None:
            return False
        handle.cancel()
        LOGGER.info(
            "app.session.interrupted",
            extra={"event": "app.session.interrupted", "session_id": handle.session_id},
        )
        return True

    def new_conversation(self) -> bool:
        if self.state != AppState.PROMPTING or self.generating:
            return False
        if self.client is not None:
            self.client.clear_context()
        self.transcript.clear()
        self.last_error = ""
        return True

    def toggle_focus(self) -> FocusState:
        if self.state == AppState.PROMPTING:
            self.focus = (
                FocusState.TRANSCRIPT
                if self.focus == FocusState.INPUT
                else FocusState.INPUT
            )
        return self.focus

    # -- navigation ------------------------------------------------------

    def back(self) -> bool:
        """Step back one screen; return ``False`` when the app should quit."""
        if self.state == AppState.LOADING:
            self.interrupt()
            return True
        if self.state == AppState.PROMPTING:
            self._transition(AppState.MODEL_SELECT)
            return True
        if self.state in {AppState.MODEL_SELECT, AppState.CREDENTIAL_INPUT}:
            self._discard_client()
            self.provider = None
            self.last_error = ""
            self._transition(AppState.PROVIDER_SELECT)
            return True
        return False

    def shutdown(self) -> None:
        self._discard_client()
