"""Main Textual application for chatting with Ollama or OpenAI models."""

from __future__ import annotations

import asyncio
from functools import partial
import logging
from pathlib import Path
from typing import Any

from textual.app import App, ComposeResult
from textual.binding import Binding
from textual.containers import Container
from textual.message import Message
from textual.screen import Screen
from textual.widgets import Footer, Header, Input, Static

from .client import ProviderClient
from .config import load_config
from .credentials import CredentialStore
from .exceptions import OllamaTuiError
from .logging_utils import configure_logging
from .models import Provider
from .relay import FragmentRelay, RelayEvent
from .screens import CredentialScreen, ModelPickerScreen, ProviderPickerScreen
from .session import GenerationSession, SessionHandle
from .state import AppState, FocusState, SessionStateMachine
from .task_manager import TaskManager
from .widgets.activity_bar import ActivityBar
from .widgets.input_box import InputBox
from .widgets.status_bar import StatusBar
from .widgets.transcript import TranscriptView

LOGGER = logging.getLogger(__name__)

RELAY_LISTENER_TASK = "relay_listener"
MODEL_LISTING_TASK = "model_listing"


class RelayEventReceived(Message):
    """A relay event delivered onto the presentation loop."""

    def __init__(self, event: RelayEvent) -> None:
        super().__init__()
        self.event = event


class OllamaTuiApp(App[None]):
    """Terminal chat client driven by :class:`SessionStateMachine`."""

    CSS = """
    Screen {
        layout: vertical;
        background: $background;
    }

    #app-root {
        layout: vertical;
        width: 100%;
        height: 1fr;
    }

    #error_line {
        height: auto;
        padding: 0 2;
        color: $error;
    }

    InputBox {
        border-top: solid $panel;
        background: $surface;
    }

    #status_bar {
        padding: 0 1;
        border-top: solid $panel;
        background: $surface;
    }

    #activity_bar {
        border-top: dashed $panel;
        background: $surface;
    }
    """

    DEFAULT_ACTION_DESCRIPTIONS: dict[str, str] = {
        "toggle_focus": "Toggle focus",
        "new_conversation": "New Chat",
        "back": "Back",
        "quit": "Exit",
    }

    # Keys that Textual or focused widgets would otherwise consume first.
    PRIORITY_ACTIONS = frozenset({"toggle_focus", "new_conversation", "back", "quit"})

    def __init__(
        self,
        config_path: Path | None = None,
        initial_provider: Provider | None = None,
    ) -> None:
        self.config = load_config(config_path)
        configure_logging(self.config["logging"])
        self.window_title = str(self.config["app"]["title"])
        self._initial_provider = initial_provider

        self.credentials = CredentialStore(self.config["credentials"]["path"])
        self.machine = SessionStateMachine(
            client_factory=self._build_client,
            start_session=self._start_session,
            credentials=self.credentials,
            credential_names={
                Provider.HOSTED_CHAT: str(self.config["openai"]["api_key_env"])
            },
        )
        self._tasks = TaskManager()
        self._relay: FragmentRelay | None = None
        self._modal: Screen[Any] | None = None
        self._modal_state: AppState | None = None
        self._w_transcript: TranscriptView | None = None
        self._w_input: Input | None = None
        self._w_status: StatusBar | None = None
        self._w_activity: ActivityBar | None = None
        self._w_error: Static | None = None
        super().__init__()
        self.title = self.window_title
        # DOMNode.bind has no priority flag, so register on the bindings map directly.
        for binding in self._binding_specs_from_config(self.config):
            self._bindings.bind(
                binding.key,
                binding.action,
                binding.description,
                show=binding.show,
                priority=binding.priority,
            )

    @classmethod
    def _binding_specs_from_config(
        cls, config: dict[str, dict[str, Any]]
    ) -> list[Binding]:
        keybinds = config.get("keybinds", {})
        bindings: list[Binding] = []
        for action_name, description in cls.DEFAULT_ACTION_DESCRIPTIONS.items():
            binding_key = keybinds.get(action_name)
            if isinstance(binding_key, str) and binding_key.strip():
                bindings.append(
                    Binding(
                        key=binding_key.strip(),
                        action=action_name,
                        description=description,
                        show=True,
                        priority=action_name in cls.PRIORITY_ACTIONS,
                    )
                )
        return bindings

    def _key_display(self, action_name: str) -> str:
        key = str(self.config["keybinds"].get(action_name, ""))
        return "+".join(part.capitalize() for part in key.split("+"))

    # -- factories handed to the state machine ---------------------------

    def _build_client(self, provider: Provider, secret: str) -> ProviderClient:
        max_line_bytes = int(self.config["decoder"]["max_line_bytes"])
        if provider is Provider.LOCAL_GENERATOR:
            ollama = self.config["ollama"]
            return ProviderClient(
                provider,
                base_url=str(ollama["host"]),
                timeout=float(ollama["timeout"]),
                max_line_bytes=max_line_bytes,
            )
        openai = self.config["openai"]
        return ProviderClient(
            provider,
            base_url=str(openai["base_url"]),
            api_key=secret,
            timeout=float(openai["timeout"]),
            temperature=float(openai["temperature"]),
            max_line_bytes=max_line_bytes,
        )

    def _start_session(
        self, client: ProviderClient, model: str, prompt: str, session_id: int
    ) -> SessionHandle:
        relay = self._relay
        if relay is None:
            raise RuntimeError("Relay is not ready; the app has not been mounted.")
        session = GenerationSession(
            client,
            model,
            prompt,
            emit=partial(relay.push_fragment, session_id),
            on_error=partial(relay.push_error, session_id),
        )
        handle = SessionHandle(session, session_id).start()
        if not self._tasks.is_running(RELAY_LISTENER_TASK):
            self._arm_relay_listener()
        return handle

    # -- layout ----------------------------------------------------------

    def compose(self) -> ComposeResult:
        yield Header()
        with Container(id="app-root"):
            yield TranscriptView(id="transcript")
            yield Static("", id="error_line")
            yield InputBox()
            yield StatusBar(id="status_bar")
            yield ActivityBar(id="activity_bar")
        yield Footer()

    async def on_mount(self) -> None:
        self._relay = FragmentRelay(
            asyncio.get_running_loop(), int(self.config["relay"]["max_size"])
        )
        self._w_transcript = self.query_one(TranscriptView)
        self._w_input = self.query_one("#prompt_input", Input)
        self._w_status = self.query_one(StatusBar)
        self._w_activity = self.query_one(ActivityBar)
        self._w_error = self.query_one("#error_line", Static)

        if self._initial_provider is not None:
            self.machine.select_provider(self._initial_provider)
        self._sync_view()

    async def on_unmount(self) -> None:
        """Cancel the live session and await all background tasks."""
        self.machine.shutdown()
        if self._relay is not None:
            self._relay.close()
        await self._tasks.cancel_all()

    # -- view synchronisation --------------------------------------------

    def _build_modal(self, state: AppState) -> Screen[Any] | None:
        if state == AppState.PROVIDER_SELECT:
            return ProviderPickerScreen(error=self.machine.last_error)
        if state == AppState.CREDENTIAL_INPUT and self.machine.provider is not None:
            return CredentialScreen(self.machine.provider, error=self.machine.last_error)
        if state == AppState.MODEL_SELECT and self.machine.provider is not None:
            return ModelPickerScreen(self.machine.provider, listing=self.machine.listing)
        return None

    def _sync_view(self) -> None:
        """Show the screen matching the machine's state and refresh the chat view."""
        state = self.machine.state
        if state != self._modal_state:
            if self._modal is not None:
                self.pop_screen()
                self._modal = None
            self._modal_state = state
            modal = self._build_modal(state)
            if modal is not None:
                self._modal = modal
                self.push_screen(modal)
                if isinstance(modal, ModelPickerScreen) and modal.listing is None:
                    self._spawn_model_listing()
        self._refresh_chat()

    def _refresh_chat(self) -> None:
        machine = self.machine
        if self._w_transcript is not None:
            self._w_transcript.show_entries(machine.transcript)
        if self._w_error is not None:
            self._w_error.update(machine.last_error)
            self._w_error.display = bool(machine.last_error)
        self.sub_title = (
            f"Error: {machine.last_error}" if machine.last_error else machine.model
        )

        if self._w_status is not None:
            self._w_status.set_status(
                provider=machine.provider.label if machine.provider else "No provider",
                model=machine.model,
                context_active=machine.has_context(),
                hints=self._status_hints(),
            )
        if self._w_activity is not None:
            if machine.state == AppState.LOADING:
                self._w_activity.start_activity(
                    hint=f"{self._key_display('back')}: Interrupt"
                )
            else:
                self._w_activity.stop_activity()

    def _status_hints(self) -> str:
        quit_hint = f"{self._key_display('quit')}: Exit"
        if self.machine.state == AppState.LOADING:
            return f"{self._key_display('back')}: Interrupt | {quit_hint}"
        return " | ".join(
            [
                f"{self._key_display('toggle_focus')}: Toggle focus",
                f"{self._key_display('new_conversation')}: New Chat",
                f"{self._key_display('back')}: Models",
                quit_hint,
            ]
        )

    def _apply_focus(self) -> None:
        if self.machine.focus == FocusState.TRANSCRIPT:
            if self._w_transcript is not None:
                self._w_transcript.focus()
        elif self._w_input is not None:
            self._w_input.focus()

    # -- model listing ---------------------------------------------------

    def _spawn_model_listing(self) -> None:
        client = self.machine.client
        if client is None:
            return
        if isinstance(self._modal, ModelPickerScreen):
            self._modal.set_loading()
        self._tasks.spawn(MODEL_LISTING_TASK, self._load_models(client))

    async def _load_models(self, client: ProviderClient) -> None:
        try:
            listing = await asyncio.to_thread(client.list_models)
        except OllamaTuiError as exc:
            if self.machine.client is not client:
                return
            LOGGER.warning(
                "app.models.failed",
                extra={"event": "app.models.failed", "error": str(exc)},
            )
            self.machine.models_failed(exc)
            if isinstance(self._modal, ModelPickerScreen):
                self._modal.set_error(self.machine.listing_error)
            return
        if self.machine.client is not client:
            return
        self.machine.models_loaded(listing)
        if isinstance(self._modal, ModelPickerScreen):
            self._modal.set_listing(listing)

    # -- relay -----------------------------------------------------------

    def _arm_relay_listener(self) -> None:
        self._tasks.spawn(RELAY_LISTENER_TASK, self._await_relay_event())

    async def _await_relay_event(self) -> None:
        if self._relay is None:
            return
        event = await self._relay.next()
        self.post_message(RelayEventReceived(event))

    def on_relay_event_received(self, message: RelayEventReceived) -> None:
        keep_listening = self.machine.handle_event(message.event)
        self._refresh_chat()
        if keep_listening:
            self._arm_relay_listener()

    # -- screen messages -------------------------------------------------

    def on_provider_picker_screen_selected(
        self, message: ProviderPickerScreen.Selected
    ) -> None:
        accepted = self.machine.select_provider(message.provider)
        if not accepted and isinstance(self._modal, ProviderPickerScreen):
            self._modal.show_error(self.machine.last_error)
            return
        self._sync_view()

    def on_credential_screen_submitted(self, message: CredentialScreen.Submitted) -> None:
        accepted = self.machine.submit_credential(message.value)
        if not accepted and isinstance(self._modal, CredentialScreen):
            self._modal.show_error(self.machine.last_error)
            return
        self._sync_view()

    def on_model_picker_screen_selected(self, message: ModelPickerScreen.Selected) -> None:
        if self.machine.select_model(message.name):
            self._sync_view()
            self.call_after_refresh(self._apply_focus)

    def on_model_picker_screen_retry_requested(
        self, _message: ModelPickerScreen.RetryRequested
    ) -> None:
        self._spawn_model_listing()

    def on_input_submitted(self, event: Input.Submitted) -> None:
        if event.input.id != "prompt_input":
            return
        if self.machine.submit_prompt(event.value):
            event.input.value = ""
        self._refresh_chat()

    # -- actions ---------------------------------------------------------

    def action_toggle_focus(self) -> None:
        if self.machine.state != AppState.PROMPTING:
            return
        self.machine.toggle_focus()
        self._apply_focus()

    def action_new_conversation(self) -> None:
        if self.machine.new_conversation():
            self._refresh_chat()

    def action_back(self) -> None:
        if not self.machine.back():
            self.exit()
            return
        self._sync_view()

    async def action_quit(self) -> None:
        """Cancel any live session, then exit."""
        self.machine.shutdown()
        self.exit()
