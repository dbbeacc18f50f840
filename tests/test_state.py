"""Tests for the presentation-side session state machine."""

from __future__ import annotations

from pathlib import Path
import tempfile
import unittest

from ollama_tui.credentials import CredentialStore
from ollama_tui.exceptions import CredentialMissingError, TransportError
from ollama_tui.models import (
    FINAL_FRAGMENT,
    Fragment,
    ModelDescriptor,
    ModelListing,
    Provider,
)
from ollama_tui.relay import RelayEvent
from ollama_tui.state import AppState, FocusState, SessionStateMachine


class _FakeClient:
    def __init__(self, provider: Provider, secret: str) -> None:
        self.provider = provider
        self.secret = secret
        self.context = False
        self.closed = False
        self.cleared = 0

    def has_context(self) -> bool:
        return self.context

    def clear_context(self) -> None:
        self.context = False
        self.cleared += 1

    def close(self) -> None:
        self.closed = True


class _FakeHandle:
    def __init__(self, session_id: int, prompt: str) -> None:
        self.session_id = session_id
        self.prompt = prompt
        self.cancelled = False

    def cancel(self) -> None:
        self.cancelled = True


class _FakeCredentials:
    def __init__(self, values: dict[str, str] | None = None, fail: bool = False) -> None:
        self.values = dict(values or {})
        self.fail = fail

    def get(self, name: str) -> str | None:
        return self.values.get(name)

    def set(self, name: str, value: str) -> None:
        if self.fail:
            raise OSError("read-only filesystem")
        self.values[name] = value


class SessionStateMachineTests(unittest.TestCase):
    """Validate screen transitions, relay handling, and cancel-then-replace."""

    def setUp(self) -> None:
        self.clients: list[_FakeClient] = []
        self.handles: list[_FakeHandle] = []
        self.credentials = _FakeCredentials()
        self.factory_error: Exception | None = None
        self.machine = SessionStateMachine(
            client_factory=self._factory,
            start_session=self._start,
            credentials=self.credentials,
        )

    def _factory(self, provider: Provider, secret: str) -> _FakeClient:
        if self.factory_error is not None:
            raise self.factory_error
        client = _FakeClient(provider, secret)
        self.clients.append(client)
        return client

    def _start(self, client, model: str, prompt: str, session_id: int) -> _FakeHandle:
        handle = _FakeHandle(session_id, prompt)
        self.handles.append(handle)
        return handle

    def _to_prompting(self) -> None:
        self.assertTrue(self.machine.select_provider(Provider.LOCAL_GENERATOR))
        self.assertTrue(self.machine.select_model("llama3.2"))

    def _event(self, handle: _FakeHandle, fragment: Fragment) -> bool:
        return self.machine.handle_event(
            RelayEvent(session_id=handle.session_id, fragment=fragment)
        )

    def test_local_provider_skips_credential_input(self) -> None:
        self.assertTrue(self.machine.select_provider(Provider.LOCAL_GENERATOR))
        self.assertEqual(self.machine.state, AppState.MODEL_SELECT)
        self.assertEqual(self.clients[0].secret, "")

    def test_hosted_provider_without_secret_asks_for_one(self) -> None:
        self.machine.select_provider(Provider.HOSTED_CHAT)
        self.assertEqual(self.machine.state, AppState.CREDENTIAL_INPUT)
        self.assertEqual(self.clients, [])

        self.assertFalse(self.machine.submit_credential("   "))
        self.assertEqual(self.machine.state, AppState.CREDENTIAL_INPUT)
        self.assertTrue(self.machine.last_error)

        self.assertTrue(self.machine.submit_credential(" sk-live "))
        self.assertEqual(self.machine.state, AppState.MODEL_SELECT)
        self.assertEqual(self.credentials.values["OPENAI_API_KEY"], "sk-live")
        self.assertEqual(self.clients[0].secret, "sk-live")

    def test_hosted_provider_with_stored_secret_skips_prompt(self) -> None:
        self.credentials.values["OPENAI_API_KEY"] = "sk-saved"
        self.machine.select_provider(Provider.HOSTED_CHAT)
        self.assertEqual(self.machine.state, AppState.MODEL_SELECT)
        self.assertEqual(self.clients[0].secret, "sk-saved")

    def test_credential_save_failure_still_opens_client(self) -> None:
        self.credentials.fail = True
        self.machine.select_provider(Provider.HOSTED_CHAT)
        with self.assertLogs("ollama_tui.state", level="WARNING"):
            self.assertTrue(self.machine.submit_credential("sk"))
        self.assertEqual(self.machine.state, AppState.MODEL_SELECT)
        self.assertIn("could not be saved", self.machine.last_error)

    def test_credential_saved_to_file_with_info_logging(self) -> None:
        with tempfile.TemporaryDirectory() as tmp:
            store = CredentialStore(Path(tmp) / "credentials.json", environ={})
            machine = SessionStateMachine(
                client_factory=self._factory,
                start_session=self._start,
                credentials=store,
            )
            machine.select_provider(Provider.HOSTED_CHAT)
            with self.assertLogs("ollama_tui", level="INFO") as logs:
                self.assertTrue(machine.submit_credential("sk-test"))
            self.assertEqual(store.get("OPENAI_API_KEY"), "sk-test")

        self.assertEqual(machine.state, AppState.MODEL_SELECT)
        self.assertEqual(machine.last_error, "")
        saved = [
            record
            for record in logs.records
            if getattr(record, "event", "") == "credentials.saved"
        ]
        self.assertEqual(len(saved), 1)
        self.assertEqual(saved[0].credential, "OPENAI_API_KEY")
        self.assertFalse(any("sk-test" in line for line in logs.output))

    def test_client_construction_failure_keeps_state(self) -> None:
        self.factory_error = CredentialMissingError("missing")
        self.assertFalse(self.machine.select_provider(Provider.LOCAL_GENERATOR))
        self.assertEqual(self.machine.state, AppState.PROVIDER_SELECT)
        self.assertEqual(self.machine.last_error, "missing")

    def test_model_listing_results_are_recorded(self) -> None:
        self.machine.select_provider(Provider.LOCAL_GENERATOR)
        self.machine.models_failed(TransportError("offline"))
        self.assertEqual(self.machine.listing_error, "offline")
        listing = ModelListing(models=(ModelDescriptor("llama3.2"),))
        self.machine.models_loaded(listing)
        self.assertIs(self.machine.listing, listing)
        self.assertEqual(self.machine.listing_error, "")

    def test_blank_model_is_rejected(self) -> None:
        self.machine.select_provider(Provider.LOCAL_GENERATOR)
        self.assertFalse(self.machine.select_model("  "))
        self.assertEqual(self.machine.state, AppState.MODEL_SELECT)

    def test_prompt_round_trip(self) -> None:
        self._to_prompting()
        self.assertFalse(self.machine.submit_prompt("   "))
        self.assertTrue(self.machine.submit_prompt("hello"))
        self.assertEqual(self.machine.state, AppState.LOADING)
        self.assertTrue(self.machine.generating)
        handle = self.handles[0]

        self.assertTrue(self._event(handle, Fragment("Hi")))
        self.assertTrue(self._event(handle, Fragment("")))
        self.assertTrue(self._event(handle, Fragment(" there")))
        self.assertFalse(self._event(handle, Fragment("!", is_final=True)))

        entry = self.machine.transcript[0]
        self.assertEqual(entry.prompt, "hello")
        self.assertEqual(entry.response_so_far, "Hi there!")
        self.assertTrue(entry.closed)
        self.assertEqual(self.machine.state, AppState.PROMPTING)
        self.assertFalse(self.machine.generating)

    def test_error_event_is_shown_and_terminal_returns_to_prompting(self) -> None:
        self._to_prompting()
        self.machine.submit_prompt("hello")
        handle = self.handles[0]
        self.assertTrue(
            self.machine.handle_event(
                RelayEvent(session_id=handle.session_id, error=TransportError("down"))
            )
        )
        self.assertEqual(self.machine.last_error, "down")
        self.assertEqual(self.machine.transcript[0].error, "down")
        self.assertEqual(self.machine.state, AppState.LOADING)

        self._event(handle, FINAL_FRAGMENT)
        self.assertEqual(self.machine.state, AppState.PROMPTING)
        self.assertEqual(self.machine.last_error, "down")

    def test_second_prompt_cancels_and_replaces_first(self) -> None:
        self._to_prompting()
        self.machine.submit_prompt("first")
        first = self.handles[0]
        self._event(first, Fragment("one"))

        self.assertTrue(self.machine.submit_prompt("second"))
        second = self.handles[1]
        self.assertTrue(first.cancelled)
        self.assertNotEqual(first.session_id, second.session_id)
        self.assertTrue(self.machine.transcript[0].closed)

        self.assertTrue(self._event(second, Fragment("two")))
        # Late output from the replaced session must not leak into the transcript.
        self.assertTrue(self._event(first, Fragment("stale")))
        self.assertTrue(self._event(first, FINAL_FRAGMENT))
        self.assertEqual(self.machine.state, AppState.LOADING)

        self.assertFalse(self._event(second, FINAL_FRAGMENT))
        self.assertEqual(
            [entry.response_so_far for entry in self.machine.transcript],
            ["one", "two"],
        )
        self.assertEqual(self.machine.state, AppState.PROMPTING)

    def test_stale_event_after_completion_stops_listening(self) -> None:
        self._to_prompting()
        self.machine.submit_prompt("only")
        handle = self.handles[0]
        self._event(handle, FINAL_FRAGMENT)
        self.assertFalse(self._event(handle, Fragment("late")))

    def test_interrupt_keeps_loading_until_terminal(self) -> None:
        self._to_prompting()
        self.assertFalse(self.machine.interrupt())
        self.machine.submit_prompt("long")
        handle = self.handles[0]
        self.assertTrue(self.machine.back())
        self.assertTrue(handle.cancelled)
        self.assertEqual(self.machine.state, AppState.LOADING)
        self._event(handle, FINAL_FRAGMENT)
        self.assertEqual(self.machine.state, AppState.PROMPTING)

    def test_new_conversation_only_when_idle_prompting(self) -> None:
        self._to_prompting()
        client = self.clients[0]
        self.machine.submit_prompt("q")
        self.assertFalse(self.machine.new_conversation())
        self._event(self.handles[0], FINAL_FRAGMENT)
        client.context = True

        self.assertTrue(self.machine.new_conversation())
        self.assertEqual(client.cleared, 1)
        self.assertEqual(self.machine.transcript, [])
        self.assertFalse(self.machine.has_context())

    def test_focus_toggles_only_while_prompting(self) -> None:
        self.assertEqual(self.machine.toggle_focus(), FocusState.INPUT)
        self._to_prompting()
        self.assertEqual(self.machine.toggle_focus(), FocusState.TRANSCRIPT)
        self.assertEqual(self.machine.toggle_focus(), FocusState.INPUT)

    def test_back_walks_to_provider_select_then_quits(self) -> None:
        self._to_prompting()
        client = self.clients[0]
        self.assertTrue(self.machine.back())
        self.assertEqual(self.machine.state, AppState.MODEL_SELECT)
        self.assertTrue(self.machine.back())
        self.assertEqual(self.machine.state, AppState.PROVIDER_SELECT)
        self.assertTrue(client.closed)
        self.assertIsNone(self.machine.client)
        self.assertFalse(self.machine.back())

    def test_back_from_credential_input(self) -> None:
        self.machine.select_provider(Provider.HOSTED_CHAT)
        self.assertTrue(self.machine.back())
        self.assertEqual(self.machine.state, AppState.PROVIDER_SELECT)
        self.assertIsNone(self.machine.provider)

    def test_shutdown_cancels_live_session(self) -> None:
        self._to_prompting()
        self.machine.submit_prompt("q")
        self.machine.shutdown()
        self.assertTrue(self.handles[0].cancelled)
        self.assertTrue(self.clients[0].closed)

    def test_transitions_are_logged(self) -> None:
        with self.assertLogs("ollama_tui.state", level="INFO") as logs:
            self._to_prompting()
        self.assertTrue(any("app.state.transition" in line for line in logs.output))


if __name__ == "__main__":
    unittest.main()
