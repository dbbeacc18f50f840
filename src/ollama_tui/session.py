"""One streaming request/response exchange, run on a background thread."""

from __future__ import annotations

from collections.abc import Callable, Iterable
from enum import Enum
import logging
import threading
import time

import httpx

from .client import ProviderClient
from .exceptions import OllamaTuiError
from .models import FINAL_FRAGMENT, Fragment

LOGGER = logging.getLogger(__name__)

FragmentCallback = Callable[[Fragment], None]
ErrorCallback = Callable[[OllamaTuiError], None]


class SessionPhase(str, Enum):
    """Lifecycle of a single generation call."""

    OPENING = "OPENING"
    STREAMING = "STREAMING"
    COMPLETED = "COMPLETED"
    CANCELLED = "CANCELLED"
    FAILED = "FAILED"


TERMINAL_PHASES = frozenset(
    {SessionPhase.COMPLETED, SessionPhase.CANCELLED, SessionPhase.FAILED}
)


class GenerationSession:
    """Drive one generation call and forward decoded fragments to ``emit``.

    Every run ends with exactly one terminal fragment, whether it completes,
    is cancelled, or fails. Conversation state is only committed when the
    provider finished the turn naturally and nobody cancelled the session.
    """

    def __init__(
        self,
        client: ProviderClient,
        model: str,
        prompt: str,
        emit: FragmentCallback,
        on_error: ErrorCallback | None = None,
    ) -> None:
        self.client = client
        self.model = model
        self.prompt = prompt
        self._emit = emit
        self._on_error = on_error
        self._cancel_event = threading.Event()
        self._response: httpx.Response | None = None
        self._terminal_sent = False
        self.phase = SessionPhase.OPENING
        self.error: OllamaTuiError | None = None

    @property
    def cancelled(self) -> bool:
        return self._cancel_event.is_set()

    def cancel(self) -> None:
        """Cancel the session from any thread.

        Closing the live response aborts a read blocked on a stalled provider.
        """
        self._cancel_event.set()
        response = self._response
        if response is not None:
            response.close()

    def _transition(self, phase: SessionPhase) -> None:
        LOGGER.debug(
            "session.phase",
            extra={
                "event": "session.phase",
                "from_phase": self.phase.value,
                "to_phase": phase.value,
            },
        )
        self.phase = phase

    def _emit_terminal(self, fragment: Fragment) -> None:
        if self._terminal_sent:
            return
        self._terminal_sent = True
        self._emit(fragment)

    def run(self) -> SessionPhase:
        """Execute the exchange synchronously and return the final phase."""
        started = time.monotonic()
        response_parts: list[str] = []
        LOGGER.info(
            "session.start",
            extra={
                "event": "session.start",
                "provider": self.client.provider.value,
                "model": self.model,
            },
        )
        try:
            request = self.client.build_request(self.model, self.prompt)
            if self.cancelled:
                self._transition(SessionPhase.CANCELLED)
            else:
                with self.client.open_stream(request) as response:
                    self._response = response
                    if self.cancelled:
                        self._transition(SessionPhase.CANCELLED)
                    else:
                        self._transition(SessionPhase.STREAMING)
                        lines = self.client.response_lines(response)
                        self._consume(lines, response_parts)
        except Exception as exc:  # noqa: BLE001 - every failure ends the session.
            if self.cancelled:
                # The read was aborted by cancel() closing the response.
                self._transition(SessionPhase.CANCELLED)
            else:
                self._fail(exc)
        finally:
            self._response = None

        if self.phase not in TERMINAL_PHASES:
            # The decoder always yields a terminal frame, so reaching this means
            # the stream was abandoned without one.
            self._transition(SessionPhase.CANCELLED)
        self._emit_terminal(FINAL_FRAGMENT)

        LOGGER.info(
            f"session.{self.phase.value.lower()}",
            extra={
                "event": f"session.{self.phase.value.lower()}",
                "model": self.model,
                "elapsed_seconds": round(time.monotonic() - started, 3),
                "response_chars": sum(len(part) for part in response_parts),
            },
        )
        return self.phase

    def _fail(self, exc: Exception) -> None:
        self.error = self.client.map_exception(exc)
        self._transition(SessionPhase.FAILED)
        LOGGER.warning(
            "session.failed",
            extra={
                "event": "session.failed",
                "error_type": type(self.error).__name__,
                "error": str(self.error),
            },
        )
        if self._on_error is not None:
            self._on_error(self.error)

    def _consume(self, lines: Iterable[bytes], response_parts: list[str]) -> None:
        context: tuple[int, ...] = ()
        for frame in self.client.decoder(lines):
            if self.cancelled:
                self._transition(SessionPhase.CANCELLED)
                return
            if frame.context:
                context = frame.context
            fragment = frame.fragment
            response_parts.append(fragment.text)

            if fragment.is_final:
                committed = self.client.commit_turn(
                    self.prompt,
                    "".join(response_parts),
                    context,
                    self._cancel_event,
                )
                if not committed:
                    self._transition(SessionPhase.CANCELLED)
                    return
                self._transition(SessionPhase.COMPLETED)
                self._emit_terminal(fragment)
                return

            if fragment.text:
                self._emit(fragment)


class SessionHandle:
    """Cancellation capability plus liveness flag for a session thread."""

    def __init__(self, session: GenerationSession, session_id: int) -> None:
        self.session = session
        self.session_id = session_id
        self._thread = threading.Thread(
            target=session.run,
            name=f"generation-{session_id}",
            daemon=True,
        )

    def start(self) -> SessionHandle:
        self._thread.start()
        return self

    @property
    def generating(self) -> bool:
        return self._thread.is_alive()

    def cancel(self) -> None:
        self.session.cancel()

    def join(self, timeout: float | None = None) -> None:
        self._thread.join(timeout)
