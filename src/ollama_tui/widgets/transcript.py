"""Scrollable transcript view rendering prompt/response pairs."""

from __future__ import annotations

from collections.abc import Sequence
from typing import Any

from rich.text import Text
from textual import events
from textual.app import ComposeResult
from textual.containers import VerticalScroll
from textual.widgets import Static

from ..models import TranscriptEntry
from ..text import wrap

EMPTY_TRANSCRIPT_TEXT = "No responses yet. Send a prompt to start."
WRAP_MARGIN = 10


def format_entry(entry: TranscriptEntry, width: int) -> str:
    """Render one entry; only the response body is wrapped."""
    response = wrap(entry.response_so_far, width - WRAP_MARGIN)
    return f"Prompt: {entry.prompt}\n\nResponse:\n{response}"


def render_transcript(entries: Sequence[TranscriptEntry], width: int) -> str:
    if not entries:
        return EMPTY_TRANSCRIPT_TEXT
    return "\n\n".join(format_entry(entry, width) for entry in entries)


class TranscriptView(VerticalScroll):
    """Hosts the whole transcript as a single text body and re-wraps on resize."""

    DEFAULT_CSS = """
    TranscriptView {
        height: 1fr;
        padding: 0 2;
    }
    TranscriptView:focus {
        border: round $accent;
    }
    TranscriptView > #transcript-body {
        height: auto;
    }
    """

    def __init__(self, **kwargs: Any) -> None:
        super().__init__(**kwargs)
        self._entries: Sequence[TranscriptEntry] = ()
        self._body: Static | None = None

    def compose(self) -> ComposeResult:
        self._body = Static(EMPTY_TRANSCRIPT_TEXT, id="transcript-body")
        yield self._body

    @property
    def wrap_width(self) -> int:
        return self.size.width or 80

    def show_entries(self, entries: Sequence[TranscriptEntry]) -> str:
        """Re-render ``entries`` and keep the view pinned to the bottom."""
        self._entries = entries
        rendered = render_transcript(entries, self.wrap_width)
        if self._body is not None:
            self._body.update(Text(rendered))
        self.scroll_end(animate=False)
        return rendered

    def on_resize(self, event: events.Resize) -> None:
        self.show_entries(self._entries)
