"""Prompt input row."""

from __future__ import annotations

from textual.app import ComposeResult
from textual.containers import Horizontal
from textual.widgets import Input

PROMPT_CHAR_LIMIT = 5000


class InputBox(Horizontal):
    """Single-line prompt field; submission is handled by the app."""

    DEFAULT_CSS = """
    InputBox {
        height: auto;
        padding: 0 1;
    }
    InputBox > #prompt_input {
        width: 1fr;
        border: round $panel;
    }
    InputBox > #prompt_input:focus {
        border: round $accent;
    }
    """

    def compose(self) -> ComposeResult:
        yield Input(
            placeholder="Write your prompt here...",
            max_length=PROMPT_CHAR_LIMIT,
            id="prompt_input",
        )
