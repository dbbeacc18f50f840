"""Activity bar widget showing the generation spinner and key hints."""

from __future__ import annotations

from typing import Any

from textual.app import ComposeResult
from textual.timer import Timer
from textual.widgets import Label, Static

SPINNER_FRAMES: tuple[str, ...] = ("⠋", "⠙", "⠹", "⠸", "⠼", "⠴", "⠦", "⠧", "⠇", "⠏")
FRAME_INTERVAL_SECONDS = 0.1


class ActivityBar(Static):
    """Render a spinner while a response is generating."""

    DEFAULT_CSS = """
    ActivityBar {
        layout: horizontal;
        height: 1;
        padding: 0 1;
    }
    ActivityBar #activity_left {
        width: 1fr;
    }
    ActivityBar #activity_right {
        width: auto;
        text-align: right;
    }
    """

    def __init__(self, **kwargs: Any) -> None:
        super().__init__(**kwargs)
        self._animation_timer: Timer | None = None
        self._frame_index = 0
        self._label = "Generating..."
        self._hint = ""
        self._left: Label | None = None
        self._right: Label | None = None

    def compose(self) -> ComposeResult:
        yield Label("", id="activity_left")
        yield Label("", id="activity_right")

    def on_mount(self) -> None:
        self._left = self.query_one("#activity_left", Label)
        self._right = self.query_one("#activity_right", Label)

    @property
    def running(self) -> bool:
        return self._animation_timer is not None

    def start_activity(self, hint: str = "", label: str = "Generating...") -> None:
        """Begin the spinner; repeated calls only refresh the hint."""
        self._label = label
        self._hint = hint
        if self._right is not None:
            self._right.update(hint)
        if self.running:
            return
        self._frame_index = 0
        self._update_left()
        self._animation_timer = self.set_interval(
            FRAME_INTERVAL_SECONDS, self._advance_frame
        )

    def stop_activity(self) -> None:
        if self._animation_timer is not None:
            self._animation_timer.stop()
            self._animation_timer = None
        if self._left is not None:
            self._left.update("")
        if self._right is not None:
            self._right.update("")

    def _advance_frame(self) -> None:
        self._frame_index = (self._frame_index + 1) % len(SPINNER_FRAMES)
        self._update_left()

    def _update_left(self) -> None:
        if self._left is None:
            return
        self._left.update(f"{SPINNER_FRAMES[self._frame_index]} {self._label}")
