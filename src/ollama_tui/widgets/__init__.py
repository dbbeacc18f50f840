"""Custom Textual widgets for the chat screen."""

from .activity_bar import ActivityBar
from .input_box import InputBox
from .status_bar import StatusBar
from .transcript import TranscriptView, render_transcript

__all__ = [
    "ActivityBar",
    "InputBox",
    "StatusBar",
    "TranscriptView",
    "render_transcript",
]
