"""Status bar widget for model, context, and key hints."""

from __future__ import annotations

from textual.app import ComposeResult
from textual.widgets import Label, Static


class StatusBar(Static):
    """Render compact runtime status information.

    Segments (left to right):
        OpenAI · gpt-4  |  Context active  |  Tab: Toggle focus | Ctrl+N: New Chat | Ctrl+C: Exit
    """

    DEFAULT_CSS = """
    StatusBar {
        layout: horizontal;
        height: 1;
    }
    StatusBar Label {
        margin-right: 1;
    }
    StatusBar #status_context {
        color: $success;
    }
    StatusBar #status_hints {
        color: $text-muted;
    }
    """

    def compose(self) -> ComposeResult:
        yield Label("No model", id="status_model")
        yield Label("|", id="status_sep1")
        yield Label("", id="status_context")
        yield Label("|", id="status_sep2")
        yield Label("", id="status_hints")

    def set_status(
        self,
        *,
        provider: str,
        model: str,
        context_active: bool,
        hints: str,
    ) -> None:
        """Update all status segment labels."""
        self.query_one("#status_model", Label).update(
            f"{provider} · {model}" if model else provider
        )
        context = self.query_one("#status_context", Label)
        context.update("Context active" if context_active else "")
        context.display = context_active
        self.query_one("#status_sep2", Label).display = context_active
        self.query_one("#status_hints", Label).update(hints)
