"""Modal screens for provider, credential, and model selection.

Screens only collect input. They report choices to the app through messages
and never change application state themselves.
"""

from __future__ import annotations

from collections.abc import Sequence

from textual.app import ComposeResult
from textual.binding import Binding
from textual.containers import Container
from textual.message import Message
from textual.screen import ModalScreen
from textual.widgets import Input, OptionList, Static
from textual.widgets.option_list import Option

from .models import ModelListing, Provider


def _selected_index(event: OptionList.OptionSelected, size: int) -> int:
    option_index = getattr(event, "option_index", None)
    if option_index is None:
        option_index = getattr(event, "index", -1)
    try:
        selected = int(option_index)
    except (TypeError, ValueError):
        return -1
    return selected if 0 <= selected < size else -1


class ProviderPickerScreen(ModalScreen[None]):
    """Choose which backend to talk to."""

    CSS = """
    ProviderPickerScreen {
        align: center middle;
    }

    #provider-dialog {
        width: 60;
        height: auto;
        max-height: 20;
        padding: 1 2;
        border: round $panel;
        background: $surface;
    }

    #provider-title {
        padding-bottom: 1;
        text-style: bold;
    }

    #provider-error {
        color: $error;
    }

    #provider-help {
        padding-top: 1;
    }
    """

    class Selected(Message):
        def __init__(self, provider: Provider) -> None:
            super().__init__()
            self.provider = provider

    def __init__(
        self,
        providers: Sequence[Provider] = tuple(Provider),
        error: str = "",
    ) -> None:
        super().__init__()
        self.providers = list(providers)
        self.error = error

    def compose(self) -> ComposeResult:
        with Container(id="provider-dialog"):
            yield Static("Select a provider", id="provider-title")
            yield OptionList(
                *(
                    Option(f"{provider.label}  ({provider.description})", id=provider.value)
                    for provider in self.providers
                ),
                id="provider-options",
            )
            yield Static(self.error, id="provider-error")
            yield Static("Enter/click to select  |  Esc to quit", id="provider-help")

    def on_mount(self) -> None:
        self.query_one("#provider-options", OptionList).focus()

    def on_option_list_option_selected(self, event: OptionList.OptionSelected) -> None:
        event.stop()
        index = _selected_index(event, len(self.providers))
        if index >= 0:
            self.post_message(self.Selected(self.providers[index]))

    def show_error(self, error: str) -> None:
        self.error = error
        self.query_one("#provider-error", Static).update(error)


class CredentialScreen(ModalScreen[None]):
    """Prompt for a provider API key with masked input."""

    CSS = """
    CredentialScreen {
        align: center middle;
    }

    #credential-dialog {
        width: 70;
        height: auto;
        padding: 1 2;
        border: round $panel;
        background: $surface;
    }

    #credential-title {
        padding-bottom: 1;
        text-style: bold;
    }

    #credential-input {
        width: 100%;
        margin-bottom: 1;
    }

    #credential-error {
        color: $error;
    }
    """

    class Submitted(Message):
        def __init__(self, value: str) -> None:
            super().__init__()
            self.value = value

    def __init__(self, provider: Provider, error: str = "") -> None:
        super().__init__()
        self.provider = provider
        self.error = error

    def compose(self) -> ComposeResult:
        with Container(id="credential-dialog"):
            yield Static(f"Enter your {self.provider.label} API key", id="credential-title")
            yield Input(
                placeholder="sk-...",
                password=True,
                id="credential-input",
            )
            yield Static(self.error, id="credential-error")
            yield Static(
                "The key is saved to your credentials file.  Enter to confirm  |  Esc to go back",
                id="credential-help",
            )

    def on_mount(self) -> None:
        self.query_one("#credential-input", Input).focus()

    def on_input_submitted(self, event: Input.Submitted) -> None:
        if event.input.id != "credential-input":
            return
        event.stop()
        self.post_message(self.Submitted(event.value))

    def show_error(self, error: str) -> None:
        self.error = error
        self.query_one("#credential-error", Static).update(error)


class ModelPickerScreen(ModalScreen[None]):
    """List the provider's models once they arrive; retry on failure."""

    CSS = """
    ModelPickerScreen {
        align: center middle;
    }

    #model-picker-dialog {
        width: 70;
        max-height: 26;
        padding: 1 2;
        border: round $panel;
        background: $surface;
    }

    #model-picker-title {
        padding-bottom: 1;
        text-style: bold;
    }

    #model-picker-status.error {
        color: $error;
    }

    #model-picker-status.fallback {
        color: $warning;
    }

    #model-picker-help {
        padding-top: 1;
    }
    """

    BINDINGS = [Binding("r", "retry", "Retry", show=False)]

    LOADING_TEXT = "Loading models..."

    class Selected(Message):
        def __init__(self, name: str) -> None:
            super().__init__()
            self.name = name

    class RetryRequested(Message):
        pass

    def __init__(self, provider: Provider, listing: ModelListing | None = None) -> None:
        super().__init__()
        self.provider = provider
        self.listing = listing
        self.error = ""

    def compose(self) -> ComposeResult:
        with Container(id="model-picker-dialog"):
            yield Static(f"Select a {self.provider.label} model", id="model-picker-title")
            yield Static(self.LOADING_TEXT, id="model-picker-status")
            yield OptionList(id="model-picker-options")
            yield Static(
                "Enter/click to select  |  r to retry  |  Esc to go back",
                id="model-picker-help",
            )

    def on_mount(self) -> None:
        self._refresh_view()

    def set_listing(self, listing: ModelListing) -> None:
        self.listing = listing
        self.error = ""
        self._refresh_view()

    def set_error(self, error: str) -> None:
        self.listing = None
        self.error = error
        self._refresh_view()

    def set_loading(self) -> None:
        self.listing = None
        self.error = ""
        self._refresh_view()

    def _refresh_view(self) -> None:
        # Results may arrive before the screen is mounted; on_mount catches up.
        if not self.is_mounted:
            return
        status = self.query_one("#model-picker-status", Static)
        options = self.query_one("#model-picker-options", OptionList)
        status.remove_class("error", "fallback")
        options.clear_options()

        if self.error:
            status.add_class("error")
            status.update(f"Error: {self.error}\nPress r to retry or Esc to go back.")
            options.display = False
            return
        listing = self.listing
        if listing is None:
            status.update(self.LOADING_TEXT)
            options.display = False
            return

        status.set_class(listing.fallback, "fallback")
        if listing.fallback:
            status.update("Could not reach the provider; showing built-in models.")
        elif not listing.models:
            status.update("No models available.")
        else:
            status.update("")
        options.add_options(
            [Option(f"{model.name}  ({model.details})") for model in listing.models]
        )
        options.display = bool(listing.models)
        if listing.models:
            options.highlighted = 0
            options.focus()

    def on_option_list_option_selected(self, event: OptionList.OptionSelected) -> None:
        event.stop()
        if self.listing is None:
            return
        index = _selected_index(event, len(self.listing.models))
        if index >= 0:
            self.post_message(self.Selected(self.listing.models[index].name))

    def action_retry(self) -> None:
        if self.listing is None and self.error:
            self.post_message(self.RetryRequested())
