"""Top-level package for ollama-tui."""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from .app import OllamaTuiApp
    from .client import ProviderClient
    from .config import ensure_config_dir, load_config
    from .exceptions import (
        ConfigValidationError,
        CredentialMissingError,
        DecodeError,
        OllamaTuiError,
        RequestBuildError,
        TransportError,
    )
    from .models import Fragment, ModelDescriptor, ModelListing, Provider
    from .relay import FragmentRelay
    from .session import GenerationSession, SessionPhase
    from .state import AppState, SessionStateMachine

__all__ = [
    "AppState",
    "ConfigValidationError",
    "CredentialMissingError",
    "DecodeError",
    "Fragment",
    "FragmentRelay",
    "GenerationSession",
    "ModelDescriptor",
    "ModelListing",
    "OllamaTuiApp",
    "OllamaTuiError",
    "Provider",
    "ProviderClient",
    "RequestBuildError",
    "SessionPhase",
    "SessionStateMachine",
    "TransportError",
    "ensure_config_dir",
    "load_config",
]

_EXCEPTION_NAMES = {
    "ConfigValidationError",
    "CredentialMissingError",
    "DecodeError",
    "OllamaTuiError",
    "RequestBuildError",
    "TransportError",
}
_MODEL_NAMES = {"Fragment", "ModelDescriptor", "ModelListing", "Provider"}


def __getattr__(name: str) -> Any:
    """Lazily import symbols so the pipeline can be used without loading Textual."""
    if name in _EXCEPTION_NAMES:
        from . import exceptions

        return getattr(exceptions, name)
    if name in _MODEL_NAMES:
        from . import models

        return getattr(models, name)
    if name in {"ensure_config_dir", "load_config"}:
        from . import config

        return getattr(config, name)
    if name == "ProviderClient":
        from .client import ProviderClient

        return ProviderClient
    if name == "FragmentRelay":
        from .relay import FragmentRelay

        return FragmentRelay
    if name in {"GenerationSession", "SessionPhase"}:
        from . import session

        return getattr(session, name)
    if name in {"AppState", "SessionStateMachine"}:
        from . import state

        return getattr(state, name)
    if name == "OllamaTuiApp":
        from .app import OllamaTuiApp

        return OllamaTuiApp
    raise AttributeError(f"module {__name__!r} has no attribute {name!r}")
