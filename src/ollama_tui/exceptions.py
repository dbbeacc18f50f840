"""Domain exception hierarchy for the ollama-tui client."""

from __future__ import annotations


class OllamaTuiError(RuntimeError):
    """Base class for all domain-level client errors."""


class TransportError(OllamaTuiError):
    """Raised when the provider cannot be reached or answers with an error status."""

    def __init__(self, message: str, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class DecodeError(OllamaTuiError):
    """Raised when a response frame cannot be decoded at all (e.g. oversized line)."""


class RequestBuildError(OllamaTuiError):
    """Raised when a request payload cannot be serialized."""


class CredentialMissingError(OllamaTuiError):
    """Raised when a provider that needs a secret is used without one."""


class ConfigValidationError(OllamaTuiError):
    """Raised when configuration cannot be validated safely."""
