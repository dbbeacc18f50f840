"""Provider secret lookup: environment first, then a private JSON file."""

from __future__ import annotations

from collections.abc import Mapping
import json
import logging
import os
from pathlib import Path

LOGGER = logging.getLogger(__name__)


class CredentialStore:
    """Key/value lookup for provider credentials.

    ``get`` consults the environment before the persisted file. ``set`` only
    writes the file; the environment is never modified.
    """

    def __init__(self, path: str | Path, environ: Mapping[str, str] | None = None) -> None:
        self.path = Path(path).expanduser()
        self._environ = os.environ if environ is None else environ

    def _enforce_private_permissions(self) -> None:
        if os.name != "posix":
            return
        try:
            self.path.chmod(0o600)
        except OSError:
            LOGGER.warning(
                "credentials.chmod_failed",
                extra={"event": "credentials.chmod_failed", "path": str(self.path)},
            )

    def _read(self) -> dict[str, str]:
        if not self.path.exists():
            return {}
        try:
            payload = json.loads(self.path.read_text(encoding="utf-8"))
        except (OSError, ValueError):
            LOGGER.warning(
                "credentials.read_failed",
                extra={"event": "credentials.read_failed", "path": str(self.path)},
            )
            return {}
        if not isinstance(payload, dict):
            return {}
        return {
            str(key): value
            for key, value in payload.items()
            if isinstance(value, str) and value.strip()
        }

    def get(self, name: str) -> str | None:
        """Return the secret stored under ``name``, or ``None``."""
        from_env = self._environ.get(name, "").strip()
        if from_env:
            return from_env
        value = self._read().get(name)
        return value.strip() if value else None

    def set(self, name: str, value: str) -> None:
        """Persist ``value`` under ``name``; raises ``OSError`` on failure."""
        normalized = value.strip()
        if not normalized:
            raise ValueError("Credential value must not be empty.")
        stored = self._read()
        stored[name] = normalized
        self.path.parent.mkdir(parents=True, exist_ok=True)
        self.path.write_text(
            json.dumps(stored, ensure_ascii=False, indent=2, sort_keys=True),
            encoding="utf-8",
        )
        self._enforce_private_permissions()
        LOGGER.info(
            "credentials.saved",
            extra={
                "event": "credentials.saved",
                "credential": name,
                "length": len(normalized),
            },
        )
