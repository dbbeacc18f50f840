"""Tests for configuration loading and validation."""

from __future__ import annotations

import os
import tempfile
from pathlib import Path
import unittest

from ollama_tui.config import DEFAULT_CONFIG, ensure_config_dir, load_config


class ConfigTests(unittest.TestCase):
    """Validate config merge and fallback behavior."""

    def _load(self, text: str | None) -> dict:
        with tempfile.TemporaryDirectory() as temp_dir:
            config_path = Path(temp_dir) / "config.toml"
            if text is not None:
                config_path.write_text(text.strip(), encoding="utf-8")
            return load_config(config_path=config_path)

    def test_missing_config_uses_defaults(self) -> None:
        config = self._load(None)
        self.assertEqual(config, DEFAULT_CONFIG)
        self.assertEqual(config["ollama"]["host"], "http://localhost:11434")
        self.assertEqual(config["openai"]["base_url"], "https://api.openai.com/v1")
        self.assertEqual(config["openai"]["temperature"], 0.7)
        self.assertEqual(config["relay"]["max_size"], 100)
        self.assertEqual(config["decoder"]["max_line_bytes"], 1024 * 1024)
        self.assertEqual(config["keybinds"]["new_conversation"], "ctrl+n")
        self.assertEqual(config["keybinds"]["back"], "escape")

    def test_partial_config_overrides_selected_values(self) -> None:
        config = self._load(
            """
[openai]
temperature = 0.2
api_key_env = "MY_OPENAI_KEY"

[keybinds]
quit = "ctrl+q"

[logging]
level = "debug"
            """
        )
        self.assertEqual(config["openai"]["temperature"], 0.2)
        self.assertEqual(config["openai"]["api_key_env"], "MY_OPENAI_KEY")
        self.assertEqual(config["keybinds"]["quit"], "ctrl+q")
        self.assertEqual(config["keybinds"]["toggle_focus"], "tab")
        self.assertEqual(config["logging"]["level"], "DEBUG")
        self.assertEqual(config["app"]["title"], DEFAULT_CONFIG["app"]["title"])

    def test_trailing_slash_is_stripped_from_urls(self) -> None:
        config = self._load(
            """
[openai]
base_url = "https://proxy.internal/v1/"
            """
        )
        self.assertEqual(config["openai"]["base_url"], "https://proxy.internal/v1")

    def test_invalid_values_fallback_to_defaults(self) -> None:
        config = self._load(
            """
[ollama]
timeout = -1
host = "localhost"

[decoder]
max_line_bytes = 10

[keybinds]
back = ""
            """
        )
        self.assertEqual(config, DEFAULT_CONFIG)

    def test_unparseable_toml_falls_back_to_defaults(self) -> None:
        with self.assertLogs("ollama_tui.config", level="WARNING"):
            config = self._load("[ollama\nhost = ")
        self.assertEqual(config, DEFAULT_CONFIG)

    def test_remote_host_disallowed_by_default_policy(self) -> None:
        config = self._load(
            """
[ollama]
host = "http://example.com:11434"
            """
        )
        self.assertEqual(config["ollama"]["host"], DEFAULT_CONFIG["ollama"]["host"])
        self.assertFalse(config["security"]["allow_remote_hosts"])

    def test_remote_host_allowed_when_policy_enabled(self) -> None:
        config = self._load(
            """
[ollama]
host = "http://example.com:11434"

[security]
allow_remote_hosts = true
allowed_hosts = ["localhost"]
            """
        )
        self.assertEqual(config["ollama"]["host"], "http://example.com:11434")
        self.assertTrue(config["security"]["allow_remote_hosts"])

    @unittest.skipIf(os.name != "posix", "POSIX permissions only")
    def test_config_file_permissions_are_tightened(self) -> None:
        with tempfile.TemporaryDirectory() as temp_dir:
            config_path = Path(temp_dir) / "config.toml"
            config_path.write_text("[app]\ntitle = 'x'\n", encoding="utf-8")
            config_path.chmod(0o644)
            load_config(config_path=config_path)
            self.assertEqual(config_path.stat().st_mode & 0o777, 0o600)

    def test_ensure_config_dir_creates_directory(self) -> None:
        with tempfile.TemporaryDirectory() as temp_dir:
            target = Path(temp_dir) / "nested" / "ollama-tui"
            self.assertEqual(ensure_config_dir(target), target)
            self.assertTrue(target.is_dir())


if __name__ == "__main__":
    unittest.main()
