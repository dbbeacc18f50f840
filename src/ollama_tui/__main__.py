"""CLI entrypoint for ollama-tui."""

from __future__ import annotations

import argparse
from collections.abc import Sequence
from importlib import metadata
from pathlib import Path

from .app import OllamaTuiApp
from .config import ensure_config_dir
from .models import Provider


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="ollama-tui",
        description="ollama-tui - Terminal chat client for Ollama and OpenAI models",
    )
    parser.add_argument(
        "--version",
        action="store_true",
        help="Print version and exit",
    )
    parser.add_argument(
        "--config",
        type=Path,
        default=None,
        metavar="PATH",
        help="Read configuration from PATH instead of ~/.config/ollama-tui/config.toml",
    )
    parser.add_argument(
        "--provider",
        choices=[provider.value for provider in Provider],
        default=None,
        help="Skip the provider picker and start with this provider",
    )
    return parser


def main(argv: Sequence[str] | None = None) -> None:
    """Ensure configuration exists, handle CLI flags, and run the TUI."""

    parser = _build_parser()
    args = parser.parse_args(list(argv) if argv is not None else None)

    if args.version:
        try:
            version = metadata.version("ollama-tui")
        except metadata.PackageNotFoundError:
            version = "0.0.0"
        print(f"ollama-tui {version}")
        return

    ensure_config_dir()
    provider = Provider.from_name(args.provider) if args.provider else None
    app = OllamaTuiApp(config_path=args.config, initial_provider=provider)
    app.run()


if __name__ == "__main__":
    main()
