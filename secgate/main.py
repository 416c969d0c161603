"""
SecGate main entry point.

Delegates to the Typer application in :mod:`secgate.cli.cli`.
"""
from __future__ import annotations

from .cli.cli import app


def main() -> None:
    """Run the CLI application."""
    app()


if __name__ == "__main__":
    main()
