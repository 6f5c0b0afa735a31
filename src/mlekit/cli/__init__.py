"""Command-line interface."""

from mlekit.cli.main import main

__all__ = ["main"]
