"""Command-line interface for tripweave."""

from tripweave.cli.main import cli, main

__all__ = ["cli", "main"]
