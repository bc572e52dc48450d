"""
CLI layer for basestack.

Provides a Typer application whose commands delegate to
``basestack.deploy`` and ``basestack.auth``. This package handles only
terminal transport: argument parsing, prompts, coloured output and tables.

Entry point::

    basestack --help
"""

from basestack.cli.app import app

__all__ = ["app"]
