"""
CLI layer for replcheck.

A Typer application whose sub-commands delegate to the progress, cluster
and execution packages. This package handles only terminal transport:
argument parsing, coloured output and table formatting.

Entry point::

    replcheck --help
"""

from replcheck.cli.app import app

__all__ = ["app"]
