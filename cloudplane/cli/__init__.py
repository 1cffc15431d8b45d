"""cloudplane command-line interface.

Exposes:
    cli -- Click group entry point (registered as ``cloudplane`` script).
"""

from cloudplane.cli.main import cli

__all__ = ["cli"]
