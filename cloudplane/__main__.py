"""Entry point for `python -m cloudplane`.

Usage:
    python -m cloudplane clusters
    python -m cloudplane watch pod -n default
"""

from __future__ import annotations

from cloudplane.cli import cli

cli()
