"""
pricache command line interface.

Inspect and manage SQLite-backed caches: stats, reads, writes, tag and
priority invalidation, maintenance and cached fetches.
"""

from .main import cli, main

__all__ = ["main", "cli"]
